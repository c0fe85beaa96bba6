from __future__ import annotations
import json
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Deque, Dict, List, Optional

from extensions import HookRegistry, RuntimeServices, StepContext, build_default_services
from lexer import Lexer, MiniPyError, MiniPySyntaxError, ParseError
from parser import (
    Assign,
    BinaryOp,
    Break,
    CompareChain,
    Continue,
    Expression,
    ExpressionStatement,
    Identifier,
    If,
    Literal,
    Parser,
    Program,
    SourceLocation,
    Statement,
    UnaryOp,
    While,
)
from values import (
    FALSE,
    TRUE,
    MiniPyRuntimeError,
    UndefinedNameError,
    Value,
    binary_op,
    compare,
    to_repr,
    truthy,
    unary_op,
)


# Bound on retained step entries; state ids keep counting past it.
STATE_LOG_LIMIT = 10000


class ControlSignal(Enum):
    NORMAL = "normal"
    BREAK = "break"
    CONTINUE = "continue"


@dataclass
class Environment:
    values: Dict[str, Value] = field(default_factory=dict)

    def set(self, name: str, value: Value) -> None:
        self.values[name] = value

    def get(self, name: str) -> Value:
        found = self.values.get(name)
        if found is None:
            raise UndefinedNameError(f"name '{name}' is not defined", rule="IDENT")
        return found

    def get_optional(self, name: str) -> Optional[Value]:
        return self.values.get(name)

    def has(self, name: str) -> bool:
        return name in self.values

    def snapshot(self) -> Dict[str, str]:
        def _render(val: Value) -> str:
            rendered = to_repr(val)
            if len(rendered) > 80:
                rendered = rendered[:77] + "..."
            return f"{val.type}:{rendered}"

        return {k: _render(v) for k, v in self.values.items()}


@dataclass
class StateEntry:
    step_index: int
    state_id: str
    source_location: Optional[SourceLocation]
    statement: Optional[str]
    env_snapshot: Optional[Dict[str, Any]]
    rewrite_record: Optional[Dict[str, Any]]


class StateLogger:
    def __init__(self, verbose: bool, limit: int = STATE_LOG_LIMIT) -> None:
        self.verbose = verbose
        self.entries: Deque[StateEntry] = deque(maxlen=limit)
        self.next_state_index = 0
        self.last_state_id = "seed"

    def record(
        self,
        *,
        location: Optional[SourceLocation],
        statement: Optional[str],
        rewrite_record: Optional[Dict[str, Any]] = None,
        env_snapshot: Optional[Dict[str, str]] = None,
    ) -> StateEntry:
        rewrite = {} if rewrite_record is None else rewrite_record
        if "from_state_id" not in rewrite:
            rewrite["from_state_id"] = self.last_state_id
        step_index = self.next_state_index
        state_id = f"s_{step_index:06d}"
        rewrite["to_state_id"] = state_id
        entry = StateEntry(
            step_index=step_index,
            state_id=state_id,
            source_location=location,
            statement=statement,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite,
        )
        self.entries.append(entry)
        self.last_state_id = state_id
        self.next_state_index += 1
        return entry

    @property
    def last_entry(self) -> Optional[StateEntry]:
        return self.entries[-1] if self.entries else None


DisplayHook = Callable[[Value], None]


class Interpreter:
    """Tree-walking evaluator over one persistent global environment.

    ``execute`` runs one unit of source (a line or an assembled block). In
    interactive mode, the value of each top-level expression statement is
    passed to ``display_hook``; nested expression statements are evaluated
    for effect only.
    """

    def __init__(
        self,
        *,
        filename: str = "<stdin>",
        verbose: bool = False,
        services: Optional[RuntimeServices] = None,
        display_hook: Optional[DisplayHook] = None,
    ) -> None:
        self.filename = filename
        self.verbose = verbose
        self.services = services or build_default_services()
        self.hook_registry: HookRegistry = self.services.hook_registry
        self.display_hook = display_hook
        self.environment = Environment()
        self.logger = StateLogger(verbose=verbose)
        self.logger.record(location=None, statement="<seed>", rewrite_record={"rule": "SEED"})
        # Depth of enclosing while loops; break/continue outside any loop are no-ops.
        self.loop_depth = 0
        self._trace_evaluation = False

    def parse(self, source: str) -> Program:
        lexer = Lexer(source, self.filename)
        tokens = lexer.tokenize()
        parser = Parser(tokens, self.filename, source.splitlines())
        try:
            return parser.parse()
        except RecursionError:
            raise ParseError("too many nested parentheses", filename=self.filename, line=1, column=1)

    def execute(self, source: str, *, interactive: bool = True) -> None:
        program = self.parse(source)
        self.run(program, interactive=interactive)

    def run(self, program: Program, *, interactive: bool = True) -> None:
        self.loop_depth = 0
        self._trace_evaluation = self.hook_registry.has_handlers("after_evaluate")
        self._emit_event("unit_start", self, program)
        try:
            self._execute_block(program.statements, top_level=interactive)
        except MiniPyRuntimeError as error:
            self._emit_event("on_error", self, error)
            if error.location is None and self.logger.last_entry is not None:
                error.location = self.logger.last_entry.source_location
            if self.logger.entries:
                error.step_index = self.logger.entries[-1].step_index
            raise
        except MiniPyError:
            raise
        except Exception as exc:
            self._emit_event("on_error", self, exc)
            # Convert unexpected Python-level exceptions into MiniPyRuntimeError
            # so callers (REPL/CLI) can format them as tracebacks.
            loc = None
            last = self.logger.last_entry
            if last is not None:
                loc = last.source_location
            wrapped = MiniPyRuntimeError(f"Internal interpreter error: {exc}", location=loc, rule="internal")
            if last is not None:
                wrapped.step_index = last.step_index
            raise wrapped from exc
        else:
            self._emit_event("unit_end", self)

    def _execute_block(self, statements: List[Statement], *, top_level: bool = False) -> ControlSignal:
        emit_event = self._emit_event
        execute_stmt = self._execute_statement
        env = self.environment
        for statement in statements:
            emit_event("before_statement", self, statement, env)
            signal = execute_stmt(statement, top_level)
            emit_event("after_statement", self, statement, env, signal)
            if signal is not ControlSignal.NORMAL:
                return signal
        return ControlSignal.NORMAL

    def _execute_statement(self, statement: Statement, top_level: bool = False) -> ControlSignal:
        self._log_step(rule=statement.__class__.__name__, location=statement.location)
        if isinstance(statement, Assign):
            value = self._evaluate_expression(statement.expression)
            self.environment.set(statement.name, value)
            return ControlSignal.NORMAL
        if isinstance(statement, ExpressionStatement):
            value = self._evaluate_expression(statement.expression)
            if top_level and self.display_hook is not None:
                self.display_hook(value)
            return ControlSignal.NORMAL
        if isinstance(statement, If):
            return self._execute_if(statement)
        if isinstance(statement, While):
            return self._execute_while(statement)
        if isinstance(statement, Break):
            return ControlSignal.BREAK if self.loop_depth else ControlSignal.NORMAL
        if isinstance(statement, Continue):
            return ControlSignal.CONTINUE if self.loop_depth else ControlSignal.NORMAL
        raise MiniPyRuntimeError("Unsupported statement", location=statement.location)

    def _execute_if(self, statement: If) -> ControlSignal:
        eval_expr = self._evaluate_expression
        for branch in statement.branches:
            if truthy(eval_expr(branch.condition)):
                return self._execute_block(branch.block.statements)
        if statement.else_block is not None:
            return self._execute_block(statement.else_block.statements)
        return ControlSignal.NORMAL

    def _execute_while(self, statement: While) -> ControlSignal:
        eval_expr = self._evaluate_expression
        self.loop_depth += 1
        try:
            while truthy(eval_expr(statement.condition)):
                signal = self._execute_block(statement.block.statements)
                if signal is ControlSignal.BREAK:
                    # Absorbed here; the else-block is skipped.
                    return ControlSignal.NORMAL
                # CONTINUE just falls through to the next condition check.
        finally:
            self.loop_depth -= 1
        if statement.else_block is not None:
            return self._execute_block(statement.else_block.statements)
        return ControlSignal.NORMAL

    def _evaluate_expression(self, expression: Expression) -> Value:
        value = self._evaluate(expression)
        if self._trace_evaluation:
            self._emit_event("after_evaluate", self, expression, value)
        return value

    def _evaluate(self, expression: Expression) -> Value:
        if isinstance(expression, Literal):
            return expression.value
        if isinstance(expression, Identifier):
            found = self.environment.get_optional(expression.name)
            if found is not None:
                return found
            raise UndefinedNameError(
                f"name '{expression.name}' is not defined",
                location=expression.location,
                rule="IDENT",
            )
        if isinstance(expression, BinaryOp):
            return self._evaluate_binary(expression)
        if isinstance(expression, UnaryOp):
            operand = self._evaluate_expression(expression.operand)
            return unary_op(expression.op, operand, expression.location)
        if isinstance(expression, CompareChain):
            return self._evaluate_chain(expression)
        raise MiniPyRuntimeError("Unsupported expression", location=expression.location)

    def _evaluate_binary(self, expression: BinaryOp) -> Value:
        # Left-associative runs (``1 + 2 + ... + n``) nest down the left side;
        # walk that spine with a loop so long sums do not exhaust the stack.
        spine: List[BinaryOp] = []
        node: Expression = expression
        while isinstance(node, BinaryOp):
            spine.append(node)
            node = node.left
        eval_expr = self._evaluate_expression
        value = eval_expr(node)
        for binary in reversed(spine):
            right = eval_expr(binary.right)
            value = binary_op(binary.op, value, right, binary.location)
            # The outermost node is reported by _evaluate_expression itself.
            if binary is not expression and self._trace_evaluation:
                self._emit_event("after_evaluate", self, binary, value)
        return value

    def _evaluate_chain(self, chain: CompareChain) -> Value:
        # Each operand is evaluated at most once; the chain stops at the first false pair.
        eval_expr = self._evaluate_expression
        left = eval_expr(chain.operands[0])
        for op, operand in zip(chain.ops, chain.operands[1:]):
            right = eval_expr(operand)
            if not compare(op, left, right, chain.location):
                return FALSE
            left = right
        return TRUE

    def _emit_event(self, event: str, *args: Any) -> None:
        try:
            self.hook_registry.emit(event, *args)
        except MiniPyError:
            raise
        except Exception as exc:
            last = self.logger.last_entry
            raise MiniPyRuntimeError(
                f"Extension hook '{event}' failed: {exc}",
                location=last.source_location if last else None,
                rule="EXT",
            )

    def _log_step(
        self,
        *,
        rule: str,
        location: Optional[SourceLocation],
        extra: Optional[Dict[str, Any]] = None,
    ) -> None:
        env_snapshot = self.environment.snapshot() if self.verbose else None
        statement = location.statement if location else None
        rewrite = {"rule": rule}
        if extra:
            rewrite.update(extra)
        entry = self.logger.record(
            location=location,
            statement=statement,
            env_snapshot=env_snapshot,
            rewrite_record=rewrite,
        )

        # Run extension step rules (every N steps) after recording.
        try:
            self.hook_registry.after_step(
                self,
                StepContext(step_index=entry.step_index, rule=rule, location=location, extra=extra),
            )
        except MiniPyError:
            raise
        except Exception as exc:
            raise MiniPyRuntimeError(
                f"Extension step rule failed: {exc}",
                location=location,
                rule="EXT",
            )


class TracebackFormatter:
    def __init__(self, interpreter: Interpreter) -> None:
        self.interpreter = interpreter

    def format_text(self, error: MiniPyRuntimeError, verbose: bool) -> str:
        lines = ["Traceback (most recent call last):"]
        location = error.location
        entry = self._entry_for(error)
        if location is None and entry is not None:
            location = entry.source_location
        if location is not None:
            lines.append(f"  File \"{location.file}\", line {location.line}, in <module>")
            if location.statement:
                lines.append(f"    {location.statement}")
        else:
            lines.append("  <unknown location> in <module>")
        if verbose and entry is not None:
            lines.append(f"    State log index: {entry.step_index}  State id: {entry.state_id}")
            if entry.env_snapshot is not None:
                snapshot = ", ".join(f"{k}={v}" for k, v in entry.env_snapshot.items())
                lines.append(f"    Env snapshot: {snapshot}")
        lines.append(f"{error.kind}: {error.message}")
        return "\n".join(lines)

    def format_syntax_error(self, error: MiniPySyntaxError) -> str:
        lines = [f"  File \"{error.filename}\", line {error.line}"]
        if error.text is not None:
            stripped = error.text.lstrip()
            lines.append(f"    {stripped}")
            caret = max(error.column - 1 - (len(error.text) - len(stripped)), 0)
            lines.append("    " + " " * caret + "^")
        lines.append(f"{error.kind}: {error.message}")
        return "\n".join(lines)

    def to_json(self, error: MiniPyRuntimeError) -> str:
        frame: Dict[str, Any] = {"frame_index": 0, "name": "<module>"}
        location = error.location
        if location is not None:
            frame["source_location"] = {
                "file": location.file,
                "line": location.line,
                "statement": location.statement,
            }
        entry = self._entry_for(error)
        if entry is not None:
            frame["state_id"] = entry.state_id
            frame["step_index"] = entry.step_index
            if entry.env_snapshot is not None:
                frame["env_snapshot"] = entry.env_snapshot
            if entry.rewrite_record is not None:
                frame["rewrite_record"] = entry.rewrite_record
        data = {
            "error": {
                "type": error.kind,
                "message": error.message,
                "failing_step_index": error.step_index,
            },
            "traceback": [frame],
        }
        return json.dumps(data, indent=2)

    def _entry_for(self, error: MiniPyRuntimeError) -> Optional[StateEntry]:
        if error.step_index is None:
            return self.interpreter.logger.last_entry
        for entry in reversed(self.interpreter.logger.entries):
            if entry.step_index == error.step_index:
                return entry
        return None
