"""minipy entry point and REPL wiring."""

from __future__ import annotations
import argparse
import re
import sys
from typing import List, Optional, Sequence, TextIO

from extensions import MiniPyExtensionError, RuntimeServices, build_default_services, load_runtime_services
from interpreter import Interpreter, TracebackFormatter
from lexer import LexError, Lexer, MiniPyError, MiniPySyntaxError, measure_indent
from values import TYPE_NONE, MiniPyRuntimeError, Value, to_repr


__version__ = "0.1.0"

PRIMARY_PROMPT = ">>> "
CONTINUATION_PROMPT = "... "
EXIT_COMMANDS = ("exit", "quit", "q", "Q")
# Clauses that continue a compound statement at the header's own indentation.
CONTINUATION_CLAUSES = ("elif", "else")

_FIRST_WORD = re.compile(r"[A-Za-z_]\w*")


def _opens_block(line: str) -> bool:
    """True when the last significant token of ``line`` is a ``:``."""
    try:
        tokens = Lexer(line, "<stdin>").tokenize()
    except LexError:
        # Let the interpreter report it as a single-line unit.
        return False
    significant = [t for t in tokens if t.type not in ("NEWLINE", "EOF")]
    return bool(significant) and significant[-1].type == "COLON"


def _starts_clause(stripped: str) -> bool:
    match = _FIRST_WORD.match(stripped)
    return match is not None and match.group(0) in CONTINUATION_CLAUSES


class _UnitRunner:
    """Executes assembled units and reports values and errors on the given streams."""

    def __init__(
        self,
        interpreter: Interpreter,
        *,
        stderr: TextIO,
        verbose: bool,
        traceback_json: bool,
    ) -> None:
        self.interpreter = interpreter
        self.stderr = stderr
        self.verbose = verbose
        self.traceback_json = traceback_json
        self.formatter = TracebackFormatter(interpreter)

    def __call__(self, source: str, *, interactive: bool = True) -> bool:
        try:
            self.interpreter.execute(source, interactive=interactive)
        except MiniPySyntaxError as error:
            print(self.formatter.format_syntax_error(error), file=self.stderr)
            return False
        except MiniPyRuntimeError as error:
            print(self.formatter.format_text(error, verbose=self.verbose), file=self.stderr)
            if self.traceback_json:
                print(self.formatter.to_json(error), file=self.stderr)
            return False
        except MiniPyError as error:
            print(f"{error.kind}: {error}", file=self.stderr)
            return False
        return True


def run_repl(
    verbose: bool = False,
    *,
    traceback_json: bool = False,
    services: Optional[RuntimeServices] = None,
    quiet: bool = False,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
    stderr: Optional[TextIO] = None,
) -> int:
    stdin = stdin or sys.stdin
    stdout = stdout or sys.stdout
    stderr = stderr or sys.stderr

    if not quiet:
        print(f"minipy {__version__} REPL. Type \"exit\" to quit.", file=stdout)

    def _display(value: Value) -> None:
        if value.type != TYPE_NONE:
            print(to_repr(value), file=stdout)

    interpreter = Interpreter(filename="<stdin>", verbose=verbose, services=services, display_hook=_display)
    run_unit = _UnitRunner(interpreter, stderr=stderr, verbose=verbose, traceback_json=traceback_json)

    buffer: List[str] = []
    header_indent = 0
    # A line that closed the open block by dedenting; it is then handled as a new unit.
    pending: Optional[str] = None

    while True:
        if pending is not None:
            line, pending = pending, None
        else:
            stdout.write(PRIMARY_PROMPT if not buffer else CONTINUATION_PROMPT)
            stdout.flush()
            try:
                raw = stdin.readline()
            except KeyboardInterrupt:
                print("\nKeyboardInterrupt", file=stdout)
                buffer.clear()
                continue
            if raw == "":
                # End of input: flush any open block, then leave.
                if buffer:
                    _run_interruptible(run_unit, "\n".join(buffer), stdout)
                    buffer.clear()
                print(file=stdout)
                break
            line = raw.rstrip("\r\n")

        stripped = line.strip()

        if buffer:
            if stripped == "":
                source_text = "\n".join(buffer)
                buffer.clear()
                _run_interruptible(run_unit, source_text, stdout)
                continue
            if stripped.startswith("#"):
                buffer.append(line)
                continue
            if measure_indent(line) <= header_indent and not _starts_clause(stripped):
                source_text = "\n".join(buffer)
                buffer.clear()
                _run_interruptible(run_unit, source_text, stdout)
                pending = line
                continue
            buffer.append(line)
            continue

        if stripped == "" or stripped.startswith("#"):
            continue
        if stripped in EXIT_COMMANDS:
            break
        if _opens_block(line):
            buffer.append(line)
            header_indent = measure_indent(line)
            continue
        _run_interruptible(run_unit, line, stdout)
    return 0


def _run_interruptible(run_unit: _UnitRunner, source: str, stdout: TextIO) -> None:
    try:
        run_unit(source)
    except KeyboardInterrupt:
        print("\nKeyboardInterrupt", file=stdout)


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="minipy interpreter for a subset of Python")
    parser.add_argument("program", nargs="?", help="Source file path or literal source with -c")
    parser.add_argument("-c", "--source", dest="source_mode", action="store_true", help="Treat program argument as literal source text")
    parser.add_argument("-v", "--verbose", dest="verbose", action="store_true", help="Emit env snapshots in tracebacks")
    parser.add_argument("--traceback-json", action="store_true", help="Also emit JSON traceback")
    parser.add_argument("--ext", dest="extensions", action="append", default=[], metavar="PATH", help="Load an extension module (repeatable)")
    parser.add_argument("-q", "--quiet", action="store_true", help="Do not print the REPL banner")
    parser.add_argument("--version", action="version", version=f"minipy {__version__}")
    args = parser.parse_args(argv)

    try:
        services = load_runtime_services(args.extensions) if args.extensions else build_default_services()
    except MiniPyExtensionError as error:
        print(f"{error.kind}: {error}", file=sys.stderr)
        return 1

    if args.program is None:
        if args.source_mode:
            print("-c requires a program string", file=sys.stderr)
            return 1
        return run_repl(
            verbose=args.verbose,
            traceback_json=args.traceback_json,
            services=services,
            quiet=args.quiet,
        )

    if args.source_mode:
        source_text = args.program
        filename = "<string>"
    else:
        filename = args.program
        try:
            with open(filename, "r", encoding="utf-8") as handle:
                source_text = handle.read()
        except OSError as exc:
            print(f"Failed to read {filename}: {exc}", file=sys.stderr)
            return 1

    interpreter = Interpreter(filename=filename, verbose=args.verbose, services=services)
    run_unit = _UnitRunner(interpreter, stderr=sys.stderr, verbose=args.verbose, traceback_json=args.traceback_json)
    return 0 if run_unit(source_text, interactive=False) else 1


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
