from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional

from lexer import ParseError, Token
from values import FALSE, NONE, TRUE, TYPE_FLT, TYPE_INT, TYPE_STR, Value


@dataclass
class SourceLocation:
    file: str
    line: int
    column: int
    statement: str


@dataclass
class Node:
    location: SourceLocation


@dataclass
class Program(Node):
    statements: List["Statement"]


class Statement(Node):
    pass


@dataclass
class Block(Node):
    statements: List[Statement]


@dataclass
class Assign(Statement):
    name: str
    expression: "Expression"


@dataclass
class ExpressionStatement(Statement):
    expression: "Expression"


@dataclass
class IfBranch:
    condition: "Expression"
    block: Block


@dataclass
class If(Statement):
    branches: List[IfBranch]
    else_block: Optional[Block]


@dataclass
class While(Statement):
    condition: "Expression"
    block: Block
    else_block: Optional[Block]


@dataclass
class Break(Statement):
    pass


@dataclass
class Continue(Statement):
    pass


class Expression(Node):
    pass


@dataclass
class Literal(Expression):
    value: Value


@dataclass
class Identifier(Expression):
    name: str


@dataclass
class BinaryOp(Expression):
    op: str
    left: Expression
    right: Expression


@dataclass
class UnaryOp(Expression):
    op: str
    operand: Expression


@dataclass
class CompareChain(Expression):
    operands: List[Expression]
    ops: List[str]


ADDITIVE_TOKENS = {"PLUS", "MINUS"}
MULTIPLICATIVE_TOKENS = {"STAR", "SLASH", "DOUBLESLASH", "PERCENT"}
UNARY_TOKENS = {"PLUS", "MINUS"}
COMPARISON_TOKENS = {"LT", "LE", "GT", "GE", "EQEQ", "NOTEQ"}


class Parser:
    """Precedence-climbing parser over one unit of source.

    Indentation is carried on each token, so blocks are parsed by passing the
    indentation of the enclosing header down explicitly instead of relying on
    INDENT/DEDENT tokens.
    """

    def __init__(
        self,
        tokens: List[Token],
        filename: str = "<stdin>",
        source_lines: Optional[List[str]] = None,
    ):
        self.tokens = tokens
        self.filename = filename
        self.source_lines = source_lines or []
        self.index = 0

    def parse(self) -> Program:
        statements: List[Statement] = self._parse_statements(indent=0)
        eof_token: Token = self._consume("EOF")
        return Program(location=self._location_from_token(eof_token), statements=statements)

    def _parse_statements(self, indent: int) -> List[Statement]:
        statements: List[Statement] = []
        while self._peek().type != "EOF":
            token = self._peek()
            if token.indent < indent:
                break
            if token.indent > indent:
                raise self._error("unexpected indent", token)
            statements.append(self._parse_statement(indent))
        return statements

    def _parse_statement(self, indent: int) -> Statement:
        token = self._peek()
        if token.type == "if":
            return self._parse_if(indent)
        if token.type == "while":
            return self._parse_while(indent)
        if token.type in ("elif", "else"):
            raise self._error("invalid syntax", token, found=token.value)
        statement = self._parse_simple_statement()
        self._consume_line_end()
        return statement

    def _parse_simple_statement(self) -> Statement:
        token = self._peek()
        if token.type == "break":
            self._consume("break")
            return Break(location=self._location_from_token(token))
        if token.type == "continue":
            self._consume("continue")
            return Continue(location=self._location_from_token(token))
        if token.type == "IDENT" and self._peek_next().type == "EQUALS":
            return self._parse_assignment()
        expr: Expression = self._parse_expression()
        if self._peek().type == "EQUALS":
            raise self._error("cannot assign to expression", self._peek())
        return ExpressionStatement(location=expr.location, expression=expr)

    def _parse_assignment(self) -> Assign:
        ident = self._consume("IDENT")
        self._consume("EQUALS")
        expr = self._parse_expression()
        if self._peek().type == "EQUALS":
            raise self._error("chained assignment is not supported", self._peek())
        return Assign(location=self._location_from_token(ident), name=ident.value, expression=expr)

    def _parse_if(self, indent: int) -> If:
        keyword = self._consume("if")
        condition: Expression = self._parse_expression()
        self._consume_colon("if")
        branches: List[IfBranch] = [IfBranch(condition=condition, block=self._parse_block(indent, keyword))]
        while self._at_clause("elif", indent):
            clause = self._consume("elif")
            cond: Expression = self._parse_expression()
            self._consume_colon("elif")
            branches.append(IfBranch(condition=cond, block=self._parse_block(indent, clause)))
        else_block: Optional[Block] = None
        if self._at_clause("else", indent):
            clause = self._consume("else")
            self._consume_colon("else")
            else_block = self._parse_block(indent, clause)
        return If(location=self._location_from_token(keyword), branches=branches, else_block=else_block)

    def _parse_while(self, indent: int) -> While:
        keyword = self._consume("while")
        condition: Expression = self._parse_expression()
        self._consume_colon("while")
        block: Block = self._parse_block(indent, keyword)
        else_block: Optional[Block] = None
        if self._at_clause("else", indent):
            clause = self._consume("else")
            self._consume_colon("else")
            else_block = self._parse_block(indent, clause)
        return While(location=self._location_from_token(keyword), condition=condition, block=block, else_block=else_block)

    def _parse_block(self, header_indent: int, header: Token) -> Block:
        start = self._peek()
        if start.type != "NEWLINE":
            # Suite on the header line: ``if x: y = 1``
            statement = self._parse_simple_statement()
            self._consume_line_end()
            return Block(location=self._location_from_token(start), statements=[statement])
        self._consume("NEWLINE")
        first = self._peek()
        if first.type == "EOF" or first.indent <= header_indent:
            raise self._error(
                f"expected an indented block after '{header.value}' statement on line {header.line}",
                first,
                expected="indented block",
            )
        statements: List[Statement] = self._parse_statements(first.indent)
        after = self._peek()
        if after.type != "EOF" and after.indent > header_indent:
            raise self._error("unindent does not match any outer indentation level", after)
        return Block(location=self._location_from_token(first), statements=statements)

    def _parse_expression(self) -> Expression:
        return self._parse_comparison()

    def _parse_comparison(self) -> Expression:
        first = self._parse_additive()
        if self._peek().type not in COMPARISON_TOKENS:
            return first
        operands: List[Expression] = [first]
        ops: List[str] = []
        while self._peek().type in COMPARISON_TOKENS:
            ops.append(self._advance().value)
            operands.append(self._parse_additive())
        return CompareChain(location=first.location, operands=operands, ops=ops)

    def _parse_additive(self) -> Expression:
        left = self._parse_term()
        while self._peek().type in ADDITIVE_TOKENS:
            op = self._advance()
            right = self._parse_term()
            left = BinaryOp(location=self._location_from_token(op), op=op.value, left=left, right=right)
        return left

    def _parse_term(self) -> Expression:
        left = self._parse_unary()
        while self._peek().type in MULTIPLICATIVE_TOKENS:
            op = self._advance()
            right = self._parse_unary()
            left = BinaryOp(location=self._location_from_token(op), op=op.value, left=left, right=right)
        return left

    def _parse_unary(self) -> Expression:
        # The operand of a sign is a power expression, so ``-2 ** 2`` is ``-(2 ** 2)``.
        if self._peek().type in UNARY_TOKENS:
            op = self._advance()
            operand = self._parse_unary()
            return UnaryOp(location=self._location_from_token(op), op=op.value, operand=operand)
        return self._parse_power()

    def _parse_power(self) -> Expression:
        base = self._parse_atom()
        if self._peek().type == "DOUBLESTAR":
            op = self._advance()
            # Right operand may carry its own sign: ``2 ** -2``; recursion makes ``**`` right-associative.
            exponent = self._parse_unary()
            return BinaryOp(location=self._location_from_token(op), op="**", left=base, right=exponent)
        return base

    def _parse_atom(self) -> Expression:
        token = self._peek()
        location = self._location_from_token(token)
        if token.type in ("INT", "FLOAT"):
            self._advance()
            try:
                if token.type == "INT":
                    value = Value(TYPE_INT, int(token.value))
                else:
                    value = Value(TYPE_FLT, float(token.value))
            except ValueError as exc:
                # int() refuses literals past sys.get_int_max_str_digits().
                raise self._error(str(exc), token) from exc
            return Literal(location=location, value=value)
        if token.type == "STRING":
            self._advance()
            return Literal(location=location, value=Value(TYPE_STR, token.value))
        if token.type == "True":
            self._advance()
            return Literal(location=location, value=TRUE)
        if token.type == "False":
            self._advance()
            return Literal(location=location, value=FALSE)
        if token.type == "None":
            self._advance()
            return Literal(location=location, value=NONE)
        if token.type == "IDENT":
            self._advance()
            return Identifier(location=location, name=token.value)
        if token.type == "LPAREN":
            self._advance()
            expr: Expression = self._parse_expression()
            if self._peek().type != "RPAREN":
                if self._peek().type in ("NEWLINE", "EOF"):
                    raise self._error("'(' was never closed", token, expected="')'", found=self._describe(self._peek()))
                raise self._error("invalid syntax", self._peek(), expected="')'", found=self._describe(self._peek()))
            self._advance()
            return expr
        if token.type == "RPAREN":
            raise self._error("unmatched ')'", token, found="')'")
        raise self._error("invalid syntax", token, expected="expression", found=self._describe(token))

    def _at_clause(self, keyword: str, indent: int) -> bool:
        token = self._peek()
        return token.type == keyword and token.indent == indent

    def _consume_colon(self, header: str) -> Token:
        token = self._peek()
        if token.type != "COLON":
            raise self._error(f"expected ':' after '{header}'", token, expected="':'", found=self._describe(token))
        return self._advance()

    def _consume_line_end(self) -> None:
        token = self._peek()
        if token.type == "NEWLINE":
            self.index += 1
            return
        if token.type == "EOF":
            return
        if token.type == "RPAREN":
            raise self._error("unmatched ')'", token, found="')'")
        raise self._error("invalid syntax", token, expected="end of line", found=self._describe(token))

    def _consume(self, token_type: str) -> Token:
        token = self._peek()
        if token.type != token_type:
            raise self._error(
                f"Expected token {token_type} but found {token.type}",
                token,
                expected=token_type,
                found=self._describe(token),
            )
        self.index += 1
        return token

    def _advance(self) -> Token:
        token = self._peek()
        self.index += 1
        return token

    def _peek(self) -> Token:
        return self.tokens[self.index]

    def _peek_next(self) -> Token:
        if self.index + 1 < len(self.tokens):
            return self.tokens[self.index + 1]
        return self.tokens[-1]

    def _describe(self, token: Token) -> str:
        if token.type == "NEWLINE":
            return "end of line"
        if token.type == "EOF":
            return "end of input"
        if token.type == "STRING":
            return repr(token.value)
        return f"'{token.value}'"

    def _error(self, message: str, token: Token, *, expected: Optional[str] = None, found: Optional[str] = None) -> ParseError:
        return ParseError(
            message,
            expected=expected,
            found=found,
            filename=self.filename,
            line=token.line,
            column=token.column,
            text=self._source_line(token.line),
        )

    def _source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    def _location_from_token(self, token: Token) -> SourceLocation:
        line_index = token.line - 1
        statement = ""
        if 0 <= line_index < len(self.source_lines):
            statement = self.source_lines[line_index].strip()
        return SourceLocation(file=self.filename, line=token.line, column=token.column, statement=statement)
