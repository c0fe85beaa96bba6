from __future__ import annotations
from dataclasses import dataclass
from typing import List, Optional


class MiniPyError(Exception):
    """Base class for interpreter errors."""

    kind = "Error"


class MiniPySyntaxError(MiniPyError):
    """Raised when source text cannot be turned into a program."""

    kind = "SyntaxError"

    def __init__(
        self,
        message: str,
        *,
        filename: str = "<stdin>",
        line: int = 0,
        column: int = 0,
        text: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.filename = filename
        self.line = line
        self.column = column
        self.text = text


class LexError(MiniPySyntaxError):
    """Raised for an invalid character or an unterminated string literal."""


class ParseError(MiniPySyntaxError):
    """Raised when parsing fails."""

    def __init__(self, message: str, *, expected: Optional[str] = None, found: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.expected = expected
        self.found = found


@dataclass
class Token:
    type: str
    value: str
    line: int
    column: int
    # Leading-whitespace width of the physical line holding the token.
    indent: int = 0


KEYWORDS = {
    "if",
    "elif",
    "else",
    "while",
    "break",
    "continue",
    "True",
    "False",
    "None",
}

# Longest match first: two-character operators are tried before these.
DOUBLE_SYMBOLS = {
    "**": "DOUBLESTAR",
    "//": "DOUBLESLASH",
    "<=": "LE",
    ">=": "GE",
    "==": "EQEQ",
    "!=": "NOTEQ",
}

SYMBOLS = {
    "+": "PLUS",
    "-": "MINUS",
    "*": "STAR",
    "/": "SLASH",
    "%": "PERCENT",
    "<": "LT",
    ">": "GT",
    "=": "EQUALS",
    "(": "LPAREN",
    ")": "RPAREN",
    ":": "COLON",
}

ESCAPES = {
    "\\": "\\",
    "'": "'",
    '"': '"',
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "0": "\0",
}

TAB_SIZE = 8


def measure_indent(line: str) -> int:
    """Width of the leading whitespace of ``line``; tabs advance to the next multiple of 8."""
    width = 0
    for ch in line:
        if ch == " " or ch == "\f":
            width += 1
        elif ch == "\t":
            width = (width // TAB_SIZE + 1) * TAB_SIZE
        else:
            break
    return width


def _is_digit(ch: str) -> bool:
    # ASCII only: str.isdigit() also accepts superscripts and other scripts' digits.
    return len(ch) == 1 and "0" <= ch <= "9"


class Lexer:
    def __init__(self, text: str, filename: str = "<stdin>") -> None:
        self.text = text
        self.filename = filename
        self.source_lines = text.splitlines()
        self.index = 0
        self.line = 1
        self.column = 1
        self.indent = 0

    def tokenize(self) -> List[Token]:
        tokens: List[Token] = []
        tokens_append = tokens.append
        _advance = self._advance
        text = self.text
        n = len(text)

        while self.index < n:
            if self.column == 1:
                self._consume_indentation()
                if self._eof:
                    break
                ch = text[self.index]
                # Blank and comment-only lines carry no structure.
                if ch == "#":
                    self._consume_comment()
                    ch = text[self.index] if not self._eof else ""
                if ch == "\r":
                    _advance()
                    ch = text[self.index] if not self._eof else ""
                if ch == "\n" or ch == "":
                    if ch == "\n":
                        _advance()
                    continue
            ch = text[self.index]
            if ch == " " or ch == "\t" or ch == "\f" or ch == "\r":
                _advance()
                continue
            if ch == "\n":
                tokens_append(self._make("NEWLINE", "\n"))
                _advance()
                continue
            if ch == "#":
                self._consume_comment()
                continue
            if _is_digit(ch) or (ch == "." and _is_digit(self._peek_at(1))):
                tokens_append(self._consume_number())
                continue
            if ch in ('"', "'"):
                tokens_append(self._consume_string())
                continue
            if ch.isalpha() or ch == "_":
                tokens_append(self._consume_identifier())
                continue
            pair = text[self.index:self.index + 2]
            if pair in DOUBLE_SYMBOLS:
                tokens_append(self._make(DOUBLE_SYMBOLS[pair], pair))
                _advance()
                _advance()
                continue
            if ch in SYMBOLS:
                tokens_append(self._make(SYMBOLS[ch], ch))
                _advance()
                continue
            raise self._error(f"invalid character '{ch}' (U+{ord(ch):04X})")
        if tokens and tokens[-1].type != "NEWLINE":
            tokens_append(self._make("NEWLINE", ""))
        tokens_append(Token("EOF", "", self.line, self.column, 0))
        return tokens

    def _consume_indentation(self) -> None:
        start = self.index
        text = self.text
        n = len(text)
        while self.index < n and text[self.index] in " \t\f":
            self._advance()
        self.indent = measure_indent(text[start:self.index])

    def _consume_comment(self) -> None:
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n and text[self.index] != "\n":
            _advance()

    def _consume_number(self) -> Token:
        line, col = self.line, self.column
        is_float = False
        chars: List[str] = [self._consume_digits()]
        if not self._eof and self._peek() == ".":
            is_float = True
            self._advance()
            chars.append(".")
            if not self._eof and _is_digit(self._peek()):
                chars.append(self._consume_digits())
        if not self._eof and self._peek() in "eE":
            # Only an exponent when digits follow, optionally after a sign.
            offset = 2 if self._peek_at(1) in ("+", "-") else 1
            if _is_digit(self._peek_at(offset)):
                is_float = True
                chars.append("e")
                self._advance()
                if offset == 2:
                    chars.append(self._peek())
                    self._advance()
                chars.append(self._consume_digits())
        if not self._eof and (self._peek().isalnum() or self._peek() == "_"):
            raise self._error("invalid decimal literal")
        value = "".join(chars)
        if not is_float:
            if len(value) > 1 and value[0] == "0" and value.strip("0") != "":
                raise LexError(
                    "leading zeros in decimal integer literals are not permitted",
                    filename=self.filename,
                    line=line,
                    column=col,
                    text=self._source_line(line),
                )
            return Token("INT", value, line, col, self.indent)
        return Token("FLOAT", value, line, col, self.indent)

    def _consume_digits(self) -> str:
        digits: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n:
            ch = text[self.index]
            if _is_digit(ch):
                digits.append(ch)
                _advance()
                continue
            if ch == "_" and digits:
                if not _is_digit(self._peek_at(1)):
                    raise self._error("invalid decimal literal")
                _advance()
                continue
            break
        return "".join(digits)

    def _consume_string(self) -> Token:
        line, col = self.line, self.column
        opening = self._peek()
        self._advance()  # consume opening quote
        chars: List[str] = []
        while not self._eof:
            ch = self._peek()
            if ch == opening:
                self._advance()
                return Token("STRING", "".join(chars), line, col, self.indent)
            if ch == "\n":
                break
            if ch == "\\" and self.index + 1 < len(self.text) and self._peek_at(1) != "\n":
                escaped = self._peek_at(1)
                # Unknown escapes keep their backslash.
                chars.append(ESCAPES.get(escaped, "\\" + escaped))
                self._advance()
                self._advance()
                continue
            chars.append(ch)
            self._advance()
        raise LexError(
            "unterminated string literal",
            filename=self.filename,
            line=line,
            column=col,
            text=self._source_line(line),
        )

    def _consume_identifier(self) -> Token:
        line, col = self.line, self.column
        chars: List[str] = []
        text = self.text
        n = len(text)
        _advance = self._advance
        while self.index < n:
            ch = text[self.index]
            if ch.isalpha() or _is_digit(ch) or ch == "_":
                chars.append(ch)
                _advance()
                continue
            break
        value = "".join(chars)
        token_type: str = value if value in KEYWORDS else "IDENT"
        return Token(token_type, value, line, col, self.indent)

    def _make(self, token_type: str, value: str) -> Token:
        return Token(token_type, value, self.line, self.column, self.indent)

    def _error(self, message: str) -> LexError:
        return LexError(
            message,
            filename=self.filename,
            line=self.line,
            column=self.column,
            text=self._source_line(self.line),
        )

    def _source_line(self, line: int) -> Optional[str]:
        if 0 < line <= len(self.source_lines):
            return self.source_lines[line - 1]
        return None

    @property
    def _eof(self) -> bool:
        return self.index >= len(self.text)

    def _peek(self) -> str:
        return self.text[self.index]

    def _peek_at(self, offset: int) -> str:
        pos = self.index + offset
        if pos < len(self.text):
            return self.text[pos]
        return ""

    def _advance(self) -> None:
        if self.text[self.index] == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        self.index += 1
