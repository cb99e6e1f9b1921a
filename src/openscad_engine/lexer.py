"""Lexer for OpenSCAD source text.

Converts source text into a list of :class:`~openscad_engine.tokens.Token`
objects terminated by an EOF token. Supports:

- Integer, decimal, scientific and hexadecimal number literals
- Double and single quoted strings with escape sequences
- Identifiers, including ``$``-prefixed special variables
- ``//`` line comments and ``/* */`` block comments
- ``<path>`` arguments of include, use and import
"""
from __future__ import annotations
from typing import Optional

from .errors import LexError
from .position import Position
from .tokens import (
    Token, TokenKind, KEYWORDS, PATH_KEYWORDS, TWO_CHAR_OPERATORS,
    IDENT_CHARS, char_class,
    CC_SPACE, CC_NEWLINE, CC_DIGIT, CC_IDENT_START, CC_QUOTE,
    CC_OPERATOR, CC_PUNCT, CC_SLASH, CC_DOT,
)

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")
_DECIMAL_DIGITS = frozenset("0123456789")

_SIMPLE_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "\\": "\\",
    '"': '"',
    "'": "'",
}


class Lexer:
    """Tokenizer for OpenSCAD source.

    Usage:
        tokens = Lexer(source, origin="main.scad").tokenize()
    """

    def __init__(self, source: str, origin: str = "<string>"):
        self.source = source
        self.origin = origin
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: list[Token] = []

    def _peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        if idx >= len(self.source):
            return "\0"
        return self.source[idx]

    def _advance(self) -> str:
        ch = self.source[self.pos]
        self.pos += 1
        if ch == "\n":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _is_at_end(self) -> bool:
        return self.pos >= len(self.source)

    def _position(self, line: Optional[int] = None, column: Optional[int] = None) -> Position:
        return Position(
            origin=self.origin,
            line=self.line if line is None else line,
            column=self.column if column is None else column,
        )

    def _error(self, message: str, line: Optional[int] = None,
               column: Optional[int] = None) -> LexError:
        return LexError(message, self._position(line, column))

    def _emit(self, kind: TokenKind, start: int, line: int, column: int, value=None) -> None:
        lexeme = self.source[start:self.pos]
        self.tokens.append(Token(
            kind=kind, lexeme=lexeme, line=line, column=column,
            value=lexeme if value is None else value, origin=self.origin,
        ))

    def tokenize(self) -> list[Token]:
        """Scan the whole source and return its tokens.

        Raises:
            LexError: On an unterminated string or comment, or an invalid
                character.
        """
        while not self._is_at_end():
            ch = self._peek()
            cls = char_class(ch)
            if cls == CC_SPACE or cls == CC_NEWLINE:
                self._advance()
            elif cls == CC_SLASH:
                self._scan_slash()
            elif cls == CC_DIGIT:
                self._scan_number()
            elif cls == CC_DOT:
                if self._peek(1) in _DECIMAL_DIGITS:
                    self._scan_number()
                else:
                    self._scan_single(TokenKind.PUNCT)
            elif cls == CC_IDENT_START:
                self._scan_identifier()
            elif cls == CC_QUOTE:
                self._scan_string()
            elif cls == CC_OPERATOR:
                self._scan_operator()
            elif cls == CC_PUNCT:
                self._scan_single(TokenKind.PUNCT)
            else:
                raise self._error(f"invalid character {ch!r}")
        self.tokens.append(Token(
            kind=TokenKind.EOF, lexeme="", line=self.line, column=self.column,
            value=None, origin=self.origin,
        ))
        return self.tokens

    def _scan_single(self, kind: TokenKind) -> None:
        start, line, column = self.pos, self.line, self.column
        self._advance()
        self._emit(kind, start, line, column)

    def _scan_slash(self) -> None:
        nxt = self._peek(1)
        if nxt == "/":
            while not self._is_at_end() and self._peek() != "\n":
                self._advance()
        elif nxt == "*":
            line, column = self.line, self.column
            self._advance()
            self._advance()
            while True:
                if self._is_at_end():
                    raise self._error("unterminated comment", line, column)
                if self._peek() == "*" and self._peek(1) == "/":
                    self._advance()
                    self._advance()
                    return
                self._advance()
        else:
            self._scan_single(TokenKind.OPERATOR)

    def _scan_number(self) -> None:
        start, line, column = self.pos, self.line, self.column
        if self._peek() == "0" and self._peek(1) in "xX" and self._peek(2) in _HEX_DIGITS:
            self._advance()
            self._advance()
            while self._peek() in _HEX_DIGITS:
                self._advance()
            text = self.source[start:self.pos]
            self._emit(TokenKind.NUMBER, start, line, column, float(int(text, 16)))
            return

        while self._peek() in _DECIMAL_DIGITS:
            self._advance()
        if self._peek() == ".":
            self._advance()
            while self._peek() in _DECIMAL_DIGITS:
                self._advance()
        if self._peek() in "eE":
            sign = 1 if self._peek(1) in "+-" else 0
            if self._peek(1 + sign) in _DECIMAL_DIGITS:
                self._advance()
                if sign:
                    self._advance()
                while self._peek() in _DECIMAL_DIGITS:
                    self._advance()
        text = self.source[start:self.pos]
        self._emit(TokenKind.NUMBER, start, line, column, float(text))

    def _scan_identifier(self) -> None:
        start, line, column = self.pos, self.line, self.column
        self._advance()
        while self._peek() in IDENT_CHARS:
            self._advance()
        word = self.source[start:self.pos]
        if word in KEYWORDS:
            self._emit(TokenKind.KEYWORD, start, line, column)
            if word in PATH_KEYWORDS:
                self._scan_path()
        else:
            self._emit(TokenKind.IDENT, start, line, column)

    def _scan_path(self) -> None:
        """Lex the ``<path>`` following include/use/import as one STRING token."""
        offset = 0
        while char_class(self._peek(offset)) in (CC_SPACE, CC_NEWLINE):
            offset += 1
        if self._peek(offset) != "<":
            return
        for _ in range(offset):
            self._advance()
        start, line, column = self.pos, self.line, self.column
        self._advance()
        chars = []
        while True:
            if self._is_at_end() or self._peek() == "\n":
                raise self._error("unterminated import path", line, column)
            ch = self._advance()
            if ch == ">":
                break
            chars.append(ch)
        self._emit(TokenKind.STRING, start, line, column, "".join(chars).strip())

    def _scan_string(self) -> None:
        start, line, column = self.pos, self.line, self.column
        quote = self._advance()
        chars = []
        while True:
            if self._is_at_end():
                raise self._error("unterminated string", line, column)
            ch = self._advance()
            if ch == quote:
                break
            if ch == "\\":
                if self._is_at_end():
                    raise self._error("unterminated string", line, column)
                chars.append(self._scan_escape())
            else:
                chars.append(ch)
        self._emit(TokenKind.STRING, start, line, column, "".join(chars))

    def _scan_escape(self) -> str:
        esc = self._advance()
        if esc in _SIMPLE_ESCAPES:
            return _SIMPLE_ESCAPES[esc]
        width = {"x": 2, "u": 4, "U": 6}.get(esc)
        if width is not None:
            digits = []
            while len(digits) < width and self._peek() in _HEX_DIGITS:
                digits.append(self._advance())
            if digits:
                code = int("".join(digits), 16)
                if code <= 0x10FFFF:
                    return chr(code)
        # Unknown escapes keep the escaped character.
        return esc

    def _scan_operator(self) -> None:
        start, line, column = self.pos, self.line, self.column
        pair = self._peek() + self._peek(1)
        if pair in TWO_CHAR_OPERATORS:
            self._advance()
            self._advance()
        elif self._peek() in "&|":
            raise self._error(f"invalid character {self._peek()!r}")
        else:
            self._advance()
        self._emit(TokenKind.OPERATOR, start, line, column)


def tokenize(source: str, origin: str = "<string>") -> list[Token]:
    """Convert OpenSCAD source text into tokens.

    Args:
        source: The OpenSCAD source code.
        origin: Name of the source used in token positions (default: "<string>").

    Returns:
        The list of tokens, always terminated by an EOF token.

    Raises:
        LexError: If the text is malformed.
    """
    return Lexer(source, origin).tokenize()
