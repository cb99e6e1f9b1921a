"""Token definitions for the OpenSCAD lexer."""
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .position import Position


class TokenKind(Enum):
    """Lexical categories produced by the lexer."""
    NUMBER = "number"
    STRING = "string"
    IDENT = "identifier"
    KEYWORD = "keyword"
    OPERATOR = "operator"
    PUNCT = "punctuation"
    EOF = "end of input"


KEYWORDS = frozenset([
    "module", "function", "if", "else", "for", "intersection_for",
    "let", "each", "assert", "echo",
    "include", "use", "import",
    "true", "false", "undef",
])

# Keywords whose `<path>` argument is lexed as a single STRING token.
PATH_KEYWORDS = frozenset(["include", "use", "import"])

TWO_CHAR_OPERATORS = frozenset(["==", "!=", "<=", ">=", "&&", "||"])
ONE_CHAR_OPERATORS = frozenset("<>+-*/%^!?:=#")
PUNCTUATION = frozenset("()[]{},;.")


# --- Character classes ---
#
# Every ASCII character maps to one class, so the lexer can dispatch on the
# first character of a token with a single table lookup.

CC_INVALID = 0
CC_SPACE = 1
CC_NEWLINE = 2
CC_DIGIT = 3
CC_IDENT_START = 4
CC_QUOTE = 5
CC_OPERATOR = 6
CC_PUNCT = 7
CC_SLASH = 8
CC_DOT = 9


def _build_char_classes() -> list[int]:
    table = [CC_INVALID] * 128
    for ch in " \t\r\f\v":
        table[ord(ch)] = CC_SPACE
    table[ord("\n")] = CC_NEWLINE
    for ch in "0123456789":
        table[ord(ch)] = CC_DIGIT
    for code in range(ord("a"), ord("z") + 1):
        table[code] = CC_IDENT_START
    for code in range(ord("A"), ord("Z") + 1):
        table[code] = CC_IDENT_START
    table[ord("_")] = CC_IDENT_START
    table[ord("$")] = CC_IDENT_START
    table[ord('"')] = CC_QUOTE
    table[ord("'")] = CC_QUOTE
    for ch in ONE_CHAR_OPERATORS | set("&|"):
        table[ord(ch)] = CC_OPERATOR
    for ch in PUNCTUATION:
        table[ord(ch)] = CC_PUNCT
    table[ord("/")] = CC_SLASH
    table[ord(".")] = CC_DOT
    return table


CHAR_CLASSES = _build_char_classes()

IDENT_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789_"
)


def char_class(ch: str) -> int:
    """Return the character class of a single character."""
    code = ord(ch)
    if code < 128:
        return CHAR_CLASSES[code]
    return CC_INVALID


@dataclass(frozen=True)
class Token:
    """A single lexical token.

    Attributes:
        kind: The token category.
        lexeme: The exact source text of the token.
        line: Line of the first character (1-indexed).
        column: Column of the first character (1-indexed).
        value: Decoded literal value (float for numbers, unescaped text for
            strings), otherwise the lexeme.
        origin: The source origin the token was read from.
    """
    kind: TokenKind
    lexeme: str
    line: int
    column: int
    value: Any = None
    origin: str = "<string>"

    @property
    def position(self) -> Position:
        return Position(origin=self.origin, line=self.line, column=self.column)

    def is_op(self, *lexemes: str) -> bool:
        return self.kind is TokenKind.OPERATOR and self.lexeme in lexemes

    def is_punct(self, *lexemes: str) -> bool:
        return self.kind is TokenKind.PUNCT and self.lexeme in lexemes

    def is_keyword(self, *names: str) -> bool:
        return self.kind is TokenKind.KEYWORD and self.lexeme in names

    def describe(self) -> str:
        """Human readable description used in parse error messages."""
        if self.kind is TokenKind.EOF:
            return "end of input"
        return f"{self.kind.value} '{self.lexeme}'"

    def __repr__(self) -> str:
        return f"Token({self.kind.name}, {self.lexeme!r}, {self.line}:{self.column})"
