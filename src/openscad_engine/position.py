"""Source positions shared by tokens, AST nodes and errors."""
from __future__ import annotations
from dataclasses import dataclass


@dataclass(frozen=True)
class Position:
    """A location in an OpenSCAD source origin.

    Attributes:
        origin: Identifier for the source origin (file path, "<string>", etc.)
        line: Line number (1-indexed).
        column: Column number (1-indexed).
    """
    origin: str
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.origin}:{self.line}:{self.column}"


UNKNOWN_POSITION = Position(origin="<unknown>", line=0, column=0)
