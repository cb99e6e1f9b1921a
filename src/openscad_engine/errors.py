"""Errors raised by the OpenSCAD lexer, parser and evaluator.

All errors derive from :class:`OpenSCADError` and carry the source
:class:`~openscad_engine.position.Position` where the problem was found, so
editors can point at the offending character.
"""
from __future__ import annotations
from enum import Enum
from typing import Optional

from .position import Position


class OpenSCADError(Exception):
    """Base class for all errors reported by the engine.

    Attributes:
        message: Human readable description without position information.
        position: Source position of the error, or None if unknown.
    """
    label = "Error"

    def __init__(self, message: str, position: Optional[Position] = None):
        super().__init__(message)
        self.message = message
        self.position = position

    @property
    def line(self) -> Optional[int]:
        return self.position.line if self.position else None

    @property
    def column(self) -> Optional[int]:
        return self.position.column if self.position else None

    def __str__(self) -> str:
        if self.position is None:
            return self.message
        return f"{self.message} ({self.position})"


class LexError(OpenSCADError):
    """Malformed source text: unterminated string or comment, invalid character."""
    label = "Lexical error"


class ParseError(OpenSCADError):
    """Grammar violation.

    Attributes:
        expected: Description of what the parser expected at the position.
        found: Description of the token actually found.
    """
    label = "Syntax error"

    def __init__(self, message: str, position: Optional[Position] = None,
                 expected: str = "", found: str = ""):
        super().__init__(message, position)
        self.expected = expected
        self.found = found


class EvalErrorKind(Enum):
    UNDEFINED_FUNCTION = "UndefinedFunction"
    UNDEFINED_MODULE = "UndefinedModule"
    RECURSION_LIMIT = "RecursionLimit"
    BACKEND_FAILURE = "BackendFailure"
    CANCELLED = "Cancelled"
    TYPE_MISMATCH = "TypeMismatch"
    IMPORT_ERROR = "ImportError"
    ASSERTION_FAILED = "AssertionFailed"


class EvalError(OpenSCADError):
    """Failure while evaluating a parsed program.

    Attributes:
        kind: The :class:`EvalErrorKind` of the failure.
    """
    label = "Evaluation error"

    def __init__(self, kind: EvalErrorKind, message: str,
                 position: Optional[Position] = None):
        super().__init__(message, position)
        self.kind = kind

    def __str__(self) -> str:
        return f"{self.kind.value}: {super().__str__()}"


class BackendError(Exception):
    """Raised by a geometry backend when a build operation fails."""


class ImportResolutionError(Exception):
    """Raised by an import resolver when a path cannot be resolved."""


def format_error(error: OpenSCADError, source: Optional[str] = None) -> str:
    """Render an error with the offending source line and a caret under it.

    Args:
        error: The error to render.
        source: The source text the error position refers to. When omitted,
            only the header line is produced.

    Returns:
        A multi-line string suitable for terminal output.
    """
    kind = error.kind.value if isinstance(error, EvalError) else error.label
    position = error.position
    if position is None:
        return f"{kind}: {error.message}"
    header = (f"{kind} in {position.origin} at line {position.line}, "
              f"column {position.column}: {error.message}")
    if source is None:
        return header
    lines = source.split("\n")
    if not 1 <= position.line <= len(lines):
        return header
    error_line_code = lines[position.line - 1]
    caret_pos = min(max(position.column - 1, 0), len(error_line_code))
    # Expand tabs for display so the caret lines up with the shown text.
    expanded_caret_pos = len(error_line_code[:caret_pos].expandtabs())
    return "\n".join([header, error_line_code.expandtabs(), " " * expanded_caret_pos + "^"])
