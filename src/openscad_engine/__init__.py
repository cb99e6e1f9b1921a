"""Interpreter for the OpenSCAD language.

Source text is tokenized by :mod:`openscad_engine.lexer`, parsed into the
dataclass AST of :mod:`openscad_engine.ast`, and evaluated into a
:class:`GeometryProgram` whose shapes are built by a pluggable
:class:`GeometryBackend`.

Example:
    from openscad_engine import run_program, RecordingBackend

    backend = RecordingBackend()
    program = run_program("translate([1, 0, 0]) cube(2);", {"backend": backend})
    backend.methods()   # ['create_primitive', 'transform']
"""

from .position import Position
from .errors import (
    OpenSCADError,
    LexError,
    ParseError,
    EvalError,
    EvalErrorKind,
    BackendError,
    ImportResolutionError,
    format_error,
)
from .lexer import tokenize
from .parser import parse
from .backend import GeometryBackend, RecordingBackend
from .resolver import ImportResolver, FileImportResolver, MemoryImportResolver
from .evaluator import (
    UNDEF,
    Geometry,
    GeometryProgram,
    Scope,
    EvaluationContext,
    evaluate,
)
from .program import RunOptions, CancellationToken, run_program

__version__ = "0.1.0"
