"""Top-level entry point: source text in, geometry program out."""
from __future__ import annotations
import logging
from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional, Union

from .backend import GeometryBackend, RecordingBackend
from .evaluator.context import (
    DEFAULT_MAX_RECURSION_DEPTH, CancellationToken, EvaluationContext,
)
from .evaluator.interpreter import evaluate
from .evaluator.scope import Scope
from .evaluator.values import GeometryProgram
from .lexer import tokenize
from .parser import parse
from .resolver import ImportResolver

logger = logging.getLogger(__name__)

__all__ = ["RunOptions", "CancellationToken", "run_program"]


@dataclass
class RunOptions:
    """Options for :func:`run_program`.

    Attributes:
        special_vars: Initial values for ``$`` variables, layered over the
            defaults (``$fn=0``, ``$fa=12``, ``$fs=2``, ``$t=0``, ...).
        max_recursion_depth: Maximum nesting of user function and module calls.
        cancellation_token: Lets another thread stop the run.
        import_resolver: Resolves include, use and import paths. Programs
            that import anything fail without one.
        search_dirs: Extra directories handed to the resolver.
        backend: Receives every geometry operation. A fresh
            :class:`RecordingBackend` when omitted.
        origin: Name of the source, used in positions and error messages.
    """
    special_vars: dict[str, Any] = field(default_factory=dict)
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH
    cancellation_token: Optional[CancellationToken] = None
    import_resolver: Optional[ImportResolver] = None
    search_dirs: list[str] = field(default_factory=list)
    backend: Optional[GeometryBackend] = None
    origin: str = "<string>"

    @classmethod
    def from_mapping(cls, options: Mapping[str, Any]) -> "RunOptions":
        """Build options from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ValueError(f"unknown run option(s): {', '.join(unknown)}")
        return cls(**dict(options))

    def create_context(self) -> EvaluationContext:
        context = EvaluationContext(
            backend=self.backend if self.backend is not None else RecordingBackend(),
            max_recursion_depth=self.max_recursion_depth,
            cancellation_token=self.cancellation_token,
            import_resolver=self.import_resolver,
            search_dirs=list(self.search_dirs),
        )
        for name, value in self.special_vars.items():
            if not name.startswith("$"):
                raise ValueError(f"special variable names start with '$', got {name!r}")
            context.set_special(name, value)
        return context


def run_program(source: str,
                options: Union[RunOptions, Mapping[str, Any], None] = None) -> GeometryProgram:
    """Lex, parse and evaluate an OpenSCAD program.

    Example:
        program = run_program("cube(10); echo(version());")
        program.roots       # (Geometry(handle=0),)
        program.echo_log    # ('ECHO: [2021, 1, 0]',)

    Raises:
        LexError: If the source contains an invalid token.
        ParseError: If the source is not a valid program.
        EvalError: On the first evaluation failure.
    """
    if options is None:
        options = RunOptions()
    elif not isinstance(options, RunOptions):
        options = RunOptions.from_mapping(options)

    statements = parse(tokenize(source, options.origin))
    logger.debug("parsed %d top-level statements from %s", len(statements), options.origin)
    return evaluate(statements, Scope(), options.create_context())
