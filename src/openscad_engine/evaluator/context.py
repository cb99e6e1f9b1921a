"""Per-run evaluation state: special variables, depth, cancellation, output."""
from __future__ import annotations
import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from ..backend import GeometryBackend, RecordingBackend
from ..errors import EvalError, EvalErrorKind
from ..position import Position
from ..resolver import ImportResolver
from .values import UNDEF, Geometry

logger = logging.getLogger(__name__)

DEFAULT_MAX_RECURSION_DEPTH = 100

DEFAULT_SPECIAL_VARIABLES: dict[str, Any] = {
    "$fn": 0.0,
    "$fa": 12.0,
    "$fs": 2.0,
    "$t": 0.0,
    "$preview": True,
    "$children": 0.0,
    "$vpr": [55.0, 0.0, 25.0],
    "$vpt": [0.0, 0.0, 0.0],
    "$vpd": 140.0,
    "$vpf": 22.5,
}


class CancellationToken:
    """Thread-safe cancellation flag checked by the evaluator.

    Example:
        token = CancellationToken()
        threading.Timer(5.0, token.cancel).start()
        run_program(source, {"cancellation_token": token})
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass
class EvaluationContext:
    """Mutable state shared by one evaluation run.

    Special variables live in a stack of frames. A frame is pushed for every
    user module or function call, ``let``, loop iteration and child block,
    and popped when it ends, so ``$`` assignments are visible down the call
    chain but never leak back up.

    Attributes:
        backend: Receives all geometry operations.
        max_recursion_depth: Maximum nesting of user function and module calls.
        cancellation_token: Checked at every statement and loop iteration.
        import_resolver: Resolves include, use and import paths.
        search_dirs: Extra directories handed to the resolver.
        echo_log: Lines written by echo(), in order.
        root_override: Geometry of the first ``!`` subtree, once seen.
    """
    backend: GeometryBackend = field(default_factory=RecordingBackend)
    max_recursion_depth: int = DEFAULT_MAX_RECURSION_DEPTH
    cancellation_token: Optional[CancellationToken] = None
    import_resolver: Optional[ImportResolver] = None
    search_dirs: list[str] = field(default_factory=list)
    special_frames: list[dict[str, Any]] = field(default_factory=list)
    depth: int = 0
    echo_log: list[str] = field(default_factory=list)
    root_override: Optional[list[Geometry]] = None
    include_stack: list[str] = field(default_factory=list)

    def __post_init__(self):
        if not self.special_frames:
            self.special_frames.append(dict(DEFAULT_SPECIAL_VARIABLES))

    # --- Special variables ---

    def lookup_special(self, name: str, position: Optional[Position] = None) -> Any:
        for frame in reversed(self.special_frames):
            if name in frame:
                return frame[name]
        logger.warning("unknown variable %s%s", name, f" at {position}" if position else "")
        return UNDEF

    def set_special(self, name: str, value: Any) -> None:
        self.special_frames[-1][name] = value

    @contextmanager
    def special_frame(self, initial: Optional[dict[str, Any]] = None) -> Iterator[dict[str, Any]]:
        frame = dict(initial) if initial else {}
        self.special_frames.append(frame)
        try:
            yield frame
        finally:
            self.special_frames.pop()

    # --- Guards ---

    @contextmanager
    def invocation(self, name: str, position: Optional[Position]) -> Iterator[None]:
        """Count one level of user function or module nesting."""
        self.depth += 1
        try:
            if self.depth > self.max_recursion_depth:
                raise EvalError(
                    EvalErrorKind.RECURSION_LIMIT,
                    f"recursion depth {self.max_recursion_depth} exceeded calling '{name}'",
                    position,
                )
            yield
        finally:
            self.depth -= 1

    def check_cancelled(self, position: Optional[Position] = None) -> None:
        if self.cancellation_token is not None and self.cancellation_token.cancelled:
            raise EvalError(EvalErrorKind.CANCELLED, "evaluation cancelled", position)

    # --- Output ---

    def echo(self, text: str) -> None:
        line = f"ECHO: {text}"
        self.echo_log.append(line)
        logger.info(line)
