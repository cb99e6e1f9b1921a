"""Resolution of include, use and import paths to source text.

The evaluator never touches the filesystem itself. It asks an
:class:`ImportResolver` to turn a path written in the source into a canonical
identity, and to load the text behind that identity.
"""
from __future__ import annotations
import logging
import os
import platform
from abc import ABC, abstractmethod
from typing import Iterable

from .errors import ImportResolutionError

logger = logging.getLogger(__name__)

DEFAULT_EXTENSIONS = (".scad",)
DEFAULT_MAX_BYTES = 10 * 1024 * 1024


def library_search_dirs() -> list[str]:
    """Return the library directories from OPENSCADPATH, or the platform default.

    Searches, in order, the directories specified in the OPENSCADPATH
    environment variable. When it is unset, the platform-specific default
    library directory is used instead:

    - Windows: ~/Documents/OpenSCAD/libraries
    - macOS: ~/Documents/OpenSCAD/libraries
    - Linux: ~/.local/share/OpenSCAD/libraries
    """
    pathsep = ":"
    dflt_path = ""
    system = platform.system()
    if system == "Windows":  # pragma: no cover
        dflt_path = os.path.join(os.path.expanduser("~"), "Documents", "OpenSCAD", "libraries")
        pathsep = ";"
    elif system == "Darwin":  # pragma: no cover
        dflt_path = os.path.expanduser("~/Documents/OpenSCAD/libraries")
    elif system == "Linux":  # pragma: no cover
        dflt_path = os.path.expanduser("~/.local/share/OpenSCAD/libraries")

    dirs = []
    env = os.getenv("OPENSCADPATH", dflt_path)
    if env:
        for path in env.split(pathsep):
            expanded_path = os.path.expandvars(path)
            if expanded_path:
                dirs.append(expanded_path)
    return dirs


class ImportResolver(ABC):
    """Interface for turning source paths into loadable sources."""

    @abstractmethod
    def resolve(self, path: str, search_dirs: Iterable[str]) -> str:
        """Return the canonical identity of ``path``.

        Raises:
            ImportResolutionError: If the path is not allowed or not found.
        """

    @abstractmethod
    def load(self, resolved: str) -> str:
        """Return the source text of an identity returned by :meth:`resolve`."""


class FileImportResolver(ImportResolver):
    """Resolve paths against directories on the local filesystem.

    Absolute paths are rejected, as are relative paths that escape the
    directory they are resolved against. Only files with one of the allowed
    extensions and at most ``max_bytes`` in size are accepted.

    Args:
        extensions: Allowed file extensions, lower case with leading dot.
        max_bytes: Size limit for a single file.
        use_library_path: If True, OPENSCADPATH and the platform library
            directory are searched after the directories passed to resolve().
    """

    def __init__(self, extensions: Iterable[str] = DEFAULT_EXTENSIONS,
                 max_bytes: int = DEFAULT_MAX_BYTES, use_library_path: bool = True):
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.max_bytes = max_bytes
        self.use_library_path = use_library_path

    def _check_path(self, path: str) -> None:
        if not path:
            raise ImportResolutionError("empty import path")
        if os.path.isabs(path) or os.path.splitdrive(path)[0]:
            raise ImportResolutionError(f"absolute import path not allowed: '{path}'")
        ext = os.path.splitext(path)[1].lower()
        if ext not in self.extensions:
            raise ImportResolutionError(
                f"file type '{ext or path}' not allowed, expected one of {', '.join(self.extensions)}"
            )

    def _check_size(self, resolved: str) -> None:
        size = os.path.getsize(resolved)
        if size > self.max_bytes:
            raise ImportResolutionError(
                f"'{resolved}' is {size} bytes, larger than the limit of {self.max_bytes}"
            )

    def resolve(self, path: str, search_dirs: Iterable[str]) -> str:
        self._check_path(path)
        dirs = list(search_dirs)
        if self.use_library_path:
            dirs.extend(library_search_dirs())
        escaped = False
        for d in dirs:
            base = os.path.realpath(d)
            candidate = os.path.realpath(os.path.join(base, path))
            if os.path.commonpath([base, candidate]) != base:
                escaped = True
                continue
            if os.path.isfile(candidate):
                self._check_size(candidate)
                logger.debug("resolved '%s' to '%s'", path, candidate)
                return candidate
        if escaped:
            raise ImportResolutionError(f"import path escapes its search directory: '{path}'")
        raise ImportResolutionError(
            f"'{path}' not found in search paths: {', '.join(dirs) or '(none)'}"
        )

    def load(self, resolved: str) -> str:
        self._check_size(resolved)
        try:
            with open(resolved, "r", encoding="utf-8") as f:
                return f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ImportResolutionError(f"error reading '{resolved}': {e}") from e


class MemoryImportResolver(ImportResolver):
    """Resolve paths against an in-memory mapping of path to source text.

    Useful for embedding and for tests. Search directories are ignored.

    Example:
        resolver = MemoryImportResolver({"lib.scad": "module m() cube(1);"})
    """

    def __init__(self, files: dict[str, str]):
        self.files = dict(files)

    def resolve(self, path: str, search_dirs: Iterable[str]) -> str:
        key = os.path.normpath(path)
        if key.startswith("..") or os.path.isabs(key):
            raise ImportResolutionError(f"import path not allowed: '{path}'")
        if key not in self.files:
            raise ImportResolutionError(f"'{path}' not found")
        return key

    def load(self, resolved: str) -> str:
        return self.files[resolved]
