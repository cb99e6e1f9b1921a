"""Tests for include, use and import statements and the import resolvers."""
import os
import pytest
from openscad_engine import FileImportResolver, MemoryImportResolver
from openscad_engine.errors import (
    EvalError, EvalErrorKind, ImportResolutionError, ParseError,
)

LIBRARY = """
x = 5;
$fn = 50;
function f() = x;
function g() = $fn;
module m() cube(1);
sphere(9);
"""


def primitive_kinds(backend):
    return [args[0] for method, args in backend.calls if method == "create_primitive"]


@pytest.fixture
def run_with(run):
    """Run a program with an in-memory set of library files."""
    def _run(source, files, **options):
        return run(source, import_resolver=MemoryImportResolver(files), **options)
    return _run


class TestInclude:
    """Test include <...>."""

    def test_include_runs_in_place(self, run_with, backend):
        program = run_with("include <lib.scad>\necho(x, f(), $fn);", {"lib.scad": LIBRARY})
        assert program.echo_log == ("ECHO: 5, 5, 50",)
        assert primitive_kinds(backend) == ["sphere"]
        assert len(program.roots) == 1

    def test_included_modules_are_callable(self, run_with, backend):
        run_with("include <lib.scad>\nm();", {"lib.scad": LIBRARY})
        assert primitive_kinds(backend) == ["sphere", "cube"]

    def test_nested_include(self, run_with):
        files = {"a.scad": "include <b.scad>\na = b + 1;", "b.scad": "b = 1;"}
        program = run_with("include <a.scad>\necho(a, b);", files)
        assert program.echo_log == ("ECHO: 2, 1",)

    def test_include_cycle(self, run_with):
        files = {"a.scad": "include <b.scad>", "b.scad": "include <a.scad>"}
        with pytest.raises(EvalError) as exc_info:
            run_with("include <a.scad>", files)
        assert exc_info.value.kind is EvalErrorKind.IMPORT_ERROR
        assert "circular include" in exc_info.value.message

    def test_same_file_included_twice(self, run_with):
        program = run_with("include <b.scad>\ninclude <b.scad>\necho(b);", {"b.scad": "b = 1;"})
        assert program.echo_log == ("ECHO: 1",)

    def test_included_file_positions(self, run_with):
        with pytest.raises(EvalError) as exc_info:
            run_with("include <bad.scad>", {"bad.scad": "x = 1;\nnope();"})
        assert exc_info.value.position.origin == "bad.scad"
        assert exc_info.value.line == 2

    def test_included_syntax_error(self, run_with):
        with pytest.raises(ParseError):
            run_with("include <bad.scad>", {"bad.scad": "module {"})


class TestUse:
    """Test use <...>."""

    def test_use_imports_functions_and_modules(self, run_with, backend):
        program = run_with("use <lib.scad>\necho(f());\nm();", {"lib.scad": LIBRARY})
        assert program.echo_log == ("ECHO: 5",)
        assert primitive_kinds(backend) == ["cube"]

    def test_use_does_not_import_variables(self, run_with, caplog):
        program = run_with("use <lib.scad>\necho(x);", {"lib.scad": LIBRARY})
        assert program.echo_log == ("ECHO: undef",)
        assert "unknown variable x" in caplog.text

    def test_use_does_not_leak_special_variables(self, run_with):
        program = run_with("use <lib.scad>\necho($fn, g());", {"lib.scad": LIBRARY})
        assert program.echo_log == ("ECHO: 0, 0",)

    def test_use_skips_library_geometry_and_echo(self, run_with, backend):
        files = {"lib.scad": 'echo("loading");\ncube(1);\nfunction h() = 1;'}
        program = run_with("use <lib.scad>\necho(h());", files)
        assert program.echo_log == ("ECHO: 1",)
        assert backend.calls == []

    def test_use_chain(self, run_with):
        files = {
            "outer.scad": "use <inner.scad>\nfunction twice(v) = 2 * base(v);",
            "inner.scad": "function base(v) = v + 1;",
        }
        program = run_with("use <outer.scad>\necho(twice(1));", files)
        assert program.echo_log == ("ECHO: 4",)


class TestImportStatement:
    """Test import <...>, which brings in variables as well."""

    def test_import_copies_variables(self, run_with, backend):
        program = run_with("import <lib.scad>\necho(x, f());\nm();", {"lib.scad": LIBRARY})
        assert program.echo_log == ("ECHO: 5, 5",)
        assert primitive_kinds(backend) == ["cube"]

    def test_import_module_still_available(self, run_with, backend):
        run_with('import("part.stl");', {})
        assert primitive_kinds(backend) == ["import"]


class TestImportErrors:
    """Test import failures."""

    def test_no_resolver(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("include <lib.scad>")
        assert exc_info.value.kind is EvalErrorKind.IMPORT_ERROR
        assert "no import resolver" in exc_info.value.message

    def test_missing_file(self, run_with):
        with pytest.raises(EvalError) as exc_info:
            run_with("use <missing.scad>", {})
        assert exc_info.value.kind is EvalErrorKind.IMPORT_ERROR
        assert "not found" in exc_info.value.message
        assert isinstance(exc_info.value.__cause__, ImportResolutionError)

    def test_parent_path_rejected(self, run_with):
        with pytest.raises(EvalError) as exc_info:
            run_with("include <../secret.scad>", {"secret.scad": "x = 1;"})
        assert exc_info.value.kind is EvalErrorKind.IMPORT_ERROR


class TestFileImportResolver:
    """Test resolution against the filesystem."""

    @pytest.fixture
    def resolver(self):
        return FileImportResolver(use_library_path=False)

    def test_resolve_and_load(self, resolver, tmp_path):
        (tmp_path / "lib.scad").write_text("x = 1;")
        resolved = resolver.resolve("lib.scad", [str(tmp_path)])
        assert resolved == os.path.realpath(tmp_path / "lib.scad")
        assert resolver.load(resolved) == "x = 1;"

    def test_first_matching_directory_wins(self, resolver, tmp_path):
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()
        (second / "lib.scad").write_text("x = 2;")
        resolved = resolver.resolve("lib.scad", [str(first), str(second)])
        assert resolved == os.path.realpath(second / "lib.scad")

    def test_extension_rejected(self, resolver, tmp_path):
        (tmp_path / "model.stl").write_text("solid")
        with pytest.raises(ImportResolutionError, match="not allowed"):
            resolver.resolve("model.stl", [str(tmp_path)])

    def test_custom_extensions(self, tmp_path):
        (tmp_path / "lib.inc").write_text("x = 1;")
        resolver = FileImportResolver(extensions=[".INC"], use_library_path=False)
        assert resolver.resolve("lib.inc", [str(tmp_path)]).endswith("lib.inc")

    def test_absolute_path_rejected(self, resolver, tmp_path):
        lib = tmp_path / "lib.scad"
        lib.write_text("x = 1;")
        with pytest.raises(ImportResolutionError, match="absolute"):
            resolver.resolve(str(lib), [str(tmp_path)])

    def test_escape_rejected(self, resolver, tmp_path):
        (tmp_path / "secret.scad").write_text("x = 1;")
        sub = tmp_path / "sub"
        sub.mkdir()
        with pytest.raises(ImportResolutionError, match="escapes"):
            resolver.resolve("../secret.scad", [str(sub)])

    def test_size_limit(self, tmp_path):
        (tmp_path / "big.scad").write_text("x = 1; // " + "x" * 100)
        resolver = FileImportResolver(max_bytes=10, use_library_path=False)
        with pytest.raises(ImportResolutionError, match="larger than"):
            resolver.resolve("big.scad", [str(tmp_path)])

    def test_not_found(self, resolver, tmp_path):
        with pytest.raises(ImportResolutionError, match="not found"):
            resolver.resolve("lib.scad", [str(tmp_path)])

    def test_library_path(self, tmp_path, monkeypatch):
        libraries = tmp_path / "libraries"
        libraries.mkdir()
        (libraries / "shapes.scad").write_text("module s() cube(1);")
        monkeypatch.setenv("OPENSCADPATH", str(libraries))
        resolved = FileImportResolver().resolve("shapes.scad", [])
        assert resolved == os.path.realpath(libraries / "shapes.scad")

    def test_nested_include_relative_to_including_file(self, run, tmp_path):
        parts = tmp_path / "parts"
        parts.mkdir()
        (parts / "a.scad").write_text("include <b.scad>\na = b * 10;")
        (parts / "b.scad").write_text("b = 4;")
        main = tmp_path / "main.scad"
        source = "include <parts/a.scad>\necho(a);"
        main.write_text(source)
        program = run(source, origin=str(main),
                      import_resolver=FileImportResolver(use_library_path=False))
        assert program.echo_log == ("ECHO: 40",)

    def test_search_dirs_option(self, run, tmp_path):
        (tmp_path / "lib.scad").write_text("function k() = 7;")
        program = run("use <lib.scad>\necho(k());", search_dirs=[str(tmp_path)],
                      import_resolver=FileImportResolver(use_library_path=False))
        assert program.echo_log == ("ECHO: 7",)


class TestMemoryImportResolver:
    """Test the in-memory resolver."""

    def test_resolve_normalizes(self):
        resolver = MemoryImportResolver({"lib/a.scad": "x = 1;"})
        assert resolver.resolve("lib/./a.scad", []) == os.path.normpath("lib/a.scad")

    def test_not_found(self):
        with pytest.raises(ImportResolutionError):
            MemoryImportResolver({}).resolve("a.scad", [])
