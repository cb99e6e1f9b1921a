"""Tests for run_program(), RunOptions, error formatting and the command line."""
import io
import json
import pytest
from openscad_engine import (
    GeometryProgram, RecordingBackend, RunOptions, run_program,
)
from openscad_engine.__main__ import main, parse_define
from openscad_engine.errors import (
    EvalError, EvalErrorKind, LexError, ParseError, format_error,
)


class TestRunProgram:
    """Test the top-level entry point."""

    def test_defaults(self):
        program = run_program("cube(10); echo(version());")
        assert isinstance(program, GeometryProgram)
        assert len(program.roots) == 1
        assert program.echo_log == ("ECHO: [2021, 1, 0]",)
        assert not program.root_modifier_used

    def test_empty_program(self):
        program = run_program("// nothing here\n")
        assert program.roots == ()
        assert program.echo_log == ()

    def test_options_object(self):
        backend = RecordingBackend()
        run_program("sphere(1);", RunOptions(backend=backend))
        assert backend.methods() == ["create_primitive"]

    def test_special_vars_option(self):
        program = run_program("echo($fn, $t);", {"special_vars": {"$fn": 7.0, "$t": 0.5}})
        assert program.echo_log == ("ECHO: 7, 0.5",)

    def test_special_vars_require_dollar(self):
        with pytest.raises(ValueError, match="start with"):
            run_program("x = 1;", {"special_vars": {"fn": 7.0}})

    def test_unknown_option(self):
        with pytest.raises(ValueError, match="bogus"):
            run_program("x = 1;", {"bogus": True})

    def test_from_mapping(self):
        options = RunOptions.from_mapping({"max_recursion_depth": 7, "origin": "part.scad"})
        assert options.max_recursion_depth == 7
        assert options.origin == "part.scad"
        assert options.backend is None

    def test_origin_in_positions(self):
        with pytest.raises(EvalError) as exc_info:
            run_program("nope();", {"origin": "part.scad"})
        assert exc_info.value.position.origin == "part.scad"

    def test_lex_error(self):
        with pytest.raises(LexError):
            run_program('x = "unterminated;')

    def test_parse_error(self):
        with pytest.raises(ParseError) as exc_info:
            run_program("x = 1\ny = 2;")
        assert exc_info.value.line == 2

    def test_each_run_is_independent(self):
        run_program("$fn = 99;")
        assert run_program("echo($fn);").echo_log == ("ECHO: 0",)


class TestFormatError:
    """Test error rendering with a source caret."""

    def test_caret_under_column(self):
        source = "cube(1);\n  nope();"
        with pytest.raises(EvalError) as exc_info:
            run_program(source)
        lines = format_error(exc_info.value, source).split("\n")
        assert lines[0] == ("UndefinedModule in <string> at line 2, column 3: "
                            "unknown module 'nope'")
        assert lines[1] == "  nope();"
        assert lines[2] == "  ^"

    def test_without_source(self):
        error = EvalError(EvalErrorKind.CANCELLED, "evaluation cancelled")
        assert format_error(error) == "Cancelled: evaluation cancelled"

    def test_syntax_error_label(self):
        source = "x = ;"
        with pytest.raises(ParseError) as exc_info:
            run_program(source)
        assert format_error(exc_info.value, source).startswith("Syntax error in <string>")

    def test_str_of_eval_error(self):
        with pytest.raises(EvalError) as exc_info:
            run_program("x = nope();")
        assert str(exc_info.value) == \
            "UndefinedFunction: unknown function 'nope' (<string>:1:9)"


class TestDefines:
    """Test -D option parsing."""

    def test_number(self):
        assert parse_define("$fn=32") == ("$fn", 32.0)

    def test_expression(self):
        assert parse_define("$vpt = [1, 2, 3 * 2]") == ("$vpt", [1.0, 2.0, 6.0])

    def test_string(self):
        assert parse_define('$label="part"') == ("$label", "part")

    def test_plain_name_rejected(self):
        with pytest.raises(ValueError, match="only special variables"):
            parse_define("size=3")

    def test_missing_value(self):
        with pytest.raises(ValueError, match="NAME=VALUE"):
            parse_define("$fn")


class TestCommandLine:
    """Test the tokens, parse and run subcommands."""

    @pytest.fixture
    def scad_file(self, tmp_path):
        def _write(text, name="model.scad"):
            path = tmp_path / name
            path.write_text(text)
            return str(path)
        return _write

    def test_tokens(self, scad_file, capsys):
        assert main(["tokens", scad_file("x = 42;")]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[0] == "1:1\tIDENT\tx"
        assert lines[2] == "1:5\tNUMBER\t42"
        assert lines[-1].split("\t")[1] == "EOF"

    def test_tokens_lex_error(self, scad_file, capsys):
        assert main(["tokens", scad_file("x = 1 & 2;")]) == 1
        assert "Lexical error" in capsys.readouterr().err

    def test_parse_text(self, scad_file, capsys):
        assert main(["parse", scad_file("x=1+2;\nmodule m(){cube(x);}")]) == 0
        out = capsys.readouterr().out
        assert out.splitlines() == ["x = (1 + 2);", "module m() { cube(x); }"]

    def test_parse_json(self, scad_file, capsys):
        assert main(["parse", scad_file("x = 1;"), "--format", "json", "--no-positions"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["_type"] == "Assignment"
        assert data[0]["name"]["name"] == "x"
        assert "_position" not in data[0]

    def test_parse_json_positions(self, scad_file, capsys):
        path = scad_file("x = 1;")
        assert main(["parse", path, "--format", "json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert data[0]["_position"] == {"origin": path, "line": 1, "column": 1}

    def test_parse_syntax_error(self, scad_file, capsys):
        assert main(["parse", scad_file("module {")]) == 1
        err = capsys.readouterr().err
        assert err.startswith("Syntax error in ")
        assert "^" in err

    def test_run(self, scad_file, capsys):
        assert main(["run", scad_file("sphere(1); echo($fn);"), "-D", "$fn=8"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out == ["ECHO: 8", "1 root geometry, 1 backend call(s)"]

    def test_run_calls(self, scad_file, capsys):
        assert main(["run", scad_file("translate([1, 0, 0]) cube(1); cube(2);"), "--calls"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert out[0].startswith("create_primitive('cube'")
        assert out[1].startswith("transform(0, ")
        assert out[-1] == "2 root geometries, 3 backend call(s)"

    def test_run_with_include(self, scad_file, capsys):
        scad_file("size = 3;", name="settings.scad")
        assert main(["run", scad_file("include <settings.scad>\necho(size);")]) == 0
        assert "ECHO: 3" in capsys.readouterr().out

    def test_run_include_dir(self, tmp_path, scad_file, capsys):
        libraries = tmp_path / "libs"
        libraries.mkdir()
        (libraries / "shapes.scad").write_text("module block() cube(1);")
        path = scad_file("use <shapes.scad>\nblock();")
        assert main(["run", path, "-I", str(libraries)]) == 0
        assert capsys.readouterr().out.splitlines()[-1] == "1 root geometry, 1 backend call(s)"

    def test_run_max_depth(self, scad_file, capsys):
        path = scad_file("function f(n) = n == 0 ? 0 : f(n - 1);\necho(f(10));")
        assert main(["run", path, "--max-depth", "5"]) == 1
        assert "RecursionLimit" in capsys.readouterr().err

    def test_run_evaluation_error(self, scad_file, capsys):
        assert main(["run", scad_file("cube(1);\nnope();")]) == 1
        err = capsys.readouterr().err.splitlines()
        assert err[0].startswith("UndefinedModule in ")
        assert err[1:] == ["nope();", "^"]

    def test_run_bad_define(self, scad_file, capsys):
        assert main(["run", scad_file("cube(1);"), "-D", "size=3"]) == 2
        assert "only special variables" in capsys.readouterr().err

    def test_run_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO('echo("from stdin");'))
        assert main(["run", "-"]) == 0
        assert capsys.readouterr().out.splitlines()[0] == 'ECHO: "from stdin"'

    def test_missing_file(self, tmp_path, capsys):
        assert main(["run", str(tmp_path / "missing.scad")]) == 1
        assert capsys.readouterr().err.startswith("Error: ")

    def test_subcommand_required(self):
        with pytest.raises(SystemExit):
            main([])
