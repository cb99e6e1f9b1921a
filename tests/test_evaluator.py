"""Tests for statement evaluation: scoping, calls, children, modifiers and guards."""
import sys
import pytest
from openscad_engine import CancellationToken, Geometry, RecordingBackend
from openscad_engine.errors import EvalError, EvalErrorKind


def primitive_kinds(backend):
    return [args[0] for method, args in backend.calls if method == "create_primitive"]


class TestScoping:
    """Test lexical and dynamic scoping."""

    def test_module_assignment_does_not_leak(self, run):
        program = run("x = 1; module m() { x = 2; } m(); echo(x);")
        assert program.echo_log == ("ECHO: 1",)

    def test_named_argument_overrides_default(self, run):
        program = run("module m(a, b = 2) { echo(a, b); } m(5, b = 10); m(5);")
        assert program.echo_log == ("ECHO: 5, 10", "ECHO: 5, 2")

    def test_defaults_see_earlier_parameters(self, run):
        program = run("function f(x, y = x + 1) = x * y; echo(f(2));")
        assert program.echo_log == ("ECHO: 6",)

    def test_missing_argument_is_undef(self, run):
        program = run("module m(a) { echo(a); } m();")
        assert program.echo_log == ("ECHO: undef",)

    def test_unknown_named_argument_is_ignored(self, run, caplog):
        program = run("module m(a) { echo(a); } m(1, b = 2);")
        assert program.echo_log == ("ECHO: 1",)
        assert "unknown parameter 'b'" in caplog.text

    def test_unknown_variable_is_undef(self, run, caplog):
        program = run("echo(nope);")
        assert program.echo_log == ("ECHO: undef",)
        assert "unknown variable nope" in caplog.text

    def test_special_variable_passed_to_module(self, run):
        program = run("module m() { echo($fn); } m($fn = 8); m();")
        assert program.echo_log == ("ECHO: 8", "ECHO: 0")

    def test_special_variables_are_dynamically_scoped(self, run):
        source = """
            module inner() { echo($fa); }
            module outer() { $fa = 3; inner(); }
            outer();
            inner();
        """
        program = run(source)
        assert program.echo_log == ("ECHO: 3", "ECHO: 12")

    def test_special_assignment_does_not_leak_from_call(self, run):
        program = run("module m() { $fn = 3; } m(); echo($fn);")
        assert program.echo_log == ("ECHO: 0",)

    def test_top_level_special_assignment(self, run):
        program = run("$fn = 5; module m() { echo($fn); } m();")
        assert program.echo_log == ("ECHO: 5",)

    def test_special_variable_reaches_primitive(self, run, backend):
        run("sphere(1, $fn = 16);")
        assert backend.calls[0][1][1]["$fn"] == 16.0

    def test_special_parameter_default(self, run, backend):
        run("module m($fn = 8) sphere(1); m();")
        assert backend.calls[0][1][1]["$fn"] == 8.0

    def test_special_parameter_positional_named_and_default(self, run):
        program = run("module m($fn = 8) echo($fn); m(); m(5); m($fn = 3); echo($fn);")
        assert program.echo_log == ("ECHO: 8", "ECHO: 5", "ECHO: 3", "ECHO: 0")

    def test_special_parameter_in_function(self, run):
        program = run("function f($x) = $x * 2; echo(f(3), f($x = 4));")
        assert program.echo_log == ("ECHO: 6, 8",)

    def test_special_parameter_seen_by_callees(self, run):
        source = """
            function g() = $scale;
            function f($scale = 10) = g();
            echo(f(), f(2));
        """
        assert run(source).echo_log == ("ECHO: 10, 2",)

    def test_function_value_in_variable(self, run):
        program = run("f = function (x) x * 2; echo(f(4));")
        assert program.echo_log == ("ECHO: 8",)

    def test_let_statement(self, run):
        program = run("let (a = 2, b = a + 1) echo(a, b);")
        assert program.echo_log == ("ECHO: 2, 3",)


class TestHoisting:
    """Test that declarations are visible before their definition."""

    def test_function_used_before_declaration(self, run):
        program = run("echo(f(2)); function f(x) = x + 1;")
        assert program.echo_log == ("ECHO: 3",)

    def test_module_used_before_declaration(self, run, backend):
        run("m(); module m() { cube(1); }")
        assert primitive_kinds(backend) == ["cube"]

    def test_nested_module_declarations(self, run):
        source = """
            module outer() {
                inner();
                module inner() { echo("inner"); }
            }
            outer();
        """
        program = run(source)
        assert program.echo_log == ('ECHO: "inner"',)

    def test_nested_declaration_not_visible_outside(self, run):
        source = "module outer() { module inner() {} } inner();"
        with pytest.raises(EvalError) as exc_info:
            run(source)
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_MODULE


class TestChildren:
    """Test children() and $children."""

    def test_children_not_evaluated_unless_requested(self, run, backend):
        run("module none() {} none() cube(1);")
        assert primitive_kinds(backend) == []

    def test_children_evaluated_when_requested(self, run, backend):
        run("module one() { children(); } one() cube(1);")
        assert primitive_kinds(backend) == ["cube"]

    def test_children_by_index(self, run, backend):
        run("module pick() { children(1); } pick() { cube(1); sphere(2); cylinder(); }")
        assert primitive_kinds(backend) == ["sphere"]

    def test_children_by_vector_and_range(self, run, backend):
        source = """
            module pick() { children([0, 2]); children([1:2]); }
            pick() { cube(1); sphere(2); cylinder(); }
        """
        run(source)
        assert primitive_kinds(backend) == ["cube", "cylinder", "sphere", "cylinder"]

    def test_children_count(self, run):
        program = run("module count() { echo($children); } count() { cube(1); sphere(1); } count();")
        assert program.echo_log == ("ECHO: 2", "ECHO: 0")

    def test_children_out_of_range(self, run, backend, caplog):
        run("module pick() { children(5); } pick() cube(1);")
        assert primitive_kinds(backend) == []
        assert "out of range" in caplog.text

    def test_children_index_must_be_number(self, run):
        with pytest.raises(EvalError) as exc_info:
            run('module pick() { children("a"); } pick() cube(1);')
        assert exc_info.value.kind is EvalErrorKind.TYPE_MISMATCH

    def test_children_evaluated_in_caller_scope(self, run):
        source = """
            module wrap() { x = 100; children(); }
            x = 1;
            wrap() echo(x);
        """
        program = run(source)
        assert program.echo_log == ("ECHO: 1",)

    def test_children_passed_through_nested_modules(self, run, backend):
        source = """
            module inner() { children(); }
            module outer() { inner() children(); }
            outer() sphere(1);
        """
        run(source)
        assert primitive_kinds(backend) == ["sphere"]


class TestCalls:
    """Test function and module call resolution and failures."""

    def test_recursive_function(self, run):
        program = run("function fact(n) = n <= 1 ? 1 : n * fact(n - 1); echo(fact(5));")
        assert program.echo_log == ("ECHO: 120",)

    def test_infinite_recursion(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("function f(n) = f(n + 1); x = f(0);")
        assert exc_info.value.kind is EvalErrorKind.RECURSION_LIMIT

    def test_infinite_module_recursion(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("module r(n) { r(n + 1); } r(0);")
        assert exc_info.value.kind is EvalErrorKind.RECURSION_LIMIT

    def test_recursion_limit_option(self, run):
        source = "function down(n) = n == 0 ? 0 : down(n - 1); echo(down(10));"
        assert run(source, max_recursion_depth=20).echo_log == ("ECHO: 0",)
        with pytest.raises(EvalError) as exc_info:
            run(source, max_recursion_depth=5)
        assert exc_info.value.kind is EvalErrorKind.RECURSION_LIMIT

    def test_module_recursion_just_under_default_limit(self, run, backend):
        source = """
            module m(n) { if (n > 0) translate([1, 0, 0]) m(n - 1); else cube(1); }
            m(98);
        """
        program = run(source)
        assert len(program.roots) == 1
        assert backend.methods().count("transform") == 98

    def test_module_recursion_over_default_limit(self, run):
        source = "module m(n) { if (n > 0) translate([1, 0, 0]) m(n - 1); else cube(1); } m(100);"
        with pytest.raises(EvalError) as exc_info:
            run(source)
        assert exc_info.value.kind is EvalErrorKind.RECURSION_LIMIT
        assert "recursion depth 100 exceeded" in exc_info.value.message

    def test_raised_limit_is_honoured(self, run):
        source = "function f(n) = n <= 0 ? 0 : 1 + f(n - 1); echo(f(498));"
        program = run(source, max_recursion_depth=500)
        assert program.echo_log == ("ECHO: 498",)

    def test_interpreter_limit_restored(self, run):
        before = sys.getrecursionlimit()
        run("function f(n) = n <= 0 ? 0 : f(n - 1); echo(f(10));", max_recursion_depth=400)
        assert sys.getrecursionlimit() == before

    def test_undefined_function(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("x = nope(1);")
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_FUNCTION

    def test_undefined_module(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("cube(1);\nnope();")
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_MODULE
        assert exc_info.value.line == 2
        assert exc_info.value.column == 1

    def test_undefined_module_inside_difference(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("difference() { cube(1); nope(); }")
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_MODULE

    def test_undefined_module_arguments_not_evaluated(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("nope(missing());")
        assert exc_info.value.kind is EvalErrorKind.UNDEFINED_MODULE

    def test_user_function_shadows_builtin(self, run):
        program = run("function len(v) = 42; echo(len([1]));")
        assert program.echo_log == ("ECHO: 42",)

    def test_user_module_shadows_builtin(self, run, backend):
        run("module cube(s) { sphere(s); } cube(1);")
        assert primitive_kinds(backend) == ["sphere"]


class TestEchoAndAssert:
    """Test echo and assert statements and expressions."""

    def test_echo_formatting(self, run):
        program = run('echo(1, "a", [1, 2], true, undef);')
        assert program.echo_log == ('ECHO: 1, "a", [1, 2], true, undef',)

    def test_echo_named_arguments(self, run):
        program = run('echo(n = 3, "x");')
        assert program.echo_log == ('ECHO: n = 3, "x"',)

    def test_echo_expression(self, run):
        program = run('x = echo("hi") 2; echo(x);')
        assert program.echo_log == ('ECHO: "hi"', "ECHO: 2")

    def test_echo_order(self, run):
        program = run("for (i = [1:3]) echo(i);")
        assert program.echo_log == ("ECHO: 1", "ECHO: 2", "ECHO: 3")

    def test_assert_passes(self, run):
        program = run("x = 1; assert(x > 0); y = assert(true) 5; echo(y);")
        assert program.echo_log == ("ECHO: 5",)

    def test_assert_failure_message(self, run):
        with pytest.raises(EvalError) as exc_info:
            run('x = 0; assert(x > 0, "x must be positive");')
        assert exc_info.value.kind is EvalErrorKind.ASSERTION_FAILED
        assert exc_info.value.message == "Assertion 'x > 0' failed: x must be positive"

    def test_assert_named_arguments(self, run):
        with pytest.raises(EvalError) as exc_info:
            run('assert(message = "m", condition = false);')
        assert exc_info.value.message == "Assertion 'false' failed: m"

    def test_assert_without_message(self, run):
        with pytest.raises(EvalError) as exc_info:
            run("function f(x) = assert(x < 10) x; y = f(20);")
        assert exc_info.value.message == "Assertion 'x < 10' failed"


class TestControlFlow:
    """Test if and for statements."""

    def test_if_else(self, run, backend):
        run("if (false) cube(1); else sphere(1); if (1) cylinder();")
        assert primitive_kinds(backend) == ["sphere", "cylinder"]

    def test_else_if_chain(self, run):
        source = """
            module size(x) {
                if (x > 10) echo("big"); else if (x > 1) echo("medium"); else echo("small");
            }
            size(20); size(5); size(0);
        """
        program = run(source)
        assert program.echo_log == ('ECHO: "big"', 'ECHO: "medium"', 'ECHO: "small"')

    def test_for_multiple_variables(self, run):
        program = run("for (i = [0:1], j = [0:1]) echo(i, j);")
        assert program.echo_log == ("ECHO: 0, 0", "ECHO: 0, 1", "ECHO: 1, 0", "ECHO: 1, 1")

    def test_for_over_vector_and_string(self, run):
        program = run('for (v = [[1, 2], "s"]) echo(v); for (c = "ab") echo(c);')
        assert program.echo_log == ('ECHO: [1, 2]', 'ECHO: "s"', 'ECHO: "a"', 'ECHO: "b"')

    def test_for_over_undef_runs_once(self, run):
        program = run("for (i = undef) echo(i);")
        assert program.echo_log == ("ECHO: undef",)

    def test_for_produces_separate_roots(self, run, backend):
        program = run("for (i = [1:3]) cube(i);")
        assert len(program.roots) == 3
        assert "boolean" not in backend.methods()

    def test_loop_variable_scoped_to_iteration(self, run):
        program = run("i = 10; for (i = [1:2]) { } echo(i);")
        assert program.echo_log == ("ECHO: 10",)


class TestModifiers:
    """Test the ! * # % modifiers."""

    def test_roots_are_not_unioned(self, run, backend):
        program = run("cube(1); sphere(1);")
        assert program.roots == (Geometry(0), Geometry(1))
        assert not program.root_modifier_used
        assert backend.methods() == ["create_primitive", "create_primitive"]

    def test_root_modifier(self, run):
        program = run("cube(1); !sphere(1); cylinder();")
        assert program.root_modifier_used
        assert program.roots == (Geometry(1),)

    def test_first_root_modifier_wins(self, run):
        program = run("!translate([1, 0, 0]) !cube(1); !sphere(1);")
        assert program.root_modifier_used
        # cube is handle 0, its transform 1, the sphere 2
        assert program.roots == (Geometry(1),)

    def test_root_modifier_inside_module(self, run):
        program = run("module m() { cube(1); !sphere(1); } m(); cylinder();")
        assert program.roots == (Geometry(1),)

    def test_disable_modifier(self, run, backend):
        program = run("*cube(1); *translate([1, 0, 0]) nope();")
        assert backend.calls == []
        assert program.roots == ()

    def test_highlight_and_background(self, run):
        program = run("#cube(1); %sphere(1); cylinder();")
        highlight, background, plain = program.roots
        assert highlight.annotation("highlight") is True
        assert background.annotation("background") is True
        assert plain.annotations == ()

    def test_modifier_on_for(self, run):
        program = run("#for (i = [1:2]) cube(i);")
        assert all(g.annotation("highlight") for g in program.roots)


class TestCancellation:
    """Test cooperative cancellation."""

    def test_cancelled_before_start(self, run):
        token = CancellationToken()
        token.cancel()
        with pytest.raises(EvalError) as exc_info:
            run("for (i = [0:1000000]) cube(1);", cancellation_token=token)
        assert exc_info.value.kind is EvalErrorKind.CANCELLED

    def test_cancelled_during_loop(self, run):
        token = CancellationToken()
        source = "for (i = [0:1000000]) cube(i);"

        class CancellingBackend:
            def __init__(self, inner):
                self.inner = inner

            def __getattr__(self, name):
                token.cancel()
                return getattr(self.inner, name)

        backend = CancellingBackend(RecordingBackend())
        with pytest.raises(EvalError) as exc_info:
            run(source, cancellation_token=token, backend=backend)
        assert exc_info.value.kind is EvalErrorKind.CANCELLED
        assert len(backend.inner.calls) == 1


class TestDeterminism:
    """Test that evaluation is repeatable."""

    SOURCE = """
        module ring(n, r) {
            for (i = [0 : n - 1])
                rotate([0, 0, i * 360 / n]) translate([r, 0, 0]) children();
        }
        difference() {
            cylinder(h = 2, r = 10, $fn = 48);
            ring(6, 7) { cylinder(h = 3, r = 1); sphere(0.5); }
        }
        for (x = [-1, 1]) let ($fn = 12) translate([x * 20, 0, 0]) sphere(2);
        echo(len([for (i = [0:5]) i * i]));
    """

    def test_same_calls_on_every_run(self, run):
        first, second = RecordingBackend(), RecordingBackend()
        program1 = run(self.SOURCE, backend=first)
        program2 = run(self.SOURCE, backend=second)
        assert first.calls
        assert first.calls == second.calls
        assert program1 == program2
