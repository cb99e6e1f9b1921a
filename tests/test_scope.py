"""Tests for lexical scopes and the special-variable overlay."""
import pytest
from openscad_engine.errors import EvalError, EvalErrorKind
from openscad_engine.evaluator import (
    UNDEF, CancellationToken, EvaluationContext, FunctionValue, Scope,
)


class TestScopeBasics:
    """Test basic Scope class functionality."""

    def test_empty_scope(self):
        scope = Scope()
        assert scope.parent is None
        assert scope.variables == {}
        assert scope.functions == {}
        assert scope.modules == {}

    def test_lookup_variable_not_found(self):
        assert Scope().lookup_variable("x") is None

    def test_lookup_function_not_found(self):
        assert Scope().lookup_function("foo") is None

    def test_lookup_module_not_found(self):
        assert Scope().lookup_module("bar") is None

    def test_child_scope(self):
        parent = Scope()
        child = parent.child_scope()
        assert child.parent is parent

    def test_repr(self):
        scope = Scope()
        scope.define_variable("x", 1.0)
        assert "root" in repr(scope)
        assert "vars=[x]" in repr(scope)
        assert "has parent" in repr(scope.child_scope())


class TestScopeLookup:
    """Test lookups through the parent chain."""

    def test_child_sees_parent_variable(self):
        root = Scope()
        root.define_variable("x", 1.0)
        assert root.child_scope().child_scope().lookup_variable("x") == 1.0

    def test_shadowing_does_not_touch_parent(self):
        root = Scope()
        root.define_variable("x", 1.0)
        child = root.child_scope()
        child.define_variable("x", 2.0)
        assert child.lookup_variable("x") == 2.0
        assert root.lookup_variable("x") == 1.0

    def test_undef_value_is_distinguished_from_missing(self):
        scope = Scope()
        scope.define_variable("u", UNDEF)
        assert scope.lookup_variable("u") is UNDEF

    def test_namespaces_are_separate(self):
        scope = Scope()
        function = FunctionValue([], None, scope, "f")
        scope.define_variable("f", 3.0)
        scope.define_function("f", function)
        assert scope.lookup_variable("f") == 3.0
        assert scope.lookup_function("f") is function
        assert scope.lookup_module("f") is None

    def test_special_names_are_rejected(self):
        with pytest.raises(ValueError):
            Scope().define_variable("$fn", 10.0)


class TestSpecialVariables:
    """Test the dynamically scoped ``$`` overlay of the evaluation context."""

    def test_defaults(self):
        context = EvaluationContext()
        assert context.lookup_special("$fn") == 0.0
        assert context.lookup_special("$fa") == 12.0
        assert context.lookup_special("$fs") == 2.0
        assert context.lookup_special("$preview") is True
        assert context.lookup_special("$vpr") == [55.0, 0.0, 25.0]

    def test_frame_shadows_and_restores(self):
        context = EvaluationContext()
        with context.special_frame({"$fn": 12.0}):
            assert context.lookup_special("$fn") == 12.0
            with context.special_frame():
                context.set_special("$fn", 24.0)
                assert context.lookup_special("$fn") == 24.0
            assert context.lookup_special("$fn") == 12.0
        assert context.lookup_special("$fn") == 0.0

    def test_frame_popped_on_error(self):
        context = EvaluationContext()
        with pytest.raises(RuntimeError):
            with context.special_frame({"$fn": 12.0}):
                raise RuntimeError("boom")
        assert context.lookup_special("$fn") == 0.0

    def test_unknown_special_is_undef(self, caplog):
        context = EvaluationContext()
        assert context.lookup_special("$nope") is UNDEF
        assert "unknown variable $nope" in caplog.text


class TestGuards:
    """Test recursion depth counting and cancellation."""

    def test_invocation_depth(self):
        context = EvaluationContext(max_recursion_depth=2)
        with context.invocation("a", None):
            with context.invocation("b", None):
                assert context.depth == 2
                with pytest.raises(EvalError) as exc_info:
                    with context.invocation("c", None):
                        pass
                assert exc_info.value.kind is EvalErrorKind.RECURSION_LIMIT
                assert "'c'" in exc_info.value.message
        assert context.depth == 0

    def test_cancellation(self):
        token = CancellationToken()
        context = EvaluationContext(cancellation_token=token)
        context.check_cancelled()
        token.cancel()
        assert token.cancelled
        with pytest.raises(EvalError) as exc_info:
            context.check_cancelled()
        assert exc_info.value.kind is EvalErrorKind.CANCELLED

    def test_echo_is_logged(self, caplog):
        caplog.set_level("INFO", logger="openscad_engine")
        context = EvaluationContext()
        context.echo("1, 2")
        assert context.echo_log == ["ECHO: 1, 2"]
        assert "ECHO: 1, 2" in caplog.text
