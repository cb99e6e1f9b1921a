"""Pytest configuration and shared fixtures for OpenSCAD engine tests."""

import pytest
from openscad_engine import RecordingBackend, run_program
from openscad_engine.evaluator import EvaluationContext, Evaluator, Scope
from openscad_engine.lexer import tokenize
from openscad_engine.parser import parse


@pytest.fixture
def backend():
    """A fresh recording backend."""
    return RecordingBackend()


@pytest.fixture
def run(backend):
    """Run a program against the ``backend`` fixture.

    Extra keyword arguments are passed as run options.
    """
    def _run(source, **options):
        options.setdefault("backend", backend)
        return run_program(source, options)
    return _run


@pytest.fixture
def eval_expr():
    """Evaluate a single OpenSCAD expression in an empty scope."""
    def _eval(text, **variables):
        context = EvaluationContext()
        scope = Scope()
        for name, value in variables.items():
            scope.define_variable(name, value)
        statements = parse(tokenize(f"value = {text};"))
        return Evaluator(context).evaluate(statements[0].expr, scope)
    return _eval
