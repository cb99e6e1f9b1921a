"""OpenSCAD evaluator: scopes, values, built-ins and the tree-walking interpreter."""

from .values import (
    UNDEF,
    RangeValue,
    FunctionValue,
    ModuleValue,
    Geometry,
    ChildrenRef,
    NO_CHILDREN,
    GeometryProgram,
    truthy,
    values_equal,
    format_value,
    type_name,
)
from .scope import Scope
from .context import (
    DEFAULT_MAX_RECURSION_DEPTH,
    DEFAULT_SPECIAL_VARIABLES,
    CancellationToken,
    EvaluationContext,
)
from .builtins import BUILTIN_FUNCTIONS, BuiltinCall, builtin
from .modules import BUILTIN_MODULES, ModuleCall, builtin_module
from .interpreter import Evaluator, evaluate
