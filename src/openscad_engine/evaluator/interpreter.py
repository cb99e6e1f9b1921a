"""Tree-walking evaluator for OpenSCAD programs.

Statements run in source order against a chain of lexical scopes. Special
``$`` variables live in the dynamically scoped overlay of the
:class:`~openscad_engine.evaluator.context.EvaluationContext`. Geometry is
never computed here: every leaf and combinator is delegated to the backend.
"""
from __future__ import annotations
import logging
import os
import sys
from typing import Any, Callable, Iterable, Optional

from ..ast.nodes import (
    ASTNode, Expression, Identifier, StringLiteral, NumberLiteral,
    BooleanLiteral, UndefinedLiteral, ParameterDeclaration, Argument,
    NamedArgument, RangeLiteral, VectorLiteral, Assignment, BinaryOp, UnaryOp,
    TernaryOp, LetOp, EchoOp, AssertOp, FunctionLiteral, PrimaryCall,
    PrimaryIndex, PrimaryMember, ListCompFor, ListCompCFor, ListCompIf,
    ListCompLet, ListCompEach, ListComprehension, ModuleInstantiation,
    ModularCall, ModularFor, ModularIntersectionFor, ModularLet, ModularEcho,
    ModularAssert, ModularIf, ModularBlock, ExpressionStatement,
    ModuleDeclaration, FunctionDeclaration, ImportStatement,
)
from ..errors import (
    BackendError, EvalError, EvalErrorKind, ImportResolutionError,
)
from ..position import Position
from . import operators
from .builtins import BUILTIN_FUNCTIONS, BuiltinCall
from .context import EvaluationContext
from .modules import BUILTIN_MODULES, ModuleCall
from .scope import Scope
from .values import (
    UNDEF, NO_CHILDREN, ChildrenRef, FunctionValue, Geometry, GeometryProgram,
    ModuleValue, RangeValue, format_value, is_number, truthy, type_name,
)

logger = logging.getLogger(__name__)

_MEMBER_INDEX = {"x": 0, "y": 1, "z": 2}

# Python frames one level of user call nesting may take: statement dispatch,
# nested blocks and control flow, and built-in modules running their children.
FRAMES_PER_CALL_LEVEL = 60
_STACK_HEADROOM = 500

Arguments = tuple[list[Any], list[tuple[str, Any]]]


def _expression_text(expr: Expression) -> str:
    text = str(expr)
    if isinstance(expr, (BinaryOp, UnaryOp, TernaryOp)) and text.startswith("(") \
            and text.endswith(")"):
        return text[1:-1]
    return text


class Evaluator:
    """Evaluates statements and expressions within one :class:`EvaluationContext`.

    Usage:
        program = Evaluator(EvaluationContext(backend=my_backend)).run(statements, Scope())
    """

    def __init__(self, context: EvaluationContext):
        self.context = context
        self._expression_handlers: dict[type, Callable[[Any, Scope], Any]] = {
            NumberLiteral: lambda node, scope: float(node.val),
            StringLiteral: lambda node, scope: node.val,
            BooleanLiteral: lambda node, scope: bool(node.val),
            UndefinedLiteral: lambda node, scope: UNDEF,
            Identifier: self._eval_identifier,
            BinaryOp: self._eval_binary,
            UnaryOp: self._eval_unary,
            TernaryOp: self._eval_ternary,
            RangeLiteral: self._eval_range,
            VectorLiteral: self._eval_vector,
            ListComprehension: self._eval_comprehension,
            LetOp: self._eval_let,
            EchoOp: self._eval_echo,
            AssertOp: self._eval_assert,
            FunctionLiteral: self._eval_function_literal,
            PrimaryCall: self._eval_call,
            PrimaryIndex: self._eval_index,
            PrimaryMember: self._eval_member,
        }
        self._statement_handlers: dict[type, Callable[[Any, Scope, ChildrenRef], list[Geometry]]] = {
            Assignment: self._exec_assignment,
            FunctionDeclaration: self._exec_declaration,
            ModuleDeclaration: self._exec_declaration,
            ExpressionStatement: self._exec_expression,
            ImportStatement: self._exec_import,
            ModularCall: self._exec_call,
            ModularFor: self._exec_for,
            ModularIntersectionFor: self._exec_intersection_for,
            ModularIf: self._exec_if,
            ModularLet: self._exec_let,
            ModularEcho: self._exec_echo,
            ModularAssert: self._exec_assert,
            ModularBlock: self._exec_block,
        }

    # --- Program ---

    def run(self, statements: list[ASTNode], scope: Scope) -> GeometryProgram:
        """Evaluate top-level statements and assemble the geometry program.

        The interpreter's recursion limit is raised for the duration of the
        run so that ``max_recursion_depth`` levels of user calls fit on the
        Python stack, and restored afterwards.
        """
        limit = sys.getrecursionlimit()
        needed = self.context.max_recursion_depth * FRAMES_PER_CALL_LEVEL + _STACK_HEADROOM
        if needed > limit:
            sys.setrecursionlimit(needed)
        try:
            roots = self.execute_block(statements, scope, NO_CHILDREN)
        except RecursionError:
            raise EvalError(EvalErrorKind.RECURSION_LIMIT,
                            "interpreter stack exhausted") from None
        finally:
            if needed > limit:
                sys.setrecursionlimit(limit)
        override = self.context.root_override
        if override is not None:
            roots = override
        return GeometryProgram(
            roots=tuple(roots),
            echo_log=tuple(self.context.echo_log),
            root_modifier_used=override is not None,
        )

    def hoist(self, statements: Iterable[ASTNode], scope: Scope) -> None:
        """Bind the function and module declarations of a block before it runs."""
        for stmt in statements:
            if isinstance(stmt, FunctionDeclaration):
                name = stmt.name.name
                scope.define_function(name, FunctionValue(stmt.parameters, stmt.expr, scope, name))
            elif isinstance(stmt, ModuleDeclaration):
                scope.define_module(stmt.name.name, ModuleValue(stmt, scope))

    def execute_groups(self, statements: list[ASTNode], scope: Scope,
                       children: ChildrenRef) -> list[list[Geometry]]:
        """Run a block and return the geometries of each statement that produced any."""
        self.hoist(statements, scope)
        groups = []
        for stmt in statements:
            self.context.check_cancelled(stmt.position)
            geometries = self.execute(stmt, scope, children)
            if geometries:
                groups.append(geometries)
        return groups

    def execute_block(self, statements: list[ASTNode], scope: Scope,
                      children: ChildrenRef) -> list[Geometry]:
        return [g for group in self.execute_groups(statements, scope, children) for g in group]

    def execute(self, stmt: ASTNode, scope: Scope, children: ChildrenRef) -> list[Geometry]:
        """Run one statement, applying its modifier."""
        handler = self._statement_handlers.get(type(stmt))
        if handler is None:
            raise TypeError(f"cannot execute {type(stmt).__name__}")
        if not isinstance(stmt, ModuleInstantiation) or stmt.modifier is None:
            return handler(stmt, scope, children)

        modifier = stmt.modifier
        if modifier == "*":
            return []
        if modifier == "!":
            if self.context.root_override is not None:
                return handler(stmt, scope, children)
            # Claim the root before evaluating so nested '!' do not win.
            self.context.root_override = []
            geometries = handler(stmt, scope, children)
            self.context.root_override = list(geometries)
            return geometries
        geometries = handler(stmt, scope, children)
        key = "highlight" if modifier == "#" else "background"
        return [g.annotate(key, True) for g in geometries]

    # --- Backend ---

    def backend_call(self, method: str, *args, position: Optional[Position] = None,
                     label: str = "") -> Any:
        try:
            return getattr(self.context.backend, method)(*args)
        except BackendError as e:
            prefix = f"{label}(): " if label else ""
            raise EvalError(EvalErrorKind.BACKEND_FAILURE, f"{prefix}{e}", position) from e

    def union(self, geometries: list[Geometry], position: Optional[Position] = None,
              label: str = "") -> Optional[Geometry]:
        """Union geometries through the backend. A single geometry is returned as is."""
        if not geometries:
            return None
        if len(geometries) == 1:
            return geometries[0]
        handle = self.backend_call("boolean", "union", [g.handle for g in geometries],
                                   position=position, label=label)
        return Geometry(handle)

    # --- Binding helpers ---

    def bind(self, scope: Scope, name: str, value: Any) -> None:
        """Bind a name, sending ``$`` names to the current special-variable frame."""
        if name.startswith("$"):
            self.context.set_special(name, value)
        else:
            scope.define_variable(name, value)

    def _bind_assignments(self, assignments: list[Assignment], scope: Scope) -> None:
        for assignment in assignments:
            self.bind(scope, assignment.name.name, self.evaluate(assignment.expr, scope))

    def evaluate_arguments(self, arguments: list[Argument], scope: Scope) -> Arguments:
        positional = []
        named = []
        for arg in arguments:
            value = self.evaluate(arg.expr, scope)
            if isinstance(arg, NamedArgument):
                named.append((arg.name.name, value))
            else:
                positional.append(value)
        return positional, named

    def _bind_parameters(self, parameters: list[ParameterDeclaration], positional: list[Any],
                         named: list[tuple[str, Any]], callee: Scope, name: str,
                         position: Optional[Position]) -> None:
        names = [p.name.name for p in parameters]
        bound: dict[str, Any] = {}
        for i, value in enumerate(positional):
            if i < len(names):
                bound[names[i]] = value
            else:
                logger.warning("%s: too many arguments at %s, extra value ignored", name, position)
        for arg_name, value in named:
            if arg_name.startswith("$"):
                self.context.set_special(arg_name, value)
            elif arg_name in bound or arg_name in names:
                bound[arg_name] = value
            else:
                logger.warning("%s: unknown parameter '%s' at %s ignored", name, arg_name, position)
        for param_name, value in bound.items():
            self.bind(callee, param_name, value)
        # Named $ arguments already sit in the call's special-variable frame.
        frame = self.context.special_frames[-1]
        for param in parameters:
            param_name = param.name.name
            if param_name in bound or param_name in frame:
                continue
            value = UNDEF if param.default is None else self.evaluate(param.default, callee)
            self.bind(callee, param_name, value)

    # --- Calls ---

    def call_function(self, function: FunctionValue, positional: list[Any],
                      named: list[tuple[str, Any]], position: Optional[Position] = None) -> Any:
        with self.context.invocation(function.name, position), self.context.special_frame():
            callee = function.scope.child_scope()
            self._bind_parameters(function.parameters, positional, named, callee,
                                  function.name, position)
            return self.evaluate(function.body, callee)

    def call_module(self, module: ModuleValue, positional: list[Any],
                    named: list[tuple[str, Any]], statements: list[ASTNode],
                    caller_scope: Scope, caller_children: ChildrenRef,
                    position: Optional[Position] = None) -> list[Geometry]:
        with self.context.invocation(module.name, position), self.context.special_frame():
            callee = module.scope.child_scope()
            self._bind_parameters(module.declaration.parameters, positional, named, callee,
                                  module.name, position)
            self.context.set_special("$children", float(len(statements)))
            children = ChildrenRef(tuple(statements), caller_scope, caller_children)
            return self.execute_block(module.declaration.children, callee, children)

    # --- Statements ---

    def _exec_assignment(self, stmt: Assignment, scope: Scope, children: ChildrenRef):
        self.bind(scope, stmt.name.name, self.evaluate(stmt.expr, scope))
        return []

    def _exec_declaration(self, stmt, scope: Scope, children: ChildrenRef):
        # Bound by hoist() when the enclosing block started.
        return []

    def _exec_expression(self, stmt: ExpressionStatement, scope: Scope, children: ChildrenRef):
        self.evaluate(stmt.expr, scope)
        return []

    def _exec_call(self, stmt: ModularCall, scope: Scope, children: ChildrenRef):
        name = stmt.name.name
        module = scope.lookup_module(name)
        if module is None and name != "children" and name not in BUILTIN_MODULES:
            raise EvalError(EvalErrorKind.UNDEFINED_MODULE, f"unknown module '{name}'",
                            stmt.position)
        positional, named = self.evaluate_arguments(stmt.arguments, scope)
        if module is not None:
            return self.call_module(module, positional, named, stmt.children, scope, children,
                                    stmt.position)
        if name == "children":
            return self._exec_children(positional, dict(named), children, stmt.position)

        specials = {k: v for k, v in named if k.startswith("$")}
        plain = {k: v for k, v in named if not k.startswith("$")}
        call = ModuleCall(name, positional, plain, stmt.children, scope, children, self,
                          stmt.position)
        with self.context.special_frame(specials):
            return BUILTIN_MODULES[name](call)

    def _child_indices(self, selector: Any, count: int, position: Optional[Position]) -> list[int]:
        def as_index(value: Any) -> int:
            if not is_number(value) or value != value:
                raise EvalError(EvalErrorKind.TYPE_MISMATCH,
                                f"children(): index must be a number, got {type_name(value)}",
                                position)
            return int(value)

        if selector is UNDEF:
            return list(range(count))
        if is_number(selector):
            return [as_index(selector)]
        if isinstance(selector, list):
            return [as_index(v) for v in selector]
        if isinstance(selector, RangeValue):
            return [as_index(v) for v in selector]
        raise EvalError(EvalErrorKind.TYPE_MISMATCH,
                        f"children(): invalid index of type {type_name(selector)}", position)

    def _exec_children(self, positional: list[Any], named: dict[str, Any],
                       children: ChildrenRef, position: Optional[Position]) -> list[Geometry]:
        selector = positional[0] if positional else named.get("index", UNDEF)
        indices = self._child_indices(selector, children.count, position)
        if children.scope is None or not children.statements:
            return []
        scope = children.scope.child_scope()
        self.hoist(children.statements, scope)
        geometries = []
        for i in indices:
            if not 0 <= i < children.count:
                logger.warning("children(): index %d out of range at %s", i, position)
                continue
            stmt = children.statements[i]
            self.context.check_cancelled(stmt.position)
            geometries.extend(self.execute(stmt, scope, children.outer or NO_CHILDREN))
        return geometries

    def _iteration_values(self, value: Any) -> Iterable[Any]:
        if isinstance(value, (list, RangeValue)):
            return value
        if isinstance(value, str):
            return list(value)
        return [value]

    def _for_each_binding(self, assignments: list[Assignment], scope: Scope,
                          position: Optional[Position], body: Callable[[Scope], None]) -> None:
        """Call ``body`` once per combination of loop values, outer assignment first."""
        if not assignments:
            body(scope)
            return
        first, rest = assignments[0], assignments[1:]
        iterable = self.evaluate(first.expr, scope)
        if isinstance(iterable, RangeValue) and iterable.count() == 0 and iterable.step == 0:
            logger.warning("for loop over a range with step 0 at %s", position)
        for value in self._iteration_values(iterable):
            self.context.check_cancelled(position)
            iteration = scope.child_scope()
            with self.context.special_frame():
                self.bind(iteration, first.name.name, value)
                self._for_each_binding(rest, iteration, position, body)

    def _exec_for(self, stmt: ModularFor, scope: Scope, children: ChildrenRef):
        geometries: list[Geometry] = []

        def body(iteration: Scope) -> None:
            geometries.extend(self.execute_block(stmt.children, iteration, children))

        self._for_each_binding(stmt.assignments, scope, stmt.position, body)
        return geometries

    def _exec_intersection_for(self, stmt: ModularIntersectionFor, scope: Scope,
                               children: ChildrenRef):
        parts: list[Geometry] = []

        def body(iteration: Scope) -> None:
            united = self.union(self.execute_block(stmt.children, iteration, children),
                                stmt.position, "intersection_for")
            if united is not None:
                parts.append(united)

        self._for_each_binding(stmt.assignments, scope, stmt.position, body)
        if len(parts) <= 1:
            return parts
        handle = self.backend_call("boolean", "intersection", [g.handle for g in parts],
                                   position=stmt.position, label="intersection_for")
        return [Geometry(handle)]

    def _exec_if(self, stmt: ModularIf, scope: Scope, children: ChildrenRef):
        branch = stmt.true_branch if truthy(self.evaluate(stmt.condition, scope)) \
            else stmt.false_branch
        if not branch:
            return []
        with self.context.special_frame():
            return self.execute_block(branch, scope.child_scope(), children)

    def _exec_let(self, stmt: ModularLet, scope: Scope, children: ChildrenRef):
        with self.context.special_frame():
            inner = scope.child_scope()
            self._bind_assignments(stmt.assignments, inner)
            return self.execute_block(stmt.children, inner, children)

    def _exec_echo(self, stmt: ModularEcho, scope: Scope, children: ChildrenRef):
        self._echo(stmt.arguments, scope)
        with self.context.special_frame():
            return self.execute_block(stmt.children, scope.child_scope(), children)

    def _exec_assert(self, stmt: ModularAssert, scope: Scope, children: ChildrenRef):
        self._check_assertion(stmt.arguments, scope, stmt.position)
        with self.context.special_frame():
            return self.execute_block(stmt.children, scope.child_scope(), children)

    def _exec_block(self, stmt: ModularBlock, scope: Scope, children: ChildrenRef):
        with self.context.special_frame():
            return self.execute_block(stmt.children, scope.child_scope(), children)

    # --- Imports ---

    def _exec_import(self, stmt: ImportStatement, scope: Scope, children: ChildrenRef):
        resolver = self.context.import_resolver
        if resolver is None:
            raise EvalError(EvalErrorKind.IMPORT_ERROR,
                            f"cannot {stmt.kind} <{stmt.path}>: no import resolver configured",
                            stmt.position)
        search_dirs = []
        origin = stmt.position.origin
        if origin and not origin.startswith("<") and os.path.dirname(origin):
            search_dirs.append(os.path.dirname(origin))
        search_dirs.extend(self.context.search_dirs)
        try:
            resolved = resolver.resolve(stmt.path, search_dirs)
            if resolved in self.context.include_stack:
                raise EvalError(EvalErrorKind.IMPORT_ERROR,
                                f"circular {stmt.kind} of '{stmt.path}'", stmt.position)
            source = resolver.load(resolved)
        except ImportResolutionError as e:
            raise EvalError(EvalErrorKind.IMPORT_ERROR, str(e), stmt.position) from e

        # Imported here: the ast package imports the parser lazily as well.
        from ..ast import parse_ast
        statements = parse_ast(source, origin=resolved)
        logger.debug("%s <%s> resolved to %s", stmt.kind, stmt.path, resolved)

        self.context.include_stack.append(resolved)
        try:
            if stmt.kind == "include":
                return self.execute_block(statements, scope, children)
            library = self._load_library(statements)
        finally:
            self.context.include_stack.pop()

        for name, function in library.functions.items():
            scope.define_function(name, function)
        for name, module in library.modules.items():
            scope.define_module(name, module)
        if stmt.kind == "import":
            for name, value in library.variables.items():
                scope.define_variable(name, value)
        return []

    def _load_library(self, statements: list[ASTNode]) -> Scope:
        """Evaluate the declarations and assignments of a used file in a fresh scope."""
        library = Scope()
        self.hoist(statements, library)
        with self.context.special_frame():
            for stmt in statements:
                if isinstance(stmt, Assignment):
                    self.execute(stmt, library, NO_CHILDREN)
                elif isinstance(stmt, ImportStatement) and stmt.kind != "include":
                    self.execute(stmt, library, NO_CHILDREN)
        return library

    # --- Expressions ---

    def evaluate(self, node: Expression, scope: Scope) -> Any:
        handler = self._expression_handlers.get(type(node))
        if handler is None:
            raise TypeError(f"cannot evaluate {type(node).__name__}")
        return handler(node, scope)

    def _eval_identifier(self, node: Identifier, scope: Scope) -> Any:
        if node.is_special:
            return self.context.lookup_special(node.name, node.position)
        value = scope.lookup_variable(node.name)
        if value is None:
            logger.warning("unknown variable %s at %s", node.name, node.position)
            return UNDEF
        return value

    def _eval_binary(self, node: BinaryOp, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        if node.op == "&&":
            return truthy(left) and truthy(self.evaluate(node.right, scope))
        if node.op == "||":
            return truthy(left) or truthy(self.evaluate(node.right, scope))
        return operators.binary(node.op, left, self.evaluate(node.right, scope))

    def _eval_unary(self, node: UnaryOp, scope: Scope) -> Any:
        return operators.unary(node.op, self.evaluate(node.expr, scope))

    def _eval_ternary(self, node: TernaryOp, scope: Scope) -> Any:
        if truthy(self.evaluate(node.condition, scope)):
            return self.evaluate(node.true_expr, scope)
        return self.evaluate(node.false_expr, scope)

    def _eval_range(self, node: RangeLiteral, scope: Scope) -> Any:
        start = self.evaluate(node.start, scope)
        end = self.evaluate(node.end, scope)
        step = 1.0 if node.step is None else self.evaluate(node.step, scope)
        if not (is_number(start) and is_number(step) and is_number(end)):
            logger.warning("range bounds must be numbers at %s", node.position)
            return UNDEF
        start, step, end = float(start), float(step), float(end)
        if node.step is None and start > end:
            logger.warning("DEPRECATED: range [%s : %s] with begin > end at %s, swapped",
                           format_value(start), format_value(end), node.position)
            start, end = end, start
        return RangeValue(start, step, end)

    def _eval_vector(self, node: VectorLiteral, scope: Scope) -> Any:
        return [self.evaluate(elem, scope) for elem in node.elements]

    def _eval_comprehension(self, node: ListComprehension, scope: Scope) -> Any:
        result: list[Any] = []
        for elem in node.elements:
            self._generate(elem, scope, result)
        return result

    def _generate(self, item, scope: Scope, out: list[Any]) -> None:
        """Append the values produced by one comprehension element to ``out``."""
        if isinstance(item, Expression):
            out.append(self.evaluate(item, scope))
        elif isinstance(item, ListCompFor):
            self._for_each_binding(item.assignments, scope, item.position,
                                   lambda iteration: self._generate(item.body, iteration, out))
        elif isinstance(item, ListCompCFor):
            self._generate_c_for(item, scope, out)
        elif isinstance(item, ListCompIf):
            if truthy(self.evaluate(item.condition, scope)):
                self._generate(item.true_expr, scope, out)
            elif item.false_expr is not None:
                self._generate(item.false_expr, scope, out)
        elif isinstance(item, ListCompLet):
            with self.context.special_frame():
                inner = scope.child_scope()
                self._bind_assignments(item.assignments, inner)
                self._generate(item.body, inner, out)
        elif isinstance(item, ListCompEach):
            if isinstance(item.body, Expression):
                value = self.evaluate(item.body, scope)
                if isinstance(value, (list, RangeValue, str)):
                    out.extend(value)
                else:
                    out.append(value)
            else:
                self._generate(item.body, scope, out)
        else:
            raise TypeError(f"cannot generate from {type(item).__name__}")

    def _generate_c_for(self, item: ListCompCFor, scope: Scope, out: list[Any]) -> None:
        with self.context.special_frame():
            state = scope.child_scope()
            self._bind_assignments(item.initial, state)
            while truthy(self.evaluate(item.condition, state)):
                self.context.check_cancelled(item.position)
                self._generate(item.body, state, out)
                updates = [(a.name.name, self.evaluate(a.expr, state)) for a in item.increment]
                following = scope.child_scope()
                following.variables.update(state.variables)
                for name, value in updates:
                    self.bind(following, name, value)
                state = following

    def _eval_let(self, node: LetOp, scope: Scope) -> Any:
        with self.context.special_frame():
            inner = scope.child_scope()
            self._bind_assignments(node.assignments, inner)
            return self.evaluate(node.body, inner)

    def _echo(self, arguments: list[Argument], scope: Scope) -> None:
        parts = []
        for arg in arguments:
            text = format_value(self.evaluate(arg.expr, scope), quote_strings=True)
            if isinstance(arg, NamedArgument):
                text = f"{arg.name.name} = {text}"
            parts.append(text)
        self.context.echo(", ".join(parts))

    def _eval_echo(self, node: EchoOp, scope: Scope) -> Any:
        self._echo(node.arguments, scope)
        return UNDEF if node.body is None else self.evaluate(node.body, scope)

    def _check_assertion(self, arguments: list[Argument], scope: Scope,
                         position: Optional[Position]) -> None:
        condition = message = None
        positional = [a for a in arguments if not isinstance(a, NamedArgument)]
        for arg in arguments:
            if isinstance(arg, NamedArgument):
                if arg.name.name == "condition":
                    condition = arg
                elif arg.name.name == "message":
                    message = arg
        if condition is None and positional:
            condition = positional.pop(0)
        if message is None and positional:
            message = positional[0]

        if condition is not None and truthy(self.evaluate(condition.expr, scope)):
            return
        text = "Assertion '{}' failed".format(
            _expression_text(condition.expr) if condition is not None else "undef")
        if message is not None:
            value = self.evaluate(message.expr, scope)
            text += ": " + (value if isinstance(value, str) else format_value(value))
        raise EvalError(EvalErrorKind.ASSERTION_FAILED, text, position)

    def _eval_assert(self, node: AssertOp, scope: Scope) -> Any:
        self._check_assertion(node.arguments, scope, node.position)
        return UNDEF if node.body is None else self.evaluate(node.body, scope)

    def _eval_function_literal(self, node: FunctionLiteral, scope: Scope) -> Any:
        return FunctionValue(node.parameters, node.body, scope)

    def _eval_call(self, node: PrimaryCall, scope: Scope) -> Any:
        left = node.left
        if isinstance(left, Identifier) and not left.is_special:
            name = left.name
            function = scope.lookup_function(name)
            if function is None:
                value = scope.lookup_variable(name)
                if isinstance(value, FunctionValue):
                    function = value
            if function is None:
                builtin = BUILTIN_FUNCTIONS.get(name)
                if builtin is None:
                    raise EvalError(EvalErrorKind.UNDEFINED_FUNCTION,
                                    f"unknown function '{name}'", node.position)
                positional, named = self.evaluate_arguments(node.arguments, scope)
                return builtin(BuiltinCall(name, positional, dict(named), node.position))
        else:
            function = self.evaluate(left, scope)
            if not isinstance(function, FunctionValue):
                raise EvalError(EvalErrorKind.TYPE_MISMATCH,
                                f"cannot call a value of type {type_name(function)}",
                                node.position)
        positional, named = self.evaluate_arguments(node.arguments, scope)
        return self.call_function(function, positional, named, node.position)

    def _eval_index(self, node: PrimaryIndex, scope: Scope) -> Any:
        base = self.evaluate(node.left, scope)
        index = self.evaluate(node.index, scope)
        if not isinstance(base, (list, str)) or not is_number(index) or index != index:
            return UNDEF
        if not 0 <= index < len(base):
            return UNDEF
        return base[int(index)]

    def _eval_member(self, node: PrimaryMember, scope: Scope) -> Any:
        base = self.evaluate(node.left, scope)
        index = _MEMBER_INDEX.get(node.member.name)
        if isinstance(base, list) and index is not None and index < len(base):
            return base[index]
        if isinstance(base, RangeValue):
            member = {"begin": base.start, "step": base.step, "end": base.end}
            return member.get(node.member.name, UNDEF)
        return UNDEF


def evaluate(statements: list[ASTNode], root_scope: Optional[Scope] = None,
             context: Optional[EvaluationContext] = None) -> GeometryProgram:
    """Evaluate parsed statements into a :class:`GeometryProgram`.

    Args:
        statements: Top-level statements, as returned by the parser.
        root_scope: Scope to evaluate in. A fresh scope is used when omitted.
        context: Evaluation state and collaborators. Defaults to a context with
            a :class:`~openscad_engine.backend.RecordingBackend`.

    Raises:
        EvalError: On the first evaluation failure.
    """
    context = context if context is not None else EvaluationContext()
    scope = root_scope if root_scope is not None else Scope()
    return Evaluator(context).run(statements, scope)
