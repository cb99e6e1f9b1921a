from __future__ import annotations
import math
from dataclasses import dataclass, field
from typing import Optional, Union

from ..position import Position


# --- Formatting helpers ---

def _format_number(val: float) -> str:
    if math.isfinite(val) and val == int(val) and abs(val) < 1e16:
        return str(int(val))
    return repr(val)


def _escape_string(val: str) -> str:
    return (val.replace("\\", "\\\\").replace('"', '\\"')
            .replace("\n", "\\n").replace("\t", "\\t").replace("\r", "\\r"))


def _wrap(expr: "Expression") -> str:
    """Format an operand, parenthesizing forms that extend to the right."""
    if isinstance(expr, (LetOp, EchoOp, AssertOp, FunctionLiteral)):
        return f"({expr})"
    return str(expr)


def _postfix_base(expr: "Expression") -> str:
    if isinstance(expr, (Identifier, NumberLiteral, StringLiteral, BooleanLiteral,
                         UndefinedLiteral, VectorLiteral, ListComprehension,
                         RangeLiteral, PrimaryCall, PrimaryIndex, PrimaryMember,
                         BinaryOp, UnaryOp, TernaryOp)):
        return str(expr)
    return f"({expr})"


def _join(items) -> str:
    return ", ".join(str(item) for item in items)


def format_statement(node: "ASTNode") -> str:
    """Format a statement-level node as OpenSCAD source."""
    if isinstance(node, Assignment):
        return f"{node};"
    return str(node)


def _format_block(children: list["ASTNode"]) -> str:
    if not children:
        return "{ }"
    return "{ " + " ".join(format_statement(child) for child in children) + " }"


def format_program(nodes: list["ASTNode"]) -> str:
    """Format a list of top-level statements as OpenSCAD source, one per line."""
    return "\n".join(format_statement(node) for node in nodes)


# --- AST nodes classes. ---

@dataclass
class ASTNode(object):
    """Base class for all AST nodes.

    All AST nodes inherit from this class. It provides a common interface
    for source position tracking and string representation. ``str(node)``
    returns OpenSCAD source that parses back into an equal node.

    Attributes:
        position: The source position of this node in the original OpenSCAD code.
    """
    position: Position

    def __str__(self) -> str:
        """Return a string representation of the AST node."""
        raise NotImplementedError


@dataclass
class Expression(ASTNode):
    """Base class for all OpenSCAD expressions.

    Expressions are constructs that evaluate to a value: literals, operators,
    function calls, variable references and combinations of those.
    """
    pass


@dataclass
class Primary(Expression):
    """Base class for atomic expressions: literals and identifiers."""
    pass


@dataclass
class Identifier(Primary):
    """Represents an OpenSCAD identifier (variable, function or module name).

    Identifiers starting with ``$`` are special variables, which resolve
    through the call chain instead of the lexical scope chain.

    Examples:
        x = 10;           // 'x' is an Identifier
        sphere($fn=20);   // '$fn' is an Identifier

    Attributes:
        name: The identifier name as a string.
    """
    name: str

    @property
    def is_special(self) -> bool:
        return self.name.startswith("$")

    def __str__(self):
        return self.name

    def __repr__(self):
        return f"Identifier('{self.name}')"


@dataclass
class StringLiteral(Primary):
    """Represents an OpenSCAD string literal.

    Attributes:
        val: The string value without the surrounding quotes, escapes decoded.
    """
    val: str

    def __str__(self):
        return f'"{_escape_string(self.val)}"'


@dataclass
class NumberLiteral(Primary):
    """Represents an OpenSCAD numeric literal.

    Examples:
        42              // Integer
        3.14            // Floating point
        1e10            // Scientific notation
        0x1F            // Hexadecimal
        -10             // UnaryOp('-') applied to NumberLiteral(10)

    Attributes:
        val: The numeric value as a float.
    """
    val: float

    def __str__(self):
        return _format_number(self.val)


@dataclass
class BooleanLiteral(Primary):
    """Represents ``true`` or ``false``.

    Attributes:
        val: The boolean value (True or False).
    """
    val: bool

    def __str__(self):
        return "true" if self.val else "false"


@dataclass
class UndefinedLiteral(Primary):
    """Represents the ``undef`` literal."""

    def __str__(self):
        return "undef"


@dataclass
class ParameterDeclaration(ASTNode):
    """Represents a parameter declaration in a function or module definition.

    Examples:
        function foo(x) = x;              // Parameter without default
        module test(a, b=2) { ... }       // Parameter with default

    Attributes:
        name: The parameter name as an Identifier.
        default: The default value expression, or None if no default is provided.
    """
    name: Identifier
    default: Optional[Expression]

    def __str__(self):
        if self.default is None:
            return str(self.name)
        return f"{self.name} = {self.default}"


@dataclass
class Argument(ASTNode):
    """Base class for function and module call arguments."""
    pass


@dataclass
class PositionalArgument(Argument):
    """Represents a positional argument, e.g. the ``10`` in ``cube(10)``.

    Attributes:
        expr: The expression value of the argument.
    """
    expr: Expression

    def __str__(self):
        return f"{self.expr}"


@dataclass
class NamedArgument(Argument):
    """Represents a named argument, e.g. ``center=true`` in ``cube(10, center=true)``.

    A named argument always wins over a positional argument bound to the
    same parameter.

    Attributes:
        name: The parameter name as an Identifier.
        expr: The expression value of the argument.
    """
    name: Identifier
    expr: Expression

    def __str__(self):
        return f"{self.name} = {self.expr}"


@dataclass
class RangeLiteral(Primary):
    """Represents an OpenSCAD range literal.

    Examples:
        [0:10]      // Range from 0 to 10 with the implicit step 1
        [0:2:10]    // Range from 0 to 10 with step 2
        [10:-1:0]   // Range from 10 down to 0

    Attributes:
        start: The starting value of the range.
        step: The step size, or None when omitted.
        end: The ending value of the range (inclusive).
    """
    start: Expression
    step: Optional[Expression]
    end: Expression

    def __str__(self):
        if self.step is None:
            return f"[{self.start} : {self.end}]"
        return f"[{self.start} : {self.step} : {self.end}]"


@dataclass
class VectorLiteral(Primary):
    """Represents a vector literal such as ``[1, 2, 3]``.

    Attributes:
        elements: The element expressions, in order.
    """
    elements: list[Expression]

    def __str__(self):
        return f"[{_join(self.elements)}]"


@dataclass
class Assignment(ASTNode):
    """Represents a variable assignment.

    Assignments appear as statements and inside let, for and comprehension
    headers. Assigning to a ``$`` name sets a special variable for the
    current block and everything it calls.

    Examples:
        x = 10;
        let(a=1, b=2) a + b;
        for (i = [0:10]) { ... }

    Attributes:
        name: The variable name as an Identifier.
        expr: The expression value being assigned.
    """
    name: Identifier
    expr: Expression

    def __str__(self):
        return f"{self.name} = {self.expr}"


@dataclass
class BinaryOp(Expression):
    """Represents a binary operator application.

    Supported operators, loosest first: ``||``, ``&&``, ``== !=``,
    ``< <= > >=``, ``+ -``, ``* / %`` and the right associative ``^``.

    Attributes:
        op: The operator lexeme.
        left: The left operand.
        right: The right operand.
    """
    op: str
    left: Expression
    right: Expression

    def __str__(self):
        return f"({_wrap(self.left)} {self.op} {_wrap(self.right)})"


@dataclass
class UnaryOp(Expression):
    """Represents a prefix operator: ``-x``, ``+x`` or ``!x``.

    Attributes:
        op: The operator lexeme.
        expr: The operand.
    """
    op: str
    expr: Expression

    def __str__(self):
        return f"({self.op}{_wrap(self.expr)})"


@dataclass
class TernaryOp(Expression):
    """Represents ``condition ? true_expr : false_expr``.

    Attributes:
        condition: The condition expression.
        true_expr: Value when the condition is truthy.
        false_expr: Value otherwise.
    """
    condition: Expression
    true_expr: Expression
    false_expr: Expression

    def __str__(self):
        return f"({_wrap(self.condition)} ? {_wrap(self.true_expr)} : {_wrap(self.false_expr)})"


@dataclass
class LetOp(Expression):
    """Represents a let expression: ``let(a=1, b=a+1) a * b``.

    Each assignment sees the ones before it.

    Attributes:
        assignments: List of variable assignments local to this expression.
        body: The expression that uses the assigned variables.
    """
    assignments: list[Assignment]
    body: Expression

    def __str__(self):
        return f"let ({_join(self.assignments)}) {self.body}"


@dataclass
class EchoOp(Expression):
    """Represents an echo expression: ``echo("x =", x) x``.

    Attributes:
        arguments: Arguments to print.
        body: The expression to evaluate and return, or None (yields undef).
    """
    arguments: list[Argument]
    body: Optional[Expression]

    def __str__(self):
        body = "" if self.body is None else f" {self.body}"
        return f"echo({_join(self.arguments)}){body}"


@dataclass
class AssertOp(Expression):
    """Represents an assert expression: ``assert(x > 0, "positive") x``.

    Attributes:
        arguments: Condition and optional message.
        body: The expression to return if the assertion passes, or None.
    """
    arguments: list[Argument]
    body: Optional[Expression]

    def __str__(self):
        body = "" if self.body is None else f" {self.body}"
        return f"assert({_join(self.arguments)}){body}"


@dataclass
class FunctionLiteral(Expression):
    """Represents an anonymous function: ``function(x, y=2) x + y``.

    Attributes:
        parameters: The parameter declarations.
        body: The body expression.
    """
    parameters: list[ParameterDeclaration]
    body: Expression

    def __str__(self):
        return f"function({_join(self.parameters)}) {self.body}"


@dataclass
class PrimaryCall(Expression):
    """Represents a call: ``foo(1, b=2)`` or ``(function(x) x)(3)``.

    Attributes:
        left: The callee expression (usually an Identifier).
        arguments: The call arguments.
    """
    left: Expression
    arguments: list[Argument]

    def __str__(self):
        return f"{_postfix_base(self.left)}({_join(self.arguments)})"


@dataclass
class PrimaryIndex(Expression):
    """Represents indexing: ``v[0]``.

    Attributes:
        left: The indexed expression.
        index: The index expression.
    """
    left: Expression
    index: Expression

    def __str__(self):
        return f"{_postfix_base(self.left)}[{self.index}]"


@dataclass
class PrimaryMember(Expression):
    """Represents member access: ``v.x`` (``x``, ``y``, ``z`` select 0, 1, 2).

    Attributes:
        left: The accessed expression.
        member: The member name.
    """
    left: Expression
    member: Identifier

    def __str__(self):
        return f"{_postfix_base(self.left)}.{self.member}"


# --- List comprehension elements ---

@dataclass
class VectorElement(ASTNode):
    """Base class for list comprehension elements."""

    def __str__(self) -> str:
        raise NotImplementedError


VectorItem = Union[Expression, VectorElement]


@dataclass
class ListCompFor(VectorElement):
    """Represents the generators of a comprehension: ``for (i = [0:2], j = v) body``.

    Several assignments iterate as nested loops, the first outermost.

    Attributes:
        assignments: The loop variables and the values they iterate over.
        body: The element produced for each combination.
    """
    assignments: list[Assignment]
    body: VectorItem

    def __str__(self):
        return f"for ({_join(self.assignments)}) {self.body}"


@dataclass
class ListCompCFor(VectorElement):
    """Represents a C-style comprehension loop: ``for (i = 0; i < 5; i = i + 1) i``.

    Attributes:
        initial: Initial assignments.
        condition: Loop continues while this is truthy.
        increment: Assignments evaluated after each iteration.
        body: The element produced per iteration.
    """
    initial: list[Assignment]
    condition: Expression
    increment: list[Assignment]
    body: VectorItem

    def __str__(self):
        return (f"for ({_join(self.initial)}; {self.condition}; "
                f"{_join(self.increment)}) {self.body}")


@dataclass
class ListCompIf(VectorElement):
    """Represents the filter of a comprehension: ``if (cond) body [else other]``.

    Attributes:
        condition: The filter condition.
        true_expr: Element produced when the condition holds.
        false_expr: Element produced otherwise, or None to produce nothing.
    """
    condition: Expression
    true_expr: VectorItem
    false_expr: Optional[VectorItem] = None

    def __str__(self):
        if self.false_expr is None:
            return f"if ({self.condition}) {self.true_expr}"
        true_part = str(self.true_expr)
        if isinstance(self.true_expr, ListCompIf) and self.true_expr.false_expr is None:
            true_part = f"({true_part})"
        return f"if ({self.condition}) {true_part} else {self.false_expr}"


@dataclass
class ListCompLet(VectorElement):
    """Represents ``let (a = 1) body`` inside a comprehension.

    Attributes:
        assignments: Local assignments.
        body: The element using them.
    """
    assignments: list[Assignment]
    body: VectorItem

    def __str__(self):
        return f"let ({_join(self.assignments)}) {self.body}"


@dataclass
class ListCompEach(VectorElement):
    """Represents ``each body``, which splices a vector, range or string.

    Attributes:
        body: The spliced element.
    """
    body: VectorItem

    def __str__(self):
        return f"each {self.body}"


@dataclass
class ListComprehension(Primary):
    """Represents a vector literal containing comprehension elements.

    Examples:
        [for (i = [0:2]) i * i]              // [0, 1, 4]
        [for (i = [0:4]) if (i % 2 == 0) i]  // [0, 2, 4]
        [0, each [1, 2], for (i = [3:4]) i]  // [0, 1, 2, 3, 4]

    Attributes:
        elements: Plain expressions and comprehension elements, in order.
    """
    elements: list[VectorItem]

    def __str__(self):
        return f"[{_join(self.elements)}]"


# --- Statements ---

@dataclass
class ModuleInstantiation(ASTNode):
    """Base class for statements that produce geometry.

    Attributes:
        modifier: One of ``#``, ``%``, ``!``, ``*`` when the statement is
            prefixed by a modifier character, otherwise None.
    """
    modifier: Optional[str] = field(default=None, kw_only=True)

    def _prefix(self) -> str:
        return self.modifier or ""


@dataclass
class ModularCall(ModuleInstantiation):
    """Represents a module instantiation.

    Examples:
        cube(10);
        translate([1, 0, 0]) sphere(r=2);
        !difference() { cube(10); sphere(6); }

    Attributes:
        name: The module name.
        arguments: The call arguments.
        children: The child statements present at the call site.
    """
    name: Identifier
    arguments: list[Argument]
    children: list[ASTNode]

    def __str__(self):
        head = f"{self._prefix()}{self.name}({_join(self.arguments)})"
        if not self.children:
            return f"{head};"
        return f"{head} {_format_block(self.children)}"


@dataclass
class ModularFor(ModuleInstantiation):
    """Represents a for statement: ``for (i = [0:3], j = [0:1]) cube(i);``.

    Attributes:
        assignments: Loop variables, nested outer to inner.
        children: The loop body statements.
    """
    assignments: list[Assignment]
    children: list[ASTNode]

    def __str__(self):
        return f"{self._prefix()}for ({_join(self.assignments)}) {_format_block(self.children)}"


@dataclass
class ModularIntersectionFor(ModuleInstantiation):
    """Represents ``intersection_for (i = [0:2]) ...``.

    Attributes:
        assignments: Loop variables.
        children: The loop body statements.
    """
    assignments: list[Assignment]
    children: list[ASTNode]

    def __str__(self):
        return (f"{self._prefix()}intersection_for ({_join(self.assignments)}) "
                f"{_format_block(self.children)}")


@dataclass
class ModularLet(ModuleInstantiation):
    """Represents a let statement: ``let (r = 2) sphere(r);``.

    Attributes:
        assignments: Local assignments.
        children: Statements evaluated with the assignments in scope.
    """
    assignments: list[Assignment]
    children: list[ASTNode]

    def __str__(self):
        return f"{self._prefix()}let ({_join(self.assignments)}) {_format_block(self.children)}"


@dataclass
class ModularEcho(ModuleInstantiation):
    """Represents an echo statement: ``echo("x =", x);``.

    Attributes:
        arguments: Values to print.
        children: Statements evaluated after printing.
    """
    arguments: list[Argument]
    children: list[ASTNode]

    def __str__(self):
        head = f"{self._prefix()}echo({_join(self.arguments)})"
        if not self.children:
            return f"{head};"
        return f"{head} {_format_block(self.children)}"


@dataclass
class ModularAssert(ModuleInstantiation):
    """Represents an assert statement: ``assert(n > 0, "n must be positive");``.

    Attributes:
        arguments: Condition and optional message.
        children: Statements evaluated if the assertion holds.
    """
    arguments: list[Argument]
    children: list[ASTNode]

    def __str__(self):
        head = f"{self._prefix()}assert({_join(self.arguments)})"
        if not self.children:
            return f"{head};"
        return f"{head} {_format_block(self.children)}"


@dataclass
class ModularIf(ModuleInstantiation):
    """Represents ``if (cond) ... [else ...]``.

    Attributes:
        condition: The condition expression.
        true_branch: Statements evaluated when the condition is truthy.
        false_branch: Statements of the else branch, or None without else.
    """
    condition: Expression
    true_branch: list[ASTNode]
    false_branch: Optional[list[ASTNode]] = None

    def __str__(self):
        text = f"{self._prefix()}if ({self.condition}) {_format_block(self.true_branch)}"
        if self.false_branch is not None:
            text += f" else {_format_block(self.false_branch)}"
        return text


@dataclass
class ModularBlock(ModuleInstantiation):
    """Represents a braced group of statements: ``{ cube(1); sphere(1); }``.

    Attributes:
        children: The grouped statements.
    """
    children: list[ASTNode]

    def __str__(self):
        return f"{self._prefix()}{_format_block(self.children)}"


@dataclass
class ExpressionStatement(ASTNode):
    """An expression evaluated for its side effects: ``(echo(1) undef);``.

    Attributes:
        expr: The expression.
    """
    expr: Expression

    def __str__(self):
        return f"({self.expr});"


@dataclass
class ModuleDeclaration(ASTNode):
    """Represents a module declaration (definition).

    Examples:
        module rod(length, r=1) {
            cylinder(h=length, r=r);
        }

    Attributes:
        name: The module name as an Identifier.
        parameters: List of parameter declarations.
        children: The body statements.
    """
    name: Identifier
    parameters: list[ParameterDeclaration]
    children: list[ASTNode]

    def __str__(self):
        return f"module {self.name}({_join(self.parameters)}) {_format_block(self.children)}"


@dataclass
class FunctionDeclaration(ASTNode):
    """Represents a function declaration: ``function area(r) = PI * r * r;``.

    Attributes:
        name: The function name as an Identifier.
        parameters: List of parameter declarations.
        expr: The body expression.
    """
    name: Identifier
    parameters: list[ParameterDeclaration]
    expr: Expression

    def __str__(self):
        return f"function {self.name}({_join(self.parameters)}) = {self.expr};"


@dataclass
class ImportStatement(ASTNode):
    """Represents ``include <file>``, ``use <file>`` or ``import <file>``.

    - ``include`` evaluates the file's statements in place.
    - ``use`` makes the file's functions and modules available.
    - ``import`` makes the file's functions, modules and variables available.

    Attributes:
        kind: "include", "use" or "import".
        path: The path between the angle brackets.
    """
    kind: str
    path: str

    def __str__(self):
        return f"{self.kind} <{self.path}>"
