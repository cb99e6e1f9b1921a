"""Lexical scopes of the OpenSCAD evaluator."""
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Optional

from .values import FunctionValue, ModuleValue


@dataclass(eq=False)
class Scope:
    """A lexical scope holding variable, function and module bindings.

    Scopes form a tree through parent references, so lookups walk from inner
    to outer scopes. A scope does not own its parent.

    OpenSCAD has three separate namespaces:
    - Variables: Assignments and parameters
    - Functions: function declarations
    - Modules: module declarations

    The same name can exist in all three namespaces simultaneously.
    Special ``$`` variables are dynamically scoped and never stored here.

    Attributes:
        parent: The enclosing (parent) scope, or None for the root scope.
        variables: Variables defined in this scope (name -> value).
        functions: Functions defined in this scope (name -> FunctionValue).
        modules: Modules defined in this scope (name -> ModuleValue).
    """
    parent: Optional["Scope"] = field(default=None, repr=False)
    variables: dict[str, Any] = field(default_factory=dict)
    functions: dict[str, FunctionValue] = field(default_factory=dict)
    modules: dict[str, ModuleValue] = field(default_factory=dict)

    def lookup_variable(self, name: str) -> Optional[Any]:
        """Look up a variable by name, searching parent scopes.

        Returns:
            The bound value, or None if the name is not bound anywhere in the
            chain. A variable explicitly set to undef returns ``UNDEF``.
        """
        scope = self
        while scope is not None:
            if name in scope.variables:
                return scope.variables[name]
            scope = scope.parent
        return None

    def lookup_function(self, name: str) -> Optional[FunctionValue]:
        scope = self
        while scope is not None:
            if name in scope.functions:
                return scope.functions[name]
            scope = scope.parent
        return None

    def lookup_module(self, name: str) -> Optional[ModuleValue]:
        scope = self
        while scope is not None:
            if name in scope.modules:
                return scope.modules[name]
            scope = scope.parent
        return None

    def define_variable(self, name: str, value: Any) -> None:
        """Bind a variable in this scope, replacing any earlier binding.

        Raises:
            ValueError: For ``$``-prefixed names, which belong to the
                special-variable overlay.
        """
        if name.startswith("$"):
            raise ValueError(f"special variable {name} cannot be stored in a scope")
        self.variables[name] = value

    def define_function(self, name: str, value: FunctionValue) -> None:
        self.functions[name] = value

    def define_module(self, name: str, value: ModuleValue) -> None:
        self.modules[name] = value

    def child_scope(self) -> "Scope":
        """Create a new child scope with this scope as parent."""
        return Scope(parent=self)

    def __repr__(self) -> str:
        vars_str = ", ".join(self.variables.keys()) if self.variables else "none"
        funcs_str = ", ".join(self.functions.keys()) if self.functions else "none"
        mods_str = ", ".join(self.modules.keys()) if self.modules else "none"
        parent_str = "has parent" if self.parent else "root"
        return f"<Scope({parent_str}) vars=[{vars_str}] funcs=[{funcs_str}] mods=[{mods_str}]>"
