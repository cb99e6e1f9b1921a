"""Plain-data, JSON and YAML forms of the AST.

A node becomes a mapping: ``_type`` holds the class name, ``_position``
holds ``origin``/``line``/``column`` when positions are kept, and every
other dataclass field is stored under its own name. Lists of nodes become
lists of mappings. The CLI's ``parse --format json|yaml`` writes this form.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any

from ..position import Position, UNKNOWN_POSITION
from . import nodes
from .nodes import ASTNode, NumberLiteral

_SCALARS = (str, int, float, bool)

NODE_TYPES: dict[str, type[ASTNode]] = {
    name: obj for name, obj in vars(nodes).items()
    if isinstance(obj, type) and issubclass(obj, ASTNode)
}


def _require_yaml():
    try:
        import yaml
    except ImportError as e:
        raise ImportError(
            "PyYAML is required for the YAML form of the AST. "
            "Install it with: pip install openscad-engine[yaml]"
        ) from e
    return yaml


def _to_data(value: Any, keep_positions: bool) -> Any:
    if value is None or isinstance(value, _SCALARS):
        return value
    if isinstance(value, list):
        return [_to_data(item, keep_positions) for item in value]
    if not isinstance(value, ASTNode):
        raise TypeError(f"cannot serialize {type(value).__name__}")
    data: dict[str, Any] = {"_type": type(value).__name__}
    if keep_positions:
        pos = value.position
        data["_position"] = {"origin": pos.origin, "line": pos.line, "column": pos.column}
    for f in dataclasses.fields(value):
        if f.name != "position":
            data[f.name] = _to_data(getattr(value, f.name), keep_positions)
    return data


def _node_from_data(data: Any) -> ASTNode:
    if not isinstance(data, dict) or "_type" not in data:
        raise ValueError("Missing '_type' field in node data")
    cls = NODE_TYPES.get(data["_type"])
    if cls is None:
        raise ValueError(f"Unknown node type: {data['_type']}")

    pos = data.get("_position")
    position = Position(pos["origin"], pos["line"], pos["column"]) if pos else UNKNOWN_POSITION
    names = {f.name for f in dataclasses.fields(cls)} - {"position"}
    kwargs = {k: _from_data(v) for k, v in data.items() if k in names}
    if cls is NumberLiteral:
        kwargs["val"] = float(kwargs["val"])
    return cls(position=position, **kwargs)


def _from_data(value: Any) -> Any:
    if isinstance(value, dict) and "_type" in value:
        return _node_from_data(value)
    if isinstance(value, list):
        return [_from_data(item) for item in value]
    if value is None or isinstance(value, _SCALARS):
        return value
    raise TypeError(f"cannot deserialize {type(value).__name__}")


def ast_to_dict(ast: ASTNode | list[ASTNode] | None, include_position: bool = True) -> Any:
    """Return the plain-data form of a node, a list of nodes, or None."""
    return _to_data(ast, include_position)


def ast_from_dict(data: Any) -> ASTNode | list[ASTNode] | None:
    """Rebuild nodes from :func:`ast_to_dict` output.

    Raises:
        ValueError: On a mapping without ``_type`` or with an unknown type.
    """
    if data is None:
        return None
    if isinstance(data, list):
        return [_node_from_data(item) for item in data]
    return _node_from_data(data)


def ast_to_json(ast: ASTNode | list[ASTNode] | None, include_position: bool = True,
                indent: int | None = 2) -> str:
    return json.dumps(ast_to_dict(ast, include_position), indent=indent)


def ast_from_json(text: str) -> ASTNode | list[ASTNode] | None:
    return ast_from_dict(json.loads(text))


def ast_to_yaml(ast: ASTNode | list[ASTNode] | None, include_position: bool = True) -> str:
    """YAML form of the AST. Needs the ``yaml`` extra."""
    yaml = _require_yaml()
    return yaml.dump(ast_to_dict(ast, include_position),
                     default_flow_style=False, sort_keys=False, allow_unicode=True)


def ast_from_yaml(text: str) -> ASTNode | list[ASTNode] | None:
    yaml = _require_yaml()
    return ast_from_dict(yaml.safe_load(text))
