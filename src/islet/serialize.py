"""Tree serialization — plain-data round-trip for islet nodes.

Converts nodes to and from JSON-compatible dicts carrying a ``_type``
discriminator. Synthesized render modules embed their template this way,
and ``islet --debug`` prints it.

Spans are written as ``[[line, column, offset], [line, column, offset]]``.
Pass ``spans=False`` to leave them out; nodes restored without spans get
a zero-width span at the document start.
"""

from __future__ import annotations

import json
from dataclasses import fields
from typing import Any

from islet.ast import (
    Attr,
    Component,
    Element,
    Expression,
    Fragment,
    Frontmatter,
    Node,
    RawHTML,
    Text,
)
from islet.tokens import EMPTY_SPAN, Position, Span

# Registry of type names to classes for deserialization
_NODE_TYPES: dict[str, type] = {
    cls.__name__: cls
    for cls in (Fragment, Frontmatter, Element, Component, Text, Expression, RawHTML, Attr)
}


def to_dict(node: Node | Attr, *, spans: bool = True) -> dict[str, Any]:
    """Convert a node (or attribute) to a JSON-compatible dict."""
    result: dict[str, Any] = {"_type": type(node).__name__}

    for f in fields(node):
        value = getattr(node, f.name)
        if isinstance(value, Span):
            if spans:
                result[f.name] = _span_to_list(value)
            continue
        if isinstance(value, tuple):
            result[f.name] = [to_dict(item, spans=spans) for item in value]
            continue
        # Fields still at their default are left out
        if f.default is not value:
            result[f.name] = value
    return result


def _span_to_list(span: Span) -> list[list[int]]:
    return [
        [span.start.line, span.start.column, span.start.offset],
        [span.end.line, span.end.column, span.end.offset],
    ]


def _span_from_list(data: list[list[int]]) -> Span:
    start, end = data
    return Span(Position(*start), Position(*end))


def from_dict(data: dict[str, Any]) -> Any:
    """Reconstruct a node (or attribute) from a dict produced by to_dict.

    Raises:
        ValueError: If ``_type`` is missing or unknown.
    """
    type_name = data.get("_type")
    if type_name is None:
        msg = "Missing '_type' field in serialized node"
        raise ValueError(msg)

    node_cls = _NODE_TYPES.get(type_name)
    if node_cls is None:
        msg = f"Unknown node type: {type_name!r}"
        raise ValueError(msg)

    kwargs: dict[str, Any] = {}
    for f in fields(node_cls):
        if f.name == "span":
            raw_span = data.get("span")
            kwargs["span"] = EMPTY_SPAN if raw_span is None else _span_from_list(raw_span)
            continue
        if f.name not in data:
            continue
        raw = data[f.name]
        if f.name in ("attrs", "children"):
            kwargs[f.name] = tuple(from_dict(item) for item in raw)
        else:
            kwargs[f.name] = raw
    return node_cls(**kwargs)


def to_json(node: Node, *, indent: int | None = None, spans: bool = True) -> str:
    """Serialize a tree to a JSON string (deterministic key order)."""
    return json.dumps(to_dict(node, spans=spans), sort_keys=True, indent=indent)


def from_json(data: str) -> Fragment:
    """Deserialize a Fragment from a JSON string.

    Raises:
        ValueError: If the JSON doesn't represent a Fragment.
    """
    node = from_dict(json.loads(data))
    if not isinstance(node, Fragment):
        msg = f"Expected Fragment, got {type(node).__name__}"
        raise ValueError(msg)
    return node
