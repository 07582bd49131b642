"""Runtime support imported by synthesized render modules.

A render module only ever reaches into this module. It builds a
:class:`RenderContext`, executes its frontmatter declarations in a
:class:`~islet.frontmatter.Scope`, then hands the embedded template to
:func:`render_template`, which substitutes expressions, slots and
components on a copy of the tree before it is serialized.
"""

from __future__ import annotations

import dataclasses
import importlib.util
import inspect
import json
import types
import uuid
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, ClassVar, Protocol, assert_never

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
from islet.errors import EvaluationError
from islet.expr import UNDEFINED, evaluate, render_value, to_json, to_string
from islet.frontmatter import Scope
from islet.logger import get_logger
from islet.markup import BuildOptions, build_markup, escape_attr, escape_html
from islet.serialize import from_dict

__all__ = [
    "ComponentRef",
    "HotContext",
    "RenderContext",
    "Scope",
    "island_markup",
    "load_module",
    "load_template",
    "render_template",
    "serialize_html",
]

logger = get_logger(__name__)

ISLAND_TAG = "islet-island"
DEFAULT_SLOT = "default"


@dataclass(frozen=True, slots=True)
class ComponentRef:
    """An entry in a render module's component registry."""

    name: str
    path: str
    kind: str


class Renderable(Protocol):
    async def render(
        self,
        props: Mapping[str, Any] | None = None,
        *,
        resolve: Resolver | None = None,
        slots: Mapping[str, str] | None = None,
    ) -> Mapping[str, Any]: ...


Resolver = Callable[[ComponentRef], "Renderable | None"]


@dataclass(frozen=True, slots=True)
class RenderContext:
    """Per-call values visible to the frontmatter and template."""

    props: dict[str, Any]
    request: dict[str, Any] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    slots: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def create(
        cls,
        props: Mapping[str, Any] | None = None,
        *,
        slots: Mapping[str, str] | None = None,
    ) -> RenderContext:
        """Build a context from render() arguments.

        A host may pass ``request`` and ``params`` inside an ``Astro``
        entry of props; it is removed from the props the template sees.
        """
        values = dict(props or {})
        astro = values.pop("Astro", None)
        if not isinstance(astro, Mapping):
            astro = {}
        return cls(
            props=values,
            request=dict(astro.get("request") or {}),
            params=dict(astro.get("params") or {}),
            slots=dict(slots or {}),
        )

    def names(self) -> dict[str, Any]:
        astro = {
            "props": self.props,
            "request": self.request,
            "params": self.params,
            "slots": {name: True for name in self.slots},
        }
        return {
            "Astro": astro,
            "props": self.props,
            "request": self.request,
            "params": self.params,
        }


def load_template(data: dict[str, Any]) -> Fragment:
    """Rebuild an embedded template tree."""
    tree = from_dict(data)
    if not isinstance(tree, Fragment):
        msg = f"embedded template must be a Fragment, got {type(tree).__name__}"
        raise TypeError(msg)
    return tree


def serialize_html(tree: Fragment, *, pretty_print: bool = False) -> str:
    """Serialize a substituted tree; escaping stays on for substituted text."""
    return build_markup(tree, BuildOptions(pretty_print=pretty_print))


# ---------------------------------------------------------------------------
# Islands
# ---------------------------------------------------------------------------


def island_markup(
    name: str,
    props: Mapping[str, Any],
    directive: str,
    value: str | None = None,
    inner: str = "",
    uid: str | None = None,
) -> str:
    """Wrap statically rendered component output in a hydration marker."""
    uid = uid or uuid.uuid4().hex
    props_json = json.dumps(to_json(dict(props)), separators=(",", ":"), ensure_ascii=False)
    attrs = [
        f'uid="{escape_attr(uid)}"',
        f'component-export="{escape_attr(name)}"',
        f"component-props='{escape_attr(props_json, single_quote=True)}'",
        f'client-directive="{escape_attr(directive)}"',
    ]
    if value is not None:
        attrs.append(f'directive-value="{escape_attr(value)}"')
    return f"<{ISLAND_TAG} {' '.join(attrs)}>{inner}</{ISLAND_TAG}>"


# ---------------------------------------------------------------------------
# Template substitution
# ---------------------------------------------------------------------------


class _TemplateRenderer:
    def __init__(
        self,
        names: Mapping[str, Any],
        components: Mapping[str, ComponentRef],
        resolve: Resolver | None,
        slots: Mapping[str, str],
    ) -> None:
        self._names = names
        self._components = components
        self._resolve = resolve
        self._slots = slots

    def _evaluate(self, code: str) -> Any:
        try:
            return evaluate(code, self._names)
        except EvaluationError as exc:
            logger.debug("expression evaluated to nothing: %s", exc)
            return UNDEFINED

    async def children(self, nodes: tuple[Node, ...]) -> tuple[Node, ...]:
        result: list[Node] = []
        for child in nodes:
            replaced = await self.node(child)
            if replaced is not None:
                result.append(replaced)
        return tuple(result)

    async def node(self, node: Node) -> Node | None:
        if isinstance(node, Fragment):
            return dataclasses.replace(node, children=await self.children(node.children))
        if isinstance(node, Frontmatter):
            return None
        if isinstance(node, (Text, RawHTML)):
            return node
        if isinstance(node, Expression):
            try:
                text = render_value(self._evaluate(node.code))
            except EvaluationError:
                text = ""
            return RawHTML(escape_html(text), node.span)
        if isinstance(node, Element):
            if node.tag.lower() == "slot":
                return await self._slot(node)
            return dataclasses.replace(
                node,
                attrs=tuple(self._attr(a) for a in node.attrs),
                children=await self.children(node.children),
            )
        if isinstance(node, Component):
            return RawHTML(await self._component(node), node.span)
        assert_never(node)

    def _attr(self, attr: Attr) -> Attr:
        if not attr.expression:
            return attr
        result = self._evaluate(attr.code)
        if result is None or result is UNDEFINED or result is False:
            value: str | bool = False
        elif result is True:
            value = True
        else:
            try:
                value = to_string(result)
            except EvaluationError:
                value = False
        return dataclasses.replace(attr, value=value, expression=False)

    async def _slot(self, node: Element) -> Node:
        name = next(
            (a.value for a in node.attrs if a.name == "name" and isinstance(a.value, str)),
            DEFAULT_SLOT,
        )
        content = self._slots.get(name)
        if content is not None:
            return RawHTML(content, node.span)
        # Fallback content
        return Fragment(await self.children(node.children), node.span)

    def _props(self, node: Component) -> dict[str, Any]:
        props: dict[str, Any] = {}
        for attr in node.attrs:
            if attr.directive is not None:
                continue
            if attr.expression:
                value = self._evaluate(attr.code)
                props[attr.name] = None if value is UNDEFINED else value
            else:
                props[attr.name] = attr.value
        return props

    async def _component(self, node: Component) -> str:
        props = self._props(node)
        children = await self.children(node.children)
        slot_html = serialize_html(Fragment(children, node.span)) if children else ""

        inner = await self._render_component(node.tag, props, slot_html)

        directive = node.directive
        if directive is not None and directive.directive is not None:
            value = directive.value if isinstance(directive.value, str) else None
            return island_markup(node.tag, props, directive.directive, value, inner or "")
        if inner is None:
            return f"<!-- Component: {node.tag} -->"
        return inner

    async def _render_component(
        self, tag: str, props: dict[str, Any], slot_html: str
    ) -> str | None:
        ref = self._components.get(tag)
        if ref is None or self._resolve is None:
            return None
        target = self._resolve(ref)
        if inspect.isawaitable(target):
            target = await target
        if target is None:
            logger.debug("component %s (%s) did not resolve", ref.name, ref.path)
            return None
        result = await target.render(
            props,
            resolve=self._resolve,
            slots={DEFAULT_SLOT: slot_html} if slot_html else {},
        )
        return str(result.get("html", ""))


async def render_template(
    template: Fragment,
    names: Mapping[str, Any],
    *,
    components: Mapping[str, ComponentRef] | None = None,
    resolve: Resolver | None = None,
    slots: Mapping[str, str] | None = None,
) -> Fragment:
    """Return a copy of template with expressions, slots and components substituted.

    The template itself is never modified.
    """
    renderer = _TemplateRenderer(names, components or {}, resolve, slots or {})
    return Fragment(await renderer.children(template.children), template.span)


# ---------------------------------------------------------------------------
# Development glue
# ---------------------------------------------------------------------------


class HotContext:
    """Live-reload registration for a render module loaded in development.

    Each (re)load of a module calls :meth:`register`, bumping the version
    a dev server can poll. Callbacks added with :meth:`accept` run on
    :meth:`invalidate`.
    """

    _registry: ClassVar[dict[str, HotContext]] = {}

    def __init__(self, filename: str) -> None:
        self.filename = filename
        self.version = 0
        self._callbacks: list[Callable[[str], None]] = []

    @classmethod
    def register(cls, filename: str) -> HotContext:
        ctx = cls._registry.get(filename)
        if ctx is None:
            ctx = cls._registry[filename] = cls(filename)
        else:
            ctx.version += 1
        return ctx

    @classmethod
    def get(cls, filename: str) -> HotContext | None:
        return cls._registry.get(filename)

    @classmethod
    def clear(cls) -> None:
        cls._registry.clear()

    def accept(self, callback: Callable[[str], None]) -> None:
        self._callbacks.append(callback)

    def invalidate(self) -> None:
        self.version += 1
        for callback in self._callbacks:
            callback(self.filename)


def load_module(code: str, name: str = "islet_module") -> types.ModuleType:
    """Execute synthesized module source into a fresh module object.

    code must be the output of :func:`islet.synth.synthesize_module`. It is
    run with full interpreter privileges, so never pass source from any
    other origin. The module is not added to ``sys.modules``.
    """
    spec = importlib.util.spec_from_loader(name, loader=None, origin=f"<{name}>")
    assert spec is not None
    module = importlib.util.module_from_spec(spec)
    module.__file__ = f"<{name}>"
    exec(compile(code, module.__file__, "exec"), module.__dict__)
    return module
