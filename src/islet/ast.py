"""AST node types for parsed islet documents."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from islet.tokens import Span

# Elements that never carry children or a closing tag.
VOID_ELEMENTS: frozenset[str] = frozenset(
    {
        "area",
        "base",
        "br",
        "col",
        "embed",
        "hr",
        "img",
        "input",
        "link",
        "meta",
        "param",
        "source",
        "track",
        "wbr",
    }
)

# Elements whose content is raw text: not scanned for tags or placeholders, never escaped.
RAW_TEXT_ELEMENTS: frozenset[str] = frozenset({"script", "style"})

DIRECTIVE_PREFIX = "client:"


def is_void_element(tag: str) -> bool:
    """Return True if tag names a void element (case-insensitive)."""
    return tag.lower() in VOID_ELEMENTS


def is_component_name(tag: str) -> bool:
    """A tag is a component iff its first character is upper-case."""
    return tag[:1].isupper()


def directive_name(attr_name: str) -> str | None:
    """Return the hydration mode for a ``client:<mode>`` attribute name."""
    if attr_name.startswith(DIRECTIVE_PREFIX) and len(attr_name) > len(DIRECTIVE_PREFIX):
        return attr_name[len(DIRECTIVE_PREFIX) :]
    return None


@dataclass(frozen=True, slots=True)
class Attr:
    """A tag attribute.

    ``value`` is a string, ``True`` for a bare attribute, or ``False`` to
    suppress rendering. ``expression`` marks a brace value, kept as the
    string ``"{code}"``.
    """

    name: str
    value: str | bool
    span: Span
    directive: str | None = None
    expression: bool = False

    @property
    def code(self) -> str:
        """The expression source of a brace value (without the braces)."""
        if self.expression and isinstance(self.value, str):
            return self.value[1:-1].strip()
        return ""


@dataclass(frozen=True, slots=True)
class Text:
    """Literal content, unescaped."""

    type: ClassVar[str] = "Text"

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Expression:
    """A single ``{...}`` placeholder."""

    type: ClassVar[str] = "Expression"

    code: str
    span: Span
    incomplete: bool = False


@dataclass(frozen=True, slots=True)
class RawHTML:
    """Pre-rendered markup injected downstream; bypasses escaping."""

    type: ClassVar[str] = "RawHTML"

    value: str
    span: Span


@dataclass(frozen=True, slots=True)
class Frontmatter:
    """Script text between the opening and closing ``---`` fences."""

    type: ClassVar[str] = "Frontmatter"

    code: str
    span: Span


@dataclass(frozen=True, slots=True)
class Element:
    """A plain markup element (lower-case-first tag)."""

    type: ClassVar[str] = "Element"

    tag: str
    attrs: tuple[Attr, ...]
    children: tuple[Node, ...]
    self_closing: bool
    span: Span


@dataclass(frozen=True, slots=True)
class Component:
    """A component reference (upper-case-first tag)."""

    type: ClassVar[str] = "Component"

    tag: str
    attrs: tuple[Attr, ...]
    children: tuple[Node, ...]
    self_closing: bool
    span: Span

    @property
    def directive(self) -> Attr | None:
        """The first hydration directive attribute, if any."""
        for attr in self.attrs:
            if attr.directive is not None:
                return attr
        return None


@dataclass(frozen=True, slots=True)
class Fragment:
    """Root node, also used for sub-trees."""

    type: ClassVar[str] = "Fragment"

    children: tuple[Node, ...]
    span: Span

    @property
    def frontmatter(self) -> Frontmatter | None:
        if self.children and isinstance(self.children[0], Frontmatter):
            return self.children[0]
        return None

    def template(self) -> Fragment:
        """The sub-tree with the frontmatter node stripped."""
        children = tuple(c for c in self.children if not isinstance(c, Frontmatter))
        return Fragment(children, self.span)


Node = Fragment | Frontmatter | Element | Component | Text | Expression | RawHTML


def walk(node: Node):
    """Yield node and all of its descendants in document order."""
    yield node
    if isinstance(node, (Fragment, Element, Component)):
        for child in node.children:
            yield from walk(child)


def has_client_directives(tree: Fragment) -> bool:
    """Return True if any component in the tree carries a hydration directive."""
    return any(isinstance(n, Component) and n.directive is not None for n in walk(tree))
