"""Markup builder — renders a parsed tree to a markup string or stream."""

from __future__ import annotations

import re
from collections.abc import Awaitable, Callable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any, assert_never

from islet.ast import (
    RAW_TEXT_ELEMENTS,
    Attr,
    Component,
    Element,
    Expression,
    Fragment,
    Frontmatter,
    Node,
    RawHTML,
    Text,
    is_void_element,
)
from islet.errors import EvaluationError
from islet.expr import UNDEFINED, evaluate, render_value, to_string
from islet.frontmatter import collect_bindings
from islet.logger import get_logger
from islet.parser import parse

logger = get_logger(__name__)

Write = Callable[[str], Awaitable[None]]


@dataclass(frozen=True, slots=True)
class BuildOptions:
    """Markup builder settings.

    ``context`` supplies extra names to evaluated expressions; frontmatter
    declarations are layered on top of it.
    """

    pretty_print: bool = False
    indent: str = "  "
    escape_markup: bool = True
    evaluate_expressions: bool = False
    streaming: bool = False
    chunk_size: int = 8192
    context: Mapping[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Escaping
# ---------------------------------------------------------------------------

_HTML_ESCAPES = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#39;",
}

_HTML_ESCAPE_RE = re.compile(r"[&<>\"']")
_ATTR_ESCAPE_RE = re.compile(r"[&\"]")
_ATTR_ESCAPE_SQ_RE = re.compile(r"[&']")

# Markup passed through verbatim inside otherwise-escaped text
_VERBATIM_RE = re.compile(r"(<!--.*?-->|<!doctype[^>]*>)", re.IGNORECASE | re.DOTALL)


def _replace(match: re.Match[str]) -> str:
    return _HTML_ESCAPES[match.group(0)]


def escape_html(text: str) -> str:
    """Escape ``& < > " '`` for text content."""
    if _HTML_ESCAPE_RE.search(text) is None:
        return text
    return _HTML_ESCAPE_RE.sub(_replace, text)


def escape_attr(value: str, single_quote: bool = False) -> str:
    """Escape an attribute value: ``&`` plus the quote character that delimits it."""
    pattern = _ATTR_ESCAPE_SQ_RE if single_quote else _ATTR_ESCAPE_RE
    if pattern.search(value) is None:
        return value
    return pattern.sub(_replace, value)


def _escape_text(text: str) -> str:
    """Escape text, keeping DOCTYPE declarations and comments intact."""
    if "<!" not in text:
        return escape_html(text)
    parts = _VERBATIM_RE.split(text)
    # Odd indexes are the captured verbatim segments
    return "".join(p if i % 2 else escape_html(p) for i, p in enumerate(parts))


# ---------------------------------------------------------------------------
# Pretty-print cleanup
# ---------------------------------------------------------------------------


class _PrettyCleanup:
    """Line filter applied to pretty output.

    Whitespace-only lines are dropped, the document is trimmed, and it
    ends with exactly one newline. Works incrementally so streamed output
    gets the same treatment as a built string.
    """

    def __init__(self) -> None:
        self._partial = ""
        self._held: str | None = None

    def feed(self, chunk: str) -> str:
        lines = (self._partial + chunk).split("\n")
        self._partial = lines.pop()
        return "".join(self._take(line) for line in lines)

    def close(self) -> str:
        out = self._take(self._partial)
        self._partial = ""
        if self._held is None:
            return out + "\n"
        held, self._held = self._held, None
        return out + held.rstrip() + "\n"

    def _take(self, line: str) -> str:
        if not line.strip():
            return ""
        if self._held is None:
            self._held = line.lstrip()
            return ""
        out = self._held + "\n"
        self._held = line
        return out


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class _Builder:
    """Walks a tree and yields markup pieces in document order."""

    def __init__(self, options: BuildOptions, names: Mapping[str, Any]) -> None:
        self._opts = options
        self._names = names

    def emit(self, node: Node, depth: int, pretty: bool, raw: bool = False) -> Iterator[str]:
        indent = self._opts.indent * depth if pretty else ""

        if isinstance(node, Fragment):
            for child in node.children:
                yield from self.emit(child, depth, pretty, raw)
        elif isinstance(node, Frontmatter):
            return
        elif isinstance(node, Text):
            yield self._text(node.value, indent, pretty, raw)
        elif isinstance(node, Expression):
            yield self._expression(node, indent, pretty)
        elif isinstance(node, RawHTML):
            yield self._block(node.value, indent, pretty)
        elif isinstance(node, Element):
            yield from self._element(node, depth, indent, pretty)
        elif isinstance(node, Component):
            yield f"{indent}<!-- Component: {node.tag} -->" + ("\n" if pretty else "")
        else:
            assert_never(node)

    # -- leaves ---------------------------------------------------------------

    @staticmethod
    def _block(text: str, indent: str, pretty: bool) -> str:
        if not pretty:
            return text
        if not text.strip():
            return ""
        return f"{indent}{text.strip()}\n"

    def _text(self, value: str, indent: str, pretty: bool, raw: bool) -> str:
        if self._opts.escape_markup and not raw:
            value = _escape_text(value)
        return self._block(value, indent, pretty)

    def _expression(self, node: Expression, indent: str, pretty: bool) -> str:
        if not self._opts.evaluate_expressions:
            return f"{indent}<!-- Expression: {node.code} -->" + ("\n" if pretty else "")
        text = self._evaluate_text(node.code)
        if self._opts.escape_markup:
            text = escape_html(text)
        return self._block(text, indent, pretty)

    def _evaluate(self, code: str) -> Any:
        try:
            return evaluate(code, self._names)
        except EvaluationError as exc:
            logger.debug("expression evaluated to nothing: %s", exc)
            return UNDEFINED

    def _evaluate_text(self, code: str) -> str:
        try:
            return render_value(self._evaluate(code))
        except EvaluationError as exc:
            logger.debug("expression value not renderable: %s", exc)
            return ""

    # -- elements -------------------------------------------------------------

    def _attrs(self, attrs: tuple[Attr, ...]) -> str:
        parts: list[str] = []
        for attr in attrs:
            value = attr.value
            if attr.expression and self._opts.evaluate_expressions:
                value = self._attr_value(attr)
            if value is False:
                continue
            if value is True:
                parts.append(attr.name)
            else:
                parts.append(f'{attr.name}="{escape_attr(value)}"')
        return "".join(f" {p}" for p in parts)

    def _attr_value(self, attr: Attr) -> str | bool:
        result = self._evaluate(attr.code)
        if result is None or result is UNDEFINED or result is False:
            return False
        if result is True:
            return True
        try:
            return to_string(result)
        except EvaluationError:
            return False

    def _element(self, node: Element, depth: int, indent: str, pretty: bool) -> Iterator[str]:
        tag = node.tag.lower()
        attrs = self._attrs(node.attrs)
        newline = "\n" if pretty else ""

        if is_void_element(tag):
            yield f"{indent}<{tag}{attrs}>{newline}"
            return
        if node.self_closing:
            yield f"{indent}<{tag}{attrs} />{newline}"
            return

        open_tag = f"{indent}<{tag}{attrs}>"
        if not node.children:
            yield f"{open_tag}</{tag}>{newline}"
            return

        raw = tag in RAW_TEXT_ELEMENTS
        inline = all(isinstance(c, (Text, Expression)) for c in node.children)

        if pretty and inline:
            body = "".join(
                piece for child in node.children for piece in self.emit(child, 0, False, raw)
            )
            yield f"{open_tag}{body}</{tag}>{newline}"
            return

        yield open_tag + newline
        for child in node.children:
            yield from self.emit(child, depth + 1, pretty, raw)
        yield f"{indent}</{tag}>{newline}"


def _prepare(tree: Fragment | str, options: BuildOptions | None) -> tuple[Fragment, BuildOptions]:
    if isinstance(tree, str):
        tree = parse(tree).ast
    if not isinstance(tree, Fragment):
        msg = f"expected a Fragment root, got {type(tree).__name__}"
        raise TypeError(msg)
    return tree, options or BuildOptions()


def _names_for(tree: Fragment, opts: BuildOptions) -> Mapping[str, Any]:
    """Names visible to expressions, computed once per build call."""
    if not opts.evaluate_expressions:
        return {}
    fm = tree.frontmatter
    if fm is None:
        return dict(opts.context)
    return collect_bindings(fm.code, opts.context)


def build_markup(tree: Fragment | str, options: BuildOptions | None = None) -> str:
    """Render a tree (or source text, parsed first) to a markup string."""
    tree, opts = _prepare(tree, options)
    builder = _Builder(opts, _names_for(tree, opts))
    html = "".join(builder.emit(tree, 0, opts.pretty_print))
    if opts.pretty_print:
        cleanup = _PrettyCleanup()
        return cleanup.feed(html) + cleanup.close()
    return html


async def build_to_stream(
    tree: Fragment | str,
    write: Write,
    options: BuildOptions | None = None,
) -> None:
    """Render a tree through an async ``write`` sink in chunks.

    Output is buffered until it reaches ``chunk_size`` and then awaited
    through ``write``, one call at a time. Whatever remains is flushed at
    the end. An exception raised by ``write`` propagates to the caller.
    """
    tree, opts = _prepare(tree, options)
    builder = _Builder(opts, _names_for(tree, opts))
    cleanup = _PrettyCleanup() if opts.pretty_print else None
    chunk_size = max(opts.chunk_size, 1)

    buffer: list[str] = []
    size = 0
    for piece in builder.emit(tree, 0, opts.pretty_print):
        if cleanup is not None:
            piece = cleanup.feed(piece)
        if not piece:
            continue
        buffer.append(piece)
        size += len(piece)
        if size >= chunk_size:
            await write("".join(buffer))
            buffer.clear()
            size = 0

    if cleanup is not None:
        buffer.append(cleanup.close())
    tail = "".join(buffer)
    if tail:
        await write(tail)
