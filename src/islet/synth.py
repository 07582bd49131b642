"""Module synthesizer — turns a parsed tree into render-module source.

The generated module is Python. It imports only :mod:`islet.runtime`,
exposes ``metadata`` and an ``async def render(props=None, *, resolve=None,
slots=None)`` returning ``{"html": ...}``, and embeds its template tree as
plain data. Synthesis never raises for bad input: on an internal failure
a stub module is returned together with the error text.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from islet import codegen
from islet.ast import Fragment, Frontmatter, has_client_directives
from islet.codegen import Blank, Block, Comment, Line, Module, Stmt, call, literal
from islet.errors import SynthesisError
from islet.frontmatter import (
    ComponentImport,
    FrontmatterParts,
    partition,
    split_statements,
    strip_types,
)
from islet.logger import get_logger
from islet.serialize import to_dict
from islet.sourcemap import MappedWriter
from islet.tokens import Position

logger = get_logger(__name__)

RENDER_SIGNATURE = "async def render(props=None, *, resolve=None, slots=None):"


@dataclass(frozen=True, slots=True)
class SynthOptions:
    """Module synthesizer settings.

    ``source`` is the original document text; it lets source maps point at
    exact frontmatter lines and is embedded as ``sourcesContent``.
    """

    filename: str = "input.islet"
    dev: bool = False
    pretty_print: bool = False
    source_map: bool = False
    source: str | None = None


@dataclass(frozen=True, slots=True)
class SynthResult:
    code: str
    map: dict[str, Any] | None = None
    errors: tuple[str, ...] = ()


def synthesize_module(tree: Fragment, options: SynthOptions | None = None) -> SynthResult:
    """Generate render-module source for a parsed document.

    Raises TypeError if tree is not a Fragment; any other failure is
    logged and reported in ``SynthResult.errors`` alongside a stub module.
    """
    if not isinstance(tree, Fragment):
        msg = f"expected a Fragment root, got {type(tree).__name__}"
        raise TypeError(msg)
    opts = options or SynthOptions()

    try:
        module = _build_module(tree, opts)
        if opts.source_map:
            writer = MappedWriter(opts.filename, opts.source)
            code = codegen.render(module, writer)
            return SynthResult(code, writer.source_map(generated_name(opts.filename)))
        return SynthResult(codegen.render(module))
    except Exception as exc:
        logger.exception("synthesis of %s failed", opts.filename)
        error = SynthesisError(str(exc) or type(exc).__name__, opts.filename)
        return SynthResult(codegen.render(_stub_module(opts)), None, (str(error),))


def generated_name(filename: str) -> str:
    """File name for a synthesized module (``page.islet`` → ``page.islet.py``)."""
    return f"{filename}.py"


# ---------------------------------------------------------------------------
# Source positions
# ---------------------------------------------------------------------------


def _position_at(text: str, offset: int) -> Position:
    line = text.count("\n", 0, offset) + 1
    column = offset - (text.rfind("\n", 0, offset) + 1) + 1
    return Position(line, column, offset)


class _Locator:
    """Finds where frontmatter statements sit in the original source."""

    def __init__(self, source: str | None, fm: Frontmatter | None) -> None:
        self._fallback = fm.span.start if fm is not None else None
        self._positions: dict[str, Position] = {}
        if source is None or fm is None:
            return
        text = source.replace("\r\n", "\n")
        cursor = text.find(fm.code, 3)
        if cursor == -1:
            return
        for stmt in split_statements(fm.code):
            first_line = stmt.split("\n", 1)[0]
            idx = text.find(first_line, cursor)
            if idx == -1:
                continue
            self._positions.setdefault(stmt, _position_at(text, idx))
            cursor = idx + len(first_line)

    def __call__(self, statement: str) -> Position | None:
        return self._positions.get(statement, self._fallback)


# ---------------------------------------------------------------------------
# Module assembly
# ---------------------------------------------------------------------------


def _build_module(tree: Fragment, opts: SynthOptions) -> Module:
    fm = tree.frontmatter
    parts = partition(fm.code) if fm is not None else FrontmatterParts((), (), ())
    template = tree.template()
    locate = _Locator(opts.source, fm)
    metadata = {
        "filename": opts.filename,
        "dev": opts.dev,
        "hasClientDirectives": has_client_directives(tree),
    }

    body: list[Stmt] = [
        Line("from islet import runtime"),
        Blank(),
        Line(f"FILENAME = {literal(opts.filename)}"),
        Blank(),
        Line(f"metadata = {literal(metadata)}"),
        Blank(),
    ]

    if parts.imports:
        body.append(Comment("Frontmatter imports, resolved by the host through `resolve`"))
        body.append(
            Block(
                "IMPORTS = (",
                tuple(Line(f"{literal(stmt)},", locate(stmt)) for stmt in parts.imports),
                footer=")",
            )
        )
        body.append(Blank())

    body.extend(_registry(parts, locate))
    body.append(Blank())
    template_data = literal(to_dict(template, spans=False), pretty=opts.pretty_print)
    body.append(Line(f"template = runtime.load_template({template_data})", template.span.start))
    body.append(Blank())
    body.append(Blank())
    body.append(Block(RENDER_SIGNATURE, _render_body(parts, template, locate, opts)))

    if opts.dev:
        body.append(Blank())
        body.append(Blank())
        body.append(Comment("Live-reload glue"))
        body.append(Line("hot = runtime.HotContext.register(FILENAME)"))

    return Module(tuple(body), docstring=f"Render module generated from {opts.filename}.")


def _registry(parts: FrontmatterParts, locate: _Locator) -> list[Stmt]:
    if not parts.components:
        return [Line("components = {}")]

    def entry(ref: ComponentImport) -> Line:
        ctor = call("runtime.ComponentRef", literal(ref.name), literal(ref.path), literal(ref.kind))
        origin = next((locate(s) for s in parts.imports if ref.path in s), None)
        return Line(f"{literal(ref.name)}: {ctor},", origin)

    return [
        Comment("Component registry"),
        Block("components = {", tuple(entry(ref) for ref in parts.components), footer="}"),
    ]


def _render_body(
    parts: FrontmatterParts,
    template: Fragment,
    locate: _Locator,
    opts: SynthOptions,
) -> tuple[Stmt, ...]:
    stmts: list[Stmt] = [
        Line("context = runtime.RenderContext.create(props, slots=slots)"),
        Line("scope = runtime.Scope(context.names())"),
    ]
    for stmt in parts.statements:
        rewritten = strip_types(stmt)
        if rewritten is None:
            continue
        stmts.append(Line(f"scope.execute({literal(rewritten)})", locate(stmt)))

    render_call = call(
        "runtime.render_template",
        "template",
        "scope.bindings",
        components="components",
        resolve="resolve",
        slots="context.slots",
    )
    stmts.append(Line(f"tree = await {render_call}", template.span.start))
    html = call("runtime.serialize_html", "tree", pretty_print=literal(opts.pretty_print))
    stmts.append(Line(f"return {{'html': {html}}}"))
    return tuple(stmts)


def _stub_module(opts: SynthOptions) -> Module:
    metadata = {"filename": opts.filename, "dev": opts.dev, "hasClientDirectives": False}
    return Module(
        (
            Line(f"metadata = {literal(metadata)}"),
            Blank(),
            Blank(),
            Block(RENDER_SIGNATURE, (Line("return {'html': ''}"),)),
        ),
        docstring=f"Render module stub for {opts.filename}: synthesis failed.",
    )
