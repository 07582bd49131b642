"""Runtime helpers used by render modules."""

from __future__ import annotations

import asyncio

import pytest

from islet.parser import parse
from islet.runtime import (
    ComponentRef,
    HotContext,
    RenderContext,
    island_markup,
    load_module,
    load_template,
    render_template,
    serialize_html,
)
from islet.serialize import to_dict
from islet.synth import SynthOptions, synthesize_module


def template_of(source: str):
    return parse(source).ast.template()


def render(source: str, names=None, **kwargs) -> str:
    tree = asyncio.run(render_template(template_of(source), names or {}, **kwargs))
    return serialize_html(tree)


def module_for(source: str, filename: str = "input.islet"):
    tree = parse(source).ast
    return load_module(synthesize_module(tree, SynthOptions(filename=filename)).code)


class TestRenderContext:
    def test_plain_props(self):
        ctx = RenderContext.create({"a": 1})
        assert ctx.props == {"a": 1}
        assert ctx.request == {}
        assert ctx.params == {}

    def test_astro_entry_split_out(self):
        ctx = RenderContext.create(
            {"a": 1, "Astro": {"request": {"url": "/p"}, "params": {"slug": "x"}}},
            slots={"default": "<b>hi</b>"},
        )
        assert ctx.props == {"a": 1}
        assert ctx.request == {"url": "/p"}
        assert ctx.params == {"slug": "x"}
        assert ctx.slots == {"default": "<b>hi</b>"}

    def test_names(self):
        names = RenderContext.create({"a": 1}, slots={"side": ""}).names()
        assert names["props"] == {"a": 1}
        assert names["Astro"]["props"] == {"a": 1}
        assert names["Astro"]["slots"] == {"side": True}

    def test_none_props(self):
        assert RenderContext.create(None).props == {}

    def test_non_mapping_astro_ignored(self):
        ctx = RenderContext.create({"Astro": "nope"})
        assert ctx.props == {}
        assert ctx.request == {}


class TestIslandMarkup:
    def test_attributes(self):
        html = island_markup("Counter", {"n": 1, "label": "it's"}, "load", uid="abc")
        assert html == (
            '<islet-island uid="abc" component-export="Counter" '
            "component-props='{\"n\":1,\"label\":\"it&#39;s\"}' "
            'client-directive="load"></islet-island>'
        )

    def test_directive_value_and_inner(self):
        html = island_markup("Menu", {}, "media", "(max-width: 600px)", "<nav></nav>", uid="u")
        assert 'directive-value="(max-width: 600px)"' in html
        assert html.endswith("><nav></nav></islet-island>")

    def test_fresh_uid(self):
        first = island_markup("A", {}, "idle")
        second = island_markup("A", {}, "idle")
        assert first != second


class TestLoadModule:
    def test_fresh_named_module(self):
        import sys

        module = load_module("x = 1\n", "page_islet")
        assert module.x == 1
        assert module.__name__ == "page_islet"
        assert module.__spec__.name == "page_islet"
        assert module.__file__ == "<page_islet>"
        assert "page_islet" not in sys.modules

    def test_each_load_is_independent(self):
        first = load_module("items = []\n")
        second = load_module("items = []\n")
        first.items.append(1)
        assert second.items == []


class TestLoadTemplate:
    def test_round_trip(self):
        tree = template_of("<p>x</p>")
        assert load_template(to_dict(tree, spans=False)).children[0].tag == "p"

    def test_rejects_non_fragment(self):
        with pytest.raises(TypeError, match="must be a Fragment"):
            load_template({"_type": "Text", "value": "x"})


class TestRenderTemplate:
    def test_template_not_modified(self):
        template = template_of("<p>{x}</p>")
        before = to_dict(template)
        asyncio.run(render_template(template, {"x": 1}))
        assert to_dict(template) == before

    def test_expression_output_escaped(self):
        assert render("<p>{x}</p>", {"x": "<!-- hi -->"}) == "<p>&lt;!-- hi --&gt;</p>"

    def test_failed_expression_renders_empty(self):
        assert render("<p>{a.b.c}</p>") == "<p></p>"

    def test_number_too_long_to_display_renders_empty(self):
        assert render('<p>{Number("0x" + "f".repeat(5000))}</p>') == "<p></p>"

    def test_overflow_in_render_module(self):
        module = module_for('---\nconst n = Number("0x" + "f".repeat(400)) % 3\n---\n<p>{n}</p>')
        assert asyncio.run(module.render({}))["html"] == "\n<p></p>"

    def test_attribute_expressions(self):
        html = render(
            "<a href={url} hidden={off} data-on={on}>x</a>",
            {"url": "/a?b&c", "off": False, "on": True},
        )
        assert html == '<a href="/a?b&amp;c" data-on>x</a>'

    def test_default_slot_content(self):
        html = render("<div><slot /></div>", slots={"default": "<b>in</b>"})
        assert html == "<div><b>in</b></div>"

    def test_named_slot(self):
        html = render('<aside><slot name="side">none</slot></aside>', slots={"side": "S"})
        assert html == "<aside>S</aside>"

    def test_slot_fallback(self):
        assert render("<div><slot>fallback {x}</slot></div>", {"x": 2}) == (
            "<div>fallback 2</div>"
        )

    def test_unresolved_component_placeholder(self):
        assert render("<div><Card /></div>") == "<div><!-- Component: Card --></div>"


CARD = "---\nconst { n } = Astro.props\n---\n<div class=\"card\"><slot /> {n}</div>"


class TestComponents:
    def components(self):
        return {"Card": ComponentRef("Card", "./Card.islet", "islet")}

    def test_resolver_renders_nested_module(self):
        card = module_for(CARD, "Card.islet")
        html = render(
            "<Card n={2}>inside</Card>",
            components=self.components(),
            resolve=lambda ref: card,
        )
        assert html == '\n<div class="card">inside 2</div>'

    def test_async_resolver(self):
        card = module_for(CARD, "Card.islet")

        async def resolve(ref):
            return card

        html = render("<Card n={2}>inside</Card>", components=self.components(), resolve=resolve)
        assert html == '\n<div class="card">inside 2</div>'

    def test_resolver_returning_none(self):
        html = render("<Card />", components=self.components(), resolve=lambda ref: None)
        assert html == "<!-- Component: Card -->"

    def test_resolver_sees_ref(self):
        seen = []

        def resolve(ref):
            seen.append(ref)
            return None

        render("<Card />", components=self.components(), resolve=resolve)
        assert seen == [ComponentRef("Card", "./Card.islet", "islet")]

    def test_island_wraps_resolved_output(self):
        card = module_for(CARD, "Card.islet")
        html = render(
            "<Card n={3} client:visible />",
            components=self.components(),
            resolve=lambda ref: card,
        )
        assert html.startswith("<islet-island ")
        assert "component-props='{\"n\":3}'" in html
        assert 'client-directive="visible"' in html
        assert html.endswith('>\n<div class="card"> 3</div></islet-island>')

    def test_island_without_resolver_is_empty(self):
        html = render('<Map client:media="(min-width: 1px)" />')
        assert 'directive-value="(min-width: 1px)"' in html
        assert html.endswith("></islet-island>")

    def test_out_of_range_prop_becomes_null(self):
        html = render('<C v={Number("0x" + "f".repeat(400))} client:load />')
        assert "component-props='{\"v\":null}'" in html

    def test_undefined_prop_becomes_null(self):
        html = render("<C v={missing} client:load />")
        assert "component-props='{\"v\":null}'" in html


class TestHotContext:
    @pytest.fixture(autouse=True)
    def _clear(self):
        HotContext.clear()
        yield
        HotContext.clear()

    def test_register_and_version(self):
        first = HotContext.register("a.islet")
        second = HotContext.register("a.islet")
        assert first is second
        assert second.version == 1

    def test_accept_and_invalidate(self):
        ctx = HotContext.register("a.islet")
        calls = []
        ctx.accept(calls.append)
        ctx.invalidate()
        assert calls == ["a.islet"]
        assert ctx.version == 1

    def test_clear(self):
        HotContext.register("a.islet")
        HotContext.clear()
        assert HotContext.get("a.islet") is None
