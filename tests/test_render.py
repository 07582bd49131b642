"""Test markup building: placeholders, elements, pretty printing, evaluation, streaming."""

import pytest

from islet.ast import Text
from islet.markup import BuildOptions, build_markup
from islet.tokens import EMPTY_SPAN


class TestElements:
    def test_element_with_attribute(self, build):
        assert build('<div class="a">Hi</div>') == '<div class="a">Hi</div>'

    def test_void_element(self, build):
        assert build('<img src="a.png">') == '<img src="a.png">'

    def test_void_element_self_closed(self, build):
        assert build("<br />") == "<br>"

    def test_self_closing_non_void(self, build):
        assert build("<div />") == "<div />"

    def test_empty_element(self, build):
        assert build("<div></div>") == "<div></div>"

    def test_bare_attribute(self, build):
        assert build("<input disabled>") == "<input disabled>"

    def test_attribute_value_escaped(self, build):
        assert build("<a title='say \"hi\" & go'>x</a>") == (
            '<a title="say &quot;hi&quot; &amp; go">x</a>'
        )

    def test_nested(self, build):
        assert build("<ul><li>a</li><li>b</li></ul>") == "<ul><li>a</li><li>b</li></ul>"

    def test_whitespace_preserved(self, build):
        assert build("<p>\n  a  b\n</p>") == "<p>\n  a  b\n</p>"


class TestPlaceholders:
    def test_expression_placeholder(self, build):
        assert build("<p>{user.name}</p>") == "<p><!-- Expression: user.name --></p>"

    def test_component_placeholder(self, build):
        assert build("<Card title='x' />") == "<!-- Component: Card -->"

    def test_component_children_not_rendered(self, build):
        assert build("<Layout><p>x</p></Layout>") == "<!-- Component: Layout -->"

    def test_unevaluated_expression_attribute_kept(self, build):
        assert build("<a href={url}>x</a>") == '<a href="{url}">x</a>'

    def test_frontmatter_not_rendered(self, build):
        assert build("---\nconst a = 1\n---\n<p>x</p>") == "\n<p>x</p>"


class TestEscaping:
    def test_text_escaped(self, build):
        assert build("<p>a & b</p>") == "<p>a &amp; b</p>"

    def test_less_than_escaped(self, build):
        assert build("1 < 2") == "1 &lt; 2"

    def test_escaping_disabled(self, build):
        assert build("<p>a & b</p>", escape_markup=False) == "<p>a & b</p>"

    def test_comment_kept(self, build):
        assert build("<!-- note --><p>x</p>") == "<!-- note --><p>x</p>"

    def test_doctype_kept(self, build):
        assert build("<!DOCTYPE html><p>x</p>") == "<!DOCTYPE html><p>x</p>"

    def test_script_not_escaped(self, build):
        assert build("<script>if (a < b && c) {}</script>") == (
            "<script>if (a < b && c) {}</script>"
        )

    def test_style_not_escaped(self, build):
        assert build("<style>a > b { x: 1 }</style>") == "<style>a > b { x: 1 }</style>"


class TestPrettyPrint:
    def test_block_children_indented(self, build):
        html = build("<div><p>Hi</p><p>There</p></div>", pretty_print=True)
        assert html == "<div>\n  <p>Hi</p>\n  <p>There</p>\n</div>\n"

    def test_inline_children_stay_on_one_line(self, build):
        assert build("<p>Hello {name}</p>", pretty_print=True) == (
            "<p>Hello <!-- Expression: name --></p>\n"
        )

    def test_whitespace_only_text_dropped(self, build):
        html = build("<ul>\n  <li>a</li>\n\n  <li>b</li>\n</ul>", pretty_print=True)
        assert html == "<ul>\n  <li>a</li>\n  <li>b</li>\n</ul>\n"

    def test_custom_indent(self, build):
        html = build("<div><span>x</span></div>", pretty_print=True, indent="\t")
        assert html == "<div>\n\t<span>x</span>\n</div>\n"

    def test_leading_frontmatter_gap_trimmed(self, build):
        html = build("---\nconst a = 1\n---\n\n<p>x</p>", pretty_print=True)
        assert html == "<p>x</p>\n"

    def test_empty_document(self, build):
        assert build("", pretty_print=True) == "\n"

    def test_void_and_component_lines(self, build):
        html = build("<div><br><Card /></div>", pretty_print=True)
        assert html == "<div>\n  <br>\n  <!-- Component: Card -->\n</div>\n"


class TestEvaluation:
    def test_frontmatter_bindings(self, build):
        source = "---\nconst name = 'World'\n---\n<h1>Hello {name}!</h1>"
        assert build(source, evaluate_expressions=True) == "\n<h1>Hello World!</h1>"

    def test_value_escaped(self, build):
        html = build("<p>{x}</p>", evaluate_expressions=True, context={"x": "<b>"})
        assert html == "<p>&lt;b&gt;</p>"

    def test_value_unescaped_when_disabled(self, build):
        html = build(
            "<p>{x}</p>",
            evaluate_expressions=True,
            escape_markup=False,
            context={"x": "<b>"},
        )
        assert html == "<p><b></p>"

    def test_missing_name_renders_empty(self, build):
        assert build("<p>{missing.foo}</p>", evaluate_expressions=True) == "<p></p>"

    def test_overflowing_declaration_left_unbound(self, build):
        source = '---\nconst n = Number("0x" + "f".repeat(400)) % 3\n---\n<p>{n}</p>'
        assert build(source, evaluate_expressions=True) == "\n<p></p>"

    def test_number_too_long_to_display_renders_empty(self, build):
        source = '<p>{Number("0x" + "f".repeat(5000))}</p>'
        assert build(source, evaluate_expressions=True) == "<p></p>"

    def test_huge_attribute_value_dropped(self, build):
        source = '<p data-n={Number("0x" + "f".repeat(5000))}>x</p>'
        assert build(source, evaluate_expressions=True) == "<p>x</p>"

    def test_null_and_booleans_render_empty(self, build):
        html = build("<p>{a}{b}{c}</p>", evaluate_expressions=True, context={
            "a": None,
            "b": True,
            "c": False,
        })
        assert html == "<p></p>"

    def test_array_concatenated(self, build):
        source = "---\nconst items = ['a', 'b']\n---\n<ul>{items.map(i => `<${i}>`)}</ul>"
        html = build(source, evaluate_expressions=True)
        assert html == "\n<ul>&lt;a&gt;&lt;b&gt;</ul>"

    def test_attribute_expressions(self, build):
        html = build(
            "<a href={url} hidden={false} data-n={n + 1} open={true}>x</a>",
            evaluate_expressions=True,
            context={"url": "/a?x=1&y=2", "n": 1},
        )
        assert html == '<a href="/a?x=1&amp;y=2" data-n="2" open>x</a>'

    def test_context_overridden_by_frontmatter(self, build):
        source = "---\nconst who = 'page'\n---\n{who}"
        html = build(source, evaluate_expressions=True, context={"who": "host"})
        assert html == "\npage"

    def test_failed_declaration_leaves_name_unbound(self, build):
        source = "---\nconst a = nope.x\nconst b = 'ok'\n---\n[{a}][{b}]"
        assert build(source, evaluate_expressions=True) == "\n[][ok]"


class TestBuildMarkupInput:
    def test_accepts_source_string(self):
        assert build_markup("<p>x</p>") == "<p>x</p>"

    def test_default_options(self):
        assert build_markup("<p>{x}</p>", None) == "<p><!-- Expression: x --></p>"

    def test_rejects_non_fragment(self):
        with pytest.raises(TypeError):
            build_markup(Text("x", EMPTY_SPAN))  # type: ignore[arg-type]


class TestStreaming:
    @pytest.mark.parametrize("pretty", [False, True])
    def test_stream_matches_build(self, stream, pretty):
        source = "<div><p>Hi</p>\n\n<p>{x}</p><Card /></div>"
        expected = build_markup(source, BuildOptions(pretty_print=pretty))
        chunks = stream(source, pretty_print=pretty, chunk_size=4)
        assert "".join(chunks) == expected

    def test_single_chunk_when_small(self, stream):
        assert stream("<p>x</p>") == ["<p>x</p>"]

    def test_chunks_respect_size(self, stream):
        chunks = stream("<ul>" + "<li>item</li>" * 20 + "</ul>", chunk_size=32)
        assert len(chunks) > 1
        assert all(len(c) >= 32 for c in chunks[:-1])
        assert all(chunks)

    def test_empty_document_writes_nothing(self, stream):
        assert stream("") == []

    def test_empty_pretty_document(self, stream):
        assert stream("", pretty_print=True) == ["\n"]

    def test_write_error_propagates(self):
        import asyncio

        from islet.markup import build_to_stream

        async def write(chunk: str) -> None:
            raise RuntimeError("sink closed")

        with pytest.raises(RuntimeError, match="sink closed"):
            asyncio.run(build_to_stream("<p>x</p>", write))


class TestCompile:
    def test_parse_and_build_in_one_step(self):
        import islet

        assert islet.compile("<p>a & b</p>") == "<p>a &amp; b</p>"

    def test_options_passed_through(self):
        import islet

        html = islet.compile("<div><p>x</p></div>", islet.BuildOptions(pretty_print=True))
        assert html == "<div>\n  <p>x</p>\n</div>\n"
