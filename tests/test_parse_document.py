"""Test parsing complete documents into Fragment trees."""

from islet.ast import Component, Element, Expression, Fragment, Frontmatter, Text, walk
from islet.lexer import tokenize
from islet.parser import parse


class TestDocumentStructure:
    def test_empty_document(self, parse_source):
        result = parse_source("")
        assert isinstance(result.ast, Fragment)
        assert result.ast.children == ()
        assert result.diagnostics == ()

    def test_text_only(self, nodes):
        (node,) = nodes("just text")
        assert isinstance(node, Text)
        assert node.value == "just text"

    def test_frontmatter_first_child(self, parse_source):
        result = parse_source("---\nconst a = 1;\n---\n<p>{a}</p>")
        fm = result.ast.frontmatter
        assert isinstance(fm, Frontmatter)
        assert fm.code == "const a = 1;"
        assert result.ast.children[0] is fm

    def test_template_strips_frontmatter(self, parse_source):
        tree = parse_source("---\nconst a = 1;\n---\n<p>x</p>").ast
        template = tree.template()
        assert not any(isinstance(c, Frontmatter) for c in template.children)
        assert template.frontmatter is None

    def test_no_frontmatter(self, parse_source):
        assert parse_source("<p>x</p>").ast.frontmatter is None

    def test_accepts_token_list(self):
        result = parse(tokenize("<p>x</p>"))
        assert isinstance(result.ast.children[0], Element)

    def test_accepts_token_list_without_eof(self, lex):
        result = parse(lex("<p>x</p>"))
        assert isinstance(result.ast.children[0], Element)


class TestElements:
    def test_element_with_text(self, nodes):
        (div,) = nodes('<div class="box">Hi</div>')
        assert isinstance(div, Element)
        assert div.tag == "div"
        assert not div.self_closing
        assert div.attrs[0].name == "class"
        assert div.attrs[0].value == "box"
        assert isinstance(div.children[0], Text)
        assert div.children[0].value == "Hi"

    def test_nested_elements(self, nodes):
        (ul,) = nodes("<ul><li>a</li><li>b</li></ul>")
        assert [c.tag for c in ul.children] == ["li", "li"]
        assert ul.children[1].children[0].value == "b"

    def test_void_element_has_no_children(self, nodes):
        br, text = nodes("<br>after")
        assert isinstance(br, Element)
        assert br.children == ()
        assert text.value == "after"

    def test_self_closing_element(self, nodes):
        (div,) = nodes("<div />")
        assert div.self_closing
        assert div.children == ()

    def test_bare_attribute_is_true(self, nodes):
        (inp,) = nodes("<input disabled>")
        assert inp.attrs[0].value is True

    def test_unquoted_attribute(self, nodes):
        (a,) = nodes("<a href=/home>x</a>")
        assert a.attrs[0].value == "/home"

    def test_expression_attribute(self, nodes):
        (a,) = nodes("<a href={url}>x</a>")
        attr = a.attrs[0]
        assert attr.expression
        assert attr.value == "{url}"
        assert attr.code == "url"

    def test_script_content_is_text(self, nodes):
        (script,) = nodes("<script>const x = {a: 1} < 2;</script>")
        assert len(script.children) == 1
        assert isinstance(script.children[0], Text)

    def test_span_covers_element(self, nodes):
        (p,) = nodes("<p>hello</p>")
        assert p.span.start.offset == 0
        assert p.span.end.offset == len("<p>hello</p>")


class TestComponents:
    def test_capitalized_tag_is_component(self, nodes):
        (card,) = nodes('<Card title="Hi" />')
        assert isinstance(card, Component)
        assert card.tag == "Card"
        assert card.self_closing
        assert card.directive is None

    def test_directive(self, nodes):
        (counter,) = nodes("<Counter client:visible />")
        directive = counter.directive
        assert directive is not None
        assert directive.name == "client:visible"
        assert directive.directive == "visible"
        assert directive.value is True

    def test_directive_with_value(self, nodes):
        (nav,) = nodes('<Nav client:media="(max-width: 600px)" />')
        assert nav.directive.directive == "media"
        assert nav.directive.value == "(max-width: 600px)"

    def test_component_children(self, nodes):
        (layout,) = nodes("<Layout><h1>Title</h1></Layout>")
        assert isinstance(layout.children[0], Element)
        assert layout.children[0].tag == "h1"

    def test_component_named_like_void_element(self, nodes):
        (inp,) = nodes("<Input>label</Input>")
        assert isinstance(inp, Component)
        assert inp.children[0].value == "label"

    def test_walk_finds_nested_component(self, parse_source):
        tree = parse_source("<div><section><Widget client:idle /></section></div>").ast
        names = [n.tag for n in walk(tree) if isinstance(n, Component)]
        assert names == ["Widget"]


class TestPlaceholders:
    def test_expression_node(self, nodes):
        text, expr, tail = nodes("Hello {name}!")
        assert text.value == "Hello "
        assert isinstance(expr, Expression)
        assert expr.code == "name"
        assert tail.value == "!"

    def test_expression_code_stripped(self, nodes):
        (expr,) = nodes("{  a + b  }")
        assert expr.code == "a + b"

    def test_adjacent_text_coalesced(self, nodes):
        (text,) = nodes("a < b")
        assert isinstance(text, Text)
        assert text.value == "a < b"

    def test_expression_inside_element(self, nodes):
        (li,) = nodes("<li>{item.name}</li>")
        assert isinstance(li.children[0], Expression)
