"""islet parser — converts a token stream into a Fragment tree.

Parsing never raises on malformed input. Every problem becomes a
:class:`~islet.errors.Diagnostic` and the parser carries on with a
best-effort tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from islet.ast import (
    Attr,
    Component,
    Element,
    Expression,
    Fragment,
    Frontmatter,
    Node,
    Text,
    directive_name,
    is_component_name,
    is_void_element,
)
from islet.errors import Diagnostic, Severity
from islet.lexer import tokenize
from islet.tokens import EMPTY_SPAN, Position, Span, Token, TokenType


@dataclass(frozen=True, slots=True)
class ParseResult:
    """The tree plus every diagnostic collected while building it."""

    ast: Fragment
    diagnostics: tuple[Diagnostic, ...] = field(default=())

    @property
    def errors(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[Diagnostic, ...]:
        return tuple(d for d in self.diagnostics if d.severity is Severity.WARNING)


class Parser:
    """Recursive descent parser over an islet token list."""

    def __init__(self, tokens: list[Token]) -> None:
        if not tokens or tokens[-1].type != TokenType.EOF:
            end = tokens[-1].span.end if tokens else EMPTY_SPAN.end
            tokens = [*tokens, Token(TokenType.EOF, "", "", Span(end, end))]
        self._tokens = tokens
        self._pos = 0
        self._diagnostics: list[Diagnostic] = []

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _peek(self, offset: int = 0) -> Token:
        idx = self._pos + offset
        if idx < len(self._tokens):
            return self._tokens[idx]
        return self._tokens[-1]  # EOF

    def _at(self, *types: TokenType) -> bool:
        return self._peek().type in types

    def _at_eof(self) -> bool:
        return self._peek().type == TokenType.EOF

    def _advance(self) -> Token:
        tok = self._tokens[self._pos]
        if tok.type != TokenType.EOF:
            self._pos += 1
        return tok

    def _prev_end(self) -> Position:
        """End position of the previously consumed token."""
        if self._pos > 0:
            return self._tokens[self._pos - 1].span.end
        return self._tokens[0].span.start

    def _report(self, code: str, message: str, span: Span, severity: Severity) -> None:
        self._diagnostics.append(Diagnostic(code, message, span, severity))

    # ------------------------------------------------------------------
    # Document level
    # ------------------------------------------------------------------

    def parse(self) -> ParseResult:
        children: list[Node] = []

        if self._at(TokenType.FRONTMATTER_CONTENT):
            tok = self._advance()
            children.append(Frontmatter(tok.value, tok.span))

        while not self._at_eof():
            node = self._parse_node()
            if node is not None:
                children.append(node)
                continue
            tok = self._peek()
            if tok.is_closing_tag:
                self._report(
                    "unmatched-closing-tag",
                    f"closing tag </{tok.value}> has no matching opening tag",
                    tok.span,
                    Severity.WARNING,
                )
            # Forward progress on anything nothing else claimed
            self._advance()

        children = _coalesce_text(children)
        if children:
            span = Span(children[0].span.start, children[-1].span.end)
        else:
            span = EMPTY_SPAN
        return ParseResult(Fragment(tuple(children), span), tuple(self._diagnostics))

    def _parse_node(self) -> Node | None:
        """Try expression, then tag, then text; None if nothing matches."""
        tok = self._peek()
        if tok.type == TokenType.EXPRESSION_CONTENT:
            return self._parse_expression()
        if tok.type == TokenType.TAG_OPEN:
            return self._parse_tag()
        if tok.type == TokenType.TEXT:
            return self._parse_text()
        return None

    # ------------------------------------------------------------------
    # Leaves
    # ------------------------------------------------------------------

    def _parse_expression(self) -> Expression:
        tok = self._advance()
        if tok.incomplete:
            self._report(
                "unclosed-expression",
                "expression is missing its closing '}'",
                tok.span,
                Severity.ERROR,
            )
        return Expression(tok.value.strip(), tok.span, incomplete=tok.incomplete)

    def _parse_text(self) -> Text:
        start = self._peek().span.start
        parts: list[str] = []
        while self._at(TokenType.TEXT):
            parts.append(self._advance().value)
        return Text("".join(parts), Span(start, self._prev_end()))

    # ------------------------------------------------------------------
    # Tags
    # ------------------------------------------------------------------

    def _parse_tag(self) -> Element | Component:
        open_tok = self._advance()
        tag = open_tok.value
        attrs = self._parse_attrs(tag)

        self_closing = False
        if self._at(TokenType.TAG_SELF_CLOSE):
            self._advance()
            self_closing = True
        elif self._peek().ends_open_tag:
            self._advance()
        else:
            self._report(
                "unclosed-tag",
                f"opening tag <{tag}> is never finished with '>'",
                Span(open_tok.span.start, self._prev_end()),
                Severity.ERROR,
            )
            self_closing = True

        children: tuple[Node, ...] = ()
        component = is_component_name(tag)
        if not self_closing and (component or not is_void_element(tag)):
            children = self._parse_children(tag, open_tok)

        span = Span(open_tok.span.start, self._prev_end())
        if component:
            return Component(tag, attrs, children, self_closing, span)
        return Element(tag, attrs, children, self_closing, span)

    def _parse_attrs(self, tag: str) -> tuple[Attr, ...]:
        attrs: list[Attr] = []
        seen_directive = False

        while not self._at_eof():
            tok = self._peek()
            if tok.type == TokenType.TAG_SELF_CLOSE or tok.ends_open_tag:
                break
            if tok.type != TokenType.ATTRIBUTE_NAME:
                # Only attribute tokens can appear before the tag ends
                break

            self._advance()
            attr = self._parse_attr_value(tok)

            if attr.directive is not None:
                if seen_directive:
                    self._report(
                        "duplicate-directive",
                        f"<{tag}> has more than one client directive; '{attr.name}' is ignored",
                        attr.span,
                        Severity.WARNING,
                    )
                seen_directive = True
            attrs.append(attr)

        return tuple(attrs)

    def _parse_attr_value(self, name_tok: Token) -> Attr:
        name = name_tok.value
        directive = directive_name(name)

        if not self._at(TokenType.ATTRIBUTE_VALUE):
            return Attr(name, True, name_tok.span, directive)

        value_tok = self._advance()
        span = Span(name_tok.span.start, value_tok.span.end)
        raw = value_tok.value

        if raw.startswith("{"):
            if value_tok.incomplete:
                self._report(
                    "unclosed-expression",
                    f"value of attribute '{name}' is missing its closing '}}'",
                    value_tok.span,
                    Severity.ERROR,
                )
            return Attr(name, raw, span, directive, expression=True)

        if raw[:1] in ("'", '"'):
            if value_tok.incomplete:
                self._report(
                    "unclosed-attribute",
                    f"value of attribute '{name}' is missing its closing quote",
                    value_tok.span,
                    Severity.ERROR,
                )
                return Attr(name, raw[1:], span, directive)
            return Attr(name, raw[1:-1], span, directive)

        return Attr(name, raw, span, directive)

    def _parse_children(self, tag: str, open_tok: Token) -> tuple[Node, ...]:
        children: list[Node] = []

        while True:
            tok = self._peek()

            if tok.type == TokenType.EOF:
                self._report(
                    "unclosed-tag",
                    f"<{tag}> is never closed",
                    open_tok.span,
                    Severity.ERROR,
                )
                break

            if tok.is_closing_tag:
                if tok.value == tag:
                    self._advance()
                else:
                    # Leave the token for an enclosing element to match
                    self._report(
                        "mismatched-tag",
                        f"expected </{tag}> but found </{tok.value}>",
                        tok.span,
                        Severity.ERROR,
                    )
                break

            node = self._parse_node()
            if node is not None:
                children.append(node)
            else:
                self._advance()

        return tuple(_coalesce_text(children))


def _coalesce_text(nodes: list[Node]) -> list[Node]:
    """Coalesce adjacent Text nodes into single nodes."""
    result: list[Node] = []
    for node in nodes:
        if isinstance(node, Text) and result and isinstance(result[-1], Text):
            prev = result[-1]
            result[-1] = Text(prev.value + node.value, Span(prev.span.start, node.span.end))
        else:
            result.append(node)
    return result


def parse(source: str | list[Token]) -> ParseResult:
    """Parse source text (or an already-lexed token list) into a ParseResult."""
    tokens = tokenize(source) if isinstance(source, str) else source
    return Parser(tokens).parse()
