"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio

import pytest

from islet.ast import Fragment, Node
from islet.lexer import tokenize
from islet.markup import BuildOptions, build_markup, build_to_stream
from islet.parser import ParseResult, parse
from islet.tokens import Token, TokenType


@pytest.fixture
def lex():
    """Return a helper that tokenizes source and returns tokens (excluding EOF)."""

    def _lex(source: str) -> list[Token]:
        tokens = tokenize(source)
        # Strip trailing EOF for convenience
        return [t for t in tokens if t.type != TokenType.EOF]

    return _lex


@pytest.fixture
def parse_source():
    """Return a helper that parses source and returns the ParseResult."""

    def _parse(source: str) -> ParseResult:
        return parse(source)

    return _parse


@pytest.fixture
def nodes():
    """Return a helper that parses source and returns the template's top-level nodes."""

    def _nodes(source: str) -> tuple[Node, ...]:
        return parse(source).ast.template().children

    return _nodes


@pytest.fixture
def build():
    """Return a helper that builds markup from source with option overrides."""

    def _build(source: str, **options) -> str:
        return build_markup(parse(source).ast, BuildOptions(**options))

    return _build


@pytest.fixture
def stream():
    """Return a helper that streams markup and returns the list of written chunks."""

    def _stream(tree: Fragment | str, **options) -> list[str]:
        chunks: list[str] = []

        async def write(chunk: str) -> None:
            chunks.append(chunk)

        asyncio.run(build_to_stream(tree, write, BuildOptions(**options)))
        return chunks

    return _stream


@pytest.fixture
def codes():
    """Return a helper listing the diagnostic codes reported for source."""

    def _codes(source: str) -> list[str]:
        return [d.code for d in parse(source).diagnostics]

    return _codes


def types_of(tokens: list[Token]) -> list[TokenType]:
    return [t.type for t in tokens]


@pytest.fixture
def assert_types():
    """Return a helper asserting that token types match the expected list."""

    def _assert(tokens: list[Token], expected: list[TokenType]) -> None:
        actual = types_of(tokens)
        assert actual == expected, f"Expected {expected}, got {actual}"

    return _assert
