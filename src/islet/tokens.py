"""Token types, data structures, and character classification helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    TEXT = auto()  # literal markup between tags and placeholders
    FRONTMATTER_CONTENT = auto()  # trimmed script between the --- fences

    # Tags
    TAG_OPEN = auto()  # <name; value is the tag name
    TAG_CLOSE = auto()  # > ending an open tag (value ">") or </name> (value is the name)
    TAG_SELF_CLOSE = auto()  # />

    # Attributes (only produced inside an opening tag)
    ATTRIBUTE_NAME = auto()
    ATTRIBUTE_VALUE = auto()  # raw value, quotes or braces included

    EXPRESSION_CONTENT = auto()  # text between { and its matching }

    EOF = auto()


@dataclass(frozen=True, slots=True)
class Position:
    """Source position, 1-based line and column, 0-based character offset."""

    line: int
    column: int
    offset: int


@dataclass(frozen=True, slots=True)
class Span:
    """Source range from start to end position."""

    start: Position
    end: Position


START = Position(1, 1, 0)
EMPTY_SPAN = Span(START, START)


@dataclass(frozen=True, slots=True)
class Token:
    """A single lexer token with its value and original source text.

    ``incomplete`` is set when the lexer had to stop before the construct's
    closing delimiter (an unterminated ``{`` or quote).
    """

    type: TokenType
    value: str
    raw: str
    span: Span
    incomplete: bool = False

    @property
    def ends_open_tag(self) -> bool:
        """True for the ``>`` that finishes an opening tag's attribute list."""
        return self.type == TokenType.TAG_CLOSE and self.value == ">"

    @property
    def is_closing_tag(self) -> bool:
        """True for a ``</name>`` token."""
        return self.type == TokenType.TAG_CLOSE and self.value != ">"


_TAG_NAME_CHARS = frozenset("abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789-")
_ATTR_NAME_CHARS = _TAG_NAME_CHARS | frozenset(":@")


def is_tag_name_char(ch: str) -> bool:
    """Return True if ch may appear in a tag name ([A-Za-z0-9-])."""
    return ch in _TAG_NAME_CHARS


def is_attr_name_char(ch: str) -> bool:
    """Return True if ch may appear in an attribute name ([A-Za-z0-9-:@])."""
    return ch in _ATTR_NAME_CHARS
