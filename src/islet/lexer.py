"""islet lexer — converts source text into a flat token stream.

The lexer is total: it never raises. Constructs it cannot make sense of are
skipped a character at a time, and unterminated placeholders or quoted
values come back as tokens flagged ``incomplete`` so the parser can report
them.
"""

from __future__ import annotations

import re
from enum import Enum, auto

from islet.ast import RAW_TEXT_ELEMENTS
from islet.tokens import Position, Span, Token, TokenType, is_attr_name_char, is_tag_name_char


class _Mode(Enum):
    HTML = auto()
    TAG = auto()  # inside an opening tag's attribute list


FRONTMATTER_FENCE = "---"

_FRONTMATTER_CLOSE = re.compile(r"^---[ \t]*$", re.MULTILINE)
_TEXT_STOP = re.compile(r"[<{]")
_EXPRESSION_STOP = re.compile(r"[{}]|</")
_TAG_NAME = re.compile(r"[A-Za-z0-9-]+")
_CLOSING_TAG = re.compile(r"</([A-Za-z0-9-]+)[ \t\n]*>")
_ATTR_NAME = re.compile(r"[A-Za-z0-9\-:@]+")
_UNQUOTED_VALUE = re.compile(r"(?:[^\s>\"'`=<{/]|/(?!>))+")
_WS = re.compile(r"[ \t\n]+")
_INLINE_WS = re.compile(r"[ \t]*")


class Lexer:
    """Tokenize islet source text into a list of Token objects."""

    def __init__(self, source: str) -> None:
        self._source = source.replace("\r\n", "\n")
        self._pos = 0
        self._line = 1
        self._col = 1
        self._tokens: list[Token] = []
        self._mode = _Mode.HTML
        self._mode_stack: list[_Mode] = []
        self._open_tag = ""
        self._handlers = {
            _Mode.HTML: self._lex_html,
            _Mode.TAG: self._lex_tag,
        }

    @property
    def source(self) -> str:
        """The line-ending-normalized text all spans refer to."""
        return self._source

    def tokenize(self) -> list[Token]:
        """Tokenize the full source and return the token list (ending in EOF)."""
        if self._source.startswith(FRONTMATTER_FENCE):
            self._lex_frontmatter()

        while self._pos < len(self._source):
            self._handlers[self._mode]()

        self._emit(TokenType.EOF, "", self._current_pos())
        return self._tokens

    # ------------------------------------------------------------------
    # Position helpers
    # ------------------------------------------------------------------

    def _current_pos(self) -> Position:
        return Position(self._line, self._col, self._pos)

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        if idx < len(self._source):
            return self._source[idx]
        return ""

    def _advance_to(self, end: int) -> None:
        """Move the cursor to end, updating line/column over the consumed slice."""
        newlines = self._source.count("\n", self._pos, end)
        if newlines:
            self._line += newlines
            self._col = end - self._source.rfind("\n", self._pos, end)
        else:
            self._col += end - self._pos
        self._pos = end

    def _emit(
        self,
        tt: TokenType,
        value: str,
        start: Position,
        *,
        incomplete: bool = False,
    ) -> Token:
        raw = self._source[start.offset : self._pos]
        tok = Token(tt, value, raw, Span(start, self._current_pos()), incomplete)
        self._tokens.append(tok)
        return tok

    # ------------------------------------------------------------------
    # Mode management
    # ------------------------------------------------------------------

    def _push_mode(self, mode: _Mode) -> None:
        self._mode_stack.append(self._mode)
        self._mode = mode

    def _pop_mode(self) -> None:
        if self._mode_stack:
            self._mode = self._mode_stack.pop()

    # ------------------------------------------------------------------
    # Frontmatter
    # ------------------------------------------------------------------

    def _lex_frontmatter(self) -> None:
        match = _FRONTMATTER_CLOSE.search(self._source, len(FRONTMATTER_FENCE))
        if match is None:
            # No closing fence: the leading --- is ordinary text
            return
        start = self._current_pos()
        content = self._source[len(FRONTMATTER_FENCE) : match.start()]
        self._advance_to(match.end())
        self._emit(TokenType.FRONTMATTER_CONTENT, content.strip(), start)

    # ------------------------------------------------------------------
    # HTML mode
    # ------------------------------------------------------------------

    def _lex_html(self) -> None:
        ch = self._peek()

        if ch == "{":
            start = self._current_pos()
            content, incomplete = self._scan_expression()
            self._emit(TokenType.EXPRESSION_CONTENT, content, start, incomplete=incomplete)
            return

        if ch == "<":
            nxt = self._peek(1)
            if nxt == "/" and is_tag_name_char(self._peek(2)):
                if self._lex_closing_tag():
                    return
            elif is_tag_name_char(nxt):
                self._lex_tag_open()
                return
            elif self._source.startswith("<!--", self._pos):
                self._lex_comment()
                return

        self._lex_text()

    def _lex_text(self) -> None:
        # The first character is never a stop character worth honouring:
        # either ordinary text or a '<' that does not start a tag.
        start = self._current_pos()
        match = _TEXT_STOP.search(self._source, self._pos + 1)
        end = match.start() if match else len(self._source)
        self._advance_to(end)
        self._emit(TokenType.TEXT, self._source[start.offset : end], start)

    def _lex_comment(self) -> None:
        start = self._current_pos()
        close = self._source.find("-->", self._pos + 4)
        end = close + 3 if close != -1 else len(self._source)
        self._advance_to(end)
        self._emit(TokenType.TEXT, self._source[start.offset : end], start)

    def _lex_closing_tag(self) -> bool:
        match = _CLOSING_TAG.match(self._source, self._pos)
        if match is None:
            return False
        start = self._current_pos()
        self._advance_to(match.end())
        self._emit(TokenType.TAG_CLOSE, match.group(1), start)
        return True

    def _lex_tag_open(self) -> None:
        start = self._current_pos()
        match = _TAG_NAME.match(self._source, self._pos + 1)
        assert match is not None
        self._advance_to(match.end())
        self._emit(TokenType.TAG_OPEN, match.group(0), start)
        self._open_tag = match.group(0)
        self._push_mode(_Mode.TAG)

    def _lex_raw_text(self, tag: str) -> None:
        """Consume everything up to </tag> as one TEXT token."""
        closing = re.compile(rf"</{re.escape(tag)}[ \t\n]*>", re.IGNORECASE)
        match = closing.search(self._source, self._pos)
        end = match.start() if match else len(self._source)
        if end > self._pos:
            start = self._current_pos()
            self._advance_to(end)
            self._emit(TokenType.TEXT, self._source[start.offset : end], start)

    # ------------------------------------------------------------------
    # Expressions
    # ------------------------------------------------------------------

    def _scan_expression(self) -> tuple[str, bool]:
        """Consume a {...} placeholder and return (content, incomplete).

        Nested braces are balanced. Meeting ``</`` before the matching brace
        stops the scan there, leaving the closing tag for the caller.
        """
        src = self._source
        content_start = self._pos + 1
        depth = 1
        search_from = content_start
        while True:
            match = _EXPRESSION_STOP.search(src, search_from)
            if match is None:
                self._advance_to(len(src))
                return src[content_start:], True
            token = match.group(0)
            if token == "</":
                self._advance_to(match.start())
                return src[content_start : match.start()], True
            if token == "{":
                depth += 1
            else:
                depth -= 1
                if depth == 0:
                    self._advance_to(match.end())
                    return src[content_start : match.start()], False
            search_from = match.end()

    # ------------------------------------------------------------------
    # Tag mode
    # ------------------------------------------------------------------

    def _lex_tag(self) -> None:
        ws = _WS.match(self._source, self._pos)
        if ws is not None:
            self._advance_to(ws.end())
            if self._pos >= len(self._source):
                return

        ch = self._peek()

        if ch == "/" and self._peek(1) == ">":
            start = self._current_pos()
            self._advance_to(self._pos + 2)
            self._emit(TokenType.TAG_SELF_CLOSE, "/>", start)
            self._pop_mode()
            return

        if ch == ">":
            start = self._current_pos()
            self._advance_to(self._pos + 1)
            self._emit(TokenType.TAG_CLOSE, ">", start)
            self._pop_mode()
            if self._open_tag.lower() in RAW_TEXT_ELEMENTS:
                self._lex_raw_text(self._open_tag)
            return

        if ch == "{":
            # Spread attributes ({...props}) are not supported; skip them whole
            self._scan_expression()
            return

        if is_attr_name_char(ch):
            self._lex_attribute()
            return

        # Anything else inside a tag is skipped
        self._advance_to(self._pos + 1)

    def _lex_attribute(self) -> None:
        start = self._current_pos()
        match = _ATTR_NAME.match(self._source, self._pos)
        assert match is not None
        self._advance_to(match.end())
        self._emit(TokenType.ATTRIBUTE_NAME, match.group(0), start)

        gap = _INLINE_WS.match(self._source, self._pos)
        assert gap is not None
        if self._source.startswith("=", gap.end()):
            self._advance_to(gap.end() + 1)
            ws = _WS.match(self._source, self._pos)
            if ws is not None:
                self._advance_to(ws.end())
            self._lex_attribute_value()

    def _lex_attribute_value(self) -> None:
        start = self._current_pos()
        ch = self._peek()

        if ch in ("'", '"'):
            close = self._source.find(ch, self._pos + 1)
            if close == -1:
                self._advance_to(len(self._source))
                value = self._source[start.offset :]
                self._emit(TokenType.ATTRIBUTE_VALUE, value, start, incomplete=True)
            else:
                self._advance_to(close + 1)
                self._emit(TokenType.ATTRIBUTE_VALUE, self._source[start.offset : close + 1], start)
            return

        if ch == "{":
            content, incomplete = self._scan_expression()
            self._emit(TokenType.ATTRIBUTE_VALUE, "{" + content + "}", start, incomplete=incomplete)
            return

        match = _UNQUOTED_VALUE.match(self._source, self._pos)
        if match is not None:
            self._advance_to(match.end())
        self._emit(TokenType.ATTRIBUTE_VALUE, self._source[start.offset : self._pos], start)


def tokenize(source: str) -> list[Token]:
    """Convenience function: tokenize source text and return the token list."""
    return Lexer(source).tokenize()
