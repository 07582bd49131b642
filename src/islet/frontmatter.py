"""Frontmatter script handling.

The frontmatter block is never executed as a program. It is split into
statements; imports are separated out (default imports of components feed
the component table), and ``const``/``let``/``var`` declarations are
evaluated one by one through the restricted expression evaluator.
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Any

from islet.errors import EvaluationError
from islet.expr import UNDEFINED, evaluate, get_member
from islet.logger import get_logger

logger = get_logger(__name__)

SAME_FORMAT_KIND = "islet"

# Component path extension → renderer kind
COMPONENT_KINDS: dict[str, str] = {
    ".jsx": "react",
    ".tsx": "react",
    ".vue": "vue",
    ".svelte": "svelte",
    ".islet": SAME_FORMAT_KIND,
}

_IMPORT = re.compile(r"^import\b")
_DEFAULT_IMPORT = re.compile(
    r"""^import\s+(?!type\s)([A-Za-z_$][\w$]*)\s*
        (?:,\s*(?:\{[^}]*\}|\*\s*as\s+[\w$]+)\s*)?
        from\s*(["'])(.+?)\2""",
    re.VERBOSE | re.DOTALL,
)
_SKIPPED = re.compile(
    r"^(?:(?:export|declare)\s+)*"
    r"(?:type\s+[A-Za-z_$]|interface\s|(?:async\s+)?function\b|class\s|enum\s)"
)
_EXPORT = re.compile(r"^export\s+(?:default\s+)?")
_DECLARATION = re.compile(r"^(?:const|let|var)\s+")
_AS_CONST = re.compile(r"\s+as\s+const\b")
_SATISFIES = re.compile(r"\s+satisfies\s+[\w$.]+(?:<[^;=]*?>)?(?:\[\])*")
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")

# Characters that leave an expression unfinished at the end of a line,
# or continue one at the start of the next.
_CONTINUES_AFTER = frozenset("=+-*/%&|^!?:,.<>(")
_CONTINUES_BEFORE = frozenset(".?:+*/%&|^,=<>")

_OPEN = "([{"
_CLOSE = ")]}"
_QUOTES = "\"'`"


@dataclass(frozen=True, slots=True)
class ComponentImport:
    """A component binding imported by the frontmatter."""

    name: str
    path: str
    kind: str


@dataclass(frozen=True, slots=True)
class FrontmatterParts:
    imports: tuple[str, ...]
    statements: tuple[str, ...]
    components: tuple[ComponentImport, ...]


def kind_for(path: str) -> str:
    """Renderer kind for a component import path."""
    return COMPONENT_KINDS.get(PurePosixPath(path).suffix.lower(), SAME_FORMAT_KIND)


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------


def _string_end(text: str, start: int) -> int:
    """Offset just past the string literal opening at start."""
    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i
        i += 1
    return len(text)


def _top_level(text: str) -> Iterator[tuple[int, str]]:
    """Yield (offset, char) for characters outside brackets and strings."""
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in _QUOTES:
            i = _string_end(text, i)
            continue
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth = max(depth - 1, 0)
            if depth == 0:
                i += 1
                continue
        if depth == 0:
            yield i, ch
        i += 1


def _split_top(text: str, sep: str = ",") -> list[str]:
    parts: list[str] = []
    last = 0
    for i, ch in _top_level(text):
        if ch == sep:
            parts.append(text[last:i])
            last = i + 1
    parts.append(text[last:])
    return parts


def _next_top(text: str, char: str) -> int:
    """Offset of the first top-level char, or len(text)."""
    return next((i for i, ch in _top_level(text) if ch == char), len(text))


def _find_assign(text: str) -> int:
    """Offset of the first top-level ``=`` that is an assignment, or -1."""
    for i, ch in _top_level(text):
        if ch != "=":
            continue
        before = text[i - 1] if i else ""
        after = text[i + 1] if i + 1 < len(text) else ""
        if after in ("=", ">") or before in ("=", "!", "<", ">"):
            continue
        return i
    return -1


def _pattern_end(text: str) -> int:
    """End offset of the binding pattern that starts text."""
    if text[:1] in ("{", "["):
        depth = 0
        i = 0
        while i < len(text):
            ch = text[i]
            if ch in _QUOTES:
                i = _string_end(text, i)
                continue
            if ch in _OPEN:
                depth += 1
            elif ch in _CLOSE:
                depth -= 1
                if depth == 0:
                    return i + 1
            i += 1
        return len(text)
    match = _IDENTIFIER.match(text)
    return match.end() if match else 0


def split_statements(code: str) -> list[str]:
    """Split script text into top-level statements.

    Semicolons end a statement; so does a newline outside brackets when
    neither the line's end nor the next line's start continues it.
    Comments are dropped.
    """
    statements: list[str] = []
    buf: list[str] = []
    depth = 0
    i = 0

    def flush() -> None:
        stmt = "".join(buf).strip()
        if stmt:
            statements.append(stmt)
        buf.clear()

    while i < len(code):
        ch = code[i]
        if ch in _QUOTES:
            end = _string_end(code, i)
            buf.append(code[i:end])
            i = end
            continue
        if code.startswith("//", i):
            end = code.find("\n", i)
            i = len(code) if end == -1 else end
            continue
        if code.startswith("/*", i):
            end = code.find("*/", i + 2)
            i = len(code) if end == -1 else end + 2
            continue
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth = max(depth - 1, 0)
        elif depth == 0 and ch == ";":
            flush()
            i += 1
            continue
        elif depth == 0 and ch == "\n" and _ends_statement(buf, code, i + 1):
            flush()
            i += 1
            continue
        buf.append(ch)
        i += 1

    flush()
    return statements


def _ends_statement(buf: list[str], code: str, next_start: int) -> bool:
    prev = "".join(buf).rstrip()
    if not prev:
        return False
    if prev[-1] in _CONTINUES_AFTER and not prev.endswith(("++", "--")):
        return False
    rest = _skip_comments(code[next_start:])
    return not (rest and rest[0] in _CONTINUES_BEFORE)


def _skip_comments(text: str) -> str:
    """Text with leading whitespace and comments removed."""
    rest = text.lstrip()
    while rest.startswith(("//", "/*")):
        if rest.startswith("//"):
            end = rest.find("\n")
            rest = "" if end == -1 else rest[end:].lstrip()
        else:
            end = rest.find("*/", 2)
            rest = "" if end == -1 else rest[end + 2 :].lstrip()
    return rest


# ---------------------------------------------------------------------------
# Partitioning
# ---------------------------------------------------------------------------


def component_import(statement: str) -> ComponentImport | None:
    """Return the component a default import binds, if it binds one.

    A default import is a component when its path carries a component
    extension or its binding name is capitalized.
    """
    match = _DEFAULT_IMPORT.match(statement)
    if match is None:
        return None
    name, _, path = match.groups()
    suffix = PurePosixPath(path).suffix.lower()
    if suffix in COMPONENT_KINDS or name[:1].isupper():
        return ComponentImport(name, path, kind_for(path))
    return None


def partition(code: str) -> FrontmatterParts:
    """Separate import statements from the rest of the frontmatter."""
    imports: list[str] = []
    statements: list[str] = []
    components: list[ComponentImport] = []

    for stmt in split_statements(code):
        if _IMPORT.match(stmt) and not stmt.startswith("import("):
            imports.append(stmt)
            ref = component_import(stmt)
            if ref is not None:
                components.append(ref)
        else:
            statements.append(stmt)

    return FrontmatterParts(tuple(imports), tuple(statements), tuple(components))


# ---------------------------------------------------------------------------
# Light rewriting
# ---------------------------------------------------------------------------


def strip_types(statement: str) -> str | None:
    """Lightly rewrite a statement for evaluation.

    Drops ``export``, type annotations on declared names, ``as const`` and
    ``satisfies`` clauses. Returns None for statements that only declare
    types or functions.
    """
    text = statement.strip()
    if _SKIPPED.match(text):
        return None
    text = _EXPORT.sub("", text)
    text = _AS_CONST.sub("", text)
    text = _SATISFIES.sub("", text)

    match = _DECLARATION.match(text)
    if match is None:
        return text

    declarators = _declarators(text[match.end() :])
    return match.group(0) + ", ".join(f"{p} = {init}" if init else p for p, init in declarators)


def _declarators(text: str) -> list[tuple[str, str]]:
    """Split a declaration list into (pattern, initializer) pairs.

    Type annotations between a pattern and its initializer are dropped.
    """
    result: list[tuple[str, str]] = []
    rest = text.strip()
    while rest:
        end = _pattern_end(rest)
        if end == 0:
            break
        pattern, rest = rest[:end], rest[end:].lstrip()
        if rest.startswith("!"):
            rest = rest[1:].lstrip()
        if rest.startswith(":"):
            eq = _find_assign(rest)
            rest = "" if eq == -1 else rest[eq:]
        init = ""
        if rest.startswith("="):
            comma = _next_top(rest, ",")
            init = rest[1:comma].strip()
            rest = rest[comma:]
        result.append((pattern, init))
        rest = rest.lstrip()
        if not rest.startswith(","):
            break
        rest = rest[1:].lstrip()
    return result


# ---------------------------------------------------------------------------
# Bindings
# ---------------------------------------------------------------------------


class Scope:
    """Names visible to template expressions.

    Starts from a host-supplied context and grows as frontmatter
    declarations are executed in order.
    """

    def __init__(self, context: Mapping[str, Any] | None = None) -> None:
        self._bindings: dict[str, Any] = dict(context or {})

    @property
    def bindings(self) -> dict[str, Any]:
        return self._bindings

    def evaluate(self, expression: str) -> Any:
        return evaluate(expression, self._bindings)

    def execute(self, statement: str) -> None:
        """Execute one statement; only declarations have an effect."""
        text = strip_types(statement)
        if text is None:
            return
        match = _DECLARATION.match(text)
        if match is None:
            logger.debug("ignoring frontmatter statement: %s", text)
            return
        for pattern, init in _declarators(text[match.end() :]):
            self._declare(pattern, init)

    def _declare(self, pattern: str, init: str) -> None:
        bound: dict[str, Any] = {}
        try:
            value = self.evaluate(init) if init else UNDEFINED
            self._bind(pattern, value, bound)
        except EvaluationError as exc:
            logger.debug("binding %s left unbound: %s", pattern, exc)
            return
        self._bindings.update(bound)

    def _bind(self, pattern: str, value: Any, out: dict[str, Any]) -> None:
        pattern = pattern.strip()
        if pattern.startswith("{"):
            self._bind_object(pattern[1:-1], value, out)
        elif pattern.startswith("["):
            self._bind_array(pattern[1:-1], value, out)
        elif _IDENTIFIER.fullmatch(pattern):
            out[pattern] = value
        else:
            raise EvaluationError(f"unsupported binding pattern {pattern!r}")

    def _with_default(self, target: str, value: Any) -> tuple[str, Any]:
        eq = _find_assign(target)
        if eq == -1:
            return target, value
        if value is UNDEFINED:
            value = self.evaluate(target[eq + 1 :].strip())
        return target[:eq], value

    def _bind_object(self, body: str, value: Any, out: dict[str, Any]) -> None:
        used: list[str] = []
        for part in _split_top(body):
            part = part.strip()
            if not part:
                continue
            if part.startswith("..."):
                rest = {} if not isinstance(value, Mapping) else dict(value)
                for key in used:
                    rest.pop(key, None)
                self._bind(part[3:], rest, out)
                continue
            colon = next((i for i, ch in _top_level(part) if ch == ":"), -1)
            if colon == -1:
                key_end = _pattern_end(part)
                key, target = part[:key_end], part
            else:
                key, target = part[:colon].strip().strip("\"'"), part[colon + 1 :]
            used.append(key)
            target, item = self._with_default(target, get_member(value, key))
            self._bind(target, item, out)

    def _bind_array(self, body: str, value: Any, out: dict[str, Any]) -> None:
        for index, part in enumerate(_split_top(body)):
            part = part.strip()
            if not part:
                continue
            if part.startswith("..."):
                items = list(value[index:]) if isinstance(value, (list, tuple, str)) else []
                self._bind(part[3:], items, out)
                break
            target, item = self._with_default(part, get_member(value, index))
            self._bind(target, item, out)


def collect_bindings(code: str, context: Mapping[str, Any] | None = None) -> dict[str, Any]:
    """Evaluate the frontmatter's declarations and return the resulting names."""
    scope = Scope(context)
    for stmt in partition(code).statements:
        scope.execute(stmt)
    return scope.bindings
