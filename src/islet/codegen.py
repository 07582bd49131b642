"""Statement IR for generated Python modules.

Generated code is assembled as a tree of statements and rendered once,
so indentation and literal quoting live in one place. Every literal goes
through :func:`literal`, never through hand-built quoting.
"""

from __future__ import annotations

import pprint
from dataclasses import dataclass
from typing import Any, Protocol, assert_never

from islet.tokens import Position


@dataclass(frozen=True, slots=True)
class Line:
    """One statement. ``origin`` is the source position it came from."""

    text: str
    origin: Position | None = None


@dataclass(frozen=True, slots=True)
class Comment:
    text: str


@dataclass(frozen=True, slots=True)
class Blank:
    pass


@dataclass(frozen=True, slots=True)
class Block:
    """A header line, an indented body, and an optional closing line."""

    header: str
    body: tuple[Stmt, ...]
    footer: str | None = None
    origin: Position | None = None


Stmt = Line | Comment | Blank | Block


@dataclass(frozen=True, slots=True)
class Module:
    body: tuple[Stmt, ...]
    docstring: str | None = None


class LineWriter(Protocol):
    def write_line(self, text: str, origin: Position | None = None, column: int = 0) -> None: ...

    def getvalue(self) -> str: ...


class TextWriter:
    """Collects generated lines."""

    def __init__(self) -> None:
        self._lines: list[str] = []

    def write_line(self, text: str, origin: Position | None = None, column: int = 0) -> None:
        self._lines.append(text)

    def getvalue(self) -> str:
        return "\n".join(self._lines) + "\n"


def literal(value: Any, *, pretty: bool = False) -> str:
    """Python source for a plain-data value (str, number, bool, None, list, dict)."""
    if pretty:
        return pprint.pformat(value, width=88, sort_dicts=False)
    return repr(value)


def call(func: str, *args: str, **kwargs: str) -> str:
    """Source for a call expression from already-rendered argument sources."""
    parts = list(args) + [f"{k}={v}" for k, v in kwargs.items()]
    return f"{func}({', '.join(parts)})"


def render(module: Module, writer: LineWriter | None = None, unit: str = "    ") -> str:
    """Render a module through writer (a plain TextWriter by default)."""
    out = writer if writer is not None else TextWriter()
    if module.docstring is not None:
        out.write_line(_docstring(module.docstring))
        out.write_line("")
    for stmt in module.body:
        _emit(stmt, out, 0, unit)
    return out.getvalue()


def _docstring(text: str) -> str:
    if '"""' in text or "\\" in text or text.endswith('"') or "\n" in text:
        return repr(text)
    return f'"""{text}"""'


def _emit(stmt: Stmt, out: LineWriter, level: int, unit: str) -> None:
    prefix = unit * level
    if isinstance(stmt, Line):
        _write(out, prefix, stmt.text, stmt.origin)
    elif isinstance(stmt, Comment):
        out.write_line(f"{prefix}# {stmt.text}")
    elif isinstance(stmt, Blank):
        out.write_line("")
    elif isinstance(stmt, Block):
        _write(out, prefix, stmt.header, stmt.origin)
        if stmt.body:
            for child in stmt.body:
                _emit(child, out, level + 1, unit)
        elif stmt.footer is None:
            out.write_line(f"{prefix}{unit}pass")
        if stmt.footer is not None:
            out.write_line(f"{prefix}{stmt.footer}")
    else:
        assert_never(stmt)


def _write(out: LineWriter, prefix: str, text: str, origin: Position | None) -> None:
    """Write possibly multi-line text; continuation lines keep the prefix."""
    first, *rest = text.split("\n")
    out.write_line(prefix + first, origin, len(prefix))
    for line in rest:
        out.write_line(prefix + line if line else "")
