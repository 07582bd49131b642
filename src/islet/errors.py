"""Diagnostics and error types with formatted source context."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from islet.tokens import Span


class Severity(Enum):
    ERROR = "error"
    WARNING = "warning"


def format_source_context(
    label: str,
    message: str,
    span: Span,
    source: str,
    filename: str = "input.islet",
) -> str:
    """Render a message with a gutter, the offending source line, and carets."""
    lines = source.splitlines(keepends=True)
    line_idx = span.start.line - 1
    col = span.start.column

    if 0 <= line_idx < len(lines):
        source_line = lines[line_idx].rstrip("\n").rstrip("\r")
    else:
        source_line = ""

    # Underline the full span when on one line, otherwise to end of line
    if span.end.line == span.start.line:
        underline_len = max(1, span.end.column - col)
    else:
        underline_len = max(1, len(source_line) - col + 1)

    pad = " " * (col - 1)
    carets = "^" * underline_len

    line_num = str(span.start.line)
    gutter_width = len(line_num) + 1

    blank_gutter = " " * gutter_width + "|"
    line_gutter = f"{line_num:>{gutter_width - 1}} |"

    return (
        f"{label}: {message}\n"
        f"{' ' * gutter_width}--> {filename}:{span.start.line}:{col}\n"
        f"{blank_gutter}\n"
        f"{line_gutter} {source_line}\n"
        f"{blank_gutter} {pad}{carets}"
    )


@dataclass(frozen=True, slots=True)
class Diagnostic:
    """A recoverable problem found while lexing or parsing.

    Diagnostics are collected, never raised: the parser always returns a
    usable tree alongside them.
    """

    code: str
    message: str
    span: Span
    severity: Severity

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def format(self, source: str, filename: str = "input.islet") -> str:
        label = f"{self.severity.value}[{self.code}]"
        return format_source_context(label, self.message, self.span, source, filename)


class IsletError(Exception):
    """Base class for islet exceptions."""


class EvaluationError(IsletError):
    """Raised by the restricted evaluator; callers degrade to empty output."""

    def __init__(self, message: str, expression: str = "") -> None:
        self.message = message
        self.expression = expression
        super().__init__(f"{message} in {expression!r}" if expression else message)


class SynthesisError(IsletError):
    """An internal failure while synthesizing a render module."""

    def __init__(self, message: str, filename: str) -> None:
        self.message = message
        self.filename = filename
        super().__init__(f"{filename}: {message}")
