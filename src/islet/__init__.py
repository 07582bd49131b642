"""islet — a compiler for frontmatter + markup templates with component islands."""

from __future__ import annotations

from islet.markup import BuildOptions, build_markup, build_to_stream
from islet.parser import ParseResult, parse
from islet.synth import SynthOptions, SynthResult, synthesize_module

__version__ = "0.1.0"

__all__ = [
    "BuildOptions",
    "ParseResult",
    "SynthOptions",
    "SynthResult",
    "build_markup",
    "build_to_stream",
    "compile",
    "parse",
    "synthesize_module",
]


def compile(
    source: str,
    options: BuildOptions | None = None,
) -> str:
    """Parse source and build its markup in one step."""
    result = parse(source)
    return build_markup(result.ast, options)
