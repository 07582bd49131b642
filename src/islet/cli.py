"""Command-line interface for islet."""

from __future__ import annotations

import argparse
import asyncio
import base64
import json
import logging
import sys
import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, TextIO

from islet.ast import Fragment
from islet.markup import BuildOptions, build_markup, build_to_stream
from islet.parser import parse
from islet.synth import SynthOptions, synthesize_module


@dataclass(frozen=True, slots=True)
class CliOptions:
    """Parsed CLI options."""

    input_file: Path
    output_file: Path | None
    module: bool
    build: BuildOptions
    dev: bool
    source_map: bool
    debug: bool
    verbose: int = 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser (separate function for testability)."""
    p = argparse.ArgumentParser(
        prog="islet",
        description="Compile islet templates to markup or render modules",
    )
    p.add_argument("input", help="Input .islet file")
    p.add_argument("-o", "--output", help="Output file (default: stdout)")
    p.add_argument(
        "--module",
        action="store_true",
        help="Emit a Python render module instead of markup",
    )
    p.add_argument("--pretty", action="store_true", help="Pretty-print the output")
    p.add_argument(
        "--evaluate",
        action="store_true",
        help="Evaluate expressions against frontmatter declarations",
    )
    p.add_argument("--no-escape", action="store_true", help="Do not escape text content")
    p.add_argument("--dev", action="store_true", help="Add live-reload glue to render modules")
    p.add_argument(
        "--source-map",
        action="store_true",
        help="Write a source map next to the render module",
    )
    p.add_argument("--stream", action="store_true", help="Write markup in chunks")
    p.add_argument(
        "--chunk-size",
        type=int,
        default=None,
        metavar="N",
        help="Chunk size in characters for --stream (default: 8192)",
    )
    p.add_argument(
        "--config",
        metavar="FILE",
        help="Config file (default: auto-discover islet.toml)",
    )
    p.add_argument("--debug", action="store_true", help="Dump AST to stderr")
    p.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Log progress to stderr (repeat for debug output)",
    )
    return p


def load_config(config_path: Path | None, input_dir: Path) -> dict[str, Any]:
    """Load a TOML config file, returning an empty dict on missing/absent file."""
    path = config_path if config_path is not None else input_dir / "islet.toml"

    if not path.is_file():
        return {}

    with open(path, "rb") as f:
        return tomllib.load(f)


def _section(config: dict[str, Any], name: str) -> dict[str, Any]:
    value = config.get(name, {})
    if not isinstance(value, dict):
        raise argparse.ArgumentTypeError(f"config [{name}] must be a table")
    return value


def _config_value(section: dict[str, Any], table: str, key: str, kind: type, default: Any) -> Any:
    if key not in section:
        return default
    value = section[key]
    # bool is a subclass of int
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise argparse.ArgumentTypeError(
            f"config [{table}] {key} must be of type {kind.__name__}, got {value!r}"
        )
    return value


def resolve_options(args: argparse.Namespace) -> CliOptions:
    """Merge config file and CLI args into CliOptions.

    Precedence: config file < CLI flags.
    """
    input_file = Path(args.input)
    input_dir = input_file.parent
    if not input_dir.parts:
        input_dir = Path(".")

    config_path = Path(args.config) if args.config else None
    try:
        config = load_config(config_path, input_dir)
    except tomllib.TOMLDecodeError as exc:
        raise argparse.ArgumentTypeError(f"invalid config file: {exc}") from exc

    build = _section(config, "build")
    module = _section(config, "module")

    context = _config_value(build, "build", "context", dict, {})

    chunk_size = _config_value(build, "build", "chunk_size", int, 8192)
    if args.chunk_size is not None:
        chunk_size = args.chunk_size
    if chunk_size < 1:
        raise argparse.ArgumentTypeError(f"chunk size must be positive, got {chunk_size}")

    build_opts = BuildOptions(
        pretty_print=args.pretty or _config_value(build, "build", "pretty_print", bool, False),
        indent=_config_value(build, "build", "indent", str, "  "),
        escape_markup=(
            not args.no_escape and _config_value(build, "build", "escape_markup", bool, True)
        ),
        evaluate_expressions=(
            args.evaluate or _config_value(build, "build", "evaluate_expressions", bool, False)
        ),
        streaming=args.stream or _config_value(build, "build", "streaming", bool, False),
        chunk_size=chunk_size,
        context=context,
    )

    output_file = Path(args.output) if args.output else None

    return CliOptions(
        input_file=input_file,
        output_file=output_file,
        module=args.module or _config_value(module, "module", "enabled", bool, False),
        build=build_opts,
        dev=args.dev or _config_value(module, "module", "dev", bool, False),
        source_map=args.source_map or _config_value(module, "module", "source_map", bool, False),
        debug=args.debug,
        verbose=args.verbose,
    )


def _configure_logging(verbose: int) -> None:
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG if verbose > 1 else logging.INFO,
            format="%(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


def _inline_map(source_map: dict[str, Any]) -> str:
    encoded = base64.b64encode(json.dumps(source_map).encode("utf-8")).decode("ascii")
    return f"# sourceMappingURL=data:application/json;base64,{encoded}\n"


def synthesize_file(options: CliOptions, source: str, tree: Fragment) -> tuple[str, list[str]]:
    """Synthesize a render module; returns (code, errors)."""
    result = synthesize_module(
        tree,
        SynthOptions(
            filename=options.input_file.name,
            dev=options.dev,
            pretty_print=options.build.pretty_print,
            source_map=options.source_map,
            source=source,
        ),
    )
    code = result.code
    if result.map is not None:
        if options.output_file is not None:
            map_file = options.output_file.with_name(options.output_file.name + ".map")
            map_file.write_text(json.dumps(result.map), encoding="utf-8")
            code += f"# sourceMappingURL={map_file.name}\n"
        else:
            code += _inline_map(result.map)
    return code, list(result.errors)


def _stream(tree: Fragment, options: BuildOptions, out: TextIO) -> None:
    async def write(chunk: str) -> None:
        out.write(chunk)

    asyncio.run(build_to_stream(tree, write, options))


def main(argv: list[str] | None = None) -> int:
    """CLI entry point. Returns exit code (0/1/2). Does not call sys.exit()."""
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)

    try:
        options = resolve_options(args)
    except argparse.ArgumentTypeError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 2

    try:
        source = options.input_file.read_text(encoding="utf-8")
    except OSError as exc:
        print(f"error: cannot read {options.input_file}: {exc.strerror}", file=sys.stderr)
        return 2

    result = parse(source)
    filename = str(options.input_file)
    normalized = source.replace("\r\n", "\n")
    for diag in result.diagnostics:
        print(diag.format(normalized, filename), file=sys.stderr)
    if result.errors:
        return 1

    if options.debug:
        from islet.debug import dump_ast

        dump_ast(result.ast, file=sys.stderr)

    if options.module:
        code, errors = synthesize_file(options, source, result.ast)
        for error in errors:
            print(f"error: {error}", file=sys.stderr)
        if errors:
            return 1
        _write_output(options, code)
        return 0

    if options.build.streaming:
        if options.output_file:
            with open(options.output_file, "w", encoding="utf-8") as out:
                _stream(result.ast, options.build, out)
        else:
            _stream(result.ast, options.build, sys.stdout)
        return 0

    _write_output(options, build_markup(result.ast, options.build))
    return 0


def _write_output(options: CliOptions, text: str) -> None:
    if options.output_file:
        options.output_file.write_text(text, encoding="utf-8")
    else:
        sys.stdout.write(text)

