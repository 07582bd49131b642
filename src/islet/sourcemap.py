"""Source Map v3 support for synthesized modules.

:class:`MappedWriter` is a drop-in line writer for :func:`islet.codegen.render`
that remembers, for every generated line written with an origin, which
source position produced it. :meth:`MappedWriter.source_map` encodes those
records as a standard v3 map with Base64 VLQ ``mappings``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from islet.tokens import Position

_B64 = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_B64_INDEX = {ch: i for i, ch in enumerate(_B64)}

_VLQ_SHIFT = 5
_VLQ_BASE = 1 << _VLQ_SHIFT
_VLQ_MASK = _VLQ_BASE - 1
_VLQ_CONTINUE = _VLQ_BASE


def encode_vlq(value: int) -> str:
    """Encode one signed integer as Base64 VLQ."""
    vlq = (-value << 1) | 1 if value < 0 else value << 1
    out: list[str] = []
    while True:
        digit = vlq & _VLQ_MASK
        vlq >>= _VLQ_SHIFT
        if vlq:
            digit |= _VLQ_CONTINUE
        out.append(_B64[digit])
        if not vlq:
            return "".join(out)


def decode_vlq(segment: str) -> list[int]:
    """Decode a Base64 VLQ segment into its signed integers."""
    values: list[int] = []
    shift = 0
    acc = 0
    for ch in segment:
        digit = _B64_INDEX[ch]
        acc += (digit & _VLQ_MASK) << shift
        if digit & _VLQ_CONTINUE:
            shift += _VLQ_SHIFT
            continue
        values.append(-(acc >> 1) if acc & 1 else acc >> 1)
        acc = 0
        shift = 0
    return values


@dataclass(frozen=True, slots=True)
class Mapping:
    """One generated → source correspondence, all fields 0-based."""

    generated_line: int
    generated_column: int
    source_line: int
    source_column: int


class MappedWriter:
    """Line writer that records where each generated line came from."""

    def __init__(self, source_name: str, source_content: str | None = None) -> None:
        self._source_name = source_name
        self._source_content = source_content
        self._lines: list[str] = []
        self._mappings: list[Mapping] = []

    @property
    def mappings(self) -> tuple[Mapping, ...]:
        return tuple(self._mappings)

    def write_line(self, text: str, origin: Position | None = None, column: int = 0) -> None:
        if origin is not None:
            self._mappings.append(
                Mapping(len(self._lines), column, origin.line - 1, origin.column - 1)
            )
        self._lines.append(text)

    def getvalue(self) -> str:
        return "\n".join(self._lines) + "\n"

    def encode_mappings(self) -> str:
        by_line: dict[int, list[Mapping]] = {}
        for m in self._mappings:
            by_line.setdefault(m.generated_line, []).append(m)

        groups: list[str] = []
        prev_src_line = 0
        prev_src_col = 0
        for line in range(len(self._lines)):
            segments: list[str] = []
            prev_gen_col = 0
            for m in sorted(by_line.get(line, ()), key=lambda m: m.generated_column):
                segments.append(
                    encode_vlq(m.generated_column - prev_gen_col)
                    + encode_vlq(0)  # single source
                    + encode_vlq(m.source_line - prev_src_line)
                    + encode_vlq(m.source_column - prev_src_col)
                )
                prev_gen_col = m.generated_column
                prev_src_line = m.source_line
                prev_src_col = m.source_column
            groups.append(",".join(segments))
        return ";".join(groups)

    def source_map(self, file: str) -> dict[str, Any]:
        """The v3 source map for everything written so far."""
        result: dict[str, Any] = {
            "version": 3,
            "file": file,
            "sources": [self._source_name],
            "names": [],
            "mappings": self.encode_mappings(),
        }
        if self._source_content is not None:
            result["sourcesContent"] = [self._source_content]
        return result


def decode_mappings(mappings: str) -> list[Mapping]:
    """Decode a v3 ``mappings`` string (single source) back into records."""
    result: list[Mapping] = []
    src_line = 0
    src_col = 0
    for gen_line, group in enumerate(mappings.split(";")):
        gen_col = 0
        for segment in filter(None, group.split(",")):
            fields = decode_vlq(segment)
            gen_col += fields[0]
            if len(fields) >= 4:
                src_line += fields[2]
                src_col += fields[3]
                result.append(Mapping(gen_line, gen_col, src_line, src_col))
    return result
