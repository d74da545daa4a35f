"""Reformat pass: pretty-print raw JavaScript and publish a position mapping.

The printer is restricted to whitespace changes (its unpackers are
disabled), so the non-whitespace character streams of the raw and the
generated text are identical. The mapping is recovered by walking both
streams in lockstep and emitting one segment at the start of every
generated token run. Output that breaks this property is discarded.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, Optional

import jsbeautifier
from jsbeautifier.javascript.beautifier import Beautifier

from .sourcemap import MappingPoint, PositionIndex, decode_mappings, encode_mappings

logger = logging.getLogger(__name__)


class AlignmentError(ValueError):
    """The beautified text is not a whitespace-only rewrite of the source."""


class SourcePrinter(Beautifier):
    """jsbeautifier without its packer/obfuscator unpackers."""

    def unpack(self, source, evalcode=False):
        return source


@dataclass(frozen=True)
class BeautifyResult:
    code: str
    mappings: Optional[str] = None
    index: Optional[PositionIndex] = None

    @property
    def reformatted(self) -> bool:
        return self.mappings is not None


def beautify(raw_code: str, indent_size: int = 2) -> BeautifyResult:
    """Pretty-print *raw_code*.

    On any printer failure, or when the printed text differs from the
    source in anything but whitespace, the raw text is returned unchanged
    with no position index, so every lookup becomes the identity.
    """
    options = jsbeautifier.default_options()
    options.indent_size = indent_size
    options.preserve_newlines = True
    options.end_with_newline = False
    try:
        code = SourcePrinter().beautify(raw_code, options)
    except Exception as exc:
        logger.debug("Beautify failed: %s", exc)
        return BeautifyResult(code=raw_code)

    try:
        points = list(align_positions(raw_code, code))
    except AlignmentError as exc:
        logger.debug("Discarding beautified text: %s", exc)
        return BeautifyResult(code=raw_code)

    mappings = encode_mappings(points)
    return BeautifyResult(code=code, mappings=mappings, index=decode_mappings(mappings))


def align_positions(original: str, generated: str) -> Iterator[MappingPoint]:
    """Yield 0-based mapping points for each token run in *generated*.

    Raises:
        AlignmentError: when the non-whitespace characters of the two texts
            differ.
    """
    o_pos = 0
    o_line = 0
    o_col = 0
    g_line = 0
    g_col = 0
    run_start = True
    o_len = len(original)

    for ch in generated:
        if ch == "\n":
            g_line += 1
            g_col = 0
            run_start = True
            continue
        if ch.isspace():
            g_col += 1
            run_start = True
            continue

        while o_pos < o_len and original[o_pos].isspace():
            if original[o_pos] == "\n":
                o_line += 1
                o_col = 0
            else:
                o_col += 1
            o_pos += 1

        if o_pos >= o_len or original[o_pos] != ch:
            raise AlignmentError(f"text diverges from the source at generated {g_line + 1}:{g_col}")

        if run_start:
            yield (g_line, g_col, o_line, o_col)
            run_start = False
        o_pos += 1
        o_col += 1
        g_col += 1

    if original[o_pos:].strip():
        raise AlignmentError("text ends before the source does")
