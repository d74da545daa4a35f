"""Position-mapping decoder and index.

Decodes the ``mappings`` field of a standard source map (base64 VLQ digits,
``;`` between generated lines, ``,`` between segments) into a
:class:`PositionIndex` that translates original lines into generated lines.

Each VLQ digit carries 5 value bits plus a continuation bit; after
reassembly the least-significant bit of the magnitude is the sign flag.
A segment holds up to five running deltas:

    generated column, source index, original line, original column, name index

The generated-column accumulator resets on every ``;``; the others carry
across lines. Segments with a single field are copy-through text and have
no original position.
"""

from __future__ import annotations

import logging
from bisect import bisect_left, bisect_right
from dataclasses import dataclass, field
from operator import attrgetter
from typing import Dict, Iterable, List, Optional, Tuple

logger = logging.getLogger(__name__)

BASE64_DIGITS = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"
_DIGIT_VALUES: Dict[str, int] = {ch: i for i, ch in enumerate(BASE64_DIGITS)}

VLQ_BASE_SHIFT = 5
VLQ_VALUE_MASK = 0b11111
VLQ_CONTINUATION_BIT = 0b100000

# (generated_line, generated_column, original_line, original_column), all 0-based
MappingPoint = Tuple[int, int, int, int]


class MappingDecodeError(ValueError):
    """Raised when a mappings string contains an undecodable segment."""


# ---------------------------------------------------------------------------
# VLQ digits
# ---------------------------------------------------------------------------

def encode_vlq(value: int) -> str:
    """Encode one signed integer as base64 VLQ digits."""
    vlq = ((-value) << 1) | 1 if value < 0 else value << 1
    digits: List[str] = []
    while True:
        digit = vlq & VLQ_VALUE_MASK
        vlq >>= VLQ_BASE_SHIFT
        if vlq:
            digit |= VLQ_CONTINUATION_BIT
        digits.append(BASE64_DIGITS[digit])
        if not vlq:
            return "".join(digits)


def decode_vlq(text: str, pos: int = 0) -> Tuple[int, int]:
    """Decode one signed integer starting at *pos*.

    Returns:
        ``(value, next_pos)``.

    Raises:
        MappingDecodeError: on a non-base64 character or a digit run that
            ends while the continuation bit is still set.
    """
    result = 0
    shift = 0
    while True:
        if pos >= len(text):
            raise MappingDecodeError(f"unterminated VLQ value at offset {pos}")
        digit = _DIGIT_VALUES.get(text[pos])
        if digit is None:
            raise MappingDecodeError(f"invalid base64 digit {text[pos]!r} at offset {pos}")
        pos += 1
        result += (digit & VLQ_VALUE_MASK) << shift
        shift += VLQ_BASE_SHIFT
        if not digit & VLQ_CONTINUATION_BIT:
            break
    value = -(result >> 1) if result & 1 else result >> 1
    return value, pos


def decode_segment(segment: str) -> List[int]:
    """Decode every VLQ field of one comma-free segment."""
    values: List[int] = []
    pos = 0
    while pos < len(segment):
        value, pos = decode_vlq(segment, pos)
        values.append(value)
    return values


# ---------------------------------------------------------------------------
# Index
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ColumnMapping:
    original_column: int
    generated_line: int


_by_column = attrgetter("original_column")


@dataclass(frozen=True)
class PositionIndex:
    """Original line (1-based) → generated line (1-based) lookup table.

    ``col_map`` entries are kept sorted by original column so a lookup can
    take the floor match for a given column.
    """

    line_map: Dict[int, int] = field(default_factory=dict)
    col_map: Dict[int, List[ColumnMapping]] = field(default_factory=dict)
    truncated: bool = False

    @property
    def is_empty(self) -> bool:
        return not self.line_map

    def map_position(self, line: int, column: Optional[int] = None) -> int:
        """Translate an original position into a generated line.

        Column floor match first, then the exact line, then the nearest
        mapped line above. Falls back to *line* itself.
        """
        if column is not None:
            entries = self.col_map.get(line)
            if entries:
                idx = bisect_right(entries, column, key=_by_column)
                if idx:
                    floor_column = entries[idx - 1].original_column
                    first = bisect_left(entries, floor_column, key=_by_column)
                    return entries[first].generated_line

        mapped = self.line_map.get(line)
        if mapped is not None:
            return mapped

        for candidate in range(line - 1, 0, -1):
            mapped = self.line_map.get(candidate)
            if mapped is not None:
                return mapped
        return line


class _IndexBuilder:
    def __init__(self) -> None:
        self.line_map: Dict[int, int] = {}
        self.col_map: Dict[int, List[ColumnMapping]] = {}

    def add(self, original_line: int, original_column: int, generated_line: int) -> None:
        current = self.line_map.get(original_line)
        if current is None or generated_line < current:
            self.line_map[original_line] = generated_line
        self.col_map.setdefault(original_line, []).append(
            ColumnMapping(original_column=original_column, generated_line=generated_line)
        )

    def freeze(self, truncated: bool = False) -> PositionIndex:
        # sort is stable: equal columns keep generated-line order
        col_map = {line: sorted(entries, key=_by_column) for line, entries in self.col_map.items()}
        return PositionIndex(line_map=self.line_map, col_map=col_map, truncated=truncated)


def decode_mappings(mappings: str) -> PositionIndex:
    """Decode a mappings string into a :class:`PositionIndex`.

    Decoding stops at the first malformed segment; everything decoded up to
    that point is kept and the index is flagged ``truncated``.
    """
    builder = _IndexBuilder()
    source_index = 0
    original_line = 0
    original_column = 0
    name_index = 0

    for generated_line, line_text in enumerate(mappings.split(";"), start=1):
        generated_column = 0
        for segment in line_text.split(","):
            if not segment:
                continue
            try:
                fields = decode_segment(segment)
                if len(fields) not in (1, 4, 5):
                    raise MappingDecodeError(f"segment {segment!r} has {len(fields)} fields")
            except MappingDecodeError as exc:
                logger.debug("Mappings truncated at generated line %d: %s", generated_line, exc)
                return builder.freeze(truncated=True)

            generated_column += fields[0]
            if len(fields) == 1:
                continue
            source_index += fields[1]
            original_line += fields[2]
            original_column += fields[3]
            if len(fields) == 5:
                name_index += fields[4]
            builder.add(original_line + 1, original_column, generated_line)

    return builder.freeze()


def map_position(index: Optional[PositionIndex], line: int, column: Optional[int] = None) -> int:
    """Translate through *index*, or return *line* unchanged when there is none."""
    if index is None:
        return line
    return index.map_position(line, column)


# ---------------------------------------------------------------------------
# Encoding (used by the beautifier to publish its mapping)
# ---------------------------------------------------------------------------

def encode_mappings(points: Iterable[MappingPoint]) -> str:
    """Encode mapping points into a mappings string for a single source.

    *points* must be ordered by generated position.
    """
    lines: List[str] = []
    segments: List[str] = []
    current_line = 0
    prev_generated_column = 0
    prev_original_line = 0
    prev_original_column = 0

    for generated_line, generated_column, original_line, original_column in points:
        while current_line < generated_line:
            lines.append(",".join(segments))
            segments = []
            current_line += 1
            prev_generated_column = 0
        segments.append(
            encode_vlq(generated_column - prev_generated_column)
            + encode_vlq(0)
            + encode_vlq(original_line - prev_original_line)
            + encode_vlq(original_column - prev_original_column)
        )
        prev_generated_column = generated_column
        prev_original_line = original_line
        prev_original_column = original_column

    lines.append(",".join(segments))
    return ";".join(lines)
