"""Focused-view projection: keep only relevant lines, elide the rest."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from .config import DEFAULT_MERGE_TOLERANCE
from .models import RelevantRange

HIDDEN_MARKER = "···"


def separator_line(hidden: int) -> str:
    return f"// {HIDDEN_MARKER} {hidden} lines hidden {HIDDEN_MARKER}"


@dataclass
class FocusedView:
    """A pruned listing plus the focused → generated line remap.

    ``line_remap`` covers every focused line ``1..N``; separator lines map
    to ``None``.
    """

    text: str
    line_remap: Dict[int, Optional[int]] = field(default_factory=dict)
    _reverse: Optional[Dict[int, int]] = field(default=None, init=False, repr=False, compare=False)

    @property
    def line_count(self) -> int:
        return len(self.line_remap)

    def is_separator(self, focused_line: int) -> bool:
        return focused_line in self.line_remap and self.line_remap[focused_line] is None

    def generated_line_for(self, focused_line: int) -> Optional[int]:
        return self.line_remap.get(focused_line)

    def focused_line_for(self, generated_line: int) -> Optional[int]:
        """Focused line showing *generated_line*, or ``None`` if it is elided."""
        if self._reverse is None:
            self._reverse = {
                gen: focused for focused, gen in self.line_remap.items() if gen is not None
            }
        return self._reverse.get(generated_line)


def merge_ranges(
    ranges: Sequence[RelevantRange],
    tolerance: int = DEFAULT_MERGE_TOLERANCE,
) -> List[List[int]]:
    """Sort and merge ranges whose start is within ``end + tolerance`` of the previous one."""
    ordered = sorted(ranges, key=lambda r: r[0])
    merged: List[List[int]] = []
    for start, end in ordered:
        if merged and start <= merged[-1][1] + tolerance:
            merged[-1][1] = max(merged[-1][1], end)
        else:
            merged.append([start, end])
    return merged


def build_focused_view(
    generated_text: str,
    ranges: Sequence[RelevantRange],
    tolerance: int = DEFAULT_MERGE_TOLERANCE,
) -> Optional[FocusedView]:
    """Project *ranges* of *generated_text* into a :class:`FocusedView`.

    Returns ``None`` when there is nothing to show.
    """
    if not ranges:
        return None

    all_lines = generated_text.split("\n")
    total = len(all_lines)
    groups = []
    for start, end in merge_ranges(ranges, tolerance):
        start = max(start, 1)
        if start > total:
            continue
        groups.append((start, min(end, total)))
    if not groups:
        return None

    focused_lines: List[str] = []
    remap: Dict[int, Optional[int]] = {}

    for idx, (start, end) in enumerate(groups):
        if idx > 0:
            focused_lines.append(separator_line(start - groups[idx - 1][1] - 1))
            remap[len(focused_lines)] = None
        for line_no in range(start, end + 1):
            focused_lines.append(all_lines[line_no - 1])
            remap[len(focused_lines)] = line_no

    last_end = groups[-1][1]
    if last_end < total:
        focused_lines.append(separator_line(total - last_end))
        remap[len(focused_lines)] = None

    first_start = groups[0][0]
    if first_start > 1:
        focused_lines.insert(0, separator_line(first_start - 1))
        shifted: Dict[int, Optional[int]] = {1: None}
        for focused, generated in remap.items():
            shifted[focused + 1] = generated
        remap = shifted

    return FocusedView(text="\n".join(focused_lines), line_remap=remap)
