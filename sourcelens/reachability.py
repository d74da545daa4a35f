"""Reachability from findings through the name-based call graph."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Sequence

from .config import DEFAULT_MAX_CALL_DEPTH
from .models import CodeGraph, FunctionRange, MappedFinding, RelevantRange


@dataclass
class ReachableSet:
    seed_ranges: List[FunctionRange] = field(default_factory=list)
    reached_names: List[str] = field(default_factory=list)
    ranges: List[RelevantRange] = field(default_factory=list)


def find_innermost_range(line: int, ranges: Iterable[FunctionRange]) -> Optional[FunctionRange]:
    """Smallest range containing *line*; the first one wins on equal size."""
    best: Optional[FunctionRange] = None
    for candidate in ranges:
        if candidate.contains(line) and (best is None or candidate.span < best.span):
            best = candidate
    return best


def collect_reachable(
    findings: Sequence[MappedFinding],
    graph: CodeGraph,
    max_depth: int = DEFAULT_MAX_CALL_DEPTH,
) -> Optional[ReachableSet]:
    """Expand the functions containing *findings* through their callees.

    Each finding seeds the innermost range that contains it. The callee
    names of all seeds start a breadth-first walk over ``graph.func_map``;
    every name is visited at most once and expansion stops ``max_depth``
    hops away from the seeds.

    Returns ``None`` when no finding falls inside any function.
    """
    if not graph.all_ranges or not findings:
        return None

    result = ReachableSet()
    seed_names: List[str] = []
    for finding in findings:
        best = find_innermost_range(finding.line, graph.all_ranges)
        if best is None:
            continue
        result.seed_ranges.append(best)
        seed_names.extend(sorted(best.callee_names))

    if not result.seed_ranges:
        return None

    visited = set()
    queue = deque()
    for name in seed_names:
        if name in graph.func_map and name not in visited:
            visited.add(name)
            result.reached_names.append(name)
            queue.append((name, 0))

    while queue:
        name, depth = queue.popleft()
        if depth >= max_depth:
            continue
        for callee in sorted(graph.func_map[name].callee_names):
            if callee not in visited and callee in graph.func_map:
                visited.add(callee)
                result.reached_names.append(callee)
                queue.append((callee, depth + 1))

    result.ranges = [seed.as_range() for seed in result.seed_ranges]
    result.ranges.extend(graph.func_map[name].as_range() for name in result.reached_names)
    return result


def relevant_ranges(
    findings: Sequence[MappedFinding],
    graph: CodeGraph,
    max_depth: int = DEFAULT_MAX_CALL_DEPTH,
) -> Optional[List[RelevantRange]]:
    """Unmerged ranges reachable from *findings*, or ``None`` if there is no focus."""
    reachable = collect_reachable(findings, graph, max_depth=max_depth)
    return reachable.ranges if reachable is not None else None
