"""Graph export helper for Graphviz DOT output."""

from __future__ import annotations

from collections import deque
from pathlib import Path
from typing import List, Set, Tuple

from .models import CodeGraph


def export_dot(graph: CodeGraph, output_file: Path, focus: str = "", depth: int = 10) -> None:
    selected = _focused_subgraph(graph, focus, depth)

    lines = ["digraph SourceLens {"]
    lines.append("  rankdir=LR;")

    for name in sorted(selected["nodes"]):
        entry = graph.func_map[name]
        label = f"{name}\\nL{entry.start_line}-{entry.end_line}"
        lines.append(f'  "{_esc(name)}" [label="{_esc(label)}"];')

    for src, dst in sorted(selected["edges"]):
        lines.append(f'  "{_esc(src)}" -> "{_esc(dst)}";')

    lines.append("}")
    output_file.write_text("\n".join(lines), encoding="utf-8")


def _focused_subgraph(graph: CodeGraph, focus: str, depth: int) -> dict:
    if not focus:
        nodes = set(graph.func_map)
    elif focus not in graph.func_map:
        nodes = set()
    else:
        nodes = {focus}
        queue = deque([(focus, 0)])
        while queue:
            current, level = queue.popleft()
            if level >= depth:
                continue
            for callee in graph.func_map[current].callee_names:
                if callee in graph.func_map and callee not in nodes:
                    nodes.add(callee)
                    queue.append((callee, level + 1))

    edges: Set[Tuple[str, str]] = set()
    for name in nodes:
        for callee in graph.func_map[name].callee_names:
            if callee in nodes:
                edges.add((name, callee))
    return {"nodes": nodes, "edges": edges}


def _esc(text: str) -> str:
    return text.replace('"', '\\"')


def edge_list(graph: CodeGraph) -> List[Tuple[str, str]]:
    """Every named caller → named callee pair, sorted."""
    return sorted(_focused_subgraph(graph, "", 0)["edges"])
