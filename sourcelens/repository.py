"""Source channel: raw script text, findings and cross-source definitions."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import SUPPORTED_EXTENSIONS
from .models import CodeGraph, DefinitionHit, Finding, SourceResponse
from .parser import CodeGraphBuilder

logger = logging.getLogger(__name__)

SKIP_DIRS = {
    ".git", "node_modules", "__pycache__", ".venv", "venv",
    ".sourcelens", "bower_components",
}

FINDINGS_SUFFIX = ".findings.json"
FINDINGS_INDEX = "findings.json"

# Default severities of the analysis report categories
SINK_SEVERITY = "high"
PATTERN_SEVERITY = "medium"


class SourceUnavailableError(LookupError):
    """The repository cannot supply the requested source."""


# ===================================================================
# Findings payloads
# ===================================================================

def _finding_from_location(entry: Dict[str, Any], default_severity: str) -> Optional[Finding]:
    location = entry.get("location")
    if not isinstance(location, dict) or not location.get("line"):
        return None
    column = location.get("column")
    return Finding(
        line=int(location["line"]),
        severity=str(entry.get("severity") or default_severity),
        column=int(column) if column is not None else None,
    )


def collect_findings(payload: Any) -> List[Finding]:
    """Normalise a findings payload.

    Accepts a plain list of ``{line, column?, severity}`` entries, a single
    analysis report with ``securitySinks`` / ``dangerousPatterns`` lists,
    or a list of such reports.
    """
    if payload is None:
        return []
    if isinstance(payload, dict):
        payload = [payload]

    findings: List[Finding] = []
    for item in payload:
        if not isinstance(item, dict):
            continue
        if "securitySinks" in item or "dangerousPatterns" in item:
            for sink in item.get("securitySinks") or []:
                finding = _finding_from_location(sink, SINK_SEVERITY)
                if finding:
                    findings.append(finding)
            for pattern in item.get("dangerousPatterns") or []:
                finding = _finding_from_location(pattern, PATTERN_SEVERITY)
                if finding:
                    findings.append(finding)
        elif item.get("line"):
            column = item.get("column")
            findings.append(Finding(
                line=int(item["line"]),
                severity=str(item.get("severity") or PATTERN_SEVERITY),
                column=int(column) if column is not None else None,
            ))
    return findings


# ===================================================================
# Repository interface
# ===================================================================

class SourceRepository(ABC):
    """Abstract request/response channel to a source store."""

    @abstractmethod
    def get_source(self, source_id: str) -> SourceResponse:
        """Return raw text, findings and context for *source_id*.

        Raises:
            SourceUnavailableError: if the source cannot be supplied.
        """
        ...

    @abstractmethod
    def list_sources(self) -> List[str]:
        """Return every source identifier known to the repository."""
        ...

    @abstractmethod
    def find_definition(self, name: str, exclude: Optional[str] = None) -> Optional[DefinitionHit]:
        """Locate a function named (or prefixed) *name* in another source."""
        ...


class LocalSourceRepository(SourceRepository):
    """Scripts and findings stored in a directory tree.

    Source identifiers are POSIX paths relative to *root*. Findings come
    from ``<script>.findings.json`` next to a script, or from a
    ``findings.json`` at the root keyed by source identifier.
    """

    def __init__(self, root: Path, max_chars: Optional[int] = None) -> None:
        self.root = root
        self.max_chars = max_chars
        self._builder: Optional[CodeGraphBuilder] = None
        self._graph_cache: Dict[str, Tuple[float, CodeGraph]] = {}

    # ------------------------------------------------------------------
    # Listing
    # ------------------------------------------------------------------

    def list_sources(self) -> List[str]:
        if not self.root.is_dir():
            return []
        sources: List[str] = []
        for path in sorted(self.root.rglob("*")):
            if not path.is_file() or path.suffix not in SUPPORTED_EXTENSIONS:
                continue
            rel = path.relative_to(self.root)
            if any(part in SKIP_DIRS for part in rel.parts):
                continue
            sources.append(rel.as_posix())
        return sources

    def _resolve(self, source_id: str) -> Path:
        path = (self.root / source_id).resolve()
        root = self.root.resolve()
        if root != path and root not in path.parents:
            raise SourceUnavailableError(f"Source '{source_id}' is outside {self.root}")
        if not path.is_file():
            raise SourceUnavailableError(f"Source '{source_id}' not found")
        return path

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def get_source(self, source_id: str) -> SourceResponse:
        path = self._resolve(source_id)
        try:
            code = path.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise SourceUnavailableError(f"Cannot read '{source_id}': {exc}") from exc
        if not code:
            raise SourceUnavailableError(f"Source '{source_id}' is empty")
        if self.max_chars is not None and len(code) > self.max_chars:
            raise SourceUnavailableError(
                f"Source '{source_id}' is {len(code):,} chars (limit {self.max_chars:,})"
            )
        return SourceResponse(
            source_id=source_id,
            code=code,
            findings=self.load_findings(source_id),
            context={"root": str(self.root), "path": str(path)},
        )

    def load_findings(self, source_id: str) -> List[Finding]:
        sidecar = self.root / f"{source_id}{FINDINGS_SUFFIX}"
        if sidecar.is_file():
            return collect_findings(self._read_json(sidecar))
        index = self.root / FINDINGS_INDEX
        if index.is_file():
            payload = self._read_json(index)
            if isinstance(payload, dict):
                return collect_findings(payload.get(source_id))
        return []

    @staticmethod
    def _read_json(path: Path) -> Any:
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable findings file %s: %s", path, exc)
            return None

    # ------------------------------------------------------------------
    # Definitions
    # ------------------------------------------------------------------

    def _graph_for(self, source_id: str) -> CodeGraph:
        path = self.root / source_id
        mtime = path.stat().st_mtime
        cached = self._graph_cache.get(source_id)
        if cached is not None and cached[0] == mtime:
            return cached[1]
        if self._builder is None:
            self._builder = CodeGraphBuilder()
        text = path.read_text(encoding="utf-8", errors="replace")
        if self.max_chars is not None and len(text) > self.max_chars:
            graph = CodeGraph.empty()
        else:
            graph = self._builder.build(text)
        self._graph_cache[source_id] = (mtime, graph)
        return graph

    def _candidates(self, exclude: Optional[str]) -> Iterable[str]:
        return (s for s in self.list_sources() if s != exclude)

    def find_definition(self, name: str, exclude: Optional[str] = None) -> Optional[DefinitionHit]:
        if not name:
            return None
        graphs: List[Tuple[str, CodeGraph]] = []
        for source_id in self._candidates(exclude):
            try:
                graph = self._graph_for(source_id)
            except OSError as exc:
                logger.debug("Skipping %s during definition lookup: %s", source_id, exc)
                continue
            if name in graph.def_map:
                return _hit(source_id, graph, name)
            graphs.append((source_id, graph))

        for source_id, graph in graphs:
            for def_name in sorted(graph.def_map):
                if def_name.startswith(name):
                    return _hit(source_id, graph, def_name)
        return None


def _hit(source_id: str, graph: CodeGraph, name: str) -> DefinitionHit:
    entry = graph.func_map.get(name)
    return DefinitionHit(
        source_id=source_id,
        line=graph.def_map[name],
        column=entry.start_column if entry is not None else None,
    )
