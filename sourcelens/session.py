"""Load pipeline and the last-load-wins viewer controller.

One load is a single unit of work: reformat, map findings, build the code
graph, compute reachability and project the focused view. Its result is a
:class:`ViewerSession` that replaces the previous one wholesale. Every load
is tagged with a sequence number and only the most recently requested one
may be applied.
"""

from __future__ import annotations

import itertools
import logging
from concurrent.futures import Executor, Future
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Sequence, Tuple

from .beautify import beautify
from .config_manager import ViewerSettings
from .focus import FocusedView, build_focused_view
from .models import CodeGraph, Finding, MappedFinding, SourceResponse
from .parser import CodeGraphBuilder
from .reachability import ReachableSet, collect_reachable
from .render import Navigation, RenderCoordinator, RenderState
from .repository import SourceRepository, SourceUnavailableError
from .sourcemap import PositionIndex, map_position
from .storage import ViewQuery, ViewStateStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ViewerSession:
    """Everything derived from one source selection."""

    source_id: str
    raw_text: str
    generated_text: str
    position_index: Optional[PositionIndex]
    graph: CodeGraph
    findings: Tuple[Finding, ...]
    mapped_findings: Tuple[MappedFinding, ...]
    mapped_target: int
    focused_view: Optional[FocusedView] = None
    reachable: Optional[ReachableSet] = None
    sequence: int = 0
    context: Dict[str, str] = field(default_factory=dict)

    @property
    def has_focus(self) -> bool:
        return self.focused_view is not None

    def severity_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for finding in self.findings:
            counts[finding.severity] = counts.get(finding.severity, 0) + 1
        return counts


def map_findings(findings: Sequence[Finding], index: Optional[PositionIndex]) -> List[MappedFinding]:
    return [
        MappedFinding(
            line=map_position(index, f.line, f.column),
            severity=f.severity,
            column=f.column,
            original_line=f.line,
        )
        for f in findings
    ]


def load_session(
    response: SourceResponse,
    target_line: int = 0,
    settings: Optional[ViewerSettings] = None,
    sequence: int = 0,
    builder: Optional[CodeGraphBuilder] = None,
    target_column: Optional[int] = None,
) -> ViewerSession:
    """Run the whole load pipeline for one fetched source."""
    settings = settings or ViewerSettings()
    builder = builder or CodeGraphBuilder()

    formatted = beautify(response.code, indent_size=settings.indent_size)
    index = formatted.index
    if index is not None and index.truncated:
        logger.debug("Position index for %s is partial", response.source_id)

    mapped_target = map_position(index, target_line, target_column) if target_line > 0 else 0
    mapped = map_findings(response.findings, index)

    graph = builder.build(formatted.code)
    reachable = collect_reachable(mapped, graph, max_depth=settings.max_call_depth)
    focused = None
    if reachable is not None:
        focused = build_focused_view(formatted.code, reachable.ranges, tolerance=settings.merge_tolerance)

    return ViewerSession(
        source_id=response.source_id,
        raw_text=response.code,
        generated_text=formatted.code,
        position_index=index,
        graph=graph,
        findings=tuple(response.findings),
        mapped_findings=tuple(mapped),
        mapped_target=mapped_target,
        focused_view=focused,
        reachable=reachable,
        sequence=sequence,
        context=dict(response.context),
    )


@dataclass(frozen=True)
class LoadOutcome:
    sequence: int
    source_id: str
    target_line: int = 0
    target_column: Optional[int] = None
    session: Optional[ViewerSession] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class SourceListOutcome:
    requested_for: Optional[str]
    sources: Tuple[str, ...] = ()


class ViewerController:
    """Owns the active session and applies load results last-load-wins."""

    def __init__(
        self,
        repository: SourceRepository,
        settings: Optional[ViewerSettings] = None,
        state_store: Optional[ViewStateStore] = None,
        root: Optional[str] = None,
    ) -> None:
        self.repository = repository
        self.settings = settings or ViewerSettings()
        self.state_store = state_store
        self.root = root
        self.focus_mode = self.settings.focus_by_default
        self._sequence = itertools.count(1)
        self.latest_sequence = 0
        self.current_source: Optional[str] = None
        self.current_target = 0
        self.session: Optional[ViewerSession] = None
        self.coordinator: Optional[RenderCoordinator] = None
        self.error: Optional[str] = None
        self.sources: List[str] = []

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def begin_load(self, source_id: str, target_line: int = 0) -> int:
        """Register a new load request and return its sequence number."""
        sequence = next(self._sequence)
        self.latest_sequence = sequence
        self.current_source = source_id
        self.current_target = target_line
        if self.state_store is not None:
            self.state_store.save(ViewQuery(source_id=source_id, line=target_line, root=self.root))
        return sequence

    def run_load(
        self,
        sequence: int,
        source_id: str,
        target_line: int = 0,
        target_column: Optional[int] = None,
    ) -> LoadOutcome:
        """Fetch and process one source. Touches no controller state."""
        outcome = LoadOutcome(
            sequence=sequence, source_id=source_id,
            target_line=target_line, target_column=target_column,
        )
        try:
            response = self.repository.get_source(source_id)
        except SourceUnavailableError as exc:
            return replace(outcome, error=str(exc))
        session = load_session(
            response,
            target_line=target_line,
            settings=self.settings,
            sequence=sequence,
            target_column=target_column,
        )
        return replace(outcome, session=session)

    def apply(self, outcome: LoadOutcome) -> bool:
        """Install *outcome* if it is still the latest request.

        Stale outcomes are discarded whole and ``False`` is returned.
        """
        if outcome.sequence != self.latest_sequence:
            logger.debug(
                "Discarding stale load #%d for %s (latest is #%d)",
                outcome.sequence, outcome.source_id, self.latest_sequence,
            )
            return False
        self.session = outcome.session
        self.error = outcome.error
        self.coordinator = (
            RenderCoordinator(outcome.session, focus=self.focus_mode)
            if outcome.session is not None else None
        )
        return True

    def load(self, source_id: str, target_line: int = 0, target_column: Optional[int] = None) -> LoadOutcome:
        sequence = self.begin_load(source_id, target_line)
        outcome = self.run_load(sequence, source_id, target_line, target_column)
        self.apply(outcome)
        return outcome

    def load_async(
        self,
        executor: Executor,
        source_id: str,
        target_line: int = 0,
        target_column: Optional[int] = None,
    ) -> "Future[LoadOutcome]":
        """Offload a load; the caller passes the result to :meth:`apply`."""
        sequence = self.begin_load(source_id, target_line)
        return executor.submit(self.run_load, sequence, source_id, target_line, target_column)

    # ------------------------------------------------------------------
    # Source list
    # ------------------------------------------------------------------

    def fetch_sources(self) -> SourceListOutcome:
        requested_for = self.current_source
        return SourceListOutcome(requested_for=requested_for, sources=tuple(self.repository.list_sources()))

    def apply_sources(self, outcome: SourceListOutcome) -> bool:
        if outcome.requested_for != self.current_source:
            logger.debug("Discarding source list fetched for %s", outcome.requested_for)
            return False
        self.sources = list(outcome.sources)
        return True

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def render(self) -> Optional[RenderState]:
        return self.coordinator.render() if self.coordinator is not None else None

    def toggle_focus(self) -> Optional[RenderState]:
        if self.coordinator is None:
            return None
        state = self.coordinator.toggle_focus()
        self.focus_mode = self.coordinator.focus_mode
        return state

    def navigate_to_definition(self, name: str) -> Optional[Navigation]:
        """Follow *name* locally, or load the source that defines it."""
        if self.coordinator is None:
            return None
        navigation = self.coordinator.navigate_to_definition(name)
        if navigation.switched_to_full:
            self.focus_mode = False
        if navigation.kind != "cross":
            return navigation

        hit = self.repository.find_definition(name, exclude=self.current_source)
        if hit is None:
            return Navigation(kind="none", name=name)
        outcome = self.load(hit.source_id, hit.line, hit.column)
        scroll = outcome.session.mapped_target if outcome.session is not None else None
        state = self.render()
        return Navigation(
            kind="cross", name=name,
            scroll_line=state.scroll_line if state is not None else scroll,
            state=state,
        )
