"""Render coordination: highlights, gutter numbers, scrolling and navigation.

Everything here is computed from the active session and the active remap
on every call, so switching between the focused and the full listing can
never leave stale positions behind.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence

from rich.console import Console
from rich.syntax import Syntax
from rich.text import Text

from .focus import HIDDEN_MARKER
from .highlight import find_function_tokens
from .models import MappedFinding

if TYPE_CHECKING:
    from .session import ViewerSession

LineRemap = Dict[int, Optional[int]]

SEVERITY_STYLES = {
    "high": "on dark_red",
    "critical": "on dark_red",
}
DEFAULT_FINDING_STYLE = "on grey23"


@dataclass(frozen=True)
class Highlight:
    line: int
    severity: str


@dataclass
class RenderState:
    """What the display should show, in displayed-line coordinates."""

    text: str
    remap: Optional[LineRemap]
    highlights: List[Highlight] = field(default_factory=list)
    gutter: List[str] = field(default_factory=list)
    scroll_line: Optional[int] = None

    @property
    def focused(self) -> bool:
        return self.remap is not None

    @property
    def highlighted_lines(self) -> List[int]:
        return [h.line for h in self.highlights]


@dataclass(frozen=True)
class DefinitionLink:
    line: int
    column: int
    name: str
    local: bool
    target_line: Optional[int] = None


@dataclass(frozen=True)
class Navigation:
    """Outcome of following a function-name token.

    ``kind`` is ``"local"`` (scroll within the current source),
    ``"cross"`` (look the name up in other sources) or ``"none"``.
    """

    kind: str
    name: str
    scroll_line: Optional[int] = None
    switched_to_full: bool = False
    state: Optional[RenderState] = None


def _reverse(remap: LineRemap) -> Dict[int, int]:
    return {generated: focused for focused, generated in remap.items() if generated is not None}


def render_code(
    text: str,
    remap: Optional[LineRemap],
    findings: Sequence[MappedFinding] = (),
    target_line: Optional[int] = None,
) -> RenderState:
    """Compute highlight, gutter and scroll state for *text*.

    *remap* maps displayed lines to generated lines (``None`` for
    separators); pass ``None`` for the full listing.
    """
    line_count = len(text.split("\n"))
    reverse = _reverse(remap) if remap is not None else None

    highlights: List[Highlight] = []
    for finding in findings:
        if reverse is None:
            shown: Optional[int] = finding.line
        else:
            shown = reverse.get(finding.line)
        if shown is not None and 1 <= shown <= line_count:
            highlights.append(Highlight(line=shown, severity=finding.severity))

    if remap is None:
        gutter = [str(n) for n in range(1, line_count + 1)]
    else:
        gutter = []
        for n in range(1, line_count + 1):
            generated = remap.get(n)
            gutter.append(HIDDEN_MARKER if generated is None else str(generated))

    scroll_line: Optional[int] = None
    if target_line and target_line > 0:
        scroll_line = target_line if reverse is None else reverse.get(target_line)
    if scroll_line is None and highlights:
        scroll_line = highlights[0].line

    return RenderState(
        text=text,
        remap=remap,
        highlights=highlights,
        gutter=gutter,
        scroll_line=scroll_line,
    )


class RenderCoordinator:
    """Drives the display for one loaded :class:`ViewerSession`."""

    def __init__(self, session: "ViewerSession", focus: bool = True) -> None:
        self.session = session
        self.focus_mode = focus and session.has_focus

    @property
    def active_remap(self) -> Optional[LineRemap]:
        if self.focus_mode and self.session.focused_view is not None:
            return self.session.focused_view.line_remap
        return None

    @property
    def active_text(self) -> str:
        if self.focus_mode and self.session.focused_view is not None:
            return self.session.focused_view.text
        return self.session.generated_text

    def render(self, target_line: Optional[int] = None) -> RenderState:
        target = self.session.mapped_target if target_line is None else target_line
        return render_code(self.active_text, self.active_remap, self.session.mapped_findings, target)

    def toggle_focus(self) -> RenderState:
        """Flip between the focused and the full listing and re-render.

        Without a focused view the listing stays full.
        """
        if self.session.has_focus:
            self.focus_mode = not self.focus_mode
        return self.render()

    def show_full(self) -> RenderState:
        self.focus_mode = False
        return self.render()

    def definition_links(self) -> List[DefinitionLink]:
        """Classify every function-name token of the active text."""
        def_map = self.session.graph.def_map
        links: List[DefinitionLink] = []
        for token in find_function_tokens(self.active_text):
            if token.name in def_map:
                links.append(DefinitionLink(
                    line=token.line, column=token.column, name=token.name,
                    local=True, target_line=def_map[token.name],
                ))
            elif len(token.name) > 1:
                links.append(DefinitionLink(
                    line=token.line, column=token.column, name=token.name, local=False,
                ))
        return links

    def navigate_to_definition(self, name: str) -> Navigation:
        """Scroll to the local definition of *name*.

        A definition hidden by the focused view forces the full listing
        first. Names without a local definition are handed back as a
        cross-source lookup.
        """
        generated_line = self.session.graph.def_map.get(name)
        if generated_line is None:
            if len(name) > 1:
                return Navigation(kind="cross", name=name)
            return Navigation(kind="none", name=name)

        remap = self.active_remap
        if remap is not None:
            focused = _reverse(remap).get(generated_line)
            if focused is not None:
                return Navigation(kind="local", name=name, scroll_line=focused)
            state = self.show_full()
            state.scroll_line = generated_line
            return Navigation(
                kind="local", name=name, scroll_line=generated_line,
                switched_to_full=True, state=state,
            )
        return Navigation(kind="local", name=name, scroll_line=generated_line)


# ===================================================================
# Terminal output
# ===================================================================

def print_render_state(
    console: Console,
    state: RenderState,
    context: Optional[int] = None,
    theme: str = "monokai",
) -> None:
    """Print *state* with a remapped gutter.

    With *context*, only the lines within that distance of the scroll line
    are printed.
    """
    syntax = Syntax(state.text, "javascript", theme=theme)
    lines = syntax.highlight(state.text).split("\n", allow_blank=True)
    line_count = len(state.gutter)
    lines = lines[:line_count]

    first, last = 1, line_count
    if context is not None and state.scroll_line:
        first = max(1, state.scroll_line - context)
        last = min(line_count, state.scroll_line + context)

    styles = {h.line: SEVERITY_STYLES.get(h.severity, DEFAULT_FINDING_STYLE) for h in state.highlights}
    width = max((len(label) for label in state.gutter), default=1)

    for number in range(first, last + 1):
        label = state.gutter[number - 1]
        body = lines[number - 1] if number - 1 < len(lines) else Text("")
        if label == HIDDEN_MARKER:
            gutter_style = "dim"
        elif number in styles:
            gutter_style = "bold red" if styles[number] != DEFAULT_FINDING_STYLE else "bold yellow"
        else:
            gutter_style = "dim cyan"
        row = Text.assemble((label.rjust(width), gutter_style), (" │ ", "dim"))
        row.append_text(body)
        if number in styles:
            row.stylize(styles[number], width + 3)
        if number == state.scroll_line:
            row.stylize("bold", 0, width)
        console.print(row, no_wrap=True, overflow="ellipsis", crop=True)
