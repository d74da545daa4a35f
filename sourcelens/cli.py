"""Typer-based CLI for the SourceLens focused source viewer."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from . import __version__
from .config_manager import (
    ViewerSettings,
    load_viewer_config,
    reset_viewer_config,
    save_viewer_setting,
)
from .graph_export import edge_list, export_dot
from .parser import CodeGraphBuilder
from .render import print_render_state
from .repository import LocalSourceRepository, SourceUnavailableError
from .session import ViewerController, ViewerSession, load_session
from .sourcemap import map_position
from .storage import ViewStateStore

app = typer.Typer(
    help="🔎 SourceLens — focused source viewing for security findings.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

config_app = typer.Typer(
    help="⚙️  Viewer configuration.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(config_app, name="config")

console = Console()


def version_callback(value: bool):
    """Print version and exit."""
    if value:
        typer.echo(f"SourceLens v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
):
    """SourceLens: reachability-focused views of flagged JavaScript."""
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


# ===================================================================
# Helpers
# ===================================================================

def _repository(root: Path, settings: ViewerSettings) -> LocalSourceRepository:
    if not root.is_dir():
        raise typer.BadParameter(f"Source root '{root}' is not a directory.")
    return LocalSourceRepository(root, max_chars=settings.max_source_chars)


def _load(root: Path, source: str, line: int = 0, depth: Optional[int] = None) -> ViewerSession:
    settings = ViewerSettings.from_config()
    if depth is not None:
        settings = ViewerSettings(**{**settings.to_dict(), "max_call_depth": depth})
    repo = _repository(root, settings)
    try:
        response = repo.get_source(source)
    except SourceUnavailableError as exc:
        typer.echo(f"❌ {exc}", err=True)
        raise typer.Exit(code=1)
    return load_session(response, target_line=line, settings=settings)


def _status_line(session: ViewerSession) -> str:
    parts = [f"{len(session.raw_text):,} chars"]
    if session.findings:
        parts.append(f"{len(session.findings)} findings")
        high = session.severity_counts().get("high", 0)
        if high:
            parts.append(f"{high} high")
    return " · ".join(parts)


# ===================================================================
# Viewing
# ===================================================================

def _view(
    root: Path,
    source: str,
    line: int,
    full: bool,
    context: Optional[int],
    depth: Optional[int],
) -> None:
    settings = ViewerSettings.from_config()
    if depth is not None:
        settings = ViewerSettings(**{**settings.to_dict(), "max_call_depth": depth})
    if full:
        settings = ViewerSettings(**{**settings.to_dict(), "focus_by_default": False})

    controller = ViewerController(
        _repository(root, settings),
        settings=settings,
        state_store=ViewStateStore(),
        root=str(root.resolve()),
    )
    outcome = controller.load(source, line)
    if outcome.error:
        typer.echo(f"❌ {outcome.error}", err=True)
        raise typer.Exit(code=1)

    session = controller.session
    state = controller.render()
    mode = "focused" if state.focused else "full"
    console.print(f"[bold]{source}[/bold]  [dim]{_status_line(session)} · {mode} view[/dim]")
    if not session.graph.parsed:
        console.print("[yellow]Code graph unavailable; focus mode and definitions disabled.[/yellow]")
    elif session.findings and not session.has_focus:
        console.print("[dim]No finding falls inside a function; showing the full source.[/dim]")
    print_render_state(console, state, context=context)


@app.command("view")
def view(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    source: str = typer.Argument(..., help="Script path relative to ROOT."),
    line: int = typer.Option(0, "--line", "-l", min=0, help="Original line to scroll to."),
    full: bool = typer.Option(False, "--full", help="Show the unpruned source."),
    context: Optional[int] = typer.Option(None, "--context", "-C", min=0, help="Only print N lines around the target."),
    depth: Optional[int] = typer.Option(None, "--depth", "-d", min=0, help="Call-graph expansion depth."),
):
    """Beautify a script and show the code reachable from its findings."""
    _view(root, source, line, full, context, depth)


@app.command("resume")
def resume(
    full: bool = typer.Option(False, "--full", help="Show the unpruned source."),
    context: Optional[int] = typer.Option(None, "--context", "-C", min=0, help="Only print N lines around the target."),
):
    """Re-open the last viewed source at the same line."""
    query = ViewStateStore().load()
    if query is None or not query.root:
        typer.echo("No saved view. Use 'slens view ROOT SOURCE' first.", err=True)
        raise typer.Exit(code=1)
    _view(Path(query.root), query.source_id, query.line, full, context, None)


@app.command("scripts")
def scripts(root: Path = typer.Argument(..., help="Directory holding the scripts.")):
    """List the scripts available under ROOT."""
    settings = ViewerSettings.from_config()
    repo = _repository(root, settings)
    sources = repo.list_sources()
    if not sources:
        typer.echo("No scripts found.")
        raise typer.Exit(code=0)
    for source in sources:
        count = len(repo.load_findings(source))
        suffix = f"  ({count} findings)" if count else ""
        typer.echo(f"{source}{suffix}")


# ===================================================================
# Analysis
# ===================================================================

@app.command("graph")
def graph(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    source: str = typer.Argument(..., help="Script path relative to ROOT."),
):
    """List the functions of the beautified script and their callees."""
    session = _load(root, source)
    if not session.graph.parsed:
        typer.echo("❌ Code graph unavailable for this source.", err=True)
        raise typer.Exit(code=1)

    table = Table(title=f"Functions in {source}")
    table.add_column("Name")
    table.add_column("Lines", justify="right")
    table.add_column("Calls")
    for entry in sorted(session.graph.all_ranges, key=lambda r: (r.start_line, r.end_line)):
        table.add_row(
            entry.name or "[dim](anonymous)[/dim]",
            f"{entry.start_line}-{entry.end_line}",
            ", ".join(sorted(entry.callee_names)),
        )
    console.print(table)
    typer.echo(
        f"Functions: {len(session.graph.all_ranges)} | Named: {len(session.graph.func_map)} "
        f"| Edges: {len(edge_list(session.graph))}"
    )


@app.command("reach")
def reach(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    source: str = typer.Argument(..., help="Script path relative to ROOT."),
    depth: Optional[int] = typer.Option(None, "--depth", "-d", min=0, help="Call-graph expansion depth."),
):
    """Explain which functions the focused view keeps and why."""
    session = _load(root, source, depth=depth)
    if session.reachable is None:
        typer.echo("No finding falls inside a function; nothing to focus.")
        raise typer.Exit(code=0)

    typer.echo("Seeds:")
    for finding in session.mapped_findings:
        typer.echo(f"- finding L{finding.original_line} → L{finding.line} ({finding.severity})")
    for seed in session.reachable.seed_ranges:
        typer.echo(f"  contained in {seed.name or '(anonymous)'} L{seed.start_line}-{seed.end_line}")
    if session.reachable.reached_names:
        typer.echo("Reached through calls:")
        for name in session.reachable.reached_names:
            entry = session.graph.func_map[name]
            typer.echo(f"- {name} L{entry.start_line}-{entry.end_line}")
    view_ = session.focused_view
    if view_ is not None:
        kept = sum(1 for v in view_.line_remap.values() if v is not None)
        total = len(session.generated_text.split("\n"))
        typer.echo(f"Focused view keeps {kept} of {total} lines.")


@app.command("map")
def map_line(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    source: str = typer.Argument(..., help="Script path relative to ROOT."),
    line: int = typer.Argument(..., min=1, help="Original line."),
    column: Optional[int] = typer.Argument(None, min=0, help="Original column (0-based)."),
):
    """Translate an original position into a beautified line."""
    session = _load(root, source)
    mapped = map_position(session.position_index, line, column)
    where = f"{line}:{column}" if column is not None else str(line)
    typer.echo(f"{where} → {mapped}")
    if session.position_index is None:
        typer.echo("(no position mapping; identity)")


@app.command("find-def")
def find_def(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    name: str = typer.Argument(..., help="Function name or prefix."),
    exclude: Optional[str] = typer.Option(None, "--exclude", "-x", help="Script to skip."),
):
    """Find the script that defines a function."""
    settings = ViewerSettings.from_config()
    hit = _repository(root, settings).find_definition(name, exclude=exclude)
    if hit is None:
        typer.echo(f"❌ No definition of '{name}' found.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"{hit.source_id}:{hit.line}")


@app.command("export-graph")
def export_graph(
    root: Path = typer.Argument(..., help="Directory holding the scripts."),
    source: str = typer.Argument(..., help="Script path relative to ROOT."),
    focus: str = typer.Option("", "--focus", "-f", help="Only export functions reachable from this name."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output file path."),
):
    """Export the named call graph as Graphviz DOT."""
    session = _load(root, source)
    if focus and focus not in session.graph.func_map:
        raise typer.BadParameter(f"Function '{focus}' not found in {source}.")
    if output is None:
        output = Path.cwd() / f"{Path(source).stem}_graph.dot"
    export_dot(session.graph, output, focus=focus, depth=ViewerSettings.from_config().max_call_depth)
    typer.echo(f"Exported graph to {output}")


# ===================================================================
# Configuration
# ===================================================================

@config_app.command("show")
def config_show():
    """Show the effective viewer settings."""
    for key, value in load_viewer_config().items():
        typer.echo(f"{key} = {value}")


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Setting name."),
    value: str = typer.Argument(..., help="New value."),
):
    """Persist one viewer setting."""
    try:
        saved = save_viewer_setting(key, value)
    except KeyError:
        raise typer.BadParameter(f"Unknown setting '{key}'.")
    except ValueError as exc:
        raise typer.BadParameter(f"Invalid value for '{key}': {exc}")
    if not saved:
        typer.echo("❌ Could not write configuration.", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Set {key} = {value}")


@config_app.command("reset")
def config_reset():
    """Restore default viewer settings."""
    reset_viewer_config()
    typer.echo("Viewer settings reset to defaults.")


@app.command("parsers")
def parsers():
    """Report whether the JavaScript grammar is available."""
    builder = CodeGraphBuilder()
    status = "available" if builder.supports_language("javascript") else "missing"
    typer.echo(f"javascript: {status}")


if __name__ == "__main__":
    app()
