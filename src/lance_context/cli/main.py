"""Command-line interface for lance-context."""

import asyncio
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import typer
from loguru import logger
from rich.console import Console
from rich.markdown import Markdown
from rich.markup import escape

from .. import __version__
from ..core.factory import create_components
from ..core.progress import ProgressTracker
from ..tools.handlers import ToolHandlers, ToolResponse
from ..utils.logging import configure_logging

console = Console(stderr=True)

app = typer.Typer(
    name="lance-context",
    help="Semantic code indexing and hybrid search",
    no_args_is_help=True,
)

ProjectOption = typer.Option(
    Path("."),
    "--project-root",
    "-p",
    help="Project root directory (default: current directory)",
    file_okay=False,
    dir_okay=True,
)
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose output")


def _run(
    project_root: Path,
    verbose: bool,
    call: Callable[[ToolHandlers], Awaitable[ToolResponse]],
    tracker: ProgressTracker | None = None,
    markdown: bool = True,
) -> None:
    """Build components, run one handler and print its response.

    With a ``tracker`` the response closes its progress output. Otherwise
    responses are rendered as Markdown unless ``markdown`` is False, in
    which case the text is echoed unchanged.
    """
    configure_logging(verbose)

    async def runner() -> ToolResponse:
        components = await create_components(project_root)
        async with components:
            handlers = ToolHandlers(
                components,
                progress_callback=tracker.on_progress if tracker else None,
            )
            return await call(handlers)

    try:
        response = asyncio.run(runner())
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        sys.exit(130)
    except Exception as e:
        # Component construction failed before any handler ran
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        if verbose:
            logger.exception("Command failed")
        sys.exit(1)

    if response.is_error:
        console.print(f"[red]{escape(response.text)}[/red]")
        sys.exit(1)
    if tracker is not None:
        tracker.complete(escape(response.text))
    elif markdown:
        Console().print(Markdown(response.text))
    else:
        typer.echo(response.text)


@app.command()
def index(
    project_root: Path = ProjectOption,
    force: bool = typer.Option(False, "--force", "-f", help="Re-embed every file"),
    auto_repair: bool = typer.Option(
        False, "--auto-repair", help="Rebuild from scratch if the index is corrupted"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Index (or incrementally update) a project."""
    tracker = ProgressTracker(console, verbose=verbose)
    tracker.start(f"Indexing {project_root.resolve().name}")
    args: dict[str, Any] = {"force_reindex": force, "auto_repair": auto_repair}
    _run(project_root, verbose, lambda h: h.index_codebase(args), tracker)


@app.command()
def status(project_root: Path = ProjectOption, verbose: bool = VerboseOption) -> None:
    """Show index status, including corruption checks."""
    _run(project_root, verbose, lambda h: h.get_index_status(), markdown=False)


@app.command()
def search(
    query: str = typer.Argument(..., help="Search query"),
    project_root: Path = ProjectOption,
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=100),
    path_pattern: str | None = typer.Option(
        None, "--path", help="Glob the result paths must match, e.g. 'src/**/*.py'"
    ),
    language: list[str] | None = typer.Option(
        None, "--language", "-l", help="Restrict to a language (repeatable)"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Hybrid semantic + keyword search."""
    args: dict[str, Any] = {
        "query": query,
        "limit": limit,
        "path_pattern": path_pattern,
        "languages": language or None,
    }
    _run(project_root, verbose, lambda h: h.search_code(args))


@app.command()
def similar(
    filepath: str | None = typer.Argument(None, help="Project-relative file"),
    project_root: Path = ProjectOption,
    code: str | None = typer.Option(None, "--code", "-c", help="Snippet to match"),
    start_line: int | None = typer.Option(None, "--start", min=1),
    end_line: int | None = typer.Option(None, "--end", min=1),
    limit: int = typer.Option(10, "--limit", "-n", min=1, max=100),
    threshold: float | None = typer.Option(None, "--threshold", min=0.0, max=1.0),
    include_self: bool = typer.Option(
        False, "--include-self", help="Keep the chunk at the origin location"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Find code similar to a snippet or a file region."""
    args: dict[str, Any] = {
        "code": code,
        "filepath": filepath,
        "start_line": start_line,
        "end_line": end_line,
        "limit": limit,
        "threshold": threshold,
        "exclude_self": not include_self,
    }
    _run(project_root, verbose, lambda h: h.search_similar(args))


@app.command()
def concepts(
    project_root: Path = ProjectOption,
    num_clusters: int | None = typer.Option(
        None, "--clusters", "-k", min=1, help="Number of concepts"
    ),
    verbose: bool = VerboseOption,
) -> None:
    """Group indexed code into concepts."""
    _run(project_root, verbose, lambda h: h.list_concepts({"num_clusters": num_clusters}))


@app.command()
def clear(
    project_root: Path = ProjectOption,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation"),
    verbose: bool = VerboseOption,
) -> None:
    """Delete the project's index."""
    if not yes and not typer.confirm("Delete the index for this project?"):
        raise typer.Abort()
    _run(project_root, verbose, lambda h: h.clear_index())


@app.command()
def version() -> None:
    """Show version."""
    console.print(f"lance-context {__version__}")


if __name__ == "__main__":
    app()
