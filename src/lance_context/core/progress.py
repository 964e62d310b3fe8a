"""Console rendering of indexing progress events.

The indexer only emits ``IndexProgress`` events through a callback; this
module is the CLI's renderer for them. It prints plainly instead of using
Rich's background-thread widgets (Progress, Live), so it is safe to call
from inside the event loop without extra synchronization.
"""

import sys
import time

from rich.console import Console

from .models import IndexProgress


class ProgressTracker:
    """Print-based progress renderer.

    Example:
        tracker = ProgressTracker(console, verbose=False)
        tracker.start("Indexing my-project")
        await indexer.index_codebase(progress_callback=tracker.on_progress)
        tracker.complete("Indexed 42 files")
    """

    def __init__(self, console: Console, verbose: bool = False):
        """Initialize progress tracker.

        Args:
            console: Rich Console instance for formatted output
            verbose: Print one line per indexed file
        """
        self.console = console
        self.verbose = verbose
        self._phase: str | None = None
        self._phase_start_time: float | None = None
        self._start_time: float | None = None

    def start(self, title: str) -> None:
        self.console.print(f"\n[bold]{title}[/bold]")
        self.console.print("━" * 50)
        self._start_time = time.time()

    def phase(self, name: str) -> None:
        """Start a new phase, closing the previous one with its duration."""
        if self._phase_start_time is not None:
            elapsed = time.time() - self._phase_start_time
            self.console.print(f"[dim]  (completed in {elapsed:.1f}s)[/dim]")

        self._phase = name
        self._phase_start_time = time.time()
        self.console.print(f"\n[cyan]{name.capitalize()}[/cyan]")

    def item(self, message: str, done: bool = False) -> None:
        """Log an item within the current phase.

        Args:
            message: Message to display
            done: If True, use checkmark (✓); otherwise use arrow (→)
        """
        marker = "✓" if done else "→"
        style = "green" if done else "dim"
        self.console.print(f"  [{style}]{marker}[/{style}] {message}")

    def on_progress(self, event: IndexProgress) -> None:
        """Callback for ``CodeIndexer.index_codebase``."""
        if event.phase != self._phase:
            if self._phase == "processing":
                # Terminate the in-place bar line
                sys.stderr.write("\n")
                sys.stderr.flush()
            self.phase(event.phase)
            self.item(event.message, done=event.phase == "finalizing")
            return

        if self.verbose:
            self.console.print(f"  [dim]{event.message}[/dim]")
        else:
            self.progress_bar(event.current, event.total, prefix="Indexing files")

    def complete(self, summary: str) -> None:
        if self._phase_start_time is not None:
            elapsed = time.time() - self._phase_start_time
            self.console.print(f"[dim]  (completed in {elapsed:.1f}s)[/dim]")

        self.console.print(f"\n[green]✓ {summary}[/green]")
        if self._start_time is not None:
            self.console.print(f"  Time: {time.time() - self._start_time:.1f}s")

    def progress_bar(
        self, current: int, total: int, prefix: str = "", width: int = 40
    ) -> None:
        """Display an inline progress bar that updates in place.

        Example:
            tracker.progress_bar(328, 730, prefix="Indexing files")
            # Output: Indexing files... ━━━━━━━━━━━━━━━━━━         45% 328/730
        """
        if total == 0:
            return

        percentage = min(100, int((current / total) * 100))
        filled_width = int((current / total) * width)
        bar = "━" * filled_width + " " * (width - filled_width)

        # Written to stderr directly to update the same line
        sys.stderr.write(f"\r  {prefix}... {bar} {percentage}% {current:,}/{total:,}")
        sys.stderr.flush()
