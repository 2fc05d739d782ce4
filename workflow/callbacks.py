"""State sinks that receive a snapshot after every successful mutation."""

import logging
from typing import Protocol, runtime_checkable

logger = logging.getLogger(__name__)

# Rich style per step status, shared by every table that renders step rows
STATUS_STYLES = {
    "pending": "dim",
    "in_progress": "yellow",
    "completed": "cyan",
    "approved": "green",
    "needs_revision": "red",
}


@runtime_checkable
class StateSink(Protocol):
    """Write-only channel to the presentation layer.

    Implementations receive the full camelCase workflow document.
    """

    def emit(self, action: str, document: dict) -> None:
        """Called after ``action`` persisted a new document."""
        ...


class LoggingSink:
    """Lightweight sink that logs each snapshot to the standard logger."""

    def emit(self, action: str, document: dict) -> None:
        logger.info(
            "Snapshot after %s: book=%s step=%s version=%s",
            action, document.get("bookId"), document.get("currentStep"), document.get("version"),
        )


class RichSnapshotSink:
    """Sink that renders a step table for each snapshot in the terminal."""

    def __init__(self, console=None):
        """
        Args:
            console: Rich Console instance. Creates one if not provided.
        """
        self._console = console

    def _get_console(self):
        if self._console is None:
            from rich.console import Console
            self._console = Console()
        return self._console

    def emit(self, action: str, document: dict) -> None:
        from rich.table import Table

        table = Table(
            title=f"{document.get('bookTitle', '')} [dim]({action})[/]",
            show_header=True,
            header_style="bold",
        )
        table.add_column("#", justify="right")
        table.add_column("Step")
        table.add_column("Status")
        table.add_column("Data", justify="center")

        current = document.get("currentStep")
        for step in document.get("steps", []):
            status = step.get("status", "pending")
            style = STATUS_STYLES.get(status, "")
            marker = " <" if step.get("stepNumber") == current else ""
            table.add_row(
                str(step.get("stepNumber")),
                f"{step.get('stepName', '')}{marker}",
                f"[{style}]{status}[/]" if style else status,
                "yes" if step.get("data") else "-",
            )
        self._get_console().print(table)
