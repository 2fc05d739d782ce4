"""Unified Rich theme and reusable UI helper functions for the CLI."""

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.rule import Rule
from rich.table import Table
from rich.theme import Theme

from workflow.callbacks import STATUS_STYLES

BOOK_THEME = Theme({
    "app.title": "bold",
    "success": "green",
    "warning": "yellow",
    "error": "red",
    "info": "blue",
    "muted": "dim",
    "accent": "cyan",
    "stat.label": "dim",
    "stat.value": "bold",
    "step.num": "blue",
    "character.name": "bold cyan",
})


def get_console() -> Console:
    """Return a Console instance with the book theme applied."""
    return Console(theme=BOOK_THEME)


def app_header(title: str = "bookflow") -> Rule:
    """Return a Rule element for the application header banner."""
    return Rule(title=f"[bold]{title}[/]", style="dim")


def command_panel(title: str, fields: dict[str, str]) -> Panel:
    """Return a Panel displaying command parameters.

    Args:
        title: Panel title (e.g. "Initialize book").
        fields: Ordered dict of label -> value pairs.
    """
    lines = []
    for label, value in fields.items():
        lines.append(f"  [stat.label]{label}:[/] [stat.value]{value}[/]")
    body = "\n".join(lines)
    return Panel(body, title=f"[bold]{title}[/]", box=box.ROUNDED, border_style="dim", padding=(0, 2))


def success_panel(title: str, body: str) -> Panel:
    """Return a green-bordered Panel for success results."""
    return Panel(body, title=f"[success]{title}[/]", box=box.ROUNDED, border_style="green", padding=(0, 2))


def error_panel(result: dict) -> Panel:
    """Return a red-bordered Panel for a failed action result."""
    lines = [f"  {result.get('error', 'Unknown error')}"]
    for item in result.get("requiredImages", []):
        lines.append(f"  [muted]-[/] {item}")
    title = result.get("errorType", "error")
    return Panel("\n".join(lines), title=f"[error]{title}[/]", box=box.ROUNDED, border_style="red", padding=(0, 2))


def book_summary_panel(progress: dict) -> Panel:
    """Return a Panel with book progress stats.

    Args:
        progress: Progress dict as returned by WorkflowController.progress.
    """
    concept = progress.get("bookConcept") or ""
    if len(concept) > 150:
        concept = concept[:150] + "..."

    picture = progress.get("isPictureBook")
    picture_label = "unknown" if picture is None else ("yes" if picture else "no")
    body = (
        f"  [stat.label]Target age:[/] [stat.value]{progress.get('targetAge', '')}[/]  "
        f"[muted]|[/]  [stat.label]Picture book:[/] [stat.value]{picture_label}[/]  "
        f"[muted]|[/]  [stat.label]Progress:[/] [stat.value]{progress.get('progressPercentage', 0)}%[/]\n"
        f"  [stat.label]Concept:[/] {concept}"
    )
    return Panel(
        body,
        title=f"[bold]{progress.get('bookTitle', '')}[/] [muted](ID: {progress.get('bookId', '')})[/]",
        box=box.ROUNDED,
        border_style="dim",
        padding=(0, 2),
    )


def step_table(steps: list[dict]) -> Table:
    """Build a Rich Table of step numbers, names and statuses."""
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("#", style="step.num", justify="right")
    table.add_column("Step")
    table.add_column("Status")
    table.add_column("Data", justify="center")

    for step in steps:
        status = step.get("status", "pending")
        style = STATUS_STYLES.get(status, "")
        table.add_row(
            str(step.get("stepNumber", "?")),
            step.get("stepName", ""),
            f"[{style}]{status}[/]" if style else status,
            "yes" if step.get("hasData") else "-",
        )
    return table


def character_cards(characters: list[dict]) -> Table:
    """Build a Rich Table layout of character information.

    Args:
        characters: Character dicts from step 2 data.
    """
    table = Table(box=box.ROUNDED, border_style="dim", show_header=True, padding=(0, 1))
    table.add_column("Character", style="character.name")
    table.add_column("Role", style="muted")
    table.add_column("Image")

    for c in characters[:8]:
        image = c.get("imageUrl") or c.get("portraitUrl") or ""
        if len(image) > 40:
            image = image[:40] + "..."
        table.add_row(c.get("name", "?"), c.get("role") or "", image or "[muted]-[/]")

    if len(characters) > 8:
        table.add_row(f"[muted]+{len(characters) - 8} more[/]", "", "")

    return table
