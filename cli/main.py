"""CLI entry point: operate book creation workflows from the terminal.

Usage:
  bookflow init -t "Mira's Garden" -c "A picture book about friendship"
  bookflow update-step -b BOOK_ID -s 2 -f characters.json
  bookflow approve -b BOOK_ID -s 2
  bookflow status -b BOOK_ID
  bookflow backup backups/books.db
  bookflow --help
"""

import json
import logging
import sys
from pathlib import Path

import click
from rich.table import Table

from cli.theme import (
    get_console,
    app_header,
    command_panel,
    success_panel,
    error_panel,
    book_summary_panel,
    step_table,
    character_cards,
)
from config.settings import Settings
from config.logging_config import setup_logging
from models.database import Database
from models.enums import ImageSearchType, PropType
from workflow.callbacks import RichSnapshotSink
from workflow.controller import WorkflowController
from workflow.store import WorkflowStore

console = get_console()


def _init_logging(verbose: bool):
    """Configure logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    settings = Settings()
    setup_logging(level=level, log_dir=settings.log_dir, console_enabled=verbose)


def _build_controller(settings: Settings, show_snapshots: bool = True) -> WorkflowController:
    memory = None
    if settings.memory_enabled:
        from memory.chroma_store import ChromaStore
        memory = ChromaStore(settings.chroma_persist_dir)
    sink = RichSnapshotSink(console) if show_snapshots else None
    return WorkflowController(
        WorkflowStore(Database(settings.sqlite_db_path)),
        sink=sink,
        memory=memory,
        settings=settings,
    )


def _finish(result: dict, title: str, body: str = "") -> None:
    """Print the outcome of an action; exit non-zero on failure."""
    if not result.get("success"):
        console.print(error_panel(result))
        sys.exit(1)
    lines = [f"  {result.get('message', '')}"]
    if body:
        lines.append(body)
    if result.get("nextAction"):
        lines.append(f"  [muted]Next:[/] {result['nextAction']}")
    console.print(success_panel(title, "\n".join(lines)))


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.option("--user", "-u", default=None, help="User id (defaults to DEFAULT_USER_ID)")
@click.pass_context
def cli(ctx, verbose, user):
    """bookflow: six-step book creation workflow

    \b
    Steps: Story Planning, Character Creation, Chapter Writing,
    Environment Design, Final Chapter Content, Final Review.
    """
    _init_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["user"] = user


# ---------------------------------------------------------------------------
# workflow actions
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", default=None, help="Book id (generated if omitted)")
@click.option("--title", "-t", default=None, help="Book title")
@click.option("--concept", "-c", default=None, help="Free-text book concept")
@click.option("--target-age", "-a", default=None, help="Target age range, e.g. '3-6 years'")
@click.option("--picture-book/--chapter-book", default=None, help="Force the book format")
@click.pass_context
def init(ctx, book_id, title, concept, target_age, picture_book):
    """Create a workflow, or resume the existing one for a book id.

    Example:
      bookflow init -t "Mira's Garden" -c "Themes: friendship, growing up"
    """
    settings = Settings()
    controller = _build_controller(settings)

    console.print(app_header())
    fields = {"Title": title or settings.default_book_title}
    if concept:
        fields["Concept"] = concept if len(concept) <= 60 else concept[:60] + "..."
    console.print(command_panel("Initialize book", fields))

    result = controller.execute(
        "initialize",
        user_id=ctx.obj["user"],
        book_id=book_id,
        book_title=title,
        book_concept=concept,
        target_age=target_age,
        is_picture_book=picture_book,
    )
    _finish(result, "Book ready", f"  [stat.label]Book ID:[/] [stat.value]{result.get('bookId', '')}[/]")


@cli.command(name="update-step")
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--step", "-s", required=True, type=click.IntRange(1, 6), help="Step number (1-6)")
@click.option("--file", "-f", "data_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="JSON file with the step data")
@click.option("--data", "-d", default=None, help="Inline JSON step data")
@click.option("--searched-memory/--no-searched-memory", default=None,
              help="Whether memory was searched before this update")
@click.pass_context
def update_step(ctx, book_id, step, data_file, data, searched_memory):
    """Merge step data from a JSON file or string into a step.

    Example:
      bookflow update-step -b BOOK_ID -s 2 -f characters.json
    """
    if (data_file is None) == (data is None):
        raise click.UsageError("Provide exactly one of --file or --data")
    raw = data_file.read_text(encoding="utf-8") if data_file else data
    try:
        step_data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"Step data is not valid JSON: {e}")

    controller = _build_controller(Settings())
    result = controller.execute(
        "update_step",
        user_id=ctx.obj["user"],
        book_id=book_id,
        step_number=step,
        step_data=step_data,
        searched_memory=searched_memory,
    )
    body = ""
    if result.get("ignoredFields"):
        body = f"  [warning]Ignored fields:[/] {', '.join(result['ignoredFields'])}"
    _finish(result, f"Step {step} updated", body)


@cli.command()
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--step", "-s", required=True, type=click.IntRange(1, 6), help="Step number (1-6)")
@click.option("--reject", is_flag=True, help="Request changes instead of approving")
@click.option("--feedback", "-m", default=None, help="Feedback for a rejected step")
@click.pass_context
def approve(ctx, book_id, step, reject, feedback):
    """Approve a step, or send it back with --reject.

    Example:
      bookflow approve -b BOOK_ID -s 1
      bookflow approve -b BOOK_ID -s 2 --reject -m "Make Kip older"
    """
    controller = _build_controller(Settings())
    result = controller.execute(
        "approve_step",
        user_id=ctx.obj["user"],
        book_id=book_id,
        step_number=step,
        approved=not reject,
        feedback=feedback,
    )
    _finish(result, f"Step {step} {'needs revision' if reject else 'approved'}")


@cli.command()
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--step", "-s", required=True, type=click.IntRange(1, 6), help="Step number (1-6)")
@click.pass_context
def regenerate(ctx, book_id, step):
    """Reopen a step for new content."""
    controller = _build_controller(Settings())
    result = controller.execute(
        "regenerate", user_id=ctx.obj["user"], book_id=book_id, step_number=step,
    )
    _finish(result, f"Step {step} reopened")


@cli.command()
@click.option("--book-id", "-b", required=True, help="Book id")
@click.pass_context
def finalize(ctx, book_id):
    """Compute the final review and close out the book."""
    controller = _build_controller(Settings())
    result = controller.execute("finalize", user_id=ctx.obj["user"], book_id=book_id)
    if result.get("success"):
        review = next(s for s in result["artifactState"]["steps"] if s["stepNumber"] == 6)["data"]
        body = (
            f"  [stat.label]Characters:[/] [stat.value]{review['totalCharacters']}[/]  "
            f"[muted]|[/]  [stat.label]Environments:[/] [stat.value]{review['totalEnvironments']}[/]  "
            f"[muted]|[/]  [stat.label]Scenes:[/] [stat.value]{review['totalScenes']}[/]  "
            f"[muted]|[/]  [stat.label]Pages:[/] [stat.value]{review['totalPages']}[/]"
        )
        _finish(result, "Book finalized", body)
    else:
        _finish(result, "Book finalized")


# ---------------------------------------------------------------------------
# status command
# ---------------------------------------------------------------------------

@cli.command()
@click.option("--book-id", "-b", default=None, help="Show one book (lists all books if omitted)")
@click.pass_context
def status(ctx, book_id):
    """Show workflow progress.

    Example:
      bookflow status
      bookflow status -b BOOK_ID
    """
    settings = Settings()
    controller = _build_controller(settings, show_snapshots=False)
    user_id = ctx.obj["user"] or settings.default_user_id

    console.print(app_header())
    console.print()

    if book_id:
        progress = controller.progress(book_id, user_id=user_id)
        if not progress.get("hasWorkflow"):
            console.print(f"[error]No workflow found for book {book_id}[/]")
            sys.exit(1)
        _show_book_detail(controller, progress, user_id)
    else:
        states = controller.store.list_workflows(user_id)
        if not states:
            console.print("[warning]No books yet. Use [info]bookflow init[/] to start one.[/]")
            return
        _show_book_list(states)


def _show_book_list(states):
    """Display a table of all workflows."""
    table = Table(title="Books", show_lines=True, border_style="dim")
    table.add_column("ID", style="step.num")
    table.add_column("Title", style="bold")
    table.add_column("Step", justify="right")
    table.add_column("Updated")

    for state in states:
        table.add_row(
            state.book_id,
            state.book_title,
            f"{state.current_step}/6",
            state.updated_at.strftime("%Y-%m-%d %H:%M"),
        )
    console.print(table)


def _show_book_detail(controller: WorkflowController, progress: dict, user_id: str):
    """Display detailed info about a single book."""
    console.print(book_summary_panel(progress))
    console.print()
    console.print(step_table(progress["steps"]))

    state = controller.store.load(progress["bookId"], user_id)
    characters = state.step_data(2).get("characters") if state else None
    if characters:
        console.print()
        console.print("[bold]Characters[/]")
        console.print(character_cards(characters))


# ---------------------------------------------------------------------------
# chapters and props
# ---------------------------------------------------------------------------

@cli.command(name="edit-chapter")
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--chapter", "-c", required=True, type=click.IntRange(min=1), help="Chapter number")
@click.option("--title", "-t", default="", help="Chapter title")
@click.option("--file", "-f", "text_file", type=click.Path(exists=True, dir_okay=False, path_type=Path),
              default=None, help="Read chapter text from a file instead of opening the editor")
@click.pass_context
def edit_chapter(ctx, book_id, chapter, title, text_file):
    """Edit a chapter's text; the workflow picks it up on its next load.

    Example:
      bookflow edit-chapter -b BOOK_ID -c 1
    """
    settings = Settings()
    controller = _build_controller(settings, show_snapshots=False)
    user_id = ctx.obj["user"] or settings.default_user_id

    state = controller.store.load(book_id, user_id)
    if state is None:
        console.print(f"[error]No workflow found for book {book_id}[/]")
        sys.exit(1)

    if text_file:
        edited = text_file.read_text(encoding="utf-8")
    else:
        current = ""
        for ch in state.step_data(5).get("chapters") or []:
            if ch.get("chapterNumber") == chapter:
                current = ch.get("content") or ""
        console.print(f"[info]Opening editor for chapter {chapter}...[/]")
        edited = click.edit(current, extension=".md")
        if edited is None:
            console.print("[warning]Edit cancelled (no changes or editor closed)[/]")
            return

    controller.save_chapter_content(
        book_id, chapter, edited.rstrip("\n"), chapter_title=title, user_id=user_id,
    )
    console.print(f"[success]Chapter {chapter} saved ({len(edited.strip())} chars)[/]")


@cli.command(name="add-prop")
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--type", "-t", "prop_type", required=True,
              type=click.Choice([t.value for t in PropType]), help="Asset type")
@click.option("--name", "-n", required=True, help="Character, environment or scene name")
@click.option("--image-url", "-i", required=True, help="URL of the generated image")
@click.option("--description", "-d", default="", help="Short description")
@click.pass_context
def add_prop(ctx, book_id, prop_type, name, image_url, description):
    """Register a generated image for reuse in later steps."""
    settings = Settings()
    controller = _build_controller(settings, show_snapshots=False)
    prop = controller.record_prop(
        book_id, prop_type, name, image_url,
        description=description, user_id=ctx.obj["user"],
    )
    console.print(f"[success]Recorded {prop.type.value} '{prop.name}' (prop #{prop.id})[/]")


@cli.command(name="search-images")
@click.option("--book-id", "-b", required=True, help="Book id")
@click.option("--query", "-q", required=True, help="Name or keywords")
@click.option("--type", "-t", "image_type", default="any",
              type=click.Choice([t.value for t in ImageSearchType]), help="Asset type")
@click.option("--max-results", "-m", default=10, type=click.IntRange(min=1), help="Maximum results")
@click.pass_context
def search_images(ctx, book_id, query, image_type, max_results):
    """Search previously generated images."""
    controller = _build_controller(Settings(), show_snapshots=False)
    result = controller.search_existing_images(
        book_id, query, image_type=image_type, max_results=max_results, user_id=ctx.obj["user"],
    )
    if not result.get("success"):
        console.print(error_panel(result))
        sys.exit(1)
    if not result["images"]:
        console.print(f"[warning]{result['message']}[/]")
        return

    table = Table(title=f"Images matching '{query}'", border_style="dim")
    table.add_column("Name", style="character.name")
    table.add_column("Source", style="muted")
    table.add_column("URL")
    for image in result["images"]:
        table.add_row(image["name"], image["source"], image["imageUrl"])
    console.print(table)


@cli.command()
@click.option("--book-id", "-b", required=True, help="Book id")
@click.pass_context
def props(ctx, book_id):
    """List the images registered for a book."""
    settings = Settings()
    db = Database(settings.sqlite_db_path)
    registered = db.get_props(ctx.obj["user"] or settings.default_user_id, book_id)
    if not registered:
        console.print(f"[warning]No images registered for book {book_id}[/]")
        return

    table = Table(title=f"Props for {book_id}", border_style="dim")
    table.add_column("#", style="step.num", justify="right")
    table.add_column("Type", style="muted")
    table.add_column("Name", style="character.name")
    table.add_column("URL")
    for prop in registered:
        table.add_row(str(prop.id), prop.type.value, prop.name, prop.image_url or "-")
    console.print(table)


# ---------------------------------------------------------------------------
# maintenance
# ---------------------------------------------------------------------------

@cli.command()
@click.argument("target", type=click.Path(dir_okay=False, path_type=Path))
def backup(target):
    """Copy the workflow database to TARGET.

    Example:
      bookflow backup backups/books-2024-05-01.db
    """
    db = Database(Settings().sqlite_db_path)
    copied = db.backup_database(target)
    console.print(f"[success]Database backed up to {copied}[/]")


if __name__ == "__main__":
    cli()
