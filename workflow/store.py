"""Persistence of workflow documents in slot 0 of the books table."""

import json
import logging
from datetime import datetime
from typing import Optional

from pydantic import ValidationError as SchemaError

from config.exceptions import (
    ConcurrencyError,
    DeserializationError,
    PersistenceError,
    ValidationError,
)
from models.book import BookRow, WORKFLOW_SLOT
from models.database import Database
from models.workflow import WorkflowState
from workflow.summary import render_progress_text

logger = logging.getLogger(__name__)

DATA_MARKER = "Workflow Data: "


def encode_document(state: WorkflowState) -> str:
    """Render slot-0 content: progress text followed by the JSON document."""
    payload = json.dumps(state.to_document(), ensure_ascii=False, indent=2)
    return f"{render_progress_text(state)}\n{DATA_MARKER}{payload}"


def decode_document(content: str) -> WorkflowState:
    """Parse slot-0 content back into a WorkflowState.

    Raises:
        DeserializationError: If no valid document follows a data marker.
    """
    if not content:
        raise DeserializationError("Workflow row is empty")

    start = content.find(DATA_MARKER)
    last_error: Optional[Exception] = None
    while start != -1:
        # The concept text in the header may itself contain the marker
        try:
            return WorkflowState.model_validate(json.loads(content[start + len(DATA_MARKER):]))
        except (json.JSONDecodeError, SchemaError) as e:
            last_error = e
        start = content.find(DATA_MARKER, start + 1)

    raise DeserializationError(
        "Workflow document could not be decoded",
        {"reason": str(last_error) if last_error else "data marker not found"},
    )


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        return None


class WorkflowStore:
    """Loads and saves workflow documents keyed by (book_id, user_id)."""

    def __init__(self, db: Database):
        self.db = db

    def load(self, book_id: str, user_id: str) -> Optional[WorkflowState]:
        """Return the stored workflow, or None if absent or unreadable.

        Chapter rows edited after the document was last saved are folded into
        step 5 before the state is returned.
        """
        try:
            row = self.db.get_book_row(book_id, user_id, WORKFLOW_SLOT)
        except Exception as e:
            raise PersistenceError(f"Failed to read workflow for book {book_id}", {"error": str(e)}) from e
        if row is None:
            return None

        try:
            state = decode_document(row.content)
        except DeserializationError as e:
            logger.warning("Discarding unreadable workflow for book %s: %s", book_id, e)
            return None

        if state.book_id != book_id or state.user_id != user_id:
            logger.warning(
                "Workflow row for book %s holds a document for %s/%s; ignoring it",
                book_id, state.book_id, state.user_id,
            )
            return None

        state = state.model_copy(update={"version": row.version})
        return self._reconcile_chapters(state)

    def stored_version(self, book_id: str, user_id: str) -> Optional[int]:
        """Version of the slot-0 row as stored, readable or not."""
        return self.db.get_row_version(book_id, user_id, WORKFLOW_SLOT)

    def save(self, state: WorkflowState, expected_version: Optional[int] = None) -> WorkflowState:
        """Persist ``state`` atomically and return it with its new version.

        Args:
            state: Document to write.
            expected_version: Version the caller loaded. The write is rejected
                if the stored row has moved on since. Pass 0 to require that
                no row exists yet; None skips the check.

        Raises:
            ConcurrencyError: If the version check rejected the write.
            PersistenceError: If the database write failed.
        """
        base = state.version if expected_version is None else expected_version
        saved = state.model_copy(update={"version": base + 1})
        row = BookRow(
            book_id=saved.book_id,
            user_id=saved.user_id,
            chapter_number=WORKFLOW_SLOT,
            book_title=saved.book_title,
            chapter_title=f"{saved.book_title} - Workflow",
            content=encode_document(saved),
            version=saved.version,
            created_at=saved.created_at.isoformat(),
            updated_at=saved.updated_at.isoformat(),
        )
        try:
            written = self.db.upsert_book_row(row, expected_version)
        except Exception as e:
            raise PersistenceError(f"Failed to save workflow for book {state.book_id}", {"error": str(e)}) from e

        if not written:
            actual = self.stored_version(state.book_id, state.user_id)
            logger.warning(
                "Version conflict saving book %s: expected %s, stored %s",
                state.book_id, expected_version, actual,
            )
            raise ConcurrencyError(state.book_id, expected_version, actual)

        logger.debug("Saved workflow for book %s at version %d", saved.book_id, saved.version)
        return saved

    def list_workflows(self, user_id: str) -> list[WorkflowState]:
        """All readable workflows owned by ``user_id``, newest first."""
        states = []
        for row in self.db.list_workflow_rows(user_id):
            try:
                state = decode_document(row.content)
            except DeserializationError as e:
                logger.warning("Skipping unreadable workflow for book %s: %s", row.book_id, e)
                continue
            states.append(state.model_copy(update={"version": row.version}))
        return states

    def save_chapter(self, book_id: str, user_id: str, chapter_number: int,
                     content: str, chapter_title: str = "", book_title: str = "") -> None:
        """Write edited chapter text to its own slot; picked up on the next load."""
        try:
            self.db.save_chapter_content(
                book_id, user_id, chapter_number, chapter_title, content, book_title,
            )
        except ValueError as e:
            raise ValidationError(str(e), {"chapter_number": chapter_number}) from e
        except Exception as e:
            raise PersistenceError(
                f"Failed to save chapter {chapter_number} for book {book_id}", {"error": str(e)}
            ) from e
        logger.info("Saved edited chapter %d for book %s", chapter_number, book_id)

    # ---- Chapter slot reconciliation ----

    def _reconcile_chapters(self, state: WorkflowState) -> WorkflowState:
        rows = []
        for row in self.db.get_content_rows(state.book_id, state.user_id):
            edited_at = _parse_ts(row.updated_at)
            if edited_at is not None and edited_at > state.updated_at:
                rows.append(row)
        if not rows:
            return state

        step5 = state.get_step(5)
        data = dict(step5.data or {})
        chapters = [dict(ch) for ch in data.get("chapters") or [] if isinstance(ch, dict)]
        by_number = {ch.get("chapterNumber"): ch for ch in chapters}

        for row in rows:
            chapter = by_number.get(row.chapter_number)
            if chapter is None:
                chapter = {"chapterNumber": row.chapter_number}
                chapters.append(chapter)
                by_number[row.chapter_number] = chapter
            chapter["content"] = row.content
            if row.chapter_title:
                chapter["title"] = row.chapter_title

        chapters.sort(key=lambda ch: ch.get("chapterNumber") or 0)
        data["chapters"] = chapters
        logger.info(
            "Reconciled %d edited chapter(s) into step 5 for book %s",
            len(rows), state.book_id,
        )

        steps = list(state.steps)
        steps[4] = step5.model_copy(update={"data": data})
        return state.model_copy(update={"steps": steps})
