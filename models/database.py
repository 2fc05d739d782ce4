"""SQLite database initialization and CRUD operations."""

import logging
import shutil
import sqlite3
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from models.book import BookProp, BookRow, WORKFLOW_SLOT
from models.enums import PropType

logger = logging.getLogger(__name__)

# SQL for creating all tables
_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS books (
    book_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    chapter_number INTEGER NOT NULL,
    book_title TEXT NOT NULL DEFAULT '',
    chapter_title TEXT NOT NULL DEFAULT '',
    content TEXT NOT NULL DEFAULT '',
    version INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    PRIMARY KEY (book_id, user_id, chapter_number)
);

CREATE TABLE IF NOT EXISTS book_props (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id TEXT NOT NULL,
    user_id TEXT NOT NULL,
    book_title TEXT NOT NULL DEFAULT '',
    type TEXT NOT NULL,
    name TEXT NOT NULL,
    description TEXT DEFAULT '',
    image_url TEXT,
    memory_id TEXT,
    metadata TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
"""

# Indexes added via migration (idempotent)
_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_books_user ON books(user_id, chapter_number)",
    "CREATE INDEX IF NOT EXISTS idx_book_props_lookup ON book_props(user_id, book_id, type, name)",
    "CREATE INDEX IF NOT EXISTS idx_book_props_book ON book_props(book_id)",
]

_UPSERT_ROW_SQL = """
INSERT INTO books (
    book_id, user_id, chapter_number, book_title, chapter_title,
    content, version, created_at, updated_at
) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
ON CONFLICT (book_id, user_id, chapter_number) DO UPDATE SET
    book_title = excluded.book_title,
    chapter_title = excluded.chapter_title,
    content = excluded.content,
    version = excluded.version,
    updated_at = excluded.updated_at
WHERE ? IS NULL OR books.version = ?
"""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class Database:
    """SQLite database manager for book workflow rows and props."""

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path), timeout=30)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    def backup_database(self, target_path: str | Path) -> Path:
        """Create a backup copy of the database.

        Args:
            target_path: Path for the backup file.

        Returns:
            Path to the backup file.
        """
        target = Path(target_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(self.db_path), str(target))
        logger.info("Database backed up to %s", target)
        return target

    # ---- Book rows ----

    def upsert_book_row(self, row: BookRow, expected_version: Optional[int] = None) -> bool:
        """Insert or update a row in one atomic statement.

        When ``expected_version`` is given, an existing row is only updated if
        its stored version still equals it.

        Returns:
            True if a row was written, False if the version check rejected it.
        """
        now = _now()
        with self._get_conn() as conn:
            cursor = conn.execute(
                _UPSERT_ROW_SQL,
                (row.book_id, row.user_id, row.chapter_number, row.book_title,
                 row.chapter_title, row.content, row.version,
                 row.created_at or now, row.updated_at or now,
                 expected_version, expected_version),
            )
            return cursor.rowcount > 0

    def get_book_row(self, book_id: str, user_id: str,
                     chapter_number: int = WORKFLOW_SLOT) -> Optional[BookRow]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM books WHERE book_id = ? AND user_id = ? AND chapter_number = ?",
                (book_id, user_id, chapter_number),
            ).fetchone()
            if not row:
                return None
            return self._row_to_book(row)

    def get_row_version(self, book_id: str, user_id: str,
                        chapter_number: int = WORKFLOW_SLOT) -> Optional[int]:
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT version FROM books WHERE book_id = ? AND user_id = ? AND chapter_number = ?",
                (book_id, user_id, chapter_number),
            ).fetchone()
            return row["version"] if row else None

    def get_content_rows(self, book_id: str, user_id: str) -> list[BookRow]:
        """Return narrative chapter rows (slots >= 1) ordered by chapter number."""
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM books WHERE book_id = ? AND user_id = ? AND chapter_number > ? "
                "ORDER BY chapter_number",
                (book_id, user_id, WORKFLOW_SLOT),
            ).fetchall()
            return [self._row_to_book(r) for r in rows]

    def save_chapter_content(self, book_id: str, user_id: str, chapter_number: int,
                             chapter_title: str, content: str, book_title: str = "") -> None:
        """Write editor-owned chapter text into a content slot."""
        if chapter_number <= WORKFLOW_SLOT:
            raise ValueError(f"Chapter slots start at 1, got {chapter_number}")
        now = _now()
        with self._get_conn() as conn:
            conn.execute(
                "INSERT INTO books (book_id, user_id, chapter_number, book_title, chapter_title, "
                "content, version, created_at, updated_at) VALUES (?, ?, ?, ?, ?, ?, 1, ?, ?) "
                "ON CONFLICT (book_id, user_id, chapter_number) DO UPDATE SET "
                "chapter_title = excluded.chapter_title, content = excluded.content, "
                "version = books.version + 1, updated_at = excluded.updated_at",
                (book_id, user_id, chapter_number, book_title, chapter_title, content, now, now),
            )

    def list_workflow_rows(self, user_id: str) -> list[BookRow]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM books WHERE user_id = ? AND chapter_number = ? "
                "ORDER BY updated_at DESC",
                (user_id, WORKFLOW_SLOT),
            ).fetchall()
            return [self._row_to_book(r) for r in rows]

    def _row_to_book(self, row) -> BookRow:
        return BookRow(
            book_id=row["book_id"], user_id=row["user_id"],
            chapter_number=row["chapter_number"],
            book_title=row["book_title"], chapter_title=row["chapter_title"],
            content=row["content"], version=row["version"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )

    # ---- Props CRUD ----

    def create_prop(self, prop: BookProp) -> int:
        now = _now()
        with self._get_conn() as conn:
            cursor = conn.execute(
                "INSERT INTO book_props (book_id, user_id, book_title, type, name, description, "
                "image_url, memory_id, metadata, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (prop.book_id, prop.user_id, prop.book_title, prop.type.value, prop.name,
                 prop.description, prop.image_url, prop.memory_id, prop.metadata, now, now),
            )
            return cursor.lastrowid

    def find_prop(self, user_id: str, book_id: str, prop_type: PropType,
                  name: str) -> Optional[BookProp]:
        """Return the newest prop with an image for an exact (type, name) match."""
        with self._get_conn() as conn:
            row = conn.execute(
                "SELECT * FROM book_props WHERE user_id = ? AND book_id = ? AND type = ? "
                "AND name = ? AND image_url IS NOT NULL AND image_url != '' "
                "ORDER BY created_at DESC, id DESC LIMIT 1",
                (user_id, book_id, prop_type.value, name),
            ).fetchone()
            if not row:
                return None
            return self._row_to_prop(row)

    def search_props(self, user_id: str, book_id: str, query: str,
                     prop_type: Optional[PropType] = None, limit: int = 10) -> list[BookProp]:
        """Search props by partial name, optionally filtered by type."""
        pattern = f"%{query}%"
        with self._get_conn() as conn:
            if prop_type:
                rows = conn.execute(
                    "SELECT * FROM book_props WHERE user_id = ? AND book_id = ? AND type = ? "
                    "AND name LIKE ? ORDER BY created_at DESC, id DESC LIMIT ?",
                    (user_id, book_id, prop_type.value, pattern, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM book_props WHERE user_id = ? AND book_id = ? "
                    "AND name LIKE ? ORDER BY created_at DESC, id DESC LIMIT ?",
                    (user_id, book_id, pattern, limit),
                ).fetchall()
            return [self._row_to_prop(r) for r in rows]

    def get_props(self, user_id: str, book_id: str) -> list[BookProp]:
        with self._get_conn() as conn:
            rows = conn.execute(
                "SELECT * FROM book_props WHERE user_id = ? AND book_id = ? ORDER BY id",
                (user_id, book_id),
            ).fetchall()
            return [self._row_to_prop(r) for r in rows]

    def _row_to_prop(self, row) -> BookProp:
        return BookProp(
            id=row["id"], book_id=row["book_id"], user_id=row["user_id"],
            book_title=row["book_title"], type=PropType(row["type"]),
            name=row["name"], description=row["description"] or "",
            image_url=row["image_url"], memory_id=row["memory_id"],
            metadata=row["metadata"],
            created_at=row["created_at"], updated_at=row["updated_at"],
        )
