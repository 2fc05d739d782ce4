"""Row-level data models for the books and book_props tables."""

from dataclasses import dataclass
from typing import Optional

from models.enums import PropType

# Slot 0 of a book carries the workflow document; slots >= 1 carry chapter text
WORKFLOW_SLOT = 0


@dataclass
class BookRow:
    """One row of the books table, keyed by (book_id, user_id, chapter_number)."""
    book_id: str = ""
    user_id: str = ""
    chapter_number: int = WORKFLOW_SLOT
    book_title: str = ""
    chapter_title: str = ""
    content: str = ""
    version: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


@dataclass
class BookProp:
    """A previously generated, named visual asset kept for reuse."""
    id: Optional[int] = None
    book_id: str = ""
    user_id: str = ""
    book_title: str = ""
    type: PropType = PropType.CHARACTER
    name: str = ""
    description: str = ""
    image_url: Optional[str] = None
    memory_id: Optional[str] = None
    metadata: Optional[str] = None  # JSON
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
