"""Shared pytest fixtures for the bookflow test suite."""

import hashlib
import re

import numpy as np
import pytest
from unittest.mock import MagicMock

from chromadb import Documents, EmbeddingFunction, Embeddings


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def tmp_db_path(tmp_path):
    """Return a temporary SQLite database path."""
    return tmp_path / "test_books.db"


@pytest.fixture
def db(tmp_db_path):
    """Return an initialized Database instance backed by a temp file."""
    from models.database import Database
    return Database(tmp_db_path)


@pytest.fixture
def store(db):
    from workflow.store import WorkflowStore
    return WorkflowStore(db)


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings(tmp_path):
    """Return a Settings instance with all paths pointing to tmp_path."""
    from config.settings import Settings
    return Settings(
        _env_file=None,
        sqlite_db_path=tmp_path / "books.db",
        chroma_persist_dir=tmp_path / "chroma",
        log_dir=tmp_path / "logs",
        memory_enabled=False,
    )


# ---------------------------------------------------------------------------
# Controller fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def sink():
    """Return a MagicMock standing in for the presentation sink."""
    return MagicMock()


@pytest.fixture
def controller(store, sink, settings):
    from workflow.controller import WorkflowController
    return WorkflowController(store, sink=sink, settings=settings)


@pytest.fixture
def book(controller):
    """Initialize a chapter-book workflow and return its id."""
    result = controller.execute("initialize", book_id="book-1", book_title="Mira's Garden")
    assert result["success"]
    return result["bookId"]


@pytest.fixture
def picture_book(controller):
    """Initialize a picture-book workflow and return its id."""
    result = controller.execute(
        "initialize", book_id="pb-1", book_title="Kip Flies", is_picture_book=True,
    )
    assert result["success"]
    return result["bookId"]


# ---------------------------------------------------------------------------
# Memory fixtures
# ---------------------------------------------------------------------------

class KeywordEmbedding(EmbeddingFunction[Documents]):
    """Deterministic bag-of-words embedding so tests never fetch a model."""

    DIMENSIONS = 64

    def __init__(self):
        pass

    def __call__(self, input: Documents) -> Embeddings:
        return [self._embed(text) for text in input]

    def _embed(self, text: str):
        vec = np.zeros(self.DIMENSIONS, dtype=np.float32)
        vec[0] = 1.0
        for word in re.findall(r"\w+", text.lower()):
            digest = hashlib.md5(word.encode("utf-8")).digest()
            vec[1 + digest[0] % (self.DIMENSIONS - 1)] += 1.0
        return vec / np.linalg.norm(vec)

    @staticmethod
    def name() -> str:
        return "keyword-test"

    def get_config(self) -> dict:
        return {}

    @staticmethod
    def build_from_config(config: dict) -> "KeywordEmbedding":
        return KeywordEmbedding()


@pytest.fixture
def chroma_store(tmp_path):
    """Return a ChromaStore backed by a temporary directory."""
    from memory.chroma_store import ChromaStore
    return ChromaStore(persist_dir=tmp_path / "chroma", embedding_function=KeywordEmbedding())


@pytest.fixture
def mock_memory():
    """Return a MagicMock replacing ChromaStore with no hits by default."""
    memory = MagicMock()
    memory.search_assets.return_value = []
    memory.add_asset.return_value = "mem-1"
    return memory
