"""Tests for workflow document persistence."""

from datetime import timedelta

import pytest

from config.exceptions import ConcurrencyError, DeserializationError, ValidationError
from models.book import BookRow
from models.workflow import WorkflowState, build_skeleton_steps, utcnow
from workflow.store import DATA_MARKER, decode_document, encode_document


def _state(book_id="b1", user_id="u1", **kwargs):
    fields = {
        "book_id": book_id,
        "user_id": user_id,
        "book_title": "Mira's Garden",
        "book_concept": "A girl grows a garden with her grandmother",
        "target_age": "4-6 years",
        "steps": build_skeleton_steps(),
    }
    fields.update(kwargs)
    return WorkflowState(**fields)


class TestDocumentEncoding:
    def test_header_precedes_document(self):
        content = encode_document(_state())
        header, _, _ = content.partition(DATA_MARKER)
        assert "Book Creation Workflow Progress:" in header
        assert "- Book: Mira's Garden" in header
        assert "- Current Step: 1/6 (Story Planning)" in header

    def test_decode_restores_state(self):
        state = _state(is_picture_book=True)
        assert decode_document(encode_document(state)) == state

    def test_marker_inside_concept(self):
        state = _state(book_concept=f"Notes. {DATA_MARKER}not json at all")
        assert decode_document(encode_document(state)).book_concept == state.book_concept

    def test_missing_marker(self):
        with pytest.raises(DeserializationError):
            decode_document("Book Creation Workflow Progress:\n- Book: X\n")

    def test_empty_content(self):
        with pytest.raises(DeserializationError):
            decode_document("")

    def test_truncated_json(self):
        content = encode_document(_state())
        with pytest.raises(DeserializationError):
            decode_document(content[:-20])


class TestSaveAndLoad:
    def test_load_missing_returns_none(self, store):
        assert store.load("b1", "u1") is None

    def test_save_then_load(self, store):
        saved = store.save(_state(), expected_version=0)
        assert saved.version == 1
        loaded = store.load("b1", "u1")
        assert loaded == saved

    def test_versions_increase(self, store):
        first = store.save(_state(), expected_version=0)
        second = store.save(first.model_copy(update={"book_title": "New"}), expected_version=first.version)
        assert second.version == 2
        assert store.load("b1", "u1").book_title == "New"

    def test_stale_save_raises_conflict(self, store):
        first = store.save(_state(), expected_version=0)
        store.save(first, expected_version=first.version)
        with pytest.raises(ConcurrencyError) as exc:
            store.save(first, expected_version=first.version)
        assert exc.value.actual_version == 2

    def test_create_over_existing_row_conflicts(self, store):
        store.save(_state(), expected_version=0)
        with pytest.raises(ConcurrencyError):
            store.save(_state(), expected_version=0)

    def test_user_isolation(self, store):
        store.save(_state(user_id="u1"), expected_version=0)
        assert store.load("b1", "u2") is None

    def test_corrupt_row_returns_none(self, store, db, caplog):
        db.upsert_book_row(BookRow(book_id="b1", user_id="u1", content="garbage", version=3))
        with caplog.at_level("WARNING"):
            assert store.load("b1", "u1") is None
        assert "unreadable" in caplog.text
        assert store.stored_version("b1", "u1") == 3

    def test_foreign_document_ignored(self, store, db):
        foreign = encode_document(_state(book_id="other", user_id="u1"))
        db.upsert_book_row(BookRow(book_id="b1", user_id="u1", content=foreign, version=1))
        assert store.load("b1", "u1") is None

    def test_row_version_is_authoritative(self, store, db):
        content = encode_document(_state(version=40))
        db.upsert_book_row(BookRow(book_id="b1", user_id="u1", content=content, version=2))
        assert store.load("b1", "u1").version == 2

    def test_list_workflows_skips_unreadable(self, store, db):
        store.save(_state(book_id="b1"), expected_version=0)
        store.save(_state(book_id="b2"), expected_version=0)
        db.upsert_book_row(BookRow(book_id="b3", user_id="u1", content="garbage", version=1))
        assert {s.book_id for s in store.list_workflows("u1")} == {"b1", "b2"}


class TestChapterReconciliation:
    def test_newer_chapter_row_overrides_step5(self, store):
        steps = build_skeleton_steps()
        steps[4] = steps[4].model_copy(update={"data": {"chapters": [
            {"chapterNumber": 1, "title": "Seeds", "content": "old text"},
            {"chapterNumber": 2, "title": "Rain", "content": "rain text"},
        ]}})
        past = utcnow() - timedelta(minutes=5)
        store.save(_state(steps=steps, updated_at=past), expected_version=0)

        store.save_chapter("b1", "u1", 1, "edited text", chapter_title="Seeds, Revised")

        chapters = store.load("b1", "u1").step_data(5)["chapters"]
        assert chapters[0] == {"chapterNumber": 1, "title": "Seeds, Revised", "content": "edited text"}
        assert chapters[1]["content"] == "rain text"

    def test_chapters_created_when_missing(self, store):
        past = utcnow() - timedelta(minutes=5)
        store.save(_state(updated_at=past), expected_version=0)
        store.save_chapter("b1", "u1", 3, "third")
        store.save_chapter("b1", "u1", 1, "first")

        chapters = store.load("b1", "u1").step_data(5)["chapters"]
        assert [c["chapterNumber"] for c in chapters] == [1, 3]
        assert "title" not in chapters[0]

    def test_older_chapter_row_ignored(self, store):
        store.save_chapter("b1", "u1", 1, "stale edit")
        steps = build_skeleton_steps()
        steps[4] = steps[4].model_copy(update={"data": {"chapters": [
            {"chapterNumber": 1, "content": "current"},
        ]}})
        future = utcnow() + timedelta(minutes=5)
        store.save(_state(steps=steps, updated_at=future), expected_version=0)

        assert store.load("b1", "u1").step_data(5)["chapters"][0]["content"] == "current"

    def test_slot_zero_rejected(self, store):
        with pytest.raises(ValidationError):
            store.save_chapter("b1", "u1", 0, "text")
