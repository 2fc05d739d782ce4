"""Tests for the workflow document and step payload schemas."""

import pytest

from config.exceptions import ValidationError
from models.enums import StepStatus
from models.steps import coerce_step_payload
from models.workflow import (
    TOTAL_STEPS,
    Step,
    WorkflowState,
    build_skeleton_steps,
    step_name,
)


def _state(**kwargs):
    fields = {"book_id": "b1", "user_id": "u1", "steps": build_skeleton_steps()}
    fields.update(kwargs)
    return WorkflowState(**fields)


class TestSkeleton:
    def test_six_steps_in_order(self):
        steps = build_skeleton_steps()
        assert [s.step_number for s in steps] == list(range(1, TOTAL_STEPS + 1))
        assert steps[0].status == StepStatus.IN_PROGRESS
        assert all(s.status == StepStatus.PENDING for s in steps[1:])

    def test_seed_lands_on_step_one(self):
        steps = build_skeleton_steps({"premise": "A fox learns to share"})
        assert steps[0].data == {"premise": "A fox learns to share"}
        assert all(s.data is None for s in steps[1:])

    def test_step_names(self):
        assert step_name(1) == "Story Planning"
        assert step_name(6) == "Final Review"
        assert step_name(9) == "Step 9"


class TestWorkflowState:
    def test_document_is_camel_case(self):
        doc = _state(book_title="Mira's Garden").to_document()
        assert doc["bookId"] == "b1"
        assert doc["bookTitle"] == "Mira's Garden"
        assert doc["currentStep"] == 1
        assert doc["steps"][0]["stepName"] == "Story Planning"
        assert doc["steps"][0]["status"] == "in_progress"

    def test_round_trip_from_document(self):
        state = _state(book_title="Kip Flies", is_picture_book=True)
        restored = WorkflowState.model_validate(state.to_document())
        assert restored == state

    def test_missing_step_rejected(self):
        with pytest.raises(Exception, match="exactly once"):
            _state(steps=build_skeleton_steps()[:5])

    def test_steps_sorted(self):
        steps = list(reversed(build_skeleton_steps()))
        assert [s.step_number for s in _state(steps=steps).steps] == [1, 2, 3, 4, 5, 6]

    def test_newer_schema_rejected(self):
        with pytest.raises(Exception, match="schema_version"):
            _state(schema_version=99)

    def test_step_data_defaults_to_empty(self):
        assert _state().step_data(3) == {}

    def test_step_number_bounds(self):
        with pytest.raises(Exception):
            Step(step_number=7, step_name="Extra")


class TestCoerceStepPayload:
    def test_unknown_top_level_fields_reported(self):
        payload, ignored = coerce_step_payload(1, {"premise": "p", "mood": "sunny"})
        assert payload == {"premise": "p"}
        assert ignored == ["mood"]

    def test_entity_extras_kept(self):
        payload, ignored = coerce_step_payload(
            2, {"characters": [{"name": "Mira", "favoriteColor": "green"}]},
        )
        assert ignored == []
        assert payload["characters"][0]["favoriteColor"] == "green"

    def test_only_sent_fields_returned(self):
        payload, _ = coerce_step_payload(2, {"characters": [{"name": "Mira", "role": "hero"}]})
        assert payload["characters"][0] == {"name": "Mira", "role": "hero"}

    def test_explicit_null_preserved(self):
        payload, _ = coerce_step_payload(1, {"premise": None})
        assert payload == {"premise": None}

    def test_character_requires_name(self):
        with pytest.raises(ValidationError) as exc:
            coerce_step_payload(2, {"characters": [{"role": "hero"}]})
        assert exc.value.details["problems"]

    def test_chapter_number_coerced(self):
        payload, _ = coerce_step_payload(3, {"chapters": [{"chapterNumber": "2", "title": "Rain"}]})
        assert payload["chapters"][0]["chapterNumber"] == 2

    def test_unknown_step_rejected(self):
        with pytest.raises(ValidationError):
            coerce_step_payload(7, {})

    def test_non_object_rejected(self):
        with pytest.raises(ValidationError):
            coerce_step_payload(1, ["not", "a", "dict"])
