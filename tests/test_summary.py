"""Tests for final review figures and progress reporting."""

from datetime import datetime, timezone

from models.enums import StepStatus
from models.workflow import WorkflowState, build_skeleton_steps
from workflow.summary import build_final_review, compute_progress, count_scenes, render_progress_text


def _state(step_data=None, statuses=None, **kwargs):
    steps = build_skeleton_steps()
    for number, data in (step_data or {}).items():
        steps[number - 1] = steps[number - 1].model_copy(update={"data": data})
    for number, status in (statuses or {}).items():
        steps[number - 1] = steps[number - 1].model_copy(update={"status": status})
    fields = {"book_id": "b1", "user_id": "u1", "book_title": "Kip Flies",
              "target_age": "4-6 years", "steps": steps}
    fields.update(kwargs)
    return WorkflowState(**fields)


class TestCountScenes:
    def test_chapter_scenes(self):
        step5 = {"chapters": [{"scenes": [{}, {}]}, {"scenes": [{}]}, {"title": "no scenes"}]}
        assert count_scenes(step5) == 3

    def test_legacy_scene_lists(self):
        assert count_scenes({"scenes": [{}, {}]}) == 2
        assert count_scenes({"scenesToCompose": [{}]}) == 1

    def test_no_scene_source(self):
        assert count_scenes({}) is None
        assert count_scenes({"chapters": [{"title": "x"}]}) is None


class TestBuildFinalReview:
    def test_counts(self):
        state = _state({
            2: {"characters": [{"name": "A"}, {"name": "B"}, {"name": "C"}]},
            4: {"environments": [{"name": "Sky"}, {"name": "Nest"}]},
            5: {"chapters": [{"chapterNumber": 1, "scenes": [{}] * 8}]},
        })
        review = build_final_review(state)
        assert review["totalCharacters"] == 3
        assert review["totalEnvironments"] == 2
        assert review["totalScenes"] == 8
        assert review["totalPages"] == 16
        assert review["completedSteps"] == 6
        assert review["bookSummary"] == "Kip Flies - A 4-6 years children's book"

    def test_minimum_pages(self):
        state = _state({5: {"chapters": [{"chapterNumber": 1, "scenes": [{}, {}]}]}})
        assert build_final_review(state)["totalPages"] == 12

    def test_default_scene_count_for_pages(self):
        review = build_final_review(_state(), min_pages=4, default_scene_count=6)
        assert review["totalScenes"] == 0
        assert review["totalPages"] == 12

    def test_finalized_at(self):
        when = datetime(2026, 1, 2, tzinfo=timezone.utc)
        assert build_final_review(_state(), finalized_at=when)["finalizedAt"] == when.isoformat()

    def test_recompute_is_stable(self):
        state = _state({2: {"characters": [{"name": "A"}]}})
        when = datetime(2026, 1, 2, tzinfo=timezone.utc)
        assert build_final_review(state, finalized_at=when) == build_final_review(state, finalized_at=when)


class TestProgress:
    def test_fresh_workflow(self):
        progress = compute_progress(_state())
        assert progress["completedSteps"] == 0
        assert progress["progressPercentage"] == 0
        assert progress["currentStep"] == 1
        assert progress["currentStepName"] == "Story Planning"
        assert len(progress["steps"]) == 6

    def test_partial_progress(self):
        progress = compute_progress(_state(
            {1: {"premise": "p"}},
            {1: StepStatus.APPROVED, 2: StepStatus.COMPLETED, 3: StepStatus.PENDING},
        ))
        assert progress["completedSteps"] == 2
        assert progress["approvedSteps"] == 1
        assert progress["progressPercentage"] == 33
        assert progress["currentStep"] == 3
        assert progress["steps"][0]["hasData"] is True

    def test_all_done(self):
        statuses = {n: StepStatus.APPROVED for n in range(1, 7)}
        progress = compute_progress(_state(statuses=statuses))
        assert progress["progressPercentage"] == 100
        assert progress["currentStep"] is None

    def test_progress_text(self):
        text = render_progress_text(_state(current_step=2, book_concept="A bird learns to fly"))
        assert "- Current Step: 2/6 (Character Creation)" in text
        assert "Book Concept: A bird learns to fly" in text
