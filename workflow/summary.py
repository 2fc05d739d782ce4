"""Final-review summary, progress figures and the slot-0 progress text."""

from datetime import datetime
from typing import Any, Optional

from models.enums import StepStatus
from models.workflow import TOTAL_STEPS, WorkflowState, step_name, utcnow

_DONE = (StepStatus.COMPLETED, StepStatus.APPROVED)


def count_scenes(step5: dict[str, Any]) -> Optional[int]:
    """Count scenes in step 5 data, or None when it holds no scene source at all."""
    chapters = step5.get("chapters")
    if isinstance(chapters, list) and any(
        isinstance(ch, dict) and isinstance(ch.get("scenes"), list) for ch in chapters
    ):
        return sum(
            len(ch["scenes"]) for ch in chapters
            if isinstance(ch, dict) and isinstance(ch.get("scenes"), list)
        )
    for legacy_key in ("scenes", "scenesToCompose"):
        if isinstance(step5.get(legacy_key), list):
            return len(step5[legacy_key])
    return None


def _count(data: dict[str, Any], key: str) -> int:
    value = data.get(key)
    return len(value) if isinstance(value, list) else 0


def build_final_review(
    state: WorkflowState,
    min_pages: int = 12,
    default_scene_count: int = 6,
    finalized_at: Optional[datetime] = None,
) -> dict[str, Any]:
    """Compute step 6 data from the current contents of steps 2, 4 and 5.

    Every figure is recomputed from scratch, so calling this repeatedly on the
    same state yields the same counts.
    """
    scenes = count_scenes(state.step_data(5))
    scene_count = default_scene_count if scenes is None else scenes
    title = state.book_title
    return {
        "status": StepStatus.COMPLETED.value,
        "bookTitle": title,
        "totalSteps": TOTAL_STEPS,
        "completedSteps": TOTAL_STEPS,
        "bookSummary": f"{title} - A {state.target_age} children's book",
        "bookConcept": state.book_concept,
        "totalCharacters": _count(state.step_data(2), "characters"),
        "totalEnvironments": _count(state.step_data(4), "environments"),
        "totalScenes": scenes or 0,
        "totalPages": max(min_pages, scene_count * 2),
        "finalizedAt": (finalized_at or utcnow()).isoformat(),
    }


def compute_progress(state: WorkflowState) -> dict[str, Any]:
    """Progress figures for status displays."""
    completed = [s for s in state.steps if s.status in _DONE]
    approved = [s for s in state.steps if s.status == StepStatus.APPROVED]
    active = next(
        (s for s in state.steps if s.status in (StepStatus.PENDING, StepStatus.IN_PROGRESS)),
        None,
    )
    total = len(state.steps)
    return {
        "bookId": state.book_id,
        "bookTitle": state.book_title,
        "bookConcept": state.book_concept,
        "targetAge": state.target_age,
        "isPictureBook": state.is_picture_book,
        "currentStep": active.step_number if active else None,
        "currentStepName": active.step_name if active else None,
        "totalSteps": total,
        "completedSteps": len(completed),
        "approvedSteps": len(approved),
        "progressPercentage": round(len(completed) / total * 100) if total else 0,
        "steps": [
            {
                "stepNumber": s.step_number,
                "stepName": s.step_name,
                "status": s.status.value,
                "hasData": s.has_data,
            }
            for s in state.steps
        ],
        "createdAt": state.created_at.isoformat(),
        "updatedAt": state.updated_at.isoformat(),
    }


def render_progress_text(state: WorkflowState) -> str:
    """Human-readable header stored ahead of the serialized document."""
    completed = sum(1 for s in state.steps if s.status in _DONE)
    return (
        "Book Creation Workflow Progress:\n"
        f"- Book: {state.book_title}\n"
        f"- Target Age: {state.target_age}\n"
        f"- Current Step: {state.current_step}/{TOTAL_STEPS} ({step_name(state.current_step)})\n"
        f"- Completed Steps: {completed}/{TOTAL_STEPS}\n"
        f"- Progress: {round(completed / TOTAL_STEPS * 100)}%\n"
        "\n"
        f"Book Concept: {state.book_concept}\n"
    )
