"""Action dispatcher for the six-step book creation workflow.

Each action loads the stored document, applies a pure transition function,
persists the result with a version check and pushes a snapshot to the sink.
Errors never leave ``WorkflowController.execute``; they come back as
structured results the calling agent can act on.
"""

import inspect
import json
import logging
import re
import threading
import uuid
import weakref
from datetime import datetime
from typing import Any, Callable, Optional

from config.exceptions import (
    BookWorkflowError,
    ImageRequirementError,
    NotFoundError,
    ValidationError,
)
from config.settings import Settings, get_settings
from models.book import BookProp
from models.enums import ImageSearchType, PropType, StepStatus, WorkflowAction
from models.steps import coerce_step_payload
from models.workflow import (
    TOTAL_STEPS,
    WorkflowState,
    build_skeleton_steps,
    step_name,
    utcnow,
)
from workflow.callbacks import LoggingSink, StateSink
from workflow.concept import parse_concept
from workflow.enrichment import ImageEnrichment
from workflow.merger import StepMerger
from workflow.spatial import SpatialEnhancer
from workflow.store import WorkflowStore
from workflow.summary import build_final_review, compute_progress
from workflow.validation import ImageRequirementValidator

logger = logging.getLogger(__name__)

_TITLE_IN_CONTEXT_RE = re.compile(r"Book Title:\s*([^.\n]+)")

_MEMORY_TIP = (
    "Tip: Consider searching memory before future updates to maintain "
    "consistency with previous work and user preferences."
)
_MEMORY_ACK = "Memory was searched before updating, which helps maintain consistency."


# ---------------------------------------------------------------------------
# Pure transitions: (state, request) -> (state, result)
# ---------------------------------------------------------------------------

def _with_steps(state: WorkflowState, changes: dict[int, dict[str, Any]], **fields) -> WorkflowState:
    steps = [
        s.model_copy(update=changes[s.step_number]) if s.step_number in changes else s
        for s in state.steps
    ]
    return state.model_copy(update={"steps": steps, **fields})


def next_action_for(step_number: int) -> str:
    return f"Continue with Step {step_number}: {step_name(step_number)}"


def resolve_title(current: str, step_number: int, payload: dict[str, Any],
                  default_title: str) -> str:
    """Pick the book title implied by an incoming step payload."""
    if step_number == 1:
        title = payload.get("bookTitle")
        if isinstance(title, str) and title.strip():
            return title.strip()
        options = payload.get("titleOptions")
        if isinstance(options, list) and options and isinstance(options[0], str) and options[0].strip():
            return options[0].strip()

    context = payload.get("conversationContext")
    if isinstance(context, str) and (step_number == 1 or not current or current == default_title):
        match = _TITLE_IN_CONTEXT_RE.search(context)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return current


def apply_step_update(
    state: WorkflowState,
    step_number: int,
    merged_data: dict[str, Any],
    payload: dict[str, Any],
    now: datetime,
    default_title: str,
    min_pages: int,
    default_scene_count: int,
) -> WorkflowState:
    """Install merged step data and move every step status around it."""
    changes: dict[int, dict[str, Any]] = {}
    for step in state.steps:
        if step.step_number < step_number:
            changes[step.step_number] = {"status": StepStatus.APPROVED}
        elif step.step_number > step_number:
            changes[step.step_number] = {"status": StepStatus.PENDING}
    changes[step_number] = {"status": StepStatus.COMPLETED, "data": merged_data, "feedback": None}

    fields: dict[str, Any] = {
        "book_title": resolve_title(state.book_title, step_number, payload, default_title),
        "current_step": step_number,
        "updated_at": now,
    }
    if step_number == 1 and isinstance(payload.get("isPictureBook"), bool):
        fields["is_picture_book"] = payload["isPictureBook"]

    updated = _with_steps(state, changes, **fields)

    if step_number == 5:
        review = build_final_review(updated, min_pages, default_scene_count, finalized_at=now)
        updated = _with_steps(
            updated,
            {6: {"status": StepStatus.COMPLETED, "data": review}},
            current_step=TOTAL_STEPS,
        )
    return updated


def apply_approval(state: WorkflowState, step_number: int, approved: bool,
                   feedback: Optional[str], now: datetime) -> tuple[WorkflowState, dict]:
    if approved:
        next_step = min(step_number + 1, TOTAL_STEPS)
        updated = _with_steps(
            state,
            {step_number: {"status": StepStatus.APPROVED, "feedback": None}},
            current_step=next_step,
            updated_at=now,
        )
        finished = step_number >= TOTAL_STEPS
        return updated, {
            "stepApproved": True,
            "currentStep": next_step,
            "nextAction": "All steps completed. Ready for final review."
            if finished else f"Work on Step {next_step}: {step_name(next_step)}",
            "message": "All steps completed! Book creation finished."
            if finished else f"Step {step_number} approved. Moving to Step {next_step}.",
        }

    feedback = feedback or "User requested changes"
    updated = _with_steps(
        state,
        {step_number: {"status": StepStatus.NEEDS_REVISION, "feedback": feedback}},
        updated_at=now,
    )
    return updated, {
        "stepApproved": False,
        "needsRevision": True,
        "userFeedback": feedback,
        "currentStep": updated.current_step,
        "nextAction": f"Revise Step {step_number} based on user feedback",
        "message": f"Step {step_number} needs revision. User feedback: {feedback}",
    }


def apply_regenerate(state: WorkflowState, step_number: int, now: datetime) -> WorkflowState:
    """Reopen a step. Approved steps stay closed until edited or rejected."""
    status = state.get_step(step_number).status
    if status == StepStatus.APPROVED:
        raise ValidationError(
            f"Step {step_number} is already approved. Reject it or update it before regenerating.",
            {"step_number": step_number, "status": status.value},
        )
    return _with_steps(
        state,
        {step_number: {"status": StepStatus.IN_PROGRESS}},
        current_step=step_number,
        updated_at=now,
    )


def _parse_timestamp(value: Any, fallback: datetime) -> datetime:
    if not isinstance(value, str) or not value.strip():
        return fallback
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        logger.warning("Ignoring unparseable finalizedAt %r", value)
        return fallback


def apply_finalize(state: WorkflowState, now: datetime, min_pages: int,
                   default_scene_count: int) -> WorkflowState:
    """Recompute step 6 from steps 2, 4 and 5 and close out every step."""
    step6 = state.get_step(TOTAL_STEPS)
    finalized_at = now
    if step6.status == StepStatus.COMPLETED and step6.data:
        finalized_at = _parse_timestamp(step6.data.get("finalizedAt"), now)
    review = build_final_review(state, min_pages, default_scene_count, finalized_at=finalized_at)

    changes = {n: {"status": StepStatus.APPROVED} for n in range(1, TOTAL_STEPS)}
    changes[TOTAL_STEPS] = {"status": StepStatus.COMPLETED, "data": review}
    return _with_steps(state, changes, current_step=TOTAL_STEPS, updated_at=now)


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------

def _require_step_number(step_number: Any) -> int:
    if step_number is None or step_number == "":
        raise ValidationError("stepNumber is required for this action")
    if isinstance(step_number, bool):
        raise ValidationError(f"Invalid step number: {step_number}. Must be 1-{TOTAL_STEPS}.")
    try:
        number = int(step_number)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid step number: {step_number}. Must be 1-{TOTAL_STEPS}.")
    if number < 1 or number > TOTAL_STEPS:
        raise ValidationError(
            f"Invalid step number: {step_number}. Must be 1-{TOTAL_STEPS}.",
            {"step_number": number},
        )
    return number


def _require_book_id(book_id: Optional[str]) -> str:
    if not book_id or not str(book_id).strip():
        raise ValidationError("bookId is required for this action")
    return str(book_id)


class _BookLock:
    """Per-book mutex; held weakly by the controller so idle books drop out."""

    __slots__ = ("_lock", "__weakref__")

    def __init__(self):
        self._lock = threading.Lock()

    def __enter__(self):
        self._lock.acquire()
        return self

    def __exit__(self, *exc):
        self._lock.release()
        return False


class WorkflowController:
    """Runs workflow actions against the store for one engine instance."""

    def __init__(
        self,
        store: WorkflowStore,
        sink: Optional[StateSink] = None,
        memory=None,
        settings: Optional[Settings] = None,
        merger: Optional[StepMerger] = None,
        spatial: Optional[SpatialEnhancer] = None,
        validator: Optional[ImageRequirementValidator] = None,
        enrichment: Optional[ImageEnrichment] = None,
    ):
        self.store = store
        self.sink = sink or LoggingSink()
        self.memory = memory
        self.settings = settings or get_settings()
        self.merger = merger or StepMerger()
        self.spatial = spatial or SpatialEnhancer()
        self.validator = validator or ImageRequirementValidator()
        self.enrichment = enrichment or ImageEnrichment(
            db=store.db, memory=memory,
            memory_search_limit=self.settings.memory_search_limit,
        )
        self._locks = weakref.WeakValueDictionary()  # (book_id, user_id) -> _BookLock
        self._locks_guard = threading.Lock()

    # ---- Dispatch ----

    def execute(self, action: str | WorkflowAction, user_id: Optional[str] = None,
                **kwargs) -> dict:
        """Run one action and return its structured result."""
        user_id = user_id or self.settings.default_user_id
        try:
            try:
                action = WorkflowAction(action)
            except ValueError:
                raise ValidationError(f"Unknown action: {action}", {"action": str(action)})

            handlers: dict[WorkflowAction, Callable[..., dict]] = {
                WorkflowAction.INITIALIZE: self.initialize,
                WorkflowAction.UPDATE_STEP: self.update_step,
                WorkflowAction.APPROVE_STEP: self.approve_step,
                WorkflowAction.REGENERATE: self.regenerate,
                WorkflowAction.FINALIZE: self.finalize,
            }
            handler = handlers[action]
            try:
                inspect.signature(handler).bind(user_id=user_id, **kwargs)
            except TypeError as e:
                raise ValidationError(f"Invalid arguments for {action.value}: {e}")

            logger.info("Action %s book=%s user=%s", action.value, kwargs.get("book_id"), user_id)
            return handler(user_id=user_id, **kwargs)
        except BookWorkflowError as e:
            logger.warning("Action %s rejected: %s", getattr(action, "value", action), e)
            return e.to_result()
        except Exception as e:
            logger.exception("Action %s failed unexpectedly", action)
            return BookWorkflowError(f"Unexpected error: {e}").to_result()

    def _lock_for(self, book_id: str, user_id: str) -> _BookLock:
        with self._locks_guard:
            lock = self._locks.get((book_id, user_id))
            if lock is None:
                lock = _BookLock()
                self._locks[(book_id, user_id)] = lock
            return lock

    def _load_required(self, book_id: str, user_id: str) -> WorkflowState:
        state = self.store.load(book_id, user_id)
        if state is None:
            raise NotFoundError(book_id)
        return state

    def _commit(self, action: WorkflowAction, state: WorkflowState,
                expected_version: Optional[int]) -> WorkflowState:
        saved = self.store.save(state, expected_version)
        self.sink.emit(action.value, saved.to_document())
        return saved

    # ---- Actions ----

    def initialize(
        self,
        user_id: str,
        book_id: Optional[str] = None,
        book_title: Optional[str] = None,
        book_concept: Optional[str] = None,
        target_age: Optional[str] = None,
        is_picture_book: Optional[bool] = None,
    ) -> dict:
        """Create a workflow, or return the stored one untouched."""
        book_id = book_id or str(uuid.uuid4())

        with self._lock_for(book_id, user_id):
            existing = self.store.load(book_id, user_id)
            if existing is not None:
                logger.info("Resuming workflow for book %s at step %d", book_id, existing.current_step)
                return {
                    "success": True,
                    "action": WorkflowAction.INITIALIZE.value,
                    "bookId": book_id,
                    "artifactCreated": False,
                    "resumed": True,
                    "currentStep": existing.current_step,
                    "nextAction": next_action_for(existing.current_step),
                    "message": (
                        f'Resumed existing book creation workflow for "{existing.book_title}". '
                        f"Currently on Step {existing.current_step}."
                    ),
                    "artifactState": existing.to_document(),
                }

            seed = parse_concept(book_concept, target_age) if book_concept else None
            if isinstance(is_picture_book, bool):
                picture_book = is_picture_book
            elif seed is not None:
                picture_book = seed.is_picture_book
            else:
                picture_book = None

            now = utcnow()
            state = WorkflowState(
                book_id=book_id,
                user_id=user_id,
                book_title=book_title or self.settings.default_book_title,
                book_concept=book_concept or "",
                target_age=target_age or self.settings.default_target_age,
                is_picture_book=picture_book,
                current_step=1,
                steps=build_skeleton_steps(seed.to_step_data(picture_book) if seed else None),
                created_at=now,
                updated_at=now,
            )

            stale = self.store.stored_version(book_id, user_id)
            if stale is not None:
                logger.warning("Replacing unreadable workflow row for book %s", book_id)
            saved = self._commit(WorkflowAction.INITIALIZE, state, stale or 0)

        return {
            "success": True,
            "action": WorkflowAction.INITIALIZE.value,
            "bookId": book_id,
            "artifactCreated": True,
            "resumed": False,
            "currentStep": 1,
            "nextAction": next_action_for(1),
            "message": (
                f'Book creation artifact initialized for "{saved.book_title}". '
                "Starting with Step 1: Story Planning."
            ),
            "artifactState": saved.to_document(),
        }

    def update_step(
        self,
        user_id: str,
        book_id: Optional[str] = None,
        step_number: Any = None,
        step_data: Optional[dict] = None,
        searched_memory: Optional[bool] = None,
    ) -> dict:
        """Merge a partial payload into a step and mark it completed."""
        book_id = _require_book_id(book_id)
        if step_number is None or step_data is None:
            raise ValidationError("stepNumber and stepData are required for update_step action")
        step_number = _require_step_number(step_number)
        payload, ignored = coerce_step_payload(step_number, step_data)
        if ignored:
            logger.info("Step %d update ignored unknown fields: %s", step_number, ", ".join(ignored))

        if searched_memory is False:
            logger.info("Step %d updated without a memory search", step_number)

        with self._lock_for(book_id, user_id):
            state = self._load_required(book_id, user_id)

            payload = self.spatial.enhance(step_number, payload)
            merged = self.merger.merge(state.step_data(step_number), payload, step_number)
            merged = self.enrichment.enrich(merged, book_id, step_number, user_id)

            check = self.validator.validate(step_number, merged, state.is_picture_book)
            if not check.ok:
                raise ImageRequirementError(step_number, check.missing, check.errors)

            updated = apply_step_update(
                state, step_number, merged, payload, utcnow(),
                default_title=self.settings.default_book_title,
                min_pages=self.settings.min_page_estimate,
                default_scene_count=self.settings.default_scene_count,
            )
            saved = self._commit(WorkflowAction.UPDATE_STEP, updated, state.version)

        message = f"Step {step_number} updated and ready for user approval."
        if searched_memory is False:
            message += f"\n\n{_MEMORY_TIP}"
        elif searched_memory is True:
            message += f"\n\n{_MEMORY_ACK}"

        result = {
            "success": True,
            "action": WorkflowAction.UPDATE_STEP.value,
            "bookId": book_id,
            "stepNumber": step_number,
            "stepUpdated": True,
            "awaitingUserApproval": True,
            "searchedMemory": searched_memory,
            "currentStep": saved.current_step,
            "nextAction": f"Ask the user to review Step {step_number}: {step_name(step_number)}",
            "message": message,
            "artifactState": saved.to_document(),
        }
        if ignored:
            result["ignoredFields"] = ignored
        return result

    def approve_step(
        self,
        user_id: str,
        book_id: Optional[str] = None,
        step_number: Any = None,
        approved: Optional[bool] = None,
        feedback: Optional[str] = None,
    ) -> dict:
        """Record the user's verdict on a step."""
        book_id = _require_book_id(book_id)
        step_number = _require_step_number(step_number)
        if not isinstance(approved, bool):
            raise ValidationError("approved (true/false) is required for approve_step action")

        with self._lock_for(book_id, user_id):
            state = self._load_required(book_id, user_id)
            updated, outcome = apply_approval(state, step_number, approved, feedback, utcnow())
            saved = self._commit(WorkflowAction.APPROVE_STEP, updated, state.version)

        return {
            "success": True,
            "action": WorkflowAction.APPROVE_STEP.value,
            "bookId": book_id,
            "stepNumber": step_number,
            **outcome,
            "artifactState": saved.to_document(),
        }

    def regenerate(self, user_id: str, book_id: Optional[str] = None, step_number: Any = None) -> dict:
        """Reopen a step for new content; its data is kept for the next merge."""
        book_id = _require_book_id(book_id)
        step_number = _require_step_number(step_number)

        with self._lock_for(book_id, user_id):
            state = self._load_required(book_id, user_id)
            updated = apply_regenerate(state, step_number, utcnow())
            saved = self._commit(WorkflowAction.REGENERATE, updated, state.version)

        return {
            "success": True,
            "action": WorkflowAction.REGENERATE.value,
            "bookId": book_id,
            "stepNumber": step_number,
            "regenerating": True,
            "nextAction": f"Regenerate content for Step {step_number}: {step_name(step_number)}",
            "message": f"Regenerating content for Step {step_number}...",
            "artifactState": saved.to_document(),
        }

    def finalize(self, user_id: str, book_id: Optional[str] = None) -> dict:
        """Close out the book: recompute the review and approve steps 1-5."""
        book_id = _require_book_id(book_id)

        with self._lock_for(book_id, user_id):
            state = self._load_required(book_id, user_id)
            updated = apply_finalize(
                state, utcnow(),
                min_pages=self.settings.min_page_estimate,
                default_scene_count=self.settings.default_scene_count,
            )
            saved = self._commit(WorkflowAction.FINALIZE, updated, state.version)

        return {
            "success": True,
            "action": WorkflowAction.FINALIZE.value,
            "bookId": book_id,
            "bookFinalized": True,
            "message": "Book creation completed successfully! The book is ready for publishing.",
            "artifactState": saved.to_document(),
        }

    # ---- Queries ----

    def progress(self, book_id: str, user_id: Optional[str] = None) -> dict:
        """Step counts and percentage for a book."""
        user_id = user_id or self.settings.default_user_id
        try:
            state = self.store.load(_require_book_id(book_id), user_id)
        except BookWorkflowError as e:
            return e.to_result()
        if state is None:
            return {"success": True, "hasWorkflow": False, "bookId": book_id, "steps": []}
        return {"success": True, "hasWorkflow": True, **compute_progress(state)}

    def search_existing_images(
        self,
        book_id: str,
        search_query: str,
        image_type: str | ImageSearchType = ImageSearchType.ANY,
        max_results: int = 10,
        user_id: Optional[str] = None,
    ) -> dict:
        """Find reusable images in the props table, then in semantic memory."""
        user_id = user_id or self.settings.default_user_id
        try:
            image_type = ImageSearchType(image_type)
        except ValueError:
            return ValidationError(
                f"Invalid imageType: {image_type}",
                {"allowed": [t.value for t in ImageSearchType]},
            ).to_result()

        results: list[dict] = []
        prop_type = None if image_type == ImageSearchType.ANY else PropType(image_type.value)

        try:
            props = self.store.db.search_props(
                user_id, book_id, search_query, prop_type=prop_type,
                limit=self.settings.props_search_limit,
            )
        except Exception as e:
            logger.warning("Props search failed for '%s': %s", search_query, e)
            props = []
        for prop in props:
            if prop.image_url:
                results.append({
                    "name": prop.name,
                    "imageUrl": prop.image_url,
                    "source": "database",
                    "description": prop.description or f"{prop.type.value}: {prop.name}",
                })

        for hit in self._search_memory(user_id, book_id, search_query, prop_type):
            meta = hit.get("metadata") or {}
            url = meta.get("image_url") or meta.get("portrait_url")
            name = (meta.get("character_name") or meta.get("environment_name")
                    or meta.get("scene_name") or meta.get("name") or "Unknown")
            if not url or any(r["name"] == name and r["imageUrl"] == url for r in results):
                continue
            if prop_type is not None and meta.get("kind") != prop_type.value:
                continue
            results.append({
                "name": name,
                "imageUrl": url,
                "source": "memory",
                "description": (hit.get("content") or "")[:100],
            })

        limited = results[:max(0, int(max_results))]
        logger.info("Image search '%s' (%s) found %d result(s)", search_query, image_type.value, len(limited))
        if limited:
            message = (
                f'Found {len(limited)} existing {image_type.value} images matching "{search_query}". '
                "Show these to the user and, if approved, add the imageUrl directly to the step data."
            )
        else:
            message = (
                f'No existing {image_type.value} images found matching "{search_query}". '
                "New images are needed if the user wants them."
            )
        return {
            "success": True,
            "searchQuery": search_query,
            "imageType": image_type.value,
            "resultsFound": len(limited),
            "images": limited,
            "message": message,
        }

    def _search_memory(self, user_id: str, book_id: str, query: str,
                       prop_type: Optional[PropType]) -> list[dict]:
        if self.memory is None:
            return []
        try:
            return self.memory.search_assets(
                user_id, f"{query} {book_id} image portrait", book_id=book_id,
                kind=prop_type.value if prop_type else None,
                top_k=self.settings.props_search_limit,
            )
        except Exception as e:
            logger.warning("Memory search failed for '%s': %s", query, e)
            return []

    # ---- Asset registry and chapter edits ----

    def record_prop(
        self,
        book_id: str,
        prop_type: str | PropType,
        name: str,
        image_url: str,
        description: str = "",
        book_title: str = "",
        user_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> BookProp:
        """Register a generated image so later steps can reuse it."""
        user_id = user_id or self.settings.default_user_id
        prop_type = PropType(prop_type)
        if not name or not name.strip():
            raise ValidationError("Prop name is required")

        memory_id = None
        if self.memory is not None:
            try:
                memory_id = self.memory.add_asset(
                    user_id, book_id, prop_type.value, name, description, image_url=image_url,
                )
            except Exception as e:
                logger.warning("Could not index %s '%s' in memory: %s", prop_type.value, name, e)

        prop = BookProp(
            book_id=book_id,
            user_id=user_id,
            book_title=book_title,
            type=prop_type,
            name=name,
            description=description,
            image_url=image_url,
            memory_id=memory_id,
            metadata=json.dumps(metadata, ensure_ascii=False) if metadata else None,
        )
        prop.id = self.store.db.create_prop(prop)
        logger.info("Recorded %s prop '%s' for book %s", prop_type.value, name, book_id)
        return prop

    def save_chapter_content(
        self,
        book_id: str,
        chapter_number: int,
        content: str,
        chapter_title: str = "",
        user_id: Optional[str] = None,
    ) -> None:
        """Store editor-owned chapter text; folded into step 5 on the next load."""
        user_id = user_id or self.settings.default_user_id
        state = self._load_required(_require_book_id(book_id), user_id)
        self.store.save_chapter(
            book_id, user_id, chapter_number, content,
            chapter_title=chapter_title, book_title=state.book_title,
        )
