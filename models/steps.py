"""Per-step payload schemas.

Step payloads form a tagged union keyed by step number. Each incoming payload
is coerced through the schema for its step: known fields are type-checked,
unknown top-level fields are dropped and reported back to the caller. Entity
records (characters, environments, chapters, scenes) keep extra descriptive
keys because agents routinely attach free-form attributes to them.
"""

from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from config.exceptions import ValidationError


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _Entity(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")


# ---- Entities ----

class CharacterOutline(_Entity):
    name: str
    age: Optional[Union[int, str]] = None
    role: Optional[str] = None
    physical_description: Optional[str] = None
    notes: Optional[str] = None


class CharacterProfile(_Entity):
    name: str
    age: Optional[Union[int, str]] = None
    role: Optional[str] = None
    physical_description: Optional[str] = None
    personality: Optional[str] = None
    emotional_arc: Optional[str] = None
    movement_style: Optional[str] = None
    strengths: Optional[str] = None
    weaknesses: Optional[str] = None
    sample_lines: Optional[list[str]] = None
    visual_notes: Optional[str] = None
    importance: Optional[str] = None
    image_url: Optional[str] = None
    portrait_url: Optional[str] = None
    art_style: Optional[str] = None
    notes: Optional[str] = None


class Scene(_Entity):
    scene_number: Optional[int] = None
    title: Optional[str] = None
    text: Optional[str] = None
    characters: Optional[list[str]] = None
    environment: Optional[str] = None
    illustration_notes: Optional[str] = None
    image_url: Optional[str] = None


class Chapter(_Entity):
    chapter_number: int
    title: Optional[str] = None
    scenes: Optional[list[Scene]] = None
    summary: Optional[str] = None
    approx_words: Optional[int] = None
    content: Optional[str] = None


class Environment(_Entity):
    name: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    art_style: Optional[str] = None
    existing_reference: Optional[str] = None


# ---- Step payloads ----

class StoryPlanningData(_Payload):
    book_title: Optional[str] = None
    title_options: Optional[list[str]] = None
    premise: Optional[str] = None
    themes: Optional[list[str]] = None
    narrative_voice: Optional[str] = None
    style_bible: Optional[str] = None
    target_age: Optional[str] = None
    is_picture_book: Optional[bool] = None
    characters: Optional[list[CharacterOutline]] = None
    proposed_structure: Optional[list[dict[str, Any]]] = None
    conversation_context: Optional[str] = None
    content: Optional[str] = None


class CharacterCreationData(_Payload):
    characters: Optional[list[CharacterProfile]] = None
    questions: Optional[list[str]] = None
    conversation_context: Optional[str] = None


class ChapterWritingData(_Payload):
    chapters: Optional[list[Chapter]] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    conversation_context: Optional[str] = None


class EnvironmentDesignData(_Payload):
    environments: Optional[list[Environment]] = None
    illustrator_style_guide: Optional[str] = None
    conversation_context: Optional[str] = None


class FinalChapterContentData(_Payload):
    chapters: Optional[list[Chapter]] = None
    title: Optional[str] = None
    summary: Optional[str] = None
    conversation_context: Optional[str] = None
    # Older agents send flat scene lists instead of chapters
    scenes: Optional[list[dict[str, Any]]] = None
    scenes_to_compose: Optional[list[dict[str, Any]]] = None
    expanded_chapters: Optional[list[dict[str, Any]]] = None


class FinalReviewData(_Payload):
    book_preview: Optional[dict[str, Any]] = None
    summary: Optional[str] = None
    download_url: Optional[str] = None
    conversation_context: Optional[str] = None
    status: Optional[str] = None
    book_title: Optional[str] = None
    total_steps: Optional[int] = None
    completed_steps: Optional[int] = None
    book_summary: Optional[str] = None
    book_concept: Optional[str] = None
    total_characters: Optional[int] = None
    total_environments: Optional[int] = None
    total_scenes: Optional[int] = None
    total_pages: Optional[int] = None
    finalized_at: Optional[str] = None


STEP_PAYLOAD_SCHEMAS: dict[int, type[_Payload]] = {
    1: StoryPlanningData,
    2: CharacterCreationData,
    3: ChapterWritingData,
    4: EnvironmentDesignData,
    5: FinalChapterContentData,
    6: FinalReviewData,
}


def _known_keys(schema: type[BaseModel]) -> set[str]:
    keys = set()
    for name, info in schema.model_fields.items():
        keys.add(name)
        if info.alias:
            keys.add(info.alias)
    return keys


def coerce_step_payload(step_number: int, raw: dict[str, Any]) -> tuple[dict[str, Any], list[str]]:
    """Validate ``raw`` against the schema for ``step_number``.

    Returns:
        (payload, ignored_fields) where payload is a camelCase dict holding only
        the fields the caller actually sent (explicit nulls included, so the
        merger can skip them) and ignored_fields lists dropped top-level keys.

    Raises:
        ValidationError: If the step number is unknown or the payload does not
            match the step schema.
    """
    schema = STEP_PAYLOAD_SCHEMAS.get(step_number)
    if schema is None:
        raise ValidationError(f"Invalid step number: {step_number}. Must be 1-6.", {"step_number": step_number})
    if not isinstance(raw, dict):
        raise ValidationError("stepData must be an object", {"step_number": step_number})

    ignored = sorted(k for k in raw if k not in _known_keys(schema))
    try:
        model = schema.model_validate(raw)
    except SchemaError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            f"stepData does not match the Step {step_number} schema",
            {"step_number": step_number, "problems": problems},
        ) from e
    return model.model_dump(by_alias=True, exclude_unset=True), ignored
