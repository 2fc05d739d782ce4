"""Workflow document model: book metadata plus the six ordered steps."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from models.enums import BookStep, StepStatus

SCHEMA_VERSION = 1
TOTAL_STEPS = len(BookStep)

# (number, name, description) for every step in the fixed default order
BOOK_CREATION_STEPS: tuple[tuple[int, str, str], ...] = (
    (1, "Story Planning", "Define story concept, themes, and structure"),
    (2, "Character Creation", "Create main characters with portraits"),
    (3, "Chapter Writing", "Write chapter content and scene breakdown"),
    (4, "Environment Design", "Create environment master plates"),
    (5, "Final Chapter Content", "Complete chapters with fully written scenes"),
    (6, "Final Review", "Review and finalize the complete book"),
)


def step_name(step_number: int) -> str:
    for number, name, _ in BOOK_CREATION_STEPS:
        if number == step_number:
            return name
    return f"Step {step_number}"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Step(BaseModel):
    """One stage of book creation with its status and stage-specific payload."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    step_number: int = Field(..., ge=1, le=TOTAL_STEPS)
    step_name: str
    status: StepStatus = StepStatus.PENDING
    data: Optional[dict[str, Any]] = None
    feedback: Optional[str] = None

    @property
    def has_data(self) -> bool:
        return bool(self.data)


class WorkflowState(BaseModel):
    """The persisted workflow document for a single book."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    book_id: str
    user_id: str
    book_title: str = ""
    book_concept: str = ""
    target_age: str = ""
    is_picture_book: Optional[bool] = None
    current_step: int = Field(default=1, ge=1, le=TOTAL_STEPS)
    steps: list[Step]
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    version: int = 0
    schema_version: int = SCHEMA_VERSION

    @field_validator("steps")
    @classmethod
    def validate_steps(cls, v: list[Step]) -> list[Step]:
        numbers = [s.step_number for s in v]
        if sorted(numbers) != list(range(1, TOTAL_STEPS + 1)):
            raise ValueError(f"steps must contain each step 1..{TOTAL_STEPS} exactly once, got {numbers}")
        return sorted(v, key=lambda s: s.step_number)

    @model_validator(mode="after")
    def validate_schema_version(self) -> "WorkflowState":
        if self.schema_version > SCHEMA_VERSION:
            raise ValueError(
                f"schema_version {self.schema_version} is newer than supported ({SCHEMA_VERSION})"
            )
        return self

    def get_step(self, step_number: int) -> Step:
        return self.steps[step_number - 1]

    def step_data(self, step_number: int) -> dict[str, Any]:
        return self.get_step(step_number).data or {}

    def to_document(self) -> dict[str, Any]:
        """Serialize to the camelCase JSON document shared with the presentation layer."""
        return self.model_dump(mode="json", by_alias=True)


def build_skeleton_steps(seed_data: Optional[dict[str, Any]] = None) -> list[Step]:
    """Return the six fresh steps: step 1 in progress, the rest pending."""
    return [
        Step(
            step_number=number,
            step_name=name,
            status=StepStatus.IN_PROGRESS if number == 1 else StepStatus.PENDING,
            data=seed_data if number == 1 and seed_data else None,
        )
        for number, name, _ in BOOK_CREATION_STEPS
    ]
