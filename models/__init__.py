"""Models package: workflow document, step payloads, database, and enums."""

from models.database import Database
from models.book import BookRow, BookProp, WORKFLOW_SLOT
from models.workflow import (
    BOOK_CREATION_STEPS,
    SCHEMA_VERSION,
    TOTAL_STEPS,
    Step,
    WorkflowState,
    build_skeleton_steps,
    step_name,
)
from models.steps import STEP_PAYLOAD_SCHEMAS, coerce_step_payload
from models.enums import (
    StepStatus,
    WorkflowAction,
    PropType,
    ImageSearchType,
    BookStep,
)

__all__ = [
    "Database",
    "BookRow",
    "BookProp",
    "WORKFLOW_SLOT",
    "BOOK_CREATION_STEPS",
    "SCHEMA_VERSION",
    "TOTAL_STEPS",
    "Step",
    "WorkflowState",
    "build_skeleton_steps",
    "step_name",
    "STEP_PAYLOAD_SCHEMAS",
    "coerce_step_payload",
    "StepStatus",
    "WorkflowAction",
    "PropType",
    "ImageSearchType",
    "BookStep",
]
