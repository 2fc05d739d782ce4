"""Enumerations for book workflow status tracking."""

from enum import Enum


class StepStatus(str, Enum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    APPROVED = "approved"
    NEEDS_REVISION = "needs_revision"


class WorkflowAction(str, Enum):
    INITIALIZE = "initialize"
    UPDATE_STEP = "update_step"
    APPROVE_STEP = "approve_step"
    REGENERATE = "regenerate"
    FINALIZE = "finalize"


class PropType(str, Enum):
    CHARACTER = "character"
    ENVIRONMENT = "environment"
    SCENE = "scene"


class ImageSearchType(str, Enum):
    CHARACTER = "character"
    ENVIRONMENT = "environment"
    SCENE = "scene"
    ANY = "any"


class BookStep(int, Enum):
    STORY_PLANNING = 1
    CHARACTER_CREATION = 2
    CHAPTER_WRITING = 3
    ENVIRONMENT_DESIGN = 4
    FINAL_CHAPTER_CONTENT = 5
    FINAL_REVIEW = 6
