"""Custom exception hierarchy for the book-creation workflow engine."""

from typing import Optional


class BookWorkflowError(Exception):
    """Base exception for all workflow engine errors."""

    error_type = "workflow_error"

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({detail_str})"
        return self.message

    def to_result(self) -> dict:
        """Render the error as a structured action result."""
        result = {"success": False, "error": self.message, "errorType": self.error_type}
        if self.details:
            result["details"] = self.details
        return result


# ---- Input Errors ----

class ValidationError(BookWorkflowError):
    """Required action input missing or malformed."""

    error_type = "validation_error"


class InvalidConfigError(ValidationError):
    """Configuration value is invalid."""


# ---- Lookup Errors ----

class NotFoundError(BookWorkflowError):
    """No persisted workflow exists for the (book, user) pair."""

    error_type = "not_found"

    def __init__(self, book_id: str, message: str = ""):
        super().__init__(message or f"Workflow not found for book {book_id}", {"book_id": book_id})
        self.book_id = book_id


# ---- Picture Book Errors ----

class ImageRequirementError(BookWorkflowError):
    """A picture-book step was submitted without images on every entity."""

    error_type = "image_requirement"

    def __init__(self, step_number: int, missing: list[str], errors: Optional[list[str]] = None):
        self.step_number = step_number
        self.missing = list(missing)
        self.errors = list(errors or [])
        summary = ", ".join(self.errors or self.missing)
        super().__init__(
            f"Picture book image requirements not met for Step {step_number}: {summary}",
            {"step_number": step_number, "missing_count": len(self.missing)},
        )

    def to_result(self) -> dict:
        result = super().to_result()
        result["requiredImages"] = self.missing
        result["message"] = (
            "This is a picture book. Generate the required images first, "
            "then update the step data with the imageUrl fields."
        )
        return result


# ---- Storage Errors ----

class PersistenceError(BookWorkflowError):
    """Store read or write failed."""

    error_type = "persistence_error"


class DeserializationError(PersistenceError):
    """Persisted workflow document could not be decoded."""

    error_type = "deserialization_error"


class ConcurrencyError(PersistenceError):
    """Workflow document changed between load and save."""

    error_type = "concurrency_conflict"

    def __init__(self, book_id: str, expected_version: int, actual_version: Optional[int] = None):
        super().__init__(
            f"Workflow for book {book_id} was modified concurrently",
            {"book_id": book_id, "expected_version": expected_version, "actual_version": actual_version},
        )
        self.book_id = book_id
        self.expected_version = expected_version
        self.actual_version = actual_version
