"""Configuration package: settings, logging, and exceptions."""

from config.exceptions import (
    BookWorkflowError,
    ValidationError,
    InvalidConfigError,
    NotFoundError,
    ImageRequirementError,
    PersistenceError,
    DeserializationError,
    ConcurrencyError,
)
from config.logging_config import setup_logging
from config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "setup_logging",
    "BookWorkflowError",
    "ValidationError",
    "InvalidConfigError",
    "NotFoundError",
    "ImageRequirementError",
    "PersistenceError",
    "DeserializationError",
    "ConcurrencyError",
]
