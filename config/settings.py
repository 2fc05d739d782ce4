"""Configuration settings loaded from .env file."""

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings, loaded from .env file.

    The engine itself is stateless between calls; everything here is either a
    storage location or a default applied when the agent omits a field.
    """

    # Storage
    sqlite_db_path: Path = Path("./data/books.db")
    chroma_persist_dir: Path = Path("./data/chroma")

    # Identity used by the CLI when no user is given
    default_user_id: str = "local-user"

    # Workflow defaults
    default_book_title: str = "Untitled Book"
    default_target_age: str = "3-8 years"

    # Final review estimates
    min_page_estimate: int = 12
    default_scene_count: int = 6

    # Image lookup
    memory_search_limit: int = 5
    props_search_limit: int = 10
    memory_enabled: bool = True

    # Logging
    log_dir: Path = Path("./data/logs")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
    }

    @field_validator("min_page_estimate", "default_scene_count")
    @classmethod
    def validate_estimates(cls, v: int) -> int:
        if v < 0:
            raise ValueError("Page and scene estimates must be non-negative")
        return v

    @field_validator("memory_search_limit", "props_search_limit")
    @classmethod
    def validate_search_limits(cls, v: int) -> int:
        if v < 1:
            raise ValueError("search limits must be >= 1")
        return v

    @field_validator("default_user_id")
    @classmethod
    def validate_user_id(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("default_user_id must not be blank")
        return v

    @field_validator("sqlite_db_path", "chroma_persist_dir", "log_dir")
    @classmethod
    def ensure_parent_dirs(cls, v: Path) -> Path:
        v.parent.mkdir(parents=True, exist_ok=True)
        return v


_settings_instance: Settings | None = None


def get_settings() -> Settings:
    """Get cached settings instance."""
    global _settings_instance
    if _settings_instance is None:
        _settings_instance = Settings()
    return _settings_instance
