"""Picture-book image requirement checks for steps 2, 4 and 5."""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class ImageValidationResult:
    ok: bool = True
    missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


class ImageRequirementValidator:
    """Checks that every entity of an image-bearing step carries an image URL."""

    def validate(self, step_number: int, payload: Optional[dict[str, Any]],
                 is_picture_book: Optional[bool]) -> ImageValidationResult:
        if not is_picture_book or not payload:
            return ImageValidationResult()

        missing: list[str] = []
        errors: list[str] = []

        if step_number == 2:
            for character in _dicts(payload.get("characters")):
                if not character.get("imageUrl") and not character.get("portraitUrl"):
                    name = character.get("name")
                    errors.append(f'Character "{name}" missing imageUrl')
                    missing.append(f"Character portrait for {name}")
        elif step_number == 4:
            for environment in _dicts(payload.get("environments")):
                if not environment.get("imageUrl"):
                    name = environment.get("name")
                    errors.append(f'Environment "{name}" missing imageUrl')
                    missing.append(f"Environment image for {name}")
        elif step_number == 5:
            for chapter in _dicts(payload.get("chapters")):
                for scene in _dicts(chapter.get("scenes")):
                    if not scene.get("imageUrl"):
                        title = scene.get("title")
                        number = scene.get("sceneNumber")
                        errors.append(f'Scene "{title or number or "untitled"}" missing imageUrl')
                        missing.append(f"Scene image for {title or f'Scene {number}'}")

        if errors:
            logger.info("Step %d image check failed: %d missing", step_number, len(errors))
        return ImageValidationResult(ok=not errors, missing=missing, errors=errors)


def _dicts(value: Any) -> list[dict]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]
