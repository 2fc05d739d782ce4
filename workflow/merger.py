"""Field-aware merge of partial step updates into accumulated step data."""

import copy
import logging
from typing import Any, Callable, Optional

logger = logging.getLogger(__name__)

MergeFn = Callable[[list, list], list]


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def overlay_entity(existing: dict, incoming: dict) -> dict:
    """Update an entity field by field, never blanking a populated field."""
    merged = dict(existing)
    for key, value in incoming.items():
        if _is_blank(value):
            continue
        merged[key] = copy.deepcopy(value)
    return merged


def merge_by_key(key: str, sort: bool = False) -> MergeFn:
    """Build a collection strategy that matches entries on ``key``.

    Matched entries are overlaid, unmatched incoming entries are appended, and
    incoming entries without the key are dropped.
    """

    def _merge(existing: list, incoming: list) -> list:
        order: list[Any] = []
        by_key: dict[Any, dict] = {}
        for item in existing:
            if isinstance(item, dict) and not _is_blank(item.get(key)):
                if item[key] not in by_key:
                    order.append(item[key])
                by_key[item[key]] = copy.deepcopy(item)

        for item in incoming:
            if not isinstance(item, dict) or _is_blank(item.get(key)):
                logger.debug("Skipping %s entry without '%s'", type(item).__name__, key)
                continue
            k = item[key]
            if k in by_key:
                by_key[k] = overlay_entity(by_key[k], item)
            else:
                order.append(k)
                by_key[k] = copy.deepcopy(item)

        result = [by_key[k] for k in order]
        if sort:
            result.sort(key=lambda e: e[key])
        return result

    return _merge


# Collections merged by business key; anything not listed falls back to replace/recurse
DEFAULT_STRATEGIES: dict[str, MergeFn] = {
    "characters": merge_by_key("name"),
    "environments": merge_by_key("name"),
    "chapters": merge_by_key("chapterNumber", sort=True),
}


class StepMerger:
    """Merges incoming step payloads without erasing existing content.

    Rules per field:
        - incoming None or blank string: keep existing
        - both lists with a registered strategy: strategy decides
        - both dicts: recurse
        - otherwise: incoming replaces existing
    """

    def __init__(self, strategies: Optional[dict[str, MergeFn]] = None):
        self.strategies = dict(DEFAULT_STRATEGIES if strategies is None else strategies)

    def merge(self, existing: Optional[dict], incoming: Optional[dict],
              step_number: Optional[int] = None) -> dict:
        existing = existing or {}
        incoming = incoming or {}
        merged = self._merge_dicts(existing, incoming)
        logger.debug(
            "Merged step %s: %d existing keys, %d incoming keys -> %d keys",
            step_number, len(existing), len(incoming), len(merged),
        )
        return merged

    def _merge_dicts(self, existing: dict, incoming: dict) -> dict:
        result = copy.deepcopy(existing)
        for key, new_value in incoming.items():
            if _is_blank(new_value):
                continue
            old_value = result.get(key)
            strategy = self.strategies.get(key)
            if strategy and isinstance(new_value, list) and isinstance(old_value, (list, type(None))):
                result[key] = strategy(old_value or [], new_value)
            elif isinstance(old_value, dict) and isinstance(new_value, dict):
                result[key] = self._merge_dicts(old_value, new_value)
            else:
                result[key] = copy.deepcopy(new_value)
        return result
