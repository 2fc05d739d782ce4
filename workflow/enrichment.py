"""Fill missing image URLs on characters and environments from stored assets."""

import copy
import logging
from typing import Any, Optional

from models.enums import PropType

logger = logging.getLogger(__name__)


class ImageEnrichment:
    """Looks up previously generated images for step 2 and step 4 entities.

    The props table is consulted first and semantic memory second; the first
    hit wins. Lookups are best-effort: a failing lookup leaves that entity
    untouched and the rest of the payload is still enriched.
    """

    def __init__(self, db=None, memory=None, memory_search_limit: int = 5):
        self.db = db
        self.memory = memory
        self.memory_search_limit = memory_search_limit

    def enrich(self, payload: dict[str, Any], book_id: str, step_number: int,
               user_id: str) -> dict[str, Any]:
        if step_number == 2 and isinstance(payload.get("characters"), list):
            result = copy.deepcopy(payload)
            result["characters"] = [
                self._enrich_character(c, book_id, user_id) if isinstance(c, dict) else c
                for c in result["characters"]
            ]
            return result
        if step_number == 4 and isinstance(payload.get("environments"), list):
            result = copy.deepcopy(payload)
            result["environments"] = [
                self._enrich_environment(e, book_id, user_id) if isinstance(e, dict) else e
                for e in result["environments"]
            ]
            return result
        return payload

    # ---- Characters ----

    def _enrich_character(self, character: dict, book_id: str, user_id: str) -> dict:
        if character.get("imageUrl") or character.get("portraitUrl"):
            return character
        name = character.get("name") or character.get("characterName")
        if not name:
            return character

        url = self._lookup(PropType.CHARACTER, name, book_id, user_id)
        if url:
            character["portraitUrl"] = url
            character["imageUrl"] = url
        return character

    # ---- Environments ----

    def _enrich_environment(self, environment: dict, book_id: str, user_id: str) -> dict:
        reference = environment.get("existingReference")
        if reference:
            environment["imageUrl"] = reference
            environment["environmentUrl"] = reference
            return environment
        if environment.get("imageUrl"):
            return environment
        name = environment.get("name") or environment.get("environmentName")
        if not name:
            return environment

        url = self._lookup(PropType.ENVIRONMENT, name, book_id, user_id)
        if url:
            environment["imageUrl"] = url
            environment["environmentUrl"] = url
        return environment

    # ---- Lookups ----

    def _lookup(self, prop_type: PropType, name: str, book_id: str, user_id: str) -> Optional[str]:
        url = self._lookup_prop(prop_type, name, book_id, user_id)
        if url:
            logger.info("Found %s image for '%s' in props", prop_type.value, name)
            return url
        url = self._lookup_memory(prop_type, name, book_id, user_id)
        if url:
            logger.info("Found %s image for '%s' in memory", prop_type.value, name)
            return url
        logger.debug("No stored %s image for '%s'", prop_type.value, name)
        return None

    def _lookup_prop(self, prop_type: PropType, name: str, book_id: str,
                     user_id: str) -> Optional[str]:
        if self.db is None:
            return None
        try:
            prop = self.db.find_prop(user_id, book_id, prop_type, name)
        except Exception as e:
            logger.warning("Props lookup failed for %s '%s': %s", prop_type.value, name, e)
            return None
        return prop.image_url if prop else None

    def _lookup_memory(self, prop_type: PropType, name: str, book_id: str,
                       user_id: str) -> Optional[str]:
        if self.memory is None:
            return None
        query = (
            f"character portrait {name} book {book_id}"
            if prop_type == PropType.CHARACTER
            else f"environment {name} book {book_id}"
        )
        name_key = f"{prop_type.value}_name"
        try:
            hits = self.memory.search_assets(
                user_id, query, book_id=book_id, kind=prop_type.value, name=name,
                top_k=self.memory_search_limit,
            )
        except Exception as e:
            logger.warning("Memory lookup failed for %s '%s': %s", prop_type.value, name, e)
            return None

        for hit in hits:
            meta = hit.get("metadata") or {}
            if meta.get(name_key) != name or meta.get("book_id") != book_id:
                continue
            if meta.get("kind") != prop_type.value:
                continue
            url = meta.get("image_url") or meta.get("portrait_url")
            if url:
                return url
        return None
