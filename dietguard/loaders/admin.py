"""Admin writes to the override table.

Every successful write invalidates the override cache so the next
evaluation sees it.
"""

import logging
from typing import Any, Dict, List, Optional

from dietguard.data_layer.exceptions import (
    DuplicateOverrideError,
    GuardrailsError,
    GuardrailsErrorCode,
)
from dietguard.data_layer.records import OverrideRecord, parse_records
from dietguard.loaders.cache import TableCache
from dietguard.loaders.store import OVERRIDES, RuleStore


logger = logging.getLogger(__name__)


class OverrideAdmin:
    """Create, update, delete and toggle false-positive overrides."""

    def __init__(self, store: RuleStore, cache: TableCache):
        self.store = store
        self.cache = cache

    def list_overrides(self) -> List[OverrideRecord]:
        records = parse_records(OverrideRecord, self.store.rows(OVERRIDES), OVERRIDES)
        return sorted(records, key=lambda r: (r.display_order, r.forbidden_term))

    def upsert(
        self,
        forbidden_term: str,
        exclude_if_contains: List[str],
        description: Optional[str] = None,
        is_active: bool = True,
        display_order: int = 0,
        override_id: Optional[str] = None,
    ) -> OverrideRecord:
        """Create an override, or update the one with `override_id`.

        Terms and patterns are stored lowercased.

        Raises:
            RecordValidationError: If the term or patterns are empty
            DuplicateOverrideError: If another override already owns the term
        """
        row: Dict[str, Any] = {
            "id": override_id or "new",
            "forbidden_term": forbidden_term,
            "exclude_if_contains": exclude_if_contains,
            "description": description,
            "is_active": is_active,
            "display_order": display_order,
        }
        record = parse_records(OverrideRecord, [row], OVERRIDES)[0]

        for existing in self.list_overrides():
            if existing.forbidden_term == record.forbidden_term and existing.id != override_id:
                raise DuplicateOverrideError(record.forbidden_term, existing.id)

        stored = record.model_dump()
        if override_id is None:
            del stored["id"]
        saved = self.store.upsert(OVERRIDES, stored)
        self.cache.invalidate()
        logger.info(f"Saved override '{record.forbidden_term}' ({saved['id']})")
        return OverrideRecord.model_validate(saved)

    def delete(self, override_id: str) -> None:
        if not self.store.delete(OVERRIDES, override_id):
            raise self._not_found(override_id)
        self.cache.invalidate()
        logger.info(f"Deleted override {override_id}")

    def set_active(self, override_id: str, is_active: bool) -> OverrideRecord:
        for record in self.list_overrides():
            if record.id == override_id:
                saved = self.store.upsert(OVERRIDES, {**record.model_dump(), "is_active": is_active})
                self.cache.invalidate()
                return OverrideRecord.model_validate(saved)
        raise self._not_found(override_id)

    @staticmethod
    def _not_found(override_id: str) -> GuardrailsError:
        return GuardrailsError(
            code=GuardrailsErrorCode.NOT_FOUND,
            message=f"Override '{override_id}' not found",
            context={"override_id": override_id},
        )
