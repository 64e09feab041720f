"""
Entity Store — the canonical world state.

Updated by: Effect Engine (and world creation from scenarios)
Queried by: Condition Evaluator, Location Resolver, API

``get`` and ``put`` are the only mutation primitives; there is no delete.
Entities leave play through a terminal status attribute instead.
"""

import json
import logging
from typing import Any, Dict, Iterable, List, Optional

from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import SchemaError
from wsc_kernel.models.entity import Entity

logger = logging.getLogger(__name__)


class EntityStore:
    """
    In-memory entity store. Persistence is handled by the world context,
    which serializes ``snapshot()``.
    """

    def __init__(self):
        self._entities: Dict[str, Entity] = {}

    @classmethod
    def from_records(cls, records: Iterable[Dict[str, Any]]) -> "EntityStore":
        """Build a store from raw records, rejecting the whole batch on any error."""
        store = cls()
        issues: List[str] = []
        for raw in records:
            report = validate_entity(raw)
            if not report.valid:
                issues.extend(f"{report.entity_id}: {e}" for e in report.errors)
                continue
            store._entities[report.entity.id] = report.entity
        if issues:
            raise SchemaError(f"{len(issues)} invalid entity record(s)", issues=issues)
        return store

    def copy(self) -> "EntityStore":
        """Independent copy, used for dry-run batch application."""
        clone = EntityStore()
        clone._entities = {k: v.model_copy(deep=True) for k, v in self._entities.items()}
        return clone

    def get(self, entity_id: str) -> Optional[Entity]:
        """Get a copy of an entity. Changes take effect only through ``put``."""
        entity = self._entities.get(entity_id)
        return entity.model_copy(deep=True) if entity else None

    def put(self, entity: Entity) -> Entity:
        """Validate and store an entity. Raises SchemaError; the store is untouched on failure."""
        report = validate_entity(entity.to_record())
        if not report.valid:
            raise SchemaError(f"Entity {entity.id} failed validation", issues=report.errors)
        for warning in report.warnings:
            logger.warning("%s: %s", entity.id, warning)
        self._entities[entity.id] = report.entity
        return report.entity.model_copy(deep=True)

    def has(self, entity_id: str) -> bool:
        return entity_id in self._entities

    def ids(self) -> List[str]:
        return sorted(self._entities)

    def all(self) -> List[Entity]:
        return [self._entities[i].model_copy(deep=True) for i in self.ids()]

    def query(
        self, entity_type: Optional[str] = None, tag: Optional[str] = None
    ) -> List[Entity]:
        """Entities matching every given filter, ordered by id."""
        results = []
        for entity_id in self.ids():
            entity = self._entities[entity_id]
            if entity_type and entity.type.value != entity_type:
                continue
            if tag and tag not in entity.tags:
                continue
            results.append(entity.model_copy(deep=True))
        return results

    def count(self) -> int:
        return len(self._entities)

    def snapshot(self) -> Dict[str, Dict[str, Any]]:
        """Serializable snapshot keyed by id, in id order."""
        return {i: self._entities[i].to_record() for i in self.ids()}

    def snapshot_json(self) -> str:
        """Canonical JSON form; byte-identical for identical states."""
        return json.dumps(self.snapshot(), sort_keys=True, separators=(",", ":"))
