"""Write buffer over the entity store, so a handler's patch can be discarded (dry run)."""

from typing import Dict, List, Optional

from wsc_kernel.entities.store import EntityStore
from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import SchemaError
from wsc_kernel.models.effects import EntityPatch
from wsc_kernel.models.entity import Entity


class StagedStore:
    """Read-through view of an EntityStore that buffers ``put`` calls until ``commit``."""

    def __init__(self, base: EntityStore):
        self._base = base
        self._staged: Dict[str, Entity] = {}
        self._order: List[str] = []

    def get(self, entity_id: str) -> Optional[Entity]:
        if entity_id in self._staged:
            return self._staged[entity_id].model_copy(deep=True)
        return self._base.get(entity_id)

    def has(self, entity_id: str) -> bool:
        return entity_id in self._staged or self._base.has(entity_id)

    def put(self, entity: Entity) -> None:
        report = validate_entity(entity.to_record())
        if not report.valid:
            raise SchemaError(f"Entity {entity.id} failed validation", issues=report.errors)
        if entity.id not in self._staged:
            self._order.append(entity.id)
        self._staged[entity.id] = report.entity

    @property
    def created(self) -> List[str]:
        return [i for i in self._order if not self._base.has(i)]

    def patches(self) -> List[EntityPatch]:
        """Attribute-level diffs of staged entities against the base store."""
        patches = []
        for entity_id in self._order:
            before_entity = self._base.get(entity_id)
            before = before_entity.attrs.to_dict() if before_entity else {}
            after = self._staged[entity_id].attrs.to_dict()
            changed = sorted(k for k in set(before) | set(after) if before.get(k) != after.get(k))
            patches.append(EntityPatch(
                entity_id=entity_id,
                before={k: before[k] for k in changed if k in before},
                after={k: after[k] for k in changed if k in after},
                created=before_entity is None,
            ))
        return patches

    def commit(self) -> None:
        for entity_id in self._order:
            self._base.put(self._staged[entity_id])
        self._staged.clear()
        self._order.clear()
