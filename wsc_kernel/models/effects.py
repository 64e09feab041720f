"""Effect Result — feedback from applying one event to the entity store."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class EntityPatch(BaseModel):
    """Attribute-level diff for one entity."""

    entity_id: str
    before: Dict[str, Any] = {}
    after: Dict[str, Any] = {}
    created: bool = False


class EffectResult(BaseModel):
    event_id: Optional[str] = None
    event_type: Optional[str] = None
    handled: bool = False
    dry_run: bool = False
    modified: List[str] = []
    created: List[str] = []
    errors: List[str] = []
    patches: List[EntityPatch] = []

    def merge(self, other: "EffectResult") -> None:
        """Fold another result into this one (used for batch application)."""
        for entity_id in other.modified:
            if entity_id not in self.modified:
                self.modified.append(entity_id)
        for entity_id in other.created:
            if entity_id not in self.created:
                self.created.append(entity_id)
        self.errors.extend(other.errors)
        self.patches.extend(other.patches)
        self.handled = self.handled or other.handled
