"""Entity — a typed node in the world graph."""

from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, ConfigDict, Field, field_serializer


class EntityType(str, Enum):
    POLITY = "polity"
    REGION = "region"
    PRESENCE = "presence"
    FORCE = "force"
    LOCALE = "locale"
    FEATURE = "feature"
    LINK = "link"
    SITE = "site"
    AGENT = "agent"
    HOLDING = "holding"


# Attributes constrained to [0, 1]
NORMALIZED_FIELDS = (
    "influence",
    "strength",
    "security",
    "prosperity",
    "unrest",
    "hazard",
)

# Attributes each type must carry
REQUIRED_ATTRS: Dict[EntityType, List[str]] = {
    EntityType.PRESENCE: ["influence"],
    EntityType.FORCE: ["strength"],
}


class EntityAttrs(BaseModel):
    """
    Known normalized fields plus an open extension map.

    The proposer layer adds ad hoc keys; those round-trip untouched in
    ``__pydantic_extra__``. Range checks on the known subset run on
    construction and on every assignment.
    """

    model_config = ConfigDict(extra="allow", validate_assignment=True)

    influence: Optional[float] = Field(default=None, ge=0, le=1)
    strength: Optional[float] = Field(default=None, ge=0, le=1)
    security: Optional[float] = Field(default=None, ge=0, le=1)
    prosperity: Optional[float] = Field(default=None, ge=0, le=1)
    unrest: Optional[float] = Field(default=None, ge=0, le=1)
    hazard: Optional[float] = Field(default=None, ge=0, le=1)

    def get(self, key: str, default: Any = None) -> Any:
        if key in type(self).model_fields:
            value = getattr(self, key)
            return default if value is None else value
        return (self.__pydantic_extra__ or {}).get(key, default)

    def set(self, key: str, value: Any) -> None:
        setattr(self, key, value)

    def has(self, key: str) -> bool:
        return self.get(key) is not None

    def keys(self) -> List[str]:
        return list(self.to_dict().keys())

    def to_dict(self) -> Dict[str, Any]:
        known = {
            name: getattr(self, name)
            for name in type(self).model_fields
            if getattr(self, name) is not None
        }
        return {**known, **(self.__pydantic_extra__ or {})}


class Entity(BaseModel):
    """A schema-validated world entity. ``ai`` is opaque and never interpreted."""

    id: str
    type: EntityType
    name: str
    tags: Set[str] = set()
    attrs: EntityAttrs = Field(default_factory=EntityAttrs)
    ai: Optional[Dict[str, Any]] = None

    @property
    def slug(self) -> str:
        return self.id.split(".", 1)[1] if "." in self.id else ""

    @field_serializer("tags")
    def _serialize_tags(self, tags: Set[str]) -> List[str]:
        return sorted(tags)

    @field_serializer("attrs")
    def _serialize_attrs(self, attrs: EntityAttrs) -> Dict[str, Any]:
        return attrs.to_dict()

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the external entity record shape."""
        record = self.model_dump(mode="json")
        if record.get("ai") is None:
            record.pop("ai", None)
        return record
