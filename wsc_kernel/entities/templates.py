"""Default attribute templates for newly created entities."""

from typing import Any, Dict, Iterable, Optional

from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import SchemaError
from wsc_kernel.models.entity import Entity, EntityType

TEMPLATES: Dict[EntityType, Dict[str, Any]] = {
    EntityType.POLITY: {"prosperity": 0.5, "security": 0.5, "stance": "neutral"},
    EntityType.REGION: {"security": 0.5, "prosperity": 0.5, "unrest": 0.0, "hazard": 0.0},
    EntityType.PRESENCE: {"influence": 0.0, "states_active": []},
    EntityType.FORCE: {"strength": 1.0, "status": "active"},
    EntityType.LOCALE: {"security": 0.5, "prosperity": 0.5, "unrest": 0.0, "infrastructure": {}},
    EntityType.FEATURE: {"hazard": 0.0},
    EntityType.LINK: {},
    EntityType.SITE: {"infrastructure": {}},
    EntityType.AGENT: {"status": "alive", "salience": 0.5},
    EntityType.HOLDING: {},
}


def default_name(slug: str) -> str:
    """``captain_reva`` -> ``Captain Reva``."""
    last = slug.rsplit(".", 1)[-1]
    return " ".join(part.capitalize() for part in last.replace("-", "_").split("_") if part)


def create_from_template(
    entity_type: str,
    slug: str,
    name: Optional[str] = None,
    tags: Iterable[str] = (),
    attrs: Optional[Dict[str, Any]] = None,
) -> Entity:
    """Build a new entity from the type's template. Raises SchemaError if invalid."""
    try:
        kind = EntityType(entity_type)
    except ValueError:
        raise SchemaError(
            f"Invalid entity type: {entity_type!r}",
            issues=[f"type must be one of {[t.value for t in EntityType]}"],
        )

    record = {
        "id": f"{kind.value}.{slug}",
        "type": kind.value,
        "name": name or default_name(slug),
        "tags": sorted(set(tags)),
        "attrs": {**TEMPLATES[kind], **(attrs or {})},
    }
    report = validate_entity(record)
    if not report.valid:
        raise SchemaError(f"Template for {record['id']} is invalid", issues=report.errors)
    return report.entity
