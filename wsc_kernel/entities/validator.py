"""
Entity Validator — two-tier validation of raw entity records.

Structural tier: required fields, closed type set, numeric ranges, required
per-type attributes. Semantic tier: id prefix matches type; reference-shaped
fields are checked for the dotted ``type.slug`` shape and only produce
warnings, because cross-type references are not resolved at this layer.
"""

import re
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from wsc_kernel.models.entity import (
    NORMALIZED_FIELDS,
    REQUIRED_ATTRS,
    Entity,
    EntityType,
)

ID_PATTERN = re.compile(r"^([a-z]+)\.([A-Za-z0-9_\-]+(?:\.[A-Za-z0-9_\-]+)*)$")
REQUIRED_FIELDS = ("id", "type", "name")
REFERENCE_FIELDS = ("affiliation", "location")
ENTITY_TYPES = {t.value for t in EntityType}


class ValidationReport(BaseModel):
    """Result of validating one raw record."""

    entity_id: Optional[str] = None
    entity: Optional[Entity] = None
    errors: List[str] = []
    warnings: List[str] = []

    @property
    def valid(self) -> bool:
        return not self.errors and self.entity is not None


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_reference_key(key: str) -> bool:
    return key.endswith("_id") or key in REFERENCE_FIELDS


def _check_structure(raw: dict, errors: List[str]) -> None:
    for field in REQUIRED_FIELDS:
        if raw.get(field) in (None, ""):
            errors.append(f"Missing required field: {field}")

    entity_type = raw.get("type")
    if entity_type is not None and entity_type not in ENTITY_TYPES:
        errors.append(
            f"Invalid type {entity_type!r}; expected one of {sorted(ENTITY_TYPES)}"
        )

    tags = raw.get("tags", [])
    if not isinstance(tags, (list, set, tuple)) or not all(isinstance(t, str) for t in tags):
        errors.append("tags must be a list of strings")

    ai = raw.get("ai")
    if ai is not None and not isinstance(ai, dict):
        errors.append("ai must be an object when present")

    attrs = raw.get("attrs", {})
    if not isinstance(attrs, dict):
        errors.append("attrs must be an object")
        return

    for field in NORMALIZED_FIELDS:
        if field not in attrs or attrs[field] is None:
            continue
        value = attrs[field]
        if not _is_number(value):
            errors.append(f"attrs.{field} must be a number, got {value!r}")
        elif not 0 <= value <= 1:
            errors.append(f"attrs.{field} must be within [0, 1], got {value}")

    if entity_type in ENTITY_TYPES:
        for field in REQUIRED_ATTRS.get(EntityType(entity_type), []):
            if attrs.get(field) is None:
                errors.append(f"attrs.{field} is required for {entity_type} entities")


def _check_semantics(raw: dict, errors: List[str], warnings: List[str]) -> None:
    entity_id = raw["id"]
    match = ID_PATTERN.match(entity_id)
    if not match:
        errors.append(f"id {entity_id!r} must have the form type.slug")
    elif match.group(1) != raw["type"]:
        errors.append(
            f"id prefix {match.group(1)!r} does not match type {raw['type']!r}"
        )

    attrs = raw.get("attrs", {})
    for key, value in attrs.items():
        if not _is_reference_key(key):
            continue
        values = value if isinstance(value, list) else [value]
        for ref in values:
            if isinstance(ref, str) and ref and "." not in ref:
                warnings.append(f"attrs.{key} reference {ref!r} is not a type.slug id")

    relationships = attrs.get("relationships")
    if isinstance(relationships, dict):
        for ref in relationships:
            if "." not in ref:
                warnings.append(f"attrs.relationships key {ref!r} is not a type.slug id")


def validate_entity(raw: Any) -> ValidationReport:
    """Validate a raw entity record. Never raises; inspect ``report.errors``."""
    if not isinstance(raw, dict):
        return ValidationReport(errors=["Entity record must be an object"])

    report = ValidationReport(entity_id=raw.get("id"))
    _check_structure(raw, report.errors)
    if report.errors:
        return report

    _check_semantics(raw, report.errors, report.warnings)
    if report.errors:
        return report

    try:
        report.entity = Entity.model_validate(raw)
    except ValidationError as e:
        for err in e.errors():
            location = ".".join(str(part) for part in err["loc"])
            report.errors.append(f"{location}: {err['msg']}")
    return report
