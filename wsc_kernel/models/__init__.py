"""WSC kernel data models."""

from wsc_kernel.models.chronicle import (
    ChronicleEvent,
    ChronicleQuery,
    EventDraft,
    TimeScale,
    TreeNode,
    format_event_id,
    parse_event_id,
)
from wsc_kernel.models.conditions import EvaluationResult, VictoryCheck, VictoryStatus
from wsc_kernel.models.effects import EffectResult, EntityPatch
from wsc_kernel.models.entity import (
    NORMALIZED_FIELDS,
    REQUIRED_ATTRS,
    Entity,
    EntityAttrs,
    EntityType,
)
from wsc_kernel.models.location import Coordinates, LocationEmbedding, LocationRecord
from wsc_kernel.models.scenario import Scenario, StalemateRule, VictoryCondition
from wsc_kernel.models.world import WorldState

__all__ = [
    "ChronicleEvent",
    "ChronicleQuery",
    "Coordinates",
    "EffectResult",
    "Entity",
    "EntityAttrs",
    "EntityPatch",
    "EntityType",
    "EvaluationResult",
    "EventDraft",
    "LocationEmbedding",
    "LocationRecord",
    "NORMALIZED_FIELDS",
    "REQUIRED_ATTRS",
    "Scenario",
    "StalemateRule",
    "TimeScale",
    "TreeNode",
    "VictoryCheck",
    "VictoryCondition",
    "VictoryStatus",
    "WorldState",
    "format_event_id",
    "parse_event_id",
]
