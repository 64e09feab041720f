"""World State — the single mutable summary record of a world instance."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class WorldState(BaseModel):
    """
    Exactly one writer owns this record per world instance.

    ``last_event_id`` is the id-allocation cursor (the next event is
    ``evt_<last_event_id + 1>``). ``last_applied_event_id`` is the effect
    watermark that makes delta handlers safe to re-run. ``active_conflicts``
    holds the ids of applied ``conflict.started`` events not yet closed by an
    applied ``conflict.ended``; the effect engine maintains it alongside the
    watermark.
    """

    model_config = ConfigDict(populate_by_name=True)

    world_id: str
    tick: float = 0
    last_event_id: int = 0
    last_applied_event_id: int = 0
    active_scenario: Optional[str] = None
    opportunities: List[str] = Field(default=[], alias="drill_down_opportunities")
    active_conflicts: List[str] = []
    created_at: datetime
    updated_at: datetime
    settings: Dict[str, Any] = {}

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)
