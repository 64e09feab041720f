"""Chronicle Event — one immutable fact in the causal event log."""

import re
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from wsc_kernel.models.location import LocationEmbedding

EVENT_ID_PATTERN = re.compile(r"^evt_(\d+)$")
EVENT_TYPE_PATTERN = re.compile(r"^[a-z0-9_]+(\.[a-z0-9_]+)+$")


class TimeScale(str, Enum):
    """Simulation resolution levels, coarsest first."""
    GALACTIC = "galactic"
    CONTINENTAL = "continental"
    CITY = "city"
    SCENE = "scene"
    ACTION = "action"


def format_event_id(seq: int) -> str:
    return f"evt_{seq}"


def parse_event_id(event_id: str) -> int:
    """Return the log position encoded in an ``evt_<n>`` id."""
    match = EVENT_ID_PATTERN.match(event_id or "")
    if not match:
        raise ValueError(f"Malformed event id: {event_id!r}")
    return int(match.group(1))


class ChronicleEvent(BaseModel):
    """
    An immutable chronicle record.

    ``causes`` may only name events that precede this one in the log, which
    keeps the causal graph acyclic by construction.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    t_world: float
    t_scale: TimeScale = TimeScale.GALACTIC
    t_parent: Optional[str] = None
    t_depth: int = Field(default=0, ge=0)
    t_stream: Optional[str] = None

    type: str
    where: str
    who: List[str] = Field(min_length=1)
    data: Dict[str, Any] = {}
    causes: List[str] = []

    source: Optional[str] = None
    confidence: float = Field(default=1.0, ge=0, le=1)
    importance: float = Field(default=0.5, ge=0, le=1)
    narrative_summary: Optional[str] = None
    where_location: Optional[LocationEmbedding] = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, value: str) -> str:
        parse_event_id(value)
        return value

    @field_validator("type")
    @classmethod
    def _check_type(cls, value: str) -> str:
        if not EVENT_TYPE_PATTERN.match(value):
            raise ValueError(f"Event type must be dotted family.name, got {value!r}")
        return value

    @property
    def seq(self) -> int:
        return parse_event_id(self.id)

    @property
    def family(self) -> str:
        return self.type.split(".", 1)[0]

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)


class EventDraft(BaseModel):
    """An event proposal before the writer assigns its id and position."""

    type: str
    where: str
    who: List[str]
    data: Dict[str, Any] = {}
    causes: List[str] = []
    source: Optional[str] = None
    importance: Optional[float] = None
    confidence: Optional[float] = None
    summary: Optional[str] = None
    t_world: Optional[float] = None
    scale: Optional[TimeScale] = None
    parent: Optional[str] = None
    depth: Optional[int] = None
    stream: Optional[str] = None


class ChronicleQuery(BaseModel):
    """Conjunctive filter over the chronicle. Unset predicates match everything."""

    event_type: Optional[str] = None        # exact, or "family.*" prefix
    where: Optional[str] = None
    who: Optional[str] = None
    min_importance: Optional[float] = None
    max_importance: Optional[float] = None
    min_t_world: Optional[float] = None
    max_t_world: Optional[float] = None
    scale: Optional[TimeScale] = None
    depth: Optional[int] = None
    causes_of: Optional[str] = None         # events listed in X.causes
    caused_by: Optional[str] = None         # events whose causes include X
    limit: Optional[int] = Field(default=None, ge=1)
    ascending: bool = False


class TreeNode(BaseModel):
    """One event in a drill-down tree with its distance from the root."""

    event: ChronicleEvent
    distance: int
