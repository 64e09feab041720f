"""Scenario — initial entities, location tree and end conditions for a world."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from wsc_kernel.models.location import LocationRecord


class VictoryCondition(BaseModel):
    id: str
    winner: str                             # usually a polity id
    condition: str                          # condition-evaluator expression
    description: str = ""


class StalemateRule(BaseModel):
    max_tick: Optional[float] = None
    condition: Optional[str] = None


class Scenario(BaseModel):
    id: str
    name: str
    description: str = ""
    start_tick: float = 0
    entities: List[Dict[str, Any]] = []     # raw entity records, validated on load
    locations: List[LocationRecord] = []
    victory_conditions: List[VictoryCondition] = []
    stalemate: Optional[StalemateRule] = None
    settings: Dict[str, Any] = {}
