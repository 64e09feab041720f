"""Condition evaluation results and victory/stalemate outcomes."""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class EvaluationResult(BaseModel):
    result: bool
    trace: Dict[str, Any] = {}
    requires_sustained: Optional[int] = None


class VictoryStatus(str, Enum):
    RUNNING = "running"
    VICTORY = "victory"
    STALEMATE = "stalemate"
    ERROR = "error"

    @property
    def exit_code(self) -> int:
        return {
            VictoryStatus.RUNNING: 0,
            VictoryStatus.VICTORY: 10,
            VictoryStatus.STALEMATE: 11,
            VictoryStatus.ERROR: 1,
        }[self]


class VictoryCheck(BaseModel):
    """Outcome of a victory check. Serializes ``continue_`` as ``continue``."""

    model_config = ConfigDict(populate_by_name=True)

    continue_: bool = Field(alias="continue")
    status: VictoryStatus
    winner: Optional[str] = None
    condition_id: Optional[str] = None
    details: Dict[str, Any] = {}

    @property
    def exit_code(self) -> int:
        return self.status.exit_code

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
