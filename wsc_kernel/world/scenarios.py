"""Scenario files: ``<scenarios_dir>/<scenario_id>.json``."""

import logging
from pathlib import Path
from typing import List, Union

from pydantic import ValidationError

from wsc_kernel.errors import FatalError
from wsc_kernel.models.scenario import Scenario

logger = logging.getLogger(__name__)


def load_scenario(scenarios_dir: Union[str, Path], scenario_id: str) -> Scenario:
    path = Path(scenarios_dir) / f"{scenario_id}.json"
    if not path.is_file():
        raise FatalError(f"Scenario not found: {scenario_id} ({path})")
    try:
        return Scenario.model_validate_json(path.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise FatalError(f"Scenario {scenario_id} is malformed: {e}") from e


def list_scenarios(scenarios_dir: Union[str, Path]) -> List[Scenario]:
    """All readable scenarios, sorted by id. Malformed files are skipped."""
    directory = Path(scenarios_dir)
    if not directory.is_dir():
        return []
    scenarios = []
    for path in sorted(directory.glob("*.json")):
        try:
            scenarios.append(Scenario.model_validate_json(path.read_text(encoding="utf-8")))
        except ValidationError as e:
            logger.warning("Skipping malformed scenario %s: %s", path.name, e)
    return scenarios
