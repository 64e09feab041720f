"""
Victory Checker — decides whether a run has reached a terminal state.

Victory conditions are checked in scenario order; the first satisfied one
wins. Otherwise the stalemate rule (tick cap and/or expression) is checked.

Conditions with a ``for N ticks`` suffix only count when the caller passes
``prior_passes``, its own count of consecutive earlier passes per condition
id. The checker never stores or updates that map.
"""

import logging
from typing import Any, Dict, Mapping, Optional

from wsc_kernel.conditions.evaluator import ConditionEvaluator, EntityReader
from wsc_kernel.models.conditions import VictoryCheck, VictoryStatus
from wsc_kernel.models.scenario import Scenario
from wsc_kernel.models.world import WorldState

logger = logging.getLogger(__name__)


class VictoryChecker:
    def check(
        self,
        store: EntityReader,
        world_state: WorldState,
        scenario: Scenario,
        entity_count: Optional[int] = None,
        prior_passes: Optional[Mapping[str, int]] = None,
    ) -> VictoryCheck:
        evaluator = ConditionEvaluator(store)
        details: Dict[str, Any] = {
            "world_id": world_state.world_id,
            "scenario": scenario.id,
            "tick": world_state.tick,
            "conditions": [],
        }
        if entity_count is not None:
            details["entities"] = entity_count

        for condition in scenario.victory_conditions:
            evaluation = evaluator.evaluate(condition.condition, world_state)
            entry: Dict[str, Any] = {
                "id": condition.id,
                "winner": condition.winner,
                "condition_met": evaluation.result,
                "values": evaluation.trace.get("values", {}),
            }
            if evaluation.trace.get("unresolved"):
                entry["unresolved"] = evaluation.trace["unresolved"]
            if evaluation.trace.get("errors"):
                entry["errors"] = evaluation.trace["errors"]

            satisfied = evaluation.result
            if satisfied and evaluation.requires_sustained:
                passes = None
                if prior_passes is not None:
                    passes = prior_passes.get(condition.id, 0) + 1
                entry["requires_sustained"] = evaluation.requires_sustained
                entry["consecutive_passes"] = passes
                satisfied = passes is not None and passes >= evaluation.requires_sustained
            details["conditions"].append(entry)

            if satisfied:
                logger.info(
                    "Victory for %s via %s at tick %s",
                    condition.winner, condition.id, world_state.tick,
                )
                return VictoryCheck(
                    continue_=False,
                    status=VictoryStatus.VICTORY,
                    winner=condition.winner,
                    condition_id=condition.id,
                    details=details,
                )

        rule = scenario.stalemate
        if rule is not None:
            reached = rule.max_tick is not None and world_state.tick >= rule.max_tick
            if not reached and rule.condition:
                stalemate_eval = evaluator.evaluate(rule.condition, world_state)
                details["stalemate_values"] = stalemate_eval.trace.get("values", {})
                reached = stalemate_eval.result
            if reached:
                logger.info("Stalemate at tick %s", world_state.tick)
                return VictoryCheck(
                    continue_=False, status=VictoryStatus.STALEMATE, details=details
                )

        return VictoryCheck(continue_=True, status=VictoryStatus.RUNNING, details=details)
