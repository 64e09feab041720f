"""Tests for the Victory Checker."""

from datetime import datetime

import pytest

from wsc_kernel.entities.store import EntityStore
from wsc_kernel.models.conditions import VictoryStatus
from wsc_kernel.models.scenario import Scenario, StalemateRule, VictoryCondition
from wsc_kernel.models.world import WorldState
from wsc_kernel.victory.checker import VictoryChecker


def _make_store(red_influence=0.5, blue_influence=0.5):
    return EntityStore.from_records([
        {"id": "presence.red.vega", "type": "presence", "name": "Red", "attrs": {"influence": red_influence}},
        {"id": "presence.blue.vega", "type": "presence", "name": "Blue", "attrs": {"influence": blue_influence}},
    ])


def _make_scenario(stalemate=None, sustained=False):
    red = "presence.red.vega.influence >= 0.9"
    if sustained:
        red += " for 3 ticks"
    return Scenario(
        id="vega_crisis",
        name="Vega Crisis",
        victory_conditions=[
            VictoryCondition(id="red_dominance", winner="polity.red", condition=red),
            VictoryCondition(
                id="blue_dominance", winner="polity.blue",
                condition="presence.blue.vega.influence >= 0.9",
            ),
        ],
        stalemate=stalemate,
    )


def _make_world_state(tick=100) -> WorldState:
    now = datetime.utcnow()
    return WorldState(world_id="w1", tick=tick, created_at=now, updated_at=now)


class TestVictoryChecker:
    def setup_method(self):
        self.checker = VictoryChecker()

    def test_running(self):
        check = self.checker.check(_make_store(), _make_world_state(), _make_scenario())
        assert check.continue_ is True
        assert check.status == VictoryStatus.RUNNING
        assert check.exit_code == 0
        assert len(check.details["conditions"]) == 2

    def test_victory(self):
        check = self.checker.check(
            _make_store(blue_influence=0.95), _make_world_state(), _make_scenario(),
        )
        assert check.status == VictoryStatus.VICTORY
        assert check.winner == "polity.blue"
        assert check.condition_id == "blue_dominance"
        assert check.exit_code == 10
        assert check.continue_ is False

    def test_first_condition_wins(self):
        check = self.checker.check(
            _make_store(red_influence=0.95, blue_influence=0.95), _make_world_state(), _make_scenario(),
        )
        assert check.winner == "polity.red"

    def test_stalemate_by_tick(self):
        scenario = _make_scenario(stalemate=StalemateRule(max_tick=100))
        check = self.checker.check(_make_store(), _make_world_state(tick=100), scenario)
        assert check.status == VictoryStatus.STALEMATE
        assert check.exit_code == 11

    def test_stalemate_by_condition(self):
        scenario = _make_scenario(stalemate=StalemateRule(
            condition="presence.red.vega.influence < 0.6 AND presence.blue.vega.influence < 0.6",
        ))
        check = self.checker.check(_make_store(), _make_world_state(), scenario)
        assert check.status == VictoryStatus.STALEMATE

    def test_victory_before_stalemate(self):
        scenario = _make_scenario(stalemate=StalemateRule(max_tick=50))
        check = self.checker.check(_make_store(red_influence=1.0), _make_world_state(), scenario)
        assert check.status == VictoryStatus.VICTORY

    def test_entity_count_in_details(self):
        check = self.checker.check(_make_store(), _make_world_state(), _make_scenario(), entity_count=2)
        assert check.details["entities"] == 2


class TestSustainedVictory:
    def setup_method(self):
        self.checker = VictoryChecker()
        self.store = _make_store(red_influence=0.95)
        self.scenario = _make_scenario(sustained=True)

    def test_not_satisfied_without_pass_counts(self):
        check = self.checker.check(self.store, _make_world_state(), self.scenario)
        assert check.status == VictoryStatus.RUNNING
        entry = check.details["conditions"][0]
        assert entry["condition_met"] is True
        assert entry["requires_sustained"] == 3
        assert entry["consecutive_passes"] is None

    @pytest.mark.parametrize("prior,status", [
        (0, VictoryStatus.RUNNING),
        (1, VictoryStatus.RUNNING),
        (2, VictoryStatus.VICTORY),
    ])
    def test_counts_supplied_by_caller(self, prior, status):
        check = self.checker.check(
            self.store, _make_world_state(), self.scenario,
            prior_passes={"red_dominance": prior},
        )
        assert check.status == status
