"""Tests for entity models, validation and templates."""

import pytest
from pydantic import ValidationError

from wsc_kernel.entities.templates import create_from_template, default_name
from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import SchemaError
from wsc_kernel.models import (
    ChronicleEvent,
    Entity,
    EntityAttrs,
    EntityType,
    VictoryCheck,
    VictoryStatus,
    WorldState,
    format_event_id,
    parse_event_id,
)


def _make_record(**overrides):
    record = {
        "id": "presence.red.vega",
        "type": "presence",
        "name": "Red Fleet at Vega",
        "tags": ["military", "frontier"],
        "attrs": {"influence": 0.6, "states_active": [], "custom_note": "kept"},
    }
    record.update(overrides)
    return record


class TestEntityValidation:
    def test_valid_record(self):
        report = validate_entity(_make_record())
        assert report.valid
        assert report.entity.type == EntityType.PRESENCE
        assert report.entity.attrs.influence == 0.6
        assert report.errors == []

    def test_round_trip(self):
        entity = validate_entity(_make_record()).entity
        again = validate_entity(entity.to_record()).entity
        assert again == entity
        assert again.to_record() == entity.to_record()

    def test_extra_attrs_preserved(self):
        entity = validate_entity(_make_record()).entity
        assert entity.attrs.get("custom_note") == "kept"
        assert entity.to_record()["attrs"]["custom_note"] == "kept"

    def test_tags_serialized_sorted(self):
        entity = validate_entity(_make_record()).entity
        assert entity.to_record()["tags"] == ["frontier", "military"]

    def test_ai_dropped_when_absent(self):
        entity = validate_entity(_make_record()).entity
        assert "ai" not in entity.to_record()

    def test_ai_kept_opaque(self):
        entity = validate_entity(_make_record(ai={"persona": "hawk", "memory": [1, 2]})).entity
        assert entity.to_record()["ai"] == {"persona": "hawk", "memory": [1, 2]}

    def test_missing_required_field(self):
        record = _make_record()
        del record["name"]
        report = validate_entity(record)
        assert not report.valid
        assert any("name" in e for e in report.errors)

    def test_unknown_type(self):
        report = validate_entity(_make_record(type="starship", id="starship.x"))
        assert not report.valid
        assert any("Invalid type" in e for e in report.errors)

    def test_id_prefix_must_match_type(self):
        report = validate_entity(_make_record(id="force.red.vega"))
        assert not report.valid
        assert any("does not match type" in e for e in report.errors)

    def test_malformed_id(self):
        report = validate_entity(_make_record(id="presence"))
        assert not report.valid

    @pytest.mark.parametrize("value", [1.2, -0.1, "high"])
    def test_normalized_field_out_of_range(self, value):
        report = validate_entity(_make_record(attrs={"influence": value}))
        assert not report.valid
        assert any("influence" in e for e in report.errors)

    def test_required_attr_for_type(self):
        report = validate_entity({
            "id": "force.red_fleet",
            "type": "force",
            "name": "Red Fleet",
            "attrs": {},
        })
        assert not report.valid
        assert any("strength" in e for e in report.errors)

    def test_reference_without_dot_is_warning(self):
        report = validate_entity({
            "id": "agent.reva",
            "type": "agent",
            "name": "Reva",
            "attrs": {
                "affiliation": "red",
                "location_id": "locale.vega_prime",
                "relationships": {"blue": "rival", "agent.kade": "ally"},
            },
        })
        assert report.valid
        assert len(report.warnings) == 2
        assert any("affiliation" in w for w in report.warnings)
        assert any("'blue'" in w for w in report.warnings)

    def test_non_object_record(self):
        report = validate_entity(["not", "a", "record"])
        assert not report.valid


class TestEntityAttrs:
    def test_assignment_checks_range(self):
        attrs = EntityAttrs(influence=0.5)
        with pytest.raises(ValidationError):
            attrs.set("influence", 1.5)

    def test_extra_keys(self):
        attrs = EntityAttrs(influence=0.5, morale="low")
        attrs.set("supply", 3)
        assert attrs.has("morale")
        assert not attrs.has("strength")
        assert attrs.to_dict() == {"influence": 0.5, "morale": "low", "supply": 3}

    def test_get_default(self):
        assert EntityAttrs().get("unrest", 0.0) == 0.0


class TestTemplates:
    def test_create_force(self):
        entity = create_from_template("force", "red_fleet", tags=["navy"])
        assert entity.id == "force.red_fleet"
        assert entity.name == "Red Fleet"
        assert entity.attrs.strength == 1.0
        assert entity.tags == {"navy"}

    def test_attrs_override_template(self):
        entity = create_from_template("presence", "red.vega", attrs={"influence": 0.4})
        assert entity.attrs.influence == 0.4
        assert entity.attrs.get("states_active") == []

    def test_invalid_type(self):
        with pytest.raises(SchemaError):
            create_from_template("starship", "x")

    def test_invalid_override(self):
        with pytest.raises(SchemaError) as exc:
            create_from_template("force", "red_fleet", attrs={"strength": 2})
        assert exc.value.issues

    def test_default_name(self):
        assert default_name("captain_reva") == "Captain Reva"
        assert default_name("red.vega") == "Vega"


class TestChronicleModels:
    def test_event_id_helpers(self):
        assert format_event_id(12) == "evt_12"
        assert parse_event_id("evt_12") == 12
        with pytest.raises(ValueError):
            parse_event_id("event-12")

    def test_event_requires_participant(self):
        with pytest.raises(ValidationError):
            ChronicleEvent(id="evt_1", t_world=0, type="battle.resolved", where="region.vega", who=[])

    def test_event_type_must_be_dotted(self):
        with pytest.raises(ValidationError):
            ChronicleEvent(id="evt_1", t_world=0, type="battle", where="region.vega", who=["force.a"])

    def test_event_is_frozen(self):
        event = ChronicleEvent(id="evt_1", t_world=0, type="battle.resolved", where="region.vega", who=["force.a"])
        with pytest.raises(ValidationError):
            event.importance = 0.9
        assert event.family == "battle"
        assert event.seq == 1


class TestWorldModels:
    def test_world_state_alias(self):
        state = WorldState.model_validate({
            "world_id": "w1",
            "created_at": "2026-01-01T00:00:00",
            "updated_at": "2026-01-01T00:00:00",
            "drill_down_opportunities": ["evt_3"],
        })
        assert state.opportunities == ["evt_3"]
        assert state.to_record()["drill_down_opportunities"] == ["evt_3"]

    @pytest.mark.parametrize("status,code", [
        (VictoryStatus.RUNNING, 0),
        (VictoryStatus.VICTORY, 10),
        (VictoryStatus.STALEMATE, 11),
        (VictoryStatus.ERROR, 1),
    ])
    def test_exit_codes(self, status, code):
        check = VictoryCheck(continue_=status == VictoryStatus.RUNNING, status=status)
        assert check.exit_code == code

    def test_victory_check_record_uses_continue(self):
        record = VictoryCheck(continue_=True, status=VictoryStatus.RUNNING).to_record()
        assert record["continue"] is True
        assert "continue_" not in record


class TestEntityType:
    def test_closed_set(self):
        assert len(EntityType) == 10
        assert Entity(id="site.dock", type="site", name="Dock").slug == "dock"
