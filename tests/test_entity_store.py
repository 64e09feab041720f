"""Tests for the Entity Store."""

import pytest

from wsc_kernel.entities.store import EntityStore
from wsc_kernel.entities.templates import create_from_template
from wsc_kernel.errors import SchemaError


def _make_records():
    return [
        {"id": "polity.red", "type": "polity", "name": "Red Concord", "tags": ["major"]},
        {"id": "polity.blue", "type": "polity", "name": "Blue League", "tags": ["major"]},
        {"id": "force.red_fleet", "type": "force", "name": "Red Fleet", "attrs": {"strength": 0.9}},
        {
            "id": "presence.red.vega",
            "type": "presence",
            "name": "Red at Vega",
            "tags": ["frontier"],
            "attrs": {"influence": 0.5},
        },
    ]


class TestEntityStore:
    def setup_method(self):
        self.store = EntityStore.from_records(_make_records())

    def test_load(self):
        assert self.store.count() == 4
        assert self.store.ids() == [
            "force.red_fleet", "polity.blue", "polity.red", "presence.red.vega",
        ]

    def test_batch_rejected_on_any_error(self):
        records = _make_records() + [{"id": "force.bad", "type": "force", "name": "Bad"}]
        with pytest.raises(SchemaError) as exc:
            EntityStore.from_records(records)
        assert any("force.bad" in issue for issue in exc.value.issues)

    def test_get_returns_copy(self):
        entity = self.store.get("presence.red.vega")
        entity.attrs.set("influence", 0.9)
        assert self.store.get("presence.red.vega").attrs.influence == 0.5

    def test_get_missing(self):
        assert self.store.get("polity.green") is None

    def test_put_new_entity(self):
        self.store.put(create_from_template("agent", "reva"))
        assert self.store.has("agent.reva")
        assert self.store.get("agent.reva").attrs.get("status") == "alive"

    def test_put_update(self):
        entity = self.store.get("force.red_fleet")
        entity.attrs.set("strength", 0.4)
        self.store.put(entity)
        assert self.store.get("force.red_fleet").attrs.strength == 0.4

    def test_put_invalid_leaves_store_untouched(self):
        entity = self.store.get("presence.red.vega")
        entity.id = "force.red.vega"
        with pytest.raises(SchemaError):
            self.store.put(entity)
        assert not self.store.has("force.red.vega")
        assert self.store.count() == 4

    def test_query_by_type(self):
        polities = self.store.query(entity_type="polity")
        assert [e.id for e in polities] == ["polity.blue", "polity.red"]

    def test_query_by_tag(self):
        assert [e.id for e in self.store.query(tag="frontier")] == ["presence.red.vega"]

    def test_query_conjunctive(self):
        assert self.store.query(entity_type="force", tag="major") == []

    def test_snapshot_json_is_canonical(self):
        other = EntityStore.from_records(list(reversed(_make_records())))
        assert other.snapshot_json() == self.store.snapshot_json()

    def test_copy_is_independent(self):
        clone = self.store.copy()
        entity = clone.get("force.red_fleet")
        entity.attrs.set("strength", 0.1)
        clone.put(entity)
        assert self.store.get("force.red_fleet").attrs.strength == 0.9
