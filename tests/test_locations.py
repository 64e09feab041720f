"""Tests for the Location Resolver."""

from wsc_kernel.locations.resolver import LocationResolver
from wsc_kernel.models.location import Coordinates, LocationRecord


def _make_tree():
    return [
        LocationRecord(id="location.galaxy.core", level="galaxy", name="Core"),
        LocationRecord(
            id="location.system.vega", level="system", name="Vega",
            parent="location.galaxy.core", coords=Coordinates(x=4.0, y=-2.5),
        ),
        LocationRecord(
            id="location.body.vega_iii", level="body", name="Vega III",
            parent="location.system.vega", orbit_au=1.4,
        ),
        LocationRecord(
            id="location.site.dock_7", level="site", name="Dock 7",
            parent="location.body.vega_iii", entity_id="site.vega_dock",
        ),
    ]


class TestLocationResolver:
    def setup_method(self):
        self.resolver = LocationResolver(_make_tree())

    def test_find_direct(self):
        assert self.resolver.find("location.system.vega").name == "Vega"

    def test_find_prefixed(self):
        assert self.resolver.find("system.vega").id == "location.system.vega"

    def test_find_by_entity_id(self):
        assert self.resolver.find("site.vega_dock").id == "location.site.dock_7"

    def test_unknown(self):
        assert self.resolver.find("region.nowhere") is None
        assert self.resolver.resolve("region.nowhere") is None

    def test_resolve_site(self):
        embedding = self.resolver.resolve("site.vega_dock")
        assert embedding.hierarchy == [
            "location.galaxy.core",
            "location.system.vega",
            "location.body.vega_iii",
            "location.site.dock_7",
        ]
        assert embedding.system == "Vega"
        assert embedding.locale == "Vega III"
        assert embedding.site == "Dock 7"
        assert embedding.orbit_au == 1.4
        assert embedding.coords == Coordinates(x=4.0, y=-2.5)
        assert embedding.names["galaxy"] == "Core"

    def test_missing_parent_stops_chain(self):
        self.resolver.add(LocationRecord(
            id="location.locale.lost", level="locale", name="Lost", parent="location.system.gone",
        ))
        embedding = self.resolver.resolve("location.locale.lost")
        assert embedding.hierarchy == ["location.locale.lost"]
        assert embedding.system is None

    def test_cycle_terminates(self):
        resolver = LocationResolver([
            LocationRecord(id="location.a", level="system", name="A", parent="location.b"),
            LocationRecord(id="location.b", level="sector", name="B", parent="location.a"),
        ])
        embedding = resolver.resolve("location.a")
        assert embedding.hierarchy == ["location.b", "location.a"]
