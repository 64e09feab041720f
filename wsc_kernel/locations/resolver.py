"""
Location Resolver — read-only enrichment of entity ids with location metadata.

Finds the location record standing for an entity and walks its parent chain
to collect the system / locale / site names, plus coordinates and orbital
distance from the nearest record that defines them. Used only to annotate
events for the proposer; it never touches entity state.
"""

import logging
from typing import Dict, Iterable, List, Optional

from wsc_kernel.models.location import LocationEmbedding, LocationRecord

logger = logging.getLogger(__name__)

LOCATION_PREFIX = "location."
LOCALE_LEVELS = ("body", "locale")


class LocationResolver:
    """Index over a location tree."""

    def __init__(self, records: Iterable[LocationRecord] = ()):
        self._records: Dict[str, LocationRecord] = {}
        for record in records:
            self.add(record)

    def add(self, record: LocationRecord) -> None:
        self._records[record.id] = record

    def records(self) -> List[LocationRecord]:
        return [self._records[k] for k in sorted(self._records)]

    def find(self, entity_id: str) -> Optional[LocationRecord]:
        """Direct id, then ``location.<id>``, then a scan on ``entity_id``."""
        if entity_id in self._records:
            return self._records[entity_id]
        prefixed = self._records.get(LOCATION_PREFIX + entity_id)
        if prefixed:
            return prefixed
        for key in sorted(self._records):
            if self._records[key].entity_id == entity_id:
                return self._records[key]
        return None

    def chain(self, record: LocationRecord) -> List[LocationRecord]:
        """The record followed by its ancestors; stops on a cycle or missing parent."""
        chain = [record]
        seen = {record.id}
        current = record
        while current.parent:
            parent = self._records.get(current.parent)
            if parent is None:
                logger.debug("Location %s names missing parent %s", current.id, current.parent)
                break
            if parent.id in seen:
                logger.warning("Location cycle detected at %s", parent.id)
                break
            chain.append(parent)
            seen.add(parent.id)
            current = parent
        return chain

    def resolve(self, entity_id: str) -> Optional[LocationEmbedding]:
        """Build the location embedding for an entity id, or None if unknown."""
        record = self.find(entity_id)
        if record is None:
            return None

        chain = self.chain(record)
        embedding = LocationEmbedding(
            location_id=record.id,
            hierarchy=[r.id for r in reversed(chain)],
        )
        for node in chain:
            embedding.names.setdefault(node.level, node.name)
            if node.level == "system" and embedding.system is None:
                embedding.system = node.name
            elif node.level in LOCALE_LEVELS and embedding.locale is None:
                embedding.locale = node.name
            elif node.level == "site" and embedding.site is None:
                embedding.site = node.name
            if embedding.coords is None and node.coords is not None:
                embedding.coords = node.coords
            if embedding.orbit_au is None and node.orbit_au is not None:
                embedding.orbit_au = node.orbit_au
        return embedding
