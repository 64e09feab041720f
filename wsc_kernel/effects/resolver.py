"""
Reference Resolver — maps the short keys proposers use in event payloads
(e.g. ``losses: {"red": ...}``) to full entity ids.

Strategies run in a fixed declared order and the one that matched is logged,
so attribution stays auditable.
"""

import logging
from enum import Enum
from typing import List, NamedTuple, Optional, Protocol, Sequence

from wsc_kernel.models.entity import Entity, EntityType

logger = logging.getLogger(__name__)


class ReadableStore(Protocol):
    def get(self, entity_id: str) -> Optional[Entity]: ...

    def has(self, entity_id: str) -> bool: ...


class ResolutionStrategy(str, Enum):
    EXACT_ID = "exact_id"           # key is already a full id
    WHO_MATCH = "who_match"         # a participant equals key or has slug == key
    CONSTRUCTED = "constructed"     # "<expected_type>.<key>"
    SUBSTRING = "substring"         # a participant id contains key


DEFAULT_STRATEGIES = (
    ResolutionStrategy.EXACT_ID,
    ResolutionStrategy.WHO_MATCH,
    ResolutionStrategy.CONSTRUCTED,
    ResolutionStrategy.SUBSTRING,
)


class Resolution(NamedTuple):
    entity_id: str
    strategy: ResolutionStrategy


def _slug(entity_id: str) -> str:
    return entity_id.split(".", 1)[1] if "." in entity_id else entity_id


class ReferenceResolver:
    def __init__(self, strategies: Sequence[ResolutionStrategy] = DEFAULT_STRATEGIES):
        self.strategies = list(strategies)

    def resolve(
        self,
        key: str,
        who: List[str],
        store: ReadableStore,
        expected_type: Optional[EntityType] = None,
    ) -> Optional[Resolution]:
        """Try each strategy in order; return the first existing entity matched."""
        prefix = f"{expected_type.value}." if expected_type else ""

        def acceptable(entity_id: str) -> bool:
            return entity_id.startswith(prefix) and store.has(entity_id)

        for strategy in self.strategies:
            match = None
            if strategy == ResolutionStrategy.EXACT_ID:
                if acceptable(key):
                    match = key
            elif strategy == ResolutionStrategy.WHO_MATCH:
                match = next(
                    (w for w in who if (w == key or _slug(w) == key) and acceptable(w)),
                    None,
                )
            elif strategy == ResolutionStrategy.CONSTRUCTED:
                if expected_type and acceptable(prefix + key):
                    match = prefix + key
            elif strategy == ResolutionStrategy.SUBSTRING:
                match = next((w for w in who if key in w and acceptable(w)), None)

            if match:
                logger.debug("Resolved %r -> %s via %s", key, match, strategy.value)
                return Resolution(match, strategy)

        logger.debug("Could not resolve %r against %s", key, who)
        return None
