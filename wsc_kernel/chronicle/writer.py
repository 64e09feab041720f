"""
Event Writer — the single queue through which events enter the chronicle.

Allocates ``evt_<last_event_id + 1>`` and appends under one lock, so
concurrent proposers can never obtain duplicate ids. In dry-run mode the
event is fully validated and formatted but nothing is written.
"""

import logging
import threading
from datetime import datetime
from typing import Callable, Optional

from pydantic import ValidationError

from wsc_kernel.chronicle.store import ChronicleLog
from wsc_kernel.errors import AppendError
from wsc_kernel.locations.resolver import LocationResolver
from wsc_kernel.models.chronicle import (
    ChronicleEvent,
    EventDraft,
    TimeScale,
    format_event_id,
)
from wsc_kernel.models.world import WorldState

logger = logging.getLogger(__name__)


class EventWriter:
    """
    Owns the id-allocation cursor in ``WorldState.last_event_id``.

    Pass the world's lock to serialize appends with other writes to the
    same world (effect application, tick advance).
    """

    def __init__(
        self,
        log: ChronicleLog,
        world_state: WorldState,
        locations: Optional[LocationResolver] = None,
        default_scale: TimeScale = TimeScale.GALACTIC,
        on_commit: Optional[Callable[[WorldState], None]] = None,
        lock=None,
    ):
        self.log = log
        self.world_state = world_state
        self.locations = locations
        self.default_scale = default_scale
        self.on_commit = on_commit
        self._lock = lock or threading.RLock()

    def build(self, draft: EventDraft, seq: int, embed_location: bool = True) -> ChronicleEvent:
        """Format a draft into an event at position ``seq``. Raises AppendError."""
        if not draft.type:
            raise AppendError("Missing required field: type")
        if not draft.where:
            raise AppendError("Missing required field: where")
        if not draft.who:
            raise AppendError("Missing required field: who (at least one participant)")

        where_location = None
        if embed_location and self.locations is not None:
            where_location = self.locations.resolve(draft.where)

        fields = {
            "id": format_event_id(seq),
            "t_world": self.world_state.tick if draft.t_world is None else draft.t_world,
            "t_scale": draft.scale or self.default_scale,
            "t_parent": draft.parent,
            "t_depth": draft.depth or 0,
            "t_stream": draft.stream,
            "type": draft.type,
            "where": draft.where,
            "who": draft.who,
            "data": draft.data,
            "causes": draft.causes,
            "source": draft.source,
            "narrative_summary": draft.summary,
            "where_location": where_location,
        }
        if draft.importance is not None:
            fields["importance"] = draft.importance
        if draft.confidence is not None:
            fields["confidence"] = draft.confidence

        try:
            return ChronicleEvent(**fields)
        except ValidationError as e:
            raise AppendError(f"Invalid event draft: {e}") from e

    def emit(
        self,
        draft: EventDraft,
        dry_run: bool = False,
        embed_location: bool = True,
    ) -> ChronicleEvent:
        """Allocate the next id and append. Returns the event as written (or as it would be)."""
        with self._lock:
            seq = self.world_state.last_event_id + 1
            event = self.build(draft, seq, embed_location=embed_location)
            self.log.check_causes(event)

            if dry_run:
                logger.info("Dry run: would append %s (%s)", event.id, event.type)
                return event

            self.log.append(event)
            self.world_state.last_event_id = seq
            self.world_state.updated_at = datetime.utcnow()
            if self.on_commit:
                self.on_commit(self.world_state)

        logger.info("Appended %s (%s) where=%s", event.id, event.type, event.where)
        return event
