"""
Effect Engine — turns chronicle events into entity-state patches.

Behavioral Contract:
- A registry maps event type -> handler(event, store) -> EffectResult.
- Handlers read and write only the store they are given (a staged view);
  the engine commits the staged entities unless running dry.
- Every normalized attribute write is clamped to [0, 1].
- A missing entity is recorded in ``errors`` and the remaining targets are
  still processed. Already-patched siblings are not rolled back.
- "Set" handlers are idempotent, "delta" handlers are not. Exactly-once
  application is guaranteed by the ``last_applied_event_id`` watermark.
"""

import logging
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from wsc_kernel.chronicle.store import ChronicleLog
from wsc_kernel.effects.resolver import ReferenceResolver
from wsc_kernel.effects.staging import StagedStore
from wsc_kernel.entities.store import EntityStore
from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import EffectError, SchemaError
from wsc_kernel.models.chronicle import ChronicleEvent
from wsc_kernel.models.effects import EffectResult
from wsc_kernel.models.entity import Entity, EntityType
from wsc_kernel.models.world import WorldState

logger = logging.getLogger(__name__)

Handler = Callable[[ChronicleEvent, StagedStore], EffectResult]


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, float(value)))


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _slug(entity_id: str) -> str:
    return entity_id.split(".", 1)[1] if "." in entity_id else entity_id


def _of_type(ids: Iterable[str], entity_type: EntityType) -> List[str]:
    prefix = entity_type.value + "."
    return [i for i in ids if i.startswith(prefix)]


class EffectEngine:
    """Handler registry plus single-event, pending and batch application."""

    def __init__(
        self,
        store: EntityStore,
        resolver: Optional[ReferenceResolver] = None,
    ):
        self.store = store
        self.resolver = resolver or ReferenceResolver()
        self._handlers: Dict[str, Handler] = {}
        self._register_default_handlers()

    def _register_default_handlers(self) -> None:
        """Register the built-in event type handlers."""
        self._handlers["battle.resolved"] = self._apply_battle_resolved
        self._handlers["conflict.started"] = self._apply_conflict_started
        self._handlers["conflict.ended"] = self._apply_conflict_ended
        self._handlers["influence.changed"] = self._apply_influence_changed
        self._handlers["control.changed"] = self._apply_control_changed
        self._handlers["agent.killed"] = self._apply_agent_killed
        self._handlers["agent.promoted"] = self._apply_agent_promoted
        self._handlers["agent.defected"] = self._apply_agent_defected
        self._handlers["infrastructure.completed"] = self._apply_infrastructure_completed
        self._handlers["unrest.spike"] = self._apply_unrest_spike
        self._handlers["entity.created"] = self._apply_entity_created

    def register_handler(self, event_type: str, handler: Handler) -> None:
        """Register a custom handler for an event type."""
        self._handlers[event_type] = handler

    def handled_types(self) -> List[str]:
        return sorted(self._handlers)

    # --- Application ---

    def apply(self, event: ChronicleEvent, dry_run: bool = False) -> EffectResult:
        """Apply one event to the store. Ignores the watermark."""
        result = EffectResult(event_id=event.id, event_type=event.type, dry_run=dry_run)
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.debug("No handler for %s (%s)", event.type, event.id)
            return result

        staged = StagedStore(self.store)
        try:
            outcome = handler(event, staged)
        except Exception as e:
            logger.exception("Handler for %s failed on %s", event.type, event.id)
            result.errors.append(f"{event.id}: handler failed: {e}")
            return result

        result.handled = True
        result.modified = [i for i in outcome.modified if i not in staged.created]
        result.created = staged.created
        result.errors = outcome.errors
        result.patches = staged.patches()
        if not dry_run:
            staged.commit()

        logger.info(
            "%s %s (%s): %d modified, %d created, %d errors",
            "Simulated" if dry_run else "Applied",
            event.id, event.type,
            len(result.modified), len(result.created), len(result.errors),
        )
        return result

    def replay(self, events: Iterable[ChronicleEvent], dry_run: bool = False) -> EffectResult:
        """Apply events in order, accumulating one combined result."""
        engine = self if not dry_run else self._scratch()
        total = EffectResult(dry_run=dry_run)
        for event in events:
            total.merge(engine.apply(event))
            total.event_id = event.id
        return total

    def apply_pending(
        self, log: ChronicleLog, world_state: WorldState, dry_run: bool = False
    ) -> EffectResult:
        """Apply every event after the watermark."""
        return self._apply_range(log, world_state, None, dry_run)

    def apply_event(
        self,
        event_id: str,
        log: ChronicleLog,
        world_state: WorldState,
        dry_run: bool = False,
    ) -> EffectResult:
        """
        Apply ``event_id`` and any pending events before it, in log order.
        Events at or below the watermark are never applied twice.
        """
        event = log.get(event_id)
        if event is None:
            raise EffectError(f"Unknown event: {event_id}")
        if event.seq <= world_state.last_applied_event_id:
            return EffectResult(
                event_id=event.id,
                event_type=event.type,
                dry_run=dry_run,
                errors=[f"{event.id} already applied"],
            )
        return self._apply_range(log, world_state, event.seq, dry_run)

    def _apply_range(
        self,
        log: ChronicleLog,
        world_state: WorldState,
        up_to_seq: Optional[int],
        dry_run: bool,
    ) -> EffectResult:
        engine = self if not dry_run else self._scratch()
        total = EffectResult(dry_run=dry_run)
        for event in log.iter_events(world_state.last_applied_event_id, up_to_seq):
            total.merge(engine.apply(event))
            total.event_id = event.id
            total.event_type = event.type
            if not dry_run:
                world_state.active_conflicts = track_conflicts(world_state.active_conflicts, event, log)
                world_state.last_applied_event_id = event.seq
        return total

    def _scratch(self) -> "EffectEngine":
        """An engine over a copy of the store sharing this registry."""
        scratch = EffectEngine(self.store.copy(), self.resolver)
        scratch._handlers = dict(self._handlers)
        return scratch

    # --- Helpers ---

    def _write(self, store: StagedStore, entity: Entity, result: EffectResult) -> None:
        try:
            store.put(entity)
        except SchemaError as e:
            result.errors.append(f"{entity.id}: {e} {e.issues}")
            return
        if entity.id not in result.modified:
            result.modified.append(entity.id)

    def _load(
        self, store: StagedStore, entity_id: str, event: ChronicleEvent, result: EffectResult
    ) -> Optional[Entity]:
        entity = store.get(entity_id)
        if entity is None:
            result.errors.append(f"{event.id}: entity {entity_id} not found")
        return entity

    def _where_slug(self, event: ChronicleEvent) -> str:
        return _slug(event.where)

    def _presence_targets(self, event: ChronicleEvent) -> List[str]:
        """Presence ids named in ``who``, then ``presence.<polity>.<where>`` for polities."""
        targets = _of_type(event.who, EntityType.PRESENCE)
        for polity in _of_type(event.who, EntityType.POLITY):
            targets.append(f"presence.{_slug(polity)}.{self._where_slug(event)}")
        return list(dict.fromkeys(targets))

    # --- Handlers ---

    def _apply_battle_resolved(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        result = EffectResult()
        losses = event.data.get("losses")
        if not isinstance(losses, dict) or not losses:
            result.errors.append(f"{event.id}: battle.resolved has no data.losses")
            return result

        for key, loss in losses.items():
            resolution = self.resolver.resolve(key, event.who, store, EntityType.FORCE)
            if resolution is None:
                result.errors.append(f"{event.id}: could not resolve force {key!r}")
                continue
            strength_after = _number(loss.get("strength_after")) if isinstance(loss, dict) else None
            if strength_after is None:
                result.errors.append(f"{event.id}: losses[{key!r}] has no numeric strength_after")
                continue
            entity = store.get(resolution.entity_id)
            entity.attrs.set("strength", clamp(strength_after))
            self._write(store, entity, result)
        return result

    def _set_war_state(self, event: ChronicleEvent, store: StagedStore, at_war: bool) -> EffectResult:
        result = EffectResult()
        polities = _of_type(event.who, EntityType.POLITY)
        if not polities:
            result.errors.append(f"{event.id}: {event.type} names no polities in who")
            return result

        for polity in polities:
            presence_id = f"presence.{_slug(polity)}.{self._where_slug(event)}"
            entity = self._load(store, presence_id, event, result)
            if entity is None:
                continue
            states = [s for s in (entity.attrs.get("states_active") or []) if s != "at_war"]
            if at_war:
                states.append("at_war")
            entity.attrs.set("states_active", states)
            self._write(store, entity, result)
        return result

    def _apply_conflict_started(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        return self._set_war_state(event, store, at_war=True)

    def _apply_conflict_ended(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        return self._set_war_state(event, store, at_war=False)

    def _apply_influence_changed(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        result = EffectResult()
        new_value = _number(event.data.get("new_value"))
        delta = _number(event.data.get("delta"))
        if new_value is None and delta is None:
            result.errors.append(f"{event.id}: influence.changed needs data.new_value or data.delta")
            return result

        targets = self._presence_targets(event)
        if not targets:
            result.errors.append(f"{event.id}: influence.changed names no presence or polity")
            return result

        for presence_id in targets:
            entity = self._load(store, presence_id, event, result)
            if entity is None:
                continue
            if new_value is not None:
                value = new_value
            else:
                value = entity.attrs.get("influence", 0.0) + delta
            entity.attrs.set("influence", clamp(value))
            self._write(store, entity, result)
        return result

    def _apply_control_changed(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        result = EffectResult()
        new_controller = event.data.get("new_controller")
        if not new_controller:
            result.errors.append(f"{event.id}: control.changed has no data.new_controller")
            return result
        entity = self._load(store, event.where, event, result)
        if entity is not None:
            entity.attrs.set("owner_polity_id", new_controller)
            self._write(store, entity, result)
        return result

    def _patch_agents(
        self,
        event: ChronicleEvent,
        store: StagedStore,
        updates: Dict[str, Any],
    ) -> EffectResult:
        result = EffectResult()
        agents = _of_type(event.who, EntityType.AGENT)
        if not agents:
            result.errors.append(f"{event.id}: {event.type} names no agents in who")
            return result
        for agent_id in agents:
            entity = self._load(store, agent_id, event, result)
            if entity is None:
                continue
            for key, value in updates.items():
                entity.attrs.set(key, value)
            self._write(store, entity, result)
        return result

    def _apply_agent_killed(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        return self._patch_agents(event, store, {"status": "dead", "salience": 0})

    def _apply_agent_promoted(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        new_role = event.data.get("new_role")
        if not new_role:
            return EffectResult()
        return self._patch_agents(event, store, {"role": new_role})

    def _apply_agent_defected(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        new_affiliation = event.data.get("new_affiliation")
        if not new_affiliation:
            return EffectResult()
        return self._patch_agents(event, store, {"affiliation": new_affiliation})

    def _apply_infrastructure_completed(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        result = EffectResult()
        infrastructure_type = event.data.get("infrastructure_type")
        if not infrastructure_type:
            result.errors.append(f"{event.id}: infrastructure.completed has no data.infrastructure_type")
            return result
        level = event.data.get("level")
        if level is None:
            level = 1

        entity = self._load(store, event.where, event, result)
        if entity is not None:
            infrastructure = dict(entity.attrs.get("infrastructure") or {})
            infrastructure[infrastructure_type] = level
            entity.attrs.set("infrastructure", infrastructure)
            self._write(store, entity, result)
        return result

    def _apply_unrest_spike(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        result = EffectResult()
        new_value = _number(event.data.get("new_value"))
        delta = _number(event.data.get("delta", event.data.get("magnitude")))
        if new_value is None and delta is None:
            result.errors.append(f"{event.id}: unrest.spike needs data.new_value or data.delta")
            return result

        entity = self._load(store, event.where, event, result)
        if entity is not None:
            if new_value is not None:
                value = new_value
            else:
                value = entity.attrs.get("unrest", 0.0) + delta
            entity.attrs.set("unrest", clamp(value))
            self._write(store, entity, result)
        return result

    def _apply_entity_created(self, event: ChronicleEvent, store: StagedStore) -> EffectResult:
        """Promotion of a new entity carried whole in ``data.entity``."""
        result = EffectResult()
        raw = event.data.get("entity")
        report = validate_entity(raw)
        if not report.valid:
            result.errors.append(f"{event.id}: invalid entity: {'; '.join(report.errors)}")
            return result
        if store.has(report.entity.id):
            result.errors.append(f"{event.id}: entity {report.entity.id} already exists")
            return result
        self._write(store, report.entity, result)
        return result


def rebuild(
    log: ChronicleLog,
    seed_records: Iterable[Dict[str, Any]] = (),
    resolver: Optional[ReferenceResolver] = None,
) -> Tuple[EntityStore, EffectResult]:
    """Replay the full chronicle into a fresh store built from ``seed_records``."""
    store = EntityStore.from_records(seed_records)
    engine = EffectEngine(store, resolver)
    result = engine.replay(log.iter_events())
    return store, result


def track_conflicts(active: List[str], event: ChronicleEvent, log: ChronicleLog) -> List[str]:
    """
    Fold one event into the list of open ``conflict.started`` event ids.

    A ``conflict.ended`` closes the conflicts it names, either through
    ``data.conflict_id`` or its ``causes``. When it names none it closes every
    open conflict at the same ``where``.
    """
    if event.type == "conflict.started":
        return active if event.id in active else active + [event.id]
    if event.type != "conflict.ended":
        return active

    named = set(event.causes)
    if event.data.get("conflict_id"):
        named.add(event.data["conflict_id"])
    closing = named & set(active)
    if not closing:
        for conflict_id in active:
            started = log.get(conflict_id)
            if started is not None and started.where == event.where:
                closing.add(conflict_id)
    return [c for c in active if c not in closing]


def open_conflicts(log: ChronicleLog) -> List[str]:
    """Recompute the open conflicts from the whole chronicle."""
    active: List[str] = []
    for event in log.iter_events():
        active = track_conflicts(active, event, log)
    return active
