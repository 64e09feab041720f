"""
World Context — everything one world instance needs, passed explicitly.

There is no process-wide "active world": callers construct a context once
(``create`` / ``open`` / ``in_memory``) and hand it to every operation, so
several worlds can live side by side in one process.

On-disk layout of a world directory::

    world.json       WorldState (tick, id cursor, effect watermark, ...)
    entities.json    entity snapshot (sorted by id) and its effect watermark
    locations.json   location tree
    scenario.json    the scenario the world was created from
    chronicle.db     append-only chronicle (SQLite)
"""

import json
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import ValidationError

from wsc_kernel.chronicle.store import ChronicleLog
from wsc_kernel.chronicle.writer import EventWriter
from wsc_kernel.conditions.evaluator import evaluate
from wsc_kernel.config import Settings, get_settings
from wsc_kernel.effects.engine import EffectEngine, open_conflicts, rebuild
from wsc_kernel.entities.store import EntityStore
from wsc_kernel.errors import FatalError, SchemaError
from wsc_kernel.locations.resolver import LocationResolver
from wsc_kernel.models.chronicle import ChronicleEvent, ChronicleQuery, EventDraft, TimeScale
from wsc_kernel.models.conditions import EvaluationResult, VictoryCheck, VictoryStatus
from wsc_kernel.models.effects import EffectResult
from wsc_kernel.models.entity import Entity
from wsc_kernel.models.location import LocationRecord
from wsc_kernel.models.scenario import Scenario
from wsc_kernel.models.world import WorldState
from wsc_kernel.victory.checker import VictoryChecker

logger = logging.getLogger(__name__)

WORLD_FILE = "world.json"
ENTITIES_FILE = "entities.json"
LOCATIONS_FILE = "locations.json"
SCENARIO_FILE = "scenario.json"
CHRONICLE_DB = "chronicle.db"


def _write_json(path: Path, payload: Any) -> None:
    """Write via a temp file and rename so readers never see a partial file."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
    os.replace(tmp, path)


def _read_json(path: Path) -> Any:
    if not path.is_file():
        raise FatalError(f"Missing world file: {path}")
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise FatalError(f"Corrupt world file {path}: {e}") from e


class WorldContext:
    """One world: entity store, chronicle, locations, scenario and world state."""

    def __init__(
        self,
        world_state: WorldState,
        store: EntityStore,
        log: ChronicleLog,
        locations: Optional[LocationResolver] = None,
        scenario: Optional[Scenario] = None,
        root: Optional[Path] = None,
        settings: Optional[Settings] = None,
    ):
        self.world_state = world_state
        self.store = store
        self.log = log
        self.locations = locations or LocationResolver()
        self.scenario = scenario
        self.root = root
        self.settings = settings or get_settings()
        # One writer per world: appends, effect application and tick advance
        self.lock = threading.RLock()

        self.writer = EventWriter(
            log,
            world_state,
            locations=self.locations,
            default_scale=TimeScale(self.settings.default_scale),
            on_commit=lambda _: self._save_world_state(),
            lock=self.lock,
        )
        self.effects = EffectEngine(store)

    # --- Construction ---

    @classmethod
    def in_memory(
        cls,
        world_id: str = "scratch",
        scenario: Optional[Scenario] = None,
        settings: Optional[Settings] = None,
    ) -> "WorldContext":
        """A world with no files behind it (tests, dry runs)."""
        return cls._from_scenario(world_id, scenario, ChronicleLog(":memory:"), None, settings)

    @classmethod
    def create(
        cls,
        root: Union[str, Path],
        scenario: Scenario,
        world_id: Optional[str] = None,
        settings: Optional[Settings] = None,
    ) -> "WorldContext":
        """Initialize a new world directory from a scenario."""
        root = Path(root)
        if (root / WORLD_FILE).exists():
            raise FatalError(f"World already exists: {root}")
        root.mkdir(parents=True, exist_ok=True)

        log = ChronicleLog(str(root / CHRONICLE_DB))
        context = cls._from_scenario(world_id or root.name, scenario, log, root, settings)
        context.save()
        logger.info("Created world %s from scenario %s", context.world_state.world_id, scenario.id)
        return context

    @classmethod
    def _from_scenario(
        cls,
        world_id: str,
        scenario: Optional[Scenario],
        log: ChronicleLog,
        root: Optional[Path],
        settings: Optional[Settings],
    ) -> "WorldContext":
        now = datetime.utcnow()
        world_state = WorldState(
            world_id=world_id,
            tick=scenario.start_tick if scenario else 0,
            active_scenario=scenario.id if scenario else None,
            created_at=now,
            updated_at=now,
            settings=dict(scenario.settings) if scenario else {},
        )
        store = EntityStore.from_records(scenario.entities if scenario else [])
        locations = LocationResolver(scenario.locations if scenario else [])
        return cls(world_state, store, log, locations, scenario, root, settings)

    @classmethod
    def open(cls, root: Union[str, Path], settings: Optional[Settings] = None) -> "WorldContext":
        """
        Load an existing world. Raises FatalError before touching anything if
        files are missing or malformed.

        The effect watermark is read from ``entities.json``, which is written
        together with the snapshot it describes. The id cursor is moved up to
        the chronicle head if ``world.json`` lags behind the log.
        """
        root = Path(root)
        if not (root / WORLD_FILE).is_file():
            raise FatalError(f"World not found: {root}")

        try:
            world_state = WorldState.model_validate(_read_json(root / WORLD_FILE))
            locations = LocationResolver(
                LocationRecord.model_validate(r)
                for r in _read_json(root / LOCATIONS_FILE)
            )
            scenario = None
            if (root / SCENARIO_FILE).is_file():
                scenario = Scenario.model_validate(_read_json(root / SCENARIO_FILE))
        except ValidationError as e:
            raise FatalError(f"World {root} is malformed: {e}") from e

        snapshot = _read_json(root / ENTITIES_FILE)
        if not isinstance(snapshot, dict) or not isinstance(snapshot.get("entities"), dict):
            raise FatalError(f"World {root} has a malformed {ENTITIES_FILE}")
        try:
            store = EntityStore.from_records(snapshot["entities"].values())
        except SchemaError as e:
            raise FatalError(f"World {root} has invalid entities: {e.issues}") from e
        world_state.last_applied_event_id = snapshot.get("last_applied_event_id", 0)

        log = ChronicleLog(str(root / CHRONICLE_DB))
        head = log.last_seq()
        if world_state.last_event_id < head:
            logger.warning(
                "World %s cursor evt_%d lags the chronicle head evt_%d; advancing",
                world_state.world_id, world_state.last_event_id, head,
            )
            world_state.last_event_id = head
        return cls(world_state, store, log, locations, scenario, root, settings)

    # --- Persistence ---

    def _save_world_state(self) -> None:
        if self.root is not None:
            _write_json(self.root / WORLD_FILE, self.world_state.to_record())

    def save(self) -> None:
        """
        Persist entities, locations, scenario and world state (no-op in memory).
        The entity snapshot carries its own watermark, so a crash between
        files never drops or repeats applied effects.
        """
        if self.root is None:
            return
        with self.lock:
            self.world_state.updated_at = datetime.utcnow()
            _write_json(self.root / ENTITIES_FILE, {
                "last_applied_event_id": self.world_state.last_applied_event_id,
                "entities": self.store.snapshot(),
            })
            _write_json(
                self.root / LOCATIONS_FILE,
                [r.model_dump(mode="json", exclude_none=True) for r in self.locations.records()],
            )
            if self.scenario is not None:
                _write_json(self.root / SCENARIO_FILE, self.scenario.model_dump(mode="json"))
            self._save_world_state()

    def close(self) -> None:
        self.log.close()

    # --- Operations ---

    def emit(
        self,
        draft: EventDraft,
        dry_run: bool = False,
        embed_location: Optional[bool] = None,
    ) -> ChronicleEvent:
        """Append an event through the single writer queue."""
        if embed_location is None:
            embed_location = self.settings.embed_locations
        return self.writer.emit(draft, dry_run=dry_run, embed_location=embed_location)

    def query(self, q: Optional[ChronicleQuery] = None) -> List[ChronicleEvent]:
        return self.log.query(q)

    def apply_effects(self, event_id: Optional[str] = None, dry_run: bool = False) -> EffectResult:
        """Apply one event (plus any pending before it) or all pending events."""
        with self.lock:
            if event_id:
                result = self.effects.apply_event(event_id, self.log, self.world_state, dry_run=dry_run)
            else:
                result = self.effects.apply_pending(self.log, self.world_state, dry_run=dry_run)
            if not dry_run:
                self.save()
        return result

    def create_entity(self, entity: Entity, dry_run: bool = False, source: Optional[str] = None) -> Entity:
        """
        Bring a new entity into play through an ``entity.created`` event, so a
        rebuild from the chronicle reproduces it. Raises ValueError if the id
        is taken and SchemaError if the engine rejects the record.
        """
        with self.lock:
            if self.store.has(entity.id):
                raise ValueError(f"Entity {entity.id} already exists")
            if dry_run:
                return entity

            event = self.emit(EventDraft(
                type="entity.created",
                where=entity.id,
                who=[entity.id],
                data={"entity": entity.to_record()},
                source=source,
            ))
            result = self.apply_effects(event.id)
            if entity.id not in result.created:
                raise SchemaError(f"Entity {entity.id} was not created", issues=result.errors)
            return self.store.get(entity.id)

    def rebuild_entities(self) -> EffectResult:
        """Rebuild the store from the scenario's entities by replaying the whole chronicle."""
        with self.lock:
            seed = self.scenario.entities if self.scenario else []
            store, result = rebuild(self.log, seed, self.effects.resolver)
            self.store = store
            self.effects.store = store
            self.world_state.last_applied_event_id = self.log.last_seq()
            self.world_state.active_conflicts = open_conflicts(self.log)
            self.save()
        return result

    def evaluate(self, expression: str) -> EvaluationResult:
        return evaluate(expression, self.store, self.world_state)

    def check_victory(self, prior_passes: Optional[Mapping[str, int]] = None) -> VictoryCheck:
        if self.scenario is None:
            raise FatalError(f"World {self.world_state.world_id} has no scenario")
        return VictoryChecker().check(
            self.store,
            self.world_state,
            self.scenario,
            entity_count=self.store.count(),
            prior_passes=prior_passes,
        )

    def advance_tick(self, count: float = 1) -> float:
        if count <= 0:
            raise ValueError("Tick count must be positive")
        with self.lock:
            self.world_state.tick += count
            self.save()
            tick = self.world_state.tick
        logger.info("World %s advanced to tick %s", self.world_state.world_id, tick)
        return tick

    def flag_opportunity(self, event_id: str) -> List[str]:
        """Mark an event as eligible for a finer-scale drill-down."""
        if self.log.get(event_id) is None:
            raise ValueError(f"Unknown event: {event_id}")
        with self.lock:
            if event_id not in self.world_state.opportunities:
                self.world_state.opportunities.append(event_id)
                self.save()
            return list(self.world_state.opportunities)

    def status(self) -> Dict[str, Any]:
        return {
            **self.world_state.to_record(),
            "entities": self.store.count(),
            "events": self.log.count(),
            "pending_effects": self.log.last_seq() - self.world_state.last_applied_event_id,
        }


def world_path(world_id: str, settings: Optional[Settings] = None) -> Path:
    settings = settings or get_settings()
    return Path(settings.worlds_dir) / world_id


def list_worlds(settings: Optional[Settings] = None) -> List[str]:
    settings = settings or get_settings()
    root = Path(settings.worlds_dir)
    if not root.is_dir():
        return []
    return sorted(p.name for p in root.iterdir() if (p / WORLD_FILE).is_file())


def check_world_victory(
    world_id: str,
    settings: Optional[Settings] = None,
    prior_passes: Optional[Mapping[str, int]] = None,
) -> VictoryCheck:
    """Victory check by world id. A missing world or scenario yields status ``error``."""
    try:
        context = WorldContext.open(world_path(world_id, settings), settings)
    except FatalError as e:
        return VictoryCheck(continue_=False, status=VictoryStatus.ERROR, details={"error": str(e)})
    try:
        return context.check_victory(prior_passes)
    except FatalError as e:
        return VictoryCheck(continue_=False, status=VictoryStatus.ERROR, details={"error": str(e)})
    finally:
        context.close()
