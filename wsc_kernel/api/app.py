"""
WSC Kernel API — FastAPI endpoints.

Exposes one world's kernel operations over REST for the external
orchestration loop and proposer personas:
- World status and tick advance
- Entity lookup, query, validation and creation
- Chronicle append (with dry run), query, tree and integrity check
- Effect application (with dry run)
- Condition evaluation and victory checks
"""

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wsc_kernel.config import Settings, get_settings
from wsc_kernel.entities.templates import create_from_template
from wsc_kernel.entities.validator import validate_entity
from wsc_kernel.errors import AppendError, EffectError, FatalError, SchemaError
from wsc_kernel.logging_config import configure_logging
from wsc_kernel.models.chronicle import ChronicleQuery, EventDraft, TimeScale
from wsc_kernel.world.context import WorldContext, world_path

logger = logging.getLogger(__name__)


# --- Request/Response Models ---

class EntityCreateRequest(BaseModel):
    type: str
    slug: str
    name: Optional[str] = None
    tags: List[str] = []
    attrs: Dict[str, Any] = {}
    dry_run: bool = False
    source: Optional[str] = None


class EmitRequest(EventDraft):
    dry_run: bool = False
    embed_location: Optional[bool] = None


class ApplyRequest(BaseModel):
    event_id: Optional[str] = None
    dry_run: bool = False


class EvaluateRequest(BaseModel):
    expression: str


class TickRequest(BaseModel):
    count: float = 1


class VictoryRequest(BaseModel):
    prior_passes: Optional[Dict[str, int]] = None


# --- Application Factory ---

def create_app(
    context: Optional[WorldContext] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    """Create and configure the FastAPI application for one world."""

    settings = settings or get_settings()
    configure_logging(settings.log_level)
    if context is not None:
        ctx = context
    elif settings.world_id:
        ctx = WorldContext.open(world_path(settings.world_id, settings), settings)
    else:
        ctx = WorldContext.in_memory(settings=settings)

    app = FastAPI(
        title="WSC Kernel API",
        description="World state, chronicle, effects and conditions for one world",
        version="0.1.0",
    )
    app.state.context = ctx
    app.state.settings = settings

    @app.exception_handler(FatalError)
    def fatal_error_handler(request: Request, exc: FatalError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    # === WORLD ===

    @app.get("/world/status")
    def world_status():
        """Current world summary."""
        return ctx.status()

    @app.post("/world/tick")
    def advance_tick(req: TickRequest):
        """Advance the world clock."""
        try:
            tick = ctx.advance_tick(req.count)
        except ValueError as e:
            raise HTTPException(400, str(e))
        return {"tick": tick}

    @app.post("/world/opportunities/{event_id}")
    def flag_opportunity(event_id: str):
        """Flag an event for a finer-scale drill-down."""
        try:
            return {"opportunities": ctx.flag_opportunity(event_id)}
        except ValueError as e:
            raise HTTPException(404, str(e))

    # === ENTITIES ===

    @app.get("/entities")
    def list_entities(type: Optional[str] = None, tag: Optional[str] = None):
        """Entities filtered by type and/or tag."""
        return [e.to_record() for e in ctx.store.query(entity_type=type, tag=tag)]

    @app.get("/entities/{entity_id}")
    def get_entity(entity_id: str):
        entity = ctx.store.get(entity_id)
        if not entity:
            raise HTTPException(404, "Entity not found")
        return entity.to_record()

    @app.post("/entities/validate")
    def validate(record: Dict[str, Any]):
        """Validate a raw entity record without storing it."""
        report = validate_entity(record)
        return {
            "valid": report.valid,
            "entity_id": report.entity_id,
            "errors": report.errors,
            "warnings": report.warnings,
        }

    @app.post("/entities")
    def create_entity(req: EntityCreateRequest):
        """Create an entity from its type template via an ``entity.created`` event."""
        try:
            entity = create_from_template(req.type, req.slug, req.name, req.tags, req.attrs)
        except SchemaError as e:
            raise HTTPException(400, {"message": str(e), "issues": e.issues})
        try:
            entity = ctx.create_entity(entity, dry_run=req.dry_run, source=req.source)
        except ValueError as e:
            raise HTTPException(409, str(e))
        except SchemaError as e:
            raise HTTPException(400, {"message": str(e), "issues": e.issues})
        return {"id": entity.id, "dry_run": req.dry_run, "entity": entity.to_record()}

    # === CHRONICLE ===

    @app.post("/chronicle/events")
    def emit_event(req: EmitRequest):
        """Append an event (or validate and format it with dry_run)."""
        draft = EventDraft.model_validate(req.model_dump(exclude={"dry_run", "embed_location"}))
        try:
            event = ctx.emit(draft, dry_run=req.dry_run, embed_location=req.embed_location)
        except AppendError as e:
            raise HTTPException(400, str(e))
        return {"id": event.id, "dry_run": req.dry_run, "event": event.to_record()}

    @app.get("/chronicle/events")
    def query_events(
        type: Optional[str] = None,
        where: Optional[str] = None,
        who: Optional[str] = None,
        min_importance: Optional[float] = None,
        max_importance: Optional[float] = None,
        min_t_world: Optional[float] = None,
        max_t_world: Optional[float] = None,
        scale: Optional[TimeScale] = None,
        depth: Optional[int] = None,
        causes_of: Optional[str] = None,
        caused_by: Optional[str] = None,
        limit: Optional[int] = None,
    ):
        """Conjunctive chronicle query, newest world time first."""
        q = ChronicleQuery(
            event_type=type,
            where=where,
            who=who,
            min_importance=min_importance,
            max_importance=max_importance,
            min_t_world=min_t_world,
            max_t_world=max_t_world,
            scale=scale,
            depth=depth,
            causes_of=causes_of,
            caused_by=caused_by,
            limit=limit or settings.default_query_limit,
        )
        return [e.to_record() for e in ctx.query(q)]

    @app.get("/chronicle/verify")
    def verify_chronicle():
        """Verify chain integrity."""
        return {
            "integrity_valid": ctx.log.verify_chain_integrity(),
            "total_events": ctx.log.count(),
        }

    @app.get("/chronicle/events/{event_id}")
    def get_event(event_id: str):
        event = ctx.log.get(event_id)
        if not event:
            raise HTTPException(404, f"Event {event_id} not found")
        return event.to_record()

    @app.get("/chronicle/tree/{event_id}")
    def get_tree(event_id: str):
        """The drill-down tree rooted at an event."""
        nodes = ctx.log.tree(event_id)
        if not nodes:
            raise HTTPException(404, f"Event {event_id} not found")
        return [
            {"distance": n.distance, "event": n.event.to_record()}
            for n in nodes
        ]

    # === EFFECTS ===

    @app.post("/effects/apply")
    def apply_effects(req: ApplyRequest):
        """Apply one event (and any pending before it) or all pending events."""
        try:
            result = ctx.apply_effects(req.event_id, dry_run=req.dry_run)
        except EffectError as e:
            raise HTTPException(404, str(e))
        return result.model_dump(mode="json")

    @app.get("/effects/handlers")
    def list_handlers():
        return ctx.effects.handled_types()

    # === CONDITIONS ===

    @app.post("/conditions/evaluate")
    def evaluate_condition(req: EvaluateRequest):
        return ctx.evaluate(req.expression).model_dump(mode="json")

    @app.post("/victory/check")
    def check_victory(req: VictoryRequest):
        """Victory/stalemate check; ``exit_code`` follows 0/10/11/1."""
        check = ctx.check_victory(req.prior_passes)
        return {**check.to_record(), "exit_code": check.exit_code}

    return app


# Default application instance
app = create_app()
