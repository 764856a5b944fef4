from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import structlog
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine

from tancms import __version__, repo
from tancms.bulk import DEFAULT_ACTIONS, find_action, run_bulk_action
from tancms.config import Settings, get_settings
from tancms.db import db_ping, engine_from_env
from tancms.errors import CmsError
from tancms.formatters import get_field_type_label, render_entry
from tancms.logging_config import configure_logging
from tancms.models import FieldType
from tancms.schemas import (
    AllowedTransitionsOut,
    BulkActionDefOut,
    BulkActionIn,
    BulkActionOut,
    ContentTypeCreateIn,
    ContentTypeDeletedOut,
    ContentTypeOut,
    ContentTypePatchIn,
    EntryCreateIn,
    EntryDetailOut,
    EntryListOut,
    EntryPatchIn,
    FieldIn,
    FieldOut,
    FieldPatchIn,
    TransitionIn,
    TransitionOut,
)
from tancms.validation import validate_field_values, validate_slug
from tancms.workflow import WorkflowError, allowed_transitions, list_states, validate_schedule

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    owns_engine = app.state.engine is None
    if owns_engine:
        app.state.engine = engine_from_env()
        logger.info("db.engine_opened", dialect=app.state.engine.dialect.name)
    try:
        yield
    finally:
        if owns_engine:
            app.state.engine.dispose()
            app.state.engine = None
            logger.info("db.engine_closed")


def get_engine(request: Request) -> Engine:
    engine = request.app.state.engine
    if engine is None:
        raise RuntimeError("Database engine is not initialised")
    return engine


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _page_size(settings: Settings, requested: Optional[int]) -> int:
    return min(requested or settings.default_page_size, settings.max_page_size)


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(CmsError)
    async def _cms_error_handler(request: Request, exc: CmsError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_public_dict())

    @app.exception_handler(WorkflowError)
    async def _workflow_error_handler(request: Request, exc: WorkflowError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc), "code": "workflow.invalid_transition"})


def create_app(engine: Optional[Engine] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API. Pass `engine` to bind an existing persistence handle (the
    caller then owns its lifecycle); otherwise one is opened from DATABASE_URL
    at startup and disposed at shutdown.
    """
    settings = settings or get_settings()
    configure_logging(settings)

    app = FastAPI(title="TanCMS API", version=__version__, lifespan=lifespan)
    app.state.engine = engine
    app.state.settings = settings
    register_exception_handlers(app)

    # -----------------------------
    # Health checks
    # -----------------------------
    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/readyz")
    def readyz(engine: Engine = Depends(get_engine)):
        db_ping(engine)
        return {"status": "ready", "db": "ok"}

    # -----------------------------
    # Reference data
    # -----------------------------
    @app.get("/field-types")
    def field_types():
        return {"field_types": [{"type": ft.value, "label": get_field_type_label(ft.value)} for ft in FieldType]}

    @app.get("/workflow/states")
    def workflow_states():
        return {"states": list_states()}

    @app.get("/workflow/bulk-actions", response_model=List[BulkActionDefOut])
    def workflow_bulk_actions():
        return DEFAULT_ACTIONS

    # -----------------------------
    # Content types
    # -----------------------------
    @app.get("/content-types", response_model=List[ContentTypeOut])
    def list_content_types(engine: Engine = Depends(get_engine)):
        return repo.list_content_types(engine)

    @app.post("/content-types", response_model=ContentTypeOut, status_code=201)
    def create_content_type(body: ContentTypeCreateIn, engine: Engine = Depends(get_engine)):
        return repo.create_content_type(
            engine,
            name=body.name,
            display_name=body.display_name,
            description=body.description,
            fields=[f.model_dump() for f in body.fields],
        )

    @app.get("/content-types/by-slug/{slug}", response_model=ContentTypeOut)
    def get_content_type_by_slug(slug: str, engine: Engine = Depends(get_engine)):
        return repo.get_content_type_by_slug(engine, slug)

    @app.get("/content-types/{type_id}", response_model=ContentTypeOut)
    def get_content_type(type_id: str, engine: Engine = Depends(get_engine)):
        return repo.get_content_type(engine, type_id)

    @app.patch("/content-types/{type_id}", response_model=ContentTypeOut)
    def update_content_type(type_id: str, body: ContentTypePatchIn, engine: Engine = Depends(get_engine)):
        return repo.update_content_type(engine, type_id, body.model_dump(exclude_unset=True))

    @app.delete("/content-types/{type_id}", response_model=ContentTypeDeletedOut)
    def delete_content_type(type_id: str, engine: Engine = Depends(get_engine)):
        return repo.delete_content_type(engine, type_id)

    # -----------------------------
    # Fields
    # -----------------------------
    @app.post("/content-types/{type_id}/fields", response_model=FieldOut, status_code=201)
    def add_field(type_id: str, body: FieldIn, engine: Engine = Depends(get_engine)):
        return repo.add_field(engine, type_id, body.model_dump())

    @app.patch("/fields/{field_id}", response_model=FieldOut)
    def update_field(field_id: str, body: FieldPatchIn, engine: Engine = Depends(get_engine)):
        return repo.update_field(engine, field_id, body.model_dump(exclude_unset=True))

    @app.delete("/fields/{field_id}", status_code=204)
    def delete_field(field_id: str, engine: Engine = Depends(get_engine)):
        repo.delete_field(engine, field_id)

    # -----------------------------
    # Entries
    # -----------------------------
    @app.get("/content-types/{type_id}/entries", response_model=EntryListOut)
    def list_entries(
        type_id: str,
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1),
        status: Optional[str] = None,
        q: Optional[str] = None,
        engine: Engine = Depends(get_engine),
        settings: Settings = Depends(get_app_settings),
    ):
        return repo.list_entries(
            engine, type_id, page=page, page_size=_page_size(settings, page_size), status=status, q=q
        )

    @app.post("/content-types/{type_id}/entries", response_model=EntryDetailOut, status_code=201)
    def create_entry(type_id: str, body: EntryCreateIn, engine: Engine = Depends(get_engine)):
        content_type = repo.get_content_type(engine, type_id)
        field_values = [fv.model_dump() for fv in body.field_values]

        validate_slug(body.slug)
        validate_field_values(content_type, field_values)
        validate_schedule(body.status.value, body.scheduled_at)

        return repo.create_entry(
            engine,
            type_id,
            slug=body.slug,
            field_values=field_values,
            status=body.status.value,
            scheduled_at=body.scheduled_at,
        )

    @app.post("/entries/bulk", response_model=BulkActionOut)
    def bulk_action(body: BulkActionIn, engine: Engine = Depends(get_engine)):
        action = find_action(body.action)
        if action.requires_confirmation and not body.confirm:
            raise CmsError(
                code="bulk.confirmation_required",
                message=action.confirmation_message or f"Action '{action.id}' requires confirmation",
                status_code=409,
                meta={"action": action.id, "items": len(body.entry_ids)},
            )
        return run_bulk_action(engine, action.id, body.entry_ids, body.scheduled_at)

    @app.get("/entries/{entry_id}", response_model=EntryDetailOut)
    def get_entry(entry_id: str, engine: Engine = Depends(get_engine)):
        return repo.get_entry(engine, entry_id)

    @app.patch("/entries/{entry_id}", response_model=EntryDetailOut)
    def update_entry(entry_id: str, body: EntryPatchIn, engine: Engine = Depends(get_engine)):
        changes: Dict[str, Any] = body.model_dump(exclude_unset=True)

        if "slug" in changes:
            validate_slug(changes["slug"])
        if changes.get("field_values") is not None:
            current = repo.get_entry(engine, entry_id)
            validate_field_values(current["content_type"], changes["field_values"])

        return repo.update_entry(engine, entry_id, changes)

    @app.delete("/entries/{entry_id}", status_code=204)
    def delete_entry(entry_id: str, engine: Engine = Depends(get_engine)):
        repo.delete_entry(engine, entry_id)

    @app.get("/entries/{entry_id}/allowed", response_model=AllowedTransitionsOut)
    def entry_allowed(entry_id: str, engine: Engine = Depends(get_engine)):
        entry = repo.get_entry(engine, entry_id)
        return {
            "entry_id": entry_id,
            "from_status": entry["status"],
            "allowed": allowed_transitions(entry["status"]),
        }

    @app.post("/entries/{entry_id}/transition", response_model=TransitionOut)
    def transition(entry_id: str, body: TransitionIn, engine: Engine = Depends(get_engine)):
        try:
            return repo.set_entry_status(engine, entry_id, body.to_status.value, body.scheduled_at)
        except WorkflowError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/entries/{entry_id}/preview")
    def preview_entry(entry_id: str, engine: Engine = Depends(get_engine)):
        return render_entry(repo.get_entry(engine, entry_id))

    # -----------------------------
    # Public rendering surface (published entries only)
    # -----------------------------
    @app.get("/public/{type_slug}")
    def public_list(
        type_slug: str,
        page: int = Query(1, ge=1),
        page_size: Optional[int] = Query(None, ge=1),
        engine: Engine = Depends(get_engine),
        settings: Settings = Depends(get_app_settings),
    ):
        result = repo.list_published_entries(engine, type_slug, page=page, page_size=_page_size(settings, page_size))
        content_type = result.pop("content_type")
        entries = result.pop("entries")
        for entry in entries:
            entry["content_type"] = content_type
        result["entries"] = [render_entry(e) for e in entries]
        return result

    @app.get("/public/{type_slug}/{entry_slug}")
    def public_entry(type_slug: str, entry_slug: str, engine: Engine = Depends(get_engine)):
        return render_entry(repo.get_published_entry(engine, type_slug, entry_slug))

    return app


app = create_app()
