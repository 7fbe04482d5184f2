"""FastAPI application for LarpPlanner."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, tzinfo
from functools import partial
from importlib.metadata import PackageNotFoundError, version as pkg_version
from pathlib import Path
from typing import Any, Iterable, Sequence
import tomllib

from fastapi import Depends, FastAPI, HTTPException, Query, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import BaseModel, Field
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import crud
from .colors import color_option, status_badge
from .config import settings
from .database import SessionLocal
from .dates import (
    format_instant,
    parse_input_datetime,
    resolve_timezone,
    to_local,
)
from .layout import (
    ScheduleLayout,
    PositionedBlock,
    block_geometry,
    compute_schedule,
    hour_blocks,
    is_outside_window,
    normalize_statuses,
)
from .models import Event, Game, Module, System
from .month_view import WEEKDAY_NAMES, month_grid, next_month, partition_events
from .permissions import (
    PermissionDenied,
    Viewer,
    can_create_game,
    can_create_module,
    can_edit_module,
    can_manage_game,
    can_manage_systems,
    can_review_module,
    can_submit_module,
    can_view_module,
    load_viewer,
    require,
)
from .storage import init_db
from .users import get_display_names
from .utils import format_duration_hours, humanize_time, utcnow

# Use uvicorn's error logger so messages get the level prefix in the default log
# format.
logger = logging.getLogger("uvicorn.error")

USER_HEADER = "x-user-id"


def _load_app_version() -> str:
    """Return the current package version, falling back to pyproject for dev runs."""
    try:
        return pkg_version("larpplanner")
    except PackageNotFoundError:
        pyproject_path = Path(__file__).resolve().parent.parent / "pyproject.toml"
        if pyproject_path.exists():
            data = tomllib.loads(pyproject_path.read_text())
            project = data.get("project") or {}
            return str(project.get("version") or "dev")
    return "dev"


APP_VERSION = _load_app_version()


@asynccontextmanager
async def lifespan(_: FastAPI):
    init_db()
    logger.info("LarpPlanner %s ready", APP_VERSION)
    yield


app = FastAPI(title="LarpPlanner", version=APP_VERSION, lifespan=lifespan)
templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
static_dir = Path(__file__).parent / "static"
app.mount("/static", StaticFiles(directory=str(static_dir)), name="static")

templates.env.globals["app_version"] = APP_VERSION
templates.env.globals["block_geometry"] = block_geometry
templates.env.globals["color_option"] = color_option
templates.env.globals["status_badge"] = status_badge
templates.env.globals["hour_blocks"] = hour_blocks
templates.env.filters["relative_time"] = humanize_time
templates.env.filters["duration_hours"] = format_duration_hours


def get_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def _wants_json(request: Request) -> bool:
    accept = (request.headers.get("accept") or "").lower()
    return request.url.path.startswith("/api/") or (
        "application/json" in accept and "text/html" not in accept
    )


def _render_error(request: Request, status_code: int, message: str | None):
    context = {
        "request": request,
        "status_code": status_code,
        "error_message": message or "Something went wrong.",
    }
    return templates.TemplateResponse(
        request, "error.html", context, status_code=status_code
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    """Render HTTP errors as friendly pages unless JSON was requested."""
    if _wants_json(request):
        return JSONResponse({"detail": exc.detail}, status_code=exc.status_code)
    detail = exc.detail if isinstance(exc.detail, str) else "Something went wrong."
    return _render_error(request, exc.status_code, detail)


@app.exception_handler(PermissionDenied)
async def permission_denied_handler(request: Request, exc: PermissionDenied):
    logger.info(
        "Permission denied on %s %s: %s", request.method, request.url.path, exc
    )
    detail = str(exc) or "Forbidden"
    if _wants_json(request):
        return JSONResponse({"detail": detail}, status_code=403)
    return _render_error(request, 403, detail)


@app.exception_handler(OperationalError)
async def operational_error_handler(request: Request, exc: OperationalError):
    raw = str(exc.orig) if getattr(exc, "orig", None) else str(exc)
    if "database is locked" in raw.lower():
        logger.error(
            "SQLite database is locked while handling %s %s",
            request.method,
            request.url.path,
        )
        detail = "The database is busy at the moment. Please wait a few seconds and try again."
        status = 503
    else:
        logger.error(
            "Operational database error on %s %s: %s",
            request.method,
            request.url.path,
            raw,
        )
        detail = "We hit a database issue. Please try again."
        status = 500
    if _wants_json(request):
        return JSONResponse({"detail": detail}, status_code=status)
    return _render_error(request, status, detail)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    if _wants_json(request):
        return JSONResponse({"detail": exc.errors()}, status_code=422)
    return _render_error(
        request,
        422,
        "Some of the fields were invalid. Please double-check and try again.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Gracefully handle unexpected errors."""
    logger.exception(
        "Unhandled error while processing %s %s", request.method, request.url.path
    )
    if _wants_json(request):
        return JSONResponse({"detail": "Internal server error"}, status_code=500)
    return _render_error(
        request,
        500,
        "We hit a snag while processing that request. Please try again.",
    )


# Identity and lookups


def _get_user_id(request: Request) -> str | None:
    """Return the opaque user id supplied by the identity provider."""
    header_value = (request.headers.get(USER_HEADER) or "").strip()
    if header_value:
        return header_value
    auth_header = request.headers.get("authorization") or ""
    if not auth_header.lower().startswith("bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None


def _require_user(request: Request) -> str:
    user_id = _get_user_id(request)
    if not user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return user_id


def _viewer(db: Session, request: Request, game_id: str | None = None) -> Viewer:
    return load_viewer(db, _get_user_id(request), game_id)


def _ensure_system(db: Session, system_id: str) -> System:
    system = db.get(System, system_id)
    if not system:
        raise HTTPException(status_code=404, detail="System not found")
    return system


def _ensure_game(db: Session, game_id: str) -> Game:
    game = db.get(Game, game_id)
    if not game:
        raise HTTPException(status_code=404, detail="Game not found")
    return game


def _ensure_event(db: Session, event_id: str) -> Event:
    event = db.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


def _ensure_module(db: Session, module_id: str) -> Module:
    module = db.get(Module, module_id)
    if not module:
        raise HTTPException(status_code=404, detail="Module not found")
    return module


def _resolve_tz(name: str | None) -> tuple[str, tzinfo]:
    zone_name = (name or "").strip() or settings.display_timezone
    try:
        return zone_name, resolve_timezone(zone_name)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _parse_time(name: str, raw: str | None, tz: tzinfo) -> datetime:
    if not raw:
        raise HTTPException(status_code=400, detail=f"Missing {name}")
    try:
        return parse_input_datetime(raw, tz)
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail=f"Invalid {name}; use ISO8601 format"
        ) from exc


def _bad_request(exc: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(exc))


# Serialization


def _serialize_system(system: System):
    return {
        "id": system.id,
        "name": system.name,
        "description": system.description,
        "authors": system.authors,
        "url": system.url,
        "created_at": format_instant(system.created_at),
        "last_modified": format_instant(system.last_modified),
    }


def _serialize_game(game: Game, *, include_members: bool = False):
    payload = {
        "id": game.id,
        "system_id": game.system_id,
        "name": game.name,
        "description": game.description,
        "module_properties": list(game.module_properties or []),
        "created_at": format_instant(game.created_at),
        "last_modified": format_instant(game.last_modified),
    }
    if include_members:
        payload["admins"] = game.user_ids_with_role("admin")
        payload["writers"] = game.user_ids_with_role("writer")
    return payload


def _serialize_event(event: Event):
    return {
        "id": event.id,
        "game_id": event.game_id,
        "name": event.name,
        "description": event.description,
        "start_time": format_instant(event.start_time),
        "end_time": format_instant(event.end_time),
        "created_at": format_instant(event.created_at),
        "last_modified": format_instant(event.last_modified),
        "links": {
            "schedule": f"/api/v1/events/{event.id}/schedule",
            "schedule_page": f"/events/{event.id}/schedule",
        },
    }


def _serialize_module(module: Module, author_names: dict[str, str] | None = None):
    activity = crud.module_to_activity(module)
    badge = status_badge(module.approval_status)
    return {
        "id": module.id,
        "event_id": module.event_id,
        "author_id": module.author_id,
        "author_name": (author_names or {}).get(module.author_id or ""),
        "name": module.name,
        "summary": module.summary,
        "start_time": format_instant(module.start_time),
        "end_time": format_instant(activity.end_time) if activity.end_time else None,
        "duration": module.duration,
        "color": module.color,
        "properties": dict(module.properties or {}),
        "approval_status": badge["status"],
        "approval_label": badge["label"],
        "approval_comment": module.approval_comment,
        "created_at": format_instant(module.created_at),
        "last_modified": format_instant(module.last_modified),
    }


def _serialize_block(
    block: PositionedBlock, tz: tzinfo, author_names: dict[str, str]
) -> dict[str, Any]:
    geometry = block_geometry(block)
    return {
        "activity_id": block.activity_id,
        "name": block.name,
        "author_id": block.author_id,
        "author_name": author_names.get(block.author_id or "", "Unknown"),
        "color": block.color,
        "approval_status": block.approval_status,
        "day": block.day.isoformat(),
        "row_start": block.row_start,
        "row_span": block.row_span,
        "column": block.column,
        "column_count": block.column_count,
        "block_start": format_instant(block.block_start),
        "block_end": format_instant(block.block_end),
        "local_start": to_local(block.block_start, tz).strftime("%H:%M"),
        "local_end": to_local(block.block_end, tz).strftime("%H:%M"),
        "geometry": {
            "top": geometry.top,
            "height": geometry.height,
            "left": geometry.left,
            "width": geometry.width,
        },
    }


def _serialize_layout(
    event: Event,
    layout: ScheduleLayout,
    *,
    zone_name: str,
    buffer_hours: float,
    author_names: dict[str, str],
):
    days = []
    for day, blocks in layout.days.items():
        days.append(
            {
                "date": day.isoformat(),
                "label": f"{day:%a %b} {day.day}",
                "outside_hours": [
                    hour
                    for hour in range(24)
                    if is_outside_window(day, hour, layout.window, layout.timezone)
                ],
                "blocks": [
                    _serialize_block(block, layout.timezone, author_names)
                    for block in blocks
                ],
            }
        )
    return {
        "event_id": event.id,
        "timezone": zone_name,
        "buffer_hours": buffer_hours,
        "window": {
            "start": format_instant(layout.window.start),
            "end": format_instant(layout.window.end),
        },
        "display_start": format_instant(layout.display_start),
        "display_end": format_instant(layout.display_end),
        "days": days,
    }


def _visible_modules(
    db: Session, event: Event, viewer: Viewer, statuses: Iterable[str] | None = None
) -> list[Module]:
    modules = crud.list_modules(db, event.id, statuses)
    return [module for module in modules if can_view_module(viewer, module)]


def _normalize_statuses(raw: Sequence[str] | None) -> tuple[str, ...]:
    if not raw:
        return tuple(settings.schedule_statuses)
    try:
        return normalize_statuses(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _build_schedule(
    db: Session,
    request: Request,
    event: Event,
    *,
    tz_name: str | None,
    buffer_hours: float | None,
    status: Sequence[str] | None,
):
    zone_name, tz = _resolve_tz(tz_name)
    buffer_value = settings.buffer_hours if buffer_hours is None else buffer_hours
    viewer = _viewer(db, request, event.game_id)
    modules = _visible_modules(db, event, viewer, _normalize_statuses(status))
    activities = [crud.module_to_activity(module) for module in modules]
    layout = compute_schedule(
        activities, crud.display_window(event), buffer_hours=buffer_value, tz=tz
    )
    author_names = get_display_names(
        db, [m.author_id for m in modules], game_id=event.game_id
    )
    return zone_name, buffer_value, layout, author_names


# Payloads


class SystemPayload(BaseModel):
    name: str
    description: str | None = None
    authors: str | None = None
    url: str | None = None


class SystemUpdatePayload(BaseModel):
    name: str | None = None
    description: str | None = None
    authors: str | None = None
    url: str | None = None


class PropertyDefinition(BaseModel):
    name: str
    display_name: str | None = None
    variable_type: str = "short_string"


class GamePayload(BaseModel):
    system_id: str
    name: str
    description: str | None = None
    module_properties: list[PropertyDefinition] = Field(default_factory=list)


class GameUpdatePayload(BaseModel):
    name: str | None = None
    description: str | None = None
    module_properties: list[PropertyDefinition] | None = None


class MembersPayload(BaseModel):
    user_ids: list[str] = Field(default_factory=list)


class DisplayNamePayload(BaseModel):
    display_name: str


class EventPayload(BaseModel):
    name: str
    description: str | None = None
    start_time: str = Field(..., description="ISO instant or local datetime")
    end_time: str = Field(..., description="ISO instant or local datetime")
    timezone: str | None = Field(
        None, description="IANA zone used to read local datetimes"
    )


class EventUpdatePayload(BaseModel):
    name: str | None = None
    description: str | None = None
    start_time: str | None = None
    end_time: str | None = None
    timezone: str | None = None


class ModulePayload(BaseModel):
    name: str
    summary: str | None = None
    start_time: str = Field(..., description="ISO instant or local datetime")
    duration: float = Field(..., gt=0, description="Length in hours")
    color: str | None = None
    properties: dict[str, Any] = Field(default_factory=dict)
    timezone: str | None = None


class ModuleUpdatePayload(BaseModel):
    name: str | None = None
    summary: str | None = None
    start_time: str | None = None
    duration: float | None = Field(None, gt=0)
    color: str | None = None
    properties: dict[str, Any] | None = None
    timezone: str | None = None


class ReviewPayload(BaseModel):
    comment: str | None = None


# Systems


@app.get("/api/v1/systems")
def api_list_systems(db: Session = Depends(get_db)):
    return {"systems": [_serialize_system(s) for s in crud.list_systems(db)]}


@app.post("/api/v1/systems", status_code=201)
def api_create_system(
    payload: SystemPayload, request: Request, db: Session = Depends(get_db)
):
    _require_user(request)
    require(can_manage_systems(_viewer(db, request)), "Only administrators manage systems")
    try:
        system = crud.create_system(
            db,
            name=payload.name,
            description=payload.description,
            authors=payload.authors,
            url=payload.url,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    logger.info("System %s (%s) created", system.id, system.name)
    return _serialize_system(system)


@app.get("/api/v1/systems/{system_id}")
def api_get_system(system_id: str, db: Session = Depends(get_db)):
    system = _ensure_system(db, system_id)
    payload = _serialize_system(system)
    payload["games"] = [_serialize_game(game) for game in system.games]
    return payload


@app.patch("/api/v1/systems/{system_id}")
def api_update_system(
    system_id: str,
    payload: SystemUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    system = _ensure_system(db, system_id)
    require(can_manage_systems(_viewer(db, request)), "Only administrators manage systems")
    fields = payload.model_dump(exclude_unset=True)
    try:
        crud.update_system(
            db,
            system,
            name=fields.get("name", system.name),
            description=fields.get("description", system.description),
            authors=fields.get("authors", system.authors),
            url=fields.get("url", system.url),
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _serialize_system(system)


@app.delete("/api/v1/systems/{system_id}", status_code=204)
def api_delete_system(system_id: str, request: Request, db: Session = Depends(get_db)):
    _require_user(request)
    system = _ensure_system(db, system_id)
    require(can_manage_systems(_viewer(db, request)), "Only administrators manage systems")
    db.delete(system)
    logger.info("System %s deleted", system_id)
    return Response(status_code=204)


# Games


@app.get("/api/v1/games")
def api_list_games(
    system_id: str | None = Query(None), db: Session = Depends(get_db)
):
    games = crud.list_games(db, system_id=system_id)
    return {"games": [_serialize_game(game, include_members=True) for game in games]}


@app.post("/api/v1/games", status_code=201)
def api_create_game(payload: GamePayload, request: Request, db: Session = Depends(get_db)):
    user_id = _require_user(request)
    require(can_create_game(_viewer(db, request)), "Only administrators create games")
    system = _ensure_system(db, payload.system_id)
    try:
        game = crud.create_game(
            db,
            system=system,
            name=payload.name,
            description=payload.description,
            module_properties=[p.model_dump() for p in payload.module_properties],
            creator_id=user_id,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    logger.info("Game %s (%s) created by %s", game.id, game.name, user_id)
    return _serialize_game(game, include_members=True)


@app.get("/api/v1/games/{game_id}")
def api_get_game(game_id: str, request: Request, db: Session = Depends(get_db)):
    game = _ensure_game(db, game_id)
    viewer = _viewer(db, request, game.id)
    payload = _serialize_game(game, include_members=True)
    payload["permissions"] = {
        "manage": can_manage_game(viewer),
        "create_module": can_create_module(viewer),
    }
    return payload


@app.patch("/api/v1/games/{game_id}")
def api_update_game(
    game_id: str,
    payload: GameUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    game = _ensure_game(db, game_id)
    require(can_manage_game(_viewer(db, request, game.id)), "Game admin access required")
    fields = payload.model_dump(exclude_unset=True)
    properties = (
        [p.model_dump() for p in payload.module_properties]
        if payload.module_properties is not None
        else game.module_properties
    )
    try:
        crud.update_game(
            db,
            game,
            name=fields.get("name", game.name),
            description=fields.get("description", game.description),
            module_properties=properties,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _serialize_game(game, include_members=True)


@app.delete("/api/v1/games/{game_id}", status_code=204)
def api_delete_game(game_id: str, request: Request, db: Session = Depends(get_db)):
    _require_user(request)
    game = _ensure_game(db, game_id)
    require(can_manage_game(_viewer(db, request, game.id)), "Game admin access required")
    db.delete(game)
    logger.info("Game %s deleted", game_id)
    return Response(status_code=204)


@app.put("/api/v1/games/{game_id}/members/{role}")
def api_set_game_members(
    game_id: str,
    role: str,
    payload: MembersPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    game = _ensure_game(db, game_id)
    require(can_manage_game(_viewer(db, request, game.id)), "Game admin access required")
    try:
        members = crud.set_game_role_members(
            db, game=game, role=role, user_ids=payload.user_ids
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    logger.info("Game %s %s list set to %d users", game.id, role, len(members))
    return {"game_id": game.id, "role": role, "user_ids": members}


@app.put("/api/v1/games/{game_id}/display-name")
def api_set_display_name(
    game_id: str,
    payload: DisplayNamePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = _require_user(request)
    game = _ensure_game(db, game_id)
    try:
        record = crud.set_display_name(
            db, user_id=user_id, game_id=game.id, display_name=payload.display_name
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return {
        "user_id": record.user_id,
        "game_id": record.game_id,
        "display_name": record.display_name,
    }


# Events


@app.get("/api/v1/games/{game_id}/events")
def api_list_events(game_id: str, db: Session = Depends(get_db)):
    game = _ensure_game(db, game_id)
    events = crud.list_events(db, game.id)
    buckets = partition_events(events, utcnow())
    return {
        "events": [_serialize_event(event) for event in events],
        "ongoing": [event.id for event in buckets["ongoing"]],
        "upcoming": [event.id for event in buckets["upcoming"]],
        "past": [event.id for event in buckets["past"]],
    }


@app.post("/api/v1/games/{game_id}/events", status_code=201)
def api_create_event(
    game_id: str,
    payload: EventPayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    game = _ensure_game(db, game_id)
    require(can_manage_game(_viewer(db, request, game.id)), "Game admin access required")
    _, tz = _resolve_tz(payload.timezone)
    start = _parse_time("start_time", payload.start_time, tz)
    end = _parse_time("end_time", payload.end_time, tz)
    try:
        event = crud.create_event(
            db,
            game=game,
            name=payload.name,
            description=payload.description,
            start_time=start,
            end_time=end,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    logger.info("Event %s (%s) created in game %s", event.id, event.name, game.id)
    return _serialize_event(event)


@app.get("/api/v1/events/{event_id}")
def api_get_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = _ensure_event(db, event_id)
    viewer = _viewer(db, request, event.game_id)
    payload = _serialize_event(event)
    if can_manage_game(viewer):
        payload["approval_counts"] = crud.approval_counts(db, event.id)
    return payload


@app.patch("/api/v1/events/{event_id}")
def api_update_event(
    event_id: str,
    payload: EventUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    event = _ensure_event(db, event_id)
    require(
        can_manage_game(_viewer(db, request, event.game_id)),
        "Game admin access required",
    )
    fields = payload.model_dump(exclude_unset=True)
    _, tz = _resolve_tz(payload.timezone)
    start = (
        _parse_time("start_time", payload.start_time, tz)
        if payload.start_time
        else event.start_time
    )
    end = _parse_time("end_time", payload.end_time, tz) if payload.end_time else event.end_time
    try:
        crud.update_event(
            db,
            event,
            name=fields.get("name", event.name),
            description=fields.get("description", event.description),
            start_time=start,
            end_time=end,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _serialize_event(event)


@app.delete("/api/v1/events/{event_id}", status_code=204)
def api_delete_event(event_id: str, request: Request, db: Session = Depends(get_db)):
    _require_user(request)
    event = _ensure_event(db, event_id)
    require(
        can_manage_game(_viewer(db, request, event.game_id)),
        "Game admin access required",
    )
    db.delete(event)
    logger.info("Event %s deleted", event_id)
    return Response(status_code=204)


@app.get("/api/v1/games/{game_id}/calendar")
def api_game_calendar(
    game_id: str,
    year: int | None = Query(None, ge=1, le=9999),
    month: int | None = Query(None, ge=1, le=12),
    tz: str | None = Query(None),
    db: Session = Depends(get_db),
):
    game = _ensure_game(db, game_id)
    zone_name, zone = _resolve_tz(tz)
    today = to_local(utcnow(), zone).date()
    year = year or today.year
    month = month or today.month
    events = crud.list_events(db, game.id)
    weeks = month_grid(year, month, events, tz=zone, today=today)
    following_year, following_month = next_month(year, month)
    return {
        "game_id": game.id,
        "year": year,
        "month": month,
        "timezone": zone_name,
        "next": {"year": following_year, "month": following_month},
        "weekday_names": list(WEEKDAY_NAMES),
        "weeks": [
            [
                {
                    "date": cell.day.isoformat() if cell.day else None,
                    "is_today": cell.is_today,
                    "has_events": cell.has_events,
                    "event_ids": [event.id for event in cell.events],
                    "starting_event_ids": [event.id for event in cell.starting_events],
                }
                for cell in week
            ]
            for week in weeks
        ],
    }


# Modules


@app.get("/api/v1/events/{event_id}/modules")
def api_list_modules(event_id: str, request: Request, db: Session = Depends(get_db)):
    event = _ensure_event(db, event_id)
    viewer = _viewer(db, request, event.game_id)
    modules = _visible_modules(db, event, viewer)
    author_names = get_display_names(
        db, [m.author_id for m in modules], game_id=event.game_id
    )
    return {
        "event": _serialize_event(event),
        "can_create_module": can_create_module(viewer),
        "modules": [_serialize_module(m, author_names) for m in modules],
    }


@app.post("/api/v1/events/{event_id}/modules", status_code=201)
def api_create_module(
    event_id: str,
    payload: ModulePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    user_id = _require_user(request)
    event = _ensure_event(db, event_id)
    require(
        can_create_module(_viewer(db, request, event.game_id)),
        "Only game admins and writers create modules",
    )
    _, tz = _resolve_tz(payload.timezone)
    start = _parse_time("start_time", payload.start_time, tz)
    try:
        module = crud.create_module(
            db,
            event=event,
            author_id=user_id,
            name=payload.name,
            summary=payload.summary,
            start_time=start,
            duration=payload.duration,
            color=payload.color,
            properties=payload.properties,
            tz=tz,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    logger.info("Module %s (%s) created by %s", module.id, module.name, user_id)
    return _serialize_module(module)


@app.get("/api/v1/modules/{module_id}")
def api_get_module(module_id: str, request: Request, db: Session = Depends(get_db)):
    module = _ensure_module(db, module_id)
    game_id = module.event.game_id
    viewer = _viewer(db, request, game_id)
    if not can_view_module(viewer, module):
        raise HTTPException(status_code=404, detail="Module not found")
    author_names = get_display_names(db, [module.author_id], game_id=game_id)
    payload = _serialize_module(module, author_names)
    payload["permissions"] = {
        "edit": can_edit_module(viewer, module),
        "submit": can_submit_module(viewer, module),
        "review": can_review_module(viewer),
    }
    return payload


@app.patch("/api/v1/modules/{module_id}")
def api_update_module(
    module_id: str,
    payload: ModuleUpdatePayload,
    request: Request,
    db: Session = Depends(get_db),
):
    _require_user(request)
    module = _ensure_module(db, module_id)
    viewer = _viewer(db, request, module.event.game_id)
    require(can_edit_module(viewer, module), "You cannot edit this module")
    fields = payload.model_dump(exclude_unset=True)
    _, tz = _resolve_tz(payload.timezone)
    start = (
        _parse_time("start_time", payload.start_time, tz)
        if payload.start_time
        else module.start_time
    )
    try:
        crud.update_module(
            db,
            module,
            name=fields.get("name", module.name),
            summary=fields.get("summary", module.summary),
            start_time=start,
            duration=payload.duration if payload.duration is not None else module.duration,
            color=fields.get("color", module.color),
            properties=(
                payload.properties
                if payload.properties is not None
                else dict(module.properties or {})
            ),
            tz=tz,
        )
    except ValueError as exc:
        raise _bad_request(exc) from exc
    return _serialize_module(module)


@app.delete("/api/v1/modules/{module_id}", status_code=204)
def api_delete_module(module_id: str, request: Request, db: Session = Depends(get_db)):
    _require_user(request)
    module = _ensure_module(db, module_id)
    viewer = _viewer(db, request, module.event.game_id)
    require(can_edit_module(viewer, module), "You cannot delete this module")
    db.delete(module)
    logger.info("Module %s deleted", module_id)
    return Response(status_code=204)


@app.post("/api/v1/modules/{module_id}/submit")
def api_submit_module(module_id: str, request: Request, db: Session = Depends(get_db)):
    user_id = _require_user(request)
    module = _ensure_module(db, module_id)
    viewer = _viewer(db, request, module.event.game_id)
    require(can_submit_module(viewer, module), "You cannot submit this module")
    try:
        crud.submit_module(db, module)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info("Module %s submitted for review by %s", module.id, user_id)
    return _serialize_module(module)


def _review(
    module_id: str, status: str, payload: ReviewPayload, request: Request, db: Session
):
    user_id = _require_user(request)
    module = _ensure_module(db, module_id)
    require(
        can_review_module(_viewer(db, request, module.event.game_id)),
        "Game admin access required",
    )
    try:
        crud.review_module(db, module, status=status, comment=payload.comment)
    except ValueError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    logger.info("Module %s marked %s by %s", module.id, status, user_id)
    return _serialize_module(module)


@app.post("/api/v1/modules/{module_id}/approve")
def api_approve_module(
    module_id: str,
    request: Request,
    payload: ReviewPayload | None = None,
    db: Session = Depends(get_db),
):
    return _review(module_id, "approved", payload or ReviewPayload(), request, db)


@app.post("/api/v1/modules/{module_id}/return")
def api_return_module(
    module_id: str,
    request: Request,
    payload: ReviewPayload | None = None,
    db: Session = Depends(get_db),
):
    return _review(module_id, "returned", payload or ReviewPayload(), request, db)


# Schedule


@app.get("/api/v1/events/{event_id}/schedule")
def api_event_schedule(
    event_id: str,
    request: Request,
    tz: str | None = Query(None, description="IANA timezone of the viewer"),
    buffer_hours: float | None = Query(None, ge=0, le=48),
    status: list[str] | None = Query(None),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    zone_name, buffer_value, layout, author_names = _build_schedule(
        db, request, event, tz_name=tz, buffer_hours=buffer_hours, status=status
    )
    return _serialize_layout(
        event,
        layout,
        zone_name=zone_name,
        buffer_hours=buffer_value,
        author_names=author_names,
    )


@app.get("/events/{event_id}/schedule", response_class=HTMLResponse)
def event_schedule_page(
    event_id: str,
    request: Request,
    tz: str | None = Query(None),
    buffer_hours: float | None = Query(None, ge=0, le=48),
    status: list[str] | None = Query(None),
    db: Session = Depends(get_db),
):
    event = _ensure_event(db, event_id)
    zone_name, _, layout, author_names = _build_schedule(
        db, request, event, tz_name=tz, buffer_hours=buffer_hours, status=status
    )
    context = {
        "request": request,
        "event": event,
        "layout": layout,
        "timezone_name": zone_name,
        "author_names": author_names,
        "hours": range(24),
        "is_outside": partial(
            is_outside_window, window=layout.window, tz=layout.timezone
        ),
        "local_time": lambda value: to_local(value, layout.timezone).strftime("%H:%M"),
        "local_datetime": lambda value: to_local(value, layout.timezone).strftime(
            "%a %b %d %H:%M"
        ),
    }
    return templates.TemplateResponse(request, "schedule.html", context)
