"""CRUD helpers for systems, games, events and modules."""

from __future__ import annotations

import math
from datetime import datetime, tzinfo
from typing import Any, Iterable, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .colors import DEFAULT_COLOR, VALID_COLORS
from .dates import ensure_utc, format_instant, parse_input_datetime, to_naive_utc
from .layout import APPROVAL_STATUSES, Activity, DisplayWindow
from .models import (
    AppAdmin,
    Event,
    Game,
    GameUser,
    Module,
    System,
    UserDisplayName,
)
from .permissions import GAME_ROLES
from .utils import utcnow

PROPERTY_TYPES = {"short_string", "long_string", "number", "date_time"}
_PROPERTY_TYPE_ALIASES = {
    "shortString": "short_string",
    "longString": "long_string",
    "dateTime": "date_time",
}

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "in_progress": {"submitted"},
    "submitted": {"approved", "returned"},
    "returned": {"submitted"},
    "approved": {"returned"},
}


def _now() -> datetime:
    return utcnow()


def _require_text(value: str | None, label: str) -> str:
    cleaned = (value or "").strip()
    if not cleaned:
        raise ValueError(f"{label} is required")
    return cleaned


def _optional_text(value: str | None) -> str | None:
    cleaned = (value or "").strip()
    return cleaned or None


# Systems


def create_system(
    session: Session,
    *,
    name: str,
    description: str | None = None,
    authors: str | None = None,
    url: str | None = None,
) -> System:
    system = System(
        name=_require_text(name, "System name"),
        description=_optional_text(description),
        authors=_optional_text(authors),
        url=_optional_text(url),
    )
    session.add(system)
    session.flush()
    return system


def update_system(
    session: Session,
    system: System,
    *,
    name: str,
    description: str | None,
    authors: str | None,
    url: str | None,
) -> System:
    system.name = _require_text(name, "System name")
    system.description = _optional_text(description)
    system.authors = _optional_text(authors)
    system.url = _optional_text(url)
    system.last_modified = _now()
    session.add(system)
    session.flush()
    return system


def list_systems(session: Session) -> Sequence[System]:
    return session.scalars(select(System).order_by(System.name.asc())).all()


# Games


def normalize_property_definitions(raw: Iterable[dict] | None) -> list[dict[str, str]]:
    """Validate a game's module property definitions.

    Accepts either snake_case or camelCase keys and returns snake_case dicts.
    """
    definitions: list[dict[str, str]] = []
    seen: set[str] = set()
    for entry in raw or []:
        name = _require_text(entry.get("name"), "Property name")
        if name in seen:
            raise ValueError(f"Duplicate property name {name!r}")
        seen.add(name)
        raw_type = entry.get("variable_type") or entry.get("variableType") or ""
        variable_type = _PROPERTY_TYPE_ALIASES.get(raw_type, raw_type)
        if variable_type not in PROPERTY_TYPES:
            raise ValueError(f"Invalid property type {raw_type!r}")
        display_name = entry.get("display_name") or entry.get("displayName") or name
        definitions.append(
            {
                "name": name,
                "display_name": str(display_name).strip() or name,
                "variable_type": variable_type,
            }
        )
    return definitions


def create_game(
    session: Session,
    *,
    system: System,
    name: str,
    description: str | None = None,
    module_properties: Iterable[dict] | None = None,
    creator_id: str | None = None,
) -> Game:
    """Create a game; the creator becomes its first admin."""
    game = Game(
        system=system,
        name=_require_text(name, "Game name"),
        description=_optional_text(description),
        module_properties=normalize_property_definitions(module_properties),
    )
    session.add(game)
    session.flush()
    if creator_id:
        add_game_user(session, game=game, user_id=creator_id, role="admin")
    return game


def update_game(
    session: Session,
    game: Game,
    *,
    name: str,
    description: str | None,
    module_properties: Iterable[dict] | None,
) -> Game:
    game.name = _require_text(name, "Game name")
    game.description = _optional_text(description)
    game.module_properties = normalize_property_definitions(module_properties)
    game.last_modified = _now()
    session.add(game)
    session.flush()
    return game


def list_games(session: Session, system_id: str | None = None) -> Sequence[Game]:
    stmt = select(Game).order_by(Game.name.asc())
    if system_id is not None:
        stmt = stmt.where(Game.system_id == system_id)
    return session.scalars(stmt).all()


def _normalize_role(role: str) -> str:
    normalized = (role or "").strip().lower()
    if normalized not in GAME_ROLES:
        raise ValueError("Invalid game role")
    return normalized


def add_game_user(session: Session, *, game: Game, user_id: str, role: str) -> GameUser:
    role = _normalize_role(role)
    user_id = _require_text(user_id, "User id")
    stmt = select(GameUser).where(
        GameUser.game_id == game.id,
        GameUser.user_id == user_id,
        GameUser.role == role,
    )
    existing = session.scalars(stmt).first()
    if existing:
        return existing
    member = GameUser(game=game, user_id=user_id, role=role, created_at=_now())
    session.add(member)
    session.flush()
    return member


def remove_game_user(session: Session, *, game: Game, user_id: str, role: str) -> bool:
    role = _normalize_role(role)
    stmt = select(GameUser).where(
        GameUser.game_id == game.id,
        GameUser.user_id == user_id,
        GameUser.role == role,
    )
    member = session.scalars(stmt).first()
    if not member:
        return False
    game.members.remove(member)
    session.delete(member)
    session.flush()
    return True


def set_game_role_members(
    session: Session, *, game: Game, role: str, user_ids: Iterable[str]
) -> list[str]:
    """Replace the set of users holding ``role`` in ``game``."""
    role = _normalize_role(role)
    wanted = {uid.strip() for uid in user_ids if uid and uid.strip()}
    current = set(game.user_ids_with_role(role))
    for user_id in current - wanted:
        remove_game_user(session, game=game, user_id=user_id, role=role)
    for user_id in wanted - current:
        add_game_user(session, game=game, user_id=user_id, role=role)
    session.refresh(game)
    return game.user_ids_with_role(role)


def grant_app_admin(session: Session, user_id: str) -> AppAdmin:
    user_id = _require_text(user_id, "User id")
    existing = session.get(AppAdmin, user_id)
    if existing:
        return existing
    admin = AppAdmin(user_id=user_id, created_at=_now())
    session.add(admin)
    session.flush()
    return admin


def revoke_app_admin(session: Session, user_id: str) -> bool:
    existing = session.get(AppAdmin, user_id)
    if not existing:
        return False
    session.delete(existing)
    session.flush()
    return True


def set_display_name(
    session: Session, *, user_id: str, game_id: str, display_name: str
) -> UserDisplayName:
    """Insert or update a user's display name within a game."""
    cleaned = _require_text(display_name, "Display name")
    stmt = select(UserDisplayName).where(
        UserDisplayName.user_id == user_id, UserDisplayName.game_id == game_id
    )
    record = session.scalars(stmt).first()
    if record is None:
        record = UserDisplayName(user_id=user_id, game_id=game_id)
    record.display_name = cleaned
    record.last_modified = _now()
    session.add(record)
    session.flush()
    return record


# Events


def _normalize_event_window(
    start_time: datetime, end_time: datetime
) -> tuple[datetime, datetime]:
    normalized_start = to_naive_utc(start_time)
    normalized_end = to_naive_utc(end_time)
    if normalized_end <= normalized_start:
        raise ValueError("End time must be after the start time")
    return normalized_start, normalized_end


def create_event(
    session: Session,
    *,
    game: Game,
    name: str,
    description: str | None,
    start_time: datetime,
    end_time: datetime,
) -> Event:
    """Create and persist a new event."""
    normalized_start, normalized_end = _normalize_event_window(start_time, end_time)
    event = Event(
        game=game,
        name=_require_text(name, "Event name"),
        description=_optional_text(description),
        start_time=normalized_start,
        end_time=normalized_end,
    )
    session.add(event)
    session.flush()
    return event


def update_event(
    session: Session,
    event: Event,
    *,
    name: str,
    description: str | None,
    start_time: datetime,
    end_time: datetime,
) -> Event:
    """Update an existing event."""
    normalized_start, normalized_end = _normalize_event_window(start_time, end_time)
    event.name = _require_text(name, "Event name")
    event.description = _optional_text(description)
    event.start_time = normalized_start
    event.end_time = normalized_end
    event.last_modified = _now()
    session.add(event)
    session.flush()
    return event


def list_events(session: Session, game_id: str) -> Sequence[Event]:
    stmt = (
        select(Event)
        .where(Event.game_id == game_id)
        .order_by(Event.start_time.asc())
    )
    return session.scalars(stmt).all()


def display_window(event: Event) -> DisplayWindow:
    return DisplayWindow(
        start=ensure_utc(event.start_time), end=ensure_utc(event.end_time)
    )


# Modules


def _normalize_color(color: str | None) -> str:
    normalized = (color or "").strip().lower() or DEFAULT_COLOR
    if normalized not in VALID_COLORS:
        raise ValueError("Invalid module color")
    return normalized


def _normalize_duration(duration: float | int | str) -> float:
    try:
        value = float(duration)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid module duration") from exc
    if not math.isfinite(value) or value <= 0:
        raise ValueError("Module duration must be positive")
    return value


def coerce_module_properties(
    definitions: Sequence[dict[str, str]],
    values: dict[str, Any] | None,
    *,
    tz: tzinfo | None = None,
) -> dict[str, Any]:
    """Coerce submitted property values to their declared types.

    Blank values and keys without a definition are dropped.
    """
    values = values or {}
    coerced: dict[str, Any] = {}
    for definition in definitions:
        name = definition["name"]
        raw = values.get(name)
        if raw is None or (isinstance(raw, str) and not raw.strip()):
            continue
        variable_type = definition["variable_type"]
        try:
            if variable_type == "number":
                coerced[name] = float(raw)
            elif variable_type == "date_time":
                coerced[name] = format_instant(parse_input_datetime(raw, tz))
            else:
                coerced[name] = str(raw)
        except (TypeError, ValueError) as exc:
            label = definition.get("display_name") or name
            raise ValueError(f"Invalid value for {label}") from exc
    return coerced


def create_module(
    session: Session,
    *,
    event: Event,
    author_id: str | None,
    name: str,
    summary: str | None,
    start_time: datetime,
    duration: float,
    color: str | None = None,
    properties: dict[str, Any] | None = None,
    tz: tzinfo | None = None,
) -> Module:
    """Create a module in the ``in_progress`` state."""
    module = Module(
        event=event,
        author_id=author_id,
        name=_require_text(name, "Module name"),
        summary=_optional_text(summary),
        start_time=to_naive_utc(start_time),
        duration=_normalize_duration(duration),
        color=_normalize_color(color),
        properties=coerce_module_properties(
            event.game.module_properties or [], properties, tz=tz
        ),
        approval_status="in_progress",
    )
    session.add(module)
    session.flush()
    return module


def update_module(
    session: Session,
    module: Module,
    *,
    name: str,
    summary: str | None,
    start_time: datetime,
    duration: float,
    color: str | None,
    properties: dict[str, Any] | None,
    tz: tzinfo | None = None,
) -> Module:
    """Update module content without touching its approval state."""
    module.name = _require_text(name, "Module name")
    module.summary = _optional_text(summary)
    module.start_time = to_naive_utc(start_time)
    module.duration = _normalize_duration(duration)
    module.color = _normalize_color(color)
    module.properties = coerce_module_properties(
        module.event.game.module_properties or [], properties, tz=tz
    )
    module.last_modified = _now()
    session.add(module)
    session.flush()
    return module


def list_modules(
    session: Session, event_id: str, statuses: Iterable[str] | None = None
) -> Sequence[Module]:
    stmt = (
        select(Module)
        .where(Module.event_id == event_id)
        .order_by(Module.start_time.asc(), Module.name.asc())
    )
    if statuses is not None:
        stmt = stmt.where(Module.approval_status.in_(list(statuses)))
    return session.scalars(stmt).all()


def _transition(module: Module, status: str) -> None:
    current = module.approval_status or "in_progress"
    if status not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Cannot move a module from {current} to {status}")
    module.approval_status = status


def submit_module(session: Session, module: Module) -> Module:
    """Send a module for review, clearing any earlier review comment."""
    _transition(module, "submitted")
    module.approval_comment = None
    module.last_modified = _now()
    session.add(module)
    session.flush()
    return module


def review_module(
    session: Session, module: Module, *, status: str, comment: str | None = None
) -> Module:
    """Approve a module or return it to its author for changes."""
    normalized = (status or "").strip().lower()
    if normalized not in {"approved", "returned"}:
        raise ValueError("Review status must be approved or returned")
    _transition(module, normalized)
    module.approval_comment = _optional_text(comment)
    module.last_modified = _now()
    session.add(module)
    session.flush()
    return module


def approval_counts(session: Session, event_id: str) -> dict[str, int]:
    """Count an event's modules per approval status."""
    rows = session.execute(
        select(Module.approval_status, func.count())
        .where(Module.event_id == event_id)
        .group_by(Module.approval_status)
    ).all()
    counts = {status: 0 for status in APPROVAL_STATUSES}
    for status, count in rows:
        counts[status] = count
    return counts


def module_to_activity(module: Module) -> Activity:
    return Activity(
        id=module.id,
        name=module.name,
        author_id=module.author_id,
        start_time=ensure_utc(module.start_time),
        duration_hours=module.duration,
        color=module.color or DEFAULT_COLOR,
        approval_status=module.approval_status or "in_progress",
    )


def activities_for_event(
    session: Session, event: Event, statuses: Iterable[str] | None = None
) -> list[Activity]:
    """Snapshot an event's modules as layout activities, in start order."""
    return [module_to_activity(m) for m in list_modules(session, event.id, statuses)]
