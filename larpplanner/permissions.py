"""Authorization policy.

Permission checks work on an explicit :class:`Viewer` built once per request.
Nothing here reads ambient "current user" state; callers pass the viewer in.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import AppAdmin, GameUser, Module

GAME_ROLES = frozenset({"admin", "writer"})


class PermissionDenied(Exception):
    """Raised when a viewer may not perform an action."""


@dataclass(frozen=True)
class Viewer:
    user_id: str | None
    is_app_admin: bool = False
    game_roles: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.user_id)

    @property
    def is_game_admin(self) -> bool:
        return self.is_app_admin or "admin" in self.game_roles

    @property
    def is_writer(self) -> bool:
        return "writer" in self.game_roles


ANONYMOUS = Viewer(user_id=None)


def load_viewer(session: Session, user_id: str | None, game_id: str | None = None) -> Viewer:
    """Resolve the viewer's admin flag and roles within ``game_id``."""
    if not user_id:
        return ANONYMOUS
    is_admin = session.get(AppAdmin, user_id) is not None
    roles: frozenset[str] = frozenset()
    if game_id:
        stmt = select(GameUser.role).where(
            GameUser.game_id == game_id, GameUser.user_id == user_id
        )
        roles = frozenset(session.scalars(stmt).all())
    return Viewer(user_id=user_id, is_app_admin=is_admin, game_roles=roles)


def can_manage_systems(viewer: Viewer) -> bool:
    return viewer.is_app_admin


def can_create_game(viewer: Viewer) -> bool:
    return viewer.is_app_admin


def can_manage_game(viewer: Viewer) -> bool:
    return viewer.is_game_admin


def can_create_module(viewer: Viewer) -> bool:
    return viewer.is_game_admin or viewer.is_writer


def can_edit_module(viewer: Viewer, module: Module) -> bool:
    if viewer.is_game_admin:
        return True
    return (
        viewer.is_writer
        and viewer.user_id is not None
        and module.author_id == viewer.user_id
    )


def can_submit_module(viewer: Viewer, module: Module) -> bool:
    if viewer.user_id is not None and module.author_id == viewer.user_id:
        return True
    return can_edit_module(viewer, module)


def can_review_module(viewer: Viewer) -> bool:
    return viewer.is_game_admin


def visible_statuses(viewer: Viewer) -> frozenset[str] | None:
    """Statuses a viewer sees for modules they did not write; ``None`` is all."""
    if viewer.is_game_admin:
        return None
    return frozenset({"approved"})


def can_view_module(viewer: Viewer, module: Module) -> bool:
    allowed = visible_statuses(viewer)
    if allowed is None or module.approval_status in allowed:
        return True
    return viewer.user_id is not None and module.author_id == viewer.user_id


def require(allowed: bool, message: str = "Forbidden") -> None:
    if not allowed:
        raise PermissionDenied(message)
