"""Display-name lookups for opaque user ids."""

from __future__ import annotations

from typing import Iterable

from sqlalchemy import select
from sqlalchemy.orm import Session

from .models import UserDisplayName

UNKNOWN_USER = "Unknown User"


def get_display_names(
    session: Session, user_ids: Iterable[str | None], game_id: str | None = None
) -> dict[str, str]:
    """Map user ids to display names, using ``UNKNOWN_USER`` for gaps.

    With ``game_id`` only names set for that game count; without it the most
    recently updated name from any game is used.
    """
    wanted = sorted({uid for uid in user_ids if uid})
    if not wanted:
        return {}
    names = {uid: UNKNOWN_USER for uid in wanted}
    stmt = (
        select(UserDisplayName)
        .where(UserDisplayName.user_id.in_(wanted))
        .order_by(UserDisplayName.last_modified.asc())
    )
    if game_id is not None:
        stmt = stmt.where(UserDisplayName.game_id == game_id)
    for record in session.scalars(stmt).all():
        names[record.user_id] = record.display_name or UNKNOWN_USER
    return names


def get_display_name(session: Session, user_id: str, game_id: str) -> str | None:
    if not user_id or not game_id:
        return None
    stmt = select(UserDisplayName.display_name).where(
        UserDisplayName.user_id == user_id, UserDisplayName.game_id == game_id
    )
    return session.scalars(stmt).first()
