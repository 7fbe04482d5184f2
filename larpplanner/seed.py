"""Development helpers for populating fake systems, games, events and modules."""

from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy.orm import Session

from .colors import VALID_COLORS
from .crud import (
    add_game_user,
    create_event,
    create_game,
    create_module,
    create_system,
    grant_app_admin,
    review_module,
    set_display_name,
    submit_module,
)
from .database import get_session
from .layout import APPROVAL_STATUSES
from .models import Event, Game, Module, System
from .storage import init_db
from .utils import utcnow

SEED_ADMIN_ID = "seed-admin"

_system_suffixes = ["Engine", "Rules", "Core", "Codex", "Framework"]
_game_suffixes = ["Chronicles", "Saga", "Campaign", "Company", "Courts"]
_module_types = [
    "Ambush",
    "Council",
    "Tavern Night",
    "Ritual",
    "Market",
    "Duel",
    "Expedition",
    "Feast",
]
_module_properties = [
    {"name": "location", "display_name": "Location", "variable_type": "short_string"},
    {"name": "npcs", "display_name": "NPCs needed", "variable_type": "number"},
    {"name": "notes", "display_name": "Notes", "variable_type": "long_string"},
]
_durations = [0.5, 1.0, 1.5, 2.0, 3.0, 4.0]


def seed_fake_data(
    *,
    system_count: int = 2,
    games_per_system: int = 2,
    events_per_game: int = 2,
    modules_per_event: int = 8,
) -> dict[str, int]:
    """Populate the SQLite database with synthetic LARP data."""
    if system_count < 0:
        raise ValueError("system_count must be >= 0")
    if games_per_system < 1:
        raise ValueError("games_per_system must be >= 1")
    if events_per_game < 1:
        raise ValueError("events_per_game must be >= 1")
    if modules_per_event < 0:
        raise ValueError("modules_per_event must be >= 0")

    init_db()
    fake = Faker()
    stats = {"systems": 0, "games": 0, "events": 0, "modules": 0}

    with get_session() as session:
        grant_app_admin(session, SEED_ADMIN_ID)
        for _ in range(system_count):
            system = _create_system(session, fake)
            stats["systems"] += 1
            for _ in range(games_per_system):
                game, writers = _create_game(session, fake, system)
                stats["games"] += 1
                for _ in range(events_per_game):
                    event = _create_event(session, fake, game)
                    stats["events"] += 1
                    stats["modules"] += _create_modules(
                        session, fake, event, writers, modules_per_event
                    )

    return stats


def _create_system(session: Session, fake: Faker) -> System:
    return create_system(
        session,
        name=f"{fake.word().capitalize()} {random.choice(_system_suffixes)}",
        description=fake.paragraph(),
        authors=fake.name(),
        url=fake.url(),
    )


def _create_game(session: Session, fake: Faker, system: System) -> tuple[Game, list[str]]:
    game = create_game(
        session,
        system=system,
        name=f"{fake.city()} {random.choice(_game_suffixes)}",
        description=fake.paragraph(),
        module_properties=_module_properties,
        creator_id=SEED_ADMIN_ID,
    )
    set_display_name(
        session, user_id=SEED_ADMIN_ID, game_id=game.id, display_name="Seed Admin"
    )
    writers = []
    for _ in range(random.randint(2, 4)):
        user_id = fake.uuid4()
        add_game_user(session, game=game, user_id=user_id, role="writer")
        set_display_name(
            session, user_id=user_id, game_id=game.id, display_name=fake.name()
        )
        writers.append(user_id)
    return game, writers


def _create_event(session: Session, fake: Faker, game: Game) -> Event:
    start_time = _random_start_time()
    end_time = start_time + timedelta(days=random.randint(1, 3), hours=random.randint(0, 8))
    return create_event(
        session,
        game=game,
        name=f"{game.name}: {fake.catch_phrase()}",
        description=fake.paragraph(),
        start_time=start_time,
        end_time=end_time,
    )


def _random_start_time() -> datetime:
    now = utcnow().replace(minute=0, second=0, microsecond=0)
    return now + timedelta(days=random.randint(-7, 60), hours=random.randint(8, 18))


def _create_modules(
    session: Session,
    fake: Faker,
    event: Event,
    writers: list[str],
    total: int,
) -> int:
    span_minutes = int((event.end_time - event.start_time).total_seconds() // 60)
    for _ in range(total):
        offset = random.randrange(0, max(span_minutes, 15), 15)
        module = create_module(
            session,
            event=event,
            author_id=random.choice(writers),
            name=f"{fake.last_name()} {random.choice(_module_types)}",
            summary=fake.sentence(),
            start_time=event.start_time + timedelta(minutes=offset),
            duration=random.choice(_durations),
            color=random.choice(sorted(VALID_COLORS)),
            properties={
                "location": fake.street_name(),
                "npcs": random.randint(0, 6),
                "notes": fake.paragraph() if random.random() < 0.3 else None,
            },
        )
        _advance_status(session, module, random.choice(APPROVAL_STATUSES))
    return total


def _advance_status(session: Session, module: Module, status: str) -> None:
    if status == "in_progress":
        return
    submit_module(session, module)
    if status in {"approved", "returned"}:
        review_module(session, module, status=status)
