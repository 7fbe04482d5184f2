from __future__ import annotations

import pytest

from larpplanner import seed
from larpplanner.database import get_session
from larpplanner.models import AppAdmin, Event, Game, Module, System


def test_seed_fake_data_builds_hierarchy(monkeypatch):
    monkeypatch.setattr(seed, "init_db", lambda: None)

    stats = seed.seed_fake_data(
        system_count=1, games_per_system=2, events_per_game=1, modules_per_event=4
    )

    assert stats == {"systems": 1, "games": 2, "events": 2, "modules": 8}
    with get_session() as session:
        assert session.query(System).count() == 1
        assert session.query(Game).count() == 2
        assert session.query(Event).count() == 2
        modules = session.query(Module).all()
        assert len(modules) == 8
        for module in modules:
            event = module.event
            assert event.start_time <= module.start_time <= event.end_time
        assert session.get(AppAdmin, seed.SEED_ADMIN_ID) is not None


def test_seed_fake_data_validates_counts():
    with pytest.raises(ValueError):
        seed.seed_fake_data(system_count=-1)
    with pytest.raises(ValueError):
        seed.seed_fake_data(events_per_game=0)
