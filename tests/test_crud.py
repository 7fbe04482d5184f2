from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from larpplanner import crud
from larpplanner.models import GameUser, Module


def _game(session, creator_id: str | None = "admin-1"):
    system = crud.create_system(session, name="Mind's Eye Theatre")
    game = crud.create_game(
        session,
        system=system,
        name="Court of Ashes",
        module_properties=[
            {"name": "location", "displayName": "Location", "variableType": "shortString"},
            {"name": "npcs", "variable_type": "number"},
            {"name": "curtain", "variable_type": "date_time"},
        ],
        creator_id=creator_id,
    )
    session.commit()
    return game


def _event(session, game, *, start: datetime | None = None, hours: int = 30):
    start = start or datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    event = crud.create_event(
        session,
        game=game,
        name="Spring Gathering",
        description="",
        start_time=start,
        end_time=start + timedelta(hours=hours),
    )
    session.commit()
    return event


def _module(session, event, *, author_id: str = "writer-1", **overrides):
    values = {
        "name": "Tavern Brawl",
        "summary": "Chairs will fly",
        "start_time": datetime(2024, 3, 1, 20, 0, tzinfo=UTC),
        "duration": 1.5,
    }
    values.update(overrides)
    module = crud.create_module(session, event=event, author_id=author_id, **values)
    session.commit()
    return module


def test_create_game_normalizes_properties_and_adds_creator(session):
    game = _game(session)
    assert game.module_properties[0] == {
        "name": "location",
        "display_name": "Location",
        "variable_type": "short_string",
    }
    assert game.module_properties[1]["display_name"] == "npcs"
    assert game.user_ids_with_role("admin") == ["admin-1"]


def test_invalid_property_definitions_are_rejected(session):
    with pytest.raises(ValueError):
        crud.normalize_property_definitions([{"name": "x", "variable_type": "blob"}])
    with pytest.raises(ValueError):
        crud.normalize_property_definitions(
            [{"name": "x", "variable_type": "number"}, {"name": "x", "variable_type": "number"}]
        )


def test_set_game_role_members_replaces_membership(session):
    game = _game(session)
    crud.set_game_role_members(session, game=game, role="writer", user_ids=["a", "b"])
    session.commit()
    members = crud.set_game_role_members(
        session, game=game, role="writer", user_ids=["b", "c", " "]
    )
    session.commit()
    assert sorted(members) == ["b", "c"]
    assert session.query(GameUser).filter_by(role="writer").count() == 2
    with pytest.raises(ValueError):
        crud.set_game_role_members(session, game=game, role="owner", user_ids=["x"])


def test_set_display_name_upserts(session):
    game = _game(session)
    first = crud.set_display_name(session, user_id="u1", game_id=game.id, display_name="Ann")
    second = crud.set_display_name(session, user_id="u1", game_id=game.id, display_name="Anne")
    session.commit()
    assert first.id == second.id
    assert second.display_name == "Anne"
    with pytest.raises(ValueError):
        crud.set_display_name(session, user_id="u1", game_id=game.id, display_name="  ")


def test_grant_and_revoke_app_admin(session):
    crud.grant_app_admin(session, "boss")
    crud.grant_app_admin(session, "boss")
    session.commit()
    assert crud.revoke_app_admin(session, "boss") is True
    assert crud.revoke_app_admin(session, "boss") is False


def test_event_end_must_follow_start(session):
    game = _game(session)
    start = datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    with pytest.raises(ValueError):
        crud.create_event(
            session, game=game, name="Backwards", description=None,
            start_time=start, end_time=start,
        )
    event = _event(session, game)
    with pytest.raises(ValueError):
        crud.update_event(
            session, event, name=event.name, description=None,
            start_time=start, end_time=start - timedelta(hours=1),
        )


def test_event_times_are_stored_as_naive_utc(session):
    game = _game(session)
    event = _event(session, game)
    assert event.start_time == datetime(2024, 3, 1, 10, 0)
    window = crud.display_window(event)
    assert window.start == datetime(2024, 3, 1, 10, 0, tzinfo=UTC)
    assert window.end - window.start == timedelta(hours=30)


def test_create_module_validates_and_coerces(session):
    game = _game(session)
    event = _event(session, game)
    module = _module(
        session,
        event,
        color="Green",
        properties={
            "location": "Great Hall",
            "npcs": "3",
            "curtain": "2024-03-01T19:45Z",
            "unknown": "dropped",
        },
    )
    assert module.approval_status == "in_progress"
    assert module.color == "green"
    assert module.properties == {
        "location": "Great Hall",
        "npcs": 3.0,
        "curtain": "2024-03-01T19:45:00.000Z",
    }
    with pytest.raises(ValueError):
        _module(session, event, duration=0)
    with pytest.raises(ValueError):
        _module(session, event, color="magenta")
    with pytest.raises(ValueError):
        _module(session, event, properties={"npcs": "lots"})


def test_update_module_keeps_approval_state(session):
    game = _game(session)
    event = _event(session, game)
    module = _module(session, event)
    crud.submit_module(session, module)
    crud.update_module(
        session,
        module,
        name="Tavern Riot",
        summary=None,
        start_time=datetime(2024, 3, 1, 21, 0, tzinfo=UTC),
        duration=2,
        color=None,
        properties={},
    )
    session.commit()
    assert module.name == "Tavern Riot"
    assert module.color == "blue"
    assert module.approval_status == "submitted"


def test_approval_workflow_transitions(session):
    game = _game(session)
    event = _event(session, game)
    module = _module(session, event)

    with pytest.raises(ValueError):
        crud.review_module(session, module, status="approved")

    crud.submit_module(session, module)
    crud.review_module(session, module, status="returned", comment="Needs NPC count")
    assert module.approval_status == "returned"
    assert module.approval_comment == "Needs NPC count"

    crud.submit_module(session, module)
    assert module.approval_comment is None
    crud.review_module(session, module, status="approved")
    assert module.approval_status == "approved"

    with pytest.raises(ValueError):
        crud.submit_module(session, module)
    with pytest.raises(ValueError):
        crud.review_module(session, module, status="submitted")


def test_list_modules_filters_by_status_and_counts(session):
    game = _game(session)
    event = _event(session, game)
    first = _module(session, event, name="Early", start_time=datetime(2024, 3, 1, 11, 0))
    _module(session, event, name="Late", start_time=datetime(2024, 3, 1, 22, 0))
    crud.submit_module(session, first)
    crud.review_module(session, first, status="approved")
    session.commit()

    assert [m.name for m in crud.list_modules(session, event.id)] == ["Early", "Late"]
    assert [m.name for m in crud.list_modules(session, event.id, ["approved"])] == ["Early"]
    counts = crud.approval_counts(session, event.id)
    assert counts == {"in_progress": 1, "submitted": 0, "approved": 1, "returned": 0}


def test_activities_for_event_feed_the_layout(session):
    game = _game(session)
    event = _event(session, game)
    _module(session, event, color="pink")
    activities = crud.activities_for_event(session, event)
    assert len(activities) == 1
    activity = activities[0]
    assert activity.start_time == datetime(2024, 3, 1, 20, 0, tzinfo=UTC)
    assert activity.end_time == datetime(2024, 3, 1, 21, 30, tzinfo=UTC)
    assert activity.color == "pink"
    assert activity.author_id == "writer-1"


def test_deleting_event_cascades_to_modules(session):
    game = _game(session)
    event = _event(session, game)
    _module(session, event)
    session.delete(event)
    session.commit()
    assert session.query(Module).count() == 0
