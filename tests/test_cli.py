from __future__ import annotations

import json
from datetime import datetime

from typer.testing import CliRunner

from larpplanner import cli, crud
from larpplanner.database import get_session
from larpplanner.models import AppAdmin

runner = CliRunner()


def _event_with_modules() -> str:
    with get_session() as session:
        system = crud.create_system(session, name="Blockhouse")
        game = crud.create_game(session, system=system, name="Siege")
        event = crud.create_event(
            session,
            game=game,
            name="Siege Night",
            description=None,
            start_time=datetime(2024, 3, 1, 18, 0),
            end_time=datetime(2024, 3, 2, 2, 0),
        )
        for name, hour in (("Wall Breach", 19), ("Sortie", 19)):
            crud.create_module(
                session,
                event=event,
                author_id="w1",
                name=name,
                summary=None,
                start_time=datetime(2024, 3, 1, hour, 0),
                duration=1 if name == "Sortie" else 2,
            )
        return event.id


def test_schedule_command_prints_columns(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)
    event_id = _event_with_modules()

    result = runner.invoke(cli.app, ["schedule", event_id, "--json"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert list(payload) == ["2024-03-01", "2024-03-02"]
    placed = {b["name"]: (b["row_start"], b["column"], b["column_count"]) for b in payload["2024-03-01"]}
    assert placed == {"Wall Breach": (77, 0, 2), "Sortie": (77, 1, 2)}


def test_schedule_command_rejects_unknown_event_and_zone(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)
    assert runner.invoke(cli.app, ["schedule", "missing"]).exit_code == 1
    assert runner.invoke(cli.app, ["schedule", "missing", "--tz", "Atlantis/City"]).exit_code == 1


def test_schedule_command_status_filter_is_normalized(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)
    event_id = _event_with_modules()

    result = runner.invoke(
        cli.app, ["schedule", event_id, "--json", "--status", "APPROVED, Submitted"]
    )
    assert result.exit_code == 0, result.output
    assert json.loads(result.output) == {"2024-03-01": [], "2024-03-02": []}

    result = runner.invoke(
        cli.app, ["schedule", event_id, "--json", "--status", "In_Progress"]
    )
    assert result.exit_code == 0, result.output
    assert len(json.loads(result.output)["2024-03-01"]) == 2

    assert runner.invoke(cli.app, ["schedule", event_id, "--status", "lost"]).exit_code == 1


def test_grant_admin_command(monkeypatch):
    monkeypatch.setattr(cli, "init_db", lambda: None)
    result = runner.invoke(cli.app, ["grant-admin", "gm-7"])
    assert result.exit_code == 0
    with get_session() as session:
        assert session.get(AppAdmin, "gm-7") is not None
    revoked = runner.invoke(cli.app, ["grant-admin", "gm-7", "--revoke"])
    assert "Revoked admin" in revoked.output
