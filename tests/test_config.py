from __future__ import annotations

import pytest

from larpplanner import config


@pytest.fixture()
def isolated_env(monkeypatch, tmp_path):
    for key in list(config.DEFAULTS) + ["config", "data_dir", "db", "base_dir"]:
        monkeypatch.delenv(f"LARPPLANNER_{key.upper()}", raising=False)
    monkeypatch.setenv("LARPPLANNER_BASE_DIR", str(tmp_path))
    return tmp_path


def test_defaults_without_config_file(isolated_env):
    settings = config.load_settings()
    assert settings.buffer_hours == 2.0
    assert settings.display_timezone == "UTC"
    assert settings.schedule_statuses == config.APPROVAL_STATUSES
    assert settings.database_path == isolated_env / "data" / "larpplanner.db"
    assert settings.data_dir.exists()


def test_toml_then_env_precedence(isolated_env, monkeypatch):
    (isolated_env / "larpplanner.toml").write_text(
        'buffer_hours = 1.5\ndisplay_timezone = "Europe/Oslo"\n'
        'schedule_statuses = "approved,submitted"\n',
        encoding="utf-8",
    )
    settings = config.load_settings()
    assert settings.buffer_hours == 1.5
    assert settings.schedule_statuses == ("approved", "submitted")

    monkeypatch.setenv("LARPPLANNER_BUFFER_HOURS", "0")
    monkeypatch.setenv("LARPPLANNER_DB", "custom.db")
    settings = config.load_settings()
    assert settings.buffer_hours == 0.0
    assert settings.display_timezone == "Europe/Oslo"
    assert settings.database_path == isolated_env / "custom.db"


def test_unknown_statuses_are_rejected(isolated_env, monkeypatch):
    monkeypatch.setenv("LARPPLANNER_SCHEDULE_STATUSES", "approved,lost")
    with pytest.raises(ValueError):
        config.load_settings()


def test_status_list_is_normalized(isolated_env, monkeypatch):
    monkeypatch.setenv("LARPPLANNER_SCHEDULE_STATUSES", "Approved, SUBMITTED")
    assert config.load_settings().schedule_statuses == ("approved", "submitted")


def test_update_config_file_round_trips(isolated_env, monkeypatch):
    path = isolated_env / "larpplanner.toml"
    monkeypatch.setattr(config, "settings", config.load_settings())
    updated = config.update_config_file(
        {"buffer_hours": 3, "schedule_statuses": "approved", "ignored": "x"}, path=path
    )
    assert updated.buffer_hours == 3.0
    assert updated.schedule_statuses == ("approved",)
    text = path.read_text(encoding="utf-8")
    assert 'schedule_statuses = "approved"' in text
    assert "ignored" not in text
    assert config.settings_as_dict(updated)["schedule_statuses"] == "approved"
