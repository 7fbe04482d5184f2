from __future__ import annotations

from datetime import datetime, timedelta

from larpplanner.colors import DEFAULT_COLOR, color_option, status_badge
from larpplanner.utils import format_duration_hours, humanize_time


def test_humanize_time_past_and_future():
    now = datetime(2024, 3, 1, 12, 0)
    assert humanize_time(now - timedelta(hours=3), now=now) == "3 hours ago"
    assert humanize_time(now + timedelta(days=14), now=now) == "in 2 weeks"
    assert humanize_time(now + timedelta(seconds=20), now=now) == "in moments"
    assert humanize_time(None) == ""


def test_format_duration_hours():
    assert format_duration_hours(2.5) == "2h 30m"
    assert format_duration_hours(0.25) == "15m"
    assert format_duration_hours(3) == "3h"
    assert format_duration_hours(0) == ""


def test_color_option_falls_back_to_default():
    assert color_option("green").bg_class == "bg-green-100"
    assert color_option("plaid").id == DEFAULT_COLOR
    assert color_option(None).id == DEFAULT_COLOR


def test_status_badge_labels():
    assert status_badge("submitted")["label"] == "Submitted"
    assert status_badge("weird")["status"] == "in_progress"
