"""Tests for the "time ago" formatter used by the stats endpoint."""

from datetime import datetime, timedelta, timezone

import pytest

from app.utils.time_utils import time_ago

NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("delta, expected", [
    (timedelta(seconds=30), "Just now"),
    (timedelta(minutes=1), "1 min ago"),
    (timedelta(minutes=59), "59 min ago"),
    (timedelta(hours=1), "1 hour ago"),
    (timedelta(hours=23, minutes=59), "23 hours ago"),
    (timedelta(days=1), "1 day ago"),
    (timedelta(days=9), "9 days ago"),
])
def test_time_ago(delta, expected) -> None:
    assert time_ago(NOW - delta, NOW) == expected


def test_naive_timestamps_are_utc() -> None:
    naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)

    assert time_ago(naive, NOW) == "2 hours ago"
