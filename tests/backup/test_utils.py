"""Tests for backup utility functions."""

import asyncio
import pytest
from datetime import date

from pg_backup.backup.models import BranchName
from pg_backup.backup.utils import (
    base_backup_pattern,
    branch_prefix,
    describe_day,
    follow_log,
    latest_log_file,
    poll_until,
    swap_branch,
    wal_object_path,
    weekday_date,
)


def test_branch_prefix_normalizes_trailing_slash():
    assert branch_prefix("gs://bucket/", "db1", "daily") == "gs://bucket/db1/daily"
    assert branch_prefix("gs://bucket", "db1", BranchName.WEEKLY) == "gs://bucket/db1/weekly"


def test_object_paths():
    prefix = "gs://bucket/db1/daily"

    assert wal_object_path(prefix, "000000010000000000000004") == (
        "gs://bucket/db1/daily/wal_005/000000010000000000000004.lzo"
    )
    assert base_backup_pattern(prefix, "base_1") == "gs://bucket/db1/daily/basebackups_005/base_1**"


def test_swap_branch():
    path = "gs://bucket/db1/daily/wal_005/000000010000000000000004.lzo"

    assert swap_branch(path, "db1", "daily", "weekly") == (
        "gs://bucket/db1/weekly/wal_005/000000010000000000000004.lzo"
    )


def test_swap_branch_only_touches_branch_segment():
    """Test host or object names containing the branch name are untouched."""
    path = "gs://daily-bucket/daily/daily/basebackups_005/base_daily/part.tar.lzo"

    assert swap_branch(path, "daily", "daily", "weekly") == (
        "gs://daily-bucket/daily/weekly/basebackups_005/base_daily/part.tar.lzo"
    )


def test_swap_branch_rejects_foreign_path():
    with pytest.raises(ValueError):
        swap_branch("gs://bucket/db2/daily/wal_005/x.lzo", "db1", "daily", "weekly")


@pytest.mark.parametrize("today,day,expected", [
    (date(2023, 1, 4), 0, date(2023, 1, 1)),
    (date(2023, 1, 4), 5, date(2023, 1, 6)),
    (date(2023, 1, 4), 6, date(2023, 1, 7)),
    (date(2023, 1, 4), -1, date(2022, 12, 31)),
    (date(2023, 1, 7), 5, date(2023, 1, 6)),
    (date(2023, 1, 1), 6, date(2023, 1, 7)),
])
def test_weekday_date(today, day, expected):
    """Test weeks start on Sunday and negative days reach into last week."""
    assert weekday_date(day, today) == expected


def test_describe_day():
    assert describe_day(date(2023, 1, 6)) == "Friday 2023-01-06"


@pytest.mark.asyncio
async def test_poll_until_condition_met():
    calls = []

    def predicate():
        calls.append(1)
        return len(calls) >= 3

    assert await poll_until(predicate, interval=0.01, timeout=1.0) is True
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_poll_until_checks_before_sleeping():
    assert await poll_until(lambda: True, interval=10.0, timeout=1.0) is True


@pytest.mark.asyncio
async def test_poll_until_times_out():
    assert await poll_until(lambda: False, interval=0.01, timeout=0.05) is False


def test_latest_log_file(tmp_path):
    assert latest_log_file(tmp_path / "missing") is None
    assert latest_log_file(tmp_path) is None

    (tmp_path / "postgresql-10-main.log").write_text("")
    (tmp_path / "postgresql-10-main.log.1").write_text("")

    assert latest_log_file(tmp_path).name == "postgresql-10-main.log.1"


@pytest.mark.asyncio
async def test_follow_log_without_log_file(tmp_path):
    async with follow_log(tmp_path / "missing") as followed:
        assert followed is None


@pytest.mark.asyncio
async def test_follow_log_stops_on_exit(tmp_path):
    """Test following a real file starts and stops cleanly."""
    log_file = tmp_path / "postgresql.log"
    log_file.write_text("LOG:  database system is ready\n")

    async with follow_log(tmp_path) as followed:
        assert followed == log_file
        await asyncio.sleep(0.05)
