"""Tests for backup selection policies."""

import pytest
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

from pg_backup.backup.models import BranchName
from pg_backup.backup.retention import (
    select_across_branches,
    select_for_date,
    select_for_deletion,
    select_for_weekday,
    split_retained,
)
from pg_backup.exceptions import CatalogUnavailable, NoBackupBeforeDate
from tests.utils import make_record

UTC = timezone.utc


def daily_records(days: int):
    """One backup at 03:00 UTC for each of ``days`` days starting 2023-01-01."""
    start = datetime(2023, 1, 1, 3, 0, tzinfo=UTC)
    return [
        make_record(f"base_{i:02d}", start + timedelta(days=i))
        for i in range(days)
    ]


@pytest.mark.parametrize("count,keep,expected", [
    (0, 0, False),
    (3, 0, True),
    (7, 8, False),
    (8, 8, False),
    (9, 8, True),
])
def test_select_for_deletion(count, keep, expected):
    """Test deletion happens only when there are more backups than retained."""
    assert select_for_deletion(daily_records(count), keep) is expected


def test_select_for_deletion_negative_keep():
    with pytest.raises(ValueError):
        select_for_deletion(daily_records(3), -1)


def test_split_retained_keeps_newest():
    """Test three backups with keep=2 expire only the oldest."""
    now = datetime(2023, 1, 10, 3, 0, tzinfo=UTC)
    b1 = make_record("b1", now - timedelta(days=3))
    b2 = make_record("b2", now - timedelta(days=1))
    b3 = make_record("b3", now)

    retained, expired = split_retained([b3, b1, b2], 2)

    assert select_for_deletion([b3, b1, b2], 2) is True
    assert expired == [b1]
    assert {r.name for r in retained} == {"b2", "b3"}


@pytest.mark.parametrize("count,keep", [(0, 0), (3, 0), (3, 5), (9, 8)])
def test_split_retained_sizes(count, keep):
    retained, expired = split_retained(daily_records(count), keep)

    assert len(retained) == min(count, keep)
    assert len(retained) + len(expired) == count
    if retained and expired:
        assert expired[-1].last_modified < retained[0].last_modified


def test_select_for_weekday_picks_latest_of_day():
    records = [
        make_record("early", datetime(2023, 1, 6, 2, 0, tzinfo=UTC)),
        make_record("late", datetime(2023, 1, 6, 23, 0, tzinfo=UTC)),
        make_record("next_day", datetime(2023, 1, 7, 1, 0, tzinfo=UTC)),
    ]

    selected = select_for_weekday(records, date(2023, 1, 6), tz=UTC)

    assert selected.name == "late"


def test_select_for_weekday_result_is_on_that_day():
    """Test the result, when present, is a record of the requested day."""
    records = daily_records(14)
    for offset in range(14):
        day = date(2023, 1, 1) + timedelta(days=offset)
        selected = select_for_weekday(records, day, tz=UTC)
        assert selected in records
        assert selected.last_modified.astimezone(UTC).date() == day


def test_select_for_weekday_no_match():
    assert select_for_weekday(daily_records(3), date(2023, 2, 1), tz=UTC) is None
    assert select_for_weekday([], date(2023, 1, 1), tz=UTC) is None


def test_select_for_weekday_tie_keeps_catalog_order():
    """Test records with equal timestamps resolve to the first listed."""
    moment = datetime(2023, 1, 6, 3, 0, tzinfo=UTC)
    records = [make_record("first", moment), make_record("second", moment)]

    assert select_for_weekday(records, date(2023, 1, 6), tz=UTC).name == "first"


def test_select_for_weekday_evaluates_day_in_timezone():
    """Test the calendar day depends on the timezone it is evaluated in."""
    records = [make_record("late_utc", datetime(2023, 1, 6, 23, 0, tzinfo=UTC))]
    plus_two = timezone(timedelta(hours=2))

    assert select_for_weekday(records, date(2023, 1, 7), tz=plus_two).name == "late_utc"
    assert select_for_weekday(records, date(2023, 1, 6), tz=plus_two) is None


def test_select_for_date():
    records = daily_records(5)

    selected = select_for_date(records, datetime(2023, 1, 3, 12, 0, tzinfo=UTC))

    assert selected.name == "base_02"
    assert selected.last_modified <= datetime(2023, 1, 3, 12, 0, tzinfo=UTC)


def test_select_for_date_includes_exact_timestamp():
    records = daily_records(5)

    assert select_for_date(records, datetime(2023, 1, 3, 3, 0, tzinfo=UTC)).name == "base_02"


def test_select_for_date_ignores_catalog_order():
    records = list(reversed(daily_records(5)))

    assert select_for_date(records, datetime(2023, 1, 10, tzinfo=UTC)).name == "base_04"


def test_select_for_date_nothing_before():
    assert select_for_date(daily_records(5), datetime(2022, 12, 31, tzinfo=UTC)) is None


def test_select_for_date_is_monotonic():
    """Test a later target never selects an older backup."""
    records = daily_records(6)
    records = records[3:] + records[:3]
    targets = [
        datetime(2022, 12, 31, tzinfo=UTC) + timedelta(hours=7 * step)
        for step in range(30)
    ]

    previous = None
    for target in targets:
        selected = select_for_date(records, target)
        if previous is not None:
            assert selected is not None
            assert selected.last_modified >= previous.last_modified
        if selected is not None:
            assert selected.last_modified <= target
            previous = selected
    assert previous.name == "base_05"


def catalog_with(branches):
    catalog = MagicMock()

    async def list_backups(branch, host, detailed=False):
        return branches[BranchName(branch)]

    catalog.list_backups = AsyncMock(side_effect=list_backups)
    return catalog


@pytest.mark.asyncio
async def test_select_across_branches_prefers_daily():
    catalog = catalog_with({
        BranchName.DAILY: daily_records(5),
        BranchName.WEEKLY: daily_records(1),
    })

    branch, record = await select_across_branches(
        catalog, "db1", datetime(2023, 1, 4, tzinfo=UTC)
    )

    assert branch == BranchName.DAILY
    assert record.name == "base_02"
    catalog.list_backups.assert_awaited_once_with(BranchName.DAILY, "db1")


@pytest.mark.asyncio
async def test_select_across_branches_falls_back_to_weekly():
    """Test weekly is consulted when daily has nothing old enough."""
    weekly = [make_record("weekly_old", datetime(2022, 12, 3, 3, 0, tzinfo=UTC))]
    catalog = catalog_with({
        BranchName.DAILY: daily_records(5),
        BranchName.WEEKLY: weekly,
    })

    branch, record = await select_across_branches(
        catalog, "db1", datetime(2022, 12, 20, tzinfo=UTC)
    )

    assert branch == BranchName.WEEKLY
    assert record.name == "weekly_old"
    assert catalog.list_backups.await_count == 2


@pytest.mark.asyncio
async def test_select_across_branches_nothing_found():
    catalog = catalog_with({BranchName.DAILY: [], BranchName.WEEKLY: []})

    with pytest.raises(NoBackupBeforeDate) as exc_info:
        await select_across_branches(catalog, "db1", datetime(2023, 1, 1, tzinfo=UTC))

    assert exc_info.value.branches == ["daily", "weekly"]


@pytest.mark.asyncio
async def test_select_across_branches_propagates_catalog_errors():
    catalog = MagicMock()
    catalog.list_backups = AsyncMock(side_effect=CatalogUnavailable("daily", "db1"))

    with pytest.raises(CatalogUnavailable):
        await select_across_branches(catalog, "db1", datetime(2023, 1, 1, tzinfo=UTC))
