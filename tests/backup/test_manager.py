"""Tests for BackupManager."""

import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

from pg_backup.backup.manager import BackupManager
from pg_backup.backup.models import BranchName, RetentionPolicy
from pg_backup.exceptions import CatalogUnavailable, SubprocessFailed
from tests.utils import make_record


def records(count):
    start = datetime(2023, 1, 1, 3, 0, tzinfo=timezone.utc)
    return [make_record(f"base_{i}", start + timedelta(days=i)) for i in range(count)]


@pytest.fixture
def manager(archiver_config):
    """BackupManager with mocked archiver, catalog and storage clients."""
    wale = MagicMock()
    wale.backup_push = AsyncMock(return_value="base_000000010000000000000004_00000040")
    wale.delete = AsyncMock()
    catalog = MagicMock()
    catalog.list_backups = AsyncMock(return_value=records(10))
    gsutil = MagicMock()
    gsutil.total_size = AsyncMock(return_value="   8.53 GiB  TOTAL: 1234 objects")
    return BackupManager(archiver_config, wale, catalog, gsutil)


@pytest.mark.asyncio
async def test_do_backup(manager, archiver_config):
    result = await manager.do_backup()

    manager.wale.backup_push.assert_awaited_once_with(archiver_config.pgdata)
    assert result.data == "base_000000010000000000000004_00000040"
    assert "base_000000010000000000000004_00000040" in result.message
    assert "branch daily" in result.message


@pytest.mark.asyncio
async def test_do_backup_failure_propagates(manager):
    manager.wale.backup_push.side_effect = SubprocessFailed(["wal-e"], 1, "could not connect")

    with pytest.raises(SubprocessFailed):
        await manager.do_backup()


@pytest.mark.asyncio
async def test_delete_backups_retains_newest(manager):
    result = await manager.delete_backups(RetentionPolicy(branch=BranchName.DAILY, keep=8))

    manager.catalog.list_backups.assert_awaited_once_with(BranchName.DAILY, "db1")
    manager.wale.delete.assert_awaited_once_with(BranchName.DAILY, 8)
    assert result.data == 2
    assert "retained 8" in result.message


@pytest.mark.asyncio
async def test_delete_backups_expires_only_oldest(manager):
    """Test three backups with keep=2 delete one and retain the two newest."""
    now = datetime(2023, 1, 10, 3, 0, tzinfo=timezone.utc)
    manager.catalog.list_backups.return_value = [
        make_record("b3", now),
        make_record("b1", now - timedelta(days=3)),
        make_record("b2", now - timedelta(days=1)),
    ]

    with patch("pg_backup.backup.manager.logger") as log:
        result = await manager.delete_backups(RetentionPolicy(branch=BranchName.DAILY, keep=2))

    manager.wale.delete.assert_awaited_once_with(BranchName.DAILY, 2)
    assert result.data == 1
    log.info.assert_any_call("Deleting b1; retaining b2, b3")


@pytest.mark.asyncio
@pytest.mark.parametrize("count", [0, 5, 12])
async def test_delete_backups_skipped(manager, count):
    """Test nothing is deleted when there are not more backups than retained."""
    manager.catalog.list_backups.return_value = records(count)

    result = await manager.delete_backups(RetentionPolicy(branch=BranchName.WEEKLY, keep=12))

    manager.wale.delete.assert_not_awaited()
    assert result.data == 0
    assert "not more than 12" in result.message


@pytest.mark.asyncio
async def test_delete_backups_keep_zero_deletes_everything(manager):
    manager.catalog.list_backups.return_value = records(3)

    result = await manager.delete_backups(RetentionPolicy(branch=BranchName.DAILY, keep=0))

    manager.wale.delete.assert_awaited_once_with(BranchName.DAILY, 0)
    assert result.data == 3


@pytest.mark.asyncio
async def test_delete_backups_catalog_unavailable(manager):
    manager.catalog.list_backups.side_effect = CatalogUnavailable("daily", "db1")

    with pytest.raises(CatalogUnavailable):
        await manager.delete_backups(RetentionPolicy(branch=BranchName.DAILY, keep=8))

    manager.wale.delete.assert_not_awaited()


def test_retention_policy_rejects_negative_keep():
    with pytest.raises(ValueError):
        RetentionPolicy(branch=BranchName.DAILY, keep=-1)


@pytest.mark.asyncio
async def test_get_size(manager):
    result = await manager.get_size()

    manager.gsutil.total_size.assert_awaited_once_with("gs://bucket/db1")
    assert "TOTAL" in result.message


@pytest.mark.asyncio
async def test_get_size_other_host(manager):
    await manager.get_size("db2")

    manager.gsutil.total_size.assert_awaited_once_with("gs://bucket/db2")
