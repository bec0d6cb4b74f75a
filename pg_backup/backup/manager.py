"""Base backup, retention and size operations."""

from datetime import datetime
from typing import Optional

from .._utils import logger
from ..config import ArchiverConfig
from ..exceptions import SubprocessFailed
from .catalog import BackupCatalog
from .clients import GsutilClient, WalEClient
from .models import BranchName, OperationResult, RetentionPolicy
from .retention import select_for_deletion, split_retained
from .utils import host_prefix


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


class BackupManager:
    """Push base backups and enforce retention for the configured host."""

    def __init__(
        self,
        config: ArchiverConfig,
        wale: WalEClient,
        catalog: BackupCatalog,
        gsutil: GsutilClient,
    ):
        """Initialize backup manager.

        Args:
            config: Archiver configuration (host, pgdata, bucket prefix)
            wale: Archiver client
            catalog: Catalog reader
            gsutil: Storage client, used for size reports
        """
        self.config = config
        self.wale = wale
        self.catalog = catalog
        self.gsutil = gsutil

    async def do_backup(self) -> OperationResult:
        """Push a base backup of the local data directory to the daily branch.

        Returns:
            OperationResult with the new base backup name as data
        """
        branch = BranchName.DAILY
        host = self.config.host
        logger.info(f"Doing backup for branch {branch.value} of host {host}")

        try:
            backup_name = await self.wale.backup_push(self.config.pgdata)
        except SubprocessFailed:
            logger.warning("Backup failed, POSTGRESQL MIGHT BE OFF, PLEASE CHECK IT")
            raise

        logger.info("Wal-e backup push process finished. Backup successful")
        return OperationResult(
            message=(
                f"Backup: {backup_name}, completed on {_now()} for host {host}, "
                f"branch {branch.value}."
            ),
            data=backup_name,
        )

    async def delete_backups(self, policy: RetentionPolicy) -> OperationResult:
        """Delete the oldest backups of a branch, retaining ``policy.keep``.

        Deletion itself is done by the archiver's ``delete --confirm retain N``
        (``everything`` for 0); nothing happens when there are not more than
        ``keep`` backups.
        """
        host = self.config.host
        branch = policy.branch
        logger.info(f"Deleting backups for branch {branch.value} of host {host}, retaining {policy.keep}")

        records = await self.catalog.list_backups(branch, host)
        if not select_for_deletion(records, policy.keep):
            logger.info("Wal-e delete skipped")
            return OperationResult(
                message=(
                    f"Deletion: Number of backups ({len(records)}) are not more than {policy.keep} "
                    f"for host {host}, branch {branch.value}"
                ),
                data=0,
            )

        retained, expired = split_retained(records, policy.keep)
        deleted = len(expired)
        logger.info(
            f"Deleting {', '.join(r.name for r in expired)}; "
            f"retaining {', '.join(r.name for r in retained) or 'nothing'}"
        )
        await self.wale.delete(branch, policy.keep)
        return OperationResult(
            message=(
                f"Deletion: Deleted the oldest {deleted} backups, retained {policy.keep} "
                f"for host {host}, branch {branch.value}"
            ),
            data=deleted,
        )

    async def get_size(self, host: Optional[str] = None) -> OperationResult:
        """Total size of every backup object of ``host`` across all branches."""
        host = host or self.config.host
        logger.info(f"Getting size of backups for host: {host}")
        total = await self.gsutil.total_size(host_prefix(self.config.gs_prefix, host))
        return OperationResult(message=total, data=total)
