"""WAL-E archiving tool client."""

from pathlib import Path
from typing import Optional, Union

from ..._utils import CommandResult, SubprocessOptions, logger, run_command
from ...config import ArchiverConfig
from ...exceptions import ArchiverNotFound
from ..models import BranchName
from ..utils import BASE_BACKUP_DIR, branch_prefix


class WalEClient:
    """Run WAL-E subcommands scoped to a branch of a host.

    Every call goes through ``--gs-prefix gs://<bucket>/<host>/<branch>`` so
    branches never see each other's objects.
    """

    def __init__(self, config: ArchiverConfig, options: Optional[SubprocessOptions] = None):
        """Initialize client.

        Args:
            config: Archiver configuration
            options: Subprocess environment and identity, resolved once at startup
        """
        self.config = config
        self.options = options or SubprocessOptions.for_archiver(config)
        self._available = False

    def prefix(self, branch: Union[BranchName, str], host: Optional[str] = None) -> str:
        return branch_prefix(self.config.gs_prefix, host or self.config.host, branch)

    async def ensure_available(self) -> None:
        """Check the executable and the storage credentials exist.

        Raises:
            ArchiverNotFound: Either file is missing
        """
        if self._available:
            return
        if not Path(self.config.path).exists():
            logger.warning("Wal-e not found, is it installed?")
            raise ArchiverNotFound(f"Executable {self.config.path} doesn't exist")
        if not Path(self.config.gs_app_creds).exists():
            logger.warning(f"Google credentials not found at path {self.config.gs_app_creds}")
            raise ArchiverNotFound(f"GCS credentials not found at {self.config.gs_app_creds}")
        self._available = True

    async def _run(self, branch, host, *subcommand, on_stderr=None) -> CommandResult:
        await self.ensure_available()
        args = [self.config.path, "--gs-prefix", self.prefix(branch, host), *subcommand]
        return await run_command(args, self.options, on_stderr=on_stderr)

    async def backup_list(self, branch: Union[BranchName, str], host: str, detailed: bool = False) -> str:
        """Raw tab separated catalog output."""
        subcommand = ["backup-list", "--detail"] if detailed else ["backup-list"]
        result = await self._run(branch, host, *subcommand)
        return result.stdout

    async def backup_push(self, pgdata: Optional[str] = None) -> str:
        """Push a base backup of ``pgdata`` to the daily branch of this host.

        Returns:
            Name of the new base backup, or "" if WAL-E did not report it
        """
        branch = BranchName.DAILY
        lookup = f"DETAIL: Uploading to {self.prefix(branch)}/{BASE_BACKUP_DIR}/"
        found = []

        def _scrape(line: str) -> None:
            if not found and lookup in line:
                rest = line[line.index(lookup) + len(lookup):]
                name = rest.split("/")[0].strip()
                if name:
                    found.append(name)

        await self._run(branch, None, "backup-push", pgdata or self.config.pgdata, on_stderr=_scrape)
        return found[0] if found else ""

    async def backup_fetch(
        self,
        branch: Union[BranchName, str],
        host: str,
        backup_name: str,
        pgdata: Optional[str] = None,
    ) -> None:
        await self._run(branch, host, "backup-fetch", pgdata or self.config.pgdata, backup_name)

    async def delete(self, branch: Union[BranchName, str], keep: int) -> None:
        """Delete all but the newest ``keep`` backups of this host's branch."""
        retention = ["retain", str(keep)] if keep > 0 else ["everything"]
        await self._run(branch, None, "delete", "--confirm", *retention)

    def restore_command(self, branch: Union[BranchName, str], host: str) -> str:
        """recovery.conf restore_command fetching WAL from a branch of ``host``."""
        return (
            f"restore_command = 'GOOGLE_APPLICATION_CREDENTIALS=\"{self.config.gs_app_creds}\" "
            f"WALE_GS_PREFIX=\"{self.prefix(branch, host)}\" "
            f"{self.config.path} wal-fetch %f %p'"
        )
