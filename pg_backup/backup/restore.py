"""Restore a base backup and replay WAL up to a recovery target.

A restore is destructive and is never rolled back: after a failure the
database service may be left stopped and the old data directory renamed.
The session keeps the list of completed steps so the operator can tell
where it stopped.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from pathlib import Path
from typing import List, Optional

from .._utils import logger
from ..config import ArchiverConfig, RestoreConfig, ServiceConfig
from ..exceptions import DataDirConflict, RecoveryConfigError, RecoveryTimeout
from .catalog import BackupCatalog
from .clients import ServiceController, WalEClient
from .models import OperationResult, RestoreRequest
from .retention import RESTORE_BRANCH_ORDER, select_across_branches
from .utils import follow_log, poll_until, timestamp_suffix

RECOVERY_CONFIG_NAME = "recovery.conf"
RECOVERY_DONE_NAME = "recovery.done"


class RestoreState(str, Enum):
    IDLE = "idle"
    SERVICE_STOPPED = "service_stopped"
    DATA_DIR_CHECKED = "data_dir_checked"
    BASE_BACKUP_FETCHED = "base_backup_fetched"
    RECOVERY_CONFIGURED = "recovery_configured"
    SERVICE_STARTED = "service_started"
    POLLING = "polling"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    FAILED = "failed"


@dataclass
class RestoreSession:
    pgdata: Path
    recovery_config_path: Path
    state: RestoreState = RestoreState.IDLE
    started_at: datetime = field(default_factory=datetime.now)
    deadline: Optional[datetime] = None
    completed_steps: List[RestoreState] = field(default_factory=list)
    renamed_pgdata: Optional[Path] = None
    failed_step: Optional[RestoreState] = None

    @property
    def recovery_done_path(self) -> Path:
        return self.pgdata / RECOVERY_DONE_NAME

    def advance(self, state: RestoreState) -> None:
        self.state = state
        self.completed_steps.append(state)


class RestoreStateMachine:
    """Run one restore, step by step, stopping at the first failure."""

    def __init__(
        self,
        request: RestoreRequest,
        wale: WalEClient,
        service: ServiceController,
        archiver: ArchiverConfig,
        service_config: ServiceConfig,
        restore_config: RestoreConfig,
    ):
        self.request = request
        self.wale = wale
        self.service = service
        self.archiver = archiver
        self.service_config = service_config
        self.restore_config = restore_config

        pgdata = Path(archiver.pgdata)
        self.session = RestoreSession(
            pgdata=pgdata,
            recovery_config_path=pgdata / RECOVERY_CONFIG_NAME,
        )

    async def run(self) -> OperationResult:
        """Run every step in order.

        Raises:
            DataDirConflict: The data directory exists and force is off
            RecoveryConfigError: recovery.conf could not be written
            RecoveryTimeout: Recovery did not finish before the deadline
            SubprocessFailed: An external tool failed
        """
        request = self.request
        logger.info(
            f"Starting restore with base backup {request.base_backup} of {request.host} "
            f"from branch {request.branch.value} on host {self.archiver.host}"
        )
        steps = [
            (RestoreState.SERVICE_STOPPED, self._stop_service),
            (RestoreState.DATA_DIR_CHECKED, self._check_data_dir),
            (RestoreState.BASE_BACKUP_FETCHED, self._fetch_base_backup),
            (RestoreState.RECOVERY_CONFIGURED, self._write_recovery_config),
            (RestoreState.SERVICE_STARTED, self._start_service),
            (RestoreState.COMPLETED, self._wait_for_recovery),
        ]
        for state, step in steps:
            try:
                await step()
            except RecoveryTimeout:
                self.session.failed_step = RestoreState.POLLING
                self.session.state = RestoreState.TIMED_OUT
                logger.error(f"Restore timed out, please check PGDATA dir {self.session.pgdata}")
                raise
            except Exception as e:
                failed_in = self.session.state
                self.session.failed_step = state
                self.session.state = RestoreState.FAILED
                logger.error(f"Restore failed after {failed_in.value}: {e}")
                raise
            self.session.advance(state)

        target = request.effective_recovery_target
        return OperationResult(
            message=(
                f"Wal-e restore successfully done on {datetime.now().isoformat(timespec='seconds')} "
                f"on host {self.archiver.host} from base backup {request.base_backup} of {request.host}, "
                f"from branch {request.branch.value} with recovery target "
                f"{target.isoformat() if target else 'end of backup'}"
            ),
            data=self.session.completed_steps,
        )

    async def _stop_service(self) -> None:
        await self.service.stop()

    async def _check_data_dir(self) -> None:
        pgdata = self.session.pgdata
        logger.info(f"Checking PGDATA {pgdata}")
        if not pgdata.exists():
            logger.info("Checked PGDATA, it does not exist. Continuing.")
            return
        if not self.request.force:
            raise DataDirConflict(str(pgdata))

        logger.warning(f"A directory already exists at PGDATA {pgdata}, renaming it")
        renamed = pgdata.with_name(f"{pgdata.name}_{timestamp_suffix()}")
        pgdata.rename(renamed)
        self.session.renamed_pgdata = renamed
        logger.info(f"Successfully renamed old pgdata directory {pgdata} to {renamed}")

    async def _fetch_base_backup(self) -> None:
        request = self.request
        await self.wale.backup_fetch(
            request.branch, request.host, request.base_backup, str(self.session.pgdata)
        )
        logger.info("Wal-e backup-fetch command finished. Downloaded and extracted base backup")

    def recovery_config(self) -> str:
        """Contents of recovery.conf for this request."""
        request = self.request
        lines = [self.wale.restore_command(request.branch, request.host)]
        target = request.effective_recovery_target
        if target is not None:
            if target.tzinfo is None:
                target = target.astimezone()
            lines.append("recovery_target_action = promote")
            lines.append(f"recovery_target_time = '{target.isoformat()}'")
        return "\n".join(lines) + "\n"

    async def _write_recovery_config(self) -> None:
        config_path = self.session.recovery_config_path
        contents = self.recovery_config()
        logger.info(f"Creating {config_path}")
        logger.debug(f"Contents of {RECOVERY_CONFIG_NAME}:\n{contents}")
        try:
            config_path.write_text(contents)
        except OSError as e:
            raise RecoveryConfigError(f"Could not create {config_path}") from e

        # a leftover marker would end polling immediately
        done_path = self.session.recovery_done_path
        try:
            done_path.unlink()
            logger.info(f"Deleted old {done_path}")
        except FileNotFoundError:
            logger.debug(f"No old {RECOVERY_DONE_NAME} exists. Continuing.")
        except OSError as e:
            raise RecoveryConfigError(f"Could not delete old {done_path}") from e

        if self.archiver.run_as:
            await self.service.chown(str(self.session.pgdata), self.archiver.run_as)
        logger.info(f"Successfully created {RECOVERY_CONFIG_NAME}")

    async def _start_service(self) -> None:
        await self.service.start()

    async def _wait_for_recovery(self) -> None:
        self.session.advance(RestoreState.POLLING)
        timeout = self.restore_config.timeout
        self.session.deadline = datetime.now() + timedelta(seconds=timeout)
        marker = self.session.recovery_done_path

        async with follow_log(Path(self.service_config.log_dir)):
            done = await poll_until(marker.exists, self.restore_config.poll_interval, timeout)

        if not done:
            raise RecoveryTimeout(timeout, str(marker))
        logger.info("Recovery complete")


class RestoreManager:
    """Entry points for direct and date-based restores."""

    def __init__(
        self,
        catalog: BackupCatalog,
        wale: WalEClient,
        service: ServiceController,
        archiver: ArchiverConfig,
        service_config: ServiceConfig,
        restore_config: RestoreConfig,
    ):
        self.catalog = catalog
        self.wale = wale
        self.service = service
        self.archiver = archiver
        self.service_config = service_config
        self.restore_config = restore_config
        self.last_session: Optional[RestoreSession] = None

    def state_machine(self, request: RestoreRequest) -> RestoreStateMachine:
        return RestoreStateMachine(
            request,
            self.wale,
            self.service,
            self.archiver,
            self.service_config,
            self.restore_config,
        )

    async def restore(self, request: RestoreRequest) -> OperationResult:
        machine = self.state_machine(request)
        self.last_session = machine.session
        return await machine.run()

    async def restore_from_date(self, target: datetime, host: Optional[str] = None) -> OperationResult:
        """Restore the latest backup taken at or before ``target``.

        Daily backups are preferred; weekly ones are used when the daily branch
        has nothing old enough. Always runs with force, renaming any existing
        data directory.

        Raises:
            NoBackupBeforeDate: Neither branch has a suitable backup
        """
        host = host or self.archiver.host
        logger.info(f"Starting restoration from date for host {self.archiver.host} from {host}")
        branch, record = await select_across_branches(
            self.catalog, host, target, RESTORE_BRANCH_ORDER
        )
        request = RestoreRequest(
            branch=branch,
            host=host,
            base_backup=record.name,
            force=True,
            recovery_target_time=target,
        )
        return await self.restore(request)
