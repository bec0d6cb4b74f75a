import asyncio
import logging
import logging.handlers
import os
import pwd
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from .config import ArchiverConfig, LoggingConfig
from .exceptions import SubprocessFailed

logger = logging.getLogger("pg-backup")

LOG_FORMAT = '%(asctime)s - [%(name)s] - %(levelname)s - %(message)s'


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """Attach handlers to the package logger according to ``config``.

    Safe to call more than once; existing handlers are replaced.
    """
    logger.setLevel(getattr(logging, config.level, logging.INFO))
    # App-managed pattern: our own handlers, no propagation to the root logger
    logger.propagate = False
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')

    if config.log_dir:
        log_dir = Path(config.log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "pg_backup.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if config.console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if not logger.handlers:
        logger.addHandler(logging.NullHandler())

    return logger


@dataclass(frozen=True)
class SubprocessOptions:
    """Environment, working directory and identity for external tools."""
    env: Optional[Dict[str, str]] = None
    cwd: Optional[str] = None
    user: Optional[int] = None

    @classmethod
    def for_archiver(cls, config: ArchiverConfig) -> 'SubprocessOptions':
        """Resolve the archiver's run-as user once, at startup."""
        env = dict(os.environ)
        env["GOOGLE_APPLICATION_CREDENTIALS"] = config.gs_app_creds
        uid = None
        if config.run_as:
            try:
                uid = pwd.getpwnam(config.run_as).pw_uid
            except KeyError:
                logger.warning(f"User {config.run_as} not found, running archiver as current user")
        # Only root may switch identity; anyone else runs as themselves
        if uid is not None and hasattr(os, "geteuid") and os.geteuid() not in (0, uid):
            logger.warning(
                f"Not running as root, cannot run archiver as '{config.run_as}' user"
            )
            uid = None
        return cls(env=env, cwd=config.cwd, user=uid)


@dataclass
class CommandResult:
    args: List[str]
    stdout: str = ""
    stderr: str = ""
    lines: List[str] = field(default_factory=list)


async def _pump(
    stream: asyncio.StreamReader,
    sink: List[str],
    level: int,
    on_line: Optional[Callable[[str], None]] = None,
) -> None:
    async for raw in stream:
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        sink.append(line)
        if line:
            logger.log(level, line)
        if on_line is not None:
            on_line(line)


async def run_command(
    args: Sequence[str],
    options: Optional[SubprocessOptions] = None,
    on_stderr: Optional[Callable[[str], None]] = None,
) -> CommandResult:
    """Run an external command to completion.

    Stdout is logged at DEBUG and stderr at INFO, line by line, while the
    command runs.

    Args:
        args: Executable and arguments (no shell involved)
        options: Environment, cwd and user to run with
        on_stderr: Called with every stderr line as it arrives

    Returns:
        CommandResult with the collected output

    Raises:
        SubprocessFailed: The command could not be started or exited non-zero
    """
    args = [str(arg) for arg in args]
    options = options or SubprocessOptions()
    kwargs = {}
    if options.user is not None:
        kwargs["user"] = options.user

    logger.debug(f"Running command: {' '.join(args)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=options.env,
            cwd=options.cwd,
            **kwargs,
        )
    except PermissionError as e:
        logger.warning(f"No permission to run {args[0]}, are you running this as root?")
        raise SubprocessFailed(args, 126, str(e)) from e
    except FileNotFoundError as e:
        raise SubprocessFailed(args, 127, str(e)) from e

    stdout_lines: List[str] = []
    stderr_lines: List[str] = []
    await asyncio.gather(
        _pump(process.stdout, stdout_lines, logging.DEBUG),
        _pump(process.stderr, stderr_lines, logging.INFO, on_stderr),
    )
    exit_code = await process.wait()
    logger.debug(f"Command {args[0]} exited with code {exit_code}")

    stderr = "\n".join(stderr_lines)
    if exit_code != 0:
        raise SubprocessFailed(args, exit_code, stderr)

    return CommandResult(
        args=args,
        stdout="\n".join(stdout_lines),
        stderr=stderr,
        lines=stdout_lines,
    )
