"""gsutil object-storage client."""

from typing import List, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..._utils import SubprocessOptions, logger, run_command
from ...config import StorageConfig
from ...exceptions import SubprocessFailed


class GsutilClient:
    """List and copy backup objects with gsutil."""

    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(self, config: StorageConfig, options: Optional[SubprocessOptions] = None):
        self.config = config
        self.options = options

    def _args(self, *args: str) -> List[str]:
        return [self.config.gsutil_path, "-m", *args]

    async def total_size(self, prefix: str) -> str:
        """Aggregate size line(s) of every object below ``prefix``."""
        result = await run_command(self._args("ls", "-l", f"{prefix}/**"), self.options)
        return "\n".join(line for line in result.lines if "TOTAL" in line)

    async def list_recursive(self, pattern: str) -> List[str]:
        """Object urls matching ``pattern``, skipping blank and directory header lines."""
        result = await run_command(self._args("ls", "-r", pattern), self.options)
        return [
            line.strip() for line in result.lines
            if line.strip() and not line.strip().endswith(":")
        ]

    async def copy(self, src: str, dst: str) -> str:
        """Copy one object, retrying transient failures.

        Returns:
            Destination url
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.config.copy_attempts),
            wait=self.retry_wait,
            retry=retry_if_exception_type(SubprocessFailed),
            reraise=True,
        ):
            with attempt:
                await run_command(self._args("cp", src, dst), self.options)
        logger.debug(f"Successfully copied file {src} to {dst}")
        return dst
