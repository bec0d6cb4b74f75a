"""Database service control."""

from ..._utils import logger, run_command
from ...config import ServiceConfig


class ServiceController:
    def __init__(self, config: ServiceConfig):
        self.config = config

    async def start(self) -> None:
        await run_command(["service", self.config.name, "start"])
        logger.info(f"Service {self.config.name} started")

    async def stop(self) -> None:
        await run_command(["service", self.config.name, "stop"])
        logger.info(f"Service {self.config.name} stopped")

    async def chown(self, path: str, user: str) -> None:
        await run_command(["chown", "-R", f"{user}:{user}", path])
        logger.info(f"Changed owner of {path} to {user}")
