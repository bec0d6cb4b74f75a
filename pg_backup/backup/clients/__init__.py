"""Clients for the external tools backups are delegated to."""

from .wale import WalEClient
from .gsutil import GsutilClient
from .service import ServiceController

__all__ = ["WalEClient", "GsutilClient", "ServiceController"]
