"""Slack webhook notifications for cron reports."""

from typing import Any, Dict, List

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ._utils import logger
from .backup.models import CronReport, ReportEntry
from .config import SlackConfig


def _fields(entries: List[ReportEntry]) -> List[Dict[str, str]]:
    return [{"title": entry.step, "value": entry.message} for entry in entries]


class SlackNotifier:
    """Send one message per report to a Slack incoming webhook.

    Delivery problems are logged and never raised: a broken webhook must not
    turn a finished run into a failed one.
    """

    retry_wait = wait_exponential(multiplier=1, min=1, max=10)

    def __init__(self, config: SlackConfig):
        self.config = config

    def build_payload(self, title: str, report: CronReport) -> Dict[str, Any]:
        payload = {
            "username": self.config.username,
            "icon_emoji": self.config.icon_emoji,
            "channel": self.config.channel,
            "attachments": [
                {
                    "pretext": title,
                    "color": "good",
                    "fallback": "Postgres Backup Status:\n",
                    "fields": _fields(report.successes),
                },
            ],
        }
        if report.failures:
            payload["attachments"].append({
                "pretext": "Failures: ",
                "color": "danger",
                "fallback": "Postgres Backup Errors:\n",
                "fields": _fields(report.failures),
            })
        return payload

    async def send(self, title: str, report: CronReport) -> bool:
        """Post the report.

        Returns:
            True if Slack accepted the message
        """
        if not self.config.webhook:
            logger.warning("Slack webhook not configured, not sending report")
            return False

        payload = self.build_payload(title, report)
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(3),
                wait=self.retry_wait,
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                        response = await client.post(self.config.webhook, json=payload)
                        response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Slack rejected report '{title}' ({len(report.successes)} msgs, "
                f"{len(report.failures)} errs): {e.response.status_code} {e.response.text}"
            )
            return False
        except Exception as e:
            logger.error(f"Could not send Slack report '{title}': {e}")
            return False

        logger.info(f"Sent slack msg. Received {response.text} from Slack.")
        return True
