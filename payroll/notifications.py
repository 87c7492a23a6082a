"""Best-effort delivery of payout notifications."""
from __future__ import annotations

import logging
from typing import Optional, Protocol

import requests

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(self, channel_id: str, message: str) -> None: ...


class WebhookNotifier:
    """POSTs ``{"channel_id", "message"}`` to a webhook (chat bridge, relay, etc.)."""

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self._http = session or requests.Session()

    def notify(self, channel_id: str, message: str) -> None:
        try:
            response = self._http.post(
                self.url,
                json={"channel_id": channel_id, "message": message},
                headers={"Accept": "application/json"},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            logger.warning("Notification to %s failed: %s", channel_id, exc)


class LogNotifier:
    """Fallback sink when no webhook is configured."""

    def notify(self, channel_id: str, message: str) -> None:
        logger.info("Notification for %s: %s", channel_id, message.replace("\n", " | "))
