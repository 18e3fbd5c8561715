"""
Outbound message delivery adapters used for password reset emails.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import httpx

from config import MAIL_FROM, MAIL_TIMEOUT_SECONDS, MAIL_WEBHOOK_TOKEN, MAIL_WEBHOOK_URL

logger = logging.getLogger(__name__)

RESET_SUBJECT = "Reset your password"


class NotifierError(RuntimeError):
    """Delivery of a message failed."""


class Notifier(ABC):
    @abstractmethod
    async def send(self, address: str, message: str) -> None:
        """
        Deliver ``message`` to ``address``; raise NotifierError on failure.
        """


class LogNotifier(Notifier):
    """
    Development notifier that writes messages to the log instead of sending.
    """

    async def send(self, address: str, message: str) -> None:
        logger.info("[notifier.log] to=%s message=%s", address, message)


class WebhookNotifier(Notifier):
    """
    Posts messages as JSON to an email-delivery HTTP endpoint.
    """

    def __init__(
        self,
        url: str,
        token: str = "",
        sender: str = MAIL_FROM,
        timeout: float = MAIL_TIMEOUT_SECONDS,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url.strip()
        self.token = token
        self.sender = sender
        self.timeout = timeout
        self._transport = transport

    async def send(self, address: str, message: str) -> None:
        headers = {"Content-Type": "application/json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        payload = {
            "from": self.sender,
            "to": address,
            "subject": RESET_SUBJECT,
            "html": message,
        }

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(self.url, headers=headers, json=payload)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error("Mail webhook HTTP error: %s %s", exc.response.status_code, exc.response.text[:500])
            raise NotifierError(f"Mail webhook returned HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.error("Mail webhook request error: %s", exc)
            raise NotifierError(f"Mail webhook request failed: {exc}") from exc


def create_notifier(name: str) -> Notifier:
    normalized = name.strip().lower()
    if normalized == "log":
        return LogNotifier()
    if normalized == "webhook":
        return WebhookNotifier(url=MAIL_WEBHOOK_URL, token=MAIL_WEBHOOK_TOKEN)
    raise RuntimeError(f"Unsupported notifier: {name}")
