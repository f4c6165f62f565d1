"""Invite notification transports.

Delivery, templating and retries beyond the outbox belong to the mail
service. These adapters only hand the notification over:

  - ``LoggingInviteNotifier`` writes a redacted log line (local default).
  - ``WebhookInviteNotifier`` POSTs the notification as JSON to a mail
    relay. Non-2xx responses raise so the outbox can retry.
"""

from __future__ import annotations

import logging

import httpx

from ..audit import redact_token
from .outbox import InviteNotification

logger = logging.getLogger(__name__)


class LoggingInviteNotifier:
    async def send_invite(self, notification: InviteNotification) -> None:
        logger.info(
            'Invite notification queued to=%s tool=%s level=%s token=%s',
            notification.to_email,
            notification.tool_name,
            notification.access_level,
            redact_token(notification.token),
        )


class WebhookInviteNotifier:
    """POST ``{"template": "invite", "params": {...}}`` to ``webhook_url``."""

    def __init__(
        self,
        webhook_url: str,
        *,
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        if not webhook_url:
            raise ValueError('webhook_url is required')
        self._url = webhook_url
        self._client = http_client or httpx.AsyncClient()
        self._timeout = timeout_seconds

    async def send_invite(self, notification: InviteNotification) -> None:
        resp = await self._client.post(
            self._url,
            json={'template': 'invite', 'params': notification.to_payload()},
            timeout=self._timeout,
        )
        resp.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()
