"""Audit events for sharing mutations.

Every state change in the sharing subsystem emits one event:

  invite.created, invite.accepted, invite.revoked,
  access.revoked,
  share_token.created, share_token.resolved, share_token.revoked

Security invariant:
  Invite and share tokens never appear in event payloads in full. Only the
  first 8 characters are kept for correlation.

Emission is fire-and-forget. A failing sink is logged and otherwise
ignored so that auditing can never fail a committed mutation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from ..observability.metrics import SHARING_EVENTS_TOTAL

logger = logging.getLogger(__name__)

# ── Constants ─────────────────────────────────────────────────────────

TOKEN_PREFIX_LENGTH = 8

INVITE_CREATED = 'invite.created'
INVITE_ACCEPTED = 'invite.accepted'
INVITE_REVOKED = 'invite.revoked'
ACCESS_REVOKED = 'access.revoked'
SHARE_TOKEN_CREATED = 'share_token.created'
SHARE_TOKEN_RESOLVED = 'share_token.resolved'
SHARE_TOKEN_REVOKED = 'share_token.revoked'


def redact_token(token: str | None) -> str:
    """Truncate a token to a prefix for logs and audit payloads."""
    if not token or len(token) < TOKEN_PREFIX_LENGTH:
        return '<redacted>'
    return f'{token[:TOKEN_PREFIX_LENGTH]}...'


# ── Event model ───────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class AuditEvent:
    action: str
    project_id: str
    tool_key: str = ''
    actor_id: str | None = None
    subject: str = ''
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            'action': self.action,
            'project_id': self.project_id,
            'tool_key': self.tool_key,
            'actor_id': self.actor_id,
            'subject': self.subject,
            'data': dict(self.data),
            'timestamp': self.timestamp.isoformat(),
        }


class AuditEmitter(Protocol):
    async def emit(self, event: AuditEvent) -> None: ...


class InMemoryAuditEmitter:
    """Keeps events in a list; used locally and in tests."""

    def __init__(self) -> None:
        self.events: list[AuditEvent] = []

    async def emit(self, event: AuditEvent) -> None:
        self.events.append(event)

    def find(
        self,
        action: str | None = None,
        project_id: str | None = None,
    ) -> list[AuditEvent]:
        result = self.events
        if action:
            result = [e for e in result if e.action == action]
        if project_id:
            result = [e for e in result if e.project_id == project_id]
        return result


async def record(emitter: AuditEmitter | None, event: AuditEvent) -> None:
    """Emit ``event``, logging instead of raising on sink failure."""
    SHARING_EVENTS_TOTAL.labels(action=event.action).inc()
    if emitter is None:
        return
    try:
        await emitter.emit(event)
    except Exception:
        logger.exception(
            'Audit emit failed action=%s project_id=%s',
            event.action,
            event.project_id,
        )
