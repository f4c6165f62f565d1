"""Supabase-backed AuditEmitter.

Writes sharing audit events to ``audit_events`` via PostgREST. Callers go
through ``access_plane.app.audit.record``, which already isolates failures;
this emitter additionally strips secret-looking keys from the payload.
"""

from __future__ import annotations

from typing import Any

from ..audit import AuditEvent
from .supabase_client import SupabaseClient

# Keys that must never appear in audit payloads.
_SENSITIVE_KEYS = frozenset({
    "authorization",
    "apikey",
    "service_role_key",
    "token",
    "invite_token",
    "share_token",
    "secret",
    "password",
})


def _sanitize_payload(payload: dict[str, Any]) -> dict[str, Any]:
    sanitized: dict[str, Any] = {}
    for key, value in payload.items():
        if key.lower() in _SENSITIVE_KEYS:
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, dict):
            sanitized[key] = _sanitize_payload(value)
        else:
            sanitized[key] = value
    return sanitized


class SupabaseAuditEmitter:
    TABLE = "audit_events"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def emit(self, event: AuditEvent) -> None:
        await self._client.insert(
            self.TABLE,
            {
                "action": event.action,
                "project_id": event.project_id,
                "tool_key": event.tool_key or None,
                "actor_id": event.actor_id,
                "subject": event.subject or None,
                "payload": _sanitize_payload(dict(event.data)),
                "created_at": event.timestamp.isoformat(),
            },
        )
