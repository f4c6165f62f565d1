"""Supabase-backed InviteStore.

  insert_invite_guarded  ``create_invite_guarded`` function: expires stale
                         PENDING rows, rejects duplicates, enforces the EDIT
                         quota and inserts, serialized per (project, tool).
  accept_invite          ``accept_invite`` function: conditional
                         PENDING -> ACCEPTED plus the grant, one transaction.
  revoke_invite          single conditional PATCH; the affected-row count
                         is the success signal.
  mark_expired           single conditional PATCH.

The partial unique index on (project_id, tool_key, email) WHERE status =
'PENDING' backs the duplicate rule; a 409 from it maps to
Conflict(duplicate_invite).
"""

from __future__ import annotations

from datetime import datetime

from ..invites.model import Invite, InviteStatus
from .errors import SupabaseError
from .rows import as_conflict, invite_from_row
from .supabase_client import SupabaseClient


class SupabaseInviteStore:
    TABLE = "invites"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def insert_invite_guarded(
        self, invite: Invite, *, edit_limit: int, now: datetime,
    ) -> Invite:
        try:
            row = await self._client.rpc(
                "create_invite_guarded",
                {
                    "p_id": invite.id,
                    "p_token": invite.token,
                    "p_project_id": invite.project_id,
                    "p_tool_key": invite.tool_key,
                    "p_email": invite.email,
                    "p_level": invite.level.value,
                    "p_invited_by": invite.invited_by,
                    "p_expires_at": invite.expires_at.isoformat(),
                    "p_edit_limit": edit_limit,
                    "p_now": now.isoformat(),
                },
            )
        except SupabaseError as exc:
            conflict = as_conflict(exc, "duplicate_invite")
            if conflict is None:
                raise
            raise conflict from exc
        return invite_from_row(row)

    async def get_invite(self, invite_id: str) -> Invite | None:
        row = await self._client.select_one(
            self.TABLE, filters={"id": ("eq", invite_id)},
        )
        return invite_from_row(row) if row else None

    async def get_invite_by_token(self, token: str) -> Invite | None:
        row = await self._client.select_one(
            self.TABLE, filters={"token": ("eq", token)},
        )
        return invite_from_row(row) if row else None

    async def list_pending_invites(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> list[Invite]:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "project_id": ("eq", project_id),
                "tool_key": ("eq", tool_key),
                "status": ("eq", InviteStatus.PENDING.value),
                "expires_at": ("gt", now.isoformat()),
            },
            order="created_at.asc",
        )
        return [invite_from_row(r) for r in rows]

    async def accept_invite(
        self, invite_id: str, user_id: str, now: datetime,
    ) -> Invite | None:
        row = await self._client.rpc(
            "accept_invite",
            {
                "p_invite_id": invite_id,
                "p_user_id": user_id,
                "p_now": now.isoformat(),
            },
        )
        return invite_from_row(row) if row else None

    async def revoke_invite(self, invite_id: str, now: datetime) -> bool:
        rows = await self._client.update(
            self.TABLE,
            filters={
                "id": ("eq", invite_id),
                "status": ("eq", InviteStatus.PENDING.value),
                "expires_at": ("gt", now.isoformat()),
            },
            data={
                "status": InviteStatus.REVOKED.value,
                "revoked_at": now.isoformat(),
            },
        )
        return len(rows) > 0

    async def mark_expired(self, invite_id: str) -> bool:
        rows = await self._client.update(
            self.TABLE,
            filters={
                "id": ("eq", invite_id),
                "status": ("eq", InviteStatus.PENDING.value),
            },
            data={"status": InviteStatus.EXPIRED.value},
        )
        return len(rows) > 0
