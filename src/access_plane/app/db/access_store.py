"""Supabase-backed AccessStore.

Reads are plain PostgREST selects. Every mutation is a Postgres function
so the ToolAccess write and the MEMBER-row maintenance share one
transaction:

  grant_tool_access      upsert + ensure MEMBER (+ optional EDIT quota)
  revoke_tool_access     delete + drop MEMBER when no grant remains
  edit_usage             EDIT grants + live PENDING EDIT invites
  reconcile_memberships  re-derive MEMBER rows, restore a missing OWNER
"""

from __future__ import annotations

from datetime import datetime, timezone

from ..access.model import (
    AccessLevel,
    EditUsage,
    Membership,
    ReconcileReport,
    RevokeOutcome,
    ToolAccess,
)
from .errors import SupabaseError
from .rows import access_from_row, as_conflict, membership_from_row
from .supabase_client import SupabaseClient


class SupabaseAccessStore:
    MEMBERS_TABLE = "project_members"
    ACCESS_TABLE = "tool_access"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_membership(self, project_id: str, user_id: str) -> Membership | None:
        row = await self._client.select_one(
            self.MEMBERS_TABLE,
            filters={
                "project_id": ("eq", project_id),
                "user_id": ("eq", user_id),
            },
        )
        return membership_from_row(row) if row else None

    async def get_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> ToolAccess | None:
        row = await self._client.select_one(
            self.ACCESS_TABLE,
            filters={
                "project_id": ("eq", project_id),
                "tool_key": ("eq", tool_key),
                "user_id": ("eq", user_id),
            },
        )
        return access_from_row(row) if row else None

    async def list_tool_access(self, project_id: str, tool_key: str) -> list[ToolAccess]:
        rows = await self._client.select(
            self.ACCESS_TABLE,
            filters={
                "project_id": ("eq", project_id),
                "tool_key": ("eq", tool_key),
            },
            order="created_at.asc",
        )
        return [access_from_row(r) for r in rows]

    async def grant_tool_access(
        self,
        project_id: str,
        tool_key: str,
        user_id: str,
        level: AccessLevel,
        *,
        edit_limit: int | None = None,
        now: datetime | None = None,
    ) -> ToolAccess:
        try:
            row = await self._client.rpc(
                "grant_tool_access",
                {
                    "p_project_id": project_id,
                    "p_tool_key": tool_key,
                    "p_user_id": user_id,
                    "p_level": level.value,
                    "p_edit_limit": edit_limit,
                    "p_now": (now or datetime.now(timezone.utc)).isoformat(),
                },
            )
        except SupabaseError as exc:
            conflict = as_conflict(exc)
            if conflict is None:
                raise
            raise conflict from exc
        return access_from_row(row)

    async def revoke_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> RevokeOutcome:
        result = await self._client.rpc(
            "revoke_tool_access",
            {
                "p_project_id": project_id,
                "p_tool_key": tool_key,
                "p_user_id": user_id,
            },
        ) or {}
        return RevokeOutcome(
            access_removed=bool(result.get("access_removed")),
            membership_removed=bool(result.get("membership_removed")),
        )

    async def count_edit_usage(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> EditUsage:
        result = await self._client.rpc(
            "edit_usage",
            {
                "p_project_id": project_id,
                "p_tool_key": tool_key,
                "p_now": now.isoformat(),
            },
        ) or {}
        return EditUsage(
            granted=int(result.get("granted", 0)),
            pending=int(result.get("pending", 0)),
        )

    async def reconcile_memberships(self, project_id: str) -> ReconcileReport:
        result = await self._client.rpc(
            "reconcile_memberships", {"p_project_id": project_id},
        ) or {}
        return ReconcileReport(
            project_id=project_id,
            members_created=int(result.get("members_created", 0)),
            members_removed=int(result.get("members_removed", 0)),
            owner_created=bool(result.get("owner_created")),
        )
