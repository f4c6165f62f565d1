"""Supabase-backed ProjectDirectory and UserDirectory.

``create_project`` goes through the ``create_project`` function so the
project row and its OWNER membership commit together.
"""

from __future__ import annotations

import uuid

from ..access.model import Project, User
from ..invites.model import normalize_email
from .errors import SupabaseError
from .rows import as_conflict, project_from_row, user_from_row
from .supabase_client import SupabaseClient


def _like_literal(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SupabaseProjectDirectory:
    TABLE = "projects"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_project(self, project_id: str) -> Project | None:
        row = await self._client.select_one(
            self.TABLE, filters={"id": ("eq", project_id)},
        )
        return project_from_row(row) if row else None

    async def create_project(
        self,
        name: str,
        owner_id: str,
        *,
        project_id: str | None = None,
        active_tool_keys: tuple[str, ...] = (),
    ) -> Project:
        try:
            row = await self._client.rpc(
                "create_project",
                {
                    "p_id": project_id or str(uuid.uuid4()),
                    "p_name": name,
                    "p_owner_id": owner_id,
                    "p_active_tool_keys": list(active_tool_keys),
                },
            )
        except SupabaseError as exc:
            conflict = as_conflict(exc, "project_exists")
            if conflict is None:
                raise
            raise conflict from exc
        return project_from_row(row)


class SupabaseUserDirectory:
    TABLE = "users"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def get_user(self, user_id: str) -> User | None:
        row = await self._client.select_one(
            self.TABLE, filters={"id": ("eq", user_id)},
        )
        return user_from_row(row) if row else None

    async def get_user_by_email(self, email: str) -> User | None:
        # The mirror keeps the provider's casing; ux_users_email is on lower(email).
        row = await self._client.select_one(
            self.TABLE, filters={"email": ("ilike", _like_literal(normalize_email(email)))},
        )
        return user_from_row(row) if row else None
