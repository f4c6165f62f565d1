"""Supabase-backed ShareTokenStore.

Revocation is a hard DELETE; nothing here caches rows, so a deleted token
fails resolution on the next read.
"""

from __future__ import annotations

from ..share_tokens.model import ShareToken
from .errors import SupabaseError
from .rows import as_conflict, share_from_row, share_to_row
from .supabase_client import SupabaseClient


class SupabaseShareTokenStore:
    TABLE = "share_tokens"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def insert_share_token(self, share: ShareToken) -> ShareToken:
        try:
            rows = await self._client.insert(self.TABLE, share_to_row(share))
        except SupabaseError as exc:
            conflict = as_conflict(exc)
            if conflict is None:
                raise
            raise conflict from exc
        return share_from_row(rows[0])

    async def get_share_token(self, token: str) -> ShareToken | None:
        row = await self._client.select_one(
            self.TABLE, filters={"token": ("eq", token)},
        )
        return share_from_row(row) if row else None

    async def list_share_tokens(self, project_id: str, tool_key: str) -> list[ShareToken]:
        rows = await self._client.select(
            self.TABLE,
            filters={
                "project_id": ("eq", project_id),
                "tool_key": ("eq", tool_key),
            },
            order="created_at.asc",
        )
        return [share_from_row(r) for r in rows]

    async def delete_share_token(
        self, token_id: str, project_id: str, tool_key: str,
    ) -> bool:
        rows = await self._client.delete(
            self.TABLE,
            filters={
                "id": ("eq", token_id),
                "project_id": ("eq", project_id),
                "tool_key": ("eq", tool_key),
            },
        )
        return len(rows) > 0
