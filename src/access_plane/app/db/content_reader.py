"""Supabase-backed ToolContentReader.

Reads the tool payload for a resolved share from ``tool_instances`` and
applies the share's redaction before anything leaves this module. The
table is owned by the tool-content service; this reader never writes it.
"""

from __future__ import annotations

from typing import Any, Mapping

from ..share_tokens.model import ResolvedShare
from ..share_tokens.redaction import redact_payload
from .supabase_client import SupabaseClient


class SupabaseToolContentReader:
    TABLE = "tool_instances"

    def __init__(self, client: SupabaseClient) -> None:
        self._client = client

    async def read_shared(self, share: ResolvedShare) -> Mapping[str, Any] | None:
        row = await self._client.select_one(
            self.TABLE,
            filters={
                "project_id": ("eq", share.project_id),
                "tool_key": ("eq", share.tool_key),
            },
            columns="payload",
        )
        if row is None:
            return None
        return redact_payload(
            row.get("payload"),
            share.flags,
            scope_id=share.scope_id,
            filters=share.filters,
        )
