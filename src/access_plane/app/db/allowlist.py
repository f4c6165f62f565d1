"""Supabase-backed sign-in allow-list registration."""

from __future__ import annotations

from ..invites.model import normalize_email
from .supabase_client import SupabaseClient


class SupabaseSignInAllowlist:
    TABLE = "signin_allowlist"

    def __init__(self, client: SupabaseClient, *, source: str = "invite") -> None:
        self._client = client
        self._source = source

    async def register(self, email: str) -> None:
        """Idempotent: re-registering an address merges into the same row."""
        await self._client.insert(
            self.TABLE,
            {"email": normalize_email(email), "source": self._source},
            upsert=True,
            on_conflict="email",
        )
