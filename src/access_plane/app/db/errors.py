"""Supabase client error hierarchy.

Kept small and dependency-free so stores can raise and callers can catch
them without leaking httpx.Response objects (or the service-role key).
"""

from __future__ import annotations

from dataclasses import dataclass

# SQLSTATE codes the sharing functions and constraints produce.
RAISE_EXCEPTION = "P0001"
UNIQUE_VIOLATION = "23505"


@dataclass(eq=False)
class SupabaseError(Exception):
    """Base Supabase error for PostgREST requests."""

    status_code: int
    message: str
    code: str | None = None
    details: str | None = None
    hint: str | None = None

    def __str__(self) -> str:
        bits: list[str] = [f"{type(self).__name__}(status={self.status_code})", self.message]
        if self.code:
            bits.append(f"code={self.code}")
        if self.details:
            bits.append(f"details={self.details}")
        return " ".join(bits)

    @property
    def retryable(self) -> bool:
        return self.status_code >= 500 or self.status_code == 429


class SupabaseAuthError(SupabaseError):
    """401/403 auth errors (bad key, RLS, expired session, etc.)."""


class SupabaseNotFoundError(SupabaseError):
    """404 errors (missing table/view/function)."""


class SupabaseConflictError(SupabaseError):
    """409 or unique_violation: the row already exists."""


class SupabaseRuleViolation(SupabaseError):
    """A sharing function refused the change with ``raise exception '<rule>'``."""

    @property
    def rule(self) -> str:
        return self.message
