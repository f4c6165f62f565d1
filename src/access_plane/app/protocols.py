"""Storage and collaborator protocols for the sharing subsystem.

Implementations:
  - ``access_plane.app.inmemory`` for local development and tests.
  - ``access_plane.app.db`` stores backed by Supabase/PostgREST.

Atomicity contract: every method documented as atomic must either complete
all of its writes or none, and must serialize against concurrent calls that
touch the same (project, tool) or the same invite row. The in-memory store
uses a lock; the Supabase stores use conditional updates or Postgres
functions.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Mapping, Protocol

from .access.model import (
    AccessLevel,
    EditUsage,
    Membership,
    Project,
    ReconcileReport,
    RevokeOutcome,
    ToolAccess,
    User,
)
from .invites.model import Invite
from .share_tokens.model import ResolvedShare, ShareToken


class ProjectDirectory(Protocol):
    async def get_project(self, project_id: str) -> Project | None: ...

    async def create_project(
        self,
        name: str,
        owner_id: str,
        *,
        project_id: str | None = None,
        active_tool_keys: tuple[str, ...] = (),
    ) -> Project:
        """Atomic: inserts the project and its OWNER membership together."""
        ...


class UserDirectory(Protocol):
    async def get_user(self, user_id: str) -> User | None: ...

    async def get_user_by_email(self, email: str) -> User | None: ...


class AccessStore(Protocol):
    async def get_membership(
        self, project_id: str, user_id: str,
    ) -> Membership | None: ...

    async def get_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> ToolAccess | None: ...

    async def list_tool_access(
        self, project_id: str, tool_key: str,
    ) -> list[ToolAccess]: ...

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
        """Atomic upsert plus MEMBER row. With ``edit_limit`` set, an EDIT
        grant that would exceed the quota raises Conflict(edit_quota_exceeded).
        """
        ...

    async def revoke_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> RevokeOutcome:
        """Atomic delete plus MEMBER cleanup when no access remains."""
        ...

    async def count_edit_usage(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> EditUsage: ...

    async def reconcile_memberships(self, project_id: str) -> ReconcileReport: ...


class InviteStore(Protocol):
    async def insert_invite_guarded(
        self, invite: Invite, *, edit_limit: int, now: datetime,
    ) -> Invite:
        """Atomic duplicate and quota check followed by insert.

        Raises Conflict(duplicate_invite) or Conflict(edit_quota_exceeded).
        """
        ...

    async def get_invite(self, invite_id: str) -> Invite | None: ...

    async def get_invite_by_token(self, token: str) -> Invite | None: ...

    async def list_pending_invites(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> list[Invite]: ...

    async def accept_invite(
        self, invite_id: str, user_id: str, now: datetime,
    ) -> Invite | None:
        """Atomic PENDING -> ACCEPTED plus the resulting grant.

        Returns None when the row was no longer PENDING (or had expired).
        """
        ...

    async def revoke_invite(self, invite_id: str, now: datetime) -> bool:
        """Conditional PENDING -> REVOKED; True when a row changed."""
        ...

    async def mark_expired(self, invite_id: str) -> bool: ...


class ShareTokenStore(Protocol):
    async def insert_share_token(self, share: ShareToken) -> ShareToken: ...

    async def get_share_token(self, token: str) -> ShareToken | None: ...

    async def list_share_tokens(
        self, project_id: str, tool_key: str,
    ) -> list[ShareToken]: ...

    async def delete_share_token(
        self, token_id: str, project_id: str, tool_key: str,
    ) -> bool: ...


class SignInAllowlist(Protocol):
    async def register(self, email: str) -> None: ...


class InviteNotifier(Protocol):
    async def send_invite(self, notification: Any) -> None: ...


class ToolContentReader(Protocol):
    """External tool-content collaborator.

    Returns the redacted read projection for a resolved share, or None when
    the scope holds no data. Fields the flags disallow must be omitted.
    """

    async def read_shared(self, share: ResolvedShare) -> Mapping[str, Any] | None: ...
