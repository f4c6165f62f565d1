"""In-memory implementations for local development and tests.

Used when ENVIRONMENT=local. ``InMemorySharingStore`` holds every relation
in one object and satisfies ProjectDirectory, UserDirectory, AccessStore,
InviteStore and ShareTokenStore. A single ``asyncio.Lock`` stands in for a
database transaction around every compound mutation, so the atomicity
contracts of ``access_plane.app.protocols`` hold under concurrent tasks.
"""

from __future__ import annotations

import asyncio
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Mapping

from .access.model import (
    AccessLevel,
    EditUsage,
    Membership,
    Project,
    ProjectStatus,
    ReconcileReport,
    RevokeOutcome,
    Role,
    ToolAccess,
    User,
)
from .errors import Conflict
from .invites.model import Invite, InviteStatus, normalize_email
from .share_tokens.model import ResolvedShare, ShareToken
from .share_tokens.redaction import redact_payload


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemorySharingStore:
    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._projects: dict[str, Project] = {}
        self._users: dict[str, User] = {}
        self._memberships: dict[tuple[str, str], Membership] = {}
        self._access: dict[tuple[str, str, str], ToolAccess] = {}
        self._invites: dict[str, Invite] = {}
        self._shares: dict[str, ShareToken] = {}

    # ── Seeding ──────────────────────────────────────────────────────

    def add_user(self, user_id: str, email: str, name: str | None = None) -> User:
        user = User(id=user_id, email=normalize_email(email), name=name)
        self._users[user_id] = user
        return user

    def put_project(self, project: Project) -> None:
        """Store a project row as-is (no OWNER row); used to model drift."""
        self._projects[project.id] = project

    # ── ProjectDirectory ─────────────────────────────────────────────

    async def get_project(self, project_id: str) -> Project | None:
        return self._projects.get(project_id)

    async def create_project(
        self,
        name: str,
        owner_id: str,
        *,
        project_id: str | None = None,
        active_tool_keys: tuple[str, ...] = (),
    ) -> Project:
        async with self._lock:
            project = Project(
                id=project_id or str(uuid.uuid4()),
                name=name,
                owner_id=owner_id,
                active_tool_keys=tuple(active_tool_keys),
            )
            if project.id in self._projects:
                raise Conflict('project_exists', 'Project already exists.')
            self._projects[project.id] = project
            self._memberships[(project.id, owner_id)] = Membership(
                project_id=project.id, user_id=owner_id, role=Role.OWNER,
            )
            return project

    async def set_project_status(self, project_id: str, status: ProjectStatus) -> None:
        project = self._projects[project_id]
        self._projects[project_id] = replace(project, status=status)

    # ── UserDirectory ────────────────────────────────────────────────

    async def get_user(self, user_id: str) -> User | None:
        return self._users.get(user_id)

    async def get_user_by_email(self, email: str) -> User | None:
        target = normalize_email(email)
        for user in self._users.values():
            if user.email == target:
                return user
        return None

    # ── AccessStore ──────────────────────────────────────────────────

    async def get_membership(self, project_id: str, user_id: str) -> Membership | None:
        return self._memberships.get((project_id, user_id))

    async def get_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> ToolAccess | None:
        return self._access.get((project_id, tool_key, user_id))

    async def list_tool_access(self, project_id: str, tool_key: str) -> list[ToolAccess]:
        return sorted(
            (
                a for a in self._access.values()
                if a.project_id == project_id and a.tool_key == tool_key
            ),
            key=lambda a: a.created_at,
        )

    def _edit_usage(self, project_id: str, tool_key: str, now: datetime) -> EditUsage:
        owners = {
            m.user_id for m in self._memberships.values()
            if m.project_id == project_id and m.role == Role.OWNER
        }
        granted = sum(
            1 for a in self._access.values()
            if a.project_id == project_id
            and a.tool_key == tool_key
            and a.level == AccessLevel.EDIT
            and a.user_id not in owners
        )
        pending = sum(
            1 for i in self._invites.values()
            if i.project_id == project_id
            and i.tool_key == tool_key
            and i.level == AccessLevel.EDIT
            and i.is_pending(now)
        )
        return EditUsage(granted=granted, pending=pending)

    def _grant_locked(
        self,
        project_id: str,
        tool_key: str,
        user_id: str,
        level: AccessLevel,
        now: datetime,
    ) -> ToolAccess:
        key = (project_id, tool_key, user_id)
        existing = self._access.get(key)
        if existing is not None:
            existing.level = level
            existing.updated_at = now
            grant = existing
        else:
            grant = ToolAccess(
                id=str(uuid.uuid4()),
                project_id=project_id,
                tool_key=tool_key,
                user_id=user_id,
                level=level,
                created_at=now,
                updated_at=now,
            )
            self._access[key] = grant
        if (project_id, user_id) not in self._memberships:
            self._memberships[(project_id, user_id)] = Membership(
                project_id=project_id, user_id=user_id, role=Role.MEMBER, created_at=now,
            )
        return grant

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
        now = now or _now()
        async with self._lock:
            if edit_limit is not None and level == AccessLevel.EDIT:
                current = self._access.get((project_id, tool_key, user_id))
                already_edit = current is not None and current.level == AccessLevel.EDIT
                usage = self._edit_usage(project_id, tool_key, now)
                if not already_edit and usage.total >= edit_limit:
                    raise Conflict(
                        'edit_quota_exceeded',
                        f'At most {edit_limit} people can have edit access.',
                        details={'max_edit_shares': edit_limit},
                    )
            await asyncio.sleep(0)
            return self._grant_locked(project_id, tool_key, user_id, level, now)

    async def revoke_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> RevokeOutcome:
        async with self._lock:
            removed = self._access.pop((project_id, tool_key, user_id), None) is not None
            await asyncio.sleep(0)
            still_has_access = any(
                a.project_id == project_id and a.user_id == user_id
                for a in self._access.values()
            )
            membership_removed = False
            membership = self._memberships.get((project_id, user_id))
            if (
                membership is not None
                and membership.role == Role.MEMBER
                and not still_has_access
            ):
                del self._memberships[(project_id, user_id)]
                membership_removed = True
            return RevokeOutcome(access_removed=removed, membership_removed=membership_removed)

    async def count_edit_usage(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> EditUsage:
        return self._edit_usage(project_id, tool_key, now)

    async def reconcile_memberships(self, project_id: str) -> ReconcileReport:
        async with self._lock:
            project = self._projects[project_id]
            owner_created = False
            if (project_id, project.owner_id) not in self._memberships:
                self._memberships[(project_id, project.owner_id)] = Membership(
                    project_id=project_id, user_id=project.owner_id, role=Role.OWNER,
                )
                owner_created = True

            holders = {a.user_id for a in self._access.values() if a.project_id == project_id}
            created = 0
            for user_id in sorted(holders):
                if (project_id, user_id) not in self._memberships:
                    self._memberships[(project_id, user_id)] = Membership(
                        project_id=project_id, user_id=user_id, role=Role.MEMBER,
                    )
                    created += 1

            stale = [
                key for key, m in self._memberships.items()
                if m.project_id == project_id
                and m.role == Role.MEMBER
                and m.user_id not in holders
            ]
            for key in stale:
                del self._memberships[key]

            return ReconcileReport(
                project_id=project_id,
                members_created=created,
                members_removed=len(stale),
                owner_created=owner_created,
            )

    # ── InviteStore ──────────────────────────────────────────────────

    async def insert_invite_guarded(
        self, invite: Invite, *, edit_limit: int, now: datetime,
    ) -> Invite:
        async with self._lock:
            for other in self._invites.values():
                if (
                    other.project_id == invite.project_id
                    and other.tool_key == invite.tool_key
                    and other.email == invite.email
                    and other.status == InviteStatus.PENDING
                ):
                    if other.is_expired(now):
                        other.status = InviteStatus.EXPIRED
                        continue
                    raise Conflict(
                        'duplicate_invite',
                        'An invite is already pending for this email.',
                    )
            if invite.level == AccessLevel.EDIT:
                usage = self._edit_usage(invite.project_id, invite.tool_key, now)
                if usage.total >= edit_limit:
                    raise Conflict(
                        'edit_quota_exceeded',
                        f'At most {edit_limit} people can have edit access.',
                        details={'max_edit_shares': edit_limit},
                    )
            await asyncio.sleep(0)
            self._invites[invite.id] = invite
            return invite

    async def get_invite(self, invite_id: str) -> Invite | None:
        return self._invites.get(invite_id)

    async def get_invite_by_token(self, token: str) -> Invite | None:
        for invite in self._invites.values():
            if invite.token == token:
                return invite
        return None

    async def list_pending_invites(
        self, project_id: str, tool_key: str, now: datetime,
    ) -> list[Invite]:
        return sorted(
            (
                i for i in self._invites.values()
                if i.project_id == project_id
                and i.tool_key == tool_key
                and i.is_pending(now)
            ),
            key=lambda i: i.created_at,
        )

    async def accept_invite(
        self, invite_id: str, user_id: str, now: datetime,
    ) -> Invite | None:
        async with self._lock:
            invite = self._invites.get(invite_id)
            if invite is None or not invite.is_pending(now):
                return None
            await asyncio.sleep(0)
            invite.status = InviteStatus.ACCEPTED
            invite.accepted_by = user_id
            invite.accepted_at = now
            self._grant_locked(invite.project_id, invite.tool_key, user_id, invite.level, now)
            return invite

    async def revoke_invite(self, invite_id: str, now: datetime) -> bool:
        async with self._lock:
            invite = self._invites.get(invite_id)
            if invite is None or not invite.is_pending(now):
                return False
            invite.status = InviteStatus.REVOKED
            invite.revoked_at = now
            return True

    async def mark_expired(self, invite_id: str) -> bool:
        async with self._lock:
            invite = self._invites.get(invite_id)
            if invite is None or invite.status != InviteStatus.PENDING:
                return False
            invite.status = InviteStatus.EXPIRED
            return True

    # ── ShareTokenStore ──────────────────────────────────────────────

    async def insert_share_token(self, share: ShareToken) -> ShareToken:
        async with self._lock:
            if share.token in self._shares:
                raise Conflict('store_conflict', 'Share token already exists.')
            self._shares[share.token] = share
            return share

    async def get_share_token(self, token: str) -> ShareToken | None:
        return self._shares.get(token)

    async def list_share_tokens(self, project_id: str, tool_key: str) -> list[ShareToken]:
        return sorted(
            (
                s for s in self._shares.values()
                if s.project_id == project_id and s.tool_key == tool_key
            ),
            key=lambda s: s.created_at,
        )

    async def delete_share_token(
        self, token_id: str, project_id: str, tool_key: str,
    ) -> bool:
        async with self._lock:
            for token, share in self._shares.items():
                if (
                    share.id == token_id
                    and share.project_id == project_id
                    and share.tool_key == tool_key
                ):
                    del self._shares[token]
                    return True
            return False


class InMemorySignInAllowlist:
    def __init__(self) -> None:
        self.emails: set[str] = set()

    async def register(self, email: str) -> None:
        self.emails.add(normalize_email(email))


class InMemoryInviteNotifier:
    def __init__(self) -> None:
        self.sent: list[Any] = []

    async def send_invite(self, notification: Any) -> None:
        self.sent.append(notification)


class InMemoryToolContentReader:
    """Tool payloads keyed by (project_id, tool_key)."""

    def __init__(self) -> None:
        self._payloads: dict[tuple[str, str], dict[str, Any]] = {}

    def put(self, project_id: str, tool_key: str, payload: dict[str, Any]) -> None:
        self._payloads[(project_id, tool_key)] = payload

    async def read_shared(self, share: ResolvedShare) -> Mapping[str, Any] | None:
        return redact_payload(
            self._payloads.get((share.project_id, share.tool_key)),
            share.flags,
            scope_id=share.scope_id,
            filters=share.filters,
        )
