"""Access Registry: the source of truth for who may touch which tool.

Operations:
  - ``list_access``      owner-only view of grants, pending invites and the
                         EDIT quota counters for one (project, tool).
  - ``grant_access``     idempotent upsert of a ToolAccess row that also
                         ensures the MEMBER row. Internal; invoked on invite
                         acceptance and by maintenance tooling.
  - ``revoke_access``    owner-only removal of a grant. The MEMBER row goes
                         with the last grant in the project, in the same
                         store transaction.
  - ``count_edit_usage`` EDIT grants plus live PENDING EDIT invites.
  - ``reconcile_memberships`` re-derives MEMBER rows from ToolAccess.

Project visibility: TRASHED projects are reported as missing to every
caller. The OWNER is whoever holds the OWNER membership; ``Project.owner_id``
is accepted as a fallback for rows created before memberships existed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable

from ..audit import ACCESS_REVOKED, AuditEmitter, AuditEvent, record
from ..errors import Conflict, Forbidden, NotFound
from ..invites.model import Invite
from ..protocols import AccessStore, InviteStore, ProjectDirectory, UserDirectory
from ..tools import get_tool
from .model import (
    DEFAULT_MAX_EDIT_SHARES,
    AccessLevel,
    EditUsage,
    Project,
    ReconcileReport,
    RevokeOutcome,
    Role,
    ToolAccess,
    User,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class AccessEntry:
    access: ToolAccess
    user: User | None

    def to_dict(self) -> dict[str, Any]:
        return {
            'id': self.access.id,
            'user_id': self.access.user_id,
            'email': self.user.email if self.user else None,
            'name': self.user.name if self.user else None,
            'level': self.access.level.value,
            'created_at': self.access.created_at.isoformat(),
        }


@dataclass(frozen=True, slots=True)
class SharingOverview:
    project: Project
    tool_key: str
    entries: list[AccessEntry]
    pending_invites: list[Invite]
    edit_usage: EditUsage
    max_edit_shares: int

    def to_dict(self) -> dict[str, Any]:
        return {
            'project_id': self.project.id,
            'tool_key': self.tool_key,
            'access': [e.to_dict() for e in self.entries],
            'invites': [
                {
                    'id': inv.id,
                    'email': inv.email,
                    'level': inv.level.value,
                    'expires_at': inv.expires_at.isoformat(),
                    'created_at': inv.created_at.isoformat(),
                }
                for inv in self.pending_invites
            ],
            'edit_share_count': self.edit_usage.total,
            'max_edit_shares': self.max_edit_shares,
        }


class AccessRegistry:
    """Membership and ToolAccess operations over the injected stores."""

    def __init__(
        self,
        projects: ProjectDirectory,
        users: UserDirectory,
        access_store: AccessStore,
        invite_store: InviteStore,
        *,
        max_edit_shares: int = DEFAULT_MAX_EDIT_SHARES,
        audit: AuditEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if max_edit_shares < 1:
            raise ValueError('max_edit_shares must be >= 1')
        self._projects = projects
        self._users = users
        self._store = access_store
        self._invites = invite_store
        self._audit = audit
        self._clock = clock
        self.max_edit_shares = max_edit_shares

    # ── Lookups ──────────────────────────────────────────────────────

    async def get_project(self, project_id: str) -> Project:
        project = await self._projects.get_project(project_id)
        if project is None or project.is_trashed:
            raise NotFound('project_not_found', 'Project not found.')
        return project

    async def role_of(self, project: Project, user_id: str | None) -> Role | None:
        if not user_id:
            return None
        membership = await self._store.get_membership(project.id, user_id)
        if membership is not None:
            return membership.role
        if project.owner_id == user_id:
            return Role.OWNER
        return None

    async def require_owner(self, project_id: str, caller_id: str) -> Project:
        """Return the project when ``caller_id`` owns it, else raise."""
        project = await self.get_project(project_id)
        if await self.role_of(project, caller_id) != Role.OWNER:
            raise Forbidden(
                'not_project_owner',
                'Only the project owner can manage sharing.',
            )
        return project

    async def get_tool_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> ToolAccess | None:
        return await self._store.get_tool_access(project_id, tool_key, user_id)

    # ── Operations ───────────────────────────────────────────────────

    async def list_access(
        self, project_id: str, tool_key: str, caller_id: str,
    ) -> SharingOverview:
        get_tool(tool_key)
        project = await self.require_owner(project_id, caller_id)
        now = self._clock()

        grants = await self._store.list_tool_access(project.id, tool_key)
        entries = []
        for grant in grants:
            user = await self._users.get_user(grant.user_id)
            entries.append(AccessEntry(access=grant, user=user))

        pending = await self._invites.list_pending_invites(project.id, tool_key, now)
        usage = await self._store.count_edit_usage(project.id, tool_key, now)
        return SharingOverview(
            project=project,
            tool_key=tool_key,
            entries=entries,
            pending_invites=pending,
            edit_usage=usage,
            max_edit_shares=self.max_edit_shares,
        )

    async def grant_access(
        self,
        project_id: str,
        tool_key: str,
        user_id: str,
        level: AccessLevel,
        *,
        enforce_quota: bool = False,
    ) -> ToolAccess:
        """Upsert a grant. ``enforce_quota`` guards direct EDIT grants."""
        get_tool(tool_key)
        project = await self.get_project(project_id)
        grant = await self._store.grant_tool_access(
            project.id,
            tool_key,
            user_id,
            level,
            edit_limit=self.max_edit_shares if enforce_quota else None,
            now=self._clock(),
        )
        logger.info(
            'Tool access granted project_id=%s tool_key=%s user_id=%s level=%s',
            project.id, tool_key, user_id, level.value,
        )
        return grant

    async def revoke_access(
        self,
        project_id: str,
        tool_key: str,
        user_id: str,
        caller_id: str,
    ) -> RevokeOutcome:
        get_tool(tool_key)
        project = await self.require_owner(project_id, caller_id)
        if await self.role_of(project, user_id) == Role.OWNER:
            raise Conflict(
                'owner_access_immutable',
                'The project owner always has access.',
            )

        outcome = await self._store.revoke_tool_access(project.id, tool_key, user_id)
        if outcome.access_removed:
            logger.info(
                'Tool access revoked project_id=%s tool_key=%s user_id=%s member_removed=%s',
                project.id, tool_key, user_id, outcome.membership_removed,
            )
            await record(self._audit, AuditEvent(
                action=ACCESS_REVOKED,
                project_id=project.id,
                tool_key=tool_key,
                actor_id=caller_id,
                subject=user_id,
                data={'membership_removed': outcome.membership_removed},
            ))
        return outcome

    async def count_edit_usage(self, project_id: str, tool_key: str) -> EditUsage:
        return await self._store.count_edit_usage(project_id, tool_key, self._clock())

    async def reconcile_memberships(self, project_id: str) -> ReconcileReport:
        project = await self._projects.get_project(project_id)
        if project is None:
            raise NotFound('project_not_found', 'Project not found.')
        report = await self._store.reconcile_memberships(project.id)
        if report.changed:
            logger.warning(
                'Memberships reconciled project_id=%s created=%d removed=%d owner_created=%s',
                project.id,
                report.members_created,
                report.members_removed,
                report.owner_created,
            )
        return report
