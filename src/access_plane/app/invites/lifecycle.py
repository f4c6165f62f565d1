"""Invitation Lifecycle.

  create_invite  owner-only; validates, then inserts through the store's
                 guarded insert so the duplicate and quota checks happen in
                 the same transaction as the write. Returns the invite plus
                 the post-commit effects for the outbox.
  get_invite     public preview of a live invite.
  accept_invite  authenticated; one conditional PENDING -> ACCEPTED
                 transition that also writes the grant.
  revoke_invite  owner-only; conditional PENDING -> REVOKED. Revoking an
                 invite that already left PENDING is a no-op success.

Failure precedence for token lookups (preview and accept alike):
  unknown token -> NotFound(invite_not_found)
  REVOKED       -> Gone(revoked)
  EXPIRED       -> Gone(expired)
  ACCEPTED      -> Gone(already_accepted), with the grant's project and tool
                   so the client can render "you're already in".
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable

from ..access.model import AccessLevel, Project, Role, utcnow
from ..access.registry import AccessRegistry
from ..audit import (
    INVITE_ACCEPTED,
    INVITE_CREATED,
    INVITE_REVOKED,
    AuditEmitter,
    AuditEvent,
    record,
    redact_token,
)
from ..errors import Conflict, Forbidden, Gone, NotFound, ValidationFailed
from ..protocols import InviteStore, UserDirectory
from ..tools import ToolEntry, get_tool
from .model import (
    DEFAULT_INVITE_TTL,
    AcceptResult,
    Invite,
    InviteStatus,
    generate_invite_token,
    is_valid_email,
    normalize_email,
)
from .outbox import AllowlistRegistration, Effect, InviteNotification

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class InviteCreated:
    invite: Invite
    effects: list[Effect] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class InvitePreview:
    """What an invitee sees before accepting."""

    project_id: str
    project_name: str
    tool_key: str
    tool_title: str
    level: AccessLevel
    inviter_name: str
    email: str
    expires_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            'project_id': self.project_id,
            'project_name': self.project_name,
            'tool_key': self.tool_key,
            'tool_title': self.tool_title,
            'level': self.level.value,
            'inviter_name': self.inviter_name,
            'email': self.email,
            'expires_at': self.expires_at.isoformat(),
        }


class InvitationLifecycle:
    def __init__(
        self,
        registry: AccessRegistry,
        invite_store: InviteStore,
        users: UserDirectory,
        *,
        app_base_url: str = 'http://localhost:3000',
        invite_ttl: timedelta = DEFAULT_INVITE_TTL,
        audit: AuditEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._store = invite_store
        self._users = users
        self._base_url = app_base_url.rstrip('/')
        self._ttl = invite_ttl
        self._audit = audit
        self._clock = clock

    def invite_link(self, token: str) -> str:
        return f'{self._base_url}/invite/{token}'

    # ── Create ───────────────────────────────────────────────────────

    async def create_invite(
        self,
        project_id: str,
        tool_key: str,
        email: str,
        level: AccessLevel,
        invited_by: str,
    ) -> InviteCreated:
        tool = get_tool(tool_key)
        project = await self._registry.require_owner(project_id, invited_by)
        self._check_project_accepts_shares(project, tool)

        target_email = normalize_email(email)
        if not is_valid_email(target_email):
            raise ValidationFailed('invalid_email', 'A valid email address is required.')

        inviter = await self._users.get_user(invited_by)
        if inviter is not None and normalize_email(inviter.email) == target_email:
            raise Conflict('self_invite', 'You cannot invite yourself.')

        target = await self._users.get_user_by_email(target_email)
        if target is not None:
            if await self._registry.role_of(project, target.id) == Role.OWNER:
                raise Conflict('already_has_access', 'The project owner already has access.')
            if await self._registry.get_tool_access(project.id, tool.tool_key, target.id):
                raise Conflict(
                    'already_has_access',
                    'This person already has access to this tool.',
                )

        now = self._clock()
        invite = Invite(
            id=str(uuid.uuid4()),
            token=generate_invite_token(),
            project_id=project.id,
            tool_key=tool.tool_key,
            email=target_email,
            level=level,
            invited_by=invited_by,
            expires_at=now + self._ttl,
            created_at=now,
        )
        invite = await self._store.insert_invite_guarded(
            invite, edit_limit=self._registry.max_edit_shares, now=now,
        )
        logger.info(
            'Invite created project_id=%s tool_key=%s level=%s token=%s',
            project.id, tool.tool_key, level.value, redact_token(invite.token),
        )
        await record(self._audit, AuditEvent(
            action=INVITE_CREATED,
            project_id=project.id,
            tool_key=tool.tool_key,
            actor_id=invited_by,
            subject=invite.id,
            data={'level': level.value, 'token_prefix': redact_token(invite.token)},
        ))

        effects: list[Effect] = [
            AllowlistRegistration(email=target_email),
            InviteNotification(
                to_email=target_email,
                token=invite.token,
                invite_link=self.invite_link(invite.token),
                inviter_name=inviter.display_name if inviter else 'A project owner',
                tool_name=tool.title,
                project_name=project.name,
                access_level=level.value,
            ),
        ]
        return InviteCreated(invite=invite, effects=effects)

    @staticmethod
    def _check_project_accepts_shares(project: Project, tool: ToolEntry) -> None:
        if not project.is_active:
            raise Conflict('project_not_active', 'Archived projects cannot be shared.')
        if not project.is_tool_active(tool.tool_key):
            raise Conflict('tool_inactive', f'{tool.title} is not enabled for this project.')

    # ── Lookup ───────────────────────────────────────────────────────

    async def _load_live(self, token: str) -> tuple[Invite, Project]:
        invite = await self._store.get_invite_by_token(token)
        if invite is None:
            raise NotFound('invite_not_found', 'Invite not found.')

        project = await self._registry.get_project(invite.project_id)
        now = self._clock()
        status = invite.effective_status(now)
        if status == InviteStatus.REVOKED:
            raise Gone('revoked', 'This invite was revoked.')
        if status == InviteStatus.EXPIRED:
            if invite.status == InviteStatus.PENDING:
                await self._store.mark_expired(invite.id)
            raise Gone('expired', 'This invite has expired.')
        if status == InviteStatus.ACCEPTED:
            raise Gone(
                'already_accepted',
                'This invite was already accepted.',
                details={'project_id': invite.project_id, 'tool_key': invite.tool_key},
            )
        return invite, project

    async def get_invite(self, token: str) -> InvitePreview:
        invite, project = await self._load_live(token)
        tool = get_tool(invite.tool_key)
        inviter = await self._users.get_user(invite.invited_by)
        return InvitePreview(
            project_id=project.id,
            project_name=project.name,
            tool_key=tool.tool_key,
            tool_title=tool.title,
            level=invite.level,
            inviter_name=inviter.display_name if inviter else 'A project owner',
            email=invite.email,
            expires_at=invite.expires_at,
        )

    # ── Accept ───────────────────────────────────────────────────────

    async def accept_invite(
        self, token: str, user_id: str, user_email: str,
    ) -> AcceptResult:
        invite, _project = await self._load_live(token)
        if normalize_email(user_email) != invite.email:
            raise Forbidden(
                'email_mismatch',
                'This invite was sent to a different email address.',
            )

        accepted = await self._store.accept_invite(invite.id, user_id, self._clock())
        if accepted is None:
            # Lost the race: report whatever state the winner left behind.
            await self._load_live(token)
            raise Gone('expired', 'This invite is no longer valid.')

        logger.info(
            'Invite accepted project_id=%s tool_key=%s user_id=%s token=%s',
            invite.project_id, invite.tool_key, user_id, redact_token(token),
        )
        await record(self._audit, AuditEvent(
            action=INVITE_ACCEPTED,
            project_id=invite.project_id,
            tool_key=invite.tool_key,
            actor_id=user_id,
            subject=invite.id,
            data={'level': invite.level.value},
        ))
        return AcceptResult(
            invite_id=invite.id,
            project_id=invite.project_id,
            tool_key=invite.tool_key,
            user_id=user_id,
            level=invite.level,
        )

    # ── Revoke ───────────────────────────────────────────────────────

    async def revoke_invite(
        self,
        project_id: str,
        tool_key: str,
        invite_id: str,
        caller_id: str,
    ) -> bool:
        """Returns True when this call moved the invite to REVOKED."""
        get_tool(tool_key)
        project = await self._registry.require_owner(project_id, caller_id)
        invite = await self._store.get_invite(invite_id)
        if (
            invite is None
            or invite.project_id != project.id
            or invite.tool_key != tool_key
        ):
            raise NotFound('invite_not_found', 'Invite not found.')

        changed = await self._store.revoke_invite(invite.id, self._clock())
        if changed:
            logger.info(
                'Invite revoked project_id=%s tool_key=%s invite_id=%s',
                project.id, tool_key, invite.id,
            )
            await record(self._audit, AuditEvent(
                action=INVITE_REVOKED,
                project_id=project.id,
                tool_key=tool_key,
                actor_id=caller_id,
                subject=invite.id,
            ))
        return changed
