"""Public Share Token Service.

  create_token  owner-only; persists a fresh random token with its scope,
                disclosure flags and pass-through filters.
  list_tokens   owner-only; every live token for one (project, tool).
  resolve_token public; token -> ResolvedShare or NotFound.
  revoke_token  owner-only; hard delete.

Resolution fails closed. Revocation deletes the row, TRASHED projects and
tools disabled on the project resolve as missing, and nothing here caches a
resolved token between calls.

When ``hide_notes`` is set (admin failsafe), new tokens are created with
notes disabled and resolution forces ``notes`` off whatever the row says.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Callable, Mapping

from ..access.model import utcnow
from ..access.registry import AccessRegistry
from ..audit import (
    SHARE_TOKEN_CREATED,
    SHARE_TOKEN_RESOLVED,
    SHARE_TOKEN_REVOKED,
    AuditEmitter,
    AuditEvent,
    record,
    redact_token,
)
from ..errors import Conflict, NotFound
from ..protocols import ProjectDirectory, ShareTokenStore
from ..tools import get_tool, is_known_tool
from .model import (
    DisclosureFlags,
    ResolvedShare,
    ShareToken,
    clean_filters,
    generate_share_token,
)

logger = logging.getLogger(__name__)


def _not_found() -> NotFound:
    return NotFound('share_not_found', 'Share link not found.')


class ShareTokenService:
    def __init__(
        self,
        registry: AccessRegistry,
        store: ShareTokenStore,
        projects: ProjectDirectory,
        *,
        hide_notes: bool = False,
        audit: AuditEmitter | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._registry = registry
        self._store = store
        self._projects = projects
        self._hide_notes = hide_notes
        self._audit = audit
        self._clock = clock

    def _apply_failsafe(self, flags: DisclosureFlags) -> DisclosureFlags:
        return flags.without_notes() if self._hide_notes else flags

    async def create_token(
        self,
        project_id: str,
        tool_key: str,
        caller_id: str,
        *,
        scope_id: str | None = None,
        flags: DisclosureFlags | None = None,
        filters: Mapping[str, Any] | None = None,
    ) -> ShareToken:
        tool = get_tool(tool_key)
        project = await self._registry.require_owner(project_id, caller_id)
        if not project.is_active:
            raise Conflict('project_not_active', 'Archived projects cannot be shared.')
        if not project.is_tool_active(tool.tool_key):
            raise Conflict('tool_inactive', f'{tool.title} is not enabled for this project.')

        share = ShareToken(
            id=str(uuid.uuid4()),
            token=generate_share_token(),
            project_id=project.id,
            tool_key=tool.tool_key,
            created_by=caller_id,
            flags=self._apply_failsafe(flags or DisclosureFlags()),
            scope_id=scope_id or None,
            filters=clean_filters(filters),
            created_at=self._clock(),
        )
        share = await self._store.insert_share_token(share)
        logger.info(
            'Share token created project_id=%s tool_key=%s scope_id=%s token=%s',
            project.id, tool.tool_key, share.scope_id, redact_token(share.token),
        )
        await record(self._audit, AuditEvent(
            action=SHARE_TOKEN_CREATED,
            project_id=project.id,
            tool_key=tool.tool_key,
            actor_id=caller_id,
            subject=share.id,
            data={
                'token_prefix': redact_token(share.token),
                'flags': share.flags.to_public_dict(),
            },
        ))
        return share

    async def list_tokens(
        self, project_id: str, tool_key: str, caller_id: str,
    ) -> list[ShareToken]:
        get_tool(tool_key)
        project = await self._registry.require_owner(project_id, caller_id)
        return await self._store.list_share_tokens(project.id, tool_key)

    async def resolve_token(
        self, token: str, *, tool_key: str | None = None,
    ) -> ResolvedShare:
        """Resolve a public token; any failure reads as NotFound."""
        if not token:
            raise _not_found()
        share = await self._store.get_share_token(token)
        if share is None:
            raise _not_found()
        if tool_key is not None and share.tool_key != tool_key:
            raise _not_found()
        if not is_known_tool(share.tool_key):
            raise _not_found()

        project = await self._projects.get_project(share.project_id)
        if project is None or project.is_trashed:
            raise _not_found()
        if not project.is_tool_active(share.tool_key):
            raise _not_found()

        resolved = ResolvedShare(
            token_id=share.id,
            project_id=project.id,
            project_name=project.name,
            tool_key=share.tool_key,
            scope_id=share.scope_id,
            flags=self._apply_failsafe(share.flags),
            filters=dict(share.filters),
        )
        await record(self._audit, AuditEvent(
            action=SHARE_TOKEN_RESOLVED,
            project_id=project.id,
            tool_key=share.tool_key,
            subject=share.id,
            data={'token_prefix': redact_token(token)},
        ))
        return resolved

    async def revoke_token(
        self,
        project_id: str,
        tool_key: str,
        token_id: str,
        caller_id: str,
    ) -> None:
        get_tool(tool_key)
        project = await self._registry.require_owner(project_id, caller_id)
        deleted = await self._store.delete_share_token(token_id, project.id, tool_key)
        if not deleted:
            raise _not_found()
        logger.info(
            'Share token revoked project_id=%s tool_key=%s token_id=%s',
            project.id, tool_key, token_id,
        )
        await record(self._audit, AuditEvent(
            action=SHARE_TOKEN_REVOKED,
            project_id=project.id,
            tool_key=tool_key,
            actor_id=caller_id,
            subject=token_id,
        ))
