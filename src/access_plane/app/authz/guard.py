"""Authorization Guard.

Answers "may this caller perform this operation on this tool in this
project" for every tool-facing endpoint. Nothing is cached: each call
re-reads the Access Registry.

Decision table:

  operation       | OWNER | EDIT grant | VIEW grant | share token | nobody
  ----------------+-------+------------+------------+-------------+-------
  MANAGE_SHARING  | allow | deny       | deny       | deny        | 401
  WRITE           | allow | allow      | deny       | deny        | 401
  READ            | allow | allow      | allow      | allow       | 401

Project status overlays: TRASHED projects are NotFound for everyone;
ARCHIVED projects deny WRITE (``project_not_active``) and keep READ.

A share token is only consulted for READ, and only after the principal
(if any) turned out to hold no grant. It never yields WRITE.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable

from fastapi import Header, Request

from ..access.model import AccessLevel, Role
from ..access.registry import AccessRegistry
from ..errors import Forbidden, NotFound, SharingError, Unauthorized
from ..security.auth_guard import get_optional_principal
from ..security.identity import Principal
from ..share_tokens.model import ResolvedShare
from ..share_tokens.service import ShareTokenService
from ..tools import get_tool

logger = logging.getLogger(__name__)


class Operation(str, Enum):
    READ = 'READ'
    WRITE = 'WRITE'
    MANAGE_SHARING = 'MANAGE_SHARING'


class Via(str, Enum):
    OWNER = 'owner'
    ACCESS = 'access'
    SHARE_TOKEN = 'share_token'


@dataclass(frozen=True, slots=True)
class Decision:
    allowed: bool
    operation: Operation
    reason: str = ''
    via: Via | None = None
    level: AccessLevel | None = None
    share: ResolvedShare | None = None

    @classmethod
    def deny(cls, operation: Operation, reason: str) -> Decision:
        return cls(allowed=False, operation=operation, reason=reason)

    def to_error(self) -> SharingError:
        if self.reason == 'no_credentials':
            return Unauthorized(self.reason, 'Authentication required.')
        if self.reason in ('project_not_found', 'tool_not_found', 'share_not_found'):
            return NotFound(self.reason, self.reason.replace('_', ' ').capitalize() + '.')
        return Forbidden(self.reason, _DENY_MESSAGES.get(self.reason, 'Access denied.'))


_DENY_MESSAGES = {
    'not_project_owner': 'Only the project owner can manage sharing.',
    'no_tool_access': 'You do not have access to this tool.',
    'view_only': 'You have view-only access to this tool.',
    'project_not_active': 'This project is archived and read-only.',
    'share_token_read_only': 'Share links are read-only.',
}


class AuthorizationGuard:
    def __init__(
        self,
        registry: AccessRegistry,
        share_tokens: ShareTokenService,
    ) -> None:
        self._registry = registry
        self._share_tokens = share_tokens

    async def evaluate(
        self,
        project_id: str,
        tool_key: str,
        operation: Operation,
        *,
        principal: Principal | None = None,
        share_token: str | None = None,
    ) -> Decision:
        """Return the decision; denials are values, never exceptions."""
        try:
            get_tool(tool_key)
            project = await self._registry.get_project(project_id)
        except NotFound as exc:
            return Decision.deny(operation, exc.code)

        if principal is not None:
            role = await self._registry.role_of(project, principal.user_id)
            if role == Role.OWNER:
                if operation == Operation.WRITE and not project.is_active:
                    return Decision.deny(operation, 'project_not_active')
                return Decision(True, operation, via=Via.OWNER)

            if operation == Operation.MANAGE_SHARING:
                return Decision.deny(operation, 'not_project_owner')

            grant = await self._registry.get_tool_access(
                project.id, tool_key, principal.user_id,
            )
            if grant is not None and project.is_tool_active(tool_key):
                if operation == Operation.READ:
                    return Decision(True, operation, via=Via.ACCESS, level=grant.level)
                if grant.level != AccessLevel.EDIT:
                    return Decision.deny(operation, 'view_only')
                if not project.is_active:
                    return Decision.deny(operation, 'project_not_active')
                return Decision(True, operation, via=Via.ACCESS, level=grant.level)

            if not share_token or operation != Operation.READ:
                return Decision.deny(operation, 'no_tool_access')

        if not share_token:
            return Decision.deny(operation, 'no_credentials')
        if operation != Operation.READ:
            return Decision.deny(operation, 'share_token_read_only')

        try:
            share = await self._share_tokens.resolve_token(share_token, tool_key=tool_key)
        except NotFound:
            return Decision.deny(operation, 'share_not_found')
        if share.project_id != project.id:
            return Decision.deny(operation, 'share_not_found')
        return Decision(
            True, operation, via=Via.SHARE_TOKEN, level=AccessLevel.VIEW, share=share,
        )

    async def require(
        self,
        project_id: str,
        tool_key: str,
        operation: Operation,
        *,
        principal: Principal | None = None,
        share_token: str | None = None,
    ) -> Decision:
        decision = await self.evaluate(
            project_id,
            tool_key,
            operation,
            principal=principal,
            share_token=share_token,
        )
        if not decision.allowed:
            logger.info(
                'Authorization denied project_id=%s tool_key=%s operation=%s reason=%s',
                project_id, tool_key, operation.value, decision.reason,
            )
            raise decision.to_error()
        return decision

    async def effective_access(
        self, project_id: str, tool_key: str, user_id: str,
    ) -> str | None:
        """``OWNER``, ``EDIT``, ``VIEW`` or None for this user on this tool."""
        get_tool(tool_key)
        project = await self._registry.get_project(project_id)
        if await self._registry.role_of(project, user_id) == Role.OWNER:
            return Role.OWNER.value
        if not project.is_tool_active(tool_key):
            return None
        grant = await self._registry.get_tool_access(project.id, tool_key, user_id)
        return grant.level.value if grant else None


def require_tool_operation(
    guard: AuthorizationGuard,
    operation: Operation,
) -> Callable[..., Awaitable[Decision]]:
    """Build a FastAPI dependency enforcing ``operation`` on the route's tool.

    The route must declare ``project_id`` and ``tool_key`` path parameters.
    Anonymous callers may present a share token in ``X-Share-Token``.
    """

    async def dependency(
        project_id: str,
        tool_key: str,
        request: Request,
        share_token: str | None = Header(default=None, alias='X-Share-Token'),
    ) -> Decision:
        return await guard.require(
            project_id,
            tool_key,
            operation,
            principal=get_optional_principal(request),
            share_token=share_token,
        )

    return dependency

