"""Owner-facing sharing management endpoints.

  GET    /api/v1/projects/{project_id}/tools/{tool_key}/share
         → grants, pending invites and EDIT quota counters
  POST   /api/v1/projects/{project_id}/tools/{tool_key}/share/invites
         → create an email invite (201)
  DELETE /api/v1/projects/{project_id}/tools/{tool_key}/share/access/{user_id}
         → revoke a user's grant
  DELETE /api/v1/projects/{project_id}/tools/{tool_key}/share/invites/{invite_id}
         → revoke a pending invite (no-op success once it left PENDING)

Auth contract:
  - Every route passes the Authorization Guard for MANAGE_SHARING, i.e.
    the caller must be the project OWNER.

Invite side effects (allow-list registration, notification email) are
scheduled as a background task after the response is built; their failure
never changes the response.
"""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field

from access_plane.app.access.model import AccessLevel
from access_plane.app.access.registry import AccessRegistry
from access_plane.app.authz.guard import AuthorizationGuard, Operation, require_tool_operation
from access_plane.app.invites.lifecycle import InvitationLifecycle
from access_plane.app.invites.outbox import OutboxDispatcher
from access_plane.app.security.auth_guard import get_principal
from access_plane.app.security.identity import Principal

BASE_PATH = '/api/v1/projects/{project_id}/tools/{tool_key}/share'


# ── Request schemas ──────────────────────────────────────────────────


class CreateInviteRequest(BaseModel):
    email: str = Field(..., min_length=1, max_length=320, description='Invitee email')
    level: AccessLevel = Field(default=AccessLevel.VIEW, description='VIEW or EDIT')


# ── Route factory ────────────────────────────────────────────────────


def create_sharing_router(
    registry: AccessRegistry,
    lifecycle: InvitationLifecycle,
    dispatcher: OutboxDispatcher,
    guard: AuthorizationGuard,
) -> APIRouter:
    """Create the owner sharing router.

    Args:
        registry: Access Registry for listing and revoking grants.
        lifecycle: Invitation Lifecycle for invite create/revoke.
        dispatcher: Outbox dispatcher for post-commit invite effects.
        guard: Authorization Guard enforcing MANAGE_SHARING.
    """
    router = APIRouter(
        tags=['sharing'],
        dependencies=[Depends(require_tool_operation(guard, Operation.MANAGE_SHARING))],
    )

    @router.get(BASE_PATH)
    async def list_sharing(
        project_id: str,
        tool_key: str,
        principal: Principal = Depends(get_principal),
    ):
        overview = await registry.list_access(project_id, tool_key, principal.user_id)
        return overview.to_dict()

    @router.post(f'{BASE_PATH}/invites', status_code=201)
    async def create_invite(
        project_id: str,
        tool_key: str,
        body: CreateInviteRequest,
        background_tasks: BackgroundTasks,
        principal: Principal = Depends(get_principal),
    ):
        """Create a PENDING invite. The token is returned to the owner."""
        created = await lifecycle.create_invite(
            project_id, tool_key, body.email, body.level, principal.user_id,
        )
        background_tasks.add_task(dispatcher.dispatch, created.effects)

        invite = created.invite
        return {
            'invite_id': invite.id,
            'token': invite.token,
            'email': invite.email,
            'level': invite.level.value,
            'status': invite.status.value,
            'expires_at': invite.expires_at.isoformat(),
            'invite_link': lifecycle.invite_link(invite.token),
        }

    @router.delete(f'{BASE_PATH}/access/{{user_id}}')
    async def revoke_access(
        project_id: str,
        tool_key: str,
        user_id: str,
        principal: Principal = Depends(get_principal),
    ):
        outcome = await registry.revoke_access(
            project_id, tool_key, user_id, principal.user_id,
        )
        return {
            'status': 'ok',
            'access_removed': outcome.access_removed,
            'membership_removed': outcome.membership_removed,
        }

    @router.delete(f'{BASE_PATH}/invites/{{invite_id}}')
    async def revoke_invite(
        project_id: str,
        tool_key: str,
        invite_id: str,
        principal: Principal = Depends(get_principal),
    ):
        """Revoke a pending invite. Idempotent."""
        changed = await lifecycle.revoke_invite(
            project_id, tool_key, invite_id, principal.user_id,
        )
        return {'status': 'ok', 'revoked': changed}

    return router
