"""Invitee-facing invite endpoints.

  GET  /api/v1/invites/{token}         → public preview
  POST /api/v1/invites/{token}/accept  → accept as the signed-in user

Error contract (both routes):
  - 404 invite_not_found
  - 410 invite_revoked / invite_expired / invite_already_accepted
    (``reason`` distinguishes them; already_accepted carries project_id and
    tool_key so the client can route the user straight in)
  - 403 email_mismatch (accept only)
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from access_plane.app.invites.lifecycle import InvitationLifecycle
from access_plane.app.security.auth_guard import get_principal
from access_plane.app.security.identity import Principal


def create_invite_router(lifecycle: InvitationLifecycle) -> APIRouter:
    router = APIRouter(tags=['invites'])

    @router.get('/api/v1/invites/{token}')
    async def get_invite(token: str):
        preview = await lifecycle.get_invite(token)
        return preview.to_dict()

    @router.post('/api/v1/invites/{token}/accept')
    async def accept_invite(
        token: str,
        principal: Principal = Depends(get_principal),
    ):
        result = await lifecycle.accept_invite(token, principal.user_id, principal.email)
        return {
            'status': 'accepted',
            'project_id': result.project_id,
            'tool_key': result.tool_key,
            'level': result.level.value,
        }

    return router
