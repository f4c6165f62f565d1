"""Caller's effective access to one tool.

  GET /api/v1/projects/{project_id}/tools/{tool_key}/access

Returns ``access`` (``OWNER``, ``EDIT``, ``VIEW`` or null) and the guard's
verdict for each operation class, so clients can enable or hide controls
without guessing.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from access_plane.app.authz.guard import AuthorizationGuard, Operation
from access_plane.app.security.auth_guard import get_principal
from access_plane.app.security.identity import Principal


def create_access_router(guard: AuthorizationGuard) -> APIRouter:
    router = APIRouter(tags=['access'])

    @router.get('/api/v1/projects/{project_id}/tools/{tool_key}/access')
    async def effective_access(
        project_id: str,
        tool_key: str,
        principal: Principal = Depends(get_principal),
    ):
        level = await guard.effective_access(project_id, tool_key, principal.user_id)
        operations = {}
        for op in Operation:
            decision = await guard.evaluate(project_id, tool_key, op, principal=principal)
            operations[op.value.lower()] = decision.allowed
        return {
            'project_id': project_id,
            'tool_key': tool_key,
            'access': level,
            'operations': operations,
        }

    return router
