"""Public share token endpoints.

Owner routes (MANAGE_SHARING):

  GET    /api/v1/projects/{project_id}/tools/{tool_key}/share-tokens
  POST   /api/v1/projects/{project_id}/tools/{tool_key}/share-tokens    (201)
  DELETE /api/v1/projects/{project_id}/tools/{tool_key}/share-tokens/{token_id}

Anonymous route:

  GET    /api/v1/share/{tool_key}/{token}
         → redacted read projection; 404 share_not_found for unknown,
           revoked or mismatched tokens, 404 no_data when the scope is empty.

Responses from the anonymous route are never cacheable, so a revoked token
stops working on the very next request.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel, Field

from access_plane.app.authz.guard import AuthorizationGuard, Operation, require_tool_operation
from access_plane.app.errors import NotFound
from access_plane.app.protocols import ToolContentReader
from access_plane.app.security.auth_guard import get_principal
from access_plane.app.security.identity import Principal
from access_plane.app.share_tokens.model import DisclosureFlags, ShareToken
from access_plane.app.share_tokens.service import ShareTokenService

BASE_PATH = '/api/v1/projects/{project_id}/tools/{tool_key}/share-tokens'


# ── Request schemas ──────────────────────────────────────────────────


class CreateShareTokenRequest(BaseModel):
    scope_id: str | None = Field(default=None, max_length=200, description='Sub-resource id, e.g. a board')
    include_photos: bool = False
    include_notes: bool = False
    include_comments: bool = False
    include_source_url: bool = False
    filters: dict[str, list[str]] | None = Field(
        default=None, description='locations / assignees / statuses',
    )

    def flags(self) -> DisclosureFlags:
        return DisclosureFlags(
            include_photos=self.include_photos,
            include_notes=self.include_notes,
            include_comments=self.include_comments,
            include_source_url=self.include_source_url,
        )


def _token_dict(share: ShareToken) -> dict[str, Any]:
    return {
        'id': share.id,
        'token': share.token,
        'tool_key': share.tool_key,
        'scope_id': share.scope_id,
        'flags': share.flags.to_public_dict(),
        'filters': share.filters,
        'created_at': share.created_at.isoformat(),
    }


# ── Route factories ──────────────────────────────────────────────────


def create_share_token_router(
    service: ShareTokenService,
    guard: AuthorizationGuard,
) -> APIRouter:
    router = APIRouter(
        tags=['share-tokens'],
        dependencies=[Depends(require_tool_operation(guard, Operation.MANAGE_SHARING))],
    )

    @router.get(BASE_PATH)
    async def list_share_tokens(
        project_id: str,
        tool_key: str,
        principal: Principal = Depends(get_principal),
    ):
        tokens = await service.list_tokens(project_id, tool_key, principal.user_id)
        return {'tokens': [_token_dict(t) for t in tokens]}

    @router.post(BASE_PATH, status_code=201)
    async def create_share_token(
        project_id: str,
        tool_key: str,
        body: CreateShareTokenRequest,
        principal: Principal = Depends(get_principal),
    ):
        share = await service.create_token(
            project_id,
            tool_key,
            principal.user_id,
            scope_id=body.scope_id,
            flags=body.flags(),
            filters=body.filters,
        )
        return _token_dict(share)

    @router.delete(f'{BASE_PATH}/{{token_id}}')
    async def revoke_share_token(
        project_id: str,
        tool_key: str,
        token_id: str,
        principal: Principal = Depends(get_principal),
    ):
        await service.revoke_token(project_id, tool_key, token_id, principal.user_id)
        return {'status': 'ok'}

    return router


def create_public_share_router(
    service: ShareTokenService,
    content_reader: ToolContentReader,
) -> APIRouter:
    router = APIRouter(tags=['public-share'])

    @router.get('/api/v1/share/{tool_key}/{token}')
    async def resolve_share(tool_key: str, token: str, response: Response):
        response.headers['Cache-Control'] = 'no-store'
        share = await service.resolve_token(token, tool_key=tool_key)
        payload = await content_reader.read_shared(share)
        if payload is None:
            raise NotFound('no_data', 'No data found.')
        return {
            'payload': payload,
            'project_name': share.project_name,
            'tool_key': share.tool_key,
            'scope_id': share.scope_id,
            'flags': share.flags.to_public_dict(),
        }

    return router
