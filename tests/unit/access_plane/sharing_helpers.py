"""Builders shared by the access-plane unit tests.

``build_world`` wires an in-memory sharing stack around a controllable
clock so expiry can be exercised without sleeping. Test modules import
this directly; ``conftest.py`` exposes it as the ``world`` fixture.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

import jwt

from access_plane.app.access.registry import AccessRegistry
from access_plane.app.audit import InMemoryAuditEmitter
from access_plane.app.authz.guard import AuthorizationGuard
from access_plane.app.inmemory import (
    InMemoryInviteNotifier,
    InMemorySharingStore,
    InMemorySignInAllowlist,
    InMemoryToolContentReader,
)
from access_plane.app.invites.lifecycle import InvitationLifecycle
from access_plane.app.invites.outbox import OutboxDispatcher
from access_plane.app.share_tokens.service import ShareTokenService

TEST_SECRET = 'test-access-plane-secret-0123456789abcdef'
TEST_AUDIENCE = 'authenticated'

OWNER_ID = 'user-owner'
OWNER_EMAIL = 'olivia@example.com'
PROJECT_ID = 'proj-1'
TOOL = 'finish_decisions'


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@dataclass
class World:
    store: InMemorySharingStore
    clock: FakeClock
    audit: InMemoryAuditEmitter
    registry: AccessRegistry
    lifecycle: InvitationLifecycle
    share_tokens: ShareTokenService
    guard: AuthorizationGuard
    allowlist: InMemorySignInAllowlist
    notifier: InMemoryInviteNotifier
    content: InMemoryToolContentReader
    dispatcher: OutboxDispatcher

    async def setup_project(self, project_id: str = PROJECT_ID, **kwargs):
        return await self.store.create_project(
            'Kitchen Remodel', OWNER_ID, project_id=project_id, **kwargs,
        )

    async def invite_and_accept(self, user_id: str, email: str, level, tool_key: str = TOOL):
        created = await self.lifecycle.create_invite(
            PROJECT_ID, tool_key, email, level, OWNER_ID,
        )
        await self.lifecycle.accept_invite(created.invite.token, user_id, email)
        return created.invite


def build_world(*, max_edit_shares: int = 3, hide_notes: bool = False) -> World:
    store = InMemorySharingStore()
    store.add_user(OWNER_ID, OWNER_EMAIL, 'Olivia Owner')
    store.add_user('user-alice', 'alice@example.com', 'Alice')
    store.add_user('user-bob', 'bob@example.com', 'Bob')
    store.add_user('user-carol', 'carol@example.com')
    store.add_user('user-dave', 'dave@example.com', 'Dave')

    clock = FakeClock()
    audit = InMemoryAuditEmitter()
    registry = AccessRegistry(
        store, store, store, store,
        max_edit_shares=max_edit_shares, audit=audit, clock=clock,
    )
    lifecycle = InvitationLifecycle(
        registry, store, store,
        app_base_url='https://app.example.com/', audit=audit, clock=clock,
    )
    share_tokens = ShareTokenService(
        registry, store, store, hide_notes=hide_notes, audit=audit, clock=clock,
    )
    allowlist = InMemorySignInAllowlist()
    notifier = InMemoryInviteNotifier()
    return World(
        store=store,
        clock=clock,
        audit=audit,
        registry=registry,
        lifecycle=lifecycle,
        share_tokens=share_tokens,
        guard=AuthorizationGuard(registry, share_tokens),
        allowlist=allowlist,
        notifier=notifier,
        content=InMemoryToolContentReader(),
        dispatcher=OutboxDispatcher(allowlist, notifier, backoff_seconds=0),
    )


def make_token(user_id: str, email: str, *, secret: str = TEST_SECRET, **overrides) -> str:
    payload = {
        'sub': user_id,
        'email': email,
        'role': 'authenticated',
        'aud': TEST_AUDIENCE,
        'exp': int(time.time()) + 3600,
        'iat': int(time.time()),
    }
    payload.update(overrides)
    return jwt.encode(payload, secret, algorithm='HS256')


def auth_headers(user_id: str, email: str) -> dict[str, str]:
    return {'Authorization': f'Bearer {make_token(user_id, email)}'}
