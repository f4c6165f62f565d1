"""Tests for post-commit invite effects.

Validates:
  - Both effects run after a successful create
  - A failing effect is retried up to max_attempts
  - One failing effect does not stop the other, and never raises
  - The committed invite is unaffected by effect failures
  - Webhook notifier posts the payload and raises on non-2xx
"""

from __future__ import annotations

import json

import httpx
import pytest

from access_plane.app.access.model import AccessLevel
from access_plane.app.invites.notifier import WebhookInviteNotifier
from access_plane.app.invites.outbox import (
    AllowlistRegistration,
    InviteNotification,
    OutboxDispatcher,
)
from access_plane.app.inmemory import InMemoryInviteNotifier, InMemorySignInAllowlist

from sharing_helpers import OWNER_ID, PROJECT_ID, TOOL


class FlakyNotifier:
    """Fails the first ``failures`` sends, then records."""

    def __init__(self, failures: int) -> None:
        self.failures = failures
        self.calls = 0
        self.sent: list[InviteNotification] = []

    async def send_invite(self, notification: InviteNotification) -> None:
        self.calls += 1
        if self.calls <= self.failures:
            raise RuntimeError('smtp relay down')
        self.sent.append(notification)


def _notification(token: str = 'tok-0123456789') -> InviteNotification:
    return InviteNotification(
        to_email='bob@example.com',
        token=token,
        invite_link=f'https://app.example.com/invite/{token}',
        inviter_name='Olivia Owner',
        tool_name='Selections Board',
        project_name='Kitchen Remodel',
        access_level='EDIT',
    )


@pytest.mark.asyncio
async def test_create_then_dispatch(world):
    await world.setup_project()
    created = await world.lifecycle.create_invite(
        PROJECT_ID, TOOL, 'Bob@Example.com', AccessLevel.VIEW, OWNER_ID,
    )

    report = await world.dispatcher.dispatch(created.effects)

    assert report.ok
    assert [r.kind for r in report.results] == ['allowlist', 'notification']
    assert world.allowlist.emails == {'bob@example.com'}
    assert world.notifier.sent[0].token == created.invite.token


@pytest.mark.asyncio
async def test_retries_until_success():
    notifier = FlakyNotifier(failures=2)
    dispatcher = OutboxDispatcher(
        InMemorySignInAllowlist(), notifier, max_attempts=3, backoff_seconds=0,
    )

    report = await dispatcher.dispatch([_notification()])

    assert report.ok
    assert report.results[0].attempts == 3
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_failure_is_isolated():
    allowlist = InMemorySignInAllowlist()
    notifier = FlakyNotifier(failures=10)
    dispatcher = OutboxDispatcher(allowlist, notifier, max_attempts=2, backoff_seconds=0)

    report = await dispatcher.dispatch([
        _notification(),
        AllowlistRegistration(email='bob@example.com'),
    ])

    assert not report.ok
    failed = report.failed
    assert [r.kind for r in failed] == ['notification']
    assert failed[0].attempts == 2
    assert 'smtp relay down' in failed[0].error
    assert allowlist.emails == {'bob@example.com'}


@pytest.mark.asyncio
async def test_failed_effects_leave_invite_pending(world):
    await world.setup_project()
    world.dispatcher = OutboxDispatcher(
        world.allowlist, FlakyNotifier(failures=99), max_attempts=1, backoff_seconds=0,
    )
    created = await world.lifecycle.create_invite(
        PROJECT_ID, TOOL, 'bob@example.com', AccessLevel.EDIT, OWNER_ID,
    )

    report = await world.dispatcher.dispatch(created.effects)

    assert not report.ok
    preview = await world.lifecycle.get_invite(created.invite.token)
    assert preview.email == 'bob@example.com'


def test_max_attempts_must_be_positive():
    with pytest.raises(ValueError):
        OutboxDispatcher(InMemorySignInAllowlist(), InMemoryInviteNotifier(), max_attempts=0)


def test_notification_payload_omits_raw_token():
    payload = _notification('secret-token-value').to_payload()
    assert 'token' not in payload
    assert payload['invite_link'].endswith('/invite/secret-token-value')


# ── Webhook notifier ──────────────────────────────────────────────────


@pytest.mark.asyncio
async def test_webhook_posts_invite_template():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(202)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    notifier = WebhookInviteNotifier('https://mail.example.com/hooks/send', http_client=client)

    await notifier.send_invite(_notification())
    await notifier.aclose()

    assert seen[0]['template'] == 'invite'
    assert seen[0]['params']['to_email'] == 'bob@example.com'


@pytest.mark.asyncio
async def test_webhook_error_status_raises():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(500)),
    )
    notifier = WebhookInviteNotifier('https://mail.example.com/hooks/send', http_client=client)

    with pytest.raises(httpx.HTTPStatusError):
        await notifier.send_invite(_notification())
    await notifier.aclose()


def test_webhook_requires_url():
    with pytest.raises(ValueError):
        WebhookInviteNotifier('')
