"""Tests for the invite model helpers and state computation."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from access_plane.app.access.model import AccessLevel
from access_plane.app.invites.model import (
    Invite,
    InviteStatus,
    generate_invite_token,
    is_valid_email,
    normalize_email,
)

NOW = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _invite(**overrides) -> Invite:
    fields = dict(
        id='inv-1',
        token='tok',
        project_id='p1',
        tool_key='punchlist',
        email='a@example.com',
        level=AccessLevel.VIEW,
        invited_by='owner',
        expires_at=NOW + timedelta(days=7),
    )
    fields.update(overrides)
    return Invite(**fields)


def test_tokens_are_unique_and_long():
    tokens = {generate_invite_token() for _ in range(50)}
    assert len(tokens) == 50
    assert all(len(t) >= 43 for t in tokens)


def test_normalize_email():
    assert normalize_email('  Alice@Example.COM ') == 'alice@example.com'
    assert normalize_email('') == ''


@pytest.mark.parametrize('email,ok', [
    ('a@example.com', True),
    ('first.last+tag@sub.example.co', True),
    ('no-at-sign', False),
    ('two@@example.com', False),
    ('space in@example.com', False),
    ('a@nodot', False),
    ('', False),
    ('a@' + 'x' * 260 + '.com', False),
])
def test_is_valid_email(email, ok):
    assert is_valid_email(email) is ok


class TestEffectiveStatus:

    def test_pending_before_deadline(self):
        invite = _invite()
        assert invite.effective_status(NOW) == InviteStatus.PENDING
        assert invite.is_pending(NOW)

    def test_pending_past_deadline_reads_expired(self):
        invite = _invite()
        later = NOW + timedelta(days=7, seconds=1)
        assert invite.effective_status(later) == InviteStatus.EXPIRED
        assert not invite.is_pending(later)
        assert invite.status == InviteStatus.PENDING

    def test_exact_deadline_is_still_pending(self):
        invite = _invite()
        assert invite.is_pending(invite.expires_at)

    @pytest.mark.parametrize('status', [InviteStatus.ACCEPTED, InviteStatus.REVOKED])
    def test_terminal_status_wins_over_expiry(self, status):
        invite = _invite(status=status)
        assert invite.effective_status(NOW + timedelta(days=30)) == status
