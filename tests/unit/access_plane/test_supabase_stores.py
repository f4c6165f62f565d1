"""Unit tests for the Supabase-backed sharing stores.

Uses httpx.MockTransport to verify PostgREST requests and the mapping of
function errors back to domain conflicts, without a real Supabase.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from access_plane.app.access.model import AccessLevel, Role
from access_plane.app.audit import AuditEvent
from access_plane.app.db.access_store import SupabaseAccessStore
from access_plane.app.db.allowlist import SupabaseSignInAllowlist
from access_plane.app.db.audit_emitter import SupabaseAuditEmitter
from access_plane.app.db.content_reader import SupabaseToolContentReader
from access_plane.app.db.directory import SupabaseProjectDirectory, SupabaseUserDirectory
from access_plane.app.db.errors import SupabaseError
from access_plane.app.db.invite_store import SupabaseInviteStore
from access_plane.app.db.share_token_store import SupabaseShareTokenStore
from access_plane.app.db.supabase_client import SupabaseClient
from access_plane.app.errors import Conflict
from access_plane.app.invites.model import Invite, InviteStatus
from access_plane.app.share_tokens.model import DisclosureFlags, ResolvedShare, ShareToken

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
TS = "2026-03-01T12:00:00Z"


def _client(handler) -> SupabaseClient:
    return SupabaseClient(
        supabase_url="https://test.supabase.co",
        service_role_key="svc-key",
        default_schema="sharing",
        retry_backoff_seconds=0,
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )


def _recorder(response: httpx.Response):
    seen: list[dict[str, Any]] = []

    async def handler(request: httpx.Request) -> httpx.Response:
        seen.append({
            "method": request.method,
            "url": str(request.url),
            "path": request.url.path,
            "headers": dict(request.headers),
            "body": json.loads(request.content) if request.content else None,
        })
        return response

    return seen, handler


def _raise_rule(message: str) -> httpx.Response:
    return httpx.Response(400, json={"code": "P0001", "message": message})


def _invite(**overrides) -> Invite:
    fields = dict(
        id="inv-1",
        token="tok-abcdefghijkl",
        project_id="p1",
        tool_key="punchlist",
        email="bob@example.com",
        level=AccessLevel.EDIT,
        invited_by="owner",
        expires_at=NOW + timedelta(days=7),
        created_at=NOW,
    )
    fields.update(overrides)
    return Invite(**fields)


def _invite_row(**overrides) -> dict[str, Any]:
    row = {
        "id": "inv-1",
        "token": "tok-abcdefghijkl",
        "project_id": "p1",
        "tool_key": "punchlist",
        "email": "bob@example.com",
        "level": "EDIT",
        "invited_by": "owner",
        "status": "PENDING",
        "expires_at": "2026-03-08T12:00:00+00:00",
        "created_at": TS,
    }
    row.update(overrides)
    return row


# ── Access store ──────────────────────────────────────────────────────


class TestAccessStore:

    @pytest.mark.asyncio
    async def test_get_membership(self):
        seen, handler = _recorder(httpx.Response(200, json=[{
            "project_id": "p1", "user_id": "u1", "role": "MEMBER", "created_at": TS,
        }]))
        membership = await SupabaseAccessStore(_client(handler)).get_membership("p1", "u1")

        assert membership.role == Role.MEMBER
        assert membership.created_at == NOW
        assert seen[0]["path"] == "/rest/v1/project_members"
        assert "user_id=eq.u1" in seen[0]["url"]

    @pytest.mark.asyncio
    async def test_grant_calls_function_with_quota(self):
        seen, handler = _recorder(httpx.Response(200, json={
            "id": "ta-1", "project_id": "p1", "tool_key": "punchlist", "user_id": "u1",
            "level": "EDIT", "created_at": TS, "updated_at": TS,
        }))
        grant = await SupabaseAccessStore(_client(handler)).grant_tool_access(
            "p1", "punchlist", "u1", AccessLevel.EDIT, edit_limit=3, now=NOW,
        )

        assert grant.level == AccessLevel.EDIT
        assert seen[0]["path"] == "/rest/v1/rpc/grant_tool_access"
        assert seen[0]["body"]["p_edit_limit"] == 3
        assert seen[0]["body"]["p_level"] == "EDIT"
        assert seen[0]["body"]["p_now"] == NOW.isoformat()

    @pytest.mark.asyncio
    async def test_grant_quota_rule_maps_to_conflict(self):
        _seen, handler = _recorder(_raise_rule("edit_quota_exceeded"))
        with pytest.raises(Conflict) as exc_info:
            await SupabaseAccessStore(_client(handler)).grant_tool_access(
                "p1", "punchlist", "u1", AccessLevel.EDIT, edit_limit=3, now=NOW,
            )
        assert exc_info.value.code == "edit_quota_exceeded"

    @pytest.mark.asyncio
    async def test_grant_unrelated_error_propagates(self):
        _seen, handler = _recorder(httpx.Response(500, json={"message": "down"}))
        with pytest.raises(SupabaseError):
            await SupabaseAccessStore(_client(handler)).grant_tool_access(
                "p1", "punchlist", "u1", AccessLevel.VIEW,
            )

    @pytest.mark.asyncio
    async def test_revoke_outcome(self):
        _seen, handler = _recorder(httpx.Response(
            200, json={"access_removed": True, "membership_removed": False},
        ))
        outcome = await SupabaseAccessStore(_client(handler)).revoke_tool_access(
            "p1", "punchlist", "u1",
        )
        assert outcome.access_removed is True
        assert outcome.membership_removed is False

    @pytest.mark.asyncio
    async def test_edit_usage_and_reconcile(self):
        _seen, handler = _recorder(httpx.Response(200, json={"granted": 2, "pending": 1}))
        usage = await SupabaseAccessStore(_client(handler)).count_edit_usage("p1", "punchlist", NOW)
        assert usage.total == 3

        _seen, handler = _recorder(httpx.Response(200, json={
            "owner_created": False, "members_created": 1, "members_removed": 0,
        }))
        report = await SupabaseAccessStore(_client(handler)).reconcile_memberships("p1")
        assert report.members_created == 1
        assert report.changed


# ── Invite store ──────────────────────────────────────────────────────


class TestInviteStore:

    @pytest.mark.asyncio
    async def test_guarded_insert(self):
        seen, handler = _recorder(httpx.Response(200, json=_invite_row()))
        invite = await SupabaseInviteStore(_client(handler)).insert_invite_guarded(
            _invite(), edit_limit=3, now=NOW,
        )

        assert invite.status == InviteStatus.PENDING
        assert seen[0]["path"] == "/rest/v1/rpc/create_invite_guarded"
        body = seen[0]["body"]
        assert body["p_email"] == "bob@example.com"
        assert body["p_edit_limit"] == 3
        assert body["p_level"] == "EDIT"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("response,code", [
        (_raise_rule("duplicate_invite"), "duplicate_invite"),
        (_raise_rule("edit_quota_exceeded"), "edit_quota_exceeded"),
        (httpx.Response(409, json={"code": "23505", "message": "ux_invites_pending"}),
         "duplicate_invite"),
    ])
    async def test_guarded_insert_conflicts(self, response, code):
        _seen, handler = _recorder(response)
        with pytest.raises(Conflict) as exc_info:
            await SupabaseInviteStore(_client(handler)).insert_invite_guarded(
                _invite(), edit_limit=3, now=NOW,
            )
        assert exc_info.value.code == code

    @pytest.mark.asyncio
    async def test_accept_returns_none_when_not_pending(self):
        _seen, handler = _recorder(httpx.Response(200, json=None))
        assert await SupabaseInviteStore(_client(handler)).accept_invite("inv-1", "u1", NOW) is None

    @pytest.mark.asyncio
    async def test_accept_returns_accepted_row(self):
        _seen, handler = _recorder(httpx.Response(200, json=_invite_row(
            status="ACCEPTED", accepted_by="u1", accepted_at=TS,
        )))
        invite = await SupabaseInviteStore(_client(handler)).accept_invite("inv-1", "u1", NOW)
        assert invite.status == InviteStatus.ACCEPTED
        assert invite.accepted_at == NOW

    @pytest.mark.asyncio
    async def test_rows_with_trimmed_fractional_seconds(self):
        _seen, handler = _recorder(httpx.Response(200, json=[_invite_row(
            expires_at="2026-10-26T10:00:00.12345+00:00",
            created_at="2026-10-19T10:00:00.5Z",
        )]))
        [invite] = await SupabaseInviteStore(_client(handler)).list_pending_invites(
            "p1", "punchlist", NOW,
        )
        assert invite.expires_at == datetime(2026, 10, 26, 10, 0, 0, 123450, tzinfo=timezone.utc)
        assert invite.created_at.microsecond == 500000

    @pytest.mark.asyncio
    async def test_revoke_is_conditional_patch(self):
        seen, handler = _recorder(httpx.Response(200, json=[]))
        changed = await SupabaseInviteStore(_client(handler)).revoke_invite("inv-1", NOW)

        assert changed is False
        assert seen[0]["method"] == "PATCH"
        assert "status=eq.PENDING" in seen[0]["url"]
        assert "expires_at=gt." in seen[0]["url"]
        assert seen[0]["body"]["status"] == "REVOKED"

    @pytest.mark.asyncio
    async def test_list_pending_filters_live_rows(self):
        seen, handler = _recorder(httpx.Response(200, json=[_invite_row()]))
        invites = await SupabaseInviteStore(_client(handler)).list_pending_invites(
            "p1", "punchlist", NOW,
        )
        assert [i.id for i in invites] == ["inv-1"]
        assert "status=eq.PENDING" in seen[0]["url"]
        assert "order=created_at.asc" in seen[0]["url"]


# ── Share token store ─────────────────────────────────────────────────


class TestShareTokenStore:

    @pytest.mark.asyncio
    async def test_insert_flattens_flags(self):
        share = ShareToken(
            id="st-1",
            token="share-abcdefghij",
            project_id="p1",
            tool_key="mood_boards",
            created_by="owner",
            flags=DisclosureFlags(include_photos=True),
            scope_id="b1",
            created_at=NOW,
        )
        seen, handler = _recorder(httpx.Response(201, json=[{
            "id": "st-1", "token": "share-abcdefghij", "project_id": "p1",
            "tool_key": "mood_boards", "created_by": "owner", "scope_id": "b1",
            "include_photos": True, "include_notes": False, "include_comments": False,
            "include_source_url": False, "filters": {}, "created_at": TS,
        }]))

        stored = await SupabaseShareTokenStore(_client(handler)).insert_share_token(share)

        assert stored.flags == DisclosureFlags(include_photos=True)
        body = seen[0]["body"]
        assert body["include_photos"] is True
        assert body["include_notes"] is False
        assert body["scope_id"] == "b1"

    @pytest.mark.asyncio
    async def test_list_is_oldest_first(self):
        seen, handler = _recorder(httpx.Response(200, json=[]))
        assert await SupabaseShareTokenStore(_client(handler)).list_share_tokens(
            "p1", "mood_boards",
        ) == []
        assert httpx.URL(seen[0]["url"]).params["order"] == "created_at.asc"

    @pytest.mark.asyncio
    async def test_delete_reports_affected_rows(self):
        seen, handler = _recorder(httpx.Response(200, json=[{"id": "st-1"}]))
        assert await SupabaseShareTokenStore(_client(handler)).delete_share_token(
            "st-1", "p1", "mood_boards",
        ) is True
        assert seen[0]["method"] == "DELETE"
        assert "tool_key=eq.mood_boards" in seen[0]["url"]

        _seen, handler = _recorder(httpx.Response(200, json=[]))
        assert await SupabaseShareTokenStore(_client(handler)).delete_share_token(
            "st-1", "p1", "mood_boards",
        ) is False


# ── Directory, allow-list, audit, content ─────────────────────────────


@pytest.mark.asyncio
async def test_user_lookup_matches_mixed_case_row():
    seen, handler = _recorder(httpx.Response(200, json=[
        {"id": "u1", "email": "Bob@Example.com", "name": "Bob"},
    ]))
    user = await SupabaseUserDirectory(_client(handler)).get_user_by_email("  BOB@example.com ")
    assert user.id == "u1"
    assert user.email == "bob@example.com"
    assert httpx.URL(seen[0]["url"]).params["email"] == "ilike.bob@example.com"


@pytest.mark.asyncio
async def test_user_lookup_escapes_like_wildcards():
    seen, handler = _recorder(httpx.Response(200, json=[]))
    assert await SupabaseUserDirectory(_client(handler)).get_user_by_email("a_b%c@example.com") is None
    assert httpx.URL(seen[0]["url"]).params["email"] == r"ilike.a\_b\%c@example.com"


@pytest.mark.asyncio
async def test_create_project_conflict():
    _seen, handler = _recorder(_raise_rule("project_exists"))
    with pytest.raises(Conflict) as exc_info:
        await SupabaseProjectDirectory(_client(handler)).create_project("Kitchen", "owner")
    assert exc_info.value.code == "project_exists"


@pytest.mark.asyncio
async def test_create_project_parses_row():
    seen, handler = _recorder(httpx.Response(200, json={
        "id": "p1", "name": "Kitchen", "owner_id": "owner", "status": "ACTIVE",
        "active_tool_keys": ["punchlist"], "created_at": TS,
    }))
    project = await SupabaseProjectDirectory(_client(handler)).create_project(
        "Kitchen", "owner", project_id="p1", active_tool_keys=("punchlist",),
    )
    assert project.is_tool_active("punchlist")
    assert not project.is_tool_active("mood_boards")
    assert seen[0]["body"]["p_active_tool_keys"] == ["punchlist"]


@pytest.mark.asyncio
async def test_allowlist_upserts_normalized_email():
    seen, handler = _recorder(httpx.Response(201, json=[{"email": "bob@example.com"}]))
    await SupabaseSignInAllowlist(_client(handler)).register("Bob@Example.com")
    assert seen[0]["body"] == {"email": "bob@example.com", "source": "invite"}
    assert "on_conflict=email" in seen[0]["url"]


@pytest.mark.asyncio
async def test_audit_emitter_redacts_secret_keys():
    seen, handler = _recorder(httpx.Response(201, json=[{"id": 1}]))
    await SupabaseAuditEmitter(_client(handler)).emit(AuditEvent(
        action="share_token.created",
        project_id="p1",
        tool_key="mood_boards",
        actor_id="owner",
        subject="st-1",
        data={"token": "full-secret", "nested": {"apikey": "k"}, "token_prefix": "abcd1234..."},
    ))
    payload = seen[0]["body"]["payload"]
    assert payload["token"] == "[REDACTED]"
    assert payload["nested"]["apikey"] == "[REDACTED]"
    assert payload["token_prefix"] == "abcd1234..."
    assert seen[0]["path"] == "/rest/v1/audit_events"


@pytest.mark.asyncio
async def test_content_reader_redacts_payload():
    seen, handler = _recorder(httpx.Response(200, json=[{"payload": {
        "boards": [{"id": "b1", "notes": "private", "photos": ["a.jpg"]}],
    }}]))
    share = ResolvedShare(
        token_id="st-1",
        project_id="p1",
        project_name="Kitchen",
        tool_key="mood_boards",
        scope_id="b1",
        flags=DisclosureFlags(include_photos=True),
        filters={},
    )

    payload = await SupabaseToolContentReader(_client(handler)).read_shared(share)

    assert payload == {"boards": [{"id": "b1", "photos": ["a.jpg"]}]}
    assert "select=payload" in seen[0]["url"]


@pytest.mark.asyncio
async def test_content_reader_missing_row():
    _seen, handler = _recorder(httpx.Response(200, json=[]))
    share = ResolvedShare("st-1", "p1", "Kitchen", "mood_boards", None, DisclosureFlags(), {})
    assert await SupabaseToolContentReader(_client(handler)).read_shared(share) is None
