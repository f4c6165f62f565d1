"""Tests for the Public Share Token Service.

Validates:
  - Owner-only create / list / revoke
  - Flags and scope round-trip to the resolved share
  - Resolution fails closed: revoked, trashed project, disabled tool,
    wrong tool, unknown token
  - The hide-notes failsafe overrides stored flags
  - Tokens never reach audit payloads in full
"""

from __future__ import annotations

import pytest

from access_plane.app.access.model import AccessLevel, ProjectStatus
from access_plane.app.errors import Conflict, Forbidden, NotFound
from access_plane.app.share_tokens.model import DisclosureFlags, clean_filters
from access_plane.app.share_tokens.service import ShareTokenService

from sharing_helpers import OWNER_ID, PROJECT_ID, TOOL, build_world

BOARD = 'board-b'


@pytest.mark.asyncio
async def test_share_link_round_trip(world):
    await world.setup_project()
    share = await world.share_tokens.create_token(
        PROJECT_ID, 'mood_boards', OWNER_ID,
        scope_id=BOARD, flags=DisclosureFlags(include_photos=True),
    )

    resolved = await world.share_tokens.resolve_token(share.token)
    assert resolved.flags.to_public_dict() == {
        'photos': True, 'notes': False, 'comments': False, 'sourceUrl': False,
    }
    assert resolved.scope_id == BOARD
    assert resolved.project_name == 'Kitchen Remodel'

    await world.share_tokens.revoke_token(PROJECT_ID, 'mood_boards', share.id, OWNER_ID)

    with pytest.raises(NotFound) as exc_info:
        await world.share_tokens.resolve_token(share.token)
    assert exc_info.value.code == 'share_not_found'


class TestCreate:

    @pytest.mark.asyncio
    async def test_defaults_disclose_nothing(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        assert share.flags == DisclosureFlags()
        assert share.scope_id is None
        assert share.filters == {}
        assert len(share.token) >= 43

    @pytest.mark.asyncio
    async def test_tokens_are_distinct(self, world):
        await world.setup_project()
        a = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        b = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        assert a.token != b.token
        listed = await world.share_tokens.list_tokens(PROJECT_ID, TOOL, OWNER_ID)
        assert {s.id for s in listed} == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_listed_oldest_first(self, world):
        await world.setup_project()
        first = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        world.clock.advance(minutes=5)
        second = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        listed = await world.share_tokens.list_tokens(PROJECT_ID, TOOL, OWNER_ID)
        assert [s.id for s in listed] == [first.id, second.id]

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, world):
        await world.setup_project()
        await world.invite_and_accept('user-alice', 'alice@example.com', AccessLevel.EDIT)
        with pytest.raises(Forbidden):
            await world.share_tokens.create_token(PROJECT_ID, TOOL, 'user-alice')
        with pytest.raises(Forbidden):
            await world.share_tokens.list_tokens(PROJECT_ID, TOOL, 'user-alice')

    @pytest.mark.asyncio
    async def test_archived_project(self, world):
        await world.setup_project()
        await world.store.set_project_status(PROJECT_ID, ProjectStatus.ARCHIVED)
        with pytest.raises(Conflict) as exc_info:
            await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        assert exc_info.value.code == 'project_not_active'

    @pytest.mark.asyncio
    async def test_filters_are_cleaned(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(
            PROJECT_ID, 'punchlist', OWNER_ID,
            filters={'locations': ['Kitchen', '', 3], 'statuses': [], 'color': ['red']},
        )
        assert share.filters == {'locations': ['Kitchen']}

    @pytest.mark.asyncio
    async def test_audit_carries_prefix_only(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        await world.share_tokens.resolve_token(share.token)
        for event in world.audit.events:
            assert share.token not in str(event.to_dict())
        assert world.audit.find(action='share_token.resolved')


class TestResolveFailsClosed:

    @pytest.mark.asyncio
    async def test_unknown_and_empty(self, world):
        for token in ('', 'does-not-exist'):
            with pytest.raises(NotFound):
                await world.share_tokens.resolve_token(token)

    @pytest.mark.asyncio
    async def test_trashed_project(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        await world.store.set_project_status(PROJECT_ID, ProjectStatus.TRASHED)
        with pytest.raises(NotFound):
            await world.share_tokens.resolve_token(share.token)

    @pytest.mark.asyncio
    async def test_archived_project_still_resolves(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        await world.store.set_project_status(PROJECT_ID, ProjectStatus.ARCHIVED)
        resolved = await world.share_tokens.resolve_token(share.token)
        assert resolved.project_id == PROJECT_ID

    @pytest.mark.asyncio
    async def test_tool_disabled_after_creation(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        project = world.store._projects[PROJECT_ID]
        project.active_tool_keys = ('punchlist',)
        with pytest.raises(NotFound):
            await world.share_tokens.resolve_token(share.token)

    @pytest.mark.asyncio
    async def test_wrong_tool(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        with pytest.raises(NotFound):
            await world.share_tokens.resolve_token(share.token, tool_key='punchlist')
        resolved = await world.share_tokens.resolve_token(share.token, tool_key=TOOL)
        assert resolved.tool_key == TOOL


class TestRevoke:

    @pytest.mark.asyncio
    async def test_unknown_token_is_not_found(self, world):
        await world.setup_project()
        with pytest.raises(NotFound):
            await world.share_tokens.revoke_token(PROJECT_ID, TOOL, 'missing', OWNER_ID)

    @pytest.mark.asyncio
    async def test_revoke_scoped_to_tool(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        with pytest.raises(NotFound):
            await world.share_tokens.revoke_token(PROJECT_ID, 'punchlist', share.id, OWNER_ID)
        assert await world.share_tokens.resolve_token(share.token)

    @pytest.mark.asyncio
    async def test_non_owner_forbidden(self, world):
        await world.setup_project()
        share = await world.share_tokens.create_token(PROJECT_ID, TOOL, OWNER_ID)
        with pytest.raises(Forbidden):
            await world.share_tokens.revoke_token(PROJECT_ID, TOOL, share.id, 'user-bob')
        assert world.audit.find(action='share_token.revoked') == []


class TestHideNotesFailsafe:

    @pytest.mark.asyncio
    async def test_new_tokens_have_notes_off(self):
        world = build_world(hide_notes=True)
        await world.setup_project()
        share = await world.share_tokens.create_token(
            PROJECT_ID, TOOL, OWNER_ID,
            flags=DisclosureFlags(include_notes=True, include_photos=True),
        )
        assert share.flags.include_notes is False
        assert share.flags.include_photos is True

    @pytest.mark.asyncio
    async def test_overrides_stored_flags(self):
        permissive = build_world()
        await permissive.setup_project()
        share = await permissive.share_tokens.create_token(
            PROJECT_ID, TOOL, OWNER_ID, flags=DisclosureFlags(include_notes=True),
        )

        strict = ShareTokenService(
            permissive.registry, permissive.store, permissive.store, hide_notes=True,
        )

        resolved = await strict.resolve_token(share.token)
        assert resolved.flags.include_notes is False


def test_clean_filters_handles_none():
    assert clean_filters(None) == {}
    assert clean_filters({'assignees': ('ana', 'ben')}) == {'assignees': ['ana', 'ben']}
