"""Row <-> domain conversions and RPC error mapping for the sharing stores.

Postgres functions signal business-rule failures with
``RAISE EXCEPTION '<code>' USING ERRCODE = 'P0001'``. The client
raises those as ``SupabaseRuleViolation``; ``as_conflict`` turns them back
into domain Conflict errors.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Mapping

from ..access.model import (
    AccessLevel,
    Membership,
    Project,
    ProjectStatus,
    Role,
    ToolAccess,
    User,
)
from ..errors import Conflict
from ..invites.model import Invite, InviteStatus, normalize_email
from ..share_tokens.model import DisclosureFlags, ShareToken
from .errors import SupabaseConflictError, SupabaseError, SupabaseRuleViolation

_RULE_MESSAGES = {
    "duplicate_invite": "An invite is already pending for this email.",
    "edit_quota_exceeded": "The edit access limit for this tool has been reached.",
    "project_exists": "Project already exists.",
}


# Postgres trims trailing zeros from fractional seconds.
_FRACTION = re.compile(r"\.(\d+)")


def _pad_fraction(match: re.Match) -> str:
    return "." + match.group(1)[:6].ljust(6, "0")


def parse_ts(value: Any) -> datetime:
    """Parse a PostgREST timestamp (``...Z`` or ``+00:00``) as aware UTC.

    Fractional seconds of any width are normalised to microseconds so
    ``fromisoformat`` accepts them on every supported interpreter.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        text = _FRACTION.sub(_pad_fraction, str(value).replace("Z", "+00:00"), count=1)
        dt = datetime.fromisoformat(text)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def parse_optional_ts(value: Any) -> datetime | None:
    return parse_ts(value) if value else None


def as_conflict(exc: SupabaseError, conflict_code: str = "store_conflict") -> Conflict | None:
    """Map a PostgREST error to a domain Conflict, or None when it is not one."""
    if isinstance(exc, SupabaseRuleViolation) and exc.rule in _RULE_MESSAGES:
        return Conflict(exc.rule, _RULE_MESSAGES[exc.rule])
    if isinstance(exc, SupabaseConflictError):
        return Conflict(conflict_code, _RULE_MESSAGES.get(conflict_code, exc.message))
    return None


# ── Projects / users / memberships ────────────────────────────────────


def project_from_row(row: Mapping[str, Any]) -> Project:
    return Project(
        id=row["id"],
        name=row.get("name") or "",
        owner_id=row["owner_id"],
        status=ProjectStatus(row.get("status") or "ACTIVE"),
        active_tool_keys=tuple(row.get("active_tool_keys") or ()),
        created_at=parse_ts(row["created_at"]) if row.get("created_at") else datetime.now(timezone.utc),
    )


def user_from_row(row: Mapping[str, Any]) -> User:
    return User(id=row["id"], email=normalize_email(row.get("email")), name=row.get("name"))


def membership_from_row(row: Mapping[str, Any]) -> Membership:
    return Membership(
        project_id=row["project_id"],
        user_id=row["user_id"],
        role=Role(row["role"]),
        created_at=parse_ts(row["created_at"]),
    )


def access_from_row(row: Mapping[str, Any]) -> ToolAccess:
    return ToolAccess(
        id=row["id"],
        project_id=row["project_id"],
        tool_key=row["tool_key"],
        user_id=row["user_id"],
        level=AccessLevel(row["level"]),
        created_at=parse_ts(row["created_at"]),
        updated_at=parse_ts(row.get("updated_at") or row["created_at"]),
    )


# ── Invites ───────────────────────────────────────────────────────────


def invite_from_row(row: Mapping[str, Any]) -> Invite:
    return Invite(
        id=row["id"],
        token=row["token"],
        project_id=row["project_id"],
        tool_key=row["tool_key"],
        email=row["email"],
        level=AccessLevel(row["level"]),
        invited_by=row["invited_by"],
        expires_at=parse_ts(row["expires_at"]),
        status=InviteStatus(row["status"]),
        created_at=parse_ts(row["created_at"]),
        accepted_by=row.get("accepted_by"),
        accepted_at=parse_optional_ts(row.get("accepted_at")),
        revoked_at=parse_optional_ts(row.get("revoked_at")),
    )


# ── Share tokens ──────────────────────────────────────────────────────


def share_from_row(row: Mapping[str, Any]) -> ShareToken:
    return ShareToken(
        id=row["id"],
        token=row["token"],
        project_id=row["project_id"],
        tool_key=row["tool_key"],
        created_by=row["created_by"],
        flags=DisclosureFlags(
            include_photos=bool(row.get("include_photos")),
            include_notes=bool(row.get("include_notes")),
            include_comments=bool(row.get("include_comments")),
            include_source_url=bool(row.get("include_source_url")),
        ),
        scope_id=row.get("scope_id"),
        filters=dict(row.get("filters") or {}),
        created_at=parse_ts(row["created_at"]),
    )


def share_to_row(share: ShareToken) -> dict[str, Any]:
    return {
        "id": share.id,
        "token": share.token,
        "project_id": share.project_id,
        "tool_key": share.tool_key,
        "scope_id": share.scope_id,
        "include_photos": share.flags.include_photos,
        "include_notes": share.flags.include_notes,
        "include_comments": share.flags.include_comments,
        "include_source_url": share.flags.include_source_url,
        "filters": share.filters,
        "created_by": share.created_by,
        "created_at": share.created_at.isoformat(),
    }
