"""Public share token domain model.

A share token is an anonymous read capability for one (project, tool) and
an optional sub-resource such as a single board. It has no expiry: deleting
the row is the only way to end it, and resolution fails closed once the row
is gone.

Unlike invites, the plaintext token is stored. Owners re-copy live links
from the sharing panel, so the value must be recoverable.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

SHARE_TOKEN_BYTES = 32

# Filter dimensions passed through to the content reader uninterpreted.
FILTER_KEYS = ('locations', 'assignees', 'statuses')


def generate_share_token() -> str:
    return secrets.token_urlsafe(SHARE_TOKEN_BYTES)


@dataclass(frozen=True, slots=True)
class DisclosureFlags:
    """Which content fields an anonymous viewer may see."""

    include_photos: bool = False
    include_notes: bool = False
    include_comments: bool = False
    include_source_url: bool = False

    def without_notes(self) -> DisclosureFlags:
        return DisclosureFlags(
            include_photos=self.include_photos,
            include_notes=False,
            include_comments=self.include_comments,
            include_source_url=self.include_source_url,
        )

    def to_public_dict(self) -> dict[str, bool]:
        return {
            'photos': self.include_photos,
            'notes': self.include_notes,
            'comments': self.include_comments,
            'sourceUrl': self.include_source_url,
        }


def clean_filters(raw: Mapping[str, Any] | None) -> dict[str, list[str]]:
    """Keep known filter keys with non-empty string lists; drop the rest."""
    if not raw:
        return {}
    cleaned: dict[str, list[str]] = {}
    for key in FILTER_KEYS:
        values = raw.get(key)
        if not isinstance(values, (list, tuple)):
            continue
        items = [str(v) for v in values if isinstance(v, str) and v]
        if items:
            cleaned[key] = items
    return cleaned


@dataclass
class ShareToken:
    id: str
    token: str
    project_id: str
    tool_key: str
    created_by: str
    flags: DisclosureFlags = field(default_factory=DisclosureFlags)
    scope_id: str | None = None
    filters: dict[str, list[str]] = field(default_factory=dict)
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )


@dataclass(frozen=True, slots=True)
class ResolvedShare:
    """What the content reader needs to build a redacted projection."""

    token_id: str
    project_id: str
    project_name: str
    tool_key: str
    scope_id: str | None
    flags: DisclosureFlags
    filters: Mapping[str, list[str]]
