"""Reference redaction of tool payloads for anonymous viewers.

Tool payloads are opaque to the sharing layer; this helper only knows the
conventional container shapes (``items`` lists, ``boards`` lists) and the
field names each disclosure flag controls. Content readers that own a
richer schema should apply their own projection.
"""

from __future__ import annotations

import copy
from typing import Any, Mapping

from .model import DisclosureFlags

PHOTO_FIELDS = ('photos', 'images', 'image_url', 'photo_url')
NOTE_FIELDS = ('notes',)
COMMENT_FIELDS = ('comments',)
SOURCE_URL_FIELDS = ('source_url', 'sourceUrl')

# Filter key -> item field it matches.
_FILTER_FIELDS = {
    'locations': 'location',
    'assignees': 'assignee',
    'statuses': 'status',
}


def hidden_fields(flags: DisclosureFlags) -> set[str]:
    hidden: set[str] = set()
    if not flags.include_photos:
        hidden.update(PHOTO_FIELDS)
    if not flags.include_notes:
        hidden.update(NOTE_FIELDS)
    if not flags.include_comments:
        hidden.update(COMMENT_FIELDS)
    if not flags.include_source_url:
        hidden.update(SOURCE_URL_FIELDS)
    return hidden


def _strip(node: Any, hidden: set[str]) -> Any:
    if isinstance(node, dict):
        return {k: _strip(v, hidden) for k, v in node.items() if k not in hidden}
    if isinstance(node, list):
        return [_strip(v, hidden) for v in node]
    return node


def _matches(item: Any, filters: Mapping[str, list[str]]) -> bool:
    if not isinstance(item, dict):
        return True
    for key, allowed in filters.items():
        field_name = _FILTER_FIELDS.get(key)
        if field_name and allowed and item.get(field_name) not in allowed:
            return False
    return True


def redact_payload(
    payload: Mapping[str, Any] | None,
    flags: DisclosureFlags,
    *,
    scope_id: str | None = None,
    filters: Mapping[str, list[str]] | None = None,
) -> dict[str, Any] | None:
    """Return a redacted deep copy, or None when the scope is empty."""
    if not payload:
        return None
    data: dict[str, Any] = copy.deepcopy(dict(payload))

    if scope_id is not None:
        boards = data.get('boards')
        if not isinstance(boards, list):
            return None
        scoped = [b for b in boards if isinstance(b, dict) and b.get('id') == scope_id]
        if not scoped:
            return None
        data['boards'] = scoped

    if filters and isinstance(data.get('items'), list):
        data['items'] = [i for i in data['items'] if _matches(i, filters)]

    return _strip(data, hidden_fields(flags))
