"""Registry of shareable tools.

A tool is an independently addressable data set inside a project. The
sharing layer only needs its key (for scoping grants) and its title (for
invite notifications and previews).
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import NotFound


@dataclass(frozen=True, slots=True)
class ToolEntry:
    tool_key: str
    title: str


TOOL_REGISTRY: tuple[ToolEntry, ...] = (
    ToolEntry('before_you_sign', 'Contract Checklist'),
    ToolEntry('finish_decisions', 'Selections Board'),
    ToolEntry('punchlist', 'Fix List'),
    ToolEntry('mood_boards', 'Mood Boards'),
)

_BY_KEY = {entry.tool_key: entry for entry in TOOL_REGISTRY}


def is_known_tool(tool_key: str) -> bool:
    return tool_key in _BY_KEY


def get_tool(tool_key: str) -> ToolEntry:
    """Return the registry entry or raise NotFound(tool_not_found)."""
    entry = _BY_KEY.get(tool_key)
    if entry is None:
        raise NotFound('tool_not_found', f'Unknown tool {tool_key!r}.')
    return entry
