"""Membership and tool-access domain model.

Membership rows come in two flavours:

  - OWNER: exactly one per project, created with the project, never
    removed while the project exists.
  - MEMBER: derived. A MEMBER row exists for (project, user) if and only if
    the user holds at least one ToolAccess row on that project. Stores
    maintain this inside the same transaction as every ToolAccess mutation;
    nothing edits MEMBER rows independently.

ToolAccess is unique on (project_id, tool_key, user_id).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

DEFAULT_MAX_EDIT_SHARES = 3


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Role(str, Enum):
    OWNER = 'OWNER'
    MEMBER = 'MEMBER'


class AccessLevel(str, Enum):
    VIEW = 'VIEW'
    EDIT = 'EDIT'


class ProjectStatus(str, Enum):
    ACTIVE = 'ACTIVE'
    ARCHIVED = 'ARCHIVED'
    TRASHED = 'TRASHED'


@dataclass
class Project:
    """Tenant boundary. An empty ``active_tool_keys`` means every tool is active."""

    id: str
    name: str
    owner_id: str
    status: ProjectStatus = ProjectStatus.ACTIVE
    active_tool_keys: tuple[str, ...] = ()
    created_at: datetime = field(default_factory=utcnow)

    @property
    def is_active(self) -> bool:
        return self.status == ProjectStatus.ACTIVE

    @property
    def is_trashed(self) -> bool:
        return self.status == ProjectStatus.TRASHED

    def is_tool_active(self, tool_key: str) -> bool:
        return not self.active_tool_keys or tool_key in self.active_tool_keys


@dataclass
class User:
    """Account as supplied by the identity collaborator (read-only here)."""

    id: str
    email: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email


@dataclass
class Membership:
    project_id: str
    user_id: str
    role: Role
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class ToolAccess:
    id: str
    project_id: str
    tool_key: str
    user_id: str
    level: AccessLevel
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class EditUsage:
    """EDIT slots in use for one (project, tool): grants plus pending invites."""

    granted: int
    pending: int

    @property
    def total(self) -> int:
        return self.granted + self.pending


@dataclass(frozen=True, slots=True)
class RevokeOutcome:
    access_removed: bool
    membership_removed: bool


@dataclass(frozen=True, slots=True)
class ReconcileReport:
    project_id: str
    members_created: int = 0
    members_removed: int = 0
    owner_created: bool = False

    @property
    def changed(self) -> bool:
        return bool(self.members_created or self.members_removed or self.owner_created)
