"""Access Registry: memberships, per-tool grants and the EDIT quota."""

from .model import (
    DEFAULT_MAX_EDIT_SHARES,
    AccessLevel,
    EditUsage,
    Membership,
    Project,
    ProjectStatus,
    ReconcileReport,
    RevokeOutcome,
    Role,
    ToolAccess,
    User,
)

__all__ = [
    'DEFAULT_MAX_EDIT_SHARES',
    'AccessLevel',
    'EditUsage',
    'Membership',
    'Project',
    'ProjectStatus',
    'ReconcileReport',
    'RevokeOutcome',
    'Role',
    'ToolAccess',
    'User',
]
