"""Invitation Lifecycle: create, preview, accept and revoke email invites."""

from .model import (
    DEFAULT_INVITE_TTL,
    AcceptResult,
    Invite,
    InviteStatus,
    generate_invite_token,
    is_valid_email,
    normalize_email,
)

__all__ = [
    'DEFAULT_INVITE_TTL',
    'AcceptResult',
    'Invite',
    'InviteStatus',
    'generate_invite_token',
    'is_valid_email',
    'normalize_email',
]
