"""Invite domain model.

State machine (one row per invite):

  [none] --create--> PENDING --accept--> ACCEPTED
                        |
                        +--revoke--> REVOKED
                        |
                        +--(now > expires_at)--> EXPIRED

EXPIRED is computed, not scheduled: ``effective_status`` reports a PENDING
row past its deadline as EXPIRED. Stores may write EXPIRED back when they
touch the row for another reason; nothing sweeps.

Tokens are 256-bit URL-safe random strings. Emails are normalized
(trimmed, lower-cased) before they are stored or compared.
"""

from __future__ import annotations

import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum

from ..access.model import AccessLevel

# ── Constants ─────────────────────────────────────────────────────────

INVITE_TOKEN_BYTES = 32
DEFAULT_INVITE_TTL = timedelta(days=7)
MAX_EMAIL_LENGTH = 254

# Deliberately loose: one "@", no whitespace, a dot in the domain.
_EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


class InviteStatus(str, Enum):
    PENDING = 'PENDING'
    ACCEPTED = 'ACCEPTED'
    REVOKED = 'REVOKED'
    EXPIRED = 'EXPIRED'


# ── Helpers ───────────────────────────────────────────────────────────


def generate_invite_token() -> str:
    return secrets.token_urlsafe(INVITE_TOKEN_BYTES)


def normalize_email(email: str) -> str:
    return (email or '').strip().lower()


def is_valid_email(email: str) -> bool:
    """Syntactic check only; deliverability is the mailer's problem."""
    return 0 < len(email) <= MAX_EMAIL_LENGTH and bool(_EMAIL_RE.match(email))


# ── Domain model ──────────────────────────────────────────────────────


@dataclass
class Invite:
    """A pending, time-boxed, single-use offer of a ToolAccess grant.

    Attributes:
        id: Stable identifier used by owners to revoke.
        token: Opaque bearer secret carried in the accept link.
        project_id / tool_key: Scope of the eventual grant.
        email: Normalized target address.
        level: Access level granted on acceptance.
        status: Materialized status; see ``effective_status``.
        invited_by: Owner user id.
        expires_at: Deadline after which the invite reads as EXPIRED.
        accepted_by / accepted_at: Set exactly once on acceptance.
    """

    id: str
    token: str
    project_id: str
    tool_key: str
    email: str
    level: AccessLevel
    invited_by: str
    expires_at: datetime
    status: InviteStatus = InviteStatus.PENDING
    created_at: datetime = field(
        default_factory=lambda: datetime.now(timezone.utc),
    )
    accepted_by: str | None = None
    accepted_at: datetime | None = None
    revoked_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def effective_status(self, now: datetime) -> InviteStatus:
        if self.status == InviteStatus.PENDING and self.is_expired(now):
            return InviteStatus.EXPIRED
        return self.status

    def is_pending(self, now: datetime) -> bool:
        return self.effective_status(now) == InviteStatus.PENDING


@dataclass(frozen=True, slots=True)
class AcceptResult:
    """Outcome of a successful acceptance: the grant that now exists."""

    invite_id: str
    project_id: str
    tool_key: str
    user_id: str
    level: AccessLevel
