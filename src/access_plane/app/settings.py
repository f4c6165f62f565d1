"""Access plane configuration settings.

AccessPlaneSettings is the single configuration object accepted by
create_app(). It is a plain frozen dataclass, not env-coupled, so tests can
inject config without touching os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .access.model import DEFAULT_MAX_EDIT_SHARES

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})


def _env_bool(raw: str | None, default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUE_VALUES


@dataclass(frozen=True, slots=True)
class AccessPlaneSettings:
    """Configuration for the access-plane FastAPI application.

    All fields have defaults for local development. Non-local environments
    must supply supabase_url and supabase_service_role_key.
    """

    # ── Environment ────────────────────────────────────────────────
    environment: str = "local"
    """One of: local, dev, staging, production."""

    # ── Supabase ───────────────────────────────────────────────────
    supabase_url: str = ""
    """Supabase project URL; also selects JWKS (RS256) token verification."""

    supabase_service_role_key: str = ""
    """Service-role key for PostgREST calls. Never log this."""

    supabase_schema: str = "sharing"
    """Postgres schema holding the sharing tables and functions."""

    # ── Auth ───────────────────────────────────────────────────────
    jwt_secret: str = ""
    """HS256 secret used when supabase_url is empty (local/dev)."""

    jwt_audience: str = "authenticated"

    # ── Sharing policy ─────────────────────────────────────────────
    max_edit_shares: int = DEFAULT_MAX_EDIT_SHARES
    """EDIT grants plus pending EDIT invites allowed per (project, tool)."""

    invite_ttl_days: int = 7

    app_base_url: str = "http://localhost:3000"
    """Origin used to build invite accept links."""

    hide_notes_in_public_share: bool = False
    """Admin failsafe: strip notes from every public share."""

    # ── Outbox ─────────────────────────────────────────────────────
    notification_webhook_url: str = ""
    """Mail relay endpoint. Empty means notifications are only logged."""

    outbox_max_attempts: int = 3
    outbox_backoff_seconds: float = 0.5

    # ── CORS / logging ─────────────────────────────────────────────
    cors_origins: tuple[str, ...] = (
        "http://localhost:3000",
        "http://localhost:5173",
    )
    log_level: str = "INFO"
    log_format: str = "json"

    @property
    def is_local(self) -> bool:
        return self.environment == "local"

    def validate(self) -> list[str]:
        """Return a list of configuration errors. Empty means valid."""
        errors: list[str] = []
        if not self.is_local:
            if not self.supabase_url:
                errors.append(f"{self.environment}: supabase_url is required")
            if not self.supabase_service_role_key:
                errors.append(
                    f"{self.environment}: supabase_service_role_key is required"
                )
        if self.max_edit_shares < 1:
            errors.append("max_edit_shares must be >= 1")
        if self.invite_ttl_days < 1:
            errors.append("invite_ttl_days must be >= 1")
        if self.outbox_max_attempts < 1:
            errors.append("outbox_max_attempts must be >= 1")
        if self.outbox_backoff_seconds < 0:
            errors.append("outbox_backoff_seconds must be >= 0")
        return errors

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> AccessPlaneSettings:
        """Build settings from environment variables.

        Convenience factory for production use. Tests should construct
        AccessPlaneSettings directly.
        """
        if env is None:
            env = dict(os.environ)

        cors_raw = env.get("CORS_ORIGINS", "")
        cors = (
            tuple(o.strip() for o in cors_raw.split(",") if o.strip())
            if cors_raw
            else cls().cors_origins
        )

        return cls(
            environment=env.get("ENVIRONMENT", "local"),
            supabase_url=env.get("SUPABASE_URL", ""),
            supabase_service_role_key=env.get("SUPABASE_SERVICE_ROLE_KEY", ""),
            supabase_schema=env.get("SUPABASE_SCHEMA", "sharing"),
            jwt_secret=env.get("SUPABASE_JWT_SECRET", ""),
            jwt_audience=env.get("SUPABASE_AUDIENCE", "authenticated"),
            max_edit_shares=int(env.get("MAX_EDIT_SHARES", DEFAULT_MAX_EDIT_SHARES)),
            invite_ttl_days=int(env.get("INVITE_TTL_DAYS", 7)),
            app_base_url=env.get("APP_BASE_URL", "http://localhost:3000"),
            hide_notes_in_public_share=_env_bool(
                env.get("HIDE_NOTES_IN_PUBLIC_SHARE"), False,
            ),
            notification_webhook_url=env.get("INVITE_WEBHOOK_URL", ""),
            outbox_max_attempts=int(env.get("OUTBOX_MAX_ATTEMPTS", 3)),
            outbox_backoff_seconds=float(env.get("OUTBOX_BACKOFF_SECONDS", 0.5)),
            cors_origins=cors,
            log_level=env.get("LOG_LEVEL", "INFO"),
            log_format=env.get("LOG_FORMAT", "json"),
        )
