"""Access plane FastAPI application factory.

The create_app() factory is the single entry point for building the sharing
ASGI application. It wires middleware (request-ID, metrics, auth guard,
CORS), the sharing services and their routers, and injects store and
collaborator implementations via dependency injection.

Usage:
    # Local development
    from access_plane.app import create_app, AccessPlaneSettings
    app = create_app(AccessPlaneSettings())

    # Non-local (Supabase stores built from settings)
    settings = AccessPlaneSettings.from_env()
    app = create_app(settings)

    # Testing (full DI control)
    app = create_app(settings, access_store=store, invite_store=store, ...)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, fields
from datetime import timedelta
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response

from ..observability.logging import configure_logging
from ..observability.metrics import metrics_text
from ..observability.middleware import MetricsMiddleware, RequestIdMiddleware
from .access.registry import AccessRegistry
from .audit import AuditEmitter
from .authz.guard import AuthorizationGuard
from .errors import install_error_handlers
from .invites.lifecycle import InvitationLifecycle
from .invites.outbox import OutboxDispatcher
from .protocols import (
    AccessStore,
    InviteNotifier,
    InviteStore,
    ProjectDirectory,
    ShareTokenStore,
    SignInAllowlist,
    ToolContentReader,
    UserDirectory,
)
from .security.auth_guard import AuthGuardMiddleware
from .security.identity import TokenVerifier, create_token_verifier
from .settings import AccessPlaneSettings
from .share_tokens.service import ShareTokenService

logger = logging.getLogger(__name__)

# HS256 secret for local runs without SUPABASE_JWT_SECRET. Never used
# outside environment=local.
LOCAL_DEV_JWT_SECRET = "access-plane-local-development-only-secret"


@dataclass(frozen=True)
class AppDependencies:
    """Container for all injected store/collaborator instances.

    Stored on ``app.state.deps`` so scripts and tests can reach them.
    """

    projects: ProjectDirectory
    users: UserDirectory
    access_store: AccessStore
    invite_store: InviteStore
    share_store: ShareTokenStore
    allowlist: SignInAllowlist
    notifier: InviteNotifier
    content_reader: ToolContentReader
    audit: AuditEmitter


def _build_inmemory_deps() -> AppDependencies:
    """Construct all-InMemory dependencies for local development."""
    from .audit import InMemoryAuditEmitter
    from .inmemory import (
        InMemorySharingStore,
        InMemorySignInAllowlist,
        InMemoryToolContentReader,
    )
    from .invites.notifier import LoggingInviteNotifier

    store = InMemorySharingStore()
    return AppDependencies(
        projects=store,
        users=store,
        access_store=store,
        invite_store=store,
        share_store=store,
        allowlist=InMemorySignInAllowlist(),
        notifier=LoggingInviteNotifier(),
        content_reader=InMemoryToolContentReader(),
        audit=InMemoryAuditEmitter(),
    )


def _build_supabase_deps(settings: AccessPlaneSettings) -> AppDependencies:
    """Construct PostgREST-backed dependencies from settings."""
    from .db.access_store import SupabaseAccessStore
    from .db.allowlist import SupabaseSignInAllowlist
    from .db.audit_emitter import SupabaseAuditEmitter
    from .db.content_reader import SupabaseToolContentReader
    from .db.directory import SupabaseProjectDirectory, SupabaseUserDirectory
    from .db.invite_store import SupabaseInviteStore
    from .db.share_token_store import SupabaseShareTokenStore
    from .db.supabase_client import SupabaseClient
    from .invites.notifier import LoggingInviteNotifier, WebhookInviteNotifier

    client = SupabaseClient(
        supabase_url=settings.supabase_url,
        service_role_key=settings.supabase_service_role_key,
        default_schema=settings.supabase_schema,
    )
    notifier: InviteNotifier
    if settings.notification_webhook_url:
        notifier = WebhookInviteNotifier(settings.notification_webhook_url)
    else:
        notifier = LoggingInviteNotifier()

    return AppDependencies(
        projects=SupabaseProjectDirectory(client),
        users=SupabaseUserDirectory(client),
        access_store=SupabaseAccessStore(client),
        invite_store=SupabaseInviteStore(client),
        share_store=SupabaseShareTokenStore(client),
        allowlist=SupabaseSignInAllowlist(client),
        notifier=notifier,
        content_reader=SupabaseToolContentReader(client),
        audit=SupabaseAuditEmitter(client),
    )


def _resolve_deps(settings: AccessPlaneSettings, overrides: dict[str, Any]) -> AppDependencies:
    names = {f.name for f in fields(AppDependencies)}
    unknown = set(overrides) - names
    if unknown:
        raise TypeError(f"Unknown dependency overrides: {', '.join(sorted(unknown))}")

    provided = {k: v for k, v in overrides.items() if v is not None}
    if provided.keys() == names:
        return AppDependencies(**provided)

    defaults = _build_inmemory_deps() if settings.is_local else _build_supabase_deps(settings)
    return AppDependencies(**{
        name: provided.get(name, getattr(defaults, name)) for name in names
    })


def _build_token_verifier(settings: AccessPlaneSettings) -> TokenVerifier:
    secret = settings.jwt_secret
    if not secret and not settings.supabase_url and settings.is_local:
        logger.warning("No JWT secret configured; using the local development secret")
        secret = LOCAL_DEV_JWT_SECRET
    return create_token_verifier(
        supabase_url=settings.supabase_url or None,
        jwt_secret=secret or None,
        audience=settings.jwt_audience,
    )


# ── Factory ─────────────────────────────────────────────────────────


def create_app(
    settings: AccessPlaneSettings | None = None,
    *,
    token_verifier: TokenVerifier | None = None,
    **overrides: Any,
) -> FastAPI:
    """Create a configured access-plane FastAPI application.

    Args:
        settings: Application settings. Defaults to local-dev settings.
        token_verifier: Bearer JWT verifier. Built from settings when None.
        **overrides: Any ``AppDependencies`` field. Missing ones are filled
            with InMemory implementations (local) or Supabase-backed ones.

    Returns:
        Configured FastAPI application ready for uvicorn.run().

    Raises:
        ValueError: If settings validation fails.
        TypeError: If an override names no known dependency.
    """
    if settings is None:
        settings = AccessPlaneSettings()

    errors = settings.validate()
    if errors:
        raise ValueError(
            "Access plane settings validation failed:\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    configure_logging(
        level=settings.log_level,
        json_output=settings.log_format == "json",
        environment=settings.environment,
    )

    deps = _resolve_deps(settings, overrides)
    verifier = token_verifier or _build_token_verifier(settings)

    # ── Services ────────────────────────────────────────────────
    registry = AccessRegistry(
        deps.projects,
        deps.users,
        deps.access_store,
        deps.invite_store,
        max_edit_shares=settings.max_edit_shares,
        audit=deps.audit,
    )
    lifecycle = InvitationLifecycle(
        registry,
        deps.invite_store,
        deps.users,
        app_base_url=settings.app_base_url,
        invite_ttl=timedelta(days=settings.invite_ttl_days),
        audit=deps.audit,
    )
    share_tokens = ShareTokenService(
        registry,
        deps.share_store,
        deps.projects,
        hide_notes=settings.hide_notes_in_public_share,
        audit=deps.audit,
    )
    guard = AuthorizationGuard(registry, share_tokens)
    dispatcher = OutboxDispatcher(
        deps.allowlist,
        deps.notifier,
        max_attempts=settings.outbox_max_attempts,
        backoff_seconds=settings.outbox_backoff_seconds,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Access plane startup (environment=%s)", settings.environment)
        yield
        aclose = getattr(deps.notifier, "aclose", None)
        if aclose is not None:
            await aclose()
        logger.info("Access plane shutdown")

    app = FastAPI(
        title="Access Plane",
        description="Project membership, tool access, invitations and public share links",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.state.deps = deps
    app.state.settings = settings
    app.state.registry = registry
    app.state.lifecycle = lifecycle
    app.state.share_tokens = share_tokens
    app.state.guard = guard
    app.state.dispatcher = dispatcher

    # ── Middleware stack (applied in reverse order) ──────────────
    # Order of execution: RequestID -> Metrics -> AuthGuard -> CORS -> route

    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(AuthGuardMiddleware, token_verifier=verifier)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIdMiddleware)

    install_error_handlers(app)

    # ── Routes ──────────────────────────────────────────────────

    @app.get("/health")
    async def health():
        return {
            "status": "ok",
            "environment": settings.environment,
        }

    @app.get("/metrics", include_in_schema=False)
    async def metrics():
        body, content_type = metrics_text()
        return Response(content=body, media_type=content_type)

    from .routes.access import create_access_router
    from .routes.invites import create_invite_router
    from .routes.share_tokens import create_public_share_router, create_share_token_router
    from .routes.sharing import create_sharing_router

    app.include_router(create_public_share_router(share_tokens, deps.content_reader))
    app.include_router(create_invite_router(lifecycle))
    app.include_router(create_sharing_router(registry, lifecycle, dispatcher, guard))
    app.include_router(create_share_token_router(share_tokens, guard))
    app.include_router(create_access_router(guard))

    return app


# For uvicorn, use --factory flag:
#   uvicorn access_plane.app.main:create_app --factory
