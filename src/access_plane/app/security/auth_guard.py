"""Authentication middleware and principal dependencies.

The middleware runs in optional mode: a valid bearer token sets
``request.state.principal``; no token leaves it None; an invalid token is
rejected with 401. Whether a route needs a principal is decided by the
route through ``get_principal`` (required) or ``get_optional_principal``.

Exempt paths never look at credentials:
  - ``/health``
  - ``/docs`` and ``/openapi.json``
  - ``/api/v1/share/`` (anonymous share-token resolution)

Public reads skip credentials for GET/HEAD only:
  - ``/api/v1/invites/`` (invite preview; a stale session must not block it,
    while the accept POST still verifies the bearer)
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..errors import Unauthorized, error_response
from .identity import Principal, TokenVerificationError, TokenVerifier, extract_bearer_token

DEFAULT_EXEMPT_PREFIXES: tuple[str, ...] = (
    '/health',
    '/docs',
    '/openapi.json',
    '/api/v1/share/',
)

DEFAULT_PUBLIC_READ_PREFIXES: tuple[str, ...] = (
    '/api/v1/invites/',
)

READ_METHODS = frozenset({'GET', 'HEAD'})


class AuthGuardMiddleware(BaseHTTPMiddleware):
    """Attach the verified principal (if any) to every request.

    Args:
        app: The ASGI application.
        token_verifier: Verifier for bearer JWTs.
        exempt_prefixes: Path prefixes that skip credential parsing.
        public_read_prefixes: Path prefixes that skip it for GET/HEAD only.
        require_auth: Reject anonymous requests on non-exempt paths.
    """

    def __init__(
        self,
        app,
        token_verifier: TokenVerifier,
        exempt_prefixes: tuple[str, ...] = DEFAULT_EXEMPT_PREFIXES,
        public_read_prefixes: tuple[str, ...] = DEFAULT_PUBLIC_READ_PREFIXES,
        require_auth: bool = False,
    ) -> None:
        super().__init__(app)
        self._verifier = token_verifier
        self._exempt_prefixes = exempt_prefixes
        self._public_read_prefixes = public_read_prefixes
        self._require_auth = require_auth

    def _is_exempt(self, method: str, path: str) -> bool:
        if any(path == p or path.startswith(p) for p in self._exempt_prefixes):
            return True
        return method in READ_METHODS and any(
            path.startswith(p) for p in self._public_read_prefixes
        )

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.principal = None

        if self._is_exempt(request.method, request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if token:
            try:
                request.state.principal = self._verifier.verify(token)
            except TokenVerificationError as exc:
                return error_response(
                    Unauthorized(exc.code, exc.detail or 'Invalid credentials.'),
                    request,
                )
            return await call_next(request)

        if self._require_auth:
            return error_response(
                Unauthorized('no_credentials', 'Authentication required.'),
                request,
            )
        return await call_next(request)


# ── Dependencies ──────────────────────────────────────────────────────


def get_optional_principal(request: Request) -> Principal | None:
    return getattr(request.state, 'principal', None)


def get_principal(request: Request) -> Principal:
    """FastAPI dependency that requires an authenticated principal.

    Raises:
        Unauthorized: ``no_credentials`` when the request is anonymous.
    """
    principal = get_optional_principal(request)
    if principal is None:
        raise Unauthorized('no_credentials', 'Authentication required.')
    return principal
