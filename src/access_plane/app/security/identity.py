"""Bearer token verification for sharing callers.

Supabase Auth issues the JWTs; this module verifies them and turns the
claims into a ``Principal``. Keys come from one of:

  - the project's JWKS endpoint (asymmetric RS256/ES256 signing keys),
  - the legacy shared JWT secret (HS256),
  - both, for projects rotating from the shared secret to signing keys.
    The token header's ``alg`` picks the key, so an HS256 token is never
    checked against a public key or the reverse.

Claims used: ``sub`` (user id), ``email`` (lower-cased; invite acceptance
matches on it), ``aud`` and ``exp``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

import jwt
from jwt import PyJWKClient, PyJWKClientError
from starlette.requests import Request

DEFAULT_AUDIENCE = 'authenticated'
JWKS_CACHE_TTL_SECONDS = 300
CLOCK_SKEW_LEEWAY_SECONDS = 10
BEARER_PREFIX = 'Bearer '

ASYMMETRIC_ALGORITHMS = ('RS256', 'ES256')
SHARED_SECRET_ALGORITHMS = ('HS256',)


@dataclass(frozen=True, slots=True)
class Principal:
    """An authenticated caller of the sharing API."""

    user_id: str
    email: str
    role: str = 'authenticated'
    raw_claims: dict[str, Any] = field(default_factory=dict)


class TokenVerificationError(Exception):
    def __init__(self, code: str, detail: str = '') -> None:
        self.code = code
        self.detail = detail
        super().__init__(f'{code}: {detail}' if detail else code)


# ── Key providers ─────────────────────────────────────────────────────


class KeyProvider(Protocol):
    def get_signing_key(self, token: str) -> Any: ...


class JWKSKeyProvider:
    """Signing keys from a JWKS endpoint, cached by PyJWKClient."""

    def __init__(self, jwks_url: str, cache_ttl: int = JWKS_CACHE_TTL_SECONDS) -> None:
        self.jwks_url = jwks_url
        self._client = PyJWKClient(jwks_url, cache_jwk_set=True, lifespan=cache_ttl)

    def get_signing_key(self, token: str) -> Any:
        try:
            return self._client.get_signing_key_from_jwt(token).key
        except PyJWKClientError as exc:
            raise TokenVerificationError('jwks_fetch_error', str(exc)) from exc


class StaticKeyProvider:
    def __init__(self, secret: str) -> None:
        self._secret = secret

    def get_signing_key(self, token: str) -> str:
        return self._secret


class AlgorithmRoutedKeyProvider:
    """Shared secret for HS* tokens, JWKS for everything else."""

    def __init__(self, shared: KeyProvider, asymmetric: KeyProvider) -> None:
        self.shared = shared
        self.asymmetric = asymmetric

    def get_signing_key(self, token: str) -> Any:
        try:
            alg = jwt.get_unverified_header(token).get('alg', '')
        except jwt.DecodeError as exc:
            raise TokenVerificationError('decode_error', str(exc)) from exc
        if alg in SHARED_SECRET_ALGORITHMS:
            return self.shared.get_signing_key(token)
        return self.asymmetric.get_signing_key(token)


# ── Verifier ──────────────────────────────────────────────────────────


class TokenVerifier:
    def __init__(
        self,
        key_provider: KeyProvider,
        audience: str = DEFAULT_AUDIENCE,
        algorithms: list[str] | None = None,
        require_email: bool = True,
        leeway_seconds: int = CLOCK_SKEW_LEEWAY_SECONDS,
    ) -> None:
        self._key_provider = key_provider
        self._audience = audience
        self._algorithms = algorithms or list(ASYMMETRIC_ALGORITHMS)
        self._require_email = require_email
        self._leeway = leeway_seconds

    @property
    def algorithms(self) -> tuple[str, ...]:
        return tuple(self._algorithms)

    def verify(self, token: str) -> Principal:
        """Verify a raw JWT and return its principal.

        Raises:
            TokenVerificationError: On any verification failure.
        """
        if not token or not token.strip():
            raise TokenVerificationError('empty_token')

        key = self._key_provider.get_signing_key(token)
        try:
            claims = jwt.decode(
                token,
                key,
                algorithms=self._algorithms,
                audience=self._audience,
                leeway=self._leeway,
                options={'require': ['sub', 'exp', 'aud']},
            )
        except jwt.ExpiredSignatureError:
            raise TokenVerificationError('token_expired')
        except jwt.InvalidAudienceError:
            raise TokenVerificationError('invalid_audience', f'expected {self._audience}')
        except jwt.InvalidSignatureError as exc:
            # Subclass of DecodeError; a bad signature is a rejected token, not garbage.
            raise TokenVerificationError('invalid_token', str(exc))
        except jwt.DecodeError as exc:
            raise TokenVerificationError('decode_error', str(exc))
        except jwt.InvalidTokenError as exc:
            raise TokenVerificationError('invalid_token', str(exc))

        user_id = claims.get('sub')
        if not user_id:
            raise TokenVerificationError('missing_sub_claim')

        email = (claims.get('email') or '').strip().lower()
        if self._require_email and not email:
            raise TokenVerificationError('missing_email_claim')

        return Principal(
            user_id=user_id,
            email=email,
            role=claims.get('role', 'authenticated'),
            raw_claims=claims,
        )


def extract_bearer_token(request: Request) -> str | None:
    auth_header = request.headers.get('authorization', '')
    if auth_header.startswith(BEARER_PREFIX):
        return auth_header[len(BEARER_PREFIX):].strip() or None
    return None


def create_token_verifier(
    supabase_url: str | None = None,
    jwt_secret: str | None = None,
    audience: str = DEFAULT_AUDIENCE,
) -> TokenVerifier:
    """Build a verifier from whichever key sources are configured.

    Raises:
        ValueError: If neither ``supabase_url`` nor ``jwt_secret`` is given.
    """
    jwks = None
    if supabase_url:
        jwks = JWKSKeyProvider(
            f'{supabase_url.rstrip("/")}/auth/v1/.well-known/jwks.json'
        )

    if jwks and jwt_secret:
        return TokenVerifier(
            AlgorithmRoutedKeyProvider(StaticKeyProvider(jwt_secret), jwks),
            audience=audience,
            algorithms=[*ASYMMETRIC_ALGORITHMS, *SHARED_SECRET_ALGORITHMS],
        )
    if jwks:
        return TokenVerifier(jwks, audience=audience, algorithms=list(ASYMMETRIC_ALGORITHMS))
    if jwt_secret:
        return TokenVerifier(
            StaticKeyProvider(jwt_secret),
            audience=audience,
            algorithms=list(SHARED_SECRET_ALGORITHMS),
        )
    raise ValueError(
        'Either supabase_url (for JWKS) or jwt_secret (for HS256) is required'
    )
