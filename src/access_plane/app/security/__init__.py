"""Bearer-token authentication for the access plane."""

from .auth_guard import AuthGuardMiddleware, get_optional_principal, get_principal
from .identity import (
    Principal,
    TokenVerificationError,
    TokenVerifier,
    create_token_verifier,
    extract_bearer_token,
)

__all__ = [
    'AuthGuardMiddleware',
    'Principal',
    'TokenVerificationError',
    'TokenVerifier',
    'create_token_verifier',
    'extract_bearer_token',
    'get_optional_principal',
    'get_principal',
]
