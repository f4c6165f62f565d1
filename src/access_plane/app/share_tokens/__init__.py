"""Public Share Token Service: anonymous, redaction-scoped read links."""

from .model import (
    DisclosureFlags,
    ResolvedShare,
    ShareToken,
    clean_filters,
    generate_share_token,
)

__all__ = [
    'DisclosureFlags',
    'ResolvedShare',
    'ShareToken',
    'clean_filters',
    'generate_share_token',
]
