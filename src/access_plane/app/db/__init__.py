"""PostgREST client and Supabase-backed stores for the sharing schema.

Only the client and its errors are re-exported here; stores are imported
from their own modules so that importing the error types never pulls in
the domain layer.
"""

from .errors import (
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
)
from .supabase_client import PostgrestFilter, SupabaseClient

__all__ = [
    "PostgrestFilter",
    "SupabaseAuthError",
    "SupabaseClient",
    "SupabaseConflictError",
    "SupabaseError",
    "SupabaseNotFoundError",
]
