"""Async PostgREST client for the sharing schema.

Every store talks to Supabase through ``SupabaseClient``; nothing else
builds PostgREST URLs or sees the service-role key.

Transactions: PostgREST runs each request in its own transaction, so a
single conditional PATCH (``status=eq.PENDING``) is atomic by itself.
Anything spanning more than one statement (quota check plus insert,
accept plus grant plus membership) lives in a Postgres function called
through ``rpc``.

Reads are retried on transport errors and 5xx/429 responses. Writes and
RPCs are not: a timed-out write may have committed.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Sequence, Union

import httpx

from .errors import (
    RAISE_EXCEPTION,
    UNIQUE_VIOLATION,
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseError,
    SupabaseNotFoundError,
    SupabaseRuleViolation,
)

logger = logging.getLogger(__name__)

# One pooled connection set per process, shared by every store.
_pooled_client: httpx.AsyncClient | None = None

Filters = Union[Sequence["PostgrestFilter"], Mapping[str, Any], None]


def _pooled_http_client() -> httpx.AsyncClient:
    global _pooled_client
    if _pooled_client is None:
        _pooled_client = httpx.AsyncClient()
    return _pooled_client


@dataclass(frozen=True, slots=True)
class PostgrestFilter:
    column: str
    op: str
    value: Any


def _resolve_table(table: str, default_schema: str) -> tuple[str, str]:
    # "public.projects" targets another exposed schema via the profile headers.
    schema, dot, name = table.partition(".")
    if not dot:
        return default_schema, table.strip()
    return schema.strip(), name.strip()


def _literal(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _encode(op: str, value: Any) -> str:
    if op == "is":
        return _literal(value)
    if op == "in":
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("in operator requires an iterable of values")
        items = (json.dumps(v) if isinstance(v, str) else _literal(v) for v in value)
        return f"({','.join(items)})"
    if value is None:
        raise ValueError(f"{op} does not support None; use op='is' with value=None")
    return _literal(value)


def filters_to_params(filters: Filters) -> dict[str, str]:
    """Render filters as PostgREST query parameters (``col=op.value``).

    Mapping values are either a bare value (``eq``) or an ``(op, value)``
    pair; sequences hold ``PostgrestFilter`` instances.
    """
    if not filters:
        return {}
    if isinstance(filters, Mapping):
        specs = []
        for column, spec in filters.items():
            op, value = spec if isinstance(spec, tuple) and len(spec) == 2 else ("eq", spec)
            specs.append(PostgrestFilter(str(column), str(op), value))
    else:
        specs = list(filters)
    return {f.column: f"{f.op}.{_encode(f.op, f.value)}" for f in specs}


def error_from_response(resp: httpx.Response) -> SupabaseError:
    """Build the typed error for a failed PostgREST response."""
    fields: dict[str, Any] = {"message": resp.text}
    try:
        payload = resp.json()
    except ValueError:
        payload = None
    if isinstance(payload, dict):
        fields = {
            "message": payload.get("message") or resp.text,
            "code": payload.get("code"),
            "details": payload.get("details"),
            "hint": payload.get("hint"),
        }

    code = fields.get("code")
    if code == RAISE_EXCEPTION:
        err_cls: type[SupabaseError] = SupabaseRuleViolation
    elif code == UNIQUE_VIOLATION or resp.status_code == 409:
        err_cls = SupabaseConflictError
    elif resp.status_code in (401, 403):
        err_cls = SupabaseAuthError
    elif resp.status_code == 404:
        err_cls = SupabaseNotFoundError
    else:
        err_cls = SupabaseError
    return err_cls(status_code=resp.status_code, **fields)


class SupabaseClient:
    """Service-role PostgREST client with typed results and errors."""

    def __init__(
        self,
        *,
        supabase_url: str,
        service_role_key: str,
        default_schema: str = "public",
        http_client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 10.0,
        read_retries: int = 2,
        retry_backoff_seconds: float = 0.1,
    ) -> None:
        if not supabase_url:
            raise ValueError("supabase_url is required")
        if not service_role_key:
            raise ValueError("service_role_key is required")
        if read_retries < 0:
            raise ValueError("read_retries must be >= 0")

        self._rest_url = f"{supabase_url.rstrip('/')}/rest/v1"
        self._service_role_key = service_role_key
        self._default_schema = default_schema or "public"
        self._timeout = float(timeout_seconds)
        self._read_retries = read_retries
        self._backoff = retry_backoff_seconds
        self._http = http_client or _pooled_http_client()

    @property
    def default_schema(self) -> str:
        return self._default_schema

    def _headers(self, schema: str, method: str, prefer: str | None) -> dict[str, str]:
        headers = {
            "apikey": self._service_role_key,
            "Authorization": f"Bearer {self._service_role_key}",
            "Accept-Profile": schema,
        }
        if method != "GET":
            headers["Content-Profile"] = schema
        if prefer:
            headers["Prefer"] = prefer
        return headers

    async def _send(
        self,
        method: str,
        path: str,
        *,
        schema: str,
        params: dict[str, str] | None = None,
        body: Any = None,
        prefer: str | None = None,
    ) -> Any:
        attempts = 1 + (self._read_retries if method == "GET" else 0)
        attempt = 0
        while True:
            attempt += 1
            try:
                resp = await self._http.request(
                    method,
                    f"{self._rest_url}/{path}",
                    params=params,
                    json=body,
                    headers=self._headers(schema, method, prefer),
                    timeout=self._timeout,
                )
            except httpx.TransportError as exc:
                if attempt == attempts:
                    raise
                # Query params may carry invite or share tokens; log the path only.
                logger.warning(
                    "PostgREST %s %s transport error (%s), attempt %d/%d",
                    method, path, type(exc).__name__, attempt, attempts,
                )
            else:
                if resp.status_code < 400:
                    return resp.json() if resp.content else None
                err = error_from_response(resp)
                if attempt == attempts or not err.retryable:
                    raise err
                logger.warning(
                    "PostgREST %s %s returned %d, attempt %d/%d",
                    method, path, resp.status_code, attempt, attempts,
                )
            await asyncio.sleep(self._backoff * attempt)

    @staticmethod
    def _rows(payload: Any, op: str) -> list[dict[str, Any]]:
        if not isinstance(payload, list):
            raise SupabaseError(status_code=500, message=f"expected list response from {op}")
        return payload

    async def select(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
        limit: int | None = None,
        order: str | None = None,
    ) -> list[dict[str, Any]]:
        schema, name = _resolve_table(table, self._default_schema)
        params = filters_to_params(filters)
        params["select"] = columns
        if limit is not None:
            params["limit"] = str(int(limit))
        if order:
            params["order"] = order
        return self._rows(await self._send("GET", name, schema=schema, params=params), "select")

    async def select_one(
        self,
        table: str,
        filters: Filters = None,
        *,
        columns: str = "*",
    ) -> dict[str, Any] | None:
        rows = await self.select(table, filters, columns=columns, limit=1)
        return rows[0] if rows else None

    async def insert(
        self,
        table: str,
        data: Mapping[str, Any] | Sequence[Mapping[str, Any]],
        *,
        upsert: bool = False,
        on_conflict: str | None = None,
    ) -> list[dict[str, Any]]:
        schema, name = _resolve_table(table, self._default_schema)
        prefer = "return=representation"
        if upsert:
            prefer += ",resolution=merge-duplicates"
        payload = await self._send(
            "POST", name,
            schema=schema,
            params={"on_conflict": on_conflict} if on_conflict else None,
            body=data,
            prefer=prefer,
        )
        return self._rows(payload, "insert")

    async def update(
        self,
        table: str,
        filters: Filters,
        data: Mapping[str, Any],
    ) -> list[dict[str, Any]]:
        """PATCH rows matching ``filters`` and return the rows it changed.

        An empty result means the filter matched nothing, which is how
        conditional transitions (``status=eq.PENDING``) report losing a race.
        """
        schema, name = _resolve_table(table, self._default_schema)
        payload = await self._send(
            "PATCH", name,
            schema=schema,
            params=filters_to_params(filters),
            body=dict(data),
            prefer="return=representation",
        )
        return self._rows(payload, "update")

    async def delete(self, table: str, filters: Filters) -> list[dict[str, Any]]:
        if not filters:
            raise ValueError("delete requires at least one filter")
        schema, name = _resolve_table(table, self._default_schema)
        payload = await self._send(
            "DELETE", name,
            schema=schema,
            params=filters_to_params(filters),
            prefer="return=representation",
        )
        return self._rows(payload, "delete")

    async def rpc(
        self,
        function_name: str,
        params: Mapping[str, Any] | None = None,
        *,
        schema: str | None = None,
    ) -> Any:
        """Call a Postgres function; the whole call is one transaction."""
        return await self._send(
            "POST", f"rpc/{function_name}",
            schema=schema or self._default_schema,
            body=dict(params or {}),
        )
