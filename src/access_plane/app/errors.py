"""Error taxonomy for access-control and sharing operations.

Every failure a caller can observe maps to one ``ErrorKind`` plus a stable,
machine-readable ``code``. Services raise ``SharingError`` subclasses; the
handlers installed by ``install_error_handlers`` render them as JSON:

    {"error": "<kind>", "code": "<code>", "detail": "<message>",
     "retryable": false, ...details}

Retriable conditions (store unavailable, gateway failures) are flagged with
``retryable: true`` so clients know whether to retry or to stop and show a
specific reason.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .db.errors import SupabaseConflictError, SupabaseError, SupabaseRuleViolation

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Caller-visible failure classes."""

    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"
    GONE = "gone"
    CONFLICT = "conflict"
    VALIDATION = "validation"
    UNAVAILABLE = "unavailable"


class SharingError(Exception):
    """Base class for every error surfaced to sharing callers."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE
    http_status: int = 500
    retryable: bool = False

    def __init__(
        self,
        code: str,
        message: str = "",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.code = code
        self.message = message or code.replace("_", " ")
        self.details = details or {}
        super().__init__(f"{self.kind.value}:{code}: {self.message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.details,
            "error": self.kind.value,
            "code": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }


class Unauthorized(SharingError):
    kind = ErrorKind.UNAUTHORIZED
    http_status = 401


class Forbidden(SharingError):
    kind = ErrorKind.FORBIDDEN
    http_status = 403


class NotFound(SharingError):
    kind = ErrorKind.NOT_FOUND
    http_status = 404


class Gone(SharingError):
    """The resource exists but can no longer be used.

    ``reason`` distinguishes ``revoked``, ``expired`` and
    ``already_accepted``; the last lets a client render a "you're already
    in" state instead of a failure.
    """

    kind = ErrorKind.GONE
    http_status = 410

    def __init__(
        self,
        reason: str,
        message: str = "",
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.reason = reason
        super().__init__(
            f"invite_{reason}",
            message,
            details={**(details or {}), "reason": reason},
        )


class Conflict(SharingError):
    kind = ErrorKind.CONFLICT
    http_status = 409


class ValidationFailed(SharingError):
    kind = ErrorKind.VALIDATION
    http_status = 422


class StoreUnavailable(SharingError):
    kind = ErrorKind.UNAVAILABLE
    http_status = 503
    retryable = True


def error_response(exc: SharingError, request: Request | None = None) -> JSONResponse:
    """Render a SharingError, echoing the request id when one is set."""
    content = exc.to_dict()
    request_id = getattr(request.state, "request_id", None) if request else None
    if request_id:
        content["request_id"] = request_id
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
    return JSONResponse(status_code=exc.http_status, content=content, headers=headers)


def install_error_handlers(app: FastAPI) -> None:
    """Register JSON renderers for domain, validation and store errors."""

    @app.exception_handler(SharingError)
    async def _sharing_error(request: Request, exc: SharingError):
        return error_response(exc, request)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        fields = [
            ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            for err in exc.errors()
        ]
        return error_response(
            ValidationFailed(
                "invalid_request",
                "Request body or parameters are invalid.",
                details={"fields": [f for f in fields if f]},
            ),
            request,
        )

    @app.exception_handler(SupabaseError)
    async def _store_error(request: Request, exc: SupabaseError):
        if isinstance(exc, SupabaseRuleViolation):
            return error_response(Conflict(exc.rule), request)
        if isinstance(exc, SupabaseConflictError):
            return error_response(
                Conflict("store_conflict", "The change conflicts with existing data."),
                request,
            )
        logger.error(
            "Store request failed status=%s code=%s", exc.status_code, exc.code,
        )
        return error_response(
            StoreUnavailable("store_unavailable", "Storage is temporarily unavailable."),
            request,
        )

    @app.exception_handler(httpx.TransportError)
    async def _transport_error(request: Request, exc: httpx.TransportError):
        logger.error("Store transport failure: %s", type(exc).__name__)
        return error_response(
            StoreUnavailable("store_unavailable", "Storage is temporarily unavailable."),
            request,
        )
