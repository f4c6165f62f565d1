"""Request-id propagation and HTTP metrics middleware.

``RequestIdMiddleware`` accepts a well-formed ``X-Request-ID`` or mints a
uuid4, stores it on ``request.state`` and in ``request_id_ctx`` for log
correlation, and echoes it on the response. ``MetricsMiddleware`` records
request counts and latency with token-bearing path segments collapsed.
"""

from __future__ import annotations

import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from .logging import request_id_ctx
from .metrics import HTTP_REQUEST_DURATION_SECONDS, HTTP_REQUESTS_TOTAL

_VALID_REQUEST_ID = re.compile(r"^[a-zA-Z0-9\-]{8,128}$")

# Collapse ids and tokens so metric labels stay low-cardinality and
# secrets never become label values.
_PATH_NORMALIZERS = [
    (re.compile(r"/api/v1/share/([^/]+)/[^/]+"), r"/api/v1/share/\1/{token}"),
    (re.compile(r"/api/v1/invites/[^/]+"), "/api/v1/invites/{token}"),
    (re.compile(r"/api/v1/projects/[^/]+"), "/api/v1/projects/{project_id}"),
    (re.compile(r"/(access|invites|share-tokens)/[^/]+$"), r"/\1/{id}"),
]


def normalize_path(path: str) -> str:
    for pattern, replacement in _PATH_NORMALIZERS:
        path = pattern.sub(replacement, path)
    return path


class RequestIdMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        incoming_id = request.headers.get("x-request-id", "")
        if incoming_id and _VALID_REQUEST_ID.match(incoming_id):
            rid = incoming_id
        else:
            rid = str(uuid.uuid4())

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            response = await call_next(request)
        finally:
            request_id_ctx.reset(token)

        response.headers["X-Request-ID"] = rid
        return response


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint,
    ) -> Response:
        path = normalize_path(request.url.path)
        method = request.method
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            HTTP_REQUESTS_TOTAL.labels(method=method, path=path, status="500").inc()
            raise
        finally:
            HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=path).observe(
                time.perf_counter() - start,
            )

        HTTP_REQUESTS_TOTAL.labels(
            method=method, path=path, status=str(response.status_code),
        ).inc()
        return response
