"""Logging, metrics and request correlation for the access plane."""

from .logging import configure_logging, request_id_ctx
from .metrics import metrics_text

__all__ = [
    "configure_logging",
    "metrics_text",
    "request_id_ctx",
]
