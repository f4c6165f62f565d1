"""Authorization Guard: READ / WRITE / MANAGE_SHARING decisions."""

from .guard import AuthorizationGuard, Decision, Operation, Via, require_tool_operation

__all__ = [
    'AuthorizationGuard',
    'Decision',
    'Operation',
    'Via',
    'require_tool_operation',
]
