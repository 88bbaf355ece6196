"""Scope matching: which tool names require verification."""

from __future__ import annotations

from callgate.config import ScopeRule


def should_verify(tool_name: str, scope: ScopeRule | None) -> bool:
    """Return True if *tool_name* must be verified under *scope*.

    No scope, or a scope without an include list, verifies everything.
    """
    if scope is None or not scope.include:
        return True
    return tool_name in scope.include
