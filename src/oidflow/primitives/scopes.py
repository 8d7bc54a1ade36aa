"""Helpers for space-delimited OAuth scope strings (RFC 6749 Section 3.3)."""

from __future__ import annotations

from collections.abc import Iterable


def scopes_to_string(scopes: Iterable[str]) -> str:
    """Join scopes, dropping duplicates while keeping order.

    Raises:
        ValueError: If a scope contains a space or is empty
    """
    seen: list[str] = []
    for scope in scopes:
        if not scope or " " in scope:
            raise ValueError(f"Invalid scope value: {scope!r}")
        if scope not in seen:
            seen.append(scope)
    return " ".join(seen)


def scopes_from_string(scope: str | None) -> list[str]:
    if not scope:
        return []
    return scope.split()
