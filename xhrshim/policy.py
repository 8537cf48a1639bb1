"""Header and method validation predicates."""

from __future__ import annotations

from .const import FORBIDDEN_REQUEST_HEADERS, FORBIDDEN_REQUEST_METHODS


def is_allowed_http_header(name: str | None, *, check_disabled: bool = False) -> bool:
    """Return True when ``name`` may be set by the caller.

    Comparison is case-insensitive. ``check_disabled`` bypasses the denylist
    entirely, including the empty-name check.
    """

    if check_disabled:
        return True
    return bool(name) and name.lower() not in FORBIDDEN_REQUEST_HEADERS


def is_allowed_http_method(method: str | None) -> bool:
    """Return True when ``method`` is not on the denylist.

    Comparison is case-sensitive: ``"trace"`` passes while ``"TRACE"`` does
    not, matching browser behaviour.
    """

    return bool(method) and method not in FORBIDDEN_REQUEST_METHODS
