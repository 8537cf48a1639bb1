"""Exceptions raised by the XMLHttpRequest emulation layer."""

from __future__ import annotations


class XHRError(Exception):
    """Base exception for the emulation layer."""


class SecurityError(XHRError):
    """Request method is not allowed."""


class InvalidStateError(XHRError):
    """Operation called while the exchange is in the wrong state."""


class NotSupportedError(XHRError):
    """Requested mode or scheme is not available on this runtime."""


class TransportError(XHRError):
    """Failure reported by the underlying HTTP transport."""

    def __init__(self, message: str, *, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class TooManyRedirectsError(TransportError):
    """Redirect chain exceeded the configured limit."""

    def __init__(self, limit: int, *, url: str | None = None) -> None:
        super().__init__(f"Exceeded maximum of {limit} redirects", url=url)
        self.limit = limit
