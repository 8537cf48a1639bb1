"""Browser XMLHttpRequest emulation for asyncio applications."""

from __future__ import annotations

from .const import VERSION, ReadyState
from .errors import (
    InvalidStateError,
    NotSupportedError,
    SecurityError,
    TooManyRedirectsError,
    TransportError,
    XHRError,
)
from .events import Event, XHREvent
from .transport import HttpxTransport, Transport, TransportOptions, TransportResponse
from .xhr import RequestSettings, XMLHttpRequest

__version__ = VERSION

__all__ = [
    "Event",
    "HttpxTransport",
    "InvalidStateError",
    "NotSupportedError",
    "ReadyState",
    "RequestSettings",
    "SecurityError",
    "TooManyRedirectsError",
    "Transport",
    "TransportError",
    "TransportOptions",
    "TransportResponse",
    "XHREvent",
    "XHRError",
    "XMLHttpRequest",
    "__version__",
]
