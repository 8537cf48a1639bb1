"""Constants for the XMLHttpRequest emulation layer."""

from __future__ import annotations

from enum import IntEnum

VERSION = "0.1.0"
USER_AGENT = f"xhrshim/{VERSION}"


class ReadyState(IntEnum):
    """Lifecycle stage of a single exchange."""

    UNSENT = 0
    OPENED = 1
    HEADERS_RECEIVED = 2
    LOADING = 3
    DONE = 4


DEFAULT_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
}

DEFAULT_CONTENT_TYPE = "text/plain;charset=UTF-8"

# User-Agent is banned by the browser standard but left settable here.
FORBIDDEN_REQUEST_HEADERS = frozenset(
    {
        "accept-charset",
        "accept-encoding",
        "access-control-request-headers",
        "access-control-request-method",
        "connection",
        "content-length",
        "content-transfer-encoding",
        "cookie",
        "cookie2",
        "date",
        "expect",
        "host",
        "keep-alive",
        "origin",
        "referer",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "via",
    }
)

FORBIDDEN_REQUEST_METHODS = frozenset({"TRACE", "TRACK", "CONNECT"})

# Response headers never exposed through get_all_response_headers().
HIDDEN_RESPONSE_HEADERS = frozenset({"set-cookie", "set-cookie2"})

REDIRECT_STATUSES = frozenset({302, 303, 307})
SEE_OTHER = 303

HTTP_PORT = 80
HTTPS_PORT = 443
DEFAULT_PORTS = {"http": HTTP_PORT, "https": HTTPS_PORT}

DEFAULT_MAX_REDIRECTS = 20

NETWORK_ERROR_STATUS = 503
