"""URL resolution helpers for the request emulator."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from urllib.parse import urljoin, urlsplit

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ParsedURL:
    """Components of a request URL.

    ``scheme`` is lower-cased and empty when the input carried none.
    ``search`` keeps its leading ``?``; ``fragment`` is stored without ``#``.
    """

    scheme: str
    hostname: str
    port: int | None
    pathname: str
    search: str
    fragment: str

    @property
    def path(self) -> str:
        """Return the request target sent on the wire."""

        return f"{self.pathname}{self.search}"


def parse(url: str) -> ParsedURL:
    """Split ``url`` into its components without raising on odd input."""

    try:
        parts = urlsplit(str(url))
    except ValueError as err:
        _LOGGER.debug("Unable to parse URL %r: %s", url, err)
        return ParsedURL(
            scheme="", hostname="", port=None, pathname="/", search="", fragment=""
        )

    try:
        port = parts.port
    except ValueError:
        port = None

    pathname = parts.path or "/"
    if not pathname.startswith("/"):
        pathname = f"/{pathname}"

    return ParsedURL(
        scheme=parts.scheme,
        hostname=parts.hostname or "",
        port=port,
        pathname=pathname,
        search=f"?{parts.query}" if parts.query else "",
        fragment=parts.fragment,
    )


def resolve(base: str, reference: str) -> str:
    """Resolve a redirect ``reference`` against the current ``base`` URL."""

    return urljoin(base, reference)
