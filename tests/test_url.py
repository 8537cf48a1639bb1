"""Tests for URL parsing and redirect resolution."""

from __future__ import annotations

from xhrshim.url import ParsedURL, parse, resolve


def test_parse_full_url() -> None:
    """All components are split out of an absolute URL."""

    url = parse("https://Example.COM:8443/a/b?x=1&y=2#frag")

    assert url == ParsedURL(
        scheme="https",
        hostname="example.com",
        port=8443,
        pathname="/a/b",
        search="?x=1&y=2",
        fragment="frag",
    )
    assert url.path == "/a/b?x=1&y=2"


def test_parse_defaults_missing_path() -> None:
    """A bare origin targets ``/``."""

    url = parse("http://example.com")

    assert url.pathname == "/"
    assert url.search == ""
    assert url.port is None


def test_parse_ipv6_host() -> None:
    """Brackets are stripped from IPv6 literals."""

    url = parse("http://[::1]:8080/")

    assert url.hostname == "::1"
    assert url.port == 8080


def test_parse_scheme_less_path() -> None:
    """A relative path has no scheme or host."""

    url = parse("status?verbose=1")

    assert url.scheme == ""
    assert url.hostname == ""
    assert url.pathname == "/status"
    assert url.search == "?verbose=1"


def test_parse_invalid_port_is_dropped() -> None:
    """A non-numeric port is ignored instead of raising."""

    assert parse("http://example.com:abc/").port is None


def test_parse_malformed_url_returns_empty_components() -> None:
    """Unparseable input yields an empty URL targeting ``/``."""

    url = parse("http://[::1/")

    assert url.scheme == ""
    assert url.hostname == ""
    assert url.path == "/"


def test_resolve_relative_reference() -> None:
    """Relative locations resolve against the current URL."""

    assert resolve("http://example.com/a/b", "c") == "http://example.com/a/c"
    assert resolve("http://example.com/a/b", "/root") == "http://example.com/root"


def test_resolve_absolute_reference() -> None:
    """Absolute locations replace the current URL."""

    assert (
        resolve("http://example.com/", "https://other.example/x")
        == "https://other.example/x"
    )
