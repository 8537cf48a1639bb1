"""Tests for the httpx-backed transport using ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from xhrshim import HttpxTransport, ReadyState, TransportOptions, XMLHttpRequest
from xhrshim.transport import TransportResponse


def _finished(xhr: XMLHttpRequest) -> asyncio.Future[str]:
    """Return a future resolved with the name of the terminal event."""

    future: asyncio.Future[str] = asyncio.get_running_loop().create_future()

    def _resolve(event) -> None:
        if not future.done():
            future.set_result(event.type)

    xhr.add_event_listener("loadend", _resolve)
    xhr.add_event_listener("error", _resolve)
    return future


def test_transport_options_url_omits_default_port() -> None:
    """The absolute URL keeps only non-default ports."""

    options = TransportOptions(
        scheme="https", hostname="example.com", port=443, path="/a?b=1",
        method="GET", headers={},
    )
    assert options.url == "https://example.com/a?b=1"

    options.port = 8443
    options.hostname = "::1"
    assert options.url == "https://[::1]:8443/a?b=1"


def test_transport_response_lowercases_header_names() -> None:
    """Header names are normalised for lookups."""

    response = TransportResponse(200, {"Content-Type": "text/html"})

    assert response.headers == {"content-type": "text/html"}


@pytest.mark.asyncio
async def test_fetch_through_shared_agent() -> None:
    """A full exchange runs on the supplied client."""

    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            201,
            headers={"X-Test": "1", "Set-Cookie": "a=b"},
            text="created",
        )

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as agent:
        xhr = XMLHttpRequest({"agent": agent})
        finished = _finished(xhr)
        xhr.open("POST", "http://example.com/submit?x=1")
        xhr.set_request_header("X-Trace", "abc")
        xhr.send("payload")
        assert await asyncio.wait_for(finished, 5) == "loadend"

    assert xhr.ready_state == ReadyState.DONE
    assert xhr.status == 201
    assert xhr.status_text == "Created"
    assert xhr.response_text == "created"
    assert xhr.get_response_header("X-Test") == "1"
    assert "set-cookie" not in xhr.get_all_response_headers()

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://example.com/submit?x=1"
    assert request.content == b"payload"
    assert request.headers["Host"] == "example.com"
    assert request.headers["Content-Type"] == "text/plain;charset=UTF-8"
    assert request.headers["X-Trace"] == "abc"


@pytest.mark.asyncio
async def test_redirect_is_followed_by_the_emulator() -> None:
    """The client never follows redirects on its own."""

    paths: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        paths.append(request.url.path)
        if request.url.path == "/start":
            return httpx.Response(303, headers={"Location": "/final"})
        return httpx.Response(200, text=request.method)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as agent:
        xhr = XMLHttpRequest({"transport": HttpxTransport(agent=agent)})
        finished = _finished(xhr)
        xhr.open("PUT", "http://example.com/start")
        xhr.send("body")
        await asyncio.wait_for(finished, 5)

    assert paths == ["/start", "/final"]
    assert xhr.status == 200
    assert xhr.response_text == "GET"


@pytest.mark.asyncio
async def test_connect_error_reports_network_failure() -> None:
    """A connection failure ends in DONE with status 503."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as agent:
        xhr = XMLHttpRequest({"agent": agent})
        finished = _finished(xhr)
        xhr.open("GET", "http://example.com/")
        xhr.send()
        assert await asyncio.wait_for(finished, 5) == "error"

    assert xhr.ready_state == ReadyState.DONE
    assert xhr.status == 503
    assert xhr.status_text == "connection refused"
    assert xhr.error_flag is True


@pytest.mark.asyncio
async def test_abort_cancels_the_running_request() -> None:
    """abort() cancels the task driving the exchange."""

    started = asyncio.Event()
    cancelled = asyncio.Event()

    async def handler(request: httpx.Request) -> httpx.Response:
        started.set()
        try:
            await asyncio.sleep(30)
        except asyncio.CancelledError:
            cancelled.set()
            raise
        return httpx.Response(200)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as agent:
        xhr = XMLHttpRequest({"agent": agent})
        states: list[ReadyState] = []
        xhr.onreadystatechange = lambda event: states.append(event.target.ready_state)
        xhr.open("GET", "http://example.com/slow")
        xhr.send()
        await asyncio.wait_for(started.wait(), 5)

        xhr.abort()
        await asyncio.wait_for(cancelled.wait(), 5)

    assert xhr.ready_state == ReadyState.UNSENT
    assert xhr.status is None
    assert states[-1] == ReadyState.DONE
