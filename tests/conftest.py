"""Pytest configuration and shared fakes for the xhrshim tests."""

from __future__ import annotations

import asyncio
import inspect
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

root_path = Path(__file__).resolve().parent.parent
if str(root_path) not in sys.path:
    sys.path.insert(0, str(root_path))

from xhrshim import Event, TransportOptions, TransportResponse, XMLHttpRequest  # noqa: E402
from xhrshim.events import XHREvent  # noqa: E402


class FakeRequest:
    """Request handle that records calls and lets tests drive callbacks."""

    def __init__(
        self,
        options: TransportOptions,
        on_response: Callable[[TransportResponse], None],
    ) -> None:
        """Store the options the emulator issued."""

        self.options = options
        self.on_response = on_response
        self.written: list[bytes] = []
        self.ended = False
        self.aborted = False
        self._error_callbacks: list[Callable[[BaseException], None]] = []

    def write(self, body: bytes) -> None:
        """Capture the request payload."""
        self.written.append(body)

    def end(self) -> None:
        """Mark the request as sent."""
        self.ended = True

    def abort(self) -> None:
        """Mark the request as cancelled."""
        self.aborted = True

    def on(self, event: str, callback: Callable[[BaseException], None]) -> FakeRequest:
        """Register an error subscriber."""
        assert event == "error"
        self._error_callbacks.append(callback)
        return self

    def respond(
        self,
        status_code: int = 200,
        headers: dict[str, str] | None = None,
        reason_phrase: str = "OK",
    ) -> TransportResponse:
        """Deliver a response head and return it so tests can stream a body."""

        response = TransportResponse(status_code, headers, reason_phrase=reason_phrase)
        self.on_response(response)
        return response

    def fail(self, error: BaseException) -> None:
        """Report a connection-level failure."""

        for callback in list(self._error_callbacks):
            callback(error)


class FakeTransport:
    """Transport collecting every request the emulator issues."""

    def __init__(self) -> None:
        """Start with no requests."""
        self.requests: list[FakeRequest] = []

    def request(
        self,
        options: TransportOptions,
        on_response: Callable[[TransportResponse], None],
    ) -> FakeRequest:
        """Create and remember a fake request."""

        request = FakeRequest(options, on_response)
        self.requests.append(request)
        return request

    @property
    def last(self) -> FakeRequest:
        """Return the most recent request."""
        return self.requests[-1]


class EventRecorder:
    """Record ``(event type, ready state)`` pairs in dispatch order."""

    def __init__(self) -> None:
        """Start with an empty log."""
        self.log: list[tuple[str, int]] = []

    def __call__(self, event: Event) -> None:
        """Append the event and the target's state at dispatch time."""
        self.log.append((event.type, int(event.target.ready_state)))

    def attach(self, xhr: XMLHttpRequest) -> EventRecorder:
        """Listen to every event ``xhr`` can emit."""

        for event in XHREvent:
            xhr.add_event_listener(event, self)
        return self

    @property
    def types(self) -> list[str]:
        """Return only the event names."""
        return [event_type for event_type, _state in self.log]


@pytest.fixture
def transport() -> FakeTransport:
    """Return a fresh fake transport."""

    return FakeTransport()


@pytest.fixture
def xhr(transport: FakeTransport) -> XMLHttpRequest:
    """Return an emulator wired to the fake transport."""

    return XMLHttpRequest({"transport": transport})


@pytest.fixture
def recorder(xhr: XMLHttpRequest) -> EventRecorder:
    """Return a recorder attached to the ``xhr`` fixture."""

    return EventRecorder().attach(xhr)


def pytest_configure(config: pytest.Config) -> None:
    """Register markers used throughout the test suite."""

    config.addinivalue_line(
        "markers", "asyncio: mark coroutine tests to execute via asyncio loop"
    )


def pytest_pyfunc_call(pyfuncitem: pytest.Function) -> bool | None:
    """Execute coroutine tests within a dedicated event loop."""

    test_function = pyfuncitem.obj
    if not inspect.iscoroutinefunction(test_function):
        return None

    funcargs = pyfuncitem.funcargs
    arguments: dict[str, Any] = {
        name: funcargs[name] for name in pyfuncitem._fixtureinfo.argnames
    }
    loop = asyncio.new_event_loop()
    try:
        asyncio.set_event_loop(loop)
        loop.run_until_complete(test_function(**arguments))
    finally:
        asyncio.set_event_loop(None)
        loop.close()
    return True
