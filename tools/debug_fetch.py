"""Fetch a URL through the XMLHttpRequest emulator and print every event."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import httpx

from xhrshim import Event, XHREvent, XMLHttpRequest


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""

    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("url")
    parser.add_argument("--method", default="GET")
    parser.add_argument("--data", default=None, help="request body")
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        metavar="NAME:VALUE",
        help="extra request header, may be repeated",
    )
    parser.add_argument("--user", default=None)
    parser.add_argument("--password", default=None)
    parser.add_argument(
        "--insecure", action="store_true", help="skip TLS certificate checks"
    )
    parser.add_argument("--max-redirects", type=int, default=20)
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


async def fetch(
    args: argparse.Namespace, *, agent: httpx.AsyncClient | None = None
) -> int:
    """Run one exchange and return a process exit code."""

    done = asyncio.get_running_loop().create_future()
    xhr = XMLHttpRequest(
        {
            "reject_unauthorized": not args.insecure,
            "max_redirects": args.max_redirects,
            "agent": agent,
        }
    )

    def _trace(event: Event) -> None:
        print(f"[{event.target.ready_state.name}] {event.type}")
        if event.type in (XHREvent.LOADEND.value, XHREvent.ERROR.value):
            if not done.done():
                done.set_result(None)

    for event in XHREvent:
        xhr.add_event_listener(event, _trace)

    xhr.open(args.method, args.url, True, args.user, args.password)
    for header in args.header:
        name, _, value = header.partition(":")
        xhr.set_request_header(name.strip(), value.strip())
    xhr.send(args.data)
    await done

    print(f"\n{xhr.status} {xhr.status_text or ''}".rstrip())
    headers = xhr.get_all_response_headers()
    if headers:
        print(headers)
    print()
    print(xhr.response_text)
    return 1 if xhr.error_flag else 0


def main(argv: list[str] | None = None) -> int:
    """Entry point for ``python tools/debug_fetch.py``."""

    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(fetch(args))


if __name__ == "__main__":
    sys.exit(main())
