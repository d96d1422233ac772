"""Fallbacks for requests the middleware does not translate.

Pass-through requests are answered by an ASGI application; by default
Starlette's ``StaticFiles`` over the server root, so raw files keep their
usual content types, validators and range support.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import urlsplit

from starlette.exceptions import HTTPException
from starlette.staticfiles import StaticFiles
from starlette.types import ASGIApp

from systranslate.core.console import get_logger
from systranslate.core.paths import url_to_relative
from systranslate.server.http import HttpRequest, HttpResponse

logger = get_logger(__name__)


class Fallback(Protocol):
    """Whatever answers requests the middleware passes through."""

    async def __call__(self, request: HttpRequest) -> HttpResponse:
        ...


def _plain(status: int, message: str, headers: dict[str, str] | None = None) -> HttpResponse:
    return HttpResponse(
        status=status,
        headers={"Content-Type": "text/plain; charset=UTF-8", **(headers or {})},
        body=f"{message}\n".encode(),
    )


def request_scope(request: HttpRequest) -> dict[str, Any]:
    """Build an ASGI HTTP scope for ``request``."""
    parts = urlsplit(request.path)
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": request.method,
        "scheme": "http",
        "path": "/" + url_to_relative(request.path),
        "raw_path": parts.path.encode("latin-1", errors="replace"),
        "root_path": "",
        "query_string": parts.query.encode("latin-1", errors="replace"),
        "headers": [
            (name.encode("latin-1"), value.encode("latin-1"))
            for name, value in request.headers.items()
        ],
    }


class ASGIFallback:
    """Run an ASGI application for a pass-through request and buffer its response."""

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, request: HttpRequest) -> HttpResponse:
        status = 500
        headers: dict[str, str] = {}
        chunks: list[bytes] = []

        async def receive() -> MutableMapping[str, Any]:
            return {"type": "http.request", "body": b"", "more_body": False}

        async def send(message: MutableMapping[str, Any]) -> None:
            nonlocal status
            if message["type"] == "http.response.start":
                status = message["status"]
                for raw_name, raw_value in message.get("headers", ()):
                    name = raw_name.decode("latin-1")
                    value = raw_value.decode("latin-1")
                    headers[name] = f"{headers[name]}, {value}" if name in headers else value
            elif message["type"] == "http.response.body":
                chunks.append(message.get("body", b""))

        try:
            await self.app(request_scope(request), receive, send)
        except HTTPException as exc:
            return self._from_http_exception(exc)
        return HttpResponse(status=status, headers=headers, body=b"".join(chunks))

    @staticmethod
    def _from_http_exception(exc: HTTPException) -> HttpResponse:
        headers = dict(exc.headers or {})
        if exc.status_code == 405:
            headers.setdefault("Allow", "GET, HEAD")
        return _plain(exc.status_code, exc.detail, headers)


class StaticFileFallback(ASGIFallback):
    """Serve files under ``root`` unmodified."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()
        super().__init__(StaticFiles(directory=self.root))

    async def __call__(self, request: HttpRequest) -> HttpResponse:
        if "\x00" in url_to_relative(request.path):
            logger.debug("Static miss for %r: invalid path", request.path)
            return _plain(404, "Not Found")
        return await super().__call__(request)


__all__ = ["ASGIFallback", "Fallback", "StaticFileFallback", "request_scope"]
