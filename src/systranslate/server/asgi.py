"""Starlette application hosting TranslateMiddleware.

Serve with any ASGI server, e.g.::

    app = create_app(server_root="site", dep_cache=True)
    # uvicorn module:app

The file watcher is stopped when the application shuts down.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import quote

from starlette.applications import Starlette
from starlette.responses import PlainTextResponse, Response
from starlette.routing import Route
from starlette.types import Receive, Scope, Send

from systranslate.core.config import TranslateConfig
from systranslate.core.console import get_logger
from systranslate.server.http import HttpRequest
from systranslate.server.middleware import TranslateMiddleware

logger = get_logger(__name__)


def _decode_headers(raw: Iterable[tuple[bytes, bytes]]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for name, value in raw:
        key = name.decode("latin-1").lower()
        text = value.decode("latin-1")
        headers[key] = f"{headers[key]}, {text}" if key in headers else text
    return headers


def _request_from_scope(scope: Scope) -> HttpRequest:
    raw_path = scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else quote(scope.get("path", "/"))
    return HttpRequest(
        method=scope.get("method", "GET"),
        path=path,
        headers=_decode_headers(scope.get("headers", ())),
    )


class TranslateASGIApp:
    """ASGI endpoint answering every HTTP request through a TranslateMiddleware."""

    def __init__(self, middleware: TranslateMiddleware) -> None:
        self.middleware = middleware

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = _request_from_scope(scope)
        response: Response
        try:
            result = await self.middleware(request)
        except Exception:
            logger.exception("Unhandled error serving %s %s", request.method, request.path)
            response = PlainTextResponse("Internal Server Error\n", status_code=500)
        else:
            response = Response(
                content=result.body, status_code=result.status, headers=result.headers
            )
        await response(scope, receive, send)


def create_app(config: TranslateConfig | None = None, **options: Any) -> Starlette:
    """Build a Starlette application serving ``server_root`` with translation.

    Raises:
        ConfigurationError: If the options are invalid or no compiler
            backend is available
    """
    middleware = TranslateMiddleware(config, **options)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        yield
        await asyncio.to_thread(middleware.close)

    app = Starlette(
        routes=[Route("/{path:path}", endpoint=TranslateASGIApp(middleware))],
        lifespan=lifespan,
    )
    app.state.middleware = middleware
    return app


__all__ = ["TranslateASGIApp", "create_app"]
