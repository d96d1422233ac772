"""HTTP surface: request/response values, the middleware and the Starlette app."""

from __future__ import annotations

from systranslate.server.asgi import TranslateASGIApp, create_app
from systranslate.server.http import HttpRequest, HttpResponse, etag_matches
from systranslate.server.middleware import RequestKind, TranslateMiddleware
from systranslate.server.static import ASGIFallback, Fallback, StaticFileFallback

__all__ = [
    "ASGIFallback",
    "Fallback",
    "HttpRequest",
    "HttpResponse",
    "RequestKind",
    "StaticFileFallback",
    "TranslateASGIApp",
    "TranslateMiddleware",
    "create_app",
    "etag_matches",
]
