"""Tests for server/http.py and server/static.py."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from systranslate.server.http import HttpRequest, HttpResponse, etag_matches
from systranslate.server.static import ASGIFallback, StaticFileFallback, request_scope


class TestHttpRequest:
    def test_headers_are_case_insensitive(self) -> None:
        request = HttpRequest("get", "/a.js", {"If-None-Match": '"x"'})
        assert request.method == "GET"
        assert request.header("if-none-match") == '"x"'
        assert request.header("IF-NONE-MATCH") == '"x"'
        assert request.header("accept") is None
        assert request.header("accept", "*/*") == "*/*"


class TestHttpResponse:
    def test_header_lookup(self) -> None:
        response = HttpResponse(status=200, headers={"ETag": '"1"'}, body=b"hi")
        assert response.header("etag") == '"1"'
        assert response.header("content-type") is None
        assert response.text == "hi"


class TestEtagMatches:
    @pytest.mark.parametrize(
        ("header", "expected"),
        [
            ('"abc"', True),
            ('W/"abc"', True),
            ('"x", "abc"', True),
            ("*", True),
            ('"abcd"', False),
            ("", False),
            (None, False),
        ],
    )
    def test_weak_comparison(self, header: str | None, expected: bool) -> None:
        assert etag_matches(header, '"abc"') is expected


class TestStaticFileFallback:
    @pytest.mark.asyncio
    async def test_serves_raw_bytes(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("GET", "/lib/stringExport.js"))
        assert response.status == 200
        assert response.body == b"module.exports = 'foo';\n"
        assert response.header("content-length") == str(len(response.body))

    @pytest.mark.asyncio
    async def test_head_has_no_body(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("HEAD", "/default.css"))
        assert response.status == 200
        assert response.body == b""
        assert response.header("content-length") == str(len(b"body { color: hotpink; }\n"))

    @pytest.mark.asyncio
    async def test_decodes_url_escapes(self, site: Path) -> None:
        path = "/jspm_packages/github/components/jquery%402.1.4.js"
        response = await StaticFileFallback(site)(HttpRequest("GET", path))
        assert response.status == 200

    @pytest.mark.asyncio
    async def test_missing_file(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("GET", "/nope.txt"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_directory_is_not_served(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("GET", "/lib"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_traversal_is_rejected(self, site: Path) -> None:
        (site.parent / "secret.txt").write_text("secret", encoding="utf-8")
        response = await StaticFileFallback(site)(HttpRequest("GET", "/../secret.txt"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_other_methods(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("POST", "/default.js"))
        assert response.status == 405
        assert response.header("allow") == "GET, HEAD"

    @pytest.mark.asyncio
    async def test_content_types(self, site: Path) -> None:
        fallback = StaticFileFallback(site)
        css = await fallback(HttpRequest("GET", "/default.css"))
        assert css.header("content-type") == "text/css; charset=utf-8"
        script = await fallback(HttpRequest("GET", "/default.js"))
        assert "javascript" in (script.header("content-type") or "")

    @pytest.mark.asyncio
    async def test_nul_byte_is_not_found(self, site: Path) -> None:
        response = await StaticFileFallback(site)(HttpRequest("GET", "/default%00.js"))
        assert response.status == 404

    @pytest.mark.asyncio
    async def test_revalidates_static_files(self, site: Path) -> None:
        fallback = StaticFileFallback(site)
        first = await fallback(HttpRequest("GET", "/default.html"))
        etag = first.header("etag")
        assert etag is not None
        second = await fallback(HttpRequest("GET", "/default.html", {"If-None-Match": etag}))
        assert second.status == 304


class TestASGIFallback:
    @pytest.mark.asyncio
    async def test_buffers_any_asgi_app(self) -> None:
        seen: list[dict[str, Any]] = []

        async def app(scope: Any, receive: Any, send: Any) -> None:
            seen.append(dict(scope))
            await send({"type": "http.response.start", "status": 201, "headers": [(b"x-a", b"1")]})
            await send({"type": "http.response.body", "body": b"he", "more_body": True})
            await send({"type": "http.response.body", "body": b"llo"})

        response = await ASGIFallback(app)(HttpRequest("PUT", "/a%20b.txt?x=1", {"X-Key": "v"}))
        assert response.status == 201
        assert response.body == b"hello"
        assert response.header("x-a") == "1"
        assert seen[0]["path"] == "/a b.txt"
        assert seen[0]["query_string"] == b"x=1"
        assert seen[0]["method"] == "PUT"


def test_request_scope_headers_are_lowercase_bytes() -> None:
    scope = request_scope(HttpRequest("get", "/x.js", {"Accept": "*/*"}))
    assert scope["headers"] == [(b"accept", b"*/*")]
    assert scope["method"] == "GET"
