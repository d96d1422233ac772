"""
Request-time translation middleware.

TranslateMiddleware sits in front of a static file server. For each
request it decides one of three things:

- CONFIG: serve the SystemJS config file with the current depCache spliced in
- TRANSLATE: serve the requested source as SystemJS registration code,
  cached, revalidated and answered with ETag/304 support
- PASS_THROUGH: hand the request to the fallback untouched

Usage:
    middleware = TranslateMiddleware(server_root="site", dep_cache=True)
    response = await middleware(HttpRequest("GET", "/lib/main.js", headers))
"""

from __future__ import annotations

import asyncio
import os
import time
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any

from pydantic import ValidationError

from systranslate.cache.depcache import DepCacheAggregator
from systranslate.cache.inflight import InFlightCompilations
from systranslate.cache.invalidation import (
    FileWatchInvalidator,
    InvalidationStrategy,
    RevalidateOnRequest,
)
from systranslate.cache.store import TranslationCache, TranslationUnit
from systranslate.compilers import Compiler
from systranslate.compilers.factory import get_compiler
from systranslate.core.config import TranslateConfig
from systranslate.core.console import get_logger
from systranslate.core.error_middleware import format_error, format_for_http
from systranslate.core.fingerprint import inputs_unchanged, validation_token
from systranslate.core.paths import relative_name, resolve_request_path_async, url_to_relative
from systranslate.core.result import (
    CompileError,
    ConfigurationError,
    Err,
    Ok,
    ResolutionError,
    Result,
)
from systranslate.server.http import (
    JAVASCRIPT_CONTENT_TYPE,
    HttpRequest,
    HttpResponse,
    etag_matches,
)
from systranslate.server.static import Fallback, StaticFileFallback
from systranslate.translator import Translator, read_source

logger = get_logger(__name__)

_READ_METHODS = ("GET", "HEAD")


class RequestKind(Enum):
    CONFIG = "config"
    TRANSLATE = "translate"
    PASS_THROUGH = "pass-through"


def _build_config(config: TranslateConfig | None, options: dict[str, Any]) -> TranslateConfig:
    try:
        if config is None:
            return TranslateConfig(**options)
        if not options:
            return config
        return TranslateConfig(**{**config.model_dump(), **options})
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid middleware options: {exc}") from exc


class TranslateMiddleware:
    """Translate module requests on the fly; delegate everything else.

    Args:
        config: Options; built from ``options`` (and SYSTRANSLATE_* env vars)
            when omitted
        compiler: Backend instance, or a backend name overriding
            ``config.compiler``
        fallback: Handler for pass-through requests (default: static files
            under ``config.server_root``)
        **options: TranslateConfig fields overriding ``config``

    Raises:
        ConfigurationError: If the options are invalid or no compiler
            backend is available
    """

    def __init__(
        self,
        config: TranslateConfig | None = None,
        *,
        compiler: Compiler | str | None = None,
        fallback: Fallback | None = None,
        **options: Any,
    ) -> None:
        if isinstance(compiler, str):
            options["compiler"] = compiler
            compiler = None
        self.config = _build_config(config, options)
        assert self.config.base_url is not None
        self.base_url: Path = self.config.base_url

        self.compiler: Compiler = compiler or get_compiler(self.config.compiler)
        self.cache = TranslationCache()
        self.translator = Translator(self.compiler, base_url=self.base_url, bundle=self.config.bundle)
        self.inflight: InFlightCompilations[Result[TranslationUnit, CompileError]] = (
            InFlightCompilations()
        )
        self.invalidator: InvalidationStrategy
        if self.config.watch_files:
            self.invalidator = FileWatchInvalidator(
                self.cache, policy=self.config.watch_invalidation
            )
        else:
            self.invalidator = RevalidateOnRequest()
        self.depcache = DepCacheAggregator(self.cache, self.base_url)
        self.fallback: Fallback = fallback or StaticFileFallback(self.config.server_root)

        logger.debug(
            "Translating under %s with %s (bundle=%s, watch=%s, depCache=%s)",
            self.config.server_root,
            self.compiler.name,
            self.config.bundle,
            self.config.watch_files,
            self.config.dep_cache,
        )

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, request: HttpRequest) -> RequestKind:
        if request.method not in _READ_METHODS:
            return RequestKind.PASS_THROUGH

        relative = url_to_relative(request.path)
        if self.config.dep_cache and self._is_config_path(relative):
            return RequestKind.CONFIG

        accept = request.header("accept") or ""
        suffix = PurePosixPath(relative).suffix.lower()
        if suffix in self.config.extensions and self.config.accept_signal in accept:
            return RequestKind.TRANSLATE
        return RequestKind.PASS_THROUGH

    def _is_config_path(self, relative: str) -> bool:
        candidate = os.path.normpath(os.path.join(self.config.server_root, relative))
        return candidate == str(self.config.config_path)

    # ------------------------------------------------------------------
    # Request handling
    # ------------------------------------------------------------------

    async def __call__(self, request: HttpRequest) -> HttpResponse:
        kind = self.classify(request)
        if kind is RequestKind.CONFIG:
            return await self._serve_config(request)
        if kind is RequestKind.TRANSLATE:
            return await self._serve_translation(request)
        return await self.fallback(request)

    async def _serve_translation(self, request: HttpRequest) -> HttpResponse:
        resolved = await resolve_request_path_async(request.path, self.config.server_root)
        if isinstance(resolved, Err):
            logger.debug("Passing %s to fallback: %s", request.path, resolved.error.message)
            return await self.fallback(request)

        try:
            result = await self.translate_path(resolved.value)
        except ResolutionError as exc:
            logger.debug("Passing %s to fallback: %s", request.path, exc.message)
            return await self.fallback(request)

        if isinstance(result, Err):
            return self._error_response(result.error)

        unit = result.value
        if etag_matches(request.header("if-none-match"), unit.etag):
            logger.debug("Not modified: %s", request.path)
            return HttpResponse(status=304, headers={"ETag": unit.etag})

        body = unit.code.encode("utf-8")
        headers = {
            "Content-Type": JAVASCRIPT_CONTENT_TYPE,
            "Content-Length": str(len(body)),
            "ETag": unit.etag,
        }
        return HttpResponse(
            status=200, headers=headers, body=b"" if request.method == "HEAD" else body
        )

    async def _serve_config(self, request: HttpRequest) -> HttpResponse:
        path = self.config.config_path
        try:
            text, _ = await read_source(path)
        except (ResolutionError, CompileError) as exc:
            logger.debug("Cannot augment %s (%s); passing to fallback", path, exc.message)
            return await self.fallback(request)

        body = self.depcache.augment(text).encode("utf-8")
        headers = {"Content-Type": JAVASCRIPT_CONTENT_TYPE, "Content-Length": str(len(body))}
        return HttpResponse(
            status=200, headers=headers, body=b"" if request.method == "HEAD" else body
        )

    def _error_response(self, error: CompileError) -> HttpResponse:
        formatted = format_error(error)
        status, body = format_for_http(formatted)
        return HttpResponse(
            status=status,
            headers={
                "Content-Type": "text/plain; charset=UTF-8",
                "X-Translate-Error": formatted.code,
            },
            body=body.encode("utf-8"),
        )

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    async def translate_path(self, path: Path) -> Result[TranslationUnit, CompileError]:
        """Return a valid unit for ``path``, compiling at most once per change.

        Raises:
            FilesystemError: If ``path`` cannot be read
        """
        key = str(path)
        unit = self.cache.get(key)
        if unit is not None:
            if await self.invalidator.is_valid(unit):
                logger.debug("Cache hit for %s", key)
                return Ok(unit)
            if self.cache.get(key) is unit:
                self.cache.invalidate(key)
        return await self.inflight.run(key, lambda: self._compile(path))

    async def _compile(self, path: Path) -> Result[TranslationUnit, CompileError]:
        key = str(path)
        generation = self.cache.generation(key)
        started = time.perf_counter()

        result = await self.translator.compile(path)
        if isinstance(result, Err):
            logger.warning("Failed to translate %s: %s", key, result.error.message)
            return result

        compilation = result.value
        unit = TranslationUnit(
            path=key,
            code=compilation.code,
            dependencies=compilation.dependencies,
            inputs=compilation.inputs,
            etag=validation_token(compilation.inputs, self.translator.variant),
        )
        if self.cache.put_if_current(key, unit, generation):
            self.invalidator.track(unit)
            # Edits made before the watch covered these inputs raise no event.
            if self.config.watch_files and not await inputs_unchanged(unit.inputs):
                logger.info("Inputs of %s changed during compilation; invalidating", key)
                if self.cache.get(key) is unit:
                    self.cache.invalidate(key)
        else:
            logger.debug("Inputs of %s changed during compilation; not caching", key)

        logger.info(
            "Translated %s (%d input(s)) in %.1f ms",
            relative_name(path, self.base_url),
            len(unit.inputs),
            (time.perf_counter() - started) * 1000,
        )
        return Ok(unit)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Stop watching files. Safe to call more than once."""
        self.invalidator.close()

    async def __aenter__(self) -> TranslateMiddleware:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await asyncio.to_thread(self.close)


__all__ = ["RequestKind", "TranslateMiddleware"]
