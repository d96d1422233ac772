"""
Request path resolution against the server root.

Every path the middleware reads is resolved here first, so a request can
never read outside the configured root. Functions return Result types for
explicit error handling.

Usage:
    from systranslate.core.paths import resolve_request_path

    match resolve_request_path("/lib/main.js", root):
        case Ok(path):
            ...
        case Err(err):
            # ResolutionError -> delegate to the static fallback
"""

from __future__ import annotations

import asyncio
import os
from pathlib import Path
from urllib.parse import unquote, urlsplit

from systranslate.core.result import Err, Ok, ResolutionError, Result


def url_to_relative(url_path: str) -> str:
    """Strip query/fragment, decode escapes and drop the leading slash."""
    path = unquote(urlsplit(url_path).path)
    return path.lstrip("/")


def resolve_request_path(url_path: str, root: Path) -> Result[Path, ResolutionError]:
    """Map a request URL path to an existing file under ``root``.

    Args:
        url_path: Raw request path, e.g. ``/lib/main.js?v=2``
        root: Resolved server root directory

    Returns:
        Ok(resolved_path) if the file exists inside root, Err(ResolutionError) otherwise
    """
    relative = url_to_relative(url_path)
    if "\x00" in relative:
        return Err(ResolutionError("Invalid request path", context={"path": url_path}))

    try:
        candidate = (root / relative).resolve()
    except (OSError, RuntimeError) as exc:
        return Err(ResolutionError(f"Cannot resolve {url_path}: {exc}", context={"path": url_path}))

    try:
        candidate.relative_to(root)
    except ValueError:
        return Err(
            ResolutionError(
                f"Path escapes server root: {url_path}",
                context={"path": url_path, "root": str(root)},
            )
        )

    if not candidate.is_file():
        return Err(ResolutionError(f"Not found: {url_path}", context={"path": str(candidate)}))

    return Ok(candidate)


async def resolve_request_path_async(url_path: str, root: Path) -> Result[Path, ResolutionError]:
    """Non-blocking variant of resolve_request_path (stat runs in a thread)."""
    return await asyncio.to_thread(resolve_request_path, url_path, root)


def relative_name(path: Path | str, base: Path) -> str:
    """Module name of ``path`` relative to ``base`` with POSIX separators."""
    return os.path.relpath(path, base).replace(os.sep, "/")


def specifier_path(specifier: str, importer: Path) -> Path | None:
    """Expected file for a relative module specifier, whether or not it exists.

    Only ``./`` and ``../`` specifiers are followed; bare specifiers belong
    to the client-side loader. ``.js`` is appended when the specifier has no
    suffix.
    """
    if not specifier.startswith(("./", "../")):
        return None
    candidate = importer.parent / specifier
    if not candidate.suffix:
        candidate = candidate.with_name(candidate.name + ".js")
    return candidate.resolve()


__all__ = [
    "relative_name",
    "resolve_request_path",
    "resolve_request_path_async",
    "specifier_path",
    "url_to_relative",
]
