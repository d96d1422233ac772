"""Framework-neutral HTTP request/response values.

The middleware only needs a method, a path and a few headers, so it speaks
these small dataclasses. The Starlette application
(systranslate.server.asgi) converts at the edge.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

JAVASCRIPT_CONTENT_TYPE = "application/javascript; charset=UTF-8"


@dataclass(frozen=True, slots=True)
class HttpRequest:
    """An incoming request. Header names are matched case-insensitively."""

    method: str
    path: str
    headers: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(
            self, "headers", {name.lower(): value for name, value in self.headers.items()}
        )

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)

@dataclass(frozen=True, slots=True)
class HttpResponse:
    status: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""

    @property
    def text(self) -> str:
        return self.body.decode("utf-8")

    def header(self, name: str) -> str | None:
        lowered = name.lower()
        for key, value in self.headers.items():
            if key.lower() == lowered:
                return value
        return None

def etag_matches(if_none_match: str | None, etag: str) -> bool:
    """Weak comparison of an If-None-Match header against ``etag``.

    Accepts ``*`` and comma-separated lists; ``W/`` prefixes are ignored.
    """
    if not if_none_match:
        return False
    target = etag.removeprefix("W/")
    for candidate in if_none_match.split(","):
        candidate = candidate.strip()
        if candidate == "*":
            return True
        if candidate.removeprefix("W/") == target:
            return True
    return False



__all__ = [
    "JAVASCRIPT_CONTENT_TYPE",
    "HttpRequest",
    "HttpResponse",
    "etag_matches",
]
