"""
Unified Result types and error hierarchy for systranslate.

This module provides:
1. Result[T, E] type for explicit error handling
2. Domain-specific exception hierarchy

Usage:
    from systranslate.core.result import Ok, Err, Result, CompileError

    def translate(path: str, source: str) -> Result[TranslatedModule, CompileError]:
        if broken:
            return Err(CompileError("Unterminated string literal at line 1, column 11"))
        return Ok(module)

    result = translate(path, source)
    if result.is_ok():
        print(result.value.code)
    else:
        print(result.error)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")
E = TypeVar("E", bound=Exception)


@dataclass(frozen=True, slots=True)
class Ok(Generic[T]):
    """Represents a successful result containing a value."""

    value: T

    def is_ok(self) -> bool:
        return True

    def is_err(self) -> bool:
        return False

    def unwrap(self) -> T:
        """Return the contained value."""
        return self.value


@dataclass(frozen=True, slots=True)
class Err(Generic[E]):
    """Represents a failed result containing an error."""

    error: E

    def is_ok(self) -> bool:
        return False

    def is_err(self) -> bool:
        return True

    def unwrap(self) -> T:
        """Raise the contained error."""
        raise self.error


# Type alias for Result
Result = Ok[T] | Err[E]


# ---------------------------------------------------------------------------
# Domain-specific error hierarchy
# ---------------------------------------------------------------------------


class TranslateError(Exception):
    """Base exception for all systranslate errors.

    All custom exceptions should inherit from this class to enable
    consistent error handling across the codebase.
    """

    def __init__(self, message: str, *, context: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} [{ctx_str}]"
        return self.message


class ConfigurationError(TranslateError):
    """Raised for configuration issues.

    Examples:
    - No compiler backend importable
    - Unknown compiler backend requested
    - Server root is not a directory
    """

    pass


class CompileError(TranslateError):
    """Raised (or carried in Err) when a compiler backend rejects a source.

    ``message`` is the backend's raw diagnostic; it is surfaced to the
    client verbatim, so the path lives in ``context`` rather than in the text.
    """

    pass


class ResolutionError(TranslateError):
    """Raised when a request path does not map to a servable file.

    Examples:
    - File does not exist
    - Path escapes the server root
    """

    pass


class FilesystemError(ResolutionError):
    """Raised when a read or stat fails on a resolved path."""

    pass


__all__ = [
    # Result types
    "Ok",
    "Err",
    "Result",
    # Error hierarchy
    "TranslateError",
    "ConfigurationError",
    "CompileError",
    "ResolutionError",
    "FilesystemError",
]
