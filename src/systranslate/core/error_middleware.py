"""
Centralized error formatting for HTTP and CLI contexts.

This module provides consistent error formatting across the two places
errors reach a human: the HTTP response of a failed translation and the
developer CLI.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any

from rich.markup import escape

from systranslate.core.result import (
    CompileError,
    ConfigurationError,
    FilesystemError,
    ResolutionError,
    TranslateError,
)


class ErrorSeverity(Enum):
    """Severity levels for error display."""

    INFO = auto()
    WARNING = auto()
    ERROR = auto()
    CRITICAL = auto()


@dataclass(frozen=True, slots=True)
class FormattedError:
    """A formatted error ready for display."""

    message: str
    severity: ErrorSeverity
    code: str
    details: dict[str, Any]
    traceback: str | None = None


def _error_code(exc: Exception) -> str:
    """Derive an error code from exception type."""
    if isinstance(exc, CompileError):
        return "COMPILE_ERROR"
    if isinstance(exc, FilesystemError):
        return "FILESYSTEM_ERROR"
    if isinstance(exc, ResolutionError):
        return "RESOLUTION_ERROR"
    if isinstance(exc, ConfigurationError):
        return "CONFIG_ERROR"
    if isinstance(exc, TranslateError):
        return "TRANSLATE_ERROR"
    if isinstance(exc, FileNotFoundError):
        return "FILE_NOT_FOUND"
    if isinstance(exc, PermissionError):
        return "PERMISSION_DENIED"
    return "UNEXPECTED_ERROR"


def _severity(exc: Exception) -> ErrorSeverity:
    """Determine severity based on exception type."""
    if isinstance(exc, ConfigurationError):
        return ErrorSeverity.CRITICAL
    if isinstance(exc, (ResolutionError, FileNotFoundError)):
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def format_error(
    exc: Exception,
    *,
    include_traceback: bool = False,
) -> FormattedError:
    """Format an exception into a structured error.

    The message is the exception's own message without the context suffix,
    so compiler diagnostics pass through verbatim.
    """
    details: dict[str, Any] = {}
    message = str(exc)
    if isinstance(exc, TranslateError):
        details = exc.context.copy()
        message = exc.message

    if isinstance(exc, OSError):
        if exc.filename:
            details["path"] = str(exc.filename)
        if exc.errno:
            details["errno"] = exc.errno

    tb = None
    if include_traceback:
        tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))

    return FormattedError(
        message=message,
        severity=_severity(exc),
        code=_error_code(exc),
        details=details,
        traceback=tb,
    )


# ---------------------------------------------------------------------------
# HTTP Formatting (status + plain-text body)
# ---------------------------------------------------------------------------

_HTTP_STATUS = {
    "COMPILE_ERROR": 500,
    "RESOLUTION_ERROR": 404,
    "FILESYSTEM_ERROR": 404,
    "FILE_NOT_FOUND": 404,
    "PERMISSION_DENIED": 403,
}


def format_for_http(error: FormattedError) -> tuple[int, str]:
    """Return (status, body) for an error response.

    The body is the raw message; clients such as the SystemJS loader show
    it as-is in the browser console.
    """
    status = _HTTP_STATUS.get(error.code, 500)
    return status, f"{error.message}\n"


# ---------------------------------------------------------------------------
# CLI Formatting (Rich markup)
# ---------------------------------------------------------------------------


def format_for_cli(error: FormattedError) -> str:
    """Format error for CLI display with Rich markup."""
    color_map = {
        ErrorSeverity.INFO: "blue",
        ErrorSeverity.WARNING: "yellow",
        ErrorSeverity.ERROR: "red",
        ErrorSeverity.CRITICAL: "bold red",
    }
    color = color_map.get(error.severity, "red")

    parts = [f"[{color}]{error.code}[/{color}]: {escape(error.message)}"]

    if error.details:
        detail_lines = [f"  {k}: {escape(str(v))}" for k, v in error.details.items()]
        parts.append("\n".join(detail_lines))

    if error.traceback:
        parts.append(f"\n[dim]{error.traceback}[/dim]")

    return "\n".join(parts)


__all__ = [
    "ErrorSeverity",
    "FormattedError",
    "format_error",
    "format_for_cli",
    "format_for_http",
]
