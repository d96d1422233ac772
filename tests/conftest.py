from __future__ import annotations

import io
import logging
import os
import shutil
import sys
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import pytest
from rich.console import Console
from typer.testing import CliRunner

# Detect CI environment (GitHub Actions sets CI=true)
IS_CI = os.environ.get("CI", "").lower() == "true"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line(
        "markers",
        "local_only: marks tests that require local environment (skip in CI)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip local_only tests when running in CI."""
    if not IS_CI:
        return
    skip_ci = pytest.mark.skip(reason="Skipped in CI (requires local environment)")
    for item in items:
        if "local_only" in item.keywords:
            item.add_marker(skip_ci)


ROOT = Path(__file__).resolve().parent.parent
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

FIXTURES = Path(__file__).resolve().parent / "fixtures"

from systranslate.server.middleware import TranslateMiddleware  # noqa: E402


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture(autouse=True)
def isolate_config(tmp_path: Path, monkeypatch: Any) -> Path:
    """Point config to a temp path and drop SYSTRANSLATE_* settings from the env."""
    for key in list(os.environ):
        if key.startswith("SYSTRANSLATE_"):
            monkeypatch.delenv(key)
    cfg_path = tmp_path / "systranslate.toml"
    monkeypatch.setenv("SYSTRANSLATE_CONFIG", str(cfg_path))
    return cfg_path


@pytest.fixture(autouse=True)
def capture_console(monkeypatch: Any) -> Console:
    """Use an in-memory Rich console for stdout output during tests."""
    test_console = Console(record=True, width=120)
    import systranslate.core.console as core_console
    import systranslate.main as st_main

    monkeypatch.setattr(core_console, "console", test_console)
    monkeypatch.setattr(st_main, "console", test_console)
    return test_console


@pytest.fixture(autouse=True)
def capture_stderr(monkeypatch: Any) -> Console:
    """Keep diagnostics and log records out of the CLI's stdout."""
    test_console = Console(record=True, width=120, file=io.StringIO())
    import systranslate.core.console as core_console
    import systranslate.main as st_main

    monkeypatch.setattr(core_console, "stderr_console", test_console)
    monkeypatch.setattr(st_main, "stderr_console", test_console)
    return test_console


@pytest.fixture(autouse=True)
def reset_logging() -> Iterator[None]:
    """Undo setup_logging() so caplog keeps working across tests."""
    yield
    logger = logging.getLogger("systranslate")
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def site(tmp_path: Path) -> Path:
    """A private copy of the fixture site; tests may edit it freely."""
    root = tmp_path / "site"
    shutil.copytree(FIXTURES, root)
    return root.resolve()


@pytest.fixture(params=["lexer", "tree-sitter"])
def backend(request: pytest.FixtureRequest) -> str:
    if request.param == "tree-sitter":
        pytest.importorskip("tree_sitter")
        pytest.importorskip("tree_sitter_javascript")
    return str(request.param)


@pytest.fixture
def make_middleware(site: Path, backend: str) -> Iterator[Callable[..., TranslateMiddleware]]:
    """Build middlewares over ``site``; defaults mirror a single-module setup."""
    created: list[TranslateMiddleware] = []

    def factory(**options: Any) -> TranslateMiddleware:
        options.setdefault("server_root", site)
        options.setdefault("bundle", False)
        options.setdefault("compiler", backend)
        middleware = TranslateMiddleware(**options)
        created.append(middleware)
        return middleware

    yield factory

    for middleware in created:
        middleware.close()
