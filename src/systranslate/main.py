from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

import typer
from rich import box
from rich.panel import Panel
from rich.table import Table

from . import __version__
from .cache.depcache import augment_config
from .compilers.factory import (
    FALLBACK_ORDER,
    compiler_requirements,
    get_compiler,
    is_compiler_available,
)
from .core.config import ConfigLoadResult, TranslateConfig, load_config
from .core.console import console, setup_logging, stderr_console
from .core.error_middleware import format_error, format_for_cli
from .core.result import Err, TranslateError
from .server.middleware import TranslateMiddleware
from .translator import Translator

app = typer.Typer(help="systranslate: inspect SystemJS module translation from the command line.")
logger = logging.getLogger(__name__)


@dataclass
class AppState:
    config: TranslateConfig
    config_meta: ConfigLoadResult
    logger: logging.Logger


@app.callback()
def main(
    ctx: typer.Context,
    config: Path | None = typer.Option(
        None, "--config", "-c", help="Path to a systranslate config file (TOML or JSON)."
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging."),
) -> None:
    loaded_config, meta = load_config(config_path=config)
    logger = setup_logging(level=loaded_config.log_level, verbose=verbose)

    ctx.obj = AppState(config=loaded_config, config_meta=meta, logger=logger)

    if meta.error:
        stderr_console.print(
            Panel(
                f"[bold red]Configuration Error - Safe Mode Active[/bold red]\n\n"
                f"Failed to load {meta.path}:\n{meta.error}\n\n"
                f"[yellow]Using default settings.[/yellow]",
                border_style="red",
            )
        )
    else:
        logger.debug(
            "Loaded configuration from %s (env overrides: %s)",
            meta.path,
            sorted(meta.env_overrides),
        )


def _fail(exc: Exception) -> typer.Exit:
    stderr_console.print(format_for_cli(format_error(exc)))
    return typer.Exit(code=1)


@app.command("backends")
def backends() -> None:
    """Show which compiler backends are installed, in fallback order."""
    table = Table(title="Compiler backends", box=box.SIMPLE_HEAVY)
    table.add_column("Backend", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Requires", style="dim")

    for ctype in FALLBACK_ORDER:
        status = "[green]available[/green]" if is_compiler_available(ctype) else "[red]missing[/red]"
        table.add_row(ctype.value, status, ", ".join(compiler_requirements(ctype)))

    console.print(table)


@app.command("compile")
def compile_file(
    ctx: typer.Context,
    path: Path = typer.Argument(..., help="Source file to translate."),
    root: Path | None = typer.Option(
        None, "--root", "-r", help="Base directory for module names (default: server_root)."
    ),
    bundle: bool | None = typer.Option(
        None, "--bundle/--no-bundle", help="Inline relative dependencies."
    ),
    backend: str | None = typer.Option(None, "--backend", "-b", help="Compiler backend."),
) -> None:
    """Print the registration code for PATH."""
    state: AppState = ctx.obj
    base_url = (root or state.config.base_url or Path.cwd()).resolve()
    use_bundle = state.config.bundle if bundle is None else bundle

    try:
        compiler = get_compiler(backend or state.config.compiler)
        translator = Translator(compiler, base_url=base_url, bundle=use_bundle)
        result = asyncio.run(translator.compile(path.resolve()))
    except TranslateError as exc:
        raise _fail(exc) from exc

    if isinstance(result, Err):
        raise _fail(result.error)

    compilation = result.value
    state.logger.debug("Inputs: %s", sorted(compilation.inputs))
    typer.echo(compilation.code, nl=False)


async def _collect_depcache(middleware: TranslateMiddleware, files: list[Path]) -> str:
    root = middleware.config.server_root
    for file in files:
        target = file if file.is_absolute() else root / file
        result = await middleware.translate_path(target.resolve())
        if isinstance(result, Err):
            raise result.error

    config_path = middleware.config.config_path
    text = config_path.read_text(encoding="utf-8") if config_path.is_file() else ""
    return augment_config(text, middleware.depcache.render())


@app.command("depcache")
def depcache(
    ctx: typer.Context,
    files: list[Path] = typer.Argument(..., help="Modules to translate, relative to --root."),
    root: Path | None = typer.Option(None, "--root", "-r", help="Server root directory."),
    config_file: str | None = typer.Option(
        None, "--config-file", help="SystemJS config file, relative to the root."
    ),
) -> None:
    """Translate FILES and print the config file with their depCache."""
    state: AppState = ctx.obj
    options: dict[str, object] = {"watch_files": False, "dep_cache": True}
    if root is not None:
        options["server_root"] = root
        options["base_url"] = root
    if config_file is not None:
        options["config_file"] = config_file

    try:
        middleware = TranslateMiddleware(state.config, **options)
        with_depcache = asyncio.run(_collect_depcache(middleware, files))
    except TranslateError as exc:
        raise _fail(exc) from exc

    typer.echo(with_depcache, nl=False)


@app.command("config")
def show_config(ctx: typer.Context) -> None:
    """Show the active configuration and where it came from."""
    state: AppState = ctx.obj
    config = state.config
    meta = state.config_meta

    table = Table(title="Config", box=box.SIMPLE, expand=True)
    table.add_column("Key", style="cyan", no_wrap=True)
    table.add_column("Value", style="white")

    for key, value in config.model_dump().items():
        table.add_row(key, str(value))

    console.print(table)

    meta_lines = [
        f"Path: {meta.path}",
        "File loaded: yes" if meta.file_loaded else "File loaded: no (using defaults + env)",
    ]
    if meta.env_overrides:
        meta_lines.append("Env overrides: " + ", ".join(sorted(meta.env_overrides)))

    console.print(Panel("\n".join(meta_lines), title="Config source", box=box.SIMPLE))


@app.command("version")
def show_version() -> None:
    """Print the systranslate version."""
    console.print(__version__)


def cli() -> None:
    app()


if __name__ == "__main__":
    cli()
