"""
Compiler factory with capability checks.

Backends depend on optional third-party distributions, so the factory
checks that a backend's requirements are importable before importing its
module (which runs the @register_compiler decorator).

Usage:
    from systranslate.compilers.factory import get_compiler

    compiler = get_compiler()                 # tree-sitter, else lexer
    compiler = get_compiler("lexer")          # explicit backend
"""

from __future__ import annotations

import importlib
from importlib.util import find_spec

from systranslate.compilers import COMPILER_REGISTRY, BaseCompiler, CompilerType
from systranslate.core.console import get_logger
from systranslate.core.result import ConfigurationError

logger = get_logger(__name__)

# Backend module plus the top-level packages it imports.
_BACKENDS: dict[CompilerType, tuple[str, tuple[str, ...]]] = {
    CompilerType.TREE_SITTER: (
        "systranslate.compilers.treesitter",
        ("tree_sitter", "tree_sitter_javascript"),
    ),
    CompilerType.LEXER: ("systranslate.compilers.lexer", ("pygments",)),
}

FALLBACK_ORDER: tuple[CompilerType, ...] = (CompilerType.TREE_SITTER, CompilerType.LEXER)


def parse_compiler_type(name: str) -> CompilerType:
    """Parse a backend name ("tree-sitter", "treesitter", "lexer", "pygments").

    Raises:
        ConfigurationError: If the name is not recognized
    """
    aliases = {
        "tree-sitter": CompilerType.TREE_SITTER,
        "tree_sitter": CompilerType.TREE_SITTER,
        "treesitter": CompilerType.TREE_SITTER,
        "lexer": CompilerType.LEXER,
        "pygments": CompilerType.LEXER,
    }
    ctype = aliases.get(name.strip().lower())
    if ctype is None:
        raise ConfigurationError(f"Unknown compiler backend: {name}", context={"compiler": name})
    return ctype


def is_compiler_available(ctype: CompilerType) -> bool:
    """Check whether every package the backend needs can be imported."""
    _, requirements = _BACKENDS[ctype]
    try:
        return all(find_spec(requirement) is not None for requirement in requirements)
    except (ImportError, ValueError):
        return False


def compiler_requirements(ctype: CompilerType) -> tuple[str, ...]:
    """Top-level packages the backend imports."""
    return _BACKENDS[ctype][1]


def available_compilers() -> dict[CompilerType, bool]:
    return {ctype: is_compiler_available(ctype) for ctype in FALLBACK_ORDER}


def _instantiate(ctype: CompilerType) -> BaseCompiler:
    module_name, _ = _BACKENDS[ctype]
    if ctype not in COMPILER_REGISTRY:
        importlib.import_module(module_name)
    factory = COMPILER_REGISTRY.get(ctype)
    if factory is None:
        raise ConfigurationError(f"Compiler backend did not register: {ctype.value}")
    return factory()


def get_compiler(preferred: str | CompilerType | None = None) -> BaseCompiler:
    """Get a compiler instance.

    Args:
        preferred: Backend to use; when None the first available backend in
            FALLBACK_ORDER is used.

    Returns:
        A compiler backend instance

    Raises:
        ConfigurationError: If the requested backend (or every backend) is unavailable
    """
    if preferred is not None:
        ctype = preferred if isinstance(preferred, CompilerType) else parse_compiler_type(preferred)
        candidates: tuple[CompilerType, ...] = (ctype,)
    else:
        candidates = FALLBACK_ORDER

    for ctype in candidates:
        if not is_compiler_available(ctype):
            logger.debug("Compiler backend %s is not installed", ctype.value)
            continue
        try:
            compiler = _instantiate(ctype)
        except ImportError as exc:
            logger.warning("Compiler backend %s failed to load: %s", ctype.value, exc)
            continue
        logger.debug("Using compiler backend %s", compiler.name)
        return compiler

    names = ", ".join(ctype.value for ctype in candidates)
    raise ConfigurationError(
        f"No compiler backend available (tried: {names}). "
        "Install tree-sitter and tree-sitter-javascript, or pygments.",
        context={"tried": names},
    )


__all__ = [
    "FALLBACK_ORDER",
    "available_compilers",
    "compiler_requirements",
    "get_compiler",
    "is_compiler_available",
    "parse_compiler_type",
]
