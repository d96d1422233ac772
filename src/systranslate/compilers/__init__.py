"""
Compiler backend abstraction for systranslate.

This module provides a uniform interface over interchangeable JavaScript
analysis backends (tree-sitter, Pygments lexer). Every backend only has to
*analyze* a source: report its module format, the dependency specifiers it
declares and where ``require`` identifiers sit. The shared registration
writer turns that analysis into SystemJS registration code, so all
backends produce byte-identical output for the same input.

Usage:
    from systranslate.compilers.factory import get_compiler

    compiler = get_compiler()
    result = compiler.translate("/srv/app/lib/main.js", source)
    if result.is_ok():
        print(result.value.code)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Protocol, runtime_checkable

from systranslate.compilers.registration import wrap_amd, wrap_register_dynamic
from systranslate.core.result import CompileError, Err, Ok, Result


class CompilerType(Enum):
    """Supported compiler backends, in fallback priority order."""

    TREE_SITTER = "tree-sitter"
    LEXER = "lexer"


class ModuleFormat(Enum):
    CJS = "cjs"
    AMD = "amd"


@dataclass(frozen=True, slots=True)
class ModuleAnalysis:
    """What a backend learned about one source file.

    Offsets are character offsets into the analyzed source.
    """

    format: ModuleFormat
    dependencies: tuple[str, ...]
    require_offsets: tuple[int, ...] = ()
    define_offset: int | None = None  # just past "define(" of an anonymous AMD define


@dataclass(frozen=True, slots=True)
class TranslatedModule:
    """Normalized compiler output: registration code plus declared dependencies."""

    code: str
    dependencies: tuple[str, ...]
    format: ModuleFormat


@runtime_checkable
class Compiler(Protocol):
    """Protocol every compiler backend satisfies."""

    @property
    def compiler_type(self) -> CompilerType:
        ...

    @property
    def name(self) -> str:
        ...

    def translate(
        self, path: str, source: str, *, module_name: str | None = None
    ) -> Result[TranslatedModule, CompileError]:
        """Translate ``source`` into registration code.

        ``module_name`` produces a named registration (used for bundles).
        Never raises for bad input; failures come back as Err(CompileError).
        """
        ...


class BaseCompiler(ABC):
    """Shared translate() on top of a backend-specific analyze()."""

    compiler_type: CompilerType

    @property
    def name(self) -> str:
        return self.compiler_type.value

    @abstractmethod
    def analyze(self, source: str, path: str) -> ModuleAnalysis:
        """Inspect ``source``; raise CompileError on syntax errors."""

    def translate(
        self, path: str, source: str, *, module_name: str | None = None
    ) -> Result[TranslatedModule, CompileError]:
        try:
            analysis = self.analyze(source, path)
        except CompileError as exc:
            exc.context.setdefault("path", path)
            exc.context.setdefault("compiler", self.name)
            return Err(exc)

        if analysis.format is ModuleFormat.AMD:
            code = wrap_amd(source, analysis.define_offset, module_name)
        else:
            code = wrap_register_dynamic(
                source, analysis.dependencies, analysis.require_offsets, module_name
            )
        return Ok(
            TranslatedModule(code=code, dependencies=analysis.dependencies, format=analysis.format)
        )


def line_and_column(source: str, offset: int) -> tuple[int, int]:
    """1-based line/column of a character offset."""
    line = source.count("\n", 0, offset) + 1
    column = offset - (source.rfind("\n", 0, offset) + 1) + 1
    return line, column


# Registry mapping compiler types to their factory callables.
COMPILER_REGISTRY: dict[CompilerType, Callable[[], BaseCompiler]] = {}


def register_compiler(
    ctype: CompilerType,
) -> Callable[[type[BaseCompiler]], type[BaseCompiler]]:
    """Class decorator adding a backend to COMPILER_REGISTRY."""

    def decorator(cls: type[BaseCompiler]) -> type[BaseCompiler]:
        cls.compiler_type = ctype
        COMPILER_REGISTRY[ctype] = cls
        return cls

    return decorator


__all__ = [
    "COMPILER_REGISTRY",
    "BaseCompiler",
    "Compiler",
    "CompilerType",
    "ModuleAnalysis",
    "ModuleFormat",
    "TranslatedModule",
    "line_and_column",
    "register_compiler",
]
