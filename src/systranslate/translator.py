"""
Source-to-registration translation pipeline.

The translator is the only component that reads source files for
compilation. It hashes exactly the bytes it hands to the compiler, so a
unit's fingerprint can never describe content other than what was
compiled.

With bundling enabled, relative dependencies are followed breadth-first and
every reachable module is emitted as a named registration after the
requested one. Relative dependencies that do not exist yet are recorded
with MISSING_DIGEST, so creating them later invalidates the unit.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from systranslate.compilers import Compiler, TranslatedModule
from systranslate.core.console import get_logger
from systranslate.core.fingerprint import MISSING_DIGEST, digest_bytes
from systranslate.core.paths import relative_name, specifier_path
from systranslate.core.result import CompileError, Err, FilesystemError, Ok, Result

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class Compilation:
    """Output of one translation: code, direct dependencies, and input digests."""

    code: str
    dependencies: tuple[str, ...]
    inputs: Mapping[str, str]


async def read_source(path: Path) -> tuple[str, str]:
    """Read ``path`` in a worker thread; return (text, digest).

    Raises:
        FilesystemError: If the file cannot be read
        CompileError: If the file is not valid UTF-8
    """
    try:
        data = await asyncio.to_thread(path.read_bytes)
    except OSError as exc:
        raise FilesystemError(
            f"Cannot read {path}: {exc.strerror or exc}", context={"path": str(path)}
        ) from exc
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise CompileError(f"Source is not valid UTF-8: {exc}", context={"path": str(path)}) from exc
    return text, digest_bytes(data)


class Translator:
    """Drives a compiler backend over one file or one bundle."""

    def __init__(self, compiler: Compiler, *, base_url: Path, bundle: bool = False) -> None:
        self.compiler = compiler
        self.base_url = base_url
        self.bundle = bundle

    @property
    def variant(self) -> str:
        """Identifies the output kind; part of every validation token."""
        return f"{self.compiler.name}:{'bundle' if self.bundle else 'module'}"

    async def compile(self, path: Path) -> Result[Compilation, CompileError]:
        """Translate ``path`` (and its relative dependencies when bundling).

        Raises:
            FilesystemError: If the requested file itself cannot be read
        """
        try:
            source, digest = await read_source(path)
        except CompileError as exc:
            return Err(exc)

        module_name = relative_name(path, self.base_url) if self.bundle else None
        result = await self._translate(path, source, module_name)
        if isinstance(result, Err):
            return result
        main = result.value

        inputs: dict[str, str] = {str(path): digest}
        if self.bundle:
            return await self._bundle(path, main.code, main.dependencies, inputs)

        await self._record_dependencies(path, main.dependencies, inputs)
        return Ok(Compilation(code=main.code, dependencies=main.dependencies, inputs=inputs))

    async def _translate(
        self, path: Path, source: str, module_name: str | None
    ) -> Result[TranslatedModule, CompileError]:
        return await asyncio.to_thread(
            self.compiler.translate, str(path), source, module_name=module_name
        )

    async def _record_dependencies(
        self, path: Path, dependencies: tuple[str, ...], inputs: dict[str, str]
    ) -> None:
        """Fingerprint direct relative dependencies without compiling them."""
        for specifier in dependencies:
            target = await asyncio.to_thread(specifier_path, specifier, path)
            if target is None or str(target) in inputs:
                continue
            try:
                _, digest = await read_source(target)
            except FilesystemError:
                digest = MISSING_DIGEST
            except CompileError:
                continue
            inputs[str(target)] = digest

    async def _bundle(
        self,
        path: Path,
        main_code: str,
        dependencies: tuple[str, ...],
        inputs: dict[str, str],
    ) -> Result[Compilation, CompileError]:
        chunks = [main_code]
        queue: deque[tuple[Path, tuple[str, ...]]] = deque([(path, dependencies)])

        while queue:
            importer, specifiers = queue.popleft()
            for specifier in specifiers:
                target = await asyncio.to_thread(specifier_path, specifier, importer)
                if target is None or str(target) in inputs:
                    continue
                try:
                    source, digest = await read_source(target)
                except FilesystemError:
                    logger.debug("Dependency %s of %s is not readable yet", target, importer)
                    inputs[str(target)] = MISSING_DIGEST
                    continue
                except CompileError as exc:
                    return Err(exc)
                inputs[str(target)] = digest

                result = await self._translate(
                    target, source, relative_name(target, self.base_url)
                )
                if isinstance(result, Err):
                    return result
                chunks.append(result.value.code)
                queue.append((target, result.value.dependencies))

        logger.debug("Bundled %d module(s) for %s", len(chunks), path)
        return Ok(Compilation(code="".join(chunks), dependencies=dependencies, inputs=inputs))


__all__ = ["Compilation", "Translator", "read_source"]
