"""Content fingerprints and validation tokens.

A unit's fingerprint maps every input file to the SHA-1 of the bytes that
were compiled. Validation tokens (ETags) are derived from the fingerprint,
never from the compiled body, so revalidation only needs to hash sources.
"""

from __future__ import annotations

import asyncio
import hashlib
from collections.abc import Iterable, Mapping
from pathlib import Path


# Recorded for inputs that did not exist when a unit was compiled.
MISSING_DIGEST = "missing"


def digest_bytes(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def digest_file(path: Path | str) -> str | None:
    """Digest of the file's current content, or None if it cannot be read."""
    try:
        data = Path(path).read_bytes()
    except OSError:
        return None
    return digest_bytes(data)


async def current_digests(paths: Iterable[str]) -> dict[str, str | None]:
    """Hash every path in a worker thread."""

    def _hash_all(items: list[str]) -> dict[str, str | None]:
        return {item: digest_file(item) for item in items}

    return await asyncio.to_thread(_hash_all, list(paths))


async def inputs_unchanged(inputs: Mapping[str, str]) -> bool:
    """True if every recorded input still has its recorded digest.

    A missing file matches MISSING_DIGEST, so a dependency that appears
    after compilation counts as a change.
    """
    current = await current_digests(inputs)
    return all((current.get(path) or MISSING_DIGEST) == digest for path, digest in inputs.items())


def validation_token(inputs: Mapping[str, str], variant: str = "") -> str:
    """Build a strong ETag from input digests.

    Order-independent over ``inputs`` so the same sources always produce
    the same token; ``variant`` separates output kinds (e.g. bundled vs.
    single-module) of the same file.
    """
    hasher = hashlib.sha1(variant.encode("utf-8"))
    for path in sorted(inputs):
        hasher.update(b"\0")
        hasher.update(path.encode("utf-8"))
        hasher.update(b"=")
        hasher.update(inputs[path].encode("ascii"))
    return f'"{hasher.hexdigest()}"'


__all__ = [
    "MISSING_DIGEST",
    "current_digests",
    "digest_bytes",
    "digest_file",
    "inputs_unchanged",
    "validation_token",
]
