"""depCache aggregation and SystemJS config augmentation.

The depCache lets the SystemJS loader fetch a module's dependencies in
parallel with the module itself. It is a view over the translation cache:
one entry per cached unit, keyed by module path relative to base_url, so
invalidated units disappear from it automatically.

Keys are sorted lexicographically so the rendered config is reproducible.
"""

from __future__ import annotations

import json
import re
from pathlib import Path

from systranslate.cache.store import TranslationCache
from systranslate.core.console import get_logger
from systranslate.core.paths import relative_name

logger = get_logger(__name__)

DEP_CACHE_KEY = "depCache"
_CONFIG_CALL = re.compile(r"System\.config\(\s*\{")


class DepCacheAggregator:
    """Derives the depCache mapping from the current cache contents."""

    def __init__(self, cache: TranslationCache, base_url: Path) -> None:
        self._cache = cache
        self._base_url = base_url

    def mapping(self) -> dict[str, list[str]]:
        entries = {
            relative_name(unit.path, self._base_url): list(unit.dependencies)
            for unit in self._cache.units()
        }
        return dict(sorted(entries.items()))

    def render(self) -> str:
        """Compact JSON, e.g. ``{"lib/a.js":["./b"]}``; ``{}`` when empty."""
        return json.dumps(self.mapping(), separators=(",", ":"))

    def augment(self, config_text: str) -> str:
        return augment_config(config_text, self.render())


def _skip_literal(text: str, index: int) -> int:
    """Index just past the string literal or comment starting at ``index``.

    Returns ``index`` itself when none starts there, and ``len(text)`` when
    one is left open.
    """
    char = text[index]
    if char in "'\"`":
        index += 1
        while index < len(text) and text[index] != char:
            index += 2 if text[index] == "\\" else 1
        return min(index + 1, len(text))
    if text.startswith("//", index):
        newline = text.find("\n", index)
        return len(text) if newline == -1 else newline
    if text.startswith("/*", index):
        close = text.find("*/", index + 2)
        return len(text) if close == -1 else close + 2
    return index


def _search_code(pattern: re.Pattern[str], text: str, start: int = 0) -> re.Match[str] | None:
    """First match of ``pattern`` at or after ``start`` outside strings and comments."""
    index = start
    while index < len(text):
        match = pattern.match(text, index)
        if match is not None:
            return match
        skipped = _skip_literal(text, index)
        index = skipped if skipped != index else index + 1
    return None


def _object_end(text: str, start: int) -> int | None:
    """Index just past the ``}`` matching the ``{`` at ``start``.

    Skips braces inside string literals and comments. Returns None when the
    object is not closed.
    """
    depth = 0
    index = start
    while index < len(text):
        skipped = _skip_literal(text, index)
        if skipped != index:
            index = skipped
            continue
        char = text[index]
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth == 0:
                return index + 1
        index += 1
    return None


def _value_end(text: str, start: int) -> int | None:
    """Index just past the property value starting at ``start``.

    Object values end at their closing brace. Any other value runs up to the
    next top-level ``,`` or closing bracket, excluding trailing whitespace
    and comments.
    Returns None when the enclosing object is not closed.
    """
    if text.startswith("{", start):
        return _object_end(text, start)
    depth = 0
    index = end = start
    while index < len(text):
        char = text[index]
        if depth == 0 and char in ",)]}":
            return end
        skipped = _skip_literal(text, index)
        if skipped != index:
            if char in "'\"`":
                end = skipped
            index = skipped
            continue
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        if not char.isspace():
            end = index + 1
        index += 1
    return None


def augment_config(text: str, rendered: str, key: str = DEP_CACHE_KEY) -> str:
    """Splice ``rendered`` into a SystemJS config as the value of ``key``.

    - Existing ``key:`` properties have their value replaced, whatever it is.
    - Otherwise the key becomes the first property of the first
      ``System.config({``.
    - Otherwise a new ``System.config`` call is appended.

    Occurrences inside comments and string literals are ignored.
    """
    pattern = re.compile(rf"(?<![\w$])(['\"]?){re.escape(key)}\1\s*:\s*")

    pieces: list[str] = []
    cursor = 0
    while (match := _search_code(pattern, text, cursor)) is not None:
        value_start = match.end()
        value_end = _value_end(text, value_start)
        if value_end is None:
            logger.error("Unbalanced %s value in config; leaving it untouched", key)
            return text
        pieces.append(text[cursor:value_start])
        pieces.append(rendered)
        cursor = value_end

    if pieces:
        pieces.append(text[cursor:])
        return "".join(pieces)

    call = _search_code(_CONFIG_CALL, text)
    if call is not None:
        return f"{text[: call.end()]}\n  {key}: {rendered},{text[call.end():]}"

    logger.warning("No System.config({...}) call found; appending one for %s", key)
    separator = "" if not text or text.endswith("\n") else "\n"
    return f"{text}{separator}System.config({{\n  {key}: {rendered}\n}});\n"


__all__ = ["DEP_CACHE_KEY", "DepCacheAggregator", "augment_config"]
