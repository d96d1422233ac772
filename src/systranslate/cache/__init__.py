"""Translation caching: store, invalidation, coalescing and depCache.

Public API:
    - TranslationCache / TranslationUnit: path-keyed store of compiled output
    - RevalidateOnRequest / FileWatchInvalidator: invalidation strategies
    - InFlightCompilations: one compilation per path at a time
    - DepCacheAggregator / augment_config: depCache rendering for config.js
"""

from __future__ import annotations

from systranslate.cache.depcache import DEP_CACHE_KEY, DepCacheAggregator, augment_config
from systranslate.cache.inflight import InFlightCompilations
from systranslate.cache.invalidation import (
    FileWatchInvalidator,
    InvalidationStrategy,
    RevalidateOnRequest,
    WatchPolicy,
)
from systranslate.cache.store import Generation, TranslationCache, TranslationUnit

__all__ = [
    "DEP_CACHE_KEY",
    "DepCacheAggregator",
    "FileWatchInvalidator",
    "Generation",
    "InFlightCompilations",
    "InvalidationStrategy",
    "RevalidateOnRequest",
    "TranslationCache",
    "TranslationUnit",
    "WatchPolicy",
    "augment_config",
]
