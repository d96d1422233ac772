"""systranslate - request-time SystemJS module translation with caching.

Serves JavaScript sources to module-aware clients as SystemJS registration
code, with ETag revalidation, file-watch or passive invalidation, and an
optional depCache spliced into the loader config.

Exports:
    __version__: Package version string.
"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
