"""SystemJS registration writers.

Backends only analyze; these functions produce the loader-facing code:

    System.registerDynamic(["./dep"], true, function($__require, exports, module) {
      var define, global = this, GLOBAL = this;
      var dep = $__require('./dep');
      return module.exports;
    });
"""

from __future__ import annotations

import json
import textwrap
from collections.abc import Sequence

REQUIRE_ALIAS_PREFIX = "$__"
_INDENT = "  "


def rename_requires(source: str, offsets: Sequence[int]) -> str:
    """Prefix every ``require`` identifier at ``offsets`` with ``$__``."""
    result = source
    for offset in sorted(set(offsets), reverse=True):
        result = result[:offset] + REQUIRE_ALIAS_PREFIX + result[offset:]
    return result


def _neutralize_hashbang(source: str) -> str:
    return "//" + source if source.startswith("#!") else source


def wrap_register_dynamic(
    source: str,
    dependencies: Sequence[str],
    require_offsets: Sequence[int] = (),
    module_name: str | None = None,
) -> str:
    """Wrap a CommonJS (or global) source in ``System.registerDynamic``."""
    body = _neutralize_hashbang(rename_requires(source, require_offsets))
    if body and not body.endswith("\n"):
        body += "\n"

    name_arg = f"{json.dumps(module_name)}, " if module_name else ""
    header = (
        f"System.registerDynamic({name_arg}{json.dumps(list(dependencies))}, true, "
        "function($__require, exports, module) {\n"
    )
    return (
        header
        + f"{_INDENT}var define, global = this, GLOBAL = this;\n"
        + textwrap.indent(body, _INDENT)
        + f"{_INDENT}return module.exports;\n"
        + "});\n"
    )


def wrap_amd(source: str, define_offset: int | None = None, module_name: str | None = None) -> str:
    """Route an AMD module through ``System.amdDefine``.

    When bundling, the module name is injected into an anonymous ``define(``
    call at ``define_offset``.
    """
    body = _neutralize_hashbang(source)
    if module_name and define_offset is not None:
        # the hashbang rewrite above shifts everything by two characters
        shift = 2 if source.startswith("#!") else 0
        at = define_offset + shift
        body = f"{body[:at]}{json.dumps(module_name)}, {body[at:]}"
    if body and not body.endswith("\n"):
        body += "\n"
    return "(function() {\nvar define = System.amdDefine;\n" + body + "})();\n"


__all__ = [
    "REQUIRE_ALIAS_PREFIX",
    "rename_requires",
    "wrap_amd",
    "wrap_register_dynamic",
]
