"""Detect the external library imports a snippet declares."""

from __future__ import annotations

import re

_IMPORT_RE = re.compile(r'import\s+"([^"]+)"')


def detect_imports(code: str) -> list[str]:
    """Return scoped package imports (``@scope/name``) in first-seen order.

    Relative and file imports (anything not starting with ``@``) are ignored.
    """
    deps: list[str] = []
    for match in _IMPORT_RE.finditer(code):
        name = match.group(1)
        if name.startswith("@") and name not in deps:
            deps.append(name)
    return deps
