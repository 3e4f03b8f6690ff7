from __future__ import annotations

import re
from collections.abc import Collection, Mapping

_UNSAFE = re.compile(r"[^A-Za-z0-9_]")


def sanitize(base: str) -> str:
    cleaned = _UNSAFE.sub("_", base)
    return cleaned or "_"


def allocate_placeholder(prefix: str, base: str, used: Collection[str]) -> str:
    """Return ``prefix + base`` or the first ``prefix + base_<n>`` not in ``used``.

    ``used`` must hold every placeholder already taken by any clause the result
    will be merged with. Nothing is remembered between calls.
    """
    stem = prefix + sanitize(base)
    candidate = stem
    counter = 0
    while candidate in used:
        candidate = f"{stem}_{counter}"
        counter += 1
    return candidate


def value_placeholder(base: str, used: Collection[str]) -> str:
    return allocate_placeholder(":", base, used)


def name_placeholder(attribute: str, names: Mapping[str, str]) -> str:
    # Reuse the placeholder if this attribute already has one, so a field
    # referenced by several fragments keeps a single ``#`` alias.
    for placeholder, bound in names.items():
        if bound == attribute:
            return placeholder
    return allocate_placeholder("#", attribute, names.keys())
