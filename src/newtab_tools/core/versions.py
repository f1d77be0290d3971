# src/newtab_tools/core/versions.py

"""
Build/release identifier comparison.

Not strict semver: "1.2b3", "3.0pre", "10.0.1" are all accepted.
A version is split into segments (digit runs -> int, other runs -> str, "." is a separator).

Ordering quirks:
- a missing segment sorts below a number: "1.2" < "1.2.1"
- a missing segment sorts above text:    "1.2a" < "1.2"
- text sorts below a number at the same position: "1.a" < "1.0"
"""

from __future__ import annotations

import re
from typing import Any

Segment = int | str

_SEGMENT_RE = re.compile(r"(?P<num>[0-9]+)|(?P<text>[^0-9.]+)")


def split_version(version: Any) -> list[Segment]:
    """Split a version identifier into int/str segments."""
    parts: list[Segment] = []
    for m in _SEGMENT_RE.finditer(str(version)):
        num = m.group("num")
        parts.append(int(num) if num is not None else m.group("text"))
    return parts


def _compare_segments(x: Segment | None, y: Segment | None) -> int:
    if x is None and y is None:
        return 0
    if x is None:
        return -1 if isinstance(y, int) else 1
    if y is None:
        return 1 if isinstance(x, int) else -1

    x_num = isinstance(x, int)
    y_num = isinstance(y, int)
    if x_num != y_num:
        return 1 if x_num else -1

    if x == y:
        return 0
    return -1 if x < y else 1  # type: ignore[operator]


def compare_versions(a: Any, b: Any) -> int:
    """
    Compare two version identifiers.

    Returns -1 if a < b, 0 if equal, 1 if a > b.
    """
    a_parts = split_version(a)
    b_parts = split_version(b)

    # One position past the shorter side decides between "1.2" and "1.2.1" / "1.2a".
    for i in range(min(len(a_parts), len(b_parts)) + 1):
        x = a_parts[i] if i < len(a_parts) else None
        y = b_parts[i] if i < len(b_parts) else None
        result = _compare_segments(x, y)
        if result != 0:
            return result
    return 0
