# src/newtab_tools/upgrade.py

from __future__ import annotations

import logging
import math
import re
from collections.abc import Callable
from datetime import datetime

from .core.ports import ExtensionHost
from .core.versions import compare_versions
from .storage.prefs import PrefsStore

logger = logging.getLogger(__name__)

_FLOAT_PREFIX_RE = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def parse_float_prefix(raw: str | None) -> float:
    """
    Leading-number parse: "1.2.3" -> 1.2, "2b1" -> 2.0, "beta" -> nan.

    Only the major.minor part survives, which is what the upgrade rule relies on.
    """
    m = _FLOAT_PREFIX_RE.match(raw or "")
    if not m:
        return math.nan
    return float(m.group(0))


def is_user_visible_upgrade(current: str, previous: str | None) -> bool:
    """
    Should moving from `previous` to `current` be shown as an update?

    - never on first run (no previous version)
    - only for a strictly newer version
    - patch-level republishes ("1.2.1" -> "1.2.3") do not count unless the new build is a beta
    """
    if previous is None:
        return False
    if compare_versions(current, previous) <= 0:
        return False
    # nan != nan, so unparsable versions always count as a change.
    return "b" in current or parse_float_prefix(current) != parse_float_prefix(previous)


async def check_for_upgrade(
    prefs: PrefsStore,
    host: ExtensionHost,
    *,
    clock: Callable[[], datetime] = datetime.now,
) -> bool:
    """
    Record the running version; stamp version_last_update on a user-visible upgrade.

    Runs once per process start. Returns True when the timestamp was updated.
    """
    previous = prefs.version
    current = str(await host.current_version())

    if previous == current:
        logger.debug("Extension version unchanged: %s", current)
        return False

    prefs.version = current
    if not is_user_visible_upgrade(current, previous):
        logger.info("Extension version recorded: %s (previous=%s)", current, previous)
        return False

    stamp = clock()
    prefs.version_last_update = stamp
    logger.info("Extension upgraded %s -> %s at %s", previous, current, stamp.isoformat())
    return True
