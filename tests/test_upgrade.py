# tests/test_upgrade.py

from __future__ import annotations

import math
from datetime import datetime

import pytest

from newtab_tools.storage.prefs import PrefsStore
from newtab_tools.upgrade import check_for_upgrade, is_user_visible_upgrade, parse_float_prefix

from .fakes import FakeHost

STAMP = datetime(2024, 5, 1, 8, 30)


def test_parse_float_prefix() -> None:
    assert parse_float_prefix("1.2.3") == 1.2
    assert parse_float_prefix("2b1") == 2.0
    assert parse_float_prefix(" 10.05pre") == 10.05
    assert math.isnan(parse_float_prefix("beta"))
    assert math.isnan(parse_float_prefix(None))


@pytest.mark.parametrize(
    ("previous", "current", "expected"),
    [
        (None, "1.0", False),  # first run
        ("1.2", "1.3", True),
        ("1.9", "2.0", True),
        ("1.2.1", "1.2.3", False),  # same major.minor
        ("1.2", "1.2.3b1", True),  # beta builds always count
        ("2.0", "1.9", False),  # downgrade
        ("1.2b1", "1.2", False),  # beta -> release of the same major.minor
    ],
)
def test_is_user_visible_upgrade(previous, current, expected) -> None:
    assert is_user_visible_upgrade(current, previous) is expected


@pytest.mark.asyncio
async def test_first_run_records_version_only(prefs: PrefsStore) -> None:
    updated = await check_for_upgrade(prefs, FakeHost(version="1.0"), clock=lambda: STAMP)

    assert updated is False
    assert prefs.version == "1.0"
    assert prefs.version_last_update is None


@pytest.mark.asyncio
async def test_upgrade_stamps_timestamp_and_persists(prefs: PrefsStore) -> None:
    prefs.version = "1.2"

    updated = await check_for_upgrade(prefs, FakeHost(version="1.3"), clock=lambda: STAMP)
    assert updated is True

    reloaded = PrefsStore(prefs.path)
    assert reloaded.version == "1.3"
    assert reloaded.version_last_update == STAMP


@pytest.mark.asyncio
async def test_unchanged_version_is_a_no_op(prefs: PrefsStore) -> None:
    prefs.version = "1.3"
    assert await check_for_upgrade(prefs, FakeHost(version="1.3"), clock=lambda: STAMP) is False
    assert prefs.version_last_update is None


@pytest.mark.asyncio
async def test_downgrade_records_version_without_stamp(prefs: PrefsStore) -> None:
    prefs.version = "2.0"
    assert await check_for_upgrade(prefs, FakeHost(version="1.9"), clock=lambda: STAMP) is False
    assert prefs.version == "1.9"
    assert prefs.version_last_update is None
