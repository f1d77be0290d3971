# tests/conftest.py

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from newtab_tools.dispatch.dispatcher import Dispatcher
from newtab_tools.storage.prefs import PrefsStore
from newtab_tools.storage.store import NewTabStore
from newtab_tools.thumbnails.cache import ThumbnailCache

from .fakes import FakeHost


class Clock:
    """Settable clock passed to components that take `clock=`."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with bootstrap and AppState.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated from the environment.
    """
    return SimpleNamespace(
        app_name="newtab-test",
        log_level="DEBUG",
        extension_version="1.0",
        console_enabled=False,
        data_dir=tmp_path,
        db_path=tmp_path / "newtab.sqlite3",
        prefs_path=tmp_path / "prefs.json",
        thumbnail_retention_days=14,
    )


@pytest.fixture()
def store(settings: SimpleNamespace) -> NewTabStore:
    # Real SQLite: the schema and queries are part of what we test.
    return NewTabStore(settings.db_path)


@pytest.fixture()
def thumbnails(store: NewTabStore) -> ThumbnailCache:
    return ThumbnailCache(store, retention_days=14)


@pytest.fixture()
def host() -> FakeHost:
    return FakeHost()


@pytest.fixture()
def clock() -> Clock:
    return Clock(datetime(2024, 1, 1, 12, 0, 0))


@pytest.fixture()
def dispatcher(
    store: NewTabStore, thumbnails: ThumbnailCache, host: FakeHost, clock: Clock
) -> Dispatcher:
    return Dispatcher(store, thumbnails, host, clock=clock)


@pytest.fixture()
def prefs(settings: SimpleNamespace) -> PrefsStore:
    return PrefsStore(settings.prefs_path)
