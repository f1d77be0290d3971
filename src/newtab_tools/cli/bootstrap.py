# src/newtab_tools/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (store/prefs/cache/dispatcher/host).
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.local_host import LocalHost
from ..core.ports import ExtensionHost
from ..core.state import AppState
from ..dispatch.dispatcher import Dispatcher
from ..storage.prefs import PrefsStore
from ..storage.store import NewTabStore
from ..thumbnails.cache import ThumbnailCache

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.prefs_path.parent.mkdir(parents=True, exist_ok=True)


def create_initial_state(*, settings=None, host: ExtensionHost | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Nothing is opened here: the store opens lazily once the dispatcher starts.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if host is None:
        host = LocalHost(version=settings.extension_version)

    store = NewTabStore(settings.db_path)
    thumbnails = ThumbnailCache(store, retention_days=settings.thumbnail_retention_days)
    dispatcher = Dispatcher(store, thumbnails, host)

    state = AppState(
        settings=settings,
        host=host,
        store=store,
        prefs=PrefsStore(settings.prefs_path),
        thumbnails=thumbnails,
        dispatcher=dispatcher,
    )
    logger.debug("AppState created db=%s prefs=%s", settings.db_path, settings.prefs_path)
    return state
