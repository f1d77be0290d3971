# src/newtab_tools/core/state.py

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from ..dispatch.dispatcher import Dispatcher
from ..storage.prefs import PrefsStore
from ..storage.store import NewTabStore
from ..thumbnails.cache import ThumbnailCache
from .ports import ExtensionHost


@dataclass
class AppState:
    # Settings object (config.Settings or a test double with the same attributes).
    settings: Any

    host: ExtensionHost
    store: NewTabStore
    prefs: PrefsStore
    thumbnails: ThumbnailCache
    dispatcher: Dispatcher
