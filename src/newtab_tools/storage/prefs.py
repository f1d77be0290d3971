# src/newtab_tools/storage/prefs.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class PrefsStore:
    """
    Small JSON preferences file.

    Keys used today:
    - version:             last-seen extension version (absent on first run)
    - version_last_update: ISO timestamp of the last detected upgrade

    Loaded once at construction, written atomically on every change.
    A missing or unreadable file behaves like empty prefs.
    """

    def __init__(self, path: str | Path = "prefs.json") -> None:
        self._path = Path(path)
        self._data: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.exception("Failed to load prefs from %s; starting empty.", self._path)
            return {}
        if not isinstance(data, dict):
            logger.warning("Prefs file %s is not a JSON object; starting empty.", self._path)
            return {}
        return data

    def _save(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._data, ensure_ascii=False, indent=2), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(Exception):
            os.chmod(self._path, 0o600)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._save()

    # ---- typed accessors ----

    @property
    def version(self) -> str | None:
        v = self._data.get("version")
        return str(v) if v is not None else None

    @version.setter
    def version(self, value: str) -> None:
        self.set("version", str(value))

    @property
    def version_last_update(self) -> datetime | None:
        raw = self._data.get("version_last_update")
        if not raw:
            return None
        try:
            return datetime.fromisoformat(str(raw))
        except ValueError:
            logger.warning("Ignoring malformed version_last_update=%r", raw)
            return None

    @version_last_update.setter
    def version_last_update(self, value: datetime) -> None:
        self.set("version_last_update", value.isoformat())
