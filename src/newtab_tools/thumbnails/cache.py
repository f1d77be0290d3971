# src/newtab_tools/thumbnails/cache.py

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Iterable
from datetime import datetime, timedelta

from ..storage.models import Thumbnail
from ..storage.store import NewTabStore

logger = logging.getLogger(__name__)

DEFAULT_RETENTION_DAYS = 14


def today_string(moment: datetime | None = None) -> str:
    """Calendar date (YYYY-MM-DD) of `moment` in process-local time."""
    if moment is None:
        moment = datetime.now()
    elif moment.tzinfo is not None:
        moment = moment.astimezone()
    return moment.strftime("%Y-%m-%d")


class ThumbnailCache:
    """
    Cache semantics on top of the store's thumbnail collection.

    - "used" is a rolling recency signal: every read bumps it to today
    - "stored" is the capture date: a save always resets it
    - entries unused for longer than the retention window are swept
    """

    def __init__(self, store: NewTabStore, *, retention_days: int = DEFAULT_RETENTION_DAYS) -> None:
        self._store = store
        self._retention = timedelta(days=max(0, int(retention_days)))

    @property
    def retention(self) -> timedelta:
        return self._retention

    async def fetch_many(self, urls: Iterable[str], today: str | None = None) -> dict[str, bytes]:
        """{url: image} for requested urls that are cached. Missing urls are simply absent."""
        today = today or today_string()
        return await self._store.get_thumbnails_bulk(urls, today)

    async def save(self, url: str, image: bytes, today: str | None = None) -> None:
        """Store a fresh capture: stored = used = today, whether or not the url was cached."""
        today = today or today_string()
        await self._store.put_thumbnail(url, image, today, fresh=True)

    async def get(self, url: str) -> Thumbnail | None:
        """Read without touching "used"."""
        return await self._store.get_thumbnail(url)

    async def needs_capture(self, url: str, today: str | None = None) -> bool:
        today = today or today_string()
        thumb = await self._store.get_thumbnail(url)
        return thumb is None or thumb.stored < today

    def expiry_cutoff(self, now: datetime | None = None) -> str:
        now = now or datetime.now()
        return today_string(now - self._retention)

    async def sweep_expired(self, now: datetime | None = None) -> int:
        """Delete thumbnails last used before (now - retention). Returns how many were removed."""
        cutoff = self.expiry_cutoff(now)
        removed = await self._store.delete_thumbnails_older_than(cutoff)
        logger.info("Thumbnail sweep cutoff=%s removed=%s", cutoff, removed)
        return removed

    async def iter_entries(self) -> AsyncIterator[Thumbnail]:
        async for thumb in self._store.iter_thumbnails():
            yield thumb
