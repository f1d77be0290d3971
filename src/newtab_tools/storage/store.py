# src/newtab_tools/storage/store.py

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sqlite3
import time
from collections.abc import AsyncIterator, Callable, Iterable
from pathlib import Path
from typing import Any, TypeVar

from ..errors import OperationError, StoreOpenError
from .models import Background, Thumbnail, Tile

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEMA_VERSION = 8


class NewTabStore:
    """
    SQLite store for the new-tab page: tiles, background images and page thumbnails.

    Opening:
    - open() is lazy and idempotent; concurrent callers share one underlying open
    - schema creation runs only when PRAGMA user_version is behind SCHEMA_VERSION,
      and every statement is IF NOT EXISTS, so re-running it is a no-op
    - a failed open raises StoreOpenError; the next open() call retries

    Operations:
    - every public coroutine awaits open() first, so callers never see "not ready"
    - blocking SQLite work runs in a worker thread, one short-lived connection per call
    - sqlite3 errors surface as OperationError for that call only
    """

    def __init__(self, db_path: str | Path = "newtab.sqlite3") -> None:
        self._db_path = Path(db_path)
        self._open_task: asyncio.Task[None] | None = None
        self._ready = False

    @property
    def db_path(self) -> Path:
        return self._db_path

    @property
    def is_ready(self) -> bool:
        return self._ready

    def close(self) -> None:
        """Compatibility hook for shutdown (no persistent connections to close)."""
        return

    # ---- open / schema ----

    async def open(self) -> None:
        if self._ready:
            return

        if self._open_task is None:
            self._open_task = asyncio.ensure_future(self._open())

        task = self._open_task
        try:
            await asyncio.shield(task)
        except Exception:
            # Forget the failed attempt so a later open() can retry.
            if self._open_task is task:
                self._open_task = None
            raise

    async def _open(self) -> None:
        try:
            await asyncio.to_thread(self._open_sync)
        except (sqlite3.Error, OSError) as e:
            logger.exception("NewTabStore open failed db=%s", self._db_path)
            raise StoreOpenError(f"cannot open store at {self._db_path}: {e!r}") from e

        self._ready = True
        try:
            tiles, thumbs = await asyncio.to_thread(self._counts_sync)
        except sqlite3.Error:
            tiles, thumbs = -1, -1
        logger.info("NewTabStore ready db=%s tiles=%s thumbnails=%s", self._db_path, tiles, thumbs)

    def _open_sync(self) -> None:
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = self._get_conn()
        try:
            (current,) = conn.execute("PRAGMA user_version").fetchone()
            if int(current) < SCHEMA_VERSION:
                self._create_schema(conn)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
                conn.commit()
                logger.info(
                    "NewTabStore schema upgraded db=%s from=%s to=%s",
                    self._db_path,
                    current,
                    SCHEMA_VERSION,
                )
        finally:
            conn.close()

    @staticmethod
    def _create_schema(conn: sqlite3.Connection) -> None:
        cur = conn.cursor()

        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS tiles (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                data TEXT NOT NULL DEFAULT '{}'
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS background (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                data BLOB NOT NULL,
                created_at REAL NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS thumbnails (
                url TEXT PRIMARY KEY,
                image BLOB NOT NULL,
                stored TEXT NOT NULL,
                used TEXT NOT NULL
            )
            """
        )

        # Very old stores kept thumbnails without recency tracking.
        cur.execute("PRAGMA table_info(thumbnails)")
        cols = {row["name"] for row in cur.fetchall()}
        for name in ("stored", "used"):
            if name not in cols:
                cur.execute(f"ALTER TABLE thumbnails ADD COLUMN {name} TEXT NOT NULL DEFAULT ''")
                logger.info("NewTabStore migration: added column thumbnails.%s", name)

        cur.execute("CREATE INDEX IF NOT EXISTS idx_thumbnails_used ON thumbnails(used)")

    # ---- low-level helpers ----

    def _get_conn(self, *, check_same_thread: bool = True) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, check_same_thread=check_same_thread)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(Exception):
            conn.execute("PRAGMA journal_mode=WAL")

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        await self.open()
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            logger.exception("NewTabStore %s failed", operation)
            raise OperationError(operation, e) from e

    @staticmethod
    def _data_to_str(data: dict[str, Any]) -> str:
        try:
            return json.dumps(data, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError(f"tile payload is not JSON-serializable: {e}") from e

    @staticmethod
    def _str_to_data(s: str | None) -> dict[str, Any]:
        if not s:
            return {}
        try:
            val = json.loads(s)
            return val if isinstance(val, dict) else {}
        except ValueError:
            logger.warning("Corrupt tile payload ignored: %.80r", s)
            return {}

    def _row_to_tile(self, row: sqlite3.Row) -> Tile:
        return Tile(id=int(row["id"]), data=self._str_to_data(row["data"]))

    @staticmethod
    def _row_to_thumbnail(row: sqlite3.Row) -> Thumbnail:
        return Thumbnail(
            url=str(row["url"]),
            image=bytes(row["image"]),
            stored=str(row["stored"] or ""),
            used=str(row["used"] or ""),
        )

    def _counts_sync(self) -> tuple[int, int]:
        conn = self._get_conn()
        try:
            (tiles,) = conn.execute("SELECT COUNT(*) FROM tiles").fetchone()
            (thumbs,) = conn.execute("SELECT COUNT(*) FROM thumbnails").fetchone()
            return int(tiles), int(thumbs)
        finally:
            conn.close()

    # ---- tiles ----

    async def count_tiles(self) -> int:
        tiles, _ = await self._run("count_tiles", self._counts_sync)
        return tiles

    async def list_tiles(self) -> list[Tile]:
        return await self._run("list_tiles", self._list_tiles_sync)

    def _list_tiles_sync(self) -> list[Tile]:
        conn = self._get_conn()
        try:
            rows = conn.execute("SELECT id, data FROM tiles ORDER BY id ASC").fetchall()
            return [self._row_to_tile(r) for r in rows]
        finally:
            conn.close()

    async def put_tile(self, tile: dict[str, Any]) -> Tile:
        """Insert a tile (no "id") or overwrite the tile with the given "id"."""
        data = dict(tile or {})
        raw_id = data.pop("id", None)
        tile_id = int(raw_id) if raw_id is not None else None
        payload = self._data_to_str(data)
        return await self._run("put_tile", self._put_tile_sync, tile_id, payload)

    def _put_tile_sync(self, tile_id: int | None, payload: str) -> Tile:
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            if tile_id is None:
                cur.execute("INSERT INTO tiles(data) VALUES (?)", (payload,))
                rowid = cur.lastrowid
                if rowid is None:
                    raise RuntimeError("SQLite did not return lastrowid for tiles insert")
                tile_id = int(rowid)
            else:
                cur.execute("INSERT OR REPLACE INTO tiles(id, data) VALUES (?, ?)", (tile_id, payload))
            conn.commit()
            logger.debug("Tile stored id=%s", tile_id)
            return Tile(id=tile_id, data=self._str_to_data(payload))
        finally:
            conn.close()

    async def remove_tile(self, tile_id: int) -> None:
        await self._run("remove_tile", self._remove_tile_sync, int(tile_id))

    def _remove_tile_sync(self, tile_id: int) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM tiles WHERE id = ?", (tile_id,))
            conn.commit()
            logger.debug("Tile removed id=%s", tile_id)
        finally:
            conn.close()

    # ---- background ----

    async def get_background(self) -> Background | None:
        """Most recently added background, if any."""
        return await self._run("get_background", self._get_background_sync)

    def _get_background_sync(self) -> Background | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT id, data, created_at FROM background ORDER BY id DESC LIMIT 1"
            ).fetchone()
            if row is None:
                return None
            return Background(
                id=int(row["id"]),
                data=bytes(row["data"]),
                created_at=float(row["created_at"] or 0.0),
            )
        finally:
            conn.close()

    async def set_background(self, blob: bytes) -> Background:
        """Add a background record. Older records are kept; readers only see the latest."""
        return await self._run("set_background", self._set_background_sync, bytes(blob))

    def _set_background_sync(self, blob: bytes) -> Background:
        now = time.time()
        conn = self._get_conn()
        try:
            cur = conn.cursor()
            cur.execute("INSERT INTO background(data, created_at) VALUES (?, ?)", (blob, now))
            conn.commit()
            rowid = cur.lastrowid
            if rowid is None:
                raise RuntimeError("SQLite did not return lastrowid for background insert")
            logger.debug("Background stored id=%s bytes=%s", rowid, len(blob))
            return Background(id=int(rowid), data=blob, created_at=now)
        finally:
            conn.close()

    # ---- thumbnails ----

    async def count_thumbnails(self) -> int:
        _, thumbs = await self._run("count_thumbnails", self._counts_sync)
        return thumbs

    async def get_thumbnail(self, url: str) -> Thumbnail | None:
        return await self._run("get_thumbnail", self._get_thumbnail_sync, url)

    def _get_thumbnail_sync(self, url: str) -> Thumbnail | None:
        conn = self._get_conn()
        try:
            row = conn.execute(
                "SELECT url, image, stored, used FROM thumbnails WHERE url = ?", (url,)
            ).fetchone()
            return self._row_to_thumbnail(row) if row else None
        finally:
            conn.close()

    async def put_thumbnail(self, url: str, image: bytes, today: str, *, fresh: bool = False) -> None:
        """
        Create or update a thumbnail.

        New rows get stored = used = today. Existing rows only get the new image,
        unless fresh=True, which treats the write as a new capture (stored = used = today).
        """
        if not url:
            raise ValueError("url is required")
        await self._run("put_thumbnail", self._put_thumbnail_sync, url, bytes(image), today, fresh)

    def _put_thumbnail_sync(self, url: str, image: bytes, today: str, fresh: bool) -> None:
        if fresh:
            on_conflict = "image = excluded.image, stored = excluded.stored, used = excluded.used"
        else:
            on_conflict = "image = excluded.image"

        conn = self._get_conn()
        try:
            conn.execute(
                f"""
                INSERT INTO thumbnails(url, image, stored, used)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(url) DO UPDATE SET {on_conflict}
                """,
                (url, image, today, today),
            )
            conn.commit()
            logger.debug("Thumbnail stored url=%s bytes=%s fresh=%s", url, len(image), fresh)
        finally:
            conn.close()

    async def get_thumbnails_bulk(self, urls: Iterable[str], today: str) -> dict[str, bytes]:
        """
        Return {url: image} for every requested url that has a thumbnail.

        Side effect: each returned row gets used = today (if it is not already).
        """
        wanted = {u for u in urls if u}
        if not wanted:
            return {}
        return await self._run("get_thumbnails_bulk", self._get_thumbnails_bulk_sync, wanted, today)

    def _get_thumbnails_bulk_sync(self, wanted: set[str], today: str) -> dict[str, bytes]:
        found: dict[str, bytes] = {}
        touched: list[str] = []

        conn = self._get_conn()
        try:
            for row in conn.execute("SELECT url, image, used FROM thumbnails"):
                url = str(row["url"])
                if url not in wanted:
                    continue
                found[url] = bytes(row["image"])
                if row["used"] != today:
                    touched.append(url)

            if touched:
                conn.executemany(
                    "UPDATE thumbnails SET used = ? WHERE url = ?",
                    [(today, u) for u in touched],
                )
                conn.commit()
            logger.debug(
                "Thumbnails bulk read wanted=%s found=%s touched=%s",
                len(wanted),
                len(found),
                len(touched),
            )
            return found
        finally:
            conn.close()

    async def touch_thumbnail(self, url: str, today: str) -> bool:
        """Set used = today for one url. Returns False when the url is not cached."""
        return await self._run("touch_thumbnail", self._touch_thumbnail_sync, url, today)

    def _touch_thumbnail_sync(self, url: str, today: str) -> bool:
        conn = self._get_conn()
        try:
            cur = conn.execute("UPDATE thumbnails SET used = ? WHERE url = ?", (today, url))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    async def iter_thumbnails(self, *, batch_size: int = 64) -> AsyncIterator[Thumbnail]:
        """
        Lazily scan every thumbnail (finite, single pass).

        The scan holds one connection for its whole lifetime; stop iterating to release it.
        """
        await self.open()
        try:
            conn = await asyncio.to_thread(self._get_conn, check_same_thread=False)
        except sqlite3.Error as e:
            raise OperationError("iter_thumbnails", e) from e

        try:
            cur = await asyncio.to_thread(
                conn.execute, "SELECT url, image, stored, used FROM thumbnails ORDER BY url"
            )
            while True:
                rows = await asyncio.to_thread(cur.fetchmany, max(1, int(batch_size)))
                if not rows:
                    break
                for row in rows:
                    yield self._row_to_thumbnail(row)
        except sqlite3.Error as e:
            raise OperationError("iter_thumbnails", e) from e
        finally:
            conn.close()

    async def delete_thumbnail(self, url: str) -> None:
        await self._run("delete_thumbnail", self._delete_thumbnail_sync, url)

    def _delete_thumbnail_sync(self, url: str) -> None:
        conn = self._get_conn()
        try:
            conn.execute("DELETE FROM thumbnails WHERE url = ?", (url,))
            conn.commit()
        finally:
            conn.close()

    async def delete_thumbnails_older_than(self, cutoff: str) -> int:
        """Delete thumbnails whose last use is strictly before `cutoff` (YYYY-MM-DD)."""
        return await self._run(
            "delete_thumbnails_older_than", self._delete_thumbnails_older_than_sync, cutoff
        )

    def _delete_thumbnails_older_than_sync(self, cutoff: str) -> int:
        conn = self._get_conn()
        try:
            cur = conn.execute("DELETE FROM thumbnails WHERE used < ?", (cutoff,))
            conn.commit()
            return int(cur.rowcount)
        finally:
            conn.close()
