# src/newtab_tools/dispatch/dispatcher.py

from __future__ import annotations

"""
Request dispatcher.

The foreground page talks to the store only through named requests:

    get-tiles        -> {"tiles": [...], "list": [tile urls]}
    put-tile         -> stored tile
    remove-tile      -> {"ok": True}
    get-background   -> background or None
    set-background   -> {"ok": True}
    save-thumbnail   -> None (fire-and-forget)
    get-thumbnails   -> {url: image}

Host message names (Tiles.getAllTiles, Thumbnails.save, ...) are accepted as aliases.

The store opens in the background. get-tiles / get-background wait on the ready gate;
everything else relies on the store awaiting its own open().

Two ambient feeds are routed here too:
- navigation completed -> maybe ask the host to recapture a tile's thumbnail
- idle state changed   -> one expiry sweep, then the listener removes itself
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from ..core.events import EventFeed, IdleState, NavigationEvent
from ..core.ports import ExtensionHost
from ..errors import StoreOpenError, UnknownRequestError
from ..storage.models import Tile
from ..storage.store import NewTabStore
from ..thumbnails.cache import ThumbnailCache, today_string
from .gate import ReadyGate

logger = logging.getLogger(__name__)

Payload = dict[str, Any]
RequestHandler = Callable[[Payload], Awaitable[Any]]


def _as_blob(value: Any, request: str) -> bytes:
    # Text payloads (data URLs from JSON messages) are kept as their UTF-8 bytes.
    if isinstance(value, str):
        return value.encode("utf-8")
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value)
    raise ValueError(f"{request} expects binary or text data, got {type(value).__name__}")


@dataclass(slots=True)
class Request:
    name: str
    payload: Payload = field(default_factory=dict)

    @classmethod
    def from_message(cls, message: dict[str, Any]) -> Request:
        """Build from a host-style message: {"name": ..., <payload fields>}."""
        msg = dict(message or {})
        name = str(msg.pop("name", "") or "")
        return cls(name=name, payload=msg)


class Dispatcher:
    def __init__(
        self,
        store: NewTabStore,
        thumbnails: ThumbnailCache,
        host: ExtensionHost,
        *,
        navigation: EventFeed[NavigationEvent] | None = None,
        idle: EventFeed[str] | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.thumbnails = thumbnails
        self.host = host
        self.navigation = navigation if navigation is not None else EventFeed("navigation")
        self.idle = idle if idle is not None else EventFeed("idle")
        self.gate = ReadyGate("store")

        self._clock = clock
        self._open_task: asyncio.Task[None] | None = None
        self._background: set[asyncio.Task[Any]] = set()

        # Tile id -> url, in tile order. Refreshed by every tile request.
        self._tile_urls: dict[int, str] = {}
        self._tiles_loaded = False

        self._handlers: dict[str, RequestHandler] = {}
        self._register("get-tiles", self._get_tiles, aliases=["Tiles.getAllTiles"])
        self._register("put-tile", self._put_tile, aliases=["Tiles.putTile"])
        self._register("remove-tile", self._remove_tile, aliases=["Tiles.removeTile"])
        self._register("get-background", self._get_background, aliases=["Background.getBackground"])
        self._register("set-background", self._set_background, aliases=["Background.setBackground"])
        self._register("save-thumbnail", self._save_thumbnail, aliases=["Thumbnails.save"])
        self._register("get-thumbnails", self._get_thumbnails, aliases=["Thumbnails.get"])

    def _register(self, name: str, handler: RequestHandler, aliases: list[str] | None = None) -> None:
        self._handlers[name] = handler
        for alias in aliases or []:
            self._handlers[alias] = handler

    @property
    def request_names(self) -> list[str]:
        return sorted(self._handlers)

    @property
    def tile_urls(self) -> list[str]:
        return list(self._tile_urls.values())

    def today(self) -> str:
        return today_string(self._clock())

    # ---- lifecycle ----

    def start(self) -> asyncio.Task[None]:
        """
        Begin opening the store and subscribe to the ambient feeds.

        Requests may be handled right away; store-dependent ones wait for the gate.
        Calling start() again after a failed open retries it.
        """
        if self._open_task is None or (self._open_task.done() and not self.gate.is_ready):
            self._open_task = asyncio.create_task(self._open_store())
            self.navigation.add_listener(self.on_navigation_completed)
            self.arm_idle_sweep()
        return self._open_task

    async def _open_store(self) -> None:
        try:
            await self.store.open()
        except StoreOpenError as e:
            logger.error("Store failed to open; store requests will fail: %s", e)
            self.gate.fail(e)
            return
        except asyncio.CancelledError:
            logger.info("Store open cancelled.")
            self.gate.fail(StoreOpenError("store open cancelled"))
            raise
        self.gate.release()

    async def wait_ready(self) -> None:
        await self.gate.wait()

    async def drain(self) -> None:
        """Wait for fire-and-forget work started by earlier requests."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def stop(self) -> None:
        self.navigation.remove_listener(self.on_navigation_completed)
        self.idle.remove_listener(self._on_idle_state)
        await self.drain()

    # ---- requests ----

    async def handle(self, request: Request | str, payload: Payload | None = None) -> Any:
        if isinstance(request, str):
            request = Request(name=request, payload=dict(payload or {}))

        handler = self._handlers.get(request.name)
        if handler is None:
            raise UnknownRequestError(request.name)

        logger.debug("Request %s", request.name)
        return await handler(request.payload)

    async def handle_message(self, message: dict[str, Any]) -> Any:
        return await self.handle(Request.from_message(message))

    def _remember_tiles(self, tiles: list[Tile]) -> None:
        self._tile_urls = {t.id: t.url for t in tiles if t.url}
        self._tiles_loaded = True

    async def _get_tiles(self, payload: Payload) -> Payload:
        await self.gate.wait()
        tiles = await self.store.list_tiles()
        self._remember_tiles(tiles)
        return {"tiles": [t.to_message() for t in tiles], "list": self.tile_urls}

    async def _put_tile(self, payload: Payload) -> Payload:
        tile_in = payload.get("tile", payload)
        if not isinstance(tile_in, dict):
            raise ValueError("put-tile expects a tile object")

        tile = await self.store.put_tile(tile_in)
        if tile.url:
            self._tile_urls[tile.id] = tile.url
        else:
            self._tile_urls.pop(tile.id, None)
        return tile.to_message()

    async def _remove_tile(self, payload: Payload) -> Payload:
        ref = payload.get("tile", payload.get("id"))
        tile_id = ref.get("id") if isinstance(ref, dict) else ref
        if tile_id is None:
            raise ValueError("remove-tile expects a tile id")

        await self.store.remove_tile(int(tile_id))
        self._tile_urls.pop(int(tile_id), None)
        return {"ok": True}

    async def _get_background(self, payload: Payload) -> Payload | None:
        await self.gate.wait()
        background = await self.store.get_background()
        return background.to_message() if background else None

    async def _set_background(self, payload: Payload) -> Payload:
        blob = _as_blob(payload.get("file"), "set-background")
        await self.store.set_background(blob)
        return {"ok": True}

    async def _save_thumbnail(self, payload: Payload) -> None:
        url = str(payload.get("url") or "")
        image = payload.get("image")
        today = self.today()

        async def save() -> None:
            try:
                if not url:
                    raise ValueError("save-thumbnail expects a url")
                await self.thumbnails.save(url, _as_blob(image, "save-thumbnail"), today)
            except Exception:
                # Nobody awaits a save; the next navigation will try again.
                logger.exception("save-thumbnail failed url=%s", url)

        task = asyncio.create_task(save())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return None

    async def _get_thumbnails(self, payload: Payload) -> dict[str, bytes]:
        urls = payload.get("urls") or []
        if isinstance(urls, str):
            urls = [urls]
        return await self.thumbnails.fetch_many([str(u) for u in urls], self.today())

    # ---- ambient feeds ----

    async def on_navigation_completed(self, event: NavigationEvent) -> bool:
        """
        Ask the host to recapture a tile page when its thumbnail is missing or from an earlier day.

        Returns True when a capture was requested.
        """
        if not self._tiles_loaded:
            await self._get_tiles({})

        if not event.top_level or event.url not in self._tile_urls.values():
            return False

        if await self.host.is_incognito(event.tab_id):
            return False

        if not await self.thumbnails.needs_capture(event.url, self.today()):
            return False

        logger.info("Requesting thumbnail capture tab=%s url=%s", event.tab_id, event.url)
        await self.host.request_capture(tab_id=event.tab_id, url=event.url)
        return True

    @property
    def idle_sweep_armed(self) -> bool:
        return self.idle.has_listener(self._on_idle_state)

    def arm_idle_sweep(self) -> None:
        """Run one expiry sweep on the next transition into idle."""
        self.idle.add_listener(self._on_idle_state)

    async def _on_idle_state(self, state: str) -> None:
        if IdleState.parse(state) is not IdleState.IDLE:
            return
        self.idle.remove_listener(self._on_idle_state)
        await self.sweep()

    async def sweep(self) -> int:
        return await self.thumbnails.sweep_expired(self._clock())
