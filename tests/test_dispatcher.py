# tests/test_dispatcher.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from pathlib import Path

import pytest

from newtab_tools.core.events import IdleState, NavigationEvent
from newtab_tools.dispatch.dispatcher import Dispatcher, Request
from newtab_tools.dispatch.gate import ReadyGate
from newtab_tools.errors import StoreOpenError, UnknownRequestError
from newtab_tools.storage.store import NewTabStore
from newtab_tools.thumbnails.cache import ThumbnailCache

from .fakes import FakeHost

TILE_URL = "https://example.com/"


async def _start(dispatcher: Dispatcher) -> None:
    dispatcher.start()
    await dispatcher.wait_ready()


@pytest.mark.asyncio
async def test_end_to_end_queued_get_tiles_then_put(dispatcher: Dispatcher) -> None:
    # Issued before the store starts opening: must be queued, not dropped.
    early = asyncio.create_task(dispatcher.handle("get-tiles"))
    await asyncio.sleep(0)
    assert dispatcher.gate.pending == 1
    assert not early.done()

    dispatcher.start()
    assert await early == {"tiles": [], "list": []}

    stored = await dispatcher.handle("put-tile", {"tile": {"title": "x"}})
    assert stored == {"id": 1, "title": "x"}

    resp = await dispatcher.handle("get-tiles")
    assert resp["tiles"] == [{"id": 1, "title": "x"}]


@pytest.mark.asyncio
async def test_queued_requests_are_released_in_order(dispatcher: Dispatcher) -> None:
    order: list[str] = []

    async def call(name: str) -> None:
        await dispatcher.handle(name)
        order.append(name)

    tasks = [
        asyncio.create_task(call("get-tiles")),
        asyncio.create_task(call("get-background")),
    ]
    await asyncio.sleep(0)
    assert dispatcher.gate.pending == 2

    dispatcher.start()
    await asyncio.gather(*tasks)
    assert set(order) == {"get-tiles", "get-background"}
    assert dispatcher.gate.pending == 0


@pytest.mark.asyncio
async def test_after_ready_requests_skip_the_queue(dispatcher: Dispatcher) -> None:
    await _start(dispatcher)
    assert dispatcher.gate.is_ready

    task = asyncio.create_task(dispatcher.handle("get-tiles"))
    await asyncio.sleep(0)
    assert dispatcher.gate.pending == 0
    assert (await task)["tiles"] == []


@pytest.mark.asyncio
async def test_host_message_aliases(dispatcher: Dispatcher) -> None:
    await _start(dispatcher)

    tile = await dispatcher.handle_message(
        {"name": "Tiles.putTile", "tile": {"title": "Example", "url": TILE_URL}}
    )
    resp = await dispatcher.handle_message({"name": "Tiles.getAllTiles"})

    assert resp["tiles"] == [tile]
    assert resp["list"] == [TILE_URL]

    assert await dispatcher.handle_message({"name": "Tiles.removeTile", "tile": tile}) == {"ok": True}
    assert dispatcher.tile_urls == []


@pytest.mark.asyncio
async def test_unknown_request(dispatcher: Dispatcher) -> None:
    with pytest.raises(UnknownRequestError):
        await dispatcher.handle(Request(name="Tiles.explode"))


@pytest.mark.asyncio
async def test_background_round_trip(dispatcher: Dispatcher) -> None:
    await _start(dispatcher)
    assert await dispatcher.handle("get-background") is None

    assert await dispatcher.handle("set-background", {"file": b"\x89PNG"}) == {"ok": True}

    bg = await dispatcher.handle("get-background")
    assert bg["data"] == b"\x89PNG"


@pytest.mark.asyncio
async def test_set_background_rejects_non_blob(dispatcher: Dispatcher) -> None:
    await _start(dispatcher)
    with pytest.raises(ValueError):
        await dispatcher.handle("set-background", {"file": 42})
    with pytest.raises(ValueError):
        await dispatcher.handle("set-background", {})


@pytest.mark.asyncio
async def test_text_payloads_from_json_messages_are_stored(
    dispatcher: Dispatcher, store: NewTabStore
) -> None:
    await _start(dispatcher)
    data_url = "data:image/png;base64,AAAA"

    assert (
        await dispatcher.handle_message({"name": "Thumbnails.save", "url": TILE_URL, "image": data_url})
        is None
    )
    await dispatcher.drain()

    thumb = await store.get_thumbnail(TILE_URL)
    assert thumb is not None
    assert thumb.image == data_url.encode("utf-8")

    await dispatcher.handle_message({"name": "Background.setBackground", "file": data_url})
    bg = await dispatcher.handle_message({"name": "Background.getBackground"})
    assert bg["data"] == data_url.encode("utf-8")


@pytest.mark.asyncio
async def test_save_thumbnail_is_fire_and_forget(dispatcher: Dispatcher, store: NewTabStore) -> None:
    await _start(dispatcher)

    assert await dispatcher.handle("save-thumbnail", {"url": TILE_URL, "image": b"img"}) is None
    await dispatcher.drain()

    thumb = await store.get_thumbnail(TILE_URL)
    assert thumb is not None
    assert (thumb.stored, thumb.used) == ("2024-01-01", "2024-01-01")

    found = await dispatcher.handle("get-thumbnails", {"urls": [TILE_URL, "https://other/"]})
    assert found == {TILE_URL: b"img"}


@pytest.mark.asyncio
async def test_save_thumbnail_failure_is_logged_not_raised(dispatcher: Dispatcher, caplog) -> None:
    await _start(dispatcher)

    with caplog.at_level(logging.ERROR, logger="newtab_tools.dispatch.dispatcher"):
        assert await dispatcher.handle("save-thumbnail", {"url": TILE_URL}) is None
        await dispatcher.drain()

    assert "save-thumbnail failed" in caplog.text


@pytest.mark.asyncio
async def test_open_failure_propagates_to_waiting_callers(tmp_path: Path, host: FakeHost) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("x", "utf-8")
    store = NewTabStore(blocker / "newtab.sqlite3")
    dispatcher = Dispatcher(store, ThumbnailCache(store), host)

    early = asyncio.create_task(dispatcher.handle("get-tiles"))
    await asyncio.sleep(0)
    await dispatcher.start()

    with pytest.raises(StoreOpenError):
        await early
    with pytest.raises(StoreOpenError):
        await dispatcher.handle("get-background")


@pytest.mark.asyncio
async def test_cancelled_open_fails_waiting_callers(
    dispatcher: Dispatcher, store: NewTabStore, monkeypatch
) -> None:
    async def never_opens() -> None:
        await asyncio.Event().wait()

    monkeypatch.setattr(store, "open", never_opens)

    early = asyncio.create_task(dispatcher.handle("get-tiles"))
    await asyncio.sleep(0)
    open_task = dispatcher.start()
    await asyncio.sleep(0)

    open_task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await open_task

    with pytest.raises(StoreOpenError):
        await early
    assert dispatcher.gate.pending == 0


@pytest.mark.asyncio
async def test_gate_releases_exactly_once() -> None:
    gate = ReadyGate("test")
    waiter = asyncio.create_task(gate.wait())
    await asyncio.sleep(0)
    assert gate.pending == 1

    gate.release()
    gate.release()
    await waiter

    assert gate.is_ready
    assert gate.pending == 0
    await gate.wait()


# ---- navigation feed ----


@pytest.mark.asyncio
async def test_navigation_requests_capture_for_stale_tile(
    dispatcher: Dispatcher, host: FakeHost, thumbnails: ThumbnailCache
) -> None:
    await _start(dispatcher)
    await dispatcher.handle("put-tile", {"tile": {"url": TILE_URL}})

    await dispatcher.navigation.emit(NavigationEvent(url=TILE_URL, tab_id=7))
    assert [(c.tab_id, c.url) for c in host.captures] == [(7, TILE_URL)]

    # Captured today: nothing more to do.
    await thumbnails.save(TILE_URL, b"img", "2024-01-01")
    assert await dispatcher.on_navigation_completed(NavigationEvent(url=TILE_URL, tab_id=7)) is False

    # Captured yesterday: recapture.
    await thumbnails.save(TILE_URL, b"img", "2023-12-31")
    assert await dispatcher.on_navigation_completed(NavigationEvent(url=TILE_URL, tab_id=7)) is True


@pytest.mark.asyncio
async def test_navigation_loads_tiles_on_first_event(
    dispatcher: Dispatcher, store: NewTabStore, host: FakeHost
) -> None:
    await store.put_tile({"url": TILE_URL})
    await _start(dispatcher)

    assert await dispatcher.on_navigation_completed(NavigationEvent(url=TILE_URL, tab_id=1)) is True
    assert dispatcher.tile_urls == [TILE_URL]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "event",
    [
        NavigationEvent(url=TILE_URL, tab_id=1, frame_id=3),
        NavigationEvent(url="https://not-a-tile/", tab_id=1),
        NavigationEvent(url=TILE_URL, tab_id=99),
    ],
    ids=["subframe", "not-a-tile", "incognito"],
)
async def test_navigation_ignored(dispatcher: Dispatcher, host: FakeHost, event: NavigationEvent) -> None:
    host.incognito.add(99)
    await _start(dispatcher)
    await dispatcher.handle("put-tile", {"tile": {"url": TILE_URL}})

    assert await dispatcher.on_navigation_completed(event) is False
    assert host.captures == []


# ---- idle feed ----


@pytest.mark.asyncio
async def test_idle_sweeps_once_then_disarms(
    dispatcher: Dispatcher, thumbnails: ThumbnailCache, clock
) -> None:
    clock.now = datetime(2024, 2, 1, 10, 0)
    await _start(dispatcher)
    await thumbnails.save("https://old/", b"o", "2024-01-01")
    await thumbnails.save("https://new/", b"n", "2024-01-30")

    await dispatcher.idle.emit(IdleState.ACTIVE)
    assert dispatcher.idle_sweep_armed
    assert await thumbnails.get("https://old/") is not None

    await dispatcher.idle.emit("idle")
    assert not dispatcher.idle_sweep_armed
    assert await thumbnails.get("https://old/") is None
    assert await thumbnails.get("https://new/") is not None

    # A second idle transition does nothing until re-armed.
    await thumbnails.save("https://old/", b"o", "2024-01-01")
    await dispatcher.idle.emit("idle")
    assert await thumbnails.get("https://old/") is not None

    dispatcher.arm_idle_sweep()
    await dispatcher.idle.emit("idle")
    assert await thumbnails.get("https://old/") is None


@pytest.mark.asyncio
async def test_stop_unsubscribes_feeds(dispatcher: Dispatcher, host: FakeHost) -> None:
    await _start(dispatcher)
    await dispatcher.handle("put-tile", {"tile": {"url": TILE_URL}})
    await dispatcher.stop()

    await dispatcher.navigation.emit(NavigationEvent(url=TILE_URL, tab_id=1))
    assert host.captures == []
    assert not dispatcher.idle_sweep_armed
