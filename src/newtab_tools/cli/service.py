# src/newtab_tools/cli/service.py

from __future__ import annotations

import asyncio
import contextlib
import logging
import threading
from collections.abc import Coroutine
from dataclasses import dataclass
from typing import Any, TypeVar

from ..core.state import AppState
from ..upgrade import check_for_upgrade

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def run_service(state: AppState, stop_event: asyncio.Event) -> None:
    """
    Background side of the app.

    - start the dispatcher (store opens in the background, requests queue until ready)
    - run the upgrade check once, in parallel with the open
    - keep serving until stop_event is set
    """
    open_task = state.dispatcher.start()

    try:
        await check_for_upgrade(state.prefs, state.host)
    except Exception:
        logger.exception("Upgrade check failed.")

    await stop_event.wait()

    if not open_task.done():
        open_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await open_task
    await state.dispatcher.stop()
    state.store.close()


@dataclass
class ServiceRunner:
    thread: threading.Thread
    loop: asyncio.AbstractEventLoop
    stop_event: asyncio.Event

    def submit(self, coro: Coroutine[Any, Any, T], timeout: float | None = 30.0) -> T:
        """Run a coroutine on the service loop and wait for its result (called from other threads)."""
        fut = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return fut.result(timeout=timeout)

    def stop(self) -> None:
        try:
            self.loop.call_soon_threadsafe(self.stop_event.set)
        except Exception:
            logger.debug("Failed to signal service stop.", exc_info=True)

    def join(self, timeout: float | None = None) -> None:
        self.thread.join(timeout=timeout)


def start_service_in_background(state: AppState) -> ServiceRunner | None:
    """
    Start the dispatcher in a background thread with its own event loop.

    Why a thread: the console REPL is blocking (input()), the dispatcher is async.
    """
    ready = threading.Event()
    holder: dict[str, object] = {}

    def runner() -> None:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        stop_event = asyncio.Event()

        holder["loop"] = loop
        holder["stop_event"] = stop_event
        ready.set()

        try:
            loop.run_until_complete(run_service(state, stop_event))
        except Exception:
            logger.exception("Service loop crashed.")
        finally:
            with contextlib.suppress(Exception):
                loop.stop()
            with contextlib.suppress(Exception):
                loop.close()

    t = threading.Thread(target=runner, name="newtab-service", daemon=True)
    t.start()

    ready.wait(timeout=5.0)
    loop = holder.get("loop")
    stop_event = holder.get("stop_event")

    if not isinstance(loop, asyncio.AbstractEventLoop) or not isinstance(stop_event, asyncio.Event):
        logger.error("Service thread did not initialize properly.")
        return None

    logger.info("Service background thread started.")
    return ServiceRunner(thread=t, loop=loop, stop_event=stop_event)
