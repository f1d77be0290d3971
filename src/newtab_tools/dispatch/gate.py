# src/newtab_tools/dispatch/gate.py

from __future__ import annotations

import asyncio
import logging
from collections import deque

logger = logging.getLogger(__name__)


class ReadyGate:
    """
    Deferred-readiness queue.

    Lifecycle:
    - created empty and closed
    - wait() before readiness enqueues a future (FIFO)
    - release() wakes every waiter in order, exactly once; fail() rejects them instead
    - after that the queue is dropped: wait() returns at once (or raises the open error)
    """

    def __init__(self, name: str = "store") -> None:
        self.name = name
        self._waiting: deque[asyncio.Future[None]] | None = deque()
        self._ready = False
        self._error: BaseException | None = None

    @property
    def is_ready(self) -> bool:
        return self._ready

    @property
    def pending(self) -> int:
        return len(self._waiting) if self._waiting is not None else 0

    async def wait(self) -> None:
        if self._ready:
            return
        if self._error is not None:
            raise self._error
        assert self._waiting is not None

        fut: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._waiting.append(fut)
        await fut

    def release(self) -> None:
        if self._ready:
            return
        self._ready = True
        self._error = None
        waiting, self._waiting = self._waiting, None
        n = 0
        while waiting:
            fut = waiting.popleft()
            if not fut.done():
                fut.set_result(None)
                n += 1
        logger.debug("%s gate released waiters=%s", self.name, n)

    def fail(self, error: BaseException) -> None:
        if self._ready:
            return
        self._error = error
        waiting, self._waiting = self._waiting, deque()
        while waiting:
            fut = waiting.popleft()
            if not fut.done():
                fut.set_exception(error)
        logger.debug("%s gate failed error=%r", self.name, error)
