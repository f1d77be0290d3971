# src/newtab_tools/core/events.py

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")

Listener = Callable[[E], Awaitable[None] | None]


class IdleState(StrEnum):
    ACTIVE = "active"
    IDLE = "idle"
    LOCKED = "locked"

    @classmethod
    def parse(cls, raw: str | None) -> IdleState:
        try:
            return cls((raw or "").strip().lower())
        except ValueError:
            return cls.ACTIVE


@dataclass(frozen=True, slots=True)
class NavigationEvent:
    """A page finished loading. frame_id == 0 means the top-level frame."""

    url: str
    tab_id: int
    frame_id: int = 0

    @property
    def top_level(self) -> bool:
        return self.frame_id == 0


class EventFeed(Generic[E]):
    """
    Listener list for an inbound host event.

    Listeners may be plain functions or coroutine functions. emit() awaits all of them;
    a failing listener is logged and does not stop the others.
    Listeners may remove themselves while being called.
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener[E]] = []

    def add_listener(self, listener: Listener[E]) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: Listener[E]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def has_listener(self, listener: Listener[E]) -> bool:
        return listener in self._listeners

    async def emit(self, event: E) -> None:
        for listener in list(self._listeners):
            try:
                result: Any = listener(event)
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("%s listener failed event=%r", self.name, event)
