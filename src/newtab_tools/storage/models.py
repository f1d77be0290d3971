# src/newtab_tools/storage/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class Tile:
    """
    User-configured new-tab entry.

    `data` is caller-defined (title, url, colours, ...) and opaque to the store.
    """

    id: int
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def url(self) -> str | None:
        url = self.data.get("url")
        return url if isinstance(url, str) and url else None

    def to_message(self) -> dict[str, Any]:
        return {**self.data, "id": self.id}


@dataclass(frozen=True, slots=True)
class Background:
    id: int
    data: bytes
    created_at: float

    def to_message(self) -> dict[str, Any]:
        return {"id": self.id, "data": self.data, "created_at": self.created_at}


@dataclass(frozen=True, slots=True)
class Thumbnail:
    """
    Cached page preview.

    Dates are YYYY-MM-DD strings in process-local time, so string order == date order.
    - stored: date the image was captured
    - used:   date of the most recent read
    """

    url: str
    image: bytes
    stored: str
    used: str
