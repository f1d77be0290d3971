# src/newtab_tools/connectors/local_host.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CaptureRequest:
    tab_id: int
    url: str


@dataclass(slots=True)
class LocalHost:
    """
    ExtensionHost used when running outside a browser (CLI / demos).

    - the running version comes from settings
    - there are no private tabs
    - capture requests are only recorded; nothing produces images here
    """

    version: str
    incognito_tabs: set[int] = field(default_factory=set)
    captures: list[CaptureRequest] = field(default_factory=list)

    async def current_version(self) -> str:
        return self.version

    async def is_incognito(self, tab_id: int) -> bool:
        return int(tab_id) in self.incognito_tabs

    async def request_capture(self, *, tab_id: int, url: str) -> None:
        self.captures.append(CaptureRequest(tab_id=int(tab_id), url=url))
        logger.info("Capture requested tab=%s url=%s (no capture routine in local host)", tab_id, url)
