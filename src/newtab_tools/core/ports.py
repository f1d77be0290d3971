# src/newtab_tools/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The browser/extension host is never touched directly; everything it provides
(running version, tab privacy, on-page thumbnail capture) goes through ExtensionHost.
This keeps the dispatcher testable with fakes and lets the CLI plug in a local host.
"""

from typing import Awaitable, Protocol


class ExtensionHost(Protocol):
    def current_version(self) -> Awaitable[str]:
        """Version string of the running extension build."""
        ...

    def is_incognito(self, tab_id: int) -> Awaitable[bool]: ...

    def request_capture(self, *, tab_id: int, url: str) -> Awaitable[None]:
        """
        Ask the page in `tab_id` to capture itself.

        The capture routine is opaque: it reports back later with a save-thumbnail request.
        """
        ...
