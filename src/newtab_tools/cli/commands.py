# src/newtab_tools/cli/commands.py

from __future__ import annotations

import logging
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any

from ..core.events import IdleState, NavigationEvent
from ..core.state import AppState
from ..errors import NewTabError

# Runs a coroutine on the service loop and returns its result.
Runner = Callable[[Coroutine[Any, Any, Any]], Any]
CommandHandler = Callable[[AppState, list[str], Runner], str]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /tiles, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, CommandHandler] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: CommandHandler,
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    def handle(self, state: AppState, line: str, run: Runner) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.
        """
        if not line.startswith("/"):
            return None

        parts = line[1:].split()
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            return handler(state, args, run)
        except (NewTabError, ValueError, OSError) as e:
            logger.info("Command /%s failed: %s", name, e)
            return f"/{name} failed: {e}"

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


def cmd_help(state: AppState, args: list[str], run: Runner) -> str:
    return registry.build_help()


def cmd_status(state: AppState, args: list[str], run: Runner) -> str:
    store = state.store
    lines = [
        f"Store: {store.db_path} ({'ready' if store.is_ready else 'opening'})",
        f"Tiles: {run(store.count_tiles())}",
        f"Thumbnails: {run(store.count_thumbnails())}",
        f"Version: {state.prefs.version or '-'}",
    ]
    last_update = state.prefs.version_last_update
    lines.append(f"Last update: {last_update.isoformat() if last_update else '-'}")
    return "\n".join(lines)


def cmd_tiles(state: AppState, args: list[str], run: Runner) -> str:
    resp = run(state.dispatcher.handle("get-tiles"))
    tiles = resp["tiles"]
    if not tiles:
        return "No tiles."
    lines = [f"Tiles ({len(tiles)}):"]
    for t in tiles:
        title = t.get("title") or "-"
        lines.append(f"  #{t['id']} {title} {t.get('url') or ''}".rstrip())
    return "\n".join(lines)


def cmd_add(state: AppState, args: list[str], run: Runner) -> str:
    if not args:
        return "Usage: /add <url> [title...]"
    tile: dict[str, Any] = {"url": args[0]}
    if len(args) > 1:
        tile["title"] = " ".join(args[1:])
    stored = run(state.dispatcher.handle("put-tile", {"tile": tile}))
    return f"Tile #{stored['id']} saved."


def cmd_remove(state: AppState, args: list[str], run: Runner) -> str:
    if not args or not args[0].isdigit():
        return "Usage: /remove <id>"
    run(state.dispatcher.handle("remove-tile", {"id": int(args[0])}))
    return f"Tile #{args[0]} removed."


def cmd_background(state: AppState, args: list[str], run: Runner) -> str:
    if args:
        path = Path(args[0]).expanduser()
        data = path.read_bytes()
        run(state.dispatcher.handle("set-background", {"file": data}))
        return f"Background set from {path} ({len(data)} bytes)."

    bg = run(state.dispatcher.handle("get-background"))
    if bg is None:
        return "No background set."
    return f"Background #{bg['id']}: {len(bg['data'])} bytes."


def cmd_thumbs(state: AppState, args: list[str], run: Runner) -> str:
    if args:
        found = run(state.dispatcher.handle("get-thumbnails", {"urls": args}))
        lines = [f"  {url}: {len(found[url])} bytes" if url in found else f"  {url}: -" for url in args]
        return "\n".join(["Thumbnails:", *lines])

    async def collect() -> list[str]:
        out: list[str] = []
        async for thumb in state.thumbnails.iter_entries():
            out.append(f"  {thumb.url} stored={thumb.stored} used={thumb.used} ({len(thumb.image)} bytes)")
        return out

    lines = run(collect())
    if not lines:
        return "No cached thumbnails."
    return "\n".join([f"Cached thumbnails ({len(lines)}):", *lines])


def cmd_navigate(state: AppState, args: list[str], run: Runner) -> str:
    if not args:
        return "Usage: /navigate <url> [tab_id]"
    tab_id = int(args[1]) if len(args) > 1 and args[1].isdigit() else 1
    event = NavigationEvent(url=args[0], tab_id=tab_id)
    requested = run(state.dispatcher.on_navigation_completed(event))
    return "Thumbnail capture requested." if requested else "No capture needed."


def cmd_idle(state: AppState, args: list[str], run: Runner) -> str:
    dispatcher = state.dispatcher
    armed = dispatcher.idle_sweep_armed
    run(dispatcher.idle.emit(IdleState.IDLE))
    if not armed:
        return "Idle reported; sweep already ran for this session."
    return "Idle reported; expired thumbnails swept."


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("status", cmd_status, help_text="Show store/version status.")
registry.register("tiles", cmd_tiles, help_text="List tiles.")
registry.register("add", cmd_add, help_text="Add a tile: /add <url> [title].")
registry.register("remove", cmd_remove, help_text="Remove a tile: /remove <id>.")
registry.register(
    "background", cmd_background, help_text="Show background, or set it: /background <path>."
)
registry.register(
    "thumbs", cmd_thumbs, help_text="List cached thumbnails, or read some: /thumbs <url>..."
)
registry.register(
    "navigate", cmd_navigate, help_text="Simulate a finished navigation: /navigate <url> [tab_id]."
)
registry.register("idle", cmd_idle, help_text="Simulate the system going idle (one sweep per arm).")
