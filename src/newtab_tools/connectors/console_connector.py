# src/newtab_tools/connectors/console_connector.py

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from ..cli.commands import Runner
from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..errors import NewTabError

logger = logging.getLogger(__name__)


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return f"<{len(value)} bytes>"
    return repr(value)


def handle_json_line(state: AppState, line: str, run: Runner) -> str:
    """
    Treat `line` as a raw host message, e.g. {"name": "get-tiles"}.

    Returns the JSON-encoded response (binary fields shown by size).
    """
    try:
        message = json.loads(line)
    except ValueError as e:
        return f"Invalid JSON: {e}"
    if not isinstance(message, dict):
        return "A message must be a JSON object with a \"name\" field."

    try:
        response = run(state.dispatcher.handle_message(message))
    except (NewTabError, ValueError) as e:
        logger.info("Message %r failed: %s", message.get("name"), e)
        return f"Request failed: {e}"
    return json.dumps(response, ensure_ascii=False, default=_json_default)


def run_console_loop(state: AppState, run: Runner) -> None:
    logger.info("Console connector started.")
    _print_ts("[CONSOLE] Use /help for commands, or type a JSON message. Use /exit to quit.\n")

    while True:
        try:
            user_input = input(">>> ").strip()
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        try:
            if user_input.startswith("{"):
                reply = handle_json_line(state, user_input, run)
            else:
                reply = command_registry.handle(state, user_input, run)
        except Exception:
            logger.exception("Console handler crashed.")
            reply = "Internal error while handling the input."

        if reply is None:
            reply = "Not a command. Use /help to list available commands."
        _print_ts(reply)

    logger.info("Console connector finished.")
