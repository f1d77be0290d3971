# src/newtab_tools/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, then starts:
- the async service (dispatcher + upgrade check) in a background thread,
- the console REPL in the main thread (optional).
"""

from __future__ import annotations

import logging
import signal
import threading

from ..cli.bootstrap import create_initial_state
from ..cli.service import start_service_in_background
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (version %s)...", settings.app_name, settings.extension_version)

    state = create_initial_state(settings=settings)

    runner = start_service_in_background(state)
    if runner is None:
        logger.error("Service did not start; exiting.")
        raise SystemExit(1)

    stop_main = threading.Event()

    def _handle_signal(signum, _frame) -> None:
        logger.info("Signal %s received, shutting down...", signum)
        stop_main.set()

    try:
        signal.signal(signal.SIGINT, _handle_signal)
        signal.signal(signal.SIGTERM, _handle_signal)
    except (ValueError, OSError):
        # Not in the main thread, or the platform lacks the signal.
        pass

    try:
        if settings.console_enabled:
            run_console_loop(state, runner.submit)
        else:
            logger.info("Console disabled. Serving in the background. Press Ctrl+C to stop.")
            stop_main.wait()
    finally:
        runner.stop()
        runner.join(timeout=10.0)
        logger.info("Bye.")


if __name__ == "__main__":
    main()
