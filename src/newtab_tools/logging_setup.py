# src/newtab_tools/logging_setup.py

from __future__ import annotations

import logging
import sys
from pathlib import Path

LOG_FILE_NAME = "newtab.log"
LOG_FORMAT = "%(asctime)s.%(msecs)03d %(levelname)s %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Per-request chatter from these packages stays in the log file.
_QUIET_PACKAGES = ("newtab_tools.dispatch.", "newtab_tools.storage.")


class _ConsoleNoiseFilter(logging.Filter):
    """Console gets our own INFO+ records; request/store DEBUG and foreign records below ERROR go to the file only."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not record.name.startswith("newtab_tools."):
            return record.levelno >= logging.ERROR
        if record.name.startswith(_QUIET_PACKAGES):
            return record.levelno >= logging.INFO
        return True


def setup_logging(
    *,
    log_dir: str | Path = ".local/newtab",
    console_level: int = logging.INFO,
    file_level: int = logging.DEBUG,
) -> Path:
    """
    Route the root logger to stderr (filtered) and to <log_dir>/newtab.log (everything).

    Replaces any handlers already installed, so calling it twice does not duplicate output.
    Returns the log file path.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    for h in list(root.handlers):
        root.removeHandler(h)

    fmt = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(console_level)
    console.setFormatter(fmt)
    console.addFilter(_ConsoleNoiseFilter())
    root.addHandler(console)

    file_handler = logging.FileHandler(str(log_file), encoding="utf-8")
    file_handler.setLevel(file_level)
    file_handler.setFormatter(fmt)
    root.addHandler(file_handler)

    # warnings.warn() lands on "py.warnings", which the console filter treats as foreign.
    logging.captureWarnings(True)
    return log_file
