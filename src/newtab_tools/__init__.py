"""
Background store for a new-tab page replacement.

Components:
- storage/: SQLite-backed tiles, background and thumbnail collections + JSON prefs
- thumbnails/: thumbnail cache semantics (touch-on-read, expiry sweep)
- dispatch/: request/response routing and ambient event feeds
- upgrade.py: extension upgrade detection
"""

__version__ = "0.1.0"
