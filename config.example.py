# config.example.py

"""
Documentation-only module (safe to commit).

The real configuration is loaded from environment variables (optionally via a local .env file).
This file exists to make the repo self-documenting even without opening .env.example.
"""

ENV_VARS = {
    # App / logging
    "NEWTAB_APP_NAME": "App display name (default: newtab-tools).",
    "NEWTAB_LOG_LEVEL": "Console logging level (default: INFO).",
    # Host
    "NEWTAB_EXTENSION_VERSION": "Version reported by the local host (default: package version).",
    "NEWTAB_CONSOLE_ENABLED": "Run the console REPL (true/false, default: true).",
    # Paths (gitignored)
    "NEWTAB_DATA_DIR": "Local data directory (default: .local/newtab).",
    "NEWTAB_DB_PATH": "Store SQLite path (default: <data_dir>/newtab.sqlite3).",
    "NEWTAB_PREFS_PATH": "Preferences JSON path (default: <data_dir>/prefs.json).",
    # Thumbnails
    "NEWTAB_THUMBNAIL_RETENTION_DAYS": "Days a thumbnail may go unused before the idle sweep drops it (default: 14).",
}
