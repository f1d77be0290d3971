"""
Persistence.

- models.py: record types (Tile, Background, Thumbnail)
- store.py: SQLite store with the three collections
- prefs.py: small JSON preferences file (last-seen version)
"""
