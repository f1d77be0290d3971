"""
Core building blocks shared by the rest of the app.

- versions.py: build/release identifier comparison
- ports.py: Protocols for the host environment
- events.py: minimal listener-based event feeds
- state.py: AppState wiring container
"""
