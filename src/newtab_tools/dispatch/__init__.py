"""
Request routing.

- gate.py: deferred-readiness queue for store-dependent requests
- dispatcher.py: named request handlers + navigation/idle feed handlers
"""
