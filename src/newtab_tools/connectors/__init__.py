"""Host-side adapters: local host port and console REPL."""
