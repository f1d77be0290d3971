"""Thumbnail cache built on the store's thumbnail collection."""
