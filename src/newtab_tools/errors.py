# src/newtab_tools/errors.py

from __future__ import annotations


class NewTabError(Exception):
    """Base class for errors raised by newtab_tools."""


class StoreOpenError(NewTabError):
    """
    The persistent store could not be created or opened.

    Fatal for store users: nothing that needs the store can proceed until open() is retried.
    """


class OperationError(NewTabError):
    """A single read/write failed against the medium. Other operations are unaffected."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        super().__init__(f"{operation} failed: {cause!r}" if cause else f"{operation} failed")
        self.operation = operation
        self.cause = cause


class UnknownRequestError(NewTabError):
    """Dispatcher received a request name it does not route."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown request: {name!r}")
        self.name = name
