# orbiter/runtime/errors.py
"""Error taxonomy for the traffic store.

Callers catch ``StoreError`` for anything raised by the store, or one of the
subclasses when they need to react differently:

- ``NotInitializedError``: the store was used before ``initialize()`` or after
  ``close()``. Programmer error, never retried.
- ``StoreInitError``: the database file could not be opened or the schema
  could not be created. Fatal at startup.
- ``StoreIOError``: a single query or write failed. The caller decides whether
  to retry; the store itself never does.
"""

from __future__ import annotations


class StoreError(Exception):
    """Base class for traffic store errors."""

    pass


class NotInitializedError(StoreError):
    """Raised when the store is used while no connection is open."""

    def __init__(self, message: str = "Database not initialized"):
        super().__init__(message)


class StoreInitError(StoreError):
    """Raised when the backing database cannot be opened or created."""

    pass


class StoreIOError(StoreError):
    """Raised when a query or write fails at the storage layer."""

    pass
