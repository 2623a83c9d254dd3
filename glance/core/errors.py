from __future__ import annotations
from typing import Optional

# Recoverable failures of the annotation persistence layer.
# Apart from DecodeError (raised by the codec and handled by the store) none of
# these are raised to callers; they are logged and handed to an optional
# on_error callback.


class PersistenceError(Exception):
    def __init__(self, message: str, key: Optional[str] = None, path: Optional[str] = None):
        super().__init__(message)
        self.key = key
        self.path = path


class IdentityUnresolvable(PersistenceError):
    """No document key could be derived (e.g. file metadata unreadable)."""


class DecodeError(PersistenceError, ValueError):
    """Stored bytes are not a valid annotation collection."""


class DecodeCorruption(PersistenceError):
    """A collection file could not be decoded even after repair."""


class WriteFailure(PersistenceError):
    """Writing or replacing a collection file failed."""


class StaleReference(PersistenceError):
    """A restored record points past the end of the current document."""

    def __init__(self, message: str, key: Optional[str] = None, record_id: Optional[str] = None,
                 page_index: Optional[int] = None, page_count: Optional[int] = None):
        super().__init__(message, key=key)
        self.record_id = record_id
        self.page_index = page_index
        self.page_count = page_count
