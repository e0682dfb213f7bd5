"""Error taxonomy for memdb.

Every error carries a stable ``type`` code so callers can branch on it without
importing the concrete classes:

    BAD_KEY_FORMAT    key fails the dotted-path grammar
    RESERVED_KEY      key names the reserved "revision" field
    KEY_NOT_FOUND     strict traversal hit a missing segment
    FILE_ERROR        I/O failure while booting, loading or flushing
    DECRYPTION_ERROR  wrong passphrase or corrupt on-disk bytes
    STORE_CLOSED      the store was used after close()
"""

from __future__ import annotations

from typing import Optional


class MemDbError(Exception):
    """Base class for all memdb errors."""

    type = "MEMDB_ERROR"
    default_message = "An error occurred in memdb"

    def __init__(self, message: Optional[str] = None, cause: Optional[BaseException] = None) -> None:
        text = message or self.default_message
        if cause is not None:
            text += "\n" + str(cause)
        super().__init__(text)
        self.message = text
        self.cause = cause


class BadKeyFormat(MemDbError, ValueError):
    type = "BAD_KEY_FORMAT"
    default_message = "Invalid key specified!"


class ReservedKey(MemDbError, ValueError):
    type = "RESERVED_KEY"
    default_message = "The specified key is reserved!"


class KeyNotFound(MemDbError, LookupError):
    type = "KEY_NOT_FOUND"
    default_message = "The specified key was not found!"


class FileError(MemDbError):
    type = "FILE_ERROR"
    default_message = "A database file operation failed!"


class DecryptionError(MemDbError):
    type = "DECRYPTION_ERROR"
    default_message = "Unable to decode database contents!"


class StoreClosed(MemDbError, RuntimeError):
    type = "STORE_CLOSED"
    default_message = "The store has been closed!"
