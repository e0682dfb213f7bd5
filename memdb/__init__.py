"""memdb: an embedded, file-backed hierarchical document store."""

from .config import VERSION as __version__
from .config import StoreOptions
from .engine import Store, open_store
from .errors import (
    BadKeyFormat,
    DecryptionError,
    FileError,
    KeyNotFound,
    MemDbError,
    ReservedKey,
    StoreClosed,
)

open = open_store

__all__ = [
    "__version__",
    "open",
    "open_store",
    "Store",
    "StoreOptions",
    "MemDbError",
    "BadKeyFormat",
    "KeyNotFound",
    "ReservedKey",
    "FileError",
    "DecryptionError",
    "StoreClosed",
]
