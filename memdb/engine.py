"""Store facade: coordinates the document tree, the path resolver and the
snapshot/log manager.

    store = open_store("./data", staging_threshold=100, encryption_key="s3cret")
    store.put("server.port", 3000, loose=True)
    store.get("server.port")            # 3000
    store.get("server.host", "0.0.0.0") # default
    store.delete("server.port")
"""

from __future__ import annotations

import copy
import threading
from functools import wraps
from typing import Any, Callable, Dict, List, Optional, TypeVar

from . import paths
from .codec import Codec, normalize
from .config import VERSION, StoreOptions, normalize_option_names
from .errors import ReservedKey, StoreClosed
from .records import delete_record, insert_record
from .storage import REVISION_FIELD, SnapshotLog

F = TypeVar("F", bound=Callable[..., Any])


def _locked(method: F) -> F:
    """Run ``method`` under the instance lock after checking the store is open."""

    @wraps(method)
    def wrapper(self: "Store", *args: Any, **kwargs: Any) -> Any:
        with self._lock:
            if self._closed:
                raise StoreClosed()
            return method(self, *args, **kwargs)

    return wrapper  # type: ignore[return-value]


class Store:
    """An open memdb directory.

    The instance owns the in-memory tree. Each public call holds a re-entrant
    lock for its whole validate -> mutate -> log/flush sequence, so calls from
    several threads never interleave.
    """

    def __init__(self, directory: str, options: Optional[StoreOptions] = None) -> None:
        """Open ``directory``, creating it or replaying its log as needed.

        Raises FileError or DecryptionError when the store cannot be opened.
        """
        self._version = VERSION
        self._options = options or StoreOptions()
        self._lock = threading.RLock()
        self._closed = False
        self._storage = SnapshotLog(
            directory,
            Codec(self._options.encryption_key),
            self._options.staging_threshold,
        )
        self._tree: Dict[str, Any] = self._storage.boot()

    def __repr__(self) -> str:
        return f"Store(directory={self.directory!r}, revision={self._tree[REVISION_FIELD]})"

    def __enter__(self) -> "Store":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @property
    def directory(self) -> str:
        return self._storage.directory

    # -------------------- Metadata --------------------
    @_locked
    def version(self) -> str:
        return self._version

    @_locked
    def options(self) -> StoreOptions:
        return self._options

    @_locked
    def revision(self) -> int:
        """Number of successful flushes since the store was created."""
        return self._tree[REVISION_FIELD]

    @_locked
    def pending(self) -> int:
        """Number of logged records not yet folded into the snapshot."""
        return self._storage.pending

    # -------------------- Public API --------------------
    @_locked
    def put(self, key: str, value: Any, loose: bool = False) -> None:
        """Store ``value`` at ``key``.

        With ``loose=False`` every intermediate segment must already exist;
        with ``loose=True`` missing intermediates are created as mappings.

        The value is stored in its JSON form (tuples become lists, mapping
        keys become strings), exactly as a reopened store will hold it.

        Raises BadKeyFormat, ReservedKey, KeyNotFound, or TypeError/ValueError
        for values that cannot be serialized. The tree is unchanged on any
        failure.
        """
        segments = self._resolve(key)
        # Store what the log will replay; unserializable values never reach the tree.
        value = normalize(value)
        paths.put(self._tree, segments, value, loose)
        self._storage.append(insert_record(key, value, loose), self._tree)

    @_locked
    def get(self, key: str, default: Any = paths.MISSING) -> Any:
        """Return a copy of the value at ``key``.

        Only absent keys count as missing: stored ``0``, ``""``, ``False`` and
        ``None`` are returned as-is. Raises KeyNotFound when the key is absent
        and no ``default`` is given.
        """
        segments = self._resolve(key)
        return copy.deepcopy(paths.get(self._tree, segments, default))

    @_locked
    def delete(self, key: str) -> None:
        """Remove ``key``. Raises BadKeyFormat, ReservedKey or KeyNotFound."""
        segments = self._resolve(key)
        paths.delete(self._tree, segments)
        self._storage.append(delete_record(key), self._tree)

    @_locked
    def all(self) -> Dict[str, Any]:
        """Return an independent copy of the whole tree, without ``revision``."""
        return {k: copy.deepcopy(v) for k, v in self._tree.items() if k != REVISION_FIELD}

    @_locked
    def flush(self) -> bool:
        """Fold pending records into the snapshot now; False if the write failed."""
        return self._storage.flush(self._tree)

    def close(self) -> None:
        """Release the store. Safe to call twice.

        Every later call, metadata accessors included, raises StoreClosed.

        Pending records are already durable in the log and are folded in by
        the next open, so close() does not flush.
        """
        with self._lock:
            self._closed = True

    # -------------------- Internal helpers --------------------
    @staticmethod
    def _resolve(key: str) -> List[str]:
        segments = paths.resolve_path(key)
        if segments[0] == REVISION_FIELD:
            raise ReservedKey(f"Key {key!r} is reserved for the revision counter!")
        return segments


def open_store(directory: str, options: Optional[StoreOptions] = None, **overrides: Any) -> Store:
    """Open (or create) the store at ``directory``.

    ``overrides`` accept snake_case or camelCase option names and take
    precedence over ``options``.
    """
    if overrides:
        merged = options.as_dict() if options else {}
        merged.update(normalize_option_names(overrides))
        options = StoreOptions(**merged)
    return Store(directory, options)
