"""Snapshot + log persistence for a memdb directory.

On-disk layout (one directory per store):
    <dir>/snapshot   encoded document tree, including its "revision" field
    <dir>/log        encoded list of pending log records

States:
  - Absent: the directory is missing (or holds neither file). It is created,
    the tree starts empty and a flush writes revision 0 plus an empty log.
  - Present: both files are read and decoded, pending records are sorted by
    timestamp and replayed onto the snapshot tree, then a flush folds them in.

Error policy:
  - Boot: unreadable files raise FileError, undecodable contents raise
    DecryptionError. Both are fatal to open.
  - Open: a failed write is logged at ERROR and never raised. The in-memory
    state stays valid and the next write or flush retries it.

Durability:
  - Every file write goes to "<name>.tmp", is fsync'ed, then os.replace()'d
    over the target, so a reader only ever sees a complete old or new file.
  - The directory is fsync'ed (best-effort) after each replace so the rename
    survives a crash.
"""

from __future__ import annotations

import os
from typing import Any, Dict, List, Tuple

from . import paths
from .codec import Codec
from .config import get_logger
from .errors import DecryptionError, FileError, KeyNotFound
from .records import Record, sort_records

# --------------------------- Logging ---------------------------
_logger = get_logger("storage")

# --------------------------- Defaults --------------------------
SNAPSHOT_FILENAME = "snapshot"
LOG_FILENAME = "log"
REVISION_FIELD = "revision"
_ENCODING = "utf-8"
_TMP_SUFFIX = ".tmp"


class SnapshotLog:
    """Owns the snapshot/log file pair and the list of pending records.

    Parameters
    ----------
    directory : str
        Store directory; created on first boot.
    codec : Codec
        Encodes the tree and the record list for disk.
    staging_threshold : int
        Pending record count that triggers an implicit flush in append().
    """

    def __init__(self, directory: str, codec: Codec, staging_threshold: int) -> None:
        self.directory = os.fspath(directory)
        self.snapshot_path = os.path.join(self.directory, SNAPSHOT_FILENAME)
        self.log_path = os.path.join(self.directory, LOG_FILENAME)
        self.codec = codec
        self.staging_threshold = staging_threshold
        self._pending: List[Record] = []

    def __repr__(self) -> str:
        return (
            f"SnapshotLog(directory={self.directory!r}, codec={self.codec!r}, "
            f"staging_threshold={self.staging_threshold}, pending={len(self._pending)})"
        )

    @property
    def pending(self) -> int:
        """Number of records logged since the last successful flush."""
        return len(self._pending)

    # ------------------------- Public API -------------------------

    def boot(self) -> Dict[str, Any]:
        """Load (or create) the store and return the live document tree.

        Raises
        ------
        FileError
            If the directory or its files cannot be created, read or flushed.
        DecryptionError
            If the files cannot be decoded with the configured codec.
        """
        has_snapshot = os.path.exists(self.snapshot_path)
        has_log = os.path.exists(self.log_path)

        if not has_snapshot and not has_log:
            return self._create()

        if not (has_snapshot and has_log):
            missing = self.log_path if has_snapshot else self.snapshot_path
            raise FileError(f"Unable to read database files! Missing {missing}")

        tree, records = self._load()
        self._pending = records
        self._replay(tree, records)
        if not self.flush(tree):
            raise FileError("Unable to save database state after replay!")
        _logger.info(
            "Opened %s at revision %d (%d records replayed).",
            self.directory, tree[REVISION_FIELD], len(records),
        )
        return tree

    def append(self, record: Record, tree: Dict[str, Any]) -> None:
        """Stage one record already applied to ``tree`` and persist it.

        Reaching the staging threshold flushes instead of rewriting the log.
        If that flush fails, the log is rewritten so the record stays durable.
        """
        self._pending.append(record)
        if len(self._pending) >= self.staging_threshold and self.flush(tree):
            return
        try:
            self._write(self.log_path, self.codec.encode(self._pending))
        except FileError as e:
            _logger.error("%s Pending records: %d.", e, len(self._pending))

    def flush(self, tree: Dict[str, Any]) -> bool:
        """Fold pending records into the snapshot and truncate the log.

        The tree already reflects every pending record, so a flush only bumps
        the revision and rewrites both files. On failure the pending list is
        restored and False is returned. The revision is restored only if the
        snapshot was not written: once it is on disk, memory keeps its
        revision, and the still-logged records replay onto it harmlessly.
        """
        saved_revision = tree[REVISION_FIELD]
        saved_pending = self._pending
        snapshot_written = False
        try:
            tree[REVISION_FIELD] = saved_revision + 1
            self._pending = []
            self._write(self.snapshot_path, self.codec.encode(tree))
            snapshot_written = True
            self._write(self.log_path, self.codec.encode([]))
        except FileError as e:
            if not snapshot_written:
                tree[REVISION_FIELD] = saved_revision
            self._pending = saved_pending
            _logger.error("Unable to save current database state, will retry ...\n%s", e)
            return False
        _logger.debug("Flushed %s to revision %d.", self.directory, tree[REVISION_FIELD])
        return True

    # ----------------------- Internal helpers ----------------------

    def _create(self) -> Dict[str, Any]:
        try:
            os.makedirs(self.directory, exist_ok=True)
        except OSError as e:
            raise FileError("Unable to create your database!", e) from e
        self._fsync_dir(os.path.dirname(os.path.abspath(self.directory)))

        # First flush advances -1 -> 0.
        tree: Dict[str, Any] = {REVISION_FIELD: -1}
        if not self.flush(tree):
            raise FileError("Unable to create your database!")
        _logger.info("Created database at %s.", self.directory)
        return tree

    def _load(self) -> Tuple[Dict[str, Any], List[Record]]:
        try:
            with open(self.snapshot_path, "r", encoding=_ENCODING) as fh:
                snapshot_text = fh.read()
            with open(self.log_path, "r", encoding=_ENCODING) as fh:
                log_text = fh.read()
        except (OSError, UnicodeError) as e:
            raise FileError("Unable to read database files!", e) from e

        tree = self.codec.decode(snapshot_text)
        records = self.codec.decode(log_text)

        revision = tree.get(REVISION_FIELD) if isinstance(tree, dict) else None
        if isinstance(revision, bool) or not isinstance(revision, int) or revision < 0:
            raise DecryptionError("Snapshot does not contain a valid document tree!")
        if not isinstance(records, list) or not all(isinstance(r, dict) for r in records):
            raise DecryptionError("Log does not contain a valid record list!")
        return tree, sort_records(records)

    def _replay(self, tree: Dict[str, Any], records: List[Record]) -> None:
        """Re-apply records in timestamp order, as live writes applied them."""
        for position, record in enumerate(records):
            try:
                paths.apply_record(tree, record)
            except (KeyNotFound, ValueError) as e:
                # Such a record never changed the tree when it was first applied.
                _logger.debug("Skipping log record %d during replay: %s", position, e)

    def _write(self, path: str, text: str) -> None:
        """Atomically replace ``path`` with ``text`` (tmp file + fsync + rename)."""
        tmp_path = path + _TMP_SUFFIX
        try:
            with open(tmp_path, "w", encoding=_ENCODING, newline="") as fh:
                fh.write(text)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, path)
        except OSError as e:
            raise FileError(f"Unable to write {path}!", e) from e
        self._fsync_dir(self.directory)

    @staticmethod
    def _fsync_dir(directory: str) -> None:
        try:
            dir_fd = os.open(directory, os.O_RDONLY)
            try:
                os.fsync(dir_fd)
            finally:
                os.close(dir_fd)
        except OSError:
            # Non-fatal; some filesystems don't allow this
            _logger.debug("Directory fsync skipped (not supported).")
