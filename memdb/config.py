"""Store options and logging setup.

Environment:
    MEMDB_LOG_LEVEL  level name for the ``memdb`` logger (default: WARNING)

Logs go to STDERR only, never STDOUT, so a host application's output stays
clean.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import asdict, dataclass
from typing import Any, Dict, Mapping, Optional

VERSION = "0.1.0"
DEFAULT_STAGING_THRESHOLD = 600
LOG_LEVEL_ENV = "MEMDB_LOG_LEVEL"
_ROOT_LOGGER = "memdb"

# camelCase spellings are accepted alongside the field names.
_OPTION_ALIASES = {
    "staging_threshold": "staging_threshold",
    "stagingThreshold": "staging_threshold",
    "stagingSize": "staging_threshold",
    "encryption_key": "encryption_key",
    "encryptionKey": "encryption_key",
}


# --------------------------- Logging ---------------------------
def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a ``memdb`` logger, installing the stderr handler once."""
    root = logging.getLogger(_ROOT_LOGGER)
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
        root.addHandler(handler)
        root.setLevel(os.getenv(LOG_LEVEL_ENV, "WARNING").upper())
    return root if name is None else logging.getLogger(f"{_ROOT_LOGGER}.{name}")


# --------------------------- Options ---------------------------
def normalize_option_names(values: Mapping[str, Any]) -> Dict[str, Any]:
    """Map option names (snake_case or camelCase) onto StoreOptions fields."""
    kwargs: Dict[str, Any] = {}
    for name, value in values.items():
        field_name = _OPTION_ALIASES.get(name)
        if field_name is None:
            raise TypeError(f"Unknown store option '{name}'.")
        kwargs[field_name] = value
    return kwargs


@dataclass(frozen=True)
class StoreOptions:
    """Construction options for a store.

    Parameters
    ----------
    staging_threshold : int
        Pending log records allowed before an implicit flush. Default: 600.
    encryption_key : Optional[str]
        Passphrase enabling at-rest encryption. ``None`` stores plain JSON.
    """

    staging_threshold: int = DEFAULT_STAGING_THRESHOLD
    encryption_key: Optional[str] = None

    def __post_init__(self) -> None:
        threshold = self.staging_threshold
        if isinstance(threshold, bool) or not isinstance(threshold, int):
            raise TypeError("staging_threshold must be an integer.")
        if threshold < 1:
            raise ValueError("staging_threshold must be a positive integer.")
        if self.encryption_key is not None and not isinstance(self.encryption_key, str):
            raise TypeError("encryption_key must be a string or None.")
        if self.encryption_key == "":
            raise ValueError("encryption_key must not be empty.")

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "StoreOptions":
        """Build options from a mapping using snake_case or camelCase names."""
        return cls(**normalize_option_names(values))

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
