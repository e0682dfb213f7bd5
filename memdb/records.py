"""Log records: one durable entry per mutation not yet folded into the snapshot.

On-disk shape (inside the encoded log list):
    {"timestamp": <ms since epoch>, "action": 1,  "payload": {"key": k, "value": v, "loose": b}}
    {"timestamp": <ms since epoch>, "action": -1, "payload": {"key": k}}
"""

from __future__ import annotations

import time
from enum import IntEnum
from typing import Any, Dict

Record = Dict[str, Any]


class Action(IntEnum):
    INSERT = 1
    DELETE = -1


def now_ms() -> int:
    return int(time.time() * 1000)


def insert_record(key: str, value: Any, loose: bool) -> Record:
    return {
        "timestamp": now_ms(),
        "action": int(Action.INSERT),
        "payload": {"key": key, "value": value, "loose": bool(loose)},
    }


def delete_record(key: str) -> Record:
    return {
        "timestamp": now_ms(),
        "action": int(Action.DELETE),
        "payload": {"key": key},
    }


def sort_records(records: list) -> list:
    """Order records by timestamp; ties keep their logged order (stable sort)."""
    return sorted(records, key=lambda r: r.get("timestamp", 0))
