"""Dotted-path addressing over the document tree.

A key such as ``"server.port"`` names a location inside nested mappings:

    {"server": {"port": 3000}}
        ^^^^^^    ^^^^
        seg 0     seg 1 (terminal)

Grammar: one or more segments of ``[A-Za-z0-9_]+`` joined by single dots.

Traversal modes:
  - strict (default): every intermediate segment must already be a mapping,
    otherwise KeyNotFound is raised before anything is touched.
  - loose: missing (or non-mapping) intermediates are replaced by ``{}``.

``get`` treats only absent keys as missing. Stored ``0``, ``""``, ``False``,
``None`` and empty containers are ordinary values.
"""

from __future__ import annotations

import re
from typing import Any, List, MutableMapping

from .errors import BadKeyFormat, KeyNotFound
from .records import Action, Record

_KEY_RE = re.compile(r"[A-Za-z0-9_]+(?:\.[A-Za-z0-9_]+)*")

Tree = MutableMapping[str, Any]


class _Missing:
    def __repr__(self) -> str:
        return "MISSING"


# Sentinel so that ``None`` can be passed as an explicit default.
MISSING: Any = _Missing()


def resolve_path(key: Any) -> List[str]:
    """Split ``key`` into segments, raising BadKeyFormat if it is malformed."""
    if not isinstance(key, str) or not _KEY_RE.fullmatch(key):
        raise BadKeyFormat(f"Invalid key specified: {key!r}")
    return key.split(".")


def _walk_parent(tree: Tree, segments: List[str]) -> Tree:
    """Return the mapping holding the terminal segment (strict traversal)."""
    node = tree
    for seg in segments[:-1]:
        child = node.get(seg, MISSING)
        if not isinstance(child, MutableMapping):
            raise KeyNotFound(f"The specified key was not found: {'.'.join(segments)!r}")
        node = child
    return node


def put(tree: Tree, segments: List[str], value: Any, loose: bool = False) -> None:
    """Assign ``value`` at ``segments``, overwriting whatever was there."""
    if loose:
        node = tree
        for seg in segments[:-1]:
            child = node.get(seg, MISSING)
            if not isinstance(child, MutableMapping):
                child = node[seg] = {}
            node = child
    else:
        # Strict walk raises before any mutation.
        node = _walk_parent(tree, segments)
    node[segments[-1]] = value


def get(tree: Tree, segments: List[str], default: Any = MISSING) -> Any:
    """Return the value at ``segments`` (or ``default`` when it is absent)."""
    node: Any = tree
    for seg in segments:
        if not isinstance(node, MutableMapping) or seg not in node:
            if default is MISSING:
                raise KeyNotFound(
                    f"A value for the specified key was not found: {'.'.join(segments)!r}"
                )
            return default
        node = node[seg]
    return node


def delete(tree: Tree, segments: List[str]) -> None:
    """Remove the terminal entry at ``segments``; it must exist."""
    parent = _walk_parent(tree, segments)
    if segments[-1] not in parent:
        raise KeyNotFound(f"The specified key was not found: {'.'.join(segments)!r}")
    del parent[segments[-1]]


def apply_record(tree: Tree, record: Record) -> None:
    """Re-apply one log record through the same logic live writes use."""
    action = record.get("action")
    payload = record.get("payload")
    if not isinstance(payload, dict):
        raise ValueError(f"Malformed log record payload {payload!r}")
    segments = resolve_path(payload.get("key"))
    if action == Action.INSERT:
        put(tree, segments, payload.get("value"), bool(payload.get("loose")))
    elif action == Action.DELETE:
        delete(tree, segments)
    else:
        raise ValueError(f"Unknown log action {action!r}")
