"""
Three-way merge of resource dicts.

Used when a guarded write loses a race: ``base`` is the object as we
last observed it, ``ours`` is what we wanted to write, ``theirs`` is what
the cluster holds now. A field changed on one side only takes that
side's value; a field changed identically on both sides is fine; a field
changed differently on both sides is a real conflict.
"""

from __future__ import annotations

import copy
from typing import Any

from kubeship.core.errors import ApplyConflict

_MISSING: Any = object()

# Server-managed fields never take part in the merge.
_VOLATILE_METADATA = ("resourceVersion", "generation", "managedFields", "uid", "creationTimestamp")


def merge_values(base: Any, ours: Any, theirs: Any, path: str = "") -> Any:
    """Merge one value; returns ``_MISSING`` when the result is absent."""
    if ours == theirs:
        return ours
    if ours == base:
        return theirs
    if theirs == base:
        return ours

    if isinstance(ours, dict) and isinstance(theirs, dict):
        base_dict = base if isinstance(base, dict) else {}
        merged: dict[str, Any] = {}
        for key in sorted(set(base_dict) | set(ours) | set(theirs)):
            value = merge_values(
                base_dict.get(key, _MISSING),
                ours.get(key, _MISSING),
                theirs.get(key, _MISSING),
                f"{path}.{key}" if path else key,
            )
            if value is not _MISSING:
                merged[key] = value
        return merged

    raise ApplyConflict(f"Conflicting concurrent edit at '{path or '<root>'}'", path=path)


def _stable(obj: dict[str, Any]) -> dict[str, Any]:
    stable = copy.deepcopy(obj)
    stable.pop("status", None)
    meta = stable.get("metadata") or {}
    for key in _VOLATILE_METADATA:
        meta.pop(key, None)
    return stable


def three_way_merge(base: dict[str, Any], ours: dict[str, Any], theirs: dict[str, Any]) -> dict[str, Any]:
    """Merge resource dicts, carrying the live object's server-managed fields.

    Raises:
        ApplyConflict: Both sides changed the same field differently.
    """
    merged = merge_values(_stable(base), _stable(ours), _stable(theirs))
    live_meta = theirs.get("metadata") or {}
    merged.setdefault("metadata", {})
    for key in ("resourceVersion", "uid"):
        if key in live_meta:
            merged["metadata"][key] = live_meta[key]
    return merged
