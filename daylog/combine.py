"""
Merge strategies for combining stored content with new partial data.

combine_data(old, new, strategy) never mutates its inputs. A value of
ABSENT in ``new`` marks a key for deletion under the strategies that
accept new keys.
"""

import copy
from typing import Any

from .errors import UpdateStrategyError


class _Absent:
    """Marker for 'remove this key'. Compares equal only to itself."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABSENT"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


ABSENT = _Absent()

# Keys the store needs; useNew keeps them from the old content
FRAMEWORK_KEYS = ("_id",)

UPDATE_STRATEGIES = frozenset({
    "update",
    "preferNew",
    "deepUpdate",
    "preferOld",
    "append",
    "prepend",
    "merge",
    "remove",
    "useNew",
    "useOld",
})


def _as_list(value: Any) -> list:
    return list(value) if isinstance(value, (list, tuple)) else [value]


def strip_absent(value: Any) -> Any:
    """Deep copy of value with every ABSENT-valued key dropped."""
    if isinstance(value, dict):
        return {k: strip_absent(v) for k, v in value.items() if v is not ABSENT}
    if isinstance(value, list):
        return [strip_absent(item) for item in value if item is not ABSENT]
    return copy.deepcopy(value)


def _update(old: dict, new: dict) -> dict:
    result = copy.deepcopy(old)
    for key, value in new.items():
        if value is ABSENT:
            result.pop(key, None)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _deep_update(old: dict, new: dict) -> dict:
    result = copy.deepcopy(old)
    for key, value in new.items():
        if value is ABSENT:
            result.pop(key, None)
        elif isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = _deep_update(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def _prefer_old(old: dict, new: dict) -> dict:
    result = copy.deepcopy(old)
    for key, value in new.items():
        if key not in result and value is not ABSENT:
            result[key] = copy.deepcopy(value)
    return result


def _sequence_merge(old: dict, new: dict, *, before: bool = False, unique: bool = False) -> dict:
    result = copy.deepcopy(old)
    for key, value in new.items():
        current = result.get(key)
        if value is ABSENT:
            result.pop(key, None)
        elif isinstance(current, list):
            additions = copy.deepcopy(_as_list(value))
            if unique:
                kept = []
                for item in additions:
                    if item not in current and item not in kept:
                        kept.append(item)
                additions = kept
            result[key] = additions + current if before else current + additions
        else:
            result[key] = copy.deepcopy(value)
    return result


def _remove(old: dict, new: dict) -> dict:
    result = copy.deepcopy(old)
    for key, value in new.items():
        if key not in result:
            continue
        current = result[key]
        if value is ABSENT:
            del result[key]
        elif isinstance(current, list):
            doomed = _as_list(value)
            result[key] = [item for item in current if item not in doomed]
        elif current == value:
            del result[key]
    return result


def _use_new(old: dict, new: dict) -> dict:
    result = strip_absent(new)
    for key in FRAMEWORK_KEYS:
        if key in old and key not in new:
            result[key] = copy.deepcopy(old[key])
    return result


def combine_data(
    old: dict[str, Any],
    new: dict[str, Any],
    strategy: str = "update",
) -> dict[str, Any]:
    """
    Combine existing content with new data.

    Strategies:
        update / preferNew: new values win; nested containers are replaced
        deepUpdate: like update, but nested dicts are merged recursively
        preferOld: only keys missing from old are taken from new
        append / prepend: lists in old are extended with the new value(s)
        merge: like append, skipping values already present
        remove: take the new value(s) out of old lists, or drop equal keys
        useNew: the new data, keeping framework keys from old
        useOld: the old data unchanged

    Args:
        old: Stored content
        new: Incoming partial data
        strategy: One of UPDATE_STRATEGIES

    Returns:
        The merged content (a new dict)

    Raises:
        UpdateStrategyError: If strategy is not a known name
    """
    if strategy in ("update", "preferNew"):
        return _update(old, new)
    if strategy == "deepUpdate":
        return _deep_update(old, new)
    if strategy == "preferOld":
        return _prefer_old(old, new)
    if strategy == "append":
        return _sequence_merge(old, new)
    if strategy == "prepend":
        return _sequence_merge(old, new, before=True)
    if strategy == "merge":
        return _sequence_merge(old, new, unique=True)
    if strategy == "remove":
        return _remove(old, new)
    if strategy == "useNew":
        return _use_new(old, new)
    if strategy == "useOld":
        return copy.deepcopy(old)
    raise UpdateStrategyError(strategy)


def is_no_diff(old: Any, merged: Any) -> bool:
    """True when a merge changed nothing (deep structural equality)."""
    return old == merged
