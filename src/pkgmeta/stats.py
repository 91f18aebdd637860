"""Hit-count aggregation over nested mappings."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def sum_deep(data: Any, depth: int = 1) -> int:
    """Sum the non-negative integer leaves of a nested mapping.

    ``depth`` is how many levels of nested mappings are descended into;
    values below that are ignored. Depth beyond the real nesting sums
    everything, and depth below 1 is treated as 1. Anything that is not a
    non-negative integer (including bools) counts as zero.
    """
    if not isinstance(data, Mapping):
        return 0

    remaining = max(depth, 1)
    total = 0
    for value in data.values():
        if isinstance(value, Mapping):
            total += sum_deep(value, remaining - 1) if remaining > 1 else _sum_leaves(value)
        elif _is_count(value):
            total += value
    return total


def _sum_leaves(data: Mapping) -> int:
    return sum(value for value in data.values() if _is_count(value))


def _is_count(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 0
