"""
Range and distinct-value analysis over frames, grouped frames and row iterables.

value_range / range_by_group work in the style of d3.extent: a single pass,
missing and self-incomparable (NaN) values are skipped.
"""

from collections.abc import Hashable, Iterable, Mapping, Sequence
from typing import Any

import pandas as pd

from chartbind.dataframe.frame import DataFrame, DataFrameGroup
from chartbind.errors import GroupingPreconditionError


def _rows(data: Any) -> Iterable[Mapping]:
    if isinstance(data, (DataFrame, DataFrameGroup)):
        return data.rows()
    return data or ()


def _is_missing(value: Any) -> bool:
    return value is None or value is pd.NA or value is pd.NaT


def _minmax(value: Any, acc: list) -> list:
    if _is_missing(value):
        return acc
    lo, hi = acc
    if lo is None:
        # first value comparable to itself (skips NaN)
        if value >= value:
            return [value, value]
        return acc
    if lo > value:
        lo = value
    if hi < value:
        hi = value
    return [lo, hi]


def _combine(one: Any, two: Any) -> Any:
    """Element-wise min/max of two ranges, or of two group -> range mappings."""
    if isinstance(one, list):
        lo = [v for v in (one[0], two[0]) if v is not None]
        hi = [v for v in (one[1], two[1]) if v is not None]
        return [min(lo) if lo else None, max(hi) if hi else None]
    merged = dict(one)
    for key, value in two.items():
        merged[key] = _combine(merged[key], value) if key in merged else value
    return merged


def value_range(data: Any, concept: str) -> list:
    """
    [min, max] of `concept`.

    Args:
        data: DataFrame, DataFrameGroup (combined over every member,
            recursively) or any iterable of row mappings
        concept: Field to measure

    Returns:
        [min, max]; [None, None] when no comparable value exists
    """
    if isinstance(data, DataFrameGroup):
        result = [None, None]
        for member in data.values():
            result = _combine(result, value_range(member, concept))
        return result

    acc = [None, None]
    for row in _rows(data):
        acc = _minmax(row.get(concept), acc)
    return acc


def range_by_group(
    data: Any,
    concept: str,
    group_by: str | Sequence[str],
    group_subset: Iterable[Hashable] | None = None,
) -> dict[Hashable, list]:
    """
    [min, max] of `concept` per group.

    Args:
        data: Frame, grouped frame or iterable of rows
        concept: Field to measure
        group_by: Dimension(s) forming the group key; a single dimension
            gives scalar group keys, several give tuples
        group_subset: Optional allow-list of group keys

    Returns:
        Mapping group key -> [min, max]
    """
    if isinstance(data, DataFrameGroup):
        result: dict = {}
        for member in data.values():
            result = _combine(result, range_by_group(member, concept, group_by, group_subset))
        return result

    if isinstance(group_by, str):
        group_key = lambda row: row.get(group_by)
    else:
        dims = tuple(group_by)
        group_key = lambda row: tuple(row.get(dim) for dim in dims)
    allowed = set(group_subset) if group_subset is not None else None

    groups: dict[Hashable, list] = {}
    for row in _rows(data):
        group = group_key(row)
        if allowed is not None and group not in allowed:
            continue
        groups[group] = _minmax(row.get(concept), groups.get(group, [None, None]))
    return groups


def range_of_group_key_per_member(
    groups: DataFrameGroup,
    group_subset: Iterable[Any],
    concept: str | None = None,
    group_by: Sequence[str] | None = None,
) -> dict[Any, list]:
    """
    Fast [min, max] of the grouping concept for each member, e.g. the first and
    last frame (year) in which each country appears.

    Requirements on `groups`, checked where cheap:
    - grouped by exactly `concept` (e.g. time), one level deep
    - members keyed by `group_by` (e.g. (geo,))
    - `group_subset` given explicitly
    Not checked (callers guarantee them):
    - groups are stored in `concept` order
    - groups are interpolated: a member present in two groups is present in
      every group between them

    Args:
        groups: Grouped frame
        group_subset: Member identities (key tuples, key mappings, or scalars for 1-dim members)
        concept: Grouping concept, defaults to groups.key[0]
        group_by: Member key shape, defaults to groups.descendant_keys[0]

    Returns:
        Mapping member -> [min, max] (None for members never found); key mappings
        are reported under their key tuple

    Raises:
        GroupingPreconditionError: if a checked requirement fails
    """
    if not isinstance(groups, DataFrameGroup):
        raise GroupingPreconditionError(
            "Special case but iterable is not a grouped dataframe"
        )
    if concept is None:
        concept = groups.key[0] if groups.key else None
    descendant_keys = groups.descendant_keys
    if groups.key != (concept,):
        raise GroupingPreconditionError(
            f"Special case but grouping {list(groups.key)} is not by given concept {concept!r}"
        )
    if len(descendant_keys) != 1:
        raise GroupingPreconditionError("Special case but grouping is more than 1 level deep")
    if group_by is None:
        group_by = descendant_keys[0]
    if tuple(group_by) != descendant_keys[0]:
        raise GroupingPreconditionError(
            f"Special case but grouping members keys {list(descendant_keys[0])} "
            f"is not same as group_by {list(group_by)}"
        )
    if group_subset is None or isinstance(group_subset, (str, bytes)) or not isinstance(
        group_subset, Iterable
    ):
        raise GroupingPreconditionError("Special case but group_subset iterable not given.")

    extents: dict[Any, list] = {}
    for member in group_subset:
        if isinstance(member, Mapping):
            member = tuple(member[dim] for dim in group_by)
        member_key = member if isinstance(member, tuple) else (member,)
        first = last = None
        for group in groups.values():
            if group.has(member_key):
                if first is None:
                    first = group
                last = group  # ordered groups, so any later group is higher
            elif first is not None:
                break  # interpolated: the member cannot reappear later

        extents[member] = [
            g.get(member_key)[concept] if g is not None else None for g in (first, last)
        ]
    return extents


def unique_values(data: Any, concept: str) -> list:
    """Distinct values of `concept` in first-seen order. Missing values are dropped."""
    result = []
    seen = set()
    for row in _rows(data):
        value = row.get(concept)
        if _is_missing(value) or value != value:
            continue
        try:
            if value in seen:
                continue
            seen.add(value)
        except TypeError:
            # unhashable (e.g. per-dimension label mappings)
            if value in result:
                continue
        result.append(value)
    return result
