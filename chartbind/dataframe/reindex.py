"""Reindexing frames against an explicit index (e.g. every year of a time range)."""

from collections.abc import Iterable

from chartbind.dataframe.frame import DataFrame, DataFrameGroup


def _empty_row(fields: Iterable[str]) -> dict:
    return dict.fromkeys(fields)


def reindex(df: DataFrame, index: Iterable) -> DataFrame:
    """
    New frame with exactly one row per index value, in index order.

    Rows missing from `df` are filled with None for every field. Only frames
    keyed by a single dimension are supported.
    """
    if len(df.key) != 1:
        raise ValueError(f"reindex supports single-dimension keys only, got {list(df.key)}")
    key_concept = df.key[0]
    empty = _empty_row(df.fields)
    result = DataFrame(key=df.key)
    for key in index:
        key_obj = {key_concept: key}
        row = df.get(key_obj) if df.has(key_obj) else {**empty, **key_obj}
        result.set(row)
    return result


def reindex_group(group: DataFrameGroup, index: Iterable) -> DataFrameGroup:
    """New group with one member per index value; missing members are created empty."""
    new_group = DataFrameGroup(group.key, group.descendant_keys)
    for i in index:
        key = new_group.as_key({new_group.key[0]: i})
        if group.has(key):
            new_group.set(key, group.get(key))
        else:
            new_group.create_member(key)
    return new_group
