"""
Keyed row collections.

DataFrame:      rows (concept -> value mappings) indexed by a key (a space).
                Lookup by full key is a dict lookup.
DataFrameGroup: members (frames or nested groups) indexed by an outer key,
                carrying the key shape of every level below it.
LookupFrame:    read-only frame over per-dimension lookups, used for entity
                properties (labels) addressed by a multi-dimensional key.
"""

from collections.abc import Iterable, Iterator, Mapping, Sequence
from itertools import product
from typing import Any, Union

import pandas as pd

KeyTuple = tuple


def key_fn(space: Sequence[str]):
    """Function extracting the key tuple of a row for `space`."""
    space = tuple(space)
    return lambda row: tuple(row.get(dim) for dim in space)


class DataFrame:
    """Rows indexed by their values on `key`.

    A frame without key dimensions indexes rows by insertion position.
    """

    def __init__(self, rows: Iterable[Mapping] | None = None, key: Sequence[str] = ()):
        self.key: tuple[str, ...] = tuple(key)
        self._rows: dict[KeyTuple, dict] = {}
        self._fields: dict[str, None] = dict.fromkeys(self.key)
        self._key_fn = key_fn(self.key)
        for row in rows or ():
            self.set(row)

    # ---- construction ----

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping] | None, key: Sequence[str] = ()) -> "DataFrame":
        if isinstance(rows, DataFrame):
            return cls(rows.rows(), key)
        return cls(rows, key)

    @classmethod
    def from_pandas(cls, df: pd.DataFrame, key: Sequence[str] = ()) -> "DataFrame":
        """Build from a pandas DataFrame. NaN cells become None."""
        clean = df.astype(object).where(pd.notna(df), None)
        return cls(clean.to_dict(orient="records"), key)

    @classmethod
    def from_lookups(cls, lookups: Mapping[str, Mapping[str, Mapping]], key: Sequence[str]) -> "LookupFrame":
        return LookupFrame(lookups, key)

    def to_pandas(self) -> pd.DataFrame:
        return pd.DataFrame(list(self.rows()), columns=list(self.fields))

    # ---- keyed access ----

    def key_of(self, row: Mapping) -> KeyTuple:
        if not self.key:
            return (len(self._rows),)
        return self._key_fn(row)

    def as_key(self, key: Any) -> KeyTuple:
        """Coerce a key mapping, tuple or (for 1-dim frames) scalar into a key tuple."""
        if isinstance(key, Mapping):
            return tuple(key[dim] for dim in self.key)
        if isinstance(key, tuple):
            return key
        return (key,)

    def has(self, key: Any) -> bool:
        try:
            return self.as_key(key) in self._rows
        except KeyError:
            return False

    def get(self, key: Any) -> dict | None:
        try:
            return self._rows.get(self.as_key(key))
        except KeyError:
            return None

    def set(self, row: Mapping) -> None:
        row = dict(row)
        for field in row:
            self._fields.setdefault(field)
        self._rows[self.key_of(row)] = row

    # ---- iteration ----

    def rows(self) -> Iterator[dict]:
        return iter(self._rows.values())

    def keys(self) -> Iterator[KeyTuple]:
        return iter(self._rows.keys())

    def items(self) -> Iterator[tuple[KeyTuple, dict]]:
        return iter(self._rows.items())

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(self._fields)

    def __len__(self) -> int:
        return len(self._rows)

    def __iter__(self) -> Iterator[dict]:
        return self.rows()

    def __repr__(self) -> str:
        return f"DataFrame(key={list(self.key)}, rows={len(self)})"

    # ---- grouping ----

    def group_by(self, *keys: Sequence[str]) -> "DataFrameGroup":
        """
        Group rows by one or more nested keys.

        The innermost frames are keyed by the dimensions of this frame's key
        that no grouping level uses.

        Example:
            frame keyed (geo, time) -> frame.group_by(["time"])
            => DataFrameGroup(key=("time",), descendant_keys=[("geo",)])
        """
        if not keys:
            raise ValueError("group_by needs at least one key")
        levels = [tuple(k) for k in keys]
        used = {dim for level in levels for dim in level}
        inner = tuple(dim for dim in self.key if dim not in used)
        group = DataFrameGroup(levels[0], levels[1:] + [inner])
        for row in self.rows():
            group.add_row(row)
        return group


class DataFrameGroup:
    """Members indexed by an outer key; rows live in the innermost frames."""

    def __init__(
        self,
        key: Sequence[str],
        descendant_keys: Sequence[Sequence[str]],
        members: Mapping[KeyTuple, Union["DataFrame", "DataFrameGroup"]] | None = None,
    ):
        self.key: tuple[str, ...] = tuple(key)
        self.descendant_keys: list[tuple[str, ...]] = [tuple(k) for k in descendant_keys]
        self._members: dict[KeyTuple, DataFrame | DataFrameGroup] = dict(members or {})
        self._key_fn = key_fn(self.key)

    def key_of(self, row: Mapping) -> KeyTuple:
        return self._key_fn(row)

    def as_key(self, key: Any) -> KeyTuple:
        if isinstance(key, Mapping):
            return tuple(key[dim] for dim in self.key)
        if isinstance(key, tuple):
            return key
        return (key,)

    def has(self, key: Any) -> bool:
        try:
            return self.as_key(key) in self._members
        except KeyError:
            return False

    def get(self, key: Any) -> Union["DataFrame", "DataFrameGroup", None]:
        try:
            return self._members.get(self.as_key(key))
        except KeyError:
            return None

    def set(self, key: Any, member: Union["DataFrame", "DataFrameGroup"]) -> None:
        self._members[self.as_key(key)] = member

    def create_member(self, key: Any) -> Union["DataFrame", "DataFrameGroup"]:
        """Create (and store) an empty member with the next level's key shape."""
        if len(self.descendant_keys) > 1:
            member: DataFrame | DataFrameGroup = DataFrameGroup(
                self.descendant_keys[0], self.descendant_keys[1:]
            )
        else:
            member = DataFrame(key=self.descendant_keys[0] if self.descendant_keys else ())
        self.set(key, member)
        return member

    def add_row(self, row: Mapping) -> None:
        key = self.key_of(row)
        member = self._members.get(key)
        if member is None:
            member = self.create_member(key)
        if isinstance(member, DataFrameGroup):
            member.add_row(row)
        else:
            member.set(row)

    def values(self) -> Iterator[Union["DataFrame", "DataFrameGroup"]]:
        return iter(self._members.values())

    def keys(self) -> Iterator[KeyTuple]:
        return iter(self._members.keys())

    def items(self):
        return iter(self._members.items())

    def rows(self) -> Iterator[dict]:
        """Every row of every nested frame, in member order."""
        for member in self._members.values():
            yield from member.rows()

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self):
        return self.values()

    def __repr__(self) -> str:
        return (
            f"DataFrameGroup(key={list(self.key)}, "
            f"descendant_keys={[list(k) for k in self.descendant_keys]}, members={len(self)})"
        )


class LookupFrame(DataFrame):
    """
    Frame over lookups shaped concept -> dimension -> raw key -> value.

    get({"geo": "swe"}) returns {"geo": "swe", "name": {"geo": "Sweden"}}:
    one value per dimension of the key that has a lookup. Keys may be partial.
    """

    def __init__(self, lookups: Mapping[str, Mapping[str, Mapping]], key: Sequence[str]):
        super().__init__(key=key)
        self.lookups = {c: {d: dict(l) for d, l in dims.items()} for c, dims in lookups.items()}
        for concept in self.lookups:
            self._fields.setdefault(concept)

    def _key_mapping(self, key: Any) -> dict:
        if isinstance(key, Mapping):
            return dict(key)
        if not isinstance(key, tuple):
            key = (key,)
        return dict(zip(self.key, key))

    def has(self, key: Any) -> bool:
        key_obj = self._key_mapping(key)
        return any(
            dim in key_obj and key_obj[dim] in lookup
            for dims in self.lookups.values()
            for dim, lookup in dims.items()
        )

    def get(self, key: Any) -> dict | None:
        if not self.has(key):
            return None
        key_obj = self._key_mapping(key)
        row = {dim: key_obj[dim] for dim in self.key if dim in key_obj}
        for concept, dims in self.lookups.items():
            row[concept] = {
                dim: lookup.get(key_obj[dim]) for dim, lookup in dims.items() if dim in key_obj
            }
        return row

    def set(self, row: Mapping) -> None:
        raise TypeError("LookupFrame is read-only")

    def _lookup_dims(self) -> list[str]:
        dims = {d for per_dim in self.lookups.values() for d in per_dim}
        return [dim for dim in self.key if dim in dims]

    def rows(self) -> Iterator[dict]:
        dims = self._lookup_dims()
        if not dims:
            return
        values_per_dim = []
        for dim in dims:
            raw = {}
            for per_dim in self.lookups.values():
                raw.update(dict.fromkeys(per_dim.get(dim, {})))
            values_per_dim.append(list(raw))
        for combo in product(*values_per_dim):
            yield self.get(dict(zip(dims, combo)))

    def keys(self) -> Iterator[KeyTuple]:
        dims = self._lookup_dims()
        for row in self.rows():
            yield tuple(row[dim] for dim in dims)

    def items(self):
        for row in self.rows():
            yield tuple(row.get(dim) for dim in self.key), row

    def __len__(self) -> int:
        return sum(1 for _ in self.rows())


def is_data_frame(obj: Any) -> bool:
    return isinstance(obj, DataFrame)


def is_grouped_data_frame(obj: Any) -> bool:
    return isinstance(obj, DataFrameGroup)
