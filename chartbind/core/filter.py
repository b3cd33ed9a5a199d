"""Filter utilities.

Two concerns live here:
- create_filter_fn: turns a field-match spec into a predicate (concept and space filters)
- Filter: marker/dimension selections of a binding and their query where clause
"""

from collections.abc import Mapping
from typing import Any, Callable, Iterable

from chartbind.core.refs import resolve_ref


def _field(obj: Any, name: str) -> Any:
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _matches(actual: Any, condition: Any) -> bool:
    if isinstance(condition, Mapping):
        for op, expected in condition.items():
            if op == "$in" and actual not in expected:
                return False
            if op == "$nin" and actual in expected:
                return False
            if op == "$eq" and actual != expected:
                return False
            if op == "$ne" and actual == expected:
                return False
        return True
    if isinstance(condition, (list, tuple, set, frozenset)):
        return actual in condition
    return actual == condition


def create_filter_fn(spec: Mapping | Callable | None) -> Callable[[Any], bool]:
    """
    Build a predicate from a filter spec.

    Args:
        spec: None or empty (accept all), a callable (used as is), or a mapping of
            field -> condition. A condition is a plain value (equality), a list
            (membership) or a mapping of operators ($in, $nin, $eq, $ne).

    Returns:
        Predicate over mappings or objects with attributes (e.g. Concept)
    """
    spec = resolve_ref(spec)
    if not spec:
        return lambda obj: True
    if callable(spec):
        return spec
    if not isinstance(spec, Mapping):
        raise TypeError(f"Unsupported filter spec: {spec!r}")

    conditions = dict(spec)

    def predicate(obj: Any) -> bool:
        return all(_matches(_field(obj, name), cond) for name, cond in conditions.items())

    return predicate


def _deep_merge(dicts: Iterable[Mapping]) -> dict:
    merged: dict = {}
    for d in dicts:
        for k, v in d.items():
            if isinstance(v, Mapping) and isinstance(merged.get(k), Mapping):
                merged[k] = _deep_merge([merged[k], v])
            else:
                merged[k] = v
    return merged


class Filter:
    """
    Marker and dimension selections of one binding.

    config keys:
        markers: mapping of marker key -> payload (a list of keys means payload True).
            A marker key is a tuple of (dimension, value) pairs, or an opaque string.
        dimensions: mapping of dimension -> {property: condition}
    """

    def __init__(self, config: dict | None = None, parent: Any = None):
        self.config = config if config is not None else {}
        self.parent = parent

    @property
    def markers(self) -> dict:
        cfg = resolve_ref(self.config.get("markers")) or {}
        if isinstance(cfg, Mapping):
            return dict(cfg)
        return {self.get_key(m): True for m in cfg}

    @property
    def dimensions(self) -> dict:
        return dict(resolve_ref(self.config.get("dimensions")) or {})

    def get_key(self, d: Any) -> Any:
        if isinstance(d, (str, tuple)):
            return d
        dims = self._key_dims(d)
        return tuple((dim, d[dim]) for dim in sorted(dims))

    def _key_dims(self, row: Mapping) -> list[str]:
        space = getattr(self.parent, "space", None) if self.parent is not None else None
        if space:
            return [dim for dim in space if dim in row]
        return list(row)

    def has(self, d: Any) -> bool:
        return self.get_key(d) in self.markers

    def any(self) -> bool:
        return len(self.markers) != 0

    def get_payload(self, d: Any) -> Any:
        return self.markers.get(self.get_key(d))

    def set(self, d: Any, payload: Any = True) -> None:
        if isinstance(d, list):
            for item in d:
                self.set(item, payload)
            return
        markers = self.markers
        markers[self.get_key(d)] = payload
        self._store(markers)

    def delete(self, d: Any) -> bool:
        if isinstance(d, list):
            return all([self.delete(item) for item in d])
        markers = self.markers
        success = markers.pop(self.get_key(d), _ABSENT) is not _ABSENT
        self._store(markers)
        return success

    def clear(self) -> None:
        self._store({})

    def toggle(self, d: Any) -> bool:
        """Remove d if selected, else add it. Returns True when d ends up selected."""
        deleted = self.delete(d)
        if not deleted:
            self.set(d)
        return not deleted

    def _store(self, markers: dict) -> None:
        self.config["markers"] = markers
        notify = getattr(self.parent, "notify_changed", None)
        if notify is not None:
            notify()

    def _is_entity_concept(self, concept: str) -> bool:
        source = getattr(self.parent, "source", None)
        return bool(source is not None and source.is_entity_concept(concept))

    def where_clause(self, space: Iterable[str]) -> dict:
        """
        Predicate clause for a query over `space`.

        Dimension filters on the dimension itself (or any filter of a 1-dim
        query) apply directly; properties of other dimensions are addressed as
        "dim.prop". Entity-concept properties are left out of entity queries.
        Marker selections whose key covers exactly `space` are OR-ed together
        with the AND of the dimension filters.
        """
        space = list(space)
        dimensions = self.dimensions

        dim_filters = []
        for dim in space:
            for prop, condition in (dimensions.get(dim) or {}).items():
                if prop == dim or len(space) < 2:
                    if len(space) > 1 or not self._is_entity_concept(prop):
                        dim_filters.append({prop: condition})
                else:
                    dim_filters.append({f"{dim}.{prop}": condition})

        marker_filters = []
        for key in self.markers:
            if isinstance(key, tuple) and sorted(dim for dim, _ in key) == sorted(space):
                marker_filters.append(dict(key))

        if marker_filters:
            clause: dict = {"$or": marker_filters}
            if dim_filters:
                clause["$or"].append({"$and": dim_filters})
            return clause
        if dim_filters:
            return _deep_merge(dim_filters)
        return {}


_ABSENT = object()
