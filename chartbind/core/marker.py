"""
Markers and their encodings.

A marker groups sibling encodings that must share one space, plus a binding
for the marker's own row identity (`marker.data`). The marker solves all of
them together and joins their responses into one table, `data_map`:

    marker = Marker({
        "data": {"source": "gapminder", "space": {"filter": {"concept_type": "entity_set"}}},
        "encoding": {
            "x": {"data": {"concept": {"filter": {"concept_type": "measure"}}}},
            "y": {"data": {}},
            "label": {"data": {"model_type": "entity_property"}},
        },
    })
    await marker.load()
    marker.data_map        # rows {geo, time, x, y, label}
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from chartbind.core import solver
from chartbind.core.binding import DataBinding
from chartbind.core.reactive import Memo, Signal
from chartbind.core.store import create_binding
from chartbind.dataframe import DataFrame
from chartbind.rich_logger import LogContext
from chartbind_spec import DomainDataSource, MarkerSolution, PromiseState

logger = logging.getLogger(__name__)

View = Callable[["Marker"], DataFrame]


class Encoding:
    """One visual property of a marker, bound to data through `self.data`."""

    def __init__(self, name: str, config: dict | None = None, marker: "Marker | None" = None, **kwargs: Any):
        self.name = name
        self.config = config if config is not None else {}
        self.marker = marker
        self.data = create_binding(self.config.setdefault("data", {}), self, **kwargs)

    def __repr__(self) -> str:
        return f"Encoding({self.name!r})"


def filter_required(marker: "Marker") -> DataFrame:
    """Rows of the data map where every defining encoding has a value."""
    required = marker.defining_encodings()
    data_map = marker.data_map
    return DataFrame(
        (row for row in data_map.rows() if all(row.get(name) is not None for name in required)),
        key=data_map.key,
    )


class Marker:
    """
    Args:
        config: {"data": binding config, "encoding": {name: {"data": binding config}}}
        name: marker name used in diagnostics
        **kwargs: passed to every binding (e.g. sources=SourceStore())
    """

    def __init__(self, config: dict | None = None, name: str = "marker", **kwargs: Any):
        self.name = name
        self.config = config if config is not None else {}
        self.changed = Signal()
        self._binding_kwargs = kwargs
        self.encoding: dict[str, Encoding] = {}
        self._views: dict[str, View] = {DomainDataSource.FILTER_REQUIRED: filter_required}
        self._view_memos: dict[str, Memo] = {}
        self._data_map_memo = Memo(self._compute_data_map)

        self.data: DataBinding = create_binding(self.config.setdefault("data", {}), self, **kwargs)
        self.data.changed.connect(self._on_binding_changed)
        for enc_name, enc_config in (self.config.get("encoding") or {}).items():
            self._attach(Encoding(enc_name, enc_config, self, **kwargs))

    def __repr__(self) -> str:
        return f"Marker({self.name!r}, encodings={list(self.encoding)})"

    # ---- structure ----

    def _attach(self, encoding: Encoding) -> Encoding:
        self.encoding[encoding.name] = encoding
        encoding.data.changed.connect(self._on_binding_changed)
        self.changed.connect(encoding.data.notify_changed)
        return encoding

    def add_encoding(self, name: str, config: dict | None = None) -> Encoding:
        """Add (or replace) an encoding after construction, e.g. one referring to a sibling."""
        previous = self.encoding.pop(name, None)
        if previous is not None:
            previous.data.changed.disconnect(self._on_binding_changed)
            self.changed.disconnect(previous.data.notify_changed)
            previous.data.destruct()
        self.config.setdefault("encoding", {})[name] = config if config is not None else {}
        encoding = self._attach(Encoding(name, self.config["encoding"][name], self, **self._binding_kwargs))
        self._on_binding_changed(encoding.data)
        return encoding

    def bindings(self) -> list[DataBinding]:
        return [self.data] + [enc.data for enc in self.encoding.values()]

    def snapshot(self) -> dict:
        return {
            "data": self.data.snapshot(),
            "encoding": {name: enc.data.snapshot() for name, enc in self.encoding.items()},
        }

    def _on_binding_changed(self, *_: Any) -> None:
        self._data_map_memo.invalidate()
        for memo in self._view_memos.values():
            memo.invalidate()
        self.changed.emit(self)

    # ---- solving and loading ----

    @property
    def config_solution(self) -> MarkerSolution | None:
        return self.data.config_solution

    async def ready(self) -> MarkerSolution | None:
        """Wait for the metadata every binding needs before solving, then solve."""
        promises = solver.marker_promises_before_solving(self)
        if promises:
            await asyncio.gather(*promises)
        return self.config_solution

    async def load(self) -> DataFrame:
        """Load the marker's own data, then every encoding concurrently."""
        with LogContext(logger, "marker_load", {"binding": self}):
            await self.data.load()
            await asyncio.gather(*(enc.data.load() for enc in self.encoding.values()))
        return self.data_map

    @property
    def state(self) -> PromiseState:
        states = [binding.state for binding in self.bindings()]
        if PromiseState.REJECTED in states:
            return PromiseState.REJECTED
        if all(state is PromiseState.FULFILLED for state in states):
            return PromiseState.FULFILLED
        return PromiseState.PENDING

    # ---- joined data ----

    def defining_encodings(self) -> list[str]:
        """Encodings with their own data over exactly the marker space. They define the rows."""
        space = self.data.space
        if space is None:
            return []
        names = []
        for name, enc in self.encoding.items():
            binding = enc.data
            if binding.is_constant() or not binding.provides_rows or not binding.has_own_data:
                continue
            common = binding.common_space or ()
            if len(common) == len(space) and set(common) == set(space):
                names.append(name)
        return names

    @property
    def data_map(self) -> DataFrame:
        """
        Full join of the defining encodings on the marker space, then every
        other encoding joined onto those rows by its common space. Constants
        and concepts inside the space are filled in directly.
        """
        inputs = []
        for name, enc in self.encoding.items():
            binding = enc.data
            if binding.is_constant():
                inputs.append((name, binding.constant))
            else:
                inputs.append((name, binding.concept, binding.response_map if binding.has_own_data else None))
        return self._data_map_memo.get((self.data.space, tuple(inputs)))

    def _compute_data_map(self) -> DataFrame:
        space = self.data.space
        if space is None:
            return DataFrame()
        defining = self.defining_encodings()

        frame = DataFrame(key=space)
        for name in defining:
            binding = self.encoding[name].data
            for row in binding.response_map.rows():
                key_obj = {dim: row.get(dim) for dim in space}
                joined = dict(frame.get(key_obj) or key_obj)
                joined[name] = row.get(binding.concept)
                frame.set(joined)

        rows = []
        for row in frame.rows():
            row = dict(row)
            for name, enc in self.encoding.items():
                if name not in defining:
                    row[name] = self._joined_value(enc.data, row)
            rows.append(row)
        return DataFrame(rows, key=space)

    @staticmethod
    def _joined_value(binding: DataBinding, row: dict) -> Any:
        if binding.is_constant():
            return binding.constant
        if binding.concept_in_space:
            return row.get(binding.concept)
        if not binding.has_own_data:
            return None
        response_map = binding.response_map
        common = binding.common_space or ()
        if common:
            match = response_map.get({dim: row.get(dim) for dim in common})
        else:
            match = next(iter(response_map.rows()), None)
        return match.get(binding.concept) if match else None

    # ---- transformed views ----

    def register_view(self, name: str, fn: View) -> None:
        """Register a named transform of the data map, usable as a domain data source."""
        self._views[name] = fn
        self._view_memos.pop(name, None)

    def has_view(self, name: str) -> bool:
        return name in self._views

    def view(self, name: str) -> DataFrame:
        memo = self._view_memos.get(name)
        if memo is None:
            fn = self._views[name]
            memo = self._view_memos[name] = Memo(lambda: fn(self))
        return memo.get(self.data_map)
