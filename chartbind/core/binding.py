"""
Data binding: one encoding's (or a marker's) link between configuration and data.

A binding reads its config (falling back to defaults), resolves space and
concept (possibly through the auto-config solver), builds a query description,
sends it to its source and exposes the response as a keyed frame together with
a domain.

Everything derived is computed on access and cached against a fingerprint of
what it was computed from, so stale values are never served:

    binding = DataBinding({"source": "gapminder", "space": ["geo", "time"]})
    await binding.load()
    binding.state          # PromiseState.FULFILLED
    binding.response_map   # DataFrame keyed by ("geo", "time")
    binding.domain         # [min, max] or distinct values

Observers subscribe to `binding.changed`; config edits, filter selections and
source metadata reloads all emit it.
"""

import asyncio
import logging
from collections.abc import Mapping
from numbers import Number
from typing import Any

import numpy as np
import pandas as pd

from chartbind.core import solver
from chartbind.core.config import config as global_config
from chartbind.core.filter import Filter
from chartbind.core.reactive import Memo, Signal, TrackedPromise
from chartbind.core.refs import Ref, change_signal, resolve_ref
from chartbind.dataframe import DataFrame, unique_values, value_range
from chartbind.source.store import SourceStore, source_store
from chartbind_spec import (
    Concept,
    DdfQuery,
    DomainDataSource,
    MarkerSolution,
    PromiseState,
    ResolvedConfig,
    Space,
    build_query,
    fingerprint,
)

logger = logging.getLogger(__name__)


def _is_numeric(value: Any) -> bool:
    if isinstance(value, (bool, np.bool_, str)):
        return False
    return isinstance(value, (Number, np.number))


class DataBinding:
    """
    Binding of one visual property (or a marker's row identity) to data.

    Args:
        config: binding configuration. Keys: source, space, concept, constant,
            filter, locale, domain_data_source. Missing keys use `defaults`.
        parent: owning Encoding or Marker, None for a standalone binding
        defaults: overrides merged over the library binding defaults
        sources: source registry used to resolve `config["source"]`
    """

    model_type = "data"
    # Rows of this binding can define the rows of a marker (lookups cannot)
    provides_rows = True

    def __init__(
        self,
        config: dict | None = None,
        parent: Any = None,
        defaults: Mapping | None = None,
        sources: SourceStore | None = None,
    ):
        self._config: dict = config if config is not None else {}
        self.parent = parent
        self.defaults: dict = {**global_config.binding_defaults.model_dump(), **(defaults or {})}
        self.sources = sources or source_store
        self.changed = Signal()

        self._latest_response: Any = []
        self._promise: TrackedPromise | None = None
        self._promise_key: Any = None
        self._reported_failure: TrackedPromise | None = None
        self._watched_source = None
        self._watched_refs: list[Signal] = []

        self._solution_memo = Memo(lambda: solver.config_solution(self))
        self._invariants_memo = Memo(self._compute_invariants)
        self._response_map_memo = Memo(self._compute_response_map)
        self._domain_memo = Memo(self._compute_domain)
        self._watch_refs()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"

    @property
    def name(self) -> str:
        return getattr(self.parent, "name", None) or "data"

    # =========================================================================
    # Config and change propagation
    # =========================================================================

    @property
    def config(self) -> dict:
        return self._config

    @config.setter
    def config(self, value: dict) -> None:
        self._config = value if value is not None else {}
        self._watch_refs()
        self.notify_changed()

    def update(self, **changes: Any) -> None:
        """Change config keys in place. A value of None removes the key."""
        for key, value in changes.items():
            if value is None:
                self._config.pop(key, None)
            else:
                self._config[key] = value
        self._watch_refs()
        self.notify_changed()

    def notify_changed(self, *_: Any) -> None:
        """Drop cached derivations and tell observers."""
        self._solution_memo.invalidate()
        self._invariants_memo.invalidate()
        self._response_map_memo.invalidate()
        self._domain_memo.invalidate()
        self.changed.emit(self)

    def _watch_refs(self) -> None:
        for signal in self._watched_refs:
            signal.disconnect(self.notify_changed)
        self._watched_refs = []
        for value in self._config.values():
            if isinstance(value, Ref):
                signal = change_signal(value)
                if signal is not None and signal is not self.changed:
                    signal.connect(self.notify_changed)
                    self._watched_refs.append(signal)

    def _watch_source(self, source) -> None:
        if source is self._watched_source:
            return
        if self._watched_source is not None:
            self._watched_source.changed.disconnect(self.notify_changed)
        if source is not None:
            source.changed.connect(self.notify_changed)
        self._watched_source = source

    def snapshot(self) -> dict:
        return {"model_type": self.model_type, "config": self._config, "defaults": self.defaults}

    def destruct(self) -> None:
        """Disconnect from sources and referenced bindings."""
        self._watch_source(None)
        for signal in self._watched_refs:
            signal.disconnect(self.notify_changed)
        self._watched_refs = []
        self._promise = None
        self._promise_key = None

    # =========================================================================
    # Ownership
    # =========================================================================

    @property
    def has_encoding_marker(self) -> bool:
        return self.parent is not None and getattr(self.parent, "marker", None) is not None

    @property
    def marker(self):
        """Marker this binding belongs to: the encoding's marker, or the parent marker itself."""
        if self.parent is None:
            return None
        if self.has_encoding_marker:
            return self.parent.marker
        if hasattr(self.parent, "encoding"):
            return self.parent
        return None

    # =========================================================================
    # Resolved configuration
    # =========================================================================

    @property
    def source(self):
        cfg = self._config.get("source") or self.defaults.get("source")
        if cfg:
            source = self.sources.get(cfg, self)
        elif self.has_encoding_marker:
            source = self.marker.data.source
        else:
            source = None
        self._watch_source(source)
        return source

    def _solution_key(self) -> str:
        # A marker solves all of its bindings at once, so every sibling counts
        marker = self.marker
        bindings = marker.bindings() if marker is not None else [self]
        sources = []
        for binding in bindings:
            source = binding.source
            if source is not None and source not in sources:
                sources.append(source)
        return fingerprint({
            "sources": [[id(source), source.version] for source in sources],
            "bindings": marker.snapshot() if marker is not None else self.snapshot(),
        })

    @property
    def config_solution(self) -> ResolvedConfig | MarkerSolution | None:
        return self._solution_memo.get(self._solution_key())

    @property
    def space(self) -> Space | None:
        solution = self.config_solution
        return tuple(solution.space) if solution is not None else None

    @property
    def concept(self) -> str | None:
        solution = self.config_solution
        if isinstance(solution, ResolvedConfig):
            return solution.concept
        return None

    @property
    def constant(self) -> Any:
        value = resolve_ref(self._config.get("constant"))
        if value is None:
            value = self.defaults.get("constant")
        return value

    def is_constant(self) -> bool:
        return self.constant is not None

    @property
    def concept_in_space(self) -> bool:
        concept, space = self.concept, self.space
        return bool(concept and space and concept in space)

    @property
    def common_space(self) -> Space | None:
        """Dimensions this binding shares with its marker, in this binding's order."""
        if self.has_encoding_marker:
            space, marker_space = self.space, self.marker.data.space
            if space is None or marker_space is None:
                return None
            return tuple(dim for dim in space if dim in marker_space)
        if self.marker is None:
            return self.space
        logger.debug(
            "Can't get common space of a marker data binding",
            extra={"event": "common_space_on_marker", "binding": self},
        )
        return None

    @property
    def filter(self) -> Filter:
        cfg = resolve_ref(self._config.get("filter"))
        if cfg is None:
            if self.has_encoding_marker:
                return self.marker.data.filter
            cfg = self._config["filter"] = {}
        return Filter(cfg, self)

    @property
    def locale(self) -> str | None:
        locale = resolve_ref(self._config.get("locale")) or self.defaults.get("locale")
        if locale:
            return locale if isinstance(locale, str) else locale.get("id")
        if self.has_encoding_marker and self.marker.data.locale:
            return self.marker.data.locale
        source = self.source
        return source.locale if source is not None else None

    @property
    def concept_props(self) -> Concept | None:
        concept, source = self.concept, self.source
        if concept is None or source is None:
            return None
        return source.get_concept(concept)

    @property
    def available_concepts(self) -> list[Concept]:
        source = self.source
        if source is None:
            return []
        return source.availability.describe(source.concepts)

    @property
    def has_own_data(self) -> bool:
        return bool(self.source is not None and self.concept and not self.concept_in_space)

    # =========================================================================
    # Invariants
    # =========================================================================

    @property
    def invariants(self) -> list[str]:
        return self.check_invariants()

    def check_invariants(self) -> list[str]:
        """Violated config rules; logged once per configuration."""
        return self._invariants_memo.get(self._solution_key())

    def _compute_invariants(self) -> list[str]:
        failures = []
        if self.is_constant():
            if self._config.get("concept") is not None or self._config.get("source") is not None:
                failures.append("Can't have constant value and concept or source set.")
        elif self.concept_in_space and self._config.get("source") is not None:
            failures.append("Can't have concept in space and have a source simultaneously")
        if failures:
            logger.warning(
                f"One or more invariants not satisfied for {self!r}: {failures}",
                extra={"event": "invariants_failed", "binding": self, "failures": failures},
            )
        return failures

    # =========================================================================
    # Query and response
    # =========================================================================

    @property
    def ddf_query(self) -> DdfQuery | None:
        """Outgoing query description, or None while space or concept is unresolved."""
        space = self.space
        if space is None or self.concept is None:
            return None
        return build_query(
            space,
            [self.concept],
            where=self.filter.where_clause(space),
            language=self.locale,
        )

    def _query_key(self) -> Any:
        return self.ddf_query

    def send_query(self) -> TrackedPromise:
        if self.source is None or self.concept is None:
            logger.warning(
                "Can't send query: data binding has no source or concept",
                extra={"event": "query_without_concept", "binding": self},
            )
            return TrackedPromise.resolved([], label=self.name)
        if self.concept_in_space:
            return TrackedPromise.resolved([], label=self.name)
        query = self.ddf_query
        if query is None:
            # unresolved space renders as empty
            return TrackedPromise.resolved([], label=self.name)
        return TrackedPromise(self._run_query(query), label=self.name)

    async def _run_query(self, query: DdfQuery) -> Any:
        try:
            result = await self.source.query(query)
        except Exception as e:
            logger.warning(
                f"Query failed for {self!r}: {e}",
                extra={"event": "query_failed", "binding": self, "query": query},
            )
            raise
        if isinstance(result, pd.DataFrame):
            result = DataFrame.from_pandas(result, key=query["select"]["key"])
        return result

    def _keep(self, key: Any, factory) -> TrackedPromise:
        if self._promise is None or key != self._promise_key:
            self._promise = factory()
            self._promise_key = key
        return self._promise

    def promises_before_query(self) -> list:
        """Readiness tasks to await before the query can be built."""
        # Encodings read their solution from the marker, so they wait for it too
        if self.has_encoding_marker:
            waits = list(solver.marker_promises_before_solving(self.marker))
        else:
            waits = list(solver.promises_before_solving(self))
        source = self.source
        if source is not None and source.concepts_ready not in waits:
            # concept metadata is needed for the domain
            waits.append(source.concepts_ready)
        return waits

    @property
    def promise(self) -> TrackedPromise:
        """
        Current stage of the readiness chain:
        metadata readiness -> invariant check -> query (or an immediate empty result).

        Needs a running event loop unless the binding is constant or has no source.
        """
        if self.is_constant():
            self.check_invariants()
            return self._keep(("constant",), lambda: TrackedPromise.resolved(None, label=self.name))

        waits = self.promises_before_query()
        source = self.source
        pending = [w for w in waits if not w.done()]
        if pending:
            key = ("metadata",) + tuple(id(w) for w in pending)
            return self._keep(key, lambda: TrackedPromise(asyncio.gather(*pending), label=self.name))

        failed = next((w for w in waits if w.cancelled() or w.exception() is not None), None)
        if failed is not None:
            error = asyncio.CancelledError() if failed.cancelled() else failed.exception()
            return self._keep(("failed", id(failed)), lambda: TrackedPromise.rejected(error, label=self.name))

        self.check_invariants()
        if not self.has_own_data:
            return self._keep(("no_query",), lambda: TrackedPromise.resolved([], label=self.name))

        key = ("query", id(source), fingerprint(self._query_key()))
        return self._keep(key, self.send_query)

    @property
    def state(self) -> PromiseState:
        return self.promise.state

    @property
    def response(self) -> Any:
        """Latest fulfilled response; kept while a newer query is pending or failed."""
        if self.is_constant():
            raise ValueError("Can't get response for data binding with constant value.")
        promise = self.promise
        if promise.state is PromiseState.FULFILLED:
            self._latest_response = promise.value
        elif promise.state is PromiseState.REJECTED and promise is not self._reported_failure:
            self._reported_failure = promise
            logger.debug(
                f"Keeping previous response of {self!r} after error: {promise.error}",
                extra={"event": "query_failed", "binding": self},
            )
        return self._latest_response

    async def load(self) -> Any:
        """Drive the readiness chain until it settles and return the response."""
        if self.is_constant():
            return None
        while True:
            promise = self.promise
            await promise.wait()
            if self.promise is promise:
                break
        return self.response

    def frame_key(self) -> Space:
        """Key of the response frame: the common space, or the own space of a marker binding."""
        common_space = self.common_space
        return common_space if common_space is not None else (self.space or ())

    @property
    def response_map(self) -> DataFrame:
        """Response indexed by the common space (own space for standalone bindings)."""
        response = self.response
        key = self.frame_key()
        return self._response_map_memo.get((response, tuple(key)))

    def _compute_response_map(self) -> DataFrame:
        response = self.response
        key = self.frame_key()
        if isinstance(response, DataFrame) and response.key == tuple(key):
            return response
        return DataFrame.from_rows(response, key=key)

    # =========================================================================
    # Domain
    # =========================================================================

    @property
    def domain_data_source(self) -> str:
        source = self._config.get("domain_data_source") or self.defaults.get("domain_data_source")
        if not source or source == DomainDataSource.AUTO:
            return DomainDataSource.FILTER_REQUIRED if self.concept_in_space else DomainDataSource.SELF
        return source

    def _domain_data_and_field(self) -> tuple[Any, str | None]:
        source = self.domain_data_source
        concept = self.concept
        marker = self.marker
        if source != DomainDataSource.SELF and self.has_encoding_marker:
            field = concept if self.concept_in_space else self.name
            if marker.has_view(source):
                return marker.view(source), field
            if source == DomainDataSource.MARKERS:
                return marker.data_map, field
        return self.response_map, concept

    @property
    def domain_data(self) -> Any:
        return self._domain_data_and_field()[0]

    @property
    def domain(self) -> list | None:
        """
        Extent of the bound values: [v, v] (or [v]) for a numeric (or other)
        constant, [min, max] for continuous concepts, distinct values otherwise.
        None while the concept or its metadata is unknown.
        """
        if self.is_constant():
            value = self.constant
            return [value, value] if _is_numeric(value) else [value]
        props = self.concept_props
        if props is None:
            return None
        data, field = self._domain_data_and_field()
        return self._domain_memo.get((self._solution_key(), data, field, props))

    def _compute_domain(self) -> list:
        data, field = self._domain_data_and_field()
        return self.calc_domain(data, self.concept_props, field)

    def calc_domain(self, data: Any, concept_props: Concept, field: str | None = None) -> list:
        field = field or concept_props.concept
        if concept_props.concept_type in global_config.continuous_concept_types:
            return value_range(data, field)
        return unique_values(data, field)
