"""
Entity property binding: labels (or other properties) of the entities in a space.

Instead of one datapoint query, one entities query is sent per entity
dimension of the space that has the property, and the answers are exposed as a
lookup frame addressed by the (multi-dimensional) space key:

    labels = EntityPropertyDataBinding({"source": "sg", "concept": "name",
                                        "space": ["geo", "gender", "time"]})
    await labels.load()
    labels.response_map.get({"geo": "swe"})["name"]   # {"geo": "Sweden", "gender": ...}
"""

import asyncio
from collections.abc import Mapping
from typing import Any

from chartbind.core.binding import DataBinding
from chartbind.core.reactive import Memo, TrackedPromise
from chartbind.dataframe import DataFrame, LookupFrame
from chartbind_spec import DdfQuery, DimensionResponse, build_query

DEFAULT_CONCEPT = {
    "solve_method": "most_common_dimension_property",
    "allowed_properties": ["name", "title"],
}


class EntityPropertyDataBinding(DataBinding):
    model_type = "entity_property"
    provides_rows = False

    def __init__(self, config: dict | None = None, parent: Any = None, **kwargs: Any):
        config = config if config is not None else {}
        if "concept" not in config:
            config["concept"] = dict(DEFAULT_CONCEPT)
        super().__init__(config, parent, **kwargs)
        self._lookup_memo = Memo(self._compute_lookup_frame)

    def promises_before_query(self) -> list:
        # queries depend on which entity dimensions carry the concept
        waits = super().promises_before_query()
        source = self.source
        if source is not None and source.metadata_ready not in waits:
            waits.append(source.metadata_ready)
        return waits

    @property
    def queries(self) -> list[DdfQuery]:
        """One entities query per entity dimension of the space that has the concept."""
        source, space, concept = self.source, self.space, self.concept
        if source is None or not space or concept is None:
            return []
        queries = []
        for dim in space:
            if not source.is_entity_concept(dim):
                continue
            if not source.availability.has((dim,), concept):
                continue
            queries.append(
                build_query(
                    (dim,),
                    [concept],
                    where=self.filter.where_clause((dim,)),
                    language=self.locale,
                )
            )
        return queries

    def _query_key(self) -> Any:
        return self.queries

    def send_query(self) -> TrackedPromise:
        if self.source is None or self.concept is None or self.concept_in_space:
            return super().send_query()
        return TrackedPromise(self._run_queries(self.queries), label=self.name)

    async def _run_queries(self, queries: list[DdfQuery]) -> list[DimensionResponse]:
        results = await asyncio.gather(*(self._run_query(query) for query in queries))
        return [
            {"dim": query["select"]["key"][0], "data": data}
            for query, data in zip(queries, results)
        ]

    @staticmethod
    def lookups(response: list[DimensionResponse], concept: str) -> dict[str, dict[str, dict]]:
        """concept -> dimension -> entity key -> property value."""
        per_dim: dict[str, dict] = {}
        for dim_response in response or ():
            dim, data = dim_response["dim"], dim_response["data"]
            rows = data.rows() if isinstance(data, DataFrame) else data
            per_dim[dim] = {
                row[dim]: row.get(concept) for row in rows if isinstance(row, Mapping)
            }
        return {concept: per_dim}

    @property
    def response(self) -> LookupFrame:
        raw = super().response
        key = self.frame_key()
        return self._lookup_memo.get((raw, self.concept, tuple(key)))

    def _compute_lookup_frame(self) -> LookupFrame:
        key = self.frame_key()
        if self.concept is None:
            return DataFrame.from_lookups({}, key)
        return DataFrame.from_lookups(self.lookups(self._latest_response, self.concept), key)

    def notify_changed(self, *args: Any) -> None:
        self._lookup_memo.invalidate()
        super().notify_changed(*args)
