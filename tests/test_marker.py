"""Tests for markers: joined data map, views, encodings referring to siblings."""

import logging

import pytest

from chartbind.core.marker import Marker
from chartbind.core.refs import Ref
from chartbind.dataframe import DataFrame
from chartbind_spec import PromiseState


@pytest.fixture
def bubbles(sources):
    return Marker(
        {
            "data": {"source": "gapminder"},
            "encoding": {
                "x": {"data": {}},
                "y": {"data": {}},
                "size": {"data": {}},
            },
        },
        name="bubbles",
        sources=sources,
    )


class TestDataMap:
    @pytest.mark.asyncio
    async def test_full_join_of_defining_encodings(self, bubbles):
        data_map = await bubbles.load()
        assert data_map.key == ("geo", "time")
        assert len(data_map) == 6
        assert data_map.get({"geo": "swe", "time": 2000}) == {
            "geo": "swe",
            "time": 2000,
            "x": 8872000,
            "y": 30000.0,
            "size": 79.6,
        }
        assert data_map.get({"geo": "nor", "time": 2001})["y"] is None

    @pytest.mark.asyncio
    async def test_defining_encodings(self, bubbles):
        await bubbles.load()
        assert bubbles.defining_encodings() == ["x", "y", "size"]

    @pytest.mark.asyncio
    async def test_constant_and_space_concepts_are_filled_in(self, sources):
        marker = Marker(
            {
                "data": {"source": "gapminder"},
                "encoding": {
                    "x": {"data": {}},
                    "color": {"data": {"constant": "red"}},
                    "frame": {"data": {"concept": "time"}},
                },
            },
            sources=sources,
        )
        data_map = await marker.load()
        assert marker.defining_encodings() == ["x"]
        row = data_map.get(("fin", 2002))
        assert row["color"] == "red"
        assert row["frame"] == 2002

    @pytest.mark.asyncio
    async def test_entity_labels_joined_by_common_space(self, sources):
        marker = Marker(
            {
                "data": {"source": "gapminder"},
                "encoding": {
                    "x": {"data": {}},
                    "label": {"data": {"model_type": "entity_property"}},
                },
            },
            sources=sources,
        )
        data_map = await marker.load()
        # lookups never define rows
        assert marker.defining_encodings() == ["x"]
        assert len(data_map) == 6
        assert data_map.get(("swe", 2001))["label"] == {"geo": "Sweden"}

    @pytest.mark.asyncio
    async def test_encoding_with_smaller_space(self, sources):
        marker = Marker(
            {
                "data": {"source": "gapminder"},
                "encoding": {
                    "x": {"data": {}},
                    "name": {"data": {"space": ["geo"], "concept": "name"}},
                },
            },
            sources=sources,
        )
        data_map = await marker.load()
        assert marker.encoding["name"].data.common_space == ("geo",)
        assert data_map.get(("nor", 2000))["name"] == "Norway"

    def test_unsolved_marker_has_empty_map(self):
        marker = Marker({"encoding": {"x": {"data": {}}}})
        assert len(marker.data_map) == 0

    @pytest.mark.asyncio
    async def test_data_map_cached_until_change(self, bubbles):
        data_map = await bubbles.load()
        assert bubbles.data_map is data_map
        bubbles.encoding["size"].data.update(constant=1)
        assert bubbles.data_map is not data_map
        assert bubbles.data_map.get(("swe", 2000))["size"] == 1


class TestViews:
    @pytest.mark.asyncio
    async def test_filter_required_drops_incomplete_rows(self, bubbles):
        await bubbles.load()
        complete = bubbles.view("filter_required")
        assert isinstance(complete, DataFrame)
        assert list(complete.keys()) == [("swe", 2000), ("swe", 2001), ("nor", 2000), ("fin", 2001)]

    @pytest.mark.asyncio
    async def test_space_concept_domain_uses_complete_rows(self, sources):
        marker = Marker(
            {
                "data": {"source": "gapminder"},
                "encoding": {
                    "x": {"data": {}},
                    "y": {"data": {}},
                    "frame": {"data": {"concept": "time"}},
                },
            },
            sources=sources,
        )
        await marker.load()
        frame = marker.encoding["frame"].data
        assert frame.domain_data_source == "filter_required"
        # fin 2002 has no gdp, so 2002 is not part of the domain
        assert frame.domain == [2000, 2001]

    @pytest.mark.asyncio
    async def test_registered_view_as_domain_source(self, bubbles):
        bubbles.register_view(
            "large",
            lambda m: DataFrame((r for r in m.data_map.rows() if r["x"] > 5000000), key=m.data_map.key),
        )
        x = bubbles.encoding["x"].data
        x.update(domain_data_source="large")
        await bubbles.load()
        assert bubbles.has_view("large")
        assert x.domain == [5188000, 8896000]

    @pytest.mark.asyncio
    async def test_markers_domain_source(self, bubbles):
        y = bubbles.encoding["y"].data
        y.update(domain_data_source="markers")
        await bubbles.load()
        assert y.domain_data is bubbles.data_map
        assert y.domain == [28000.0, 40000.0]


class TestStateAndLoading:
    @pytest.mark.asyncio
    async def test_state(self, bubbles):
        assert bubbles.state is PromiseState.PENDING
        await bubbles.load()
        assert bubbles.state is PromiseState.FULFILLED

    @pytest.mark.asyncio
    async def test_rejected_when_any_binding_fails(self, bubbles, source):
        source.fail_queries = True
        await bubbles.load()
        assert bubbles.state is PromiseState.REJECTED

    @pytest.mark.asyncio
    async def test_load_events(self, bubbles, caplog):
        with caplog.at_level(logging.DEBUG, logger="chartbind"):
            await bubbles.load()
        events = [getattr(r, "event", None) for r in caplog.records]
        assert events.index("marker_load_start") < events.index("marker_load_end")

    @pytest.mark.asyncio
    async def test_one_query_per_encoding(self, bubbles, source):
        await bubbles.load()
        await bubbles.load()
        assert sorted(q["select"]["value"][0] for q in source.queries) == [
            "gdp",
            "life_expectancy",
            "population",
        ]

    @pytest.mark.asyncio
    async def test_encoding_shares_marker_selection(self, bubbles, source):
        await bubbles.load()
        bubbles.data.filter.set({"geo": "nor", "time": 2000})
        await bubbles.load()
        where_clauses = [q.get("where") for q in source.queries[3:]]
        assert where_clauses == [{"$or": [{"geo": "nor", "time": 2000}]}] * 3
        assert list(bubbles.data_map.keys()) == [("nor", 2000)]


class TestEncodingChanges:
    @pytest.mark.asyncio
    async def test_add_encoding_referring_to_sibling(self, sources):
        marker = Marker(
            {"data": {"source": "gapminder"}, "encoding": {"x": {"data": {"concept": "gdp"}}}},
            sources=sources,
        )
        await marker.ready()
        mirror = marker.add_encoding(
            "mirror", {"data": {"concept": Ref(marker.encoding["x"], "data.config.concept")}}
        )
        assert mirror.data.concept == "gdp"

        marker.encoding["x"].data.update(concept="life_expectancy")
        assert mirror.data.concept == "life_expectancy"

    @pytest.mark.asyncio
    async def test_sibling_change_notifies_marker(self, bubbles):
        await bubbles.ready()
        seen = []
        bubbles.changed.connect(seen.append)
        bubbles.encoding["x"].data.update(concept="gdp")
        assert seen == [bubbles]

    @pytest.mark.asyncio
    async def test_replacing_encoding(self, bubbles):
        await bubbles.load()
        old = bubbles.encoding["size"]
        new = bubbles.add_encoding("size", {"data": {"constant": 4}})
        assert bubbles.encoding["size"] is new
        assert new is not old
        assert bubbles.data_map.get(("swe", 2000))["size"] == 4

    def test_snapshot_lists_every_binding(self, bubbles):
        snapshot = bubbles.snapshot()
        assert set(snapshot["encoding"]) == {"x", "y", "size"}
        assert snapshot["data"]["config"] == {"source": "gapminder"}
