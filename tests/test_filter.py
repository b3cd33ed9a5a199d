"""Tests for filter predicates and marker/dimension selections."""

import pytest

from chartbind.core.filter import Filter, create_filter_fn
from chartbind_spec import Concept


class StubParent:
    """Minimal filter owner: a space, an entity check and a change counter."""

    def __init__(self, space=("geo", "time"), entities=("geo",)):
        self.space = space
        self.source = self
        self.entities = entities
        self.notified = 0

    def is_entity_concept(self, concept):
        return concept in self.entities

    def notify_changed(self):
        self.notified += 1


class TestCreateFilterFn:
    def test_empty_accepts_everything(self):
        assert create_filter_fn(None)({"anything": 1})
        assert create_filter_fn({})(object())

    def test_equality_and_membership(self):
        fn = create_filter_fn({"concept_type": "measure", "concept": ["gdp", "population"]})
        assert fn({"concept_type": "measure", "concept": "gdp"})
        assert not fn({"concept_type": "measure", "concept": "life_expectancy"})
        assert not fn({"concept_type": "string", "concept": "gdp"})

    def test_operators(self):
        assert create_filter_fn({"v": {"$in": [1, 2]}})({"v": 1})
        assert create_filter_fn({"v": {"$nin": [1, 2]}})({"v": 3})
        assert create_filter_fn({"v": {"$eq": 3}})({"v": 3})
        assert not create_filter_fn({"v": {"$ne": 3}})({"v": 3})

    def test_reads_attributes(self):
        fn = create_filter_fn({"concept_type": "entity_domain"})
        assert fn(Concept(concept="geo", concept_type="entity_domain"))
        assert not fn(Concept(concept="time", concept_type="time"))

    def test_callable_used_as_is(self):
        def is_geo(c):
            return c.concept == "geo"

        assert create_filter_fn(is_geo) is is_geo

    def test_unsupported_spec(self):
        with pytest.raises(TypeError):
            create_filter_fn(42)


class TestSelections:
    def test_set_has_delete(self):
        f = Filter()
        f.set({"geo": "swe"})
        assert f.has({"geo": "swe"})
        assert f.any()
        assert f.delete({"geo": "swe"})
        assert not f.delete({"geo": "swe"})
        assert not f.any()

    def test_key_uses_parent_space(self):
        f = Filter(parent=StubParent())
        f.set({"time": 2000, "geo": "swe", "name": "Sweden"})
        assert list(f.markers) == [(("geo", "swe"), ("time", 2000))]

    def test_payload(self):
        f = Filter()
        f.set({"geo": "swe"}, payload="highlight")
        assert f.get_payload({"geo": "swe"}) == "highlight"
        assert f.get_payload({"geo": "nor"}) is None

    def test_toggle(self):
        f = Filter()
        assert f.toggle("swe") is True
        assert f.has("swe")
        assert f.toggle("swe") is False
        assert not f.has("swe")

    def test_lists(self):
        f = Filter()
        f.set([{"geo": "swe"}, {"geo": "nor"}])
        assert len(f.markers) == 2
        assert f.delete([{"geo": "swe"}, {"geo": "nor"}])
        f.set("fin")
        f.clear()
        assert f.markers == {}

    def test_list_config_means_payload_true(self):
        f = Filter({"markers": ["swe", "nor"]})
        assert f.markers == {"swe": True, "nor": True}

    def test_changes_are_stored_and_notified(self):
        parent = StubParent()
        config = {}
        f = Filter(config, parent)
        f.set({"geo": "swe", "time": 2000})
        f.delete({"geo": "swe", "time": 2000})
        assert parent.notified == 2
        assert config == {"markers": {}}


class TestWhereClause:
    def test_empty(self):
        assert Filter().where_clause(["geo", "time"]) == {}

    def test_selections_matching_space(self):
        f = Filter({"markers": {(("geo", "swe"), ("time", 2000)): True, (("geo", "nor"),): True, "opaque": True}})
        assert f.where_clause(["time", "geo"]) == {"$or": [{"geo": "swe", "time": 2000}]}
        assert f.where_clause(["geo"]) == {"$or": [{"geo": "nor"}]}

    def test_dimension_filters(self):
        f = Filter(
            {"dimensions": {"geo": {"geo": {"$in": ["swe"]}, "is--country": True}}},
            StubParent(),
        )
        assert f.where_clause(["geo", "time"]) == {
            "geo": {"$in": ["swe"]},
            "geo.is--country": True,
        }

    def test_entity_concept_left_out_of_entity_query(self):
        f = Filter({"dimensions": {"geo": {"geo": {"$in": ["swe"]}, "is--country": True}}}, StubParent())
        assert f.where_clause(["geo"]) == {"is--country": True}

    def test_selections_or_dimension_filters(self):
        f = Filter(
            {
                "markers": {(("geo", "swe"), ("time", 2000)): True},
                "dimensions": {"time": {"time": {"$in": [2001]}}},
            },
            StubParent(),
        )
        assert f.where_clause(["geo", "time"]) == {
            "$or": [
                {"geo": "swe", "time": 2000},
                {"$and": [{"time": {"$in": [2001]}}]},
            ]
        }
