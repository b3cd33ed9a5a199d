import asyncio

import numpy as np
import pandas as pd
import pytest

from chartbind.source import DataSource, SourceStore


CONCEPTS = [
    {"concept": "geo", "concept_type": "entity_domain", "name": "Geography"},
    {"concept": "gender", "concept_type": "entity_domain", "name": "Gender"},
    {"concept": "time", "concept_type": "time", "name": "Time"},
    {"concept": "population", "concept_type": "measure", "name": "Population"},
    {"concept": "gdp", "concept_type": "measure", "name": "GDP per capita"},
    {"concept": "life_expectancy", "concept_type": "measure", "name": "Life expectancy"},
    {"concept": "name", "concept_type": "string", "name": "Name"},
    {"concept": "is--country", "concept_type": "boolean"},
    {"concept": "concept_type", "concept_type": "string"},
]

AVAILABILITY = [
    (("geo",), "name"),
    (("geo",), "is--country"),
    (("gender",), "name"),
    (("geo", "time"), "population"),
    (("geo", "time"), "gdp"),
    (("geo", "time"), "life_expectancy"),
    (("geo", "gender", "time"), "population"),
    (("concept",), "concept_type"),
    (("concept",), "name"),
]

TABLES = {
    ("geo",): pd.DataFrame({
        "geo": ["swe", "nor", "fin"],
        "name": ["Sweden", "Norway", "Finland"],
        "is--country": [True, True, True],
    }),
    ("gender",): pd.DataFrame({
        "gender": ["male", "female"],
        "name": ["Male", "Female"],
    }),
    ("geo", "time"): pd.DataFrame({
        "geo": ["swe", "swe", "nor", "nor", "fin", "fin"],
        "time": [2000, 2001, 2000, 2001, 2001, 2002],
        "population": [8872000, 8896000, 4491000, 4514000, 5188000, 5200000],
        "gdp": [30000.0, 31000.0, 40000.0, np.nan, 28000.0, np.nan],
        "life_expectancy": [79.6, 79.8, 78.7, 78.9, 77.9, 78.0],
    }),
    ("geo", "gender", "time"): pd.DataFrame({
        "geo": ["swe", "swe"],
        "gender": ["male", "female"],
        "time": [2000, 2000],
        "population": [4400000, 4472000],
    }),
}


def _matches(row: dict, where: dict) -> bool:
    for field, condition in where.items():
        if field == "$or":
            if not any(_matches(row, clause) for clause in condition):
                return False
        elif field == "$and":
            if not all(_matches(row, clause) for clause in condition):
                return False
        elif isinstance(condition, dict) and "$in" in condition:
            if row.get(field) not in condition["$in"]:
                return False
        elif row.get(field) != condition:
            return False
    return True


class FakeSource(DataSource):
    """
    In-memory source over pandas tables, for testing bindings without I/O.

    Records every query it receives. Set `fail_queries` to make queries raise,
    `fail_metadata` to make metadata loading raise.
    """

    def __init__(self, name="gapminder", locale=None, as_pandas=False, tables=None):
        super().__init__(name=name, locale=locale)
        self.tables = tables if tables is not None else TABLES
        self.as_pandas = as_pandas
        self.queries: list = []
        self.concept_fetches = 0
        self.availability_fetches = 0
        self.fail_queries = False
        self.fail_metadata = False

    async def fetch_concepts(self):
        self.concept_fetches += 1
        await asyncio.sleep(0)
        return CONCEPTS

    async def fetch_availability(self):
        self.availability_fetches += 1
        await asyncio.sleep(0)
        if self.fail_metadata:
            raise RuntimeError("availability unavailable")
        return AVAILABILITY

    async def query(self, query):
        self.queries.append(query)
        await asyncio.sleep(0)
        if self.fail_queries:
            raise RuntimeError("query failed")
        key = tuple(query["select"]["key"])
        table = next(
            (df for space, df in self.tables.items() if sorted(space) == sorted(key)),
            None,
        )
        if table is None:
            return []
        columns = [c for c in list(key) + list(query["select"]["value"]) if c in table.columns]
        frame = table[columns]
        if self.as_pandas:
            return frame.copy()
        rows = frame.astype(object).where(pd.notna(frame), None).to_dict(orient="records")
        where = query.get("where") or {}
        return [row for row in rows if _matches(row, where)]


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def sources(source):
    """Source registry holding the fake source as "gapminder"."""
    store = SourceStore()
    store.register("gapminder", source)
    return store


@pytest.fixture
def source_factory():
    """Factory fixture to create FakeSource with custom options."""
    return FakeSource
