"""
Data source base class.

A data source owns the concept catalog and availability index of one dataset
and executes query descriptions against it. Bindings only read from sources.

Subclasses implement three coroutines:
    fetch_concepts()      -> iterable of concept records
    fetch_availability()  -> iterable of (space, concept) pairs
    query(query)          -> rows (list of dicts, DataFrame or pandas DataFrame)

Usage:
    class CsvSource(DataSource):
        ...

    source = CsvSource(name="gapminder")
    await source.metadata_ready     # concepts + availability loaded
    rows = await source.query(binding.ddf_query)
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from chartbind.core.config import config
from chartbind.core.reactive import Signal
from chartbind.source.availability import Availability
from chartbind_spec import Concept, DdfQuery

logger = logging.getLogger(__name__)


class DataSource(ABC):
    """Shared, long-lived source of metadata and query results."""

    def __init__(self, name: str | None = None, locale: str | None = None):
        self.name = name or type(self).__name__
        self.locale = locale
        self.availability = Availability()
        self.concepts: dict[str, Concept] = {}
        self.version = 0  # bumped whenever metadata changes
        self.changed = Signal()
        self.concepts_loaded = False
        self.metadata_loaded = False
        self._concepts_task: asyncio.Task | None = None
        self._metadata_task: asyncio.Task | None = None

    # ---- to implement ----

    @abstractmethod
    async def fetch_concepts(self) -> Iterable[Mapping | Concept]:
        """Concept catalog records ({"concept": ..., "concept_type": ..., ...})."""

    @abstractmethod
    async def fetch_availability(self) -> Iterable[tuple[Sequence[str], str]]:
        """(space, concept) pairs observed in the dataset."""

    @abstractmethod
    async def query(self, query: DdfQuery) -> Any:
        """Execute a query description and return its rows."""

    # ---- readiness ----

    @property
    def concepts_ready(self) -> asyncio.Task:
        """Task completing once the concept catalog is loaded. Started on first access."""
        if self._concepts_task is None:
            self._concepts_task = asyncio.ensure_future(self._load_concepts())
        return self._concepts_task

    @property
    def metadata_ready(self) -> asyncio.Task:
        """Task completing once concepts and availability are loaded."""
        if self._metadata_task is None:
            self._metadata_task = asyncio.ensure_future(self._load_metadata())
        return self._metadata_task

    async def _load_concepts(self) -> None:
        records = await self.fetch_concepts()
        self.concepts = {
            concept.concept: concept
            for concept in (
                r if isinstance(r, Concept) else Concept.model_validate(r) for r in records
            )
        }
        self.concepts_loaded = True
        self._bump()
        logger.debug(f"Loaded {len(self.concepts)} concepts for source {self.name}")

    async def _load_metadata(self) -> None:
        await self.concepts_ready
        pairs = await self.fetch_availability()
        self.availability = Availability(pairs)
        self.metadata_loaded = True
        self._bump()
        logger.debug(f"Loaded availability for source {self.name}: {self.availability!r}")

    def _bump(self) -> None:
        self.version += 1
        self.changed.emit(self)

    def reload(self) -> None:
        """Forget loaded metadata; the next readiness access fetches it again."""
        self._concepts_task = None
        self._metadata_task = None
        self.concepts_loaded = False
        self.metadata_loaded = False
        self._bump()

    # ---- metadata access ----

    def get_concept(self, concept_id: str) -> Concept | None:
        return self.concepts.get(concept_id)

    def is_entity_concept(self, concept_id: str) -> bool:
        concept = self.concepts.get(concept_id)
        return concept is not None and concept.concept_type in config.entity_concept_types

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version})"
