"""
Type definitions for chartbind.

This is the CONTRACT between the binding core, the query collaborator and the
rendering layer. All shared types in one place:
- Concept metadata (ConceptType, Concept)
- Solver results (ResolvedConfig, MarkerSolution)
- Readiness states (PromiseState)
- Query description TypedDicts (QuerySelect, DdfQuery)

IMPORTANT: Changes here affect every data source implementation.
If you modify the query TypedDicts, you MUST update:
1. chartbind_spec.query (build/parse)
2. DataSource.query implementations
3. Test fixtures
"""

from enum import Enum
from typing import Any, Final, NamedTuple, TypedDict

from pydantic import BaseModel, ConfigDict


# A space is an ordered composite key, e.g. ("country", "year")
Space = tuple[str, ...]


# ============= Concept Metadata =============


class ConceptType(str, Enum):
    """Type tag of a concept.

    Determines how the domain is computed:
    - MEASURE, TIME: continuous, [min, max]
    - everything else: distinct values in first-seen order
    """

    MEASURE = "measure"
    TIME = "time"
    ENTITY_SET = "entity_set"
    ENTITY_DOMAIN = "entity_domain"
    STRING = "string"
    BOOLEAN = "boolean"
    INTERVAL = "interval"


# Pseudo-dimension that never takes part in auto-configured spaces
CONCEPT_DIMENSION: Final = "concept"


class Concept(BaseModel):
    """Metadata of a single concept in a data source."""

    model_config = ConfigDict(extra="allow", frozen=True)

    concept: str
    concept_type: str | None = None
    name: str | None = None
    domain: str | None = None


# ============= Solver Results (NamedTuples) =============


class ResolvedConfig(NamedTuple):
    """Solved space and concept of a single binding.

    concept is None only when the binding is constant.
    """

    space: Space
    concept: str | None


class MarkerSolution(NamedTuple):
    """Solved shared space of a marker plus every encoding's resolution."""

    space: Space
    encodings: dict[str, ResolvedConfig]


# ============= Readiness =============


class PromiseState(str, Enum):
    """State of an asynchronous chain, as seen by the rendering layer."""

    PENDING = "pending"
    FULFILLED = "fulfilled"
    REJECTED = "rejected"


class DomainDataSource:
    """Named sources of rows for domain calculation.

    Any other string names a transformed view registered on the marker.
    """

    AUTO: Final = "auto"
    SELF: Final = "self"
    MARKERS: Final = "markers"
    FILTER_REQUIRED: Final = "filter_required"


# ============= Query Contract =============


class QuerySelect(TypedDict):
    """Selection clause of a query."""

    key: list[str]
    value: list[str]


# "from" is a keyword, so the functional syntax is required
DdfQuery = TypedDict(
    "DdfQuery",
    {
        "select": QuerySelect,
        "from": str,
        "where": dict[str, Any],
        "language": str,
    },
    total=False,
)

QUERY_FROM_ENTITIES: Final = "entities"
QUERY_FROM_DATAPOINTS: Final = "datapoints"


class DimensionResponse(TypedDict):
    """Rows returned for one entity dimension of an entity property query."""

    dim: str
    data: list[dict[str, Any]]
