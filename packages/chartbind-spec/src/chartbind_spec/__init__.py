"""
chartbind-spec: Type contracts for chartbind.

This package defines the contract between the binding core and its
collaborators:
- Types: concepts, solver results, readiness states, query descriptions
- Query: how query descriptions are built and validated
- Hashing: how input snapshots are fingerprinted for caching

If you change anything here, you MUST update both:
1. The binding core (chartbind.core) - how it builds/consumes these types
2. Data sources - how they execute query descriptions
"""

from chartbind_spec.types import (
    # Concept metadata
    Space,
    ConceptType,
    Concept,
    CONCEPT_DIMENSION,
    # Solver results
    ResolvedConfig,
    MarkerSolution,
    # Readiness
    PromiseState,
    DomainDataSource,
    # Query contract
    QuerySelect,
    DdfQuery,
    DimensionResponse,
    QUERY_FROM_ENTITIES,
    QUERY_FROM_DATAPOINTS,
)

from chartbind_spec.normalization import normalize_value, register_reference_resolver
from chartbind_spec.hashing import fingerprint
from chartbind_spec.query import build_query, parse_query, query_from_for_space

__version__ = "0.1.0"

__all__ = [
    # Concept metadata
    "Space",
    "ConceptType",
    "Concept",
    "CONCEPT_DIMENSION",
    # Solver results
    "ResolvedConfig",
    "MarkerSolution",
    # Readiness
    "PromiseState",
    "DomainDataSource",
    # Query contract
    "QuerySelect",
    "DdfQuery",
    "DimensionResponse",
    "QUERY_FROM_ENTITIES",
    "QUERY_FROM_DATAPOINTS",
    # Functions
    "normalize_value",
    "register_reference_resolver",
    "fingerprint",
    "build_query",
    "parse_query",
    "query_from_for_space",
]
