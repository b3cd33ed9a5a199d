"""
Query description building and parsing - the contract boundary between the
binding core and the query collaborator.

This module defines HOW an outgoing query description is assembled and HOW an
incoming one is validated.

IMPORTANT: This is a CONTRACT file. If you change these functions, you MUST update both:
1. DataBinding.ddf_query / EntityPropertyDataBinding.queries - how queries are built
2. DataSource.query implementations - how queries are consumed
"""

from typing import Any, Iterable, Mapping

from chartbind_spec.types import (
    DdfQuery,
    QUERY_FROM_DATAPOINTS,
    QUERY_FROM_ENTITIES,
)


def query_from_for_space(space: Iterable[str]) -> str:
    """Source kind tag for a space: entities for 1-dim keys, datapoints otherwise."""
    return QUERY_FROM_ENTITIES if len(list(space)) == 1 else QUERY_FROM_DATAPOINTS


def build_query(
    space: Iterable[str],
    concepts: Iterable[str],
    where: Mapping[str, Any] | None = None,
    language: str | None = None,
) -> DdfQuery:
    """
    Build a query description.

    Args:
        space: Key dimensions of the requested rows
        concepts: Value concepts to select
        where: Optional predicate clause (omitted when empty)
        language: Optional locale tag

    Returns:
        DdfQuery dict with plain lists only
    """
    key = list(space)
    query: DdfQuery = {
        "select": {"key": key, "value": list(concepts)},
        "from": query_from_for_space(key),
    }
    if where:
        query["where"] = dict(where)
    if language:
        query["language"] = language
    return query


def parse_query(payload: Mapping[str, Any]) -> DdfQuery:
    """
    Validate a raw query description.

    Args:
        payload: Mapping as received by a query collaborator

    Returns:
        Normalized DdfQuery

    Raises:
        ValueError: if the payload breaks the contract
    """
    select = payload.get("select")
    if not isinstance(select, Mapping):
        raise ValueError("Query is missing a 'select' clause")

    key = select.get("key")
    value = select.get("value")
    if not key or isinstance(key, str):
        raise ValueError(f"Query select.key must be a non-empty list, got {key!r}")
    if value is None or isinstance(value, str):
        raise ValueError(f"Query select.value must be a list, got {value!r}")

    source_kind = payload.get("from")
    if source_kind not in (QUERY_FROM_ENTITIES, QUERY_FROM_DATAPOINTS):
        raise ValueError(
            f"Invalid query 'from': {source_kind!r}. "
            f"Expected one of: {QUERY_FROM_ENTITIES}, {QUERY_FROM_DATAPOINTS}"
        )
    if source_kind != query_from_for_space(key):
        raise ValueError(
            f"Query 'from' is {source_kind!r} but key {list(key)} implies "
            f"{query_from_for_space(key)!r}"
        )

    where = payload.get("where")
    if where is not None and not isinstance(where, Mapping):
        raise ValueError(f"Query 'where' must be a mapping, got {type(where).__name__}")

    return build_query(key, value, where=where, language=payload.get("language"))
