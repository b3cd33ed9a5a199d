"""
Availability index: which concepts exist for which key spaces.

Built by a data source from its metadata and read by the solver. Spaces are
looked up order-insensitively: ("geo", "time") and ("time", "geo") share one
entry, which remembers the order it was first seen in.
"""

from collections.abc import Iterable, KeysView, Sequence

from chartbind.core.config import config
from chartbind_spec import Concept, Space


class Availability:
    """Space -> concepts lookup."""

    def __init__(
        self,
        pairs: Iterable[tuple[Sequence[str], str]] = (),
        separator: str | None = None,
    ):
        self.separator = separator or config.space_key_separator
        self.key_lookup: dict[str, Space] = {}
        self.key_value_lookup: dict[str, dict[str, None]] = {}
        for space, concept in pairs:
            self.add(space, concept)

    @classmethod
    def from_records(cls, records: Iterable[dict]) -> "Availability":
        """Build from {"key": [...], "value": "concept"} records (ddf availability shape)."""
        return cls((record["key"], record["value"]) for record in records)

    def key_str(self, space: Iterable[str]) -> str:
        return self.separator.join(sorted(space))

    def add(self, space: Sequence[str], concept: str) -> None:
        key = self.key_str(space)
        self.key_lookup.setdefault(key, tuple(space))
        self.key_value_lookup.setdefault(key, {})[concept] = None

    def space_to_concept_availability(self, space: Iterable[str]) -> KeysView[str]:
        """Concepts observed for `space`, in observation order (set-like view)."""
        return self.key_value_lookup.get(self.key_str(space), {}).keys()

    def concepts_for_space(self, space: Iterable[str]) -> list[str]:
        return list(self.space_to_concept_availability(space))

    def has_space(self, space: Iterable[str]) -> bool:
        return self.key_str(space) in self.key_lookup

    def has(self, space: Iterable[str], concept: str) -> bool:
        return concept in self.space_to_concept_availability(space)

    def all_spaces(self) -> list[Space]:
        return list(self.key_lookup.values())

    @property
    def data(self) -> list[tuple[Space, str]]:
        """Every (space, concept) pair."""
        return [
            (self.key_lookup[key], concept)
            for key, concepts in self.key_value_lookup.items()
            for concept in concepts
        ]

    def describe(self, concepts: dict[str, Concept]) -> list[Concept]:
        """Concept metadata for every pair whose concept is known."""
        return [concepts[c] for _, c in self.data if c in concepts]

    def __len__(self) -> int:
        return sum(len(c) for c in self.key_value_lookup.values())

    def __repr__(self) -> str:
        return f"Availability(spaces={len(self.key_lookup)}, pairs={len(self)})"
