"""Registry of named data sources shared by every binding."""

import logging
from collections.abc import Mapping
from typing import Any

from chartbind.core.refs import resolve_ref
from chartbind.source.base import DataSource

logger = logging.getLogger(__name__)


class SourceStore:
    """
    Name -> DataSource registry plus source types that can be created from config.

    A binding's source config may be:
    - a DataSource instance (used as is)
    - a registered name
    - a mapping {"name": ...} of a registered source, or
      {"model_type": ..., "name": ..., **kwargs} creating one from a registered type
    """

    def __init__(self):
        self._sources: dict[str, DataSource] = {}
        self._types: dict[str, type[DataSource]] = {}

    def register(self, name: str, source: DataSource) -> DataSource:
        self._sources[name] = source
        return source

    def register_type(self, model_type: str, cls: type[DataSource]) -> None:
        self._types[model_type] = cls

    def unregister(self, name: str) -> None:
        self._sources.pop(name, None)

    def get(self, ref: Any, requester: Any = None) -> DataSource | None:
        ref = resolve_ref(ref)
        if ref is None:
            return None
        if isinstance(ref, DataSource):
            return ref
        if isinstance(ref, str) and ref in self._sources:
            return self._sources[ref]
        if isinstance(ref, Mapping):
            name = ref.get("name")
            if name in self._sources:
                return self._sources[name]
            model_type = ref.get("model_type")
            if model_type in self._types:
                kwargs = {k: v for k, v in ref.items() if k != "model_type"}
                source = self._types[model_type](**kwargs)
                if name:
                    self.register(name, source)
                return source

        logger.warning(
            f"Data source {ref!r} not found",
            extra={"event": "source_not_found", "source": ref, "binding": requester},
        )
        return None

    def __contains__(self, name: str) -> bool:
        return name in self._sources

    def clear(self) -> None:
        self._sources.clear()


# Global default store
# This allows 'from chartbind.source.store import source_store'
source_store = SourceStore()
