from chartbind.source.availability import Availability
from chartbind.source.base import DataSource
from chartbind.source.store import SourceStore, source_store

__all__ = ["Availability", "DataSource", "SourceStore", "source_store"]
