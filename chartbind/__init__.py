"""
chartbind: data bindings for chart encodings.

Bindings connect a visual property to data: they resolve which space and
concept to read (solving them from the source's metadata when left open),
query the source and expose the answer as keyed frames with domains.
"""

from chartbind.core.binding import DataBinding
from chartbind.core.config import Config, ConceptAutoConfig, SpaceAutoConfig, config, load_config, use_config
from chartbind.core.entity_property import EntityPropertyDataBinding
from chartbind.core.filter import Filter, create_filter_fn
from chartbind.core.marker import Encoding, Marker
from chartbind.core.reactive import Memo, Signal, TrackedPromise
from chartbind.core.refs import Ref, resolve_ref
from chartbind.core.solver import register_select_strategy, register_solve_strategy
from chartbind.core.store import create_binding, register_binding_type
from chartbind.errors import ChartbindError, GroupingPreconditionError
from chartbind.source import Availability, DataSource, SourceStore, source_store

__version__ = "0.1.0"

__all__ = [
    "Availability",
    "ChartbindError",
    "ConceptAutoConfig",
    "Config",
    "DataBinding",
    "DataSource",
    "Encoding",
    "EntityPropertyDataBinding",
    "Filter",
    "GroupingPreconditionError",
    "Marker",
    "Memo",
    "Ref",
    "Signal",
    "SourceStore",
    "SpaceAutoConfig",
    "TrackedPromise",
    "config",
    "create_binding",
    "create_filter_fn",
    "load_config",
    "register_binding_type",
    "register_select_strategy",
    "register_solve_strategy",
    "resolve_ref",
    "source_store",
    "use_config",
]
