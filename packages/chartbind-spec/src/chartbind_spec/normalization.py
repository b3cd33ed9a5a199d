"""
Value normalization for fingerprinting.

Turns configuration snapshots into plain JSON-able structures so that two
snapshots with the same meaning produce the same fingerprint.
"""

from collections.abc import Mapping
from typing import Any, Callable

import numpy as np
import pandas as pd
from pydantic import BaseModel


# Hook for symbolic references: returns (True, replacement) when obj is a reference.
# Installed by chartbind.core.refs so this package stays independent of the core.
_reference_resolvers: list[Callable[[Any], tuple[bool, Any]]] = []


def register_reference_resolver(resolver: Callable[[Any], tuple[bool, Any]]) -> None:
    """Teach normalize_value how to follow a reference type."""
    if resolver not in _reference_resolvers:
        _reference_resolvers.append(resolver)


def normalize_value(obj: Any) -> Any:
    """
    Normalize a value into JSON-able form.

    - References are replaced by what their resolver returns
    - pydantic models become dicts
    - numpy scalars/arrays become Python scalars/lists
    - pandas DataFrames become row records, Series become lists
    - sets are sorted, tuples become lists
    - callables become their qualified name plus identity
    """
    for resolver in _reference_resolvers:
        is_ref, resolved = resolver(obj)
        if is_ref:
            return normalize_value(resolved)

    if obj is None or isinstance(obj, (bool, str)):
        return obj
    if isinstance(obj, np.bool_):
        return bool(obj)
    if isinstance(obj, (int, np.integer)):
        return int(obj)
    if isinstance(obj, (float, np.floating)):
        value = float(obj)
        return None if value != value else value
    if isinstance(obj, BaseModel):
        return normalize_value(obj.model_dump())
    if isinstance(obj, pd.DataFrame):
        return normalize_value(obj.to_dict(orient="records"))
    if isinstance(obj, pd.Series):
        return normalize_value(obj.tolist())
    if isinstance(obj, np.ndarray):
        return normalize_value(obj.tolist())
    if isinstance(obj, Mapping):
        return {str(k): normalize_value(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted((normalize_value(v) for v in obj), key=repr)
    if isinstance(obj, (list, tuple)):
        return [normalize_value(v) for v in obj]
    if callable(obj):
        name = getattr(obj, "__qualname__", type(obj).__qualname__)
        return f"<callable {getattr(obj, '__module__', '?')}.{name}@{id(obj):x}>"
    return f"<{type(obj).__qualname__}@{id(obj):x}>"
