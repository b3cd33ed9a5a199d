"""
Fingerprinting utilities for derived-value caching.

Every derived value of a binding (solution, response frame, domain) is cached
under the fingerprint of the inputs it was computed from:
  1. Normalize value (models → dict, references → identity, etc.)
  2. Round floats to consistent precision
  3. JSON serialize with sort_keys=True
  4. SHA256 hash, truncated to 16 chars

IMPORTANT: This is a CONTRACT file. Sources may use fingerprint() to key their
own query caches on the query description.
"""

from typing import Any
from hashlib import sha256
import json

from chartbind_spec.normalization import normalize_value

# Config values rarely carry floats, but constants and domains do.
DEFAULT_FINGERPRINT_PRECISION = 10


def _round_floats(obj: Any, precision: int) -> Any:
    """Recursively round all floats in a structure to consistent precision."""
    if isinstance(obj, float):
        return round(obj, precision)
    if isinstance(obj, dict):
        return {k: _round_floats(v, precision) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_round_floats(item, precision) for item in obj]
    return obj


def fingerprint(obj: Any, precision: int = DEFAULT_FINGERPRINT_PRECISION) -> str:
    """
    Fingerprint a snapshot of inputs.

    Args:
        obj: Any value (config dict, query description, tuple of inputs, ...)
        precision: Decimal places to round floats to

    Returns:
        16-character hex hash of the normalized object
    """
    normalized = normalize_value(obj)
    rounded = _round_floats(normalized, precision)
    json_str = json.dumps(rounded, sort_keys=True, default=str)
    return sha256(json_str.encode()).hexdigest()[:16]
