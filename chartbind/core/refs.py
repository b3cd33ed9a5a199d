"""
Symbolic config references.

A Ref stands for "whatever value another object currently has at this path",
e.g. an encoding reusing another encoding's configured concept:

    Ref(marker.encoding["x"], "data.config.concept")

A ref to the *solved* concept ("data.concept") of a sibling in the same
marker would need the marker solution while it is being computed, and raises
RecursionError. Refs to bindings of other markers may use solved values.

Refs are resolved lazily by following the path with attribute access (or key
lookup for mappings). A ref pointing at another ref is followed until a plain
value is reached.
"""

from dataclasses import dataclass
from typing import Any, Mapping

from chartbind_spec import register_reference_resolver

# Guards against ref cycles
MAX_REF_DEPTH = 32


@dataclass(frozen=True, eq=False)
class Ref:
    """Reference to the value at `path` on `target`."""

    target: Any
    path: str

    def resolve_once(self) -> Any:
        value = self.target
        for part in self.path.split("."):
            if isinstance(value, Mapping):
                value = value.get(part)
            else:
                value = getattr(value, part, None)
            if value is None:
                return None
        return value

    def __repr__(self) -> str:
        return f"Ref({type(self.target).__name__}:{self.path})"


def is_reference(value: Any) -> bool:
    return isinstance(value, Ref)


def resolve_ref(value: Any) -> Any:
    """Follow references until a plain value is reached."""
    depth = 0
    while isinstance(value, Ref):
        depth += 1
        if depth > MAX_REF_DEPTH:
            raise RecursionError(f"Reference chain too deep (cycle?) at {value!r}")
        value = value.resolve_once()
    return value


def change_signal(ref: Ref) -> Any:
    """The `changed` signal of the object a ref reads from, if it has one."""
    target = ref.target
    signal = getattr(target, "changed", None)
    if signal is None:
        signal = getattr(getattr(target, "data", None), "changed", None)
    return signal


def _describe_for_normalization(obj: Any) -> tuple[bool, Any]:
    # Identity, not value: resolving here would re-enter the solver of the
    # binding being fingerprinted. Target changes arrive through change_signal.
    if isinstance(obj, Ref):
        return True, {"$ref": f"{type(obj.target).__name__}@{id(obj.target):x}", "path": obj.path}
    return False, None


register_reference_resolver(_describe_for_normalization)
