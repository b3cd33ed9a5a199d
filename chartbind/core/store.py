"""Binding types selectable by `config["model_type"]`."""

from typing import Any

from chartbind.core.binding import DataBinding
from chartbind.core.entity_property import EntityPropertyDataBinding

BINDING_TYPES: dict[str, type[DataBinding]] = {}


def register_binding_type(name: str, cls: type[DataBinding]) -> type[DataBinding]:
    BINDING_TYPES[name] = cls
    return cls


def create_binding(config: dict | None = None, parent: Any = None, **kwargs: Any) -> DataBinding:
    """
    Create a binding of the type named by config["model_type"] (default "data").

    Raises:
        ValueError: if the model type was never registered
    """
    config = config if config is not None else {}
    model_type = config.get("model_type", DataBinding.model_type)
    cls = BINDING_TYPES.get(model_type)
    if cls is None:
        raise ValueError(
            f"Unknown binding model_type {model_type!r}. Registered: {sorted(BINDING_TYPES)}"
        )
    return cls(config, parent, **kwargs)


register_binding_type(DataBinding.model_type, DataBinding)
register_binding_type(EntityPropertyDataBinding.model_type, EntityPropertyDataBinding)
