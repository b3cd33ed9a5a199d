"""
Pydantic configuration for chartbind.

This module provides focused, single-responsibility config classes:
- BindingDefaults: defaults every data binding starts from
- SpaceAutoConfig / ConceptAutoConfig: placeholders asking the solver to fill in a value
- Config: main library configuration (source of truth)

And a YAML loader for applications that keep settings on disk.
"""

from pathlib import Path
from typing import Any, Callable, List, Literal, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field

from chartbind_spec import ConceptType


# =============================================================================
# 1. Auto-configuration placeholders
# =============================================================================


class SpaceAutoConfig(BaseModel):
    """A space left for the solver to choose.

    filter restricts which concepts may appear as dimensions of a candidate space.
    """

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    filter: Union[dict, Callable, None] = None


class ConceptAutoConfig(BaseModel):
    """A concept left for the solver to choose."""

    model_config = ConfigDict(extra="ignore", arbitrary_types_allowed=True)

    solve_method: Optional[str] = None  # falls back to config.default_solve_strategy
    select_method: Optional[str] = None  # falls back to config.default_select_strategy
    filter: Union[dict, Callable, None] = None
    allowed_properties: Optional[List[str]] = None


# =============================================================================
# 2. Binding defaults
# =============================================================================


class BindingDefaults(BaseModel):
    """Defaults applied to a data binding for every key missing from its config."""

    filter: Optional[dict] = None
    constant: Any = None
    concept: Union[str, dict] = Field(
        default_factory=lambda: {"filter": {"concept_type": ConceptType.MEASURE.value}}
    )
    space: Union[List[str], dict] = Field(default_factory=dict)  # solve from data
    value: Any = None
    locale: Optional[str] = None
    source: Optional[str] = None
    domain: List[Any] = Field(default_factory=lambda: [0, 1])
    domain_data_source: str = "auto"


# =============================================================================
# 3. Main Library Configuration (Source of Truth)
# =============================================================================


class Config(BaseModel):
    """
    Main library configuration.
    This class defines the schema and default values for the whole package.
    """

    model_config = ConfigDict(extra="ignore")

    binding_defaults: BindingDefaults = Field(default_factory=BindingDefaults)

    # Solver
    default_solve_strategy: str = "default_concept_solver"
    default_select_strategy: str = "select_unused_concept"
    entity_flag_prefix: str = "is--"

    # Domains
    continuous_concept_types: List[str] = Field(
        default_factory=lambda: [ConceptType.MEASURE.value, ConceptType.TIME.value]
    )
    entity_concept_types: List[str] = Field(
        default_factory=lambda: [ConceptType.ENTITY_DOMAIN.value, ConceptType.ENTITY_SET.value]
    )

    # Availability keys
    space_key_separator: str = "¬"

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"


def load_config(config_path: str | Path) -> Config:
    """Load configuration from YAML file.

    Missing keys keep their defaults; unknown keys are ignored.
    """
    with open(Path(config_path)) as f:
        data = yaml.safe_load(f) or {}
    return Config(**data)


# =============================================================================
# 4. Global Singleton Configuration
# =============================================================================

# Global singleton configuration object
# This allows 'from chartbind.core.config import config'
config = Config()


def use_config(config_path: str | Path) -> Config:
    """Load a YAML file and make it the active configuration.

    The singleton is updated in place, so modules holding `config` see the change.
    Bindings created earlier keep the defaults they were created with.
    """
    loaded = load_config(config_path)
    for name in Config.model_fields:
        setattr(config, name, getattr(loaded, name))
    return config
