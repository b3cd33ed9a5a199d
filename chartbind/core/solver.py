"""
Auto-configuration solver.

Finds a configuration which satisfies both the marker space and every encoding
concept autoconfig:

1. Candidate spaces come from the source's availability index, minus spaces
   containing the "concept" pseudo-dimension or failing the space filter,
   ordered by preference (smallest multi-dimensional first, 1-dim last).
2. For a marker, each candidate space is tried in turn; every encoding solves
   its concept against it in declaration order, avoiding concepts already
   taken by earlier encodings. The first space for which every encoding
   succeeds wins. There is no backtracking.
3. Concepts are picked by named solve strategies; the registry is open:

    @register_solve_strategy("largest_population")
    def largest_population(space, binding, avoid):
        ...

Failures are not errors: solving returns None, logs a diagnostic, and the
binding stays "not ready".
"""

import logging
from collections import Counter
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from typing import Any, Optional, Protocol

from chartbind.core.config import ConceptAutoConfig, SpaceAutoConfig, config
from chartbind.core.filter import create_filter_fn
from chartbind.core.refs import is_reference, resolve_ref
from chartbind_spec import (
    CONCEPT_DIMENSION,
    Concept,
    MarkerSolution,
    ResolvedConfig,
    Space,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Strategy registry
# =============================================================================


class SolveStrategy(Protocol):
    """Picks a concept for `space`, avoiding the concepts in `avoid` if it can."""

    def __call__(self, space: Space, binding: Any, avoid: Sequence[str]) -> Optional[str]: ...


class SelectStrategy(Protocol):
    """Picks one of the candidate concepts prepared by a solve strategy."""

    def __call__(
        self, concepts: list[Concept], binding: Any, avoid: Sequence[str], space: Space
    ) -> Optional[Concept]: ...


SOLVE_STRATEGIES: dict[str, SolveStrategy] = {}
SELECT_STRATEGIES: dict[str, SelectStrategy] = {}


def register_solve_strategy(name: str, fn: SolveStrategy | None = None):
    """Register a concept solve strategy. Usable as a decorator when fn is omitted."""
    if fn is None:
        def decorator(f: SolveStrategy) -> SolveStrategy:
            SOLVE_STRATEGIES[name] = f
            return f
        return decorator
    SOLVE_STRATEGIES[name] = fn
    return fn


def register_select_strategy(name: str, fn: SelectStrategy | None = None):
    """Register a candidate select strategy. Usable as a decorator when fn is omitted."""
    if fn is None:
        def decorator(f: SelectStrategy) -> SelectStrategy:
            SELECT_STRATEGIES[name] = f
            return f
        return decorator
    SELECT_STRATEGIES[name] = fn
    return fn


# =============================================================================
# Config inspection
# =============================================================================


def needs_solving(cfg: Any) -> bool:
    """A placeholder is any mapping (or autoconfig model), as opposed to a concrete value."""
    cfg = resolve_ref(cfg)
    return isinstance(cfg, (Mapping, SpaceAutoConfig, ConceptAutoConfig))


def _has_key(binding, name: str) -> bool:
    return name in binding.config


def _space_cfg(binding) -> Any:
    return binding.config.get("space") if _has_key(binding, "space") else binding.defaults.get("space")


def _concept_cfg(binding) -> Any:
    return binding.config.get("concept") or binding.defaults.get("concept")


def concept_auto_config(binding) -> ConceptAutoConfig:
    cfg = resolve_ref(_concept_cfg(binding))
    if isinstance(cfg, ConceptAutoConfig):
        return cfg
    return ConceptAutoConfig.model_validate(dict(cfg) if isinstance(cfg, Mapping) else {})


def space_auto_config(binding) -> SpaceAutoConfig:
    for cfg in (binding.config.get("space"), binding.defaults.get("space")):
        cfg = resolve_ref(cfg)
        if isinstance(cfg, SpaceAutoConfig):
            return cfg
        if isinstance(cfg, Mapping) and cfg.get("filter"):
            return SpaceAutoConfig.model_validate(dict(cfg))
    return SpaceAutoConfig()


def needs_space_auto_config(binding) -> bool:
    """
    True when the space is a placeholder.

    Encodings inside a marker solve their own space only if their own config
    asks for it; otherwise they take the marker's space. Markers and
    standalone bindings also honour a placeholder in their defaults.
    """
    cfg = binding.config
    is_marker_or_standalone = not binding.has_encoding_marker
    uses_default_auto_config = cfg.get("space") is None and needs_solving(binding.defaults.get("space"))
    return needs_solving(cfg.get("space")) or (is_marker_or_standalone and uses_default_auto_config)


def needs_concept_auto_config(binding) -> bool:
    """
    True when the concept is a placeholder.

    A concept that references another binding never needs solving. The
    marker's own row-identity binding only solves an explicit placeholder.
    """
    cfg = binding.config
    if is_reference(cfg.get("concept")):
        return False
    is_standalone = binding.marker is None
    is_encoding = binding.has_encoding_marker
    uses_default_solving = "concept" not in cfg and needs_solving(binding.defaults.get("concept"))
    return needs_solving(cfg.get("concept")) or ((is_encoding or is_standalone) and uses_default_solving)


def needs_auto_config(binding) -> bool:
    return needs_space_auto_config(binding) or needs_concept_auto_config(binding)


# =============================================================================
# Resolution
# =============================================================================


def config_solution(binding) -> ResolvedConfig | MarkerSolution | None:
    """
    Resolved configuration of a binding.

    - encodings read their entry from the marker solution (never solve alone)
    - the marker's row-identity binding solves the whole marker
    - standalone bindings solve space and concept for themselves
    """
    if binding.marker is not None:
        if binding.has_encoding_marker:
            solution = binding.marker.data.config_solution
            if solution is None:
                return None
            return solution.encodings.get(binding.parent.name)
        return marker_solution(binding)
    return encoding_solution(binding)


def encoding_solution(
    binding,
    fallback_space: Sequence[str] | None = None,
    avoid: Sequence[str] = (),
) -> ResolvedConfig | None:
    if _has_key(binding, "space"):
        space_cfg = resolve_ref(binding.config["space"])
    else:
        space_cfg = fallback_space or binding.defaults.get("space")
    concept_cfg = binding.config["concept"] if _has_key(binding, "concept") else binding.defaults.get("concept")

    if needs_space_auto_config(binding):
        return find_space_and_concept(binding, avoid)
    if space_cfg is None or needs_solving(space_cfg):
        return None
    if needs_concept_auto_config(binding):
        return find_concept_for_space(tuple(space_cfg), binding, avoid)
    return ResolvedConfig(tuple(space_cfg), resolve_ref(concept_cfg))


def find_marker_config_for_space(marker_binding, space: Sequence[str]) -> MarkerSolution | None:
    """Solve every encoding against `space`; all must succeed."""
    encodings: dict[str, ResolvedConfig] = {}
    used_concepts: list[str] = []

    for name, encoding in marker_binding.parent.encoding.items():
        result = encoding_solution(encoding.data, space, used_concepts)
        if not result:
            return None
        encodings[name] = result
        used_concepts.append(result.concept)

    return MarkerSolution(tuple(space), encodings)


def marker_solution(binding) -> MarkerSolution | None:
    if not getattr(binding.parent, "encoding", None):
        logger.warning(
            "Can't get marker solution for a non-marker data binding",
            extra={"event": "marker_solution_for_non_marker", "binding": binding},
        )

    if needs_space_auto_config(binding):
        if binding.source is None:
            logger.warning(
                "Can't autoconfigure marker space without a source defined",
                extra={"event": "marker_without_source", "binding": binding},
            )
            return None
        return auto_config_space(binding, lambda space: find_marker_config_for_space(binding, space))

    space = resolve_ref(_space_cfg(binding))
    if space is None or needs_solving(space):
        return None
    return find_marker_config_for_space(binding, space)


def sort_spaces_by_preference(spaces: Iterable[Space]) -> list[Space]:
    """Multi-dimensional spaces smallest first, then 1-dim (and empty) spaces last."""
    return sorted(
        spaces,
        key=lambda s: (len(s) <= 1, -len(s) if len(s) <= 1 else len(s)),
    )


def candidate_spaces(binding) -> Iterator[Space]:
    """Spaces the solver may pick for `binding`, most preferred first."""
    source = binding.source
    satisfies_space_filter = create_filter_fn(space_auto_config(binding).filter)

    for space in sort_spaces_by_preference(source.availability.all_spaces()):
        if CONCEPT_DIMENSION in space:
            continue
        concepts = [source.get_concept(dim) or Concept(concept=dim) for dim in space]
        if all(satisfies_space_filter(c) for c in concepts):
            yield space


def auto_config_space(binding, get_further_result: Callable[[Space], Any]) -> Any:
    """First candidate space for which `get_further_result` succeeds."""
    for space in candidate_spaces(binding):
        result = get_further_result(space)
        if result:
            return result

    logger.warning(
        "Could not autoconfig to a space which also satisfies further results",
        extra={"event": "autoconfig_failed", "binding": binding},
    )
    return None


def find_space_and_concept(binding, avoid: Sequence[str] = ()) -> ResolvedConfig | None:
    if binding.source is None:
        logger.warning(
            "Can't autoconfigure space without a source defined",
            extra={"event": "autoconfig_failed", "binding": binding},
        )
        return None
    return auto_config_space(binding, lambda space: find_concept_for_space(space, binding, avoid))


def is_concept_available_for_space(binding, space: Sequence[str], concept: str) -> bool:
    """Available in the index, or one of the space's own dimensions."""
    if concept in space:
        return True
    source = binding.source
    return source is not None and source.availability.has(space, concept)


def find_concept_for_space(
    space: Sequence[str], binding, avoid: Sequence[str] = ()
) -> ResolvedConfig | None:
    """
    Concept for `binding` in `space` that avoids the concepts in `avoid` if possible.

    Returns:
        ResolvedConfig, or None if no concept satisfies the binding in this space
    """
    space = tuple(space)
    concept = None
    concept_cfg = resolve_ref(_concept_cfg(binding))

    if binding.is_constant():
        return ResolvedConfig(space, None)
    elif needs_solving(concept_cfg):
        auto_cfg = concept_auto_config(binding)
        strategy_name = auto_cfg.solve_method or config.default_solve_strategy
        solve = SOLVE_STRATEGIES.get(strategy_name)
        if solve is None:
            logger.warning(
                f"Unknown concept solve strategy: {strategy_name!r}",
                extra={"event": "unknown_strategy", "binding": binding},
            )
        else:
            concept = solve(space, binding, avoid)
    elif concept_cfg is not None and is_concept_available_for_space(binding, space, concept_cfg):
        concept = concept_cfg

    if not concept:
        logger.warning(
            f"Could not autoconfig concept for space {list(space)}",
            extra={"event": "concept_not_found", "binding": binding, "space": space},
        )
        return None

    return ResolvedConfig(space, concept)


# =============================================================================
# Built-in strategies
# =============================================================================


@register_solve_strategy("default_concept_solver")
def default_concept_solver(space: Space, binding, avoid: Sequence[str]) -> Optional[str]:
    """
    Candidates = concepts available in exactly this space plus the space's own
    dimensions (so e.g. "time" can be plotted), minus entity flags, filtered by
    the concept filter; then the select strategy picks one.
    """
    source = binding.source
    if source is None:
        return None
    auto_cfg = concept_auto_config(binding)
    satisfies_filter = create_filter_fn(auto_cfg.filter)

    candidate_ids = list(dict.fromkeys(
        list(source.availability.space_to_concept_availability(space)) + list(space)
    ))
    candidates = [
        concept
        for concept in (
            source.get_concept(c) for c in candidate_ids if not c.startswith(config.entity_flag_prefix)
        )
        if concept is not None and satisfies_filter(concept)
    ]

    select_name = auto_cfg.select_method or config.default_select_strategy
    select = SELECT_STRATEGIES.get(select_name, select_unused_concept)
    chosen = select(candidates, binding, avoid, space)
    return chosen.concept if chosen is not None else None


@register_solve_strategy("most_common_dimension_property")
def most_common_dimension_property(space: Space, binding, avoid: Sequence[str]) -> Optional[str]:
    """
    Property shared by the most entity dimensions of the space (e.g. "name"
    for both geo and gender). Ties go to the first encountered. Restricted to
    allowed_properties when configured.
    """
    source = binding.source
    if source is None:
        return None
    allowed = concept_auto_config(binding).allowed_properties

    candidates: list[str] = []
    for dim in space:
        if not source.is_entity_concept(dim):
            continue
        candidates.extend(source.availability.space_to_concept_availability((dim,)))
    if allowed is not None:
        candidates = [c for c in candidates if c in allowed]
    return mode(candidates)


@register_select_strategy("select_unused_concept")
def select_unused_concept(
    concepts: list[Concept], binding: Any = None, avoid: Sequence[str] = (), space: Space = ()
) -> Optional[Concept]:
    """First candidate not in `avoid`, else the first candidate (duplicates as last resort)."""
    for concept in concepts:
        if concept.concept not in avoid:
            return concept
    return concepts[0] if concepts else None


def mode(values: Iterable[Any]) -> Any:
    """Most common value; ties go to the first encountered. None for no values."""
    counts = Counter(values)
    if not counts:
        return None
    best = max(counts.values())
    return next(v for v, n in counts.items() if n == best)


# =============================================================================
# Readiness before solving
# =============================================================================


def promises_before_solving(binding) -> list:
    """Metadata readiness the binding must await before it can be solved."""
    if needs_auto_config(binding) and binding.source is not None:
        return [binding.source.metadata_ready]
    return []


def marker_promises_before_solving(marker) -> list:
    """Unique readiness tasks of the marker binding and every encoding binding."""
    bindings = [marker.data] + [enc.data for enc in marker.encoding.values()]
    promises = []
    for binding in bindings:
        for promise in promises_before_solving(binding):
            if promise not in promises:
                promises.append(promise)
    return promises
