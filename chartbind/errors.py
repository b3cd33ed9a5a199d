"""Exceptions raised by chartbind.

Only contract breaches raise. Unsolvable configurations and failed queries are
reported through logging and surface as "not ready" instead.
"""


class ChartbindError(Exception):
    """Base error of the chartbind package."""


class GroupingPreconditionError(ChartbindError, ValueError):
    """A grouped frame does not have the shape a specialized algorithm requires."""
