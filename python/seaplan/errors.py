"""Exceptions raised by the planning pipeline.

Every stage fails fast and propagates; only the CLI catches these.
"""


class PlanningError(Exception):
    """Base class for all pipeline failures."""


class UpstreamDataError(PlanningError):
    """Boundary, feature or cost data could not be obtained."""


class RegionNotFoundError(UpstreamDataError):
    pass


class AmbiguousRegionError(UpstreamDataError):
    pass


class ValidationError(PlanningError, ValueError):
    """Invalid inputs detected before the solver is invoked."""


class InfeasibleProblemError(PlanningError):
    """The solver proved that no selection meets every target."""


class SolverError(PlanningError, RuntimeError):
    """The solver returned neither a solution nor a proof of infeasibility."""
