from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Union
import logging
import math

import numpy as np

from .errors import ValidationError
from .grid import PlanningGrid
from .layers import Layer, check_aligned, check_non_negative


logger = logging.getLogger(__name__)

Target = Union[float, Mapping[str, float]]


@dataclass(frozen=True, eq=False)
class Problem:
    """Minimum-set problem: pick in-area cells of least total cost so that every
    feature keeps at least targets[name] of its in-area total.
    """
    grid: PlanningGrid
    cost: Layer
    features: List[Layer]
    targets: Dict[str, float]
    locked_in: Optional[np.ndarray] = None
    locked_out: Optional[np.ndarray] = None

    @property
    def feature_names(self) -> List[str]:
        return [f.name for f in self.features]

    def required_amount(self, feature: Layer) -> float:
        return self.targets[feature.name] * feature.total


def _check_fraction(name: str, t) -> float:
    try:
        t = float(t)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Target for '{name}' is not a number: {t!r}") from e
    # 0 is allowed: it is trivially met by selecting nothing
    if not math.isfinite(t) or t < 0.0 or t > 1.0:
        raise ValidationError(f"Target for '{name}' must be within [0, 1], got {t}")
    return t


def resolve_targets(names: Sequence[str], target: Target, default: Optional[float] = None) -> Dict[str, float]:
    """Expand a single fraction, or a per-feature mapping, into one target per feature.

    Features missing from a mapping take `default`; with no default they are an error.
    """
    if isinstance(target, Mapping):
        unknown = set(target) - set(names)
        if unknown:
            raise ValidationError(f"Targets given for unknown features: {sorted(unknown)}")
        out = {}
        for n in names:
            if n in target:
                out[n] = _check_fraction(n, target[n])
            elif default is not None:
                out[n] = _check_fraction(n, default)
            else:
                raise ValidationError(f"No target for feature '{n}'")
        return out
    return {n: _check_fraction(n, target) for n in names}


def _lock_mask(grid: PlanningGrid, mask, label: str) -> Optional[np.ndarray]:
    if mask is None:
        return None
    m = np.asarray(mask, dtype=bool)
    if m.shape != tuple(grid.shape):
        raise ValidationError(f"{label} mask has shape {m.shape}, grid is {tuple(grid.shape)}")
    return m & grid.mask


def formulate_problem(cost: Layer, features: Sequence[Layer], target: Target, locked_in=None, locked_out=None,
                      default_target: Optional[float] = None) -> Problem:
    """Validate layers and targets and assemble a Problem.

    Zero-mass features must already have been removed with
    `remove_empty_layers`; receiving one here is a caller error.
    """
    grid = cost.grid
    features = list(features)
    if not features:
        raise ValidationError("At least one feature layer is required.")
    check_aligned(features, grid)
    check_non_negative(cost)

    names = [f.name for f in features]
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValidationError(f"Duplicate feature names: {dupes}")
    for f in features:
        check_non_negative(f)
        if f.total == 0.0:
            raise ValidationError(f"Feature '{f.name}' has no amount inside the planning area")

    targets = resolve_targets(names, target, default=default_target)
    lin = _lock_mask(grid, locked_in, 'locked_in')
    lout = _lock_mask(grid, locked_out, 'locked_out')
    if lin is not None and lout is not None and (lin & lout).any():
        raise ValidationError(f"{int((lin & lout).sum())} cell(s) are both locked in and locked out")

    logger.info("Formulated problem: %d planning units, %d features", grid.n_planning_units, len(features))
    return Problem(grid=grid, cost=cost, features=features, targets=targets, locked_in=lin, locked_out=lout)
