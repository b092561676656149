import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .errors import ValidationError
from .grid import PlanningGrid


logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class Layer:
    """Per-cell values on a planning grid (a conservation feature or the cost).

    Only cells inside the grid mask take part in totals and in the problem.
    """
    name: str
    values: np.ndarray
    grid: PlanningGrid

    def __post_init__(self):
        values = np.asarray(self.values, dtype=np.float64)
        if values.shape != tuple(self.grid.shape):
            raise ValidationError(
                f"Layer '{self.name}' has shape {values.shape}, grid is {tuple(self.grid.shape)}"
            )
        object.__setattr__(self, 'values', values)

    @property
    def n_cells(self) -> int:
        return self.grid.n_cells

    @property
    def crs(self):
        return self.grid.crs

    @property
    def resolution(self) -> float:
        return self.grid.resolution

    def planning_values(self) -> np.ndarray:
        """In-area values in row-major order."""
        return self.values[self.grid.mask]

    @property
    def total(self) -> float:
        return float(self.planning_values().sum())


def check_aligned(layers: Sequence[Layer], grid: PlanningGrid) -> None:
    for layer in layers:
        if not layer.grid.is_aligned(grid):
            raise ValidationError(f"Layer '{layer.name}' is not aligned with the planning grid")


def check_non_negative(layer: Layer) -> None:
    v = layer.planning_values()
    if not np.isfinite(v).all():
        raise ValidationError(f"Layer '{layer.name}' has non-finite values inside the planning area")
    if (v < 0).any():
        raise ValidationError(f"Layer '{layer.name}' has negative values inside the planning area")


def remove_empty_layers(layers: Sequence[Layer]) -> List[Layer]:
    """Drop layers whose in-area total is exactly zero."""
    kept: List[Layer] = []
    for layer in layers:
        if layer.total == 0.0:
            logger.info("Dropping feature '%s': absent from the planning area", layer.name)
            continue
        kept.append(layer)
    return kept
