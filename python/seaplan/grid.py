import logging
import math
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from affine import Affine
from rasterio.crs import CRS
from rasterio.errors import CRSError
from rasterio.features import rasterize
from rasterio.transform import from_origin
from shapely.geometry import mapping

from .data import Boundary
from .errors import ValidationError


logger = logging.getLogger(__name__)

# PROJ short names of the equal-area projections we recognise.
EQUAL_AREA_PROJECTIONS = {
    'aea', 'cea', 'eck2', 'eck4', 'eck6', 'eqearth', 'hammer', 'igh',
    'laea', 'moll', 'sinu', 'tcea', 'wag4',
}


@dataclass(frozen=True, eq=False)
class PlanningGrid:
    """Regular square-cell grid; `mask` marks cells inside the area of interest.

    Row 0 is the northern edge, column 0 the western edge.
    """
    crs: CRS
    resolution: float
    transform: Affine
    shape: Tuple[int, int]
    mask: np.ndarray

    @property
    def n_cells(self) -> int:
        return int(self.shape[0] * self.shape[1])

    @property
    def n_planning_units(self) -> int:
        return int(self.mask.sum())

    @property
    def cell_area(self) -> float:
        return self.resolution * self.resolution

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(left, bottom, right, top) in grid CRS units."""
        left, top = self.transform.c, self.transform.f
        rows, cols = self.shape
        return (left, top - rows * self.resolution, left + cols * self.resolution, top)

    @property
    def extent(self) -> Tuple[float, float, float, float]:
        """Bounds ordered for matplotlib imshow: (left, right, bottom, top)."""
        left, bottom, right, top = self.bounds
        return (left, right, bottom, top)

    def cell_centers(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return (x, y) arrays of cell centre coordinates, each with the grid shape."""
        rows, cols = self.shape
        left, _, _, top = self.bounds
        xs = left + (np.arange(cols) + 0.5) * self.resolution
        ys = top - (np.arange(rows) + 0.5) * self.resolution
        return np.meshgrid(xs, ys)

    def padded(self, pad: int) -> Tuple[Affine, Tuple[int, int]]:
        """Transform and shape of this grid grown by `pad` cells on every side."""
        left, _, _, top = self.bounds
        r = self.resolution
        transform = from_origin(left - pad * r, top + pad * r, r, r)
        return transform, (self.shape[0] + 2 * pad, self.shape[1] + 2 * pad)

    def is_aligned(self, other: "PlanningGrid") -> bool:
        if other is self:
            return True
        return (
            self.shape == other.shape
            and self.crs == other.crs
            and self.transform.almost_equals(other.transform)
            and np.array_equal(self.mask, other.mask)
        )


def parse_projected_crs(crs) -> CRS:
    """Parse a CRS and require it to be projected; warn when it is not equal-area."""
    try:
        parsed = CRS.from_user_input(crs)
    except CRSError as e:
        raise ValidationError(f"Invalid CRS: {crs}") from e
    if not parsed.is_projected:
        raise ValidationError(f"CRS must be a projected coordinate system, got {crs}")
    proj = (parsed.to_dict() or {}).get('proj')
    if proj not in EQUAL_AREA_PROJECTIONS:
        logger.warning("CRS %s is not a known equal-area projection; cell areas will be distorted", crs)
    return parsed


def grid_dimensions(width: float, height: float, resolution: float) -> Tuple[int, int]:
    """(rows, cols) needed to cover a width x height extent with square cells."""
    # round() guards against 10.000000001 turning into 11 columns
    cols = max(1, int(math.ceil(round(width / resolution, 9))))
    rows = max(1, int(math.ceil(round(height / resolution, 9))))
    return rows, cols


def build_grid(boundary: Boundary, crs, resolution: float) -> PlanningGrid:
    """Cover the boundary's bounding box with square cells of side `resolution`.

    Cells whose centre falls inside the boundary form the planning area.
    """
    try:
        resolution = float(resolution)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"Resolution must be a number, got {resolution!r}") from e
    if not math.isfinite(resolution) or resolution <= 0:
        raise ValidationError(f"Resolution must be > 0, got {resolution}")
    dst_crs = parse_projected_crs(crs)

    projected = boundary.to_crs(dst_crs)
    minx, miny, maxx, maxy = projected.geometry.bounds
    rows, cols = grid_dimensions(maxx - minx, maxy - miny, resolution)
    transform = from_origin(minx, maxy, resolution, resolution)

    mask = rasterize(
        [(mapping(projected.geometry), 1)],
        out_shape=(rows, cols),
        transform=transform,
        fill=0,
        dtype='uint8',
    ).astype(bool)
    if not mask.any():
        raise ValidationError(
            f"No cell centre falls inside the boundary at resolution {resolution}; use a finer grid"
        )

    grid = PlanningGrid(crs=dst_crs, resolution=resolution, transform=transform, shape=(rows, cols), mask=mask)
    logger.info("Built %dx%d grid at %g units, %d planning units", rows, cols, resolution, grid.n_planning_units)
    return grid
