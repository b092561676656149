import logging
from typing import Optional

import numpy as np
from rasterio.features import rasterize
from scipy.ndimage import distance_transform_edt
from shapely.geometry import box, mapping

from .data import read_geometries, warp_raster
from .errors import UpstreamDataError, ValidationError
from .grid import PlanningGrid
from .layers import Layer, check_non_negative


logger = logging.getLogger(__name__)


def _cost_layer(grid: PlanningGrid, values: np.ndarray, name: str) -> Layer:
    layer = Layer(name=name, values=values, grid=grid)
    check_non_negative(layer)
    return layer


def distance_to_shore(grid: PlanningGrid, land_source: str, pad_cells: int = 10,
                      layer: Optional[str] = None) -> Layer:
    """Cost = straight-line distance (grid CRS units) from each cell centre to the nearest land cell.

    Land is rasterized on the grid grown by `pad_cells` so that coastline just
    outside the planning extent still counts.
    """
    if pad_cells < 0:
        raise ValidationError(f"pad_cells must be >= 0, got {pad_cells}")
    transform, shape = grid.padded(pad_cells)
    rows, cols = shape
    left, top = transform.c, transform.f
    window = box(left, top - rows * grid.resolution, left + cols * grid.resolution, top)

    shapes = []
    for _props, geom in read_geometries(land_source, crs=grid.crs, layer=layer):
        if geom.is_empty or not geom.intersects(window):
            continue
        shapes.append((mapping(geom.intersection(window)), 1))
    land = np.zeros(shape, dtype=bool)
    if shapes:
        land = rasterize(shapes, out_shape=shape, transform=transform, fill=0, dtype='uint8').astype(bool)
    if not land.any():
        raise UpstreamDataError(
            f"No land from {land_source} within {pad_cells} cells of the planning grid"
        )

    # distance_transform_edt measures the distance to the nearest zero
    dist = distance_transform_edt(~land) * grid.resolution
    dist = dist[pad_cells:pad_cells + grid.shape[0], pad_cells:pad_cells + grid.shape[1]]
    logger.info("Distance to shore: %.1f to %.1f", float(dist[grid.mask].min()), float(dist[grid.mask].max()))
    return _cost_layer(grid, dist, 'distance_to_shore')


def load_cost_raster(grid: PlanningGrid, source: str, band: int = 1, resampling: str = 'average') -> Layer:
    """Warp a cost raster onto the grid. In-area nodata is an error."""
    values = warp_raster(source, grid, band=band, resampling=resampling)
    return _cost_layer(grid, values, 'cost')


def uniform_cost(grid: PlanningGrid, value: float = 1.0) -> Layer:
    return _cost_layer(grid, np.full(grid.shape, float(value)), 'cost')
