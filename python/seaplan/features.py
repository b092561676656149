import logging
import os
from typing import Dict, List, Optional, Sequence

import numpy as np
from affine import Affine
from rasterio.features import rasterize
from shapely.geometry import mapping

from .data import read_geometries, warp_raster
from .errors import UpstreamDataError, ValidationError
from .grid import PlanningGrid
from .layers import Layer, check_non_negative
from .options import FeatureSource


logger = logging.getLogger(__name__)


def burn_geometries(grid: PlanningGrid, geoms: Sequence, coverage: bool = False, supersample: int = 4) -> np.ndarray:
    """Rasterize geometries (already in the grid CRS) onto the grid.

    Presence mode marks cells whose centre lies inside a geometry. Coverage
    mode estimates the covered fraction of each cell on a `supersample`
    times finer grid.
    """
    shapes = [(mapping(g), 1) for g in geoms if not g.is_empty]
    rows, cols = grid.shape
    if not shapes:
        return np.zeros((rows, cols), dtype=np.float64)
    if not coverage:
        burned = rasterize(shapes, out_shape=(rows, cols), transform=grid.transform, fill=0, dtype='uint8')
        return burned.astype(np.float64)
    k = int(supersample)
    if k < 1:
        raise ValidationError(f"supersample must be >= 1, got {supersample}")
    fine = rasterize(
        shapes,
        out_shape=(rows * k, cols * k),
        transform=grid.transform @ Affine.scale(1.0 / k),
        fill=0,
        dtype='uint8',
    )
    return fine.reshape(rows, k, cols, k).mean(axis=(1, 3))


def _planning_layer(grid: PlanningGrid, name: str, values: np.ndarray) -> Layer:
    values = np.where(grid.mask, values, 0.0)
    layer = Layer(name=name, values=values, grid=grid)
    check_non_negative(layer)
    return layer


def rasterize_features(grid: PlanningGrid, source: str, attribute: Optional[str] = None, name: Optional[str] = None,
                       coverage: bool = False, supersample: int = 4, layer: Optional[str] = None) -> List[Layer]:
    """Build feature layers from a vector dataset.

    With `attribute`, features are grouped by that attribute's value and one
    layer is produced per distinct value (sorted by name). Otherwise every
    geometry goes into a single layer called `name`, or the file stem.
    """
    default = name or os.path.splitext(os.path.basename(source))[0]
    groups: Dict[str, List] = {}
    for props, geom in read_geometries(source, crs=grid.crs, layer=layer):
        if attribute is None:
            key = default
        else:
            if attribute not in props:
                raise UpstreamDataError(f"Attribute '{attribute}' missing from features in {source}")
            val = props[attribute]
            if val is None or str(val).strip() == '':
                continue
            key = str(val).strip()
        groups.setdefault(key, []).append(geom)
    if not groups:
        raise UpstreamDataError(f"No usable features in {source}")

    out: List[Layer] = []
    for key in sorted(groups):
        values = burn_geometries(grid, groups[key], coverage=coverage, supersample=supersample)
        out.append(_planning_layer(grid, key, values))
    logger.info("Loaded %d feature layer(s) from %s", len(out), os.path.basename(source))
    return out


def load_raster_feature(grid: PlanningGrid, source: str, name: str, band: int = 1,
                        resampling: str = 'average') -> Layer:
    """Warp a continuous raster (abundance, probability, ...) onto the grid; nodata counts as absent."""
    values = warp_raster(source, grid, band=band, resampling=resampling)
    values = np.nan_to_num(values, nan=0.0)
    return _planning_layer(grid, name or os.path.splitext(os.path.basename(source))[0], values)


def load_features(grid: PlanningGrid, sources: Sequence[FeatureSource]) -> List[Layer]:
    layers: List[Layer] = []
    for s in sources:
        if s.kind == 'raster':
            layers.append(load_raster_feature(grid, s.path, s.name, band=s.band))
        else:
            layers.extend(
                rasterize_features(grid, s.path, attribute=s.attribute, name=s.name or None, coverage=s.coverage)
            )
    return layers
