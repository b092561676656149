import logging
import os
from dataclasses import dataclass, replace
from typing import Any, Dict, Iterator, List, Optional, Tuple

import fiona
import numpy as np
import rasterio
from fiona.errors import DriverError
from rasterio.crs import CRS
from rasterio.enums import Resampling
from rasterio.errors import RasterioIOError
from rasterio.warp import reproject, transform_geom
from shapely.geometry import mapping, shape
from shapely.ops import unary_union

from .errors import AmbiguousRegionError, RegionNotFoundError, UpstreamDataError, ValidationError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Boundary:
    """Area-of-interest polygon and the CRS its coordinates are in."""
    geometry: Any  # shapely Polygon / MultiPolygon
    crs: str
    name: str = ""

    def to_crs(self, crs) -> "Boundary":
        dst = CRS.from_user_input(crs)
        src = CRS.from_user_input(self.crs)
        if src == dst:
            return self
        geom = shape(transform_geom(src, dst, mapping(self.geometry)))
        return replace(self, geometry=geom, crs=dst.to_wkt())


def _open(source: str, layer: Optional[str] = None):
    try:
        return fiona.open(source, 'r', layer=layer)
    except (DriverError, OSError) as e:
        raise UpstreamDataError(f"Cannot open vector source {source}: {e}") from e


def _source_crs(src, source: str) -> str:
    wkt = src.crs_wkt
    if not wkt:
        raise UpstreamDataError(f"Vector source has no CRS: {source}")
    return wkt


def read_geometries(source: str, crs=None, layer: Optional[str] = None) -> Iterator[Tuple[Dict, Any]]:
    """Yield (properties, shapely geometry) for every non-null feature of a vector source.

    Geometries are reprojected to `crs` when it is given.
    """
    with _open(source, layer) as src:
        src_crs = _source_crs(src, source)
        dst_crs = CRS.from_user_input(crs) if crs is not None else None
        same = dst_crs is None or CRS.from_user_input(src_crs) == dst_crs
        for feat in src:
            geom = feat['geometry']
            if geom is None:
                continue
            props = dict(feat['properties'] or {})
            g = shape(geom)
            if not same:
                g = shape(transform_geom(src_crs, dst_crs, mapping(g)))
            yield props, g


def _matches(value, name: str) -> bool:
    if value is None:
        return False
    return str(value).strip().lower() == name.strip().lower()


def resolve_region(source: str, name: str, key: str = 'GEONAME', layer: Optional[str] = None,
                   dissolve: bool = False) -> Boundary:
    """Look up a named region in a vector dataset (e.g. the Marine Regions EEZ layer).

    Features are matched on attribute `key`, ignoring case and surrounding
    whitespace. Several matches are an error unless `dissolve` is set, in
    which case the parts are merged into one boundary.
    """
    if not name or not name.strip():
        raise RegionNotFoundError("Empty region name.")
    with _open(source, layer) as src:
        fields = (src.schema or {}).get('properties') or {}
        if key not in fields:
            raise UpstreamDataError(
                f"Attribute '{key}' not found in {os.path.basename(source)}; available: {sorted(fields)}"
            )
        crs = _source_crs(src, source)
        hits: List[Any] = []
        for feat in src:
            if feat['geometry'] is None:
                continue
            if _matches(feat['properties'][key], name):
                hits.append(shape(feat['geometry']))

    if not hits:
        raise RegionNotFoundError(f"No feature with {key} == '{name}' in {source}")
    if len(hits) > 1 and not dissolve:
        raise AmbiguousRegionError(
            f"{len(hits)} features match {key} == '{name}'; pass dissolve=True to merge them"
        )
    geom = hits[0] if len(hits) == 1 else unary_union(hits)
    if geom.is_empty:
        raise UpstreamDataError(f"Region '{name}' has an empty geometry")
    logger.info("Resolved region '%s' (%d part(s))", name, len(hits))
    return Boundary(geometry=geom, crs=crs, name=name.strip())


def warp_raster(source: str, grid, band: int = 1, resampling: str = 'average') -> np.ndarray:
    """Resample one band of a raster onto the planning grid; nodata becomes NaN."""
    try:
        method = Resampling[resampling]
    except KeyError as e:
        raise ValidationError(f"Unknown resampling method: {resampling}") from e
    dst = np.full(grid.shape, np.nan, dtype=np.float64)
    try:
        with rasterio.open(source) as src:
            if not 1 <= band <= src.count:
                raise ValidationError(f"{source} has {src.count} band(s), requested band {band}")
            reproject(
                source=rasterio.band(src, band),
                destination=dst,
                dst_transform=grid.transform,
                dst_crs=grid.crs,
                dst_nodata=np.nan,
                resampling=method,
            )
    except RasterioIOError as e:
        raise UpstreamDataError(f"Cannot read raster {source}: {e}") from e
    return dst
