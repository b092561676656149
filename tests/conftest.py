import json

import fiona
import numpy as np
import pytest
import rasterio
from rasterio.crs import CRS
from rasterio.transform import from_origin
from shapely.geometry import box, mapping

from seaplan.grid import PlanningGrid

# ETRS89 / LAEA Europe: projected and equal-area
LAEA = 'EPSG:3035'
X0, Y0 = 4_000_000.0, 3_000_000.0


def make_grid(rows=3, cols=3, res=1000.0, mask=None) -> PlanningGrid:
    """Grid whose top-left corner is (X0, Y0 + rows * res)."""
    if mask is None:
        mask = np.ones((rows, cols), dtype=bool)
    return PlanningGrid(
        crs=CRS.from_user_input(LAEA),
        resolution=res,
        transform=from_origin(X0, Y0 + rows * res, res, res),
        shape=(rows, cols),
        mask=np.asarray(mask, dtype=bool),
    )


def cell_box(row, col, rows=3, res=1000.0):
    """Footprint of cell (row, col) of make_grid(rows=rows, res=res)."""
    top = Y0 + rows * res - row * res
    left = X0 + col * res
    return box(left, top - res, left + res, top)


@pytest.fixture
def write_vector(tmp_path):
    """Write polygons and their attributes to a shapefile, return its path."""
    def _write(name, geoms, props=None, crs=LAEA):
        if props is None:
            props = [{'id': i} for i in range(len(geoms))]
        fields = {k: ('str' if isinstance(v, str) else 'int' if isinstance(v, int) else 'float')
                  for k, v in props[0].items()}
        schema = {'geometry': 'Polygon', 'properties': fields}
        path = str(tmp_path / f"{name}.shp")
        with fiona.open(path, 'w', driver='ESRI Shapefile', crs=crs, schema=schema) as dst:
            for g, p in zip(geoms, props):
                dst.write(fiona.Feature.from_dict({'geometry': mapping(g), 'properties': p}))
        return path
    return _write


@pytest.fixture
def write_geojson(tmp_path):
    """Write lon/lat polygons to a GeoJSON FeatureCollection, return its path."""
    def _write(name, geoms, props):
        fc = {
            'type': 'FeatureCollection',
            'features': [
                {'type': 'Feature', 'geometry': mapping(g), 'properties': p}
                for g, p in zip(geoms, props)
            ],
        }
        path = tmp_path / f"{name}.geojson"
        path.write_text(json.dumps(fc))
        return str(path)
    return _write


@pytest.fixture
def write_raster(tmp_path):
    """Write a single-band float32 GeoTIFF aligned with make_grid(), return its path."""
    def _write(name, values, res=1000.0, nodata=None):
        values = np.asarray(values, dtype='float32')
        rows, cols = values.shape
        path = str(tmp_path / f"{name}.tif")
        with rasterio.open(
            path, 'w', driver='GTiff', height=rows, width=cols, count=1, dtype='float32',
            crs=LAEA, transform=from_origin(X0, Y0 + rows * res, res, res), nodata=nodata,
        ) as dst:
            dst.write(values, 1)
        return path
    return _write
