"""Tests for seaplan.cost"""

import numpy as np
import pytest
from shapely.geometry import box

from seaplan.cost import distance_to_shore, load_cost_raster, uniform_cost
from seaplan.errors import UpstreamDataError, ValidationError

from conftest import X0, Y0, make_grid


class TestDistanceToShore:
    def test_distance_grows_away_from_coast(self, write_vector):
        # land strip just west of the grid, two cells wide
        land = write_vector('land', [box(X0 - 2000.0, Y0, X0, Y0 + 3000.0)])
        cost = distance_to_shore(make_grid(), land, pad_cells=5)
        assert cost.name == 'distance_to_shore'
        assert np.allclose(cost.values[:, 0], 1000.0)
        assert np.allclose(cost.values[:, 1], 2000.0)
        assert np.allclose(cost.values[:, 2], 3000.0)

    def test_land_outside_padding_is_an_error(self, write_vector):
        land = write_vector('land', [box(X0 - 500_000.0, Y0, X0 - 400_000.0, Y0 + 3000.0)])
        with pytest.raises(UpstreamDataError):
            distance_to_shore(make_grid(), land, pad_cells=5)

    def test_land_inside_grid_costs_nothing(self, write_vector):
        land = write_vector('island', [box(X0 + 1000.0, Y0 + 1000.0, X0 + 2000.0, Y0 + 2000.0)])
        cost = distance_to_shore(make_grid(), land, pad_cells=0)
        assert cost.values[1, 1] == 0.0
        assert cost.values[0, 1] == pytest.approx(1000.0)
        assert cost.values[0, 0] == pytest.approx(np.hypot(1000.0, 1000.0))

    def test_negative_padding(self, write_vector):
        land = write_vector('land', [box(X0 - 2000.0, Y0, X0, Y0 + 3000.0)])
        with pytest.raises(ValidationError):
            distance_to_shore(make_grid(), land, pad_cells=-1)


class TestOtherCosts:
    def test_uniform(self):
        cost = uniform_cost(make_grid(), 2.5)
        assert np.all(cost.values == 2.5)
        assert cost.total == 22.5

    def test_negative_uniform_rejected(self):
        with pytest.raises(ValidationError):
            uniform_cost(make_grid(), -1.0)

    def test_raster(self, write_raster):
        values = np.arange(1, 10, dtype=float).reshape(3, 3)
        cost = load_cost_raster(make_grid(), write_raster('cost', values))
        assert np.allclose(cost.values, values)

    def test_raster_nodata_in_area_rejected(self, write_raster):
        values = np.ones((3, 3))
        values[2, 2] = -1.0
        path = write_raster('cost', values, nodata=-1.0)
        with pytest.raises(ValidationError):
            load_cost_raster(make_grid(), path)

    def test_raster_nodata_outside_area_ignored(self, write_raster):
        values = np.ones((3, 3))
        values[2, 2] = -1.0
        mask = np.ones((3, 3), dtype=bool)
        mask[2, 2] = False
        path = write_raster('cost', values, nodata=-1.0)
        cost = load_cost_raster(make_grid(mask=mask), path)
        assert cost.total == 8.0
