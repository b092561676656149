"""Tests for seaplan.features"""

import numpy as np
import pytest
from shapely.geometry import box

from seaplan.errors import UpstreamDataError
from seaplan.features import burn_geometries, load_features, load_raster_feature, rasterize_features
from seaplan.options import FeatureSource

from conftest import X0, Y0, cell_box, make_grid


class TestRasterizeFeatures:
    def test_one_layer_per_attribute_value(self, write_vector):
        path = write_vector(
            'habitats',
            [cell_box(0, 0), cell_box(1, 1), cell_box(2, 2), cell_box(2, 1)],
            [{'habitat': 'seamount'}, {'habitat': 'reef'}, {'habitat': 'kelp'}, {'habitat': 'reef'}],
        )
        layers = rasterize_features(make_grid(), path, attribute='habitat')
        assert [l.name for l in layers] == ['kelp', 'reef', 'seamount']
        by_name = {l.name: l for l in layers}
        assert by_name['seamount'].values[0, 0] == 1.0
        assert by_name['seamount'].total == 1.0
        assert by_name['reef'].values[1, 1] == 1.0
        assert by_name['reef'].values[2, 1] == 1.0
        assert by_name['reef'].total == 2.0

    def test_single_layer_named_after_file(self, write_vector):
        path = write_vector('seagrass', [cell_box(1, 0)])
        layers = rasterize_features(make_grid(), path)
        assert len(layers) == 1
        assert layers[0].name == 'seagrass'
        assert layers[0].values[1, 0] == 1.0

    def test_explicit_name(self, write_vector):
        path = write_vector('x', [cell_box(1, 0)])
        assert rasterize_features(make_grid(), path, name='mangrove')[0].name == 'mangrove'

    def test_values_outside_area_are_zeroed(self, write_vector):
        mask = np.ones((3, 3), dtype=bool)
        mask[0, 0] = False
        path = write_vector('corner', [cell_box(0, 0)])
        layer = rasterize_features(make_grid(mask=mask), path)[0]
        assert layer.values.sum() == 0.0
        assert layer.total == 0.0

    def test_missing_attribute(self, write_vector):
        path = write_vector('habitats', [cell_box(0, 0)], [{'kind': 'reef'}])
        with pytest.raises(UpstreamDataError):
            rasterize_features(make_grid(), path, attribute='habitat')

    def test_missing_file(self, tmp_path):
        with pytest.raises(UpstreamDataError):
            rasterize_features(make_grid(), str(tmp_path / 'nope.shp'))


class TestCoverage:
    @pytest.mark.filterwarnings("error::PendingDeprecationWarning")
    def test_half_cell(self):
        grid = make_grid()
        half = box(X0, Y0 + 2000.0, X0 + 500.0, Y0 + 3000.0)  # left half of cell (0, 0)
        presence = burn_geometries(grid, [half])
        cover = burn_geometries(grid, [half], coverage=True, supersample=4)
        assert presence[0, 0] in (0.0, 1.0)
        assert cover[0, 0] == pytest.approx(0.5)
        assert cover.sum() == pytest.approx(0.5)

    def test_full_cell(self):
        cover = burn_geometries(make_grid(), [cell_box(1, 2)], coverage=True)
        assert cover[1, 2] == pytest.approx(1.0)

    def test_no_geometries(self):
        assert burn_geometries(make_grid(), []).sum() == 0.0


class TestRasterFeature:
    def test_aligned_raster(self, write_raster):
        values = np.arange(9, dtype=float).reshape(3, 3)
        path = write_raster('abundance', values)
        layer = load_raster_feature(make_grid(), path, 'abundance')
        assert np.allclose(layer.values, values)

    def test_nodata_is_absent(self, write_raster):
        values = np.ones((3, 3))
        values[1, 1] = -9999.0
        path = write_raster('prob', values, nodata=-9999.0)
        layer = load_raster_feature(make_grid(), path, 'prob')
        assert layer.values[1, 1] == 0.0
        assert layer.total == 8.0

    def test_load_features_mixes_kinds(self, write_raster, write_vector):
        raster = write_raster('fish', np.full((3, 3), 2.0))
        vector = write_vector('habitats', [cell_box(0, 0), cell_box(2, 2)],
                              [{'habitat': 'reef'}, {'habitat': 'kelp'}])
        layers = load_features(make_grid(), [
            FeatureSource(name='fish', path=raster, kind='raster'),
            FeatureSource(name='', path=vector, attribute='habitat'),
        ])
        assert [l.name for l in layers] == ['fish', 'kelp', 'reef']
