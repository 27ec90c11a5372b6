import pytest
import geopandas as gpd
import pandas as pd
from shapely.geometry import LineString, Point, Polygon

from data_pipeline.schema import (
    apply_schema, normalize_population, normalize_source_category, normalize_status,
)
from data_pipeline.sources import DataSource
from utils.config import POPULATION_SENTINEL


@pytest.fixture
def prison_source():
    return DataSource(
        name='prison_boundaries', source_type='file', format='shapefile', role='facility',
        category='carceral', census_enrich=True,
        column_map={'FACILITYID': 'facility_id', 'STATUS': 'status', 'POPULATION': 'population'},
        params={'extra_cols': ['NAME']},
    )

@pytest.fixture
def raw_prisons():
    square = Polygon([(-71.01, 42.0), (-71.0, 42.0), (-71.0, 42.01), (-71.01, 42.01)])
    return gpd.GeoDataFrame({
        'FACILITYID': [10, 11, 12],
        'STATUS': ['OPEN', 'CLOSED', 'NOT AVAILABLE'],
        'POPULATION': [1500, -999, None],
        'NAME': ['A', 'B', 'C'],
        'geometry': [square, Point(-72.0, 41.0), None],
    }, crs="EPSG:4326")

class TestVocabularies:
    @pytest.mark.parametrize("raw, expected", [
        ('Airport', 'airport'),
        ('Military Installation', 'military'),
        ('AFFF fire training area', 'fire_training'),
        ('Municipal Landfill', 'landfill'),
        ('WWTP', 'wastewater'),
        ('Chemical manufacturing', 'industrial'),
        ('landfill', 'landfill'),
        ('something unrelated', 'other'),
        (None, 'other'),
        (float('nan'), 'other'),
    ])
    def test_source_category(self, raw, expected):
        assert normalize_source_category(raw) == expected

    @pytest.mark.parametrize("raw, expected", [
        ('OPEN', 'open'), ('Active', 'open'), ('closed', 'closed'),
        ('NOT AVAILABLE', 'unknown'), (None, 'unknown'),
    ])
    def test_status(self, raw, expected):
        assert normalize_status(raw) == expected

    def test_population_sentinel(self):
        result = normalize_population(pd.Series([12, None, 'n/a', '40']))
        assert list(result) == [12, POPULATION_SENTINEL, POPULATION_SENTINEL, 40]
        assert result.dtype == 'int64'

class TestFacilities:
    def test_normalized_columns(self, raw_prisons, prison_source):
        out = apply_schema(raw_prisons, prison_source)

        assert list(out.columns[:4]) == ['facility_id', 'category', 'status', 'population']
        assert 'NAME' in out.columns
        # the row without geometry is dropped
        assert list(out['facility_id']) == ['10', '11']
        assert list(out['category']) == ['carceral', 'carceral']
        assert list(out['status']) == ['open', 'closed']
        assert list(out['population']) == [1500, POPULATION_SENTINEL]
        assert out.crs == "EPSG:4326"

    def test_polygons_become_centroids(self, raw_prisons, prison_source):
        out = apply_schema(raw_prisons, prison_source)
        assert set(out.geom_type) == {'Point'}
        assert out.geometry.iloc[0].x == pytest.approx(-71.005, abs=1e-4)
        assert out.geometry.iloc[0].y == pytest.approx(42.005, abs=1e-4)
        assert out.geometry.iloc[1].x == pytest.approx(-72.0)
        assert out.geometry.iloc[1].y == pytest.approx(41.0)

    def test_reprojects_to_wgs84(self, prison_source):
        raw = gpd.GeoDataFrame({'FACILITYID': [1], 'geometry': [Point(-71.0, 42.0)]},
                               crs="EPSG:4326").to_crs("EPSG:3857")
        out = apply_schema(raw, prison_source)
        assert out.crs == "EPSG:4326"
        assert out.geometry.iloc[0].x == pytest.approx(-71.0)

    def test_missing_population_column(self):
        source = DataSource(name='homes', source_type='file', format='shapefile', role='facility',
                            category='nursing_home')
        raw = gpd.GeoDataFrame({'geometry': [Point(0, 0)]}, crs="EPSG:4326")
        out = apply_schema(raw, source)
        assert list(out['population']) == [POPULATION_SENTINEL]
        assert list(out['status']) == ['unknown']
        assert list(out['facility_id']) == ['nursing_home-0']

    def test_unsupported_geometry(self, prison_source):
        raw = gpd.GeoDataFrame({'FACILITYID': [1], 'geometry': [LineString([(0, 0), (1, 1)])]}, crs="EPSG:4326")
        with pytest.raises(ValueError, match="unsupported geometry"):
            apply_schema(raw, prison_source)

class TestContamination:
    def test_known_and_suspected_flags(self):
        raw = gpd.GeoDataFrame({
            'site_id': ['K1'], 'suspected_source': ['Airport'], 'site_details': [None],
            'geometry': [Point(-71.0, 42.0)],
        }, crs="EPSG:4326")
        column_map = {'site_id': 'source_id', 'suspected_source': 'source_category', 'site_details': 'details'}
        known = DataSource(name='pfas_known', source_type='file', format='csv', role='contamination',
                           column_map=column_map, params={'is_known': True})
        suspected = DataSource(name='pfas_suspected', source_type='file', format='csv', role='contamination',
                               column_map=column_map, params={'is_known': False})

        out_known = apply_schema(raw, known)
        out_suspected = apply_schema(raw, suspected)

        assert list(out_known.columns[:4]) == ['source_id', 'source_category', 'details', 'is_known']
        assert list(out_known['source_category']) == ['airport']
        assert list(out_known['details']) == ['']
        assert bool(out_known['is_known'].iloc[0]) is True
        assert bool(out_suspected['is_known'].iloc[0]) is False

class TestWatersheds:
    def test_codes_padded_and_order_kept(self):
        first = Polygon([(0, 0), (2, 0), (2, 2), (0, 2)])
        second = Polygon([(1, 1), (3, 1), (3, 3), (1, 3)])
        raw = gpd.GeoDataFrame({'HUC12': [10100020101, '020200030405'], 'NAME': ['a', 'b'],
                                'geometry': [first, second]}, crs="EPSG:4326")
        source = DataSource(name='wbd', source_type='manual', format='gpkg', role='watershed',
                            column_map={'HUC12': 'huc12'})
        out = apply_schema(raw, source)
        assert list(out.columns) == ['huc12', 'geometry']
        assert list(out['huc12']) == ['010100020101', '020200030405']

    def test_missing_code_column(self):
        raw = gpd.GeoDataFrame({'geometry': [Polygon([(0, 0), (1, 0), (1, 1)])]}, crs="EPSG:4326")
        source = DataSource(name='wbd', source_type='manual', format='gpkg', role='watershed')
        with pytest.raises(ValueError, match="no huc12 column"):
            apply_schema(raw, source)

class TestLookup:
    def test_geoids_padded(self):
        source = DataSource(name='blocks', source_type='file', format='csv', role='lookup',
                            column_map={'GEOID_TABBLOCK_20': 'geoid'})
        out = apply_schema(pd.DataFrame({'GEOID_TABBLOCK_20': ['10010201001000']}), source)
        assert list(out['geoid']) == ['010010201001000']
