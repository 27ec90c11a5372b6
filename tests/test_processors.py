import pytest
import json
import geopandas as gpd
import pandas as pd
from shapely.geometry import Polygon

from data_pipeline.sources import DataSource
from data_pipeline.processors import (
    CSVProcessor, GeoJSONProcessor, GeoPackageProcessor, ProcessorFactory, ShapefileProcessor,
)


@pytest.fixture
def valid_geojson_content():
    return {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {"site_id": "K1", "suspected_source": "Airport"},
                "geometry": {"type": "Point", "coordinates": [-75.0, 45.0]}
            }
        ]
    }

def _source(name, fmt, role='contamination', **params):
    return DataSource(name=name, source_type="file", format=fmt, role=role, params=params)

class TestGeoJSONProcessor:
    def test_process_valid_geojson(self, tmp_path, valid_geojson_content):
        source_path = tmp_path / "sites.geojson"
        with open(source_path, 'w') as f:
            json.dump(valid_geojson_content, f)

        gdf = GeoJSONProcessor().process(_source("sites", "geojson"), str(source_path))

        assert isinstance(gdf, gpd.GeoDataFrame)
        assert len(gdf) == 1
        assert gdf.iloc[0]["site_id"] == "K1"
        assert gdf.crs == "EPSG:4326"

    def test_process_invalid_geojson_string(self, tmp_path):
        source_path = tmp_path / "invalid.geojson"
        source_path.write_text("this is not valid json or geojson")

        with pytest.raises(ValueError):
            GeoJSONProcessor().process(_source("invalid", "geojson"), str(source_path))

    def test_process_empty_geojson_file(self, tmp_path):
        source_path = tmp_path / "empty.geojson"
        source_path.touch()

        with pytest.raises(ValueError):
            GeoJSONProcessor().process(_source("empty", "geojson"), str(source_path))

class TestGeoPackageProcessor:
    def test_reads_named_layer(self, tmp_path):
        path = str(tmp_path / "wbd.gpkg")
        square = Polygon([(-72, 42), (-71, 42), (-71, 43), (-72, 43)])
        gpd.GeoDataFrame({'HUC12': ['010700060101'], 'geometry': [square]},
                         crs="EPSG:4326").to_file(path, layer='WBDHU12', driver='GPKG')

        source = _source("wbd", "gpkg", role='watershed', layer='WBDHU12')
        gdf = GeoPackageProcessor().process(source, path)

        assert list(gdf['HUC12']) == ['010700060101']
        assert gdf.crs == "EPSG:4326"

class TestCSVProcessor:
    def test_points_from_coordinates(self, tmp_path):
        path = tmp_path / "sites.csv"
        path.write_text("site_id,latitude,longitude\nK1,42.5,-71.2\nK2,41.0,-70.0\n")

        gdf = CSVProcessor().process(_source("sites", "csv"), str(path))

        assert isinstance(gdf, gpd.GeoDataFrame)
        assert gdf.crs == "EPSG:4326"
        assert gdf.geometry.iloc[0].x == pytest.approx(-71.2)
        assert gdf.geometry.iloc[0].y == pytest.approx(42.5)

    def test_rows_without_coordinates_are_dropped(self, tmp_path):
        path = tmp_path / "sites.csv"
        path.write_text("site_id,latitude,longitude\nK1,42.5,-71.2\nK2,,-70.0\nK3,n/a,-70.5\n")

        gdf = CSVProcessor().process(_source("sites", "csv"), str(path))

        assert list(gdf['site_id']) == ['K1']

    def test_custom_coordinate_columns(self, tmp_path):
        path = tmp_path / "sites.csv"
        path.write_text("id,LAT,LON\nA,40.0,-75.0\n")

        gdf = CSVProcessor().process(_source("sites", "csv", lat_col='LAT', lon_col='LON'), str(path))
        assert gdf.geometry.iloc[0].x == pytest.approx(-75.0)

    def test_missing_coordinate_columns(self, tmp_path):
        path = tmp_path / "sites.csv"
        path.write_text("site_id,x\nK1,1\n")

        with pytest.raises(ValueError, match="Coordinate column"):
            CSVProcessor().process(_source("sites", "csv"), str(path))

    def test_lookup_table_has_no_geometry(self, tmp_path):
        path = tmp_path / "blocks.txt"
        path.write_text("GEOID_TABBLOCK_20|UACE20\n010010201001000|12345\n")

        source = _source("blocks", "csv", role='lookup', sep='|', dtype=str)
        df = CSVProcessor().process(source, str(path))

        assert not isinstance(df, gpd.GeoDataFrame)
        assert isinstance(df, pd.DataFrame)
        assert df['GEOID_TABBLOCK_20'].iloc[0] == '010010201001000'

class TestProcessorFactory:
    def test_get_geojson_processor(self):
        assert isinstance(ProcessorFactory.get_processor('geojson'), GeoJSONProcessor)
        assert isinstance(ProcessorFactory.get_processor('json'), GeoJSONProcessor)

    def test_get_shapefile_processor(self):
        assert isinstance(ProcessorFactory.get_processor('shapefile'), ShapefileProcessor)
        assert isinstance(ProcessorFactory.get_processor('shp'), ShapefileProcessor)

    def test_get_tabular_and_gpkg_processors(self):
        assert isinstance(ProcessorFactory.get_processor('csv'), CSVProcessor)
        assert isinstance(ProcessorFactory.get_processor('GPKG'), GeoPackageProcessor)

    def test_unknown_format_raises(self):
        with pytest.raises(ValueError, match="Unsupported data format: pbf"):
            ProcessorFactory.get_processor('pbf')
