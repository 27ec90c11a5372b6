import json
import os
import pytest
from unittest import mock

import geopandas as gpd
import pandas as pd
from shapely.geometry import Point

from utils import config, file_utils
from utils.config import Settings


class TestSettings:
    def test_defaults(self):
        settings = Settings()
        assert settings.elevation_batch_size == 100
        assert settings.request_timeout == 30.0
        assert settings.elevation_url == config.DEFAULT_ELEVATION_URL

    def test_from_env(self, monkeypatch, tmp_path):
        monkeypatch.setenv('WSX_DATA_DIR', str(tmp_path))
        monkeypatch.setenv('WSX_ELEVATION_BATCH_SIZE', '25')
        monkeypatch.setenv('WSX_REQUEST_PAUSE', '0.5')
        monkeypatch.delenv('WSX_ENRICHED_DIR', raising=False)
        with mock.patch('utils.config.find_dotenv', return_value=''):
            settings = Settings.from_env()
        assert settings.enriched_dir == os.path.join(str(tmp_path), 'enriched')
        assert settings.elevation_batch_size == 25
        assert settings.request_pause == 0.5

    def test_from_dotenv_file(self, monkeypatch, tmp_path):
        monkeypatch.delenv('WSX_REQUEST_TIMEOUT', raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("WSX_REQUEST_TIMEOUT=12\n")
        settings = Settings.from_env(str(env_file))
        assert settings.request_timeout == 12.0
        monkeypatch.delenv('WSX_REQUEST_TIMEOUT', raising=False)

    def test_non_numeric_env(self, monkeypatch):
        monkeypatch.setenv('WSX_REQUEST_TIMEOUT', 'soon')
        with mock.patch('utils.config.find_dotenv', return_value=''):
            with pytest.raises(ValueError, match="WSX_REQUEST_TIMEOUT"):
                Settings.from_env()

    def test_validation(self):
        with pytest.raises(ValueError, match="batch_size"):
            Settings(elevation_batch_size=0)
        with pytest.raises(ValueError, match="timeout"):
            Settings(request_timeout=0)

class TestEnrichedFiles:
    def test_round_trip_keeps_string_codes(self, tmp_path):
        table = gpd.GeoDataFrame({
            'facility_id': ['007', '008'],
            'huc': ['010100020101', ''],
            'geoid': ['010010201001000', ''],
            'urban_rural': ['urban', ''],
            'elevation': [12.5, float('nan')],
            'geometry': [Point(-71, 42), Point(-72, 41)],
        }, crs="EPSG:4326")

        path = file_utils.write_enriched(table, 'carceral', str(tmp_path))
        loaded = file_utils.read_enriched('carceral', str(tmp_path))

        assert path == os.path.join(str(tmp_path), 'carceral.gpkg')
        assert not os.path.exists(path + '.partial.gpkg')
        assert list(loaded['facility_id']) == ['007', '008']
        assert list(loaded['huc']) == ['010100020101', '']
        assert list(loaded['urban_rural']) == ['urban', '']
        assert loaded['elevation'].iloc[0] == 12.5

    def test_overwrite(self, tmp_path):
        first = gpd.GeoDataFrame({'source_id': ['a'], 'geometry': [Point(0, 0)]}, crs="EPSG:4326")
        second = gpd.GeoDataFrame({'source_id': ['a', 'b'], 'geometry': [Point(0, 0), Point(1, 1)]}, crs="EPSG:4326")
        file_utils.write_enriched(first, 'pfas_known', str(tmp_path))
        file_utils.write_enriched(second, 'pfas_known', str(tmp_path))
        assert len(file_utils.read_enriched('pfas_known', str(tmp_path))) == 2

    def test_missing_table(self, tmp_path):
        assert file_utils.read_enriched('school', str(tmp_path)) is None

    def test_json_and_csv(self, tmp_path):
        assert file_utils.json_to_file({'p_value': 0.5}, str(tmp_path / "a" / "r.json")) is True
        assert json.loads((tmp_path / "a" / "r.json").read_text()) == {'p_value': 0.5}

        csv_path = file_utils.dataframe_to_csv(pd.DataFrame({'x': [1]}), str(tmp_path / "b" / "s.csv"))
        assert pd.read_csv(csv_path)['x'].iloc[0] == 1
