"""
Data processors for different file formats.

Each processor is responsible for reading a raw data file into a
GeoDataFrame (or, for plain lookup tables, a DataFrame).
"""

import os
import zipfile
import geopandas as gpd
import pandas as pd
import logging
from typing import Any
from abc import ABC, abstractmethod

from .sources import DataSource


logger = logging.getLogger(__name__)

WGS84 = "EPSG:4326"


class BaseProcessor(ABC):
    """Abstract base class for data processors"""

    @abstractmethod
    def process(self, source: DataSource, input_path: str, *, bbox=None, keep_cols=None) -> Any:
        """Process data from input_path according to source configuration"""
        pass

    @staticmethod
    def _select_columns(gdf: gpd.GeoDataFrame, keep_cols) -> gpd.GeoDataFrame:
        if not keep_cols:
            return gdf
        keep_cols_existing = [c for c in keep_cols if c in gdf.columns and c != gdf.geometry.name]
        return gdf[keep_cols_existing + [gdf.geometry.name]]


class ShapefileProcessor(BaseProcessor):
    """Processor for Shapefile format"""

    def process(self, source: DataSource, input_path: str, *, bbox=None, keep_cols=None) -> gpd.GeoDataFrame:
        """Load shapefile (optionally zipped) into GeoDataFrame"""
        try:
            if input_path.endswith('.zip'):
                extract_dir = input_path[:-len('.zip')] + '_unzipped'
                # Extract once; subsequent calls reuse.
                if not os.path.exists(extract_dir):
                    os.makedirs(extract_dir, exist_ok=True)
                    with zipfile.ZipFile(input_path, 'r') as zf:
                        zf.extractall(extract_dir)

                shp_path = None
                for root, _, files in os.walk(extract_dir):
                    for f in sorted(files):
                        if f.endswith('.shp'):
                            shp_path = os.path.join(root, f)
                            break
                    if shp_path:
                        break

                if shp_path is None:
                    raise FileNotFoundError("No .shp file found after extracting archive")

                input_path = shp_path

            gdf = gpd.read_file(input_path, bbox=bbox)
            gdf = self._select_columns(gdf, keep_cols)

            if gdf.crs is None:
                logger.warning(f"No CRS found for {source.name}, assuming {WGS84}")
                gdf = gdf.set_crs(WGS84)

            return gdf

        except Exception as e:
            logger.error(f"Error processing shapefile {source.name}: {e}")
            raise


class GeoJSONProcessor(BaseProcessor):
    """Processor for GeoJSON format"""

    def process(self, source: DataSource, input_path: str, *, bbox=None, keep_cols=None) -> gpd.GeoDataFrame:
        """Load GeoJSON into GeoDataFrame"""
        try:
            gdf = gpd.read_file(input_path, bbox=bbox)

            if gdf.empty:
                raise ValueError("GeoJSON file is empty.")

            gdf = self._select_columns(gdf, keep_cols)

            if gdf.crs is None:
                logger.warning(f"No CRS found for {source.name}, assuming {WGS84}")
                gdf = gdf.set_crs(WGS84)

            return gdf

        except Exception as e:
            logger.error(f"Error processing GeoJSON {source.name}: {e}")
            raise ValueError(str(e)) from e


class GeoPackageProcessor(BaseProcessor):
    """Processor for GeoPackage files (watershed extracts, previously enriched tables)"""

    def process(self, source: DataSource, input_path: str, *, bbox=None, keep_cols=None) -> gpd.GeoDataFrame:
        try:
            layer = source.params.get('layer')
            gdf = gpd.read_file(input_path, layer=layer, bbox=bbox)
            gdf = self._select_columns(gdf, keep_cols)
            if gdf.crs is None:
                logger.warning(f"No CRS found for {source.name}, assuming {WGS84}")
                gdf = gdf.set_crs(WGS84)
            return gdf
        except Exception as e:
            logger.error(f"Error processing GeoPackage {source.name}: {e}")
            raise


class CSVProcessor(BaseProcessor):
    """Processor for delimited text.

    Point tables carry their location in latitude/longitude columns named by
    ``params['lat_col']`` / ``params['lon_col']``. Lookup tables (role
    ``'lookup'``) have no geometry and come back as a plain DataFrame.
    """

    def process(self, source: DataSource, input_path: str, *, bbox=None, keep_cols=None) -> Any:
        try:
            read_kwargs = {
                'sep': source.params.get('sep', ','),
                'dtype': source.params.get('dtype'),
                'encoding': source.params.get('encoding', 'utf-8'),
            }
            df = pd.read_csv(input_path, **read_kwargs)

            if source.role == 'lookup':
                if keep_cols:
                    df = df[[c for c in keep_cols if c in df.columns]]
                return df

            lat_col = source.params['lat_col']
            lon_col = source.params['lon_col']
            missing = [c for c in (lat_col, lon_col) if c not in df.columns]
            if missing:
                raise ValueError(f"Coordinate column(s) {missing} not found in {input_path}")

            coords = df[[lat_col, lon_col]].apply(pd.to_numeric, errors='coerce')
            bad_rows = coords.isna().any(axis=1)
            if bad_rows.any():
                logger.warning(f"Dropping {int(bad_rows.sum())} rows without usable coordinates from {source.name}")
                df = df[~bad_rows]
                coords = coords[~bad_rows]

            gdf = gpd.GeoDataFrame(
                df,
                geometry=gpd.points_from_xy(coords[lon_col], coords[lat_col]),
                crs=source.params.get('crs', WGS84),
            )
            if bbox:
                gdf = gdf.cx[bbox[0]:bbox[2], bbox[1]:bbox[3]]
            return self._select_columns(gdf, keep_cols)

        except Exception as e:
            logger.error(f"Error processing CSV {source.name}: {e}")
            raise


class ProcessorFactory:
    """Factory for creating appropriate processors"""

    _processors = {
        'shapefile': ShapefileProcessor,
        'shp': ShapefileProcessor,
        'geojson': GeoJSONProcessor,
        'json': GeoJSONProcessor,
        'gpkg': GeoPackageProcessor,
        'geopackage': GeoPackageProcessor,
        'csv': CSVProcessor,
    }

    @classmethod
    def get_processor(cls, format_type: str) -> BaseProcessor:
        """Get appropriate processor for format type"""
        processor_class = cls._processors.get(format_type.lower())
        if not processor_class:
            raise ValueError(f"Unsupported data format: {format_type}")
        return processor_class()
