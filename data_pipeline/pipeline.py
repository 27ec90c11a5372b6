"""
Main data pipeline orchestrator.

The DataPipeline class coordinates acquiring, reading, normalizing and
caching the datasets declared in the registry.
"""

import os
import logging
from typing import Any, Optional

import geopandas as gpd
from shapely.geometry import box

from .sources import DataSource
from .registry import DataRegistry
from .loaders import LoaderFactory
from .processors import ProcessorFactory
from .cache import CacheManager
from .download_cache import RawDownloadCache
from .schema import apply_schema


logger = logging.getLogger(__name__)

_FORMAT_BY_EXTENSION = {
    '.shp': 'shapefile',
    '.zip': 'shapefile',  # Assume zipped shapefiles
    '.geojson': 'geojson',
    '.json': 'geojson',
    '.gpkg': 'gpkg',
    '.csv': 'csv',
    '.txt': 'csv',
}


class DataPipeline:
    """Orchestrates the data loading pipeline"""

    def __init__(self, registry: DataRegistry, cache_dir: Optional[str] = None):
        self.registry = registry
        self.cache_manager = CacheManager(cache_dir)
        self.download_cache = RawDownloadCache()

    def load(self, source_name: str, force_reload: bool = False, **kwargs) -> Any:
        """
        Load a normalized table from a registered source, using the cache when possible.

        Args:
            source_name: Name of the registered data source
            force_reload: Re-read the raw file even if a cached copy exists
            **kwargs: Additional parameters including:
                     bbox: Optional (minx, miny, maxx, maxy) for spatial filtering
                     keep_cols: Optional list of columns to keep
                     any other key is merged into the source params (and the cache key)

        Returns:
            Normalized GeoDataFrame (DataFrame for lookup tables)

        Raises:
            ValueError: unknown source, unsupported format or geometry
            RuntimeError: raw data could not be acquired
        """
        source = self.registry.get(source_name)
        if not source:
            raise ValueError(f"Unknown data source: {source_name}")

        # Runtime hints are not part of the cache key
        runtime_bbox = kwargs.pop('bbox', None)
        runtime_keep_cols = kwargs.pop('keep_cols', None)

        if kwargs:
            source = DataSource(**{**source.__dict__, 'params': {**source.params, **kwargs}})

        cache_params = self._cache_params(source)
        data = None
        if not force_reload and self.cache_manager.is_cached(
                source.cache_key, cache_params, source_mtime=self._source_mtime(source)):
            data = self.cache_manager.load(source.cache_key, cache_params)

        if data is not None:
            logger.debug(f"Cache hit for {source_name}")
        else:
            logger.info(f"Cache miss for {source_name}. Processing from raw.")
            raw_data_path = self._acquire_data(source)
            if not raw_data_path:
                logger.error(f"Failed to acquire raw data for {source_name}")
                raise RuntimeError(f"Failed to acquire data for {source_name}")

            data = self._process_data(source, raw_data_path, keep_cols=source.default_keep_cols)
            self.cache_manager.save(data, source.cache_key, cache_params)

        data = self._apply_runtime_filters(data, source_name, runtime_bbox, runtime_keep_cols)
        logger.info(f"Loaded {len(data)} rows for {source_name}")
        return data

    @staticmethod
    def _apply_runtime_filters(data, source_name: str, bbox=None, keep_cols=None):
        if not isinstance(data, gpd.GeoDataFrame) or data.empty:
            if keep_cols and not data.empty:
                data = data[[c for c in keep_cols if c in data.columns]]
            return data

        if bbox:
            candidates = data.iloc[data.sindex.query(box(*bbox))]
            data = candidates[candidates.intersects(box(*bbox))].sort_index()
            logger.debug(f"bbox filter kept {len(data)} rows of {source_name}")

        if keep_cols:
            geom_col = data.geometry.name
            cols = [c for c in data.columns if c in keep_cols or c == geom_col]
            data = data[cols]
        return data

    @staticmethod
    def _raw_location(source: DataSource) -> Optional[str]:
        if source.source_type in {'http', 'https'}:
            return source.url
        return source.params.get('local_path') or source.path

    def _cache_params(self, source: DataSource) -> dict:
        """Cache key parameters: the source params plus where the raw data lives"""
        return {**source.params, '_raw': self._raw_location(source)}

    def _source_mtime(self, source: DataSource) -> Optional[float]:
        """Modification time of a local raw file, None for remote or missing files"""
        if source.source_type in {'http', 'https'}:
            return None
        location = self._raw_location(source)
        if not location:
            return None
        try:
            return os.path.getmtime(location)
        except OSError:
            return None

    def _acquire_data(self, source: DataSource) -> Optional[str]:
        """Make the raw file available locally and return its path"""
        if source.source_type in {'http', 'https'}:
            def _dl(target_fp: str) -> bool:
                loader = LoaderFactory.get_loader(source.source_type)
                return loader.load(source, target_fp)

            return self.download_cache.ensure(source.url, source.name, _dl)

        loader = LoaderFactory.get_loader(source.source_type)
        if not loader.load(source, source.path or ''):
            return None
        return source.params.get('local_path') or source.path

    def _process_data(self, source: DataSource, raw_path: str, *, bbox=None, keep_cols=None) -> Any:
        """Read the raw file and normalize it for the source's role"""
        if source.format == 'auto':
            ext = os.path.splitext(raw_path)[1].lower()
            data_format = _FORMAT_BY_EXTENSION.get(ext)
            if data_format is None:
                raise ValueError(f"Cannot infer data format of {raw_path} for {source.name}")
        else:
            data_format = source.format

        processor = ProcessorFactory.get_processor(data_format)

        try:
            data = processor.process(source, raw_path, bbox=bbox)
            data = apply_schema(data, source)
        except Exception as e:
            logger.error(f"Error processing {source.name}: {e}")
            raise

        if keep_cols:
            keep_set = set(keep_cols)
            if isinstance(data, gpd.GeoDataFrame):
                keep_set.add(data.geometry.name)
            data = data[[c for c in data.columns if c in keep_set]]
        return data

    def clear_cache(self, source_name: Optional[str] = None) -> None:
        """Clear cache for a specific source or all sources"""
        if source_name:
            source = self.registry.get(source_name)
            if source:
                self.cache_manager.clear(source.cache_key)
        else:
            self.cache_manager.clear()
