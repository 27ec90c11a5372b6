"""
Cache management for normalized datasets.

Loading the national watershed layer or re-reading facility shapefiles is
slow, so normalized tables are cached as Feather files. Geometry is stored
as WKB; the CRS and geometry column name live in a small JSON sidecar.
"""

import os
import hashlib
import json
import logging
import geopandas as gpd
import pandas as pd
import pyarrow.feather as feather
from typing import Optional, Dict, Union
from pathlib import Path

from shapely import wkb


logger = logging.getLogger(__name__)

Table = Union[gpd.GeoDataFrame, pd.DataFrame]

_WKB_COL = '_wkb'


class CacheManager:
    """Manages cached tables using Feather format"""

    def __init__(self, cache_dir: Optional[str] = None):
        if cache_dir is None:
            cache_dir = os.path.join(
                os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                'data', 'cache'
            )

        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)

    def _get_cache_key(self, source_name: str, params: Optional[Dict] = None) -> str:
        """Generate a cache key based on source name and parameters"""
        hasher = hashlib.md5()
        hasher.update(source_name.encode())
        if params:
            hasher.update(json.dumps(params, sort_keys=True, default=str).encode())
        return hasher.hexdigest()

    def _get_cache_path(self, source_name: str, params: Optional[Dict] = None) -> str:
        """Get the full path for a cache file"""
        cache_key = self._get_cache_key(source_name, params)
        return str(self.cache_dir / f"{source_name}_{cache_key}.feather")

    @staticmethod
    def _meta_path(cache_path: str) -> str:
        return cache_path + ".meta.json"

    def is_cached(self, source_name: str, params: Optional[Dict] = None,
                  source_mtime: Optional[float] = None) -> bool:
        """Check if data is cached and newer than its source file"""
        cache_path = self._get_cache_path(source_name, params)
        if not os.path.exists(cache_path):
            return False
        if source_mtime is not None and os.path.getmtime(cache_path) < source_mtime:
            logger.info(f"Cache for {source_name} is older than source")
            return False
        return True

    def save(self, table: Table, source_name: str, params: Optional[Dict] = None) -> bool:
        """Save a (Geo)DataFrame to cache. Returns False instead of raising on failure."""
        cache_path = self._get_cache_path(source_name, params)
        meta = {'crs': None, 'geometry': None}
        try:
            frame = pd.DataFrame(table.copy())

            if isinstance(table, gpd.GeoDataFrame) and table._geometry_column_name in table.columns:
                geom_col = table._geometry_column_name
                meta['geometry'] = geom_col
                meta['crs'] = table.crs.to_string() if table.crs else None
                frame[_WKB_COL] = [
                    wkb.dumps(geom) if geom is not None and not geom.is_empty else None
                    for geom in table[geom_col]
                ]
                frame = frame.drop(columns=[geom_col])

            frame.columns = frame.columns.astype(str)
            frame = frame.reset_index(drop=True)

            feather.write_feather(frame, cache_path)
            with open(self._meta_path(cache_path), 'w') as f:
                json.dump(meta, f)
            logger.info(f"Cached {source_name} to {cache_path}")
            return True

        except Exception as e:
            logger.error(f"Error caching {source_name}: {e}")
            return False

    def load(self, source_name: str, params: Optional[Dict] = None) -> Optional[Table]:
        """Load a cached table, or None on miss / unreadable cache"""
        cache_path = self._get_cache_path(source_name, params)
        if not os.path.exists(cache_path):
            return None

        try:
            logger.info(f"Loading {source_name} from cache: {cache_path}")
            df = feather.read_feather(cache_path)

            meta = {'crs': None, 'geometry': None}
            if os.path.exists(self._meta_path(cache_path)):
                with open(self._meta_path(cache_path)) as f:
                    meta.update(json.load(f))

            if meta['geometry'] is None or _WKB_COL not in df.columns:
                return df

            geom_col = meta['geometry']
            df[geom_col] = [wkb.loads(b) if b is not None else None for b in df[_WKB_COL]]
            df = df.drop(columns=[_WKB_COL])
            return gpd.GeoDataFrame(df, geometry=geom_col, crs=meta['crs'])

        except Exception as e:
            logger.error(f"Error loading from cache {source_name}: {e}")
            return None

    def clear(self, source_name: Optional[str] = None) -> None:
        """Clear cache for a specific source or all caches"""
        pattern = f"{source_name}_*.feather*" if source_name else "*.feather*"
        for file in self.cache_dir.glob(pattern):
            file.unlink()
        logger.info(f"Cleared cache for {source_name}" if source_name else "Cleared all caches")
