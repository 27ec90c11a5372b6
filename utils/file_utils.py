import json
import os
import logging
from typing import Optional

import geopandas as gpd
import pandas as pd

logger = logging.getLogger(__name__)

ENRICHED_EXTENSION = '.gpkg'
_STRING_COLUMNS = ('huc', 'geoid', 'urban_rural', 'facility_id', 'source_id')


def json_to_file(data: dict, filepath: str) -> bool:
    """Saves dictionary data to a JSON file."""
    try:
        os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2, default=str)
        logger.info(f"Successfully saved JSON data to {filepath}")
        return True
    except (OSError, TypeError) as e:
        logger.error(f"Error saving JSON to file {filepath}: {e}", exc_info=True)
        return False


def dataframe_to_csv(df: pd.DataFrame, filepath: str) -> str:
    """Write *df* to CSV (creating parent directories) and return the path."""
    os.makedirs(os.path.dirname(os.path.abspath(filepath)), exist_ok=True)
    df.to_csv(filepath, index=False)
    logger.info(f"Wrote {len(df)} rows to {filepath}")
    return filepath


def enriched_path(name: str, directory: str) -> str:
    return os.path.join(directory, f"{name}{ENRICHED_EXTENSION}")


def write_enriched(gdf: gpd.GeoDataFrame, name: str, directory: str) -> str:
    """Persist an enriched table as ``<directory>/<name>.gpkg`` (layer *name*).

    The file is written next to the target and moved into place, so an
    interrupted write never leaves a truncated table behind.
    """
    os.makedirs(directory, exist_ok=True)
    path = enriched_path(name, directory)
    tmp_path = path + '.partial' + ENRICHED_EXTENSION
    if os.path.exists(tmp_path):
        os.remove(tmp_path)
    gdf.to_file(tmp_path, layer=name, driver='GPKG')
    os.replace(tmp_path, path)
    logger.info(f"Persisted {len(gdf)} rows of {name} to {path}")
    return path


def read_enriched(name: str, directory: str) -> Optional[gpd.GeoDataFrame]:
    """Read a table written by write_enriched, or None if it does not exist yet."""
    path = enriched_path(name, directory)
    if not os.path.exists(path):
        return None
    gdf = gpd.read_file(path, layer=name)
    for col in _STRING_COLUMNS:
        if col in gdf.columns:
            gdf[col] = gdf[col].fillna('').astype(str)
    if 'is_known' in gdf.columns:
        gdf['is_known'] = gdf['is_known'].astype(bool)
    return gdf
