"""
Normalization of raw tables into the pipeline's common schemas.

Facility datasets (prisons, schools, hospitals, nursing homes) and
contamination-site datasets come from different publishers with different
column names. Each DataSource carries a ``column_map``; after renaming, the
functions here fill defaults, normalize status and category vocabularies,
reduce polygons to centroids and reproject to the working CRS.
"""

import logging
from typing import Union

import numpy as np
import pandas as pd
import geopandas as gpd

from utils.config import POPULATION_SENTINEL
from utils.geo_utils import (
    POINT_TYPES, POLYGON_TYPES, check_geometry_types, polygons_to_centroids, to_working_crs,
)
from .sources import DataSource

logger = logging.getLogger(__name__)

FACILITY_COLUMNS = ['facility_id', 'category', 'status', 'population']
CONTAMINATION_COLUMNS = ['source_id', 'source_category', 'details', 'is_known']

SOURCE_CATEGORIES = (
    'industrial', 'military', 'airport', 'fire_training',
    'landfill', 'wastewater', 'waste_disposal', 'other',
)

# Checked in order; the first keyword hit decides the category.
_CATEGORY_KEYWORDS = [
    ('military', ('military', 'air force', 'army', 'navy', 'marine corps', 'national guard', 'dod', 'defense')),
    ('fire_training', ('fire training', 'firefighting', 'fire fighting', 'afff', 'fire station', 'fire department')),
    ('airport', ('airport', 'aviation', 'airfield', 'part 139')),
    ('landfill', ('landfill',)),
    ('wastewater', ('wastewater', 'wwtp', 'sewage', 'sewer', 'biosolid', 'publicly owned treatment')),
    ('waste_disposal', ('waste', 'disposal', 'incinerat', 'superfund', 'dump')),
    ('industrial', ('industr', 'manufactur', 'chemical', 'plating', 'textile', 'paper',
                    'refiner', 'semiconductor', 'factory', 'plant', 'facility')),
]

_OPEN_WORDS = {'open', 'opened', 'active', 'operational', 'operating'}
_CLOSED_WORDS = {'closed', 'inactive', 'not operational', 'closed permanently', 'decommissioned'}


def normalize_source_category(raw) -> str:
    """Map a free-text contamination source description onto the fixed taxonomy."""
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return 'other'
    text = str(raw).strip().lower()
    if text in SOURCE_CATEGORIES:
        return text
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(keyword in text for keyword in keywords):
            return category
    return 'other'


def normalize_status(raw) -> str:
    if raw is None or (isinstance(raw, float) and np.isnan(raw)):
        return 'unknown'
    text = str(raw).strip().lower()
    if text in _OPEN_WORDS:
        return 'open'
    if text in _CLOSED_WORDS:
        return 'closed'
    return 'unknown'


def normalize_population(values: pd.Series) -> pd.Series:
    """Coerce population/enrollment to int, using the sentinel for anything unusable."""
    numeric = pd.to_numeric(values, errors='coerce')
    return numeric.fillna(POPULATION_SENTINEL).astype('int64')


def _points_in_working_crs(gdf: gpd.GeoDataFrame, name: str) -> gpd.GeoDataFrame:
    gdf = gdf[gdf.geometry.notna() & ~gdf.geometry.is_empty]
    check_geometry_types(gdf, POINT_TYPES + POLYGON_TYPES, name)
    if geometry_has_polygons(gdf):
        gdf = polygons_to_centroids(gdf)
    return to_working_crs(gdf, name)


def geometry_has_polygons(gdf: gpd.GeoDataFrame) -> bool:
    return bool(gdf.geom_type.isin(POLYGON_TYPES).any())


def _id_column(gdf: gpd.GeoDataFrame, column: str, prefix: str) -> pd.Series:
    if column in gdf.columns:
        return gdf[column].astype(str)
    logger.warning(f"No '{column}' column; generating identifiers from row order")
    return pd.Series([f"{prefix}-{i}" for i in range(len(gdf))], index=gdf.index)


def normalize_facilities(gdf: gpd.GeoDataFrame, source: DataSource) -> gpd.GeoDataFrame:
    gdf = gdf.rename(columns=source.column_map)
    gdf = _points_in_working_crs(gdf, source.name)

    out = gpd.GeoDataFrame({
        'facility_id': _id_column(gdf, 'facility_id', source.output_name),
        'category': source.category,
        'status': gdf['status'].map(normalize_status) if 'status' in gdf.columns else 'unknown',
        'population': normalize_population(gdf['population']) if 'population' in gdf.columns
                      else POPULATION_SENTINEL,
    }, geometry=gdf.geometry, crs=gdf.crs)

    extra = [c for c in source.params.get('extra_cols', []) if c in gdf.columns]
    for col in extra:
        out[col] = gdf[col]
    return out.reset_index(drop=True)


def normalize_contamination(gdf: gpd.GeoDataFrame, source: DataSource) -> gpd.GeoDataFrame:
    gdf = gdf.rename(columns=source.column_map)
    gdf = _points_in_working_crs(gdf, source.name)

    is_known = bool(source.params.get('is_known', True))
    raw_category = gdf['source_category'] if 'source_category' in gdf.columns else pd.Series(None, index=gdf.index)
    details = gdf['details'].fillna('').astype(str) if 'details' in gdf.columns else ''

    out = gpd.GeoDataFrame({
        'source_id': _id_column(gdf, 'source_id', source.name),
        'source_category': raw_category.map(normalize_source_category),
        'details': details,
        'is_known': is_known,
    }, geometry=gdf.geometry, crs=gdf.crs)
    return out.reset_index(drop=True)


def normalize_watersheds(gdf: gpd.GeoDataFrame, source: DataSource) -> gpd.GeoDataFrame:
    gdf = gdf.rename(columns=source.column_map)
    if 'huc12' not in gdf.columns:
        raise ValueError(f"Watershed source '{source.name}' has no huc12 column (set column_map)")
    gdf = gdf[gdf.geometry.notna()]
    check_geometry_types(gdf, POLYGON_TYPES, source.name)
    gdf = to_working_crs(gdf, source.name)
    out = gdf[['huc12', gdf.geometry.name]].copy()
    out['huc12'] = out['huc12'].astype(str).str.zfill(12)
    # row order is kept: it decides ties for points in overlapping polygons
    return out.reset_index(drop=True)


def normalize_lookup(df: pd.DataFrame, source: DataSource) -> pd.DataFrame:
    df = df.rename(columns=source.column_map)
    if 'geoid' in df.columns:
        df['geoid'] = df['geoid'].astype(str).str.zfill(15)
    return df


def apply_schema(data: Union[gpd.GeoDataFrame, pd.DataFrame], source: DataSource):
    """Dispatch to the normalizer for the source's role."""
    normalizers = {
        'facility': normalize_facilities,
        'contamination': normalize_contamination,
        'watershed': normalize_watersheds,
        'lookup': normalize_lookup,
    }
    return normalizers[source.role](data, source)
