#!/usr/bin/env python3
"""
Geographic utility functions for the watershed exposure pipeline.

Covers the CRS handling shared by every loaded dataset (reprojection and
polygon-to-centroid reduction) and the point-in-watershed join.
"""

import logging
from typing import Iterable, Tuple

import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import Point as ShapelyPoint

from utils.config import WORKING_CRS, PLANAR_CRS

logger = logging.getLogger(__name__)

POINT_TYPES = ('Point',)
POLYGON_TYPES = ('Polygon', 'MultiPolygon')


class Point:
    """
    Simple class to represent a geographic point with lon/lat coordinates.
    """
    def __init__(self, longitude: float, latitude: float):
        self.longitude = float(longitude)
        self.latitude = float(latitude)

    def to_shapely(self) -> ShapelyPoint:
        """Convert to Shapely Point object"""
        return ShapelyPoint(self.longitude, self.latitude)

    def to_tuple(self) -> Tuple[float, float]:
        """Convert to (lon, lat) tuple"""
        return (self.longitude, self.latitude)

    @classmethod
    def from_shapely(cls, geom: ShapelyPoint) -> "Point":
        return cls(geom.x, geom.y)

    def __str__(self) -> str:
        return f"Point(lon={self.longitude}, lat={self.latitude})"

    def __repr__(self) -> str:
        return self.__str__()


def to_working_crs(gdf: gpd.GeoDataFrame, name: str = 'dataset') -> gpd.GeoDataFrame:
    """Return *gdf* in the working geographic CRS, assuming WGS84 when the CRS is missing."""
    if gdf.crs is None:
        logger.warning(f"{name} has no CRS, assuming {WORKING_CRS}")
        return gdf.set_crs(WORKING_CRS)
    if gdf.crs != WORKING_CRS:
        logger.info(f"Reprojecting {name} from {gdf.crs} to {WORKING_CRS}")
        return gdf.to_crs(WORKING_CRS)
    return gdf


def geometry_types(gdf: gpd.GeoDataFrame) -> set:
    return set(gdf.geometry.dropna().geom_type.unique())


def check_geometry_types(gdf: gpd.GeoDataFrame, allowed: Iterable[str], name: str = 'dataset') -> None:
    """Raise ValueError if *gdf* holds geometries outside *allowed*."""
    unexpected = geometry_types(gdf) - set(allowed)
    if unexpected:
        raise ValueError(
            f"{name} contains unsupported geometry type(s) {sorted(unexpected)}; expected {sorted(allowed)}"
        )


def polygons_to_centroids(gdf: gpd.GeoDataFrame, planar_crs: str = PLANAR_CRS) -> gpd.GeoDataFrame:
    """Replace polygon footprints with their centroids.

    The centroid is taken in *planar_crs* and reprojected back to the frame's
    own CRS. Point rows pass through unchanged.
    """
    if gdf.empty:
        return gdf.copy()
    source_crs = gdf.crs or WORKING_CRS
    projected = gdf.set_crs(source_crs) if gdf.crs is None else gdf
    projected = projected.to_crs(planar_crs)
    is_polygon = projected.geom_type.isin(POLYGON_TYPES)
    geoms = projected.geometry.copy()
    geoms[is_polygon] = projected.geometry[is_polygon].centroid
    out = projected.set_geometry(geoms).to_crs(source_crs)
    logger.debug(f"Reduced {int(is_polygon.sum())} polygon(s) to centroids")
    return out


def assign_watersheds(points: gpd.GeoDataFrame, watersheds: gpd.GeoDataFrame,
                      code_col: str = 'huc12', out_col: str = 'huc') -> gpd.GeoDataFrame:
    """Tag every point with the code of the watershed polygon containing it.

    When a point lies in more than one polygon the first polygon in
    *watersheds* row order wins. Points outside every polygon get ``""``.
    Neither input is modified.

    Args:
        points: Point table (any CRS; reprojected to match *watersheds*).
        watersheds: Boundary polygons carrying *code_col*.
        code_col: Column in *watersheds* holding the 12-digit HUC code.
        out_col: Name of the column added to the returned copy of *points*.
    """
    if code_col not in watersheds.columns:
        raise ValueError(f"Watershed layer has no '{code_col}' column")

    result = points.copy()
    result[out_col] = ""
    if points.empty or watersheds.empty:
        return result

    if watersheds.crs is not None and points.crs is not None and points.crs != watersheds.crs:
        query_geoms = points.to_crs(watersheds.crs).geometry
    else:
        query_geoms = points.geometry

    # positions of (point, polygon) pairs with the point inside the polygon
    point_pos, poly_pos = watersheds.sindex.query(query_geoms.values, predicate='within')
    if len(point_pos) == 0:
        return result

    pairs = pd.DataFrame({'point': point_pos, 'poly': poly_pos}).sort_values(['point', 'poly'])
    first = pairs.drop_duplicates('point', keep='first')

    codes = watersheds[code_col].astype(str).to_numpy()
    values = np.full(len(result), "", dtype=object)
    values[first['point'].to_numpy()] = codes[first['poly'].to_numpy()]
    result[out_col] = values

    logger.info(f"Matched {len(first)} of {len(points)} points to a watershed")
    return result
