#!/usr/bin/env python3
"""
Watershed tagging and elevation/census enrichment.

For each facility or contamination dataset this script loads the normalized
points, tags them with the HUC-12 watershed containing them, looks up their
elevation (USGS EPQS) and, where configured, their census block and
urban/rural status (Census Geocoder). The result is persisted as one
GeoPackage per dataset, which the proximity and statistics stages read.

Lookups are slow and unretried. Progress is persisted after every batch, and
a re-run picks up the rows that were not finished yet.
"""

import sys
import os
import json
import argparse
import logging
from dataclasses import replace
from typing import Callable, List, Optional, Set

import geopandas as gpd

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
if SCRIPT_DIR not in sys.path:
    sys.path.insert(0, SCRIPT_DIR)

from data_pipeline import load_data, registry
from utils import file_utils
from utils.census import CensusBlockClient, classify_urban_rural, urban_geoids
from utils.config import Settings
from utils.elevation import ElevationClient
from utils.geo_utils import Point, assign_watersheds
from utils.http_utils import ExternalServiceError

Checkpoint = Callable[[gpd.GeoDataFrame], None]

ELEVATION_DONE = 'elev_done'
CENSUS_DONE = 'census_done'


def _id_column(gdf: gpd.GeoDataFrame) -> str:
    return 'facility_id' if 'facility_id' in gdf.columns else 'source_id'


def _check_batch_size(batch_size: int) -> None:
    if batch_size < 1:
        raise ValueError(f"batch_size must be at least 1, got {batch_size}")


def add_elevations(gdf: gpd.GeoDataFrame, client: ElevationClient, batch_size: int,
                   checkpoint: Optional[Checkpoint] = None) -> gpd.GeoDataFrame:
    """Fill the ``elevation`` column for every row not looked up yet.

    Rows are processed in batches of *batch_size*; *checkpoint* receives the
    table after each batch. An ExternalServiceError stops the loop at the
    failing row with all earlier batches already checkpointed.
    """
    _check_batch_size(batch_size)
    gdf = gdf.copy()
    if 'elevation' not in gdf.columns:
        gdf['elevation'] = float('nan')
    if ELEVATION_DONE not in gdf.columns:
        gdf[ELEVATION_DONE] = False

    pending = [i for i, done in enumerate(gdf[ELEVATION_DONE].astype(bool)) if not done]
    total = len(pending)
    if not total:
        logger.info("All elevations already present")
        return gdf

    elev_col = gdf.columns.get_loc('elevation')
    done_col = gdf.columns.get_loc(ELEVATION_DONE)
    for start in range(0, total, batch_size):
        batch = pending[start:start + batch_size]
        for pos in batch:
            geom = gdf.geometry.iloc[pos]
            gdf.iat[pos, elev_col] = client.elevation_at(Point.from_shapely(geom), index=pos)
            gdf.iat[pos, done_col] = True
        logger.info(f"Elevation lookups: {min(start + batch_size, total)}/{total}")
        if checkpoint is not None:
            checkpoint(gdf)
    return gdf


def add_census_blocks(gdf: gpd.GeoDataFrame, client: CensusBlockClient, urban: Set[str],
                      batch_size: int, checkpoint: Optional[Checkpoint] = None) -> gpd.GeoDataFrame:
    """Fill ``geoid`` and ``urban_rural`` for every row not looked up yet (sequential)."""
    _check_batch_size(batch_size)
    gdf = gdf.copy()
    if 'geoid' not in gdf.columns:
        gdf['geoid'] = ''
    if CENSUS_DONE not in gdf.columns:
        gdf[CENSUS_DONE] = False
    gdf['geoid'] = gdf['geoid'].fillna('').astype(str)

    pending = [i for i, done in enumerate(gdf[CENSUS_DONE].astype(bool)) if not done]
    total = len(pending)
    geoid_col = gdf.columns.get_loc('geoid')
    done_col = gdf.columns.get_loc(CENSUS_DONE)
    for start in range(0, total, batch_size):
        for pos in pending[start:start + batch_size]:
            geom = gdf.geometry.iloc[pos]
            gdf.iat[pos, geoid_col] = client.block_geoid(Point.from_shapely(geom), index=pos)
            gdf.iat[pos, done_col] = True
        logger.info(f"Census block lookups: {min(start + batch_size, total)}/{total}")
        gdf['urban_rural'] = classify_urban_rural(gdf['geoid'], urban)
        if checkpoint is not None:
            checkpoint(gdf)

    gdf['urban_rural'] = classify_urban_rural(gdf['geoid'], urban)
    return gdf


def _resume_table(fresh: gpd.GeoDataFrame, name: str, directory: str) -> gpd.GeoDataFrame:
    """Prefer a partially enriched table on disk if it holds the same rows as *fresh*."""
    existing = file_utils.read_enriched(name, directory)
    if existing is None:
        return fresh
    id_col = _id_column(fresh)
    if len(existing) == len(fresh) and list(existing[id_col]) == list(fresh[id_col]):
        logger.info(f"Resuming {name} from {file_utils.enriched_path(name, directory)}")
        return existing
    logger.warning(f"Persisted {name} table does not match the current input; starting over")
    return fresh


def enrich_source(source_name: str, watersheds: gpd.GeoDataFrame, settings: Settings,
                  elevation_client: ElevationClient,
                  census_client: Optional[CensusBlockClient] = None,
                  urban: Optional[Set[str]] = None,
                  force: bool = False) -> str:
    """Run the join + enrichment stages for one dataset and return the persisted path."""
    source = registry.get(source_name)
    if source is None:
        raise ValueError(f"Unknown data source: {source_name}")
    if source.role not in ('facility', 'contamination'):
        raise ValueError(f"{source_name} is a {source.role} layer, not a point dataset")

    name = source.output_name
    directory = settings.enriched_dir

    points = load_data(source_name)
    table = assign_watersheds(points, watersheds)
    if not force:
        table = _resume_table(table, name, directory)

    def checkpoint(gdf):
        file_utils.write_enriched(gdf, name, directory)

    table = add_elevations(table, elevation_client, settings.elevation_batch_size, checkpoint)

    if source.census_enrich:
        if census_client is None or urban is None:
            raise ValueError(f"{source_name} needs census enrichment but no census client/lookup was given")
        table = add_census_blocks(table, census_client, urban, settings.elevation_batch_size, checkpoint)

    return file_utils.write_enriched(table, name, directory)


def enrich_all(source_names: List[str], watershed_source: str = 'wbd_huc12',
               urban_source: str = 'urban_blocks', settings: Optional[Settings] = None,
               force: bool = False) -> dict:
    """Enrich several datasets in turn; stops at the first failure."""
    settings = settings or Settings.from_env()
    watersheds = load_data(watershed_source)

    elevation_client = ElevationClient(settings)
    census_client = None
    urban = None
    if any(registry.get(n) is not None and registry.get(n).census_enrich for n in source_names):
        census_client = CensusBlockClient(settings)
        urban = urban_geoids(load_data(urban_source))

    outputs = {}
    for source_name in source_names:
        logger.info(f"=== Enriching {source_name} ===")
        outputs[source_name] = enrich_source(
            source_name, watersheds, settings, elevation_client, census_client, urban, force=force
        )
    return outputs


def main():
    point_sources = registry.list_by_role('facility') + registry.list_by_role('contamination')

    parser = argparse.ArgumentParser(description='Tag point datasets with watersheds, elevation and census blocks.')
    parser.add_argument('sources', nargs='*', default=point_sources,
                        help=f"Datasets to enrich (default: all of {', '.join(point_sources)})")
    parser.add_argument('--watersheds', default='wbd_huc12', help='Registered watershed layer (default: wbd_huc12)')
    parser.add_argument('--urban-lookup', default='urban_blocks', help='Registered urban-block lookup (default: urban_blocks)')
    parser.add_argument('--batch-size', type=int, help='Lookups per persisted batch (overrides WSX_ELEVATION_BATCH_SIZE)')
    parser.add_argument('--output-dir', type=str, help='Directory for enriched GeoPackages (overrides WSX_ENRICHED_DIR)')
    parser.add_argument('--force', action='store_true', help='Ignore partially enriched tables and start over')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')

    args = parser.parse_args()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        settings = Settings.from_env()
        overrides = {}
        if args.batch_size is not None:
            overrides['elevation_batch_size'] = args.batch_size
        if args.output_dir:
            overrides['enriched_dir'] = args.output_dir
        settings = replace(settings, **overrides)
        outputs = enrich_all(args.sources, args.watersheds, args.urban_lookup, settings, force=args.force)
    except ExternalServiceError as e:
        logger.error(f"{e}. Re-run to resume from the last persisted batch.")
        print(json.dumps({"error": str(e), "service": e.service, "row": e.index}))
        sys.exit(1)
    except (ValueError, RuntimeError, FileNotFoundError) as e:
        logger.error(f"Enrichment failed: {e}")
        print(json.dumps({"error": str(e)}))
        sys.exit(1)

    print(json.dumps({"enriched": outputs}, indent=2))
    sys.exit(0)


if __name__ == "__main__":
    main()
