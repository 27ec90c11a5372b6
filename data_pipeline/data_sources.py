"""
Data source configurations for the watershed exposure analysis.

This module registers every dataset the analysis uses. Facility and
contamination datasets are local downloads (HIFLD, PFAS site inventories);
the national HUC-12 layer is prepared out of band; the urban-area block list
is fetched from the Census Bureau on first use.

Local paths hang off ``Settings.data_dir``, so ``WSX_DATA_DIR`` works from
the environment and from a ``.env`` file alike.
"""
import os
from typing import List, Optional

from utils.config import Settings

from .sources import DataSource
from .registry import DataRegistry, REGISTRY


def build_sources(data_dir: str) -> List[DataSource]:
    """All dataset definitions, with local files under *data_dir*/gis."""

    def _local_path(relative_path: str) -> str:
        return os.path.join(data_dir, 'gis', relative_path)

    # --- Facilities (HIFLD) ---

    prison_boundaries = DataSource(
        name='prison_boundaries',
        source_type='file',
        path=_local_path('facilities/Prison_Boundaries.shp'),
        format='shapefile',
        role='facility',
        category='carceral',
        census_enrich=True,
        column_map={'FACILITYID': 'facility_id', 'STATUS': 'status', 'POPULATION': 'population'},
        params={'extra_cols': ['NAME', 'TYPE', 'SECURELVL']},
        description='HIFLD prison boundaries (polygons, reduced to centroids)',
    )

    public_schools = DataSource(
        name='public_schools',
        source_type='file',
        path=_local_path('facilities/Public_Schools.shp'),
        format='shapefile',
        role='facility',
        category='school',
        census_enrich=True,
        column_map={'NCESID': 'facility_id', 'STATUS': 'status', 'ENROLLMENT': 'population'},
        params={'extra_cols': ['NAME', 'LEVEL_']},
    )

    hospitals = DataSource(
        name='hospitals',
        source_type='file',
        path=_local_path('facilities/Hospitals.shp'),
        format='shapefile',
        role='facility',
        category='hospital',
        column_map={'ID': 'facility_id', 'STATUS': 'status', 'BEDS': 'population'},
        params={'extra_cols': ['NAME', 'TYPE']},
    )

    nursing_homes = DataSource(
        name='nursing_homes',
        source_type='file',
        path=_local_path('facilities/Nursing_Homes.shp'),
        format='shapefile',
        role='facility',
        category='nursing_home',
        column_map={'ID': 'facility_id', 'STATUS': 'status', 'POPULATION': 'population'},
        params={'extra_cols': ['NAME']},
    )

    # --- PFAS contamination sites ---

    pfas_known = DataSource(
        name='pfas_known',
        source_type='file',
        path=_local_path('pfas/known_contamination_sites.csv'),
        format='csv',
        role='contamination',
        column_map={'site_id': 'source_id', 'suspected_source': 'source_category', 'site_details': 'details'},
        params={'is_known': True, 'lat_col': 'latitude', 'lon_col': 'longitude'},
        description='Sites with documented PFAS contamination',
    )

    pfas_suspected = DataSource(
        name='pfas_suspected',
        source_type='file',
        path=_local_path('pfas/presumptive_contamination_sites.csv'),
        format='csv',
        role='contamination',
        column_map={'facility_id': 'source_id', 'source_type': 'source_category', 'facility_name': 'details'},
        params={'is_known': False, 'lat_col': 'latitude', 'lon_col': 'longitude'},
        description='Presumptive PFAS sources (military, airports, industry, WWTPs, ...)',
    )

    # --- Reference layers ---

    # National WBD is tens of GB; extract the HU12 layer by hand into a GeoPackage
    wbd_huc12 = DataSource(
        name='wbd_huc12',
        source_type='manual',
        path=_local_path('wbd/WBD_National_HU12.gpkg'),
        format='gpkg',
        role='watershed',
        params={'layer': 'WBDHU12', 'local_path': _local_path('wbd/WBD_National_HU12.gpkg')},
        column_map={'HUC12': 'huc12'},
    )

    urban_blocks = DataSource(
        name='urban_blocks',
        source_type='https',
        url='https://www2.census.gov/geo/docs/maps-data/data/rel2020/ua/tab20_ua20_tabblock20_natl.txt',
        format='csv',
        role='lookup',
        column_map={'GEOID_TABBLOCK_20': 'geoid'},
        params={'sep': '|', 'dtype': str},
        description='2020 census blocks inside urban areas',
    )

    return [prison_boundaries, public_schools, hospitals, nursing_homes,
            pfas_known, pfas_suspected, wbd_huc12, urban_blocks]


def register_sources(registry: DataRegistry = REGISTRY, settings: Optional[Settings] = None) -> None:
    """Register every dataset not registered yet, rooted at the configured data directory."""
    settings = settings or Settings.from_env()
    for source in build_sources(settings.data_dir):
        if registry.get(source.name) is None:
            registry.register(source)


register_sources()
