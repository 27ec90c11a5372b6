"""
Census block lookups (Census Geocoder) and urban/rural classification.
"""

import time
import logging
from typing import Iterable, Optional, Set

import pandas as pd
import requests

from utils.config import Settings
from utils.geo_utils import Point
from utils.http_utils import ExternalServiceError, get_json

logger = logging.getLogger(__name__)

SERVICE_NAME = 'census geocoder'
BLOCK_LAYER = '2020 Census Blocks'
GEOID_LENGTH = 15


class CensusBlockClient:
    """Latitude/longitude to 2020 census block GEOID."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.session = session or requests.Session()

    def block_geoid(self, point: Point, index: Optional[int] = None) -> str:
        """GEOID of the block containing *point*, or ``""`` if the point is in no block."""
        params = {
            'x': point.longitude,
            'y': point.latitude,
            'benchmark': self.settings.geocoder_benchmark,
            'vintage': self.settings.geocoder_vintage,
            'layers': BLOCK_LAYER,
            'format': 'json',
        }
        payload = get_json(self.session, SERVICE_NAME, self.settings.geocoder_url, params,
                           self.settings.request_timeout, index)

        try:
            geographies = payload['result']['geographies']
        except (KeyError, TypeError):
            raise ExternalServiceError(SERVICE_NAME, "response has no result.geographies", index)

        blocks = next((v for k, v in geographies.items() if 'Census Blocks' in k), [])
        if self.settings.request_pause:
            time.sleep(self.settings.request_pause)
        if not blocks:
            logger.warning(f"No census block found at {point}")
            return ""
        return str(blocks[0]['GEOID']).zfill(GEOID_LENGTH)


def urban_geoids(lookup: pd.DataFrame, column: str = 'geoid') -> Set[str]:
    """Set of block GEOIDs inside a census urban area."""
    if column not in lookup.columns:
        raise ValueError(f"Urban-area lookup has no '{column}' column")
    return set(lookup[column].dropna().astype(str).str.zfill(GEOID_LENGTH))


def classify_urban_rural(geoids: Iterable[str], urban: Set[str]) -> list:
    """'urban' / 'rural' per GEOID; empty GEOIDs stay empty."""
    return ['' if not g else ('urban' if g in urban else 'rural') for g in geoids]
