"""
Elevation lookups against the USGS Elevation Point Query Service (EPQS).
"""

import time
import logging
import math
from typing import Optional

import requests

from utils.config import Settings
from utils.geo_utils import Point
from utils.http_utils import ExternalServiceError, get_json

logger = logging.getLogger(__name__)

SERVICE_NAME = 'elevation'
# EPQS answers this value for points outside its coverage
NO_DATA_VALUE = -1000000


class ElevationClient:
    """Point-in, elevation-out lookups, one request per point."""

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        self.settings = settings or Settings()
        self.session = session or requests.Session()

    def elevation_at(self, point: Point, index: Optional[int] = None) -> float:
        """Elevation in meters at *point*, NaN where the service has no data."""
        params = {
            'x': point.longitude,
            'y': point.latitude,
            'wkid': 4326,
            'units': 'Meters',
            'includeDate': 'false',
        }
        payload = get_json(self.session, SERVICE_NAME, self.settings.elevation_url, params,
                           self.settings.request_timeout, index)

        if 'value' not in payload:
            raise ExternalServiceError(SERVICE_NAME, "response has no 'value' field", index)
        try:
            value = float(payload['value'])
        except (TypeError, ValueError):
            raise ExternalServiceError(SERVICE_NAME, f"non-numeric elevation {payload['value']!r}", index)

        if value <= NO_DATA_VALUE or math.isnan(value):
            logger.warning(f"No elevation data at {point}")
            return math.nan

        if self.settings.request_pause:
            time.sleep(self.settings.request_pause)
        return value
