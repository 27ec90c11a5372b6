"""
Runtime settings for the watershed exposure pipeline.

Values come from environment variables, optionally loaded from a ``.env``
file found by python-dotenv. Every setting has a default so the scripts run
out of the box against the public USGS and Census endpoints.
"""

import os
import logging
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv, find_dotenv

logger = logging.getLogger(__name__)

PROJECT_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))

WORKING_CRS = "EPSG:4326"
# CONUS Albers equal-area; centroids are computed here, not in degrees
PLANAR_CRS = "EPSG:5070"
POPULATION_SENTINEL = -999

DEFAULT_ELEVATION_URL = "https://epqs.nationalmap.gov/v1/json"
DEFAULT_GEOCODER_URL = "https://geocoding.geo.census.gov/geocoder/geographies/coordinates"


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw == '':
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"Environment variable {name} must be numeric, got {raw!r}")


@dataclass
class Settings:
    data_dir: str = os.path.join(PROJECT_DIR, 'data')
    enriched_dir: str = os.path.join(PROJECT_DIR, 'data', 'enriched')
    results_dir: str = os.path.join(PROJECT_DIR, 'data', 'results')
    elevation_url: str = DEFAULT_ELEVATION_URL
    geocoder_url: str = DEFAULT_GEOCODER_URL
    elevation_batch_size: int = 100
    request_timeout: float = 30.0
    request_pause: float = 0.0
    geocoder_benchmark: str = 'Public_AR_Current'
    geocoder_vintage: str = 'Current_Current'

    def __post_init__(self):
        if self.elevation_batch_size < 1:
            raise ValueError("elevation_batch_size must be at least 1")
        if self.request_timeout <= 0:
            raise ValueError("request_timeout must be positive")

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "Settings":
        """Build settings from the environment (and a .env file if one is found)."""
        dotenv_path = dotenv_path or find_dotenv(usecwd=True)
        if dotenv_path:
            logger.info(f"Loading environment variables from: {dotenv_path}")
            load_dotenv(dotenv_path=dotenv_path)

        data_dir = os.environ.get('WSX_DATA_DIR', os.path.join(PROJECT_DIR, 'data'))
        return cls(
            data_dir=data_dir,
            enriched_dir=os.environ.get('WSX_ENRICHED_DIR', os.path.join(data_dir, 'enriched')),
            results_dir=os.environ.get('WSX_RESULTS_DIR', os.path.join(data_dir, 'results')),
            elevation_url=os.environ.get('WSX_ELEVATION_URL', DEFAULT_ELEVATION_URL),
            geocoder_url=os.environ.get('WSX_GEOCODER_URL', DEFAULT_GEOCODER_URL),
            elevation_batch_size=int(_env_float('WSX_ELEVATION_BATCH_SIZE', 100)),
            request_timeout=_env_float('WSX_REQUEST_TIMEOUT', 30.0),
            request_pause=_env_float('WSX_REQUEST_PAUSE', 0.0),
        )
