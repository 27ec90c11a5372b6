"""
Data Source definitions for the pipeline system.

A DataSource encapsulates all the information needed to acquire and process
a specific dataset: where to get it, how to read it, and how its attribute
columns map onto the facility / contamination-source schema.
"""

from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field


# Roles a registered dataset can play in the analysis
ROLES = ('facility', 'contamination', 'watershed', 'lookup')

FACILITY_CATEGORIES = ('carceral', 'school', 'hospital', 'nursing_home')


@dataclass
class DataSource:
    """
    Represents a data source, encapsulating all information needed to acquire and process it.
    """
    name: str
    source_type: str  # Type of source (e.g., 'https', 'file', 'manual')
    format: str       # Data format (e.g., 'shapefile', 'geojson', 'gpkg', 'csv')

    url: Optional[str] = None
    path: Optional[str] = None
    params: Dict[str, Any] = field(default_factory=dict)  # Source-specific parameters
    description: Optional[str] = None
    cache_key: Optional[str] = None # Optional explicit cache key

    # What the dataset is used for, and for facilities which category it holds
    role: str = 'facility'
    category: Optional[str] = None

    # Raw column name -> normalized column name (e.g. {'FACILITYID': 'facility_id'})
    column_map: Dict[str, str] = field(default_factory=dict)

    # Whether the enricher also looks up census block / urban-rural status
    census_enrich: bool = False

    # Optional list of columns to keep in the main cache (memory optimization)
    default_keep_cols: Optional[List[str]] = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("DataSource name cannot be empty.")
        if self.source_type not in ['https', 'http', 'file', 'manual']:
            raise ValueError(f"Invalid source_type: {self.source_type}")
        if self.role not in ROLES:
            raise ValueError(f"Invalid role: {self.role}")
        if self.role == 'facility' and self.category not in FACILITY_CATEGORIES:
            raise ValueError(
                f"Facility source '{self.name}' needs a category from {FACILITY_CATEGORIES}, got {self.category!r}"
            )

        # Convert format to lowercase for consistency
        self.format = self.format.lower()

        if self.source_type in ['https', 'http'] and not self.url:
            raise ValueError(f"URL must be provided for source_type '{self.source_type}'.")

        # Delimited text has no geometry of its own; it needs coordinate columns
        if self.format == 'csv' and self.role != 'lookup':
            self.params.setdefault('lat_col', 'latitude')
            self.params.setdefault('lon_col', 'longitude')

        # Set default cache_key if not provided
        if not self.cache_key:
            self.cache_key = self.name

    def __repr__(self):
        return f"DataSource(name='{self.name}', type='{self.source_type}', format='{self.format}', role='{self.role}')"

    @property
    def output_name(self) -> str:
        """Key used for the persisted enriched table of this source."""
        return self.category or self.name
