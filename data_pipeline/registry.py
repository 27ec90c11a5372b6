"""
Registry for data sources.

The registry provides a central place to register and retrieve data sources.
This allows us to define data sources declaratively and access them by name.
"""

from typing import Dict, Optional
from .sources import DataSource


class DataRegistry:
    """Central registry for all data sources"""

    def __init__(self):
        self._sources: Dict[str, DataSource] = {}

    def register(self, source: DataSource) -> None:
        """Register a data source"""
        if source.name in self._sources:
            raise ValueError(f"Data source '{source.name}' already registered")

        self._sources[source.name] = source

    def add_manual_source(self, name: str, local_path: str, format: str = 'auto',
                         description: str = '', **kwargs) -> None:
        """
        Convenience method to register a manually prepared data source.

        The national watershed layer is too large to fetch on demand, so it is
        usually prepared out of band and registered this way.

        Args:
            name: Unique name for the data source
            local_path: Path to the manually downloaded data file
            format: Data format ('shapefile', 'geojson', 'gpkg', 'csv')
            description: Optional description of the data source
            **kwargs: Further DataSource fields (role, category, column_map, ...)
        """
        source_fields = {k: kwargs.pop(k) for k in list(kwargs)
                         if k in ('role', 'category', 'column_map', 'census_enrich')}
        source = DataSource(
            name=name,
            source_type='manual',
            path=local_path,
            format=format,
            description=description,
            params={
                'local_path': local_path,
                **kwargs
            },
            **source_fields
        )
        self.register(source)

    def get(self, name: str) -> Optional[DataSource]:
        """Get a data source by name"""
        return self._sources.get(name)

    def list_sources(self) -> list[str]:
        """List all registered source names"""
        return list(self._sources.keys())

    def list_by_role(self, role: str) -> list[str]:
        """List registered sources playing *role* ('facility', 'contamination', ...)."""
        return [name for name, source in self._sources.items() if source.role == role]

    def get_all_sources(self) -> Dict[str, DataSource]:
        """Return internal mapping (shallow copy) of all sources for inspection."""
        return dict(self._sources)

    def clear(self) -> None:
        """Clear all registered sources (mainly for testing)"""
        self._sources.clear()

# Global singleton registry used throughout the pipeline
REGISTRY = DataRegistry()
