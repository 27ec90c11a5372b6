"""
Data pipeline for the watershed exposure analysis.

Datasets are declared as DataSource records, registered by name, and loaded
through one entry point that acquires, reads, normalizes and caches them.
"""

from .registry import DataRegistry
from .pipeline import DataPipeline
from .sources import DataSource

# Import data sources to register them to the singleton REGISTRY
from . import data_sources

from .registry import REGISTRY as registry


def load_data(source_name: str, **kwargs):
    """Load a normalized table from a registered source"""
    pipeline = DataPipeline(registry)
    return pipeline.load(source_name, **kwargs)


def add_manual_data(name: str, local_path: str, format: str = 'auto',
                   description: str = '', **kwargs):
    """
    Add a manually downloaded data source to the pipeline.

    Example:
        add_manual_data(
            'wbd_huc12_region',
            '/data/WBD_05_HU2.gpkg',
            format='gpkg',
            role='watershed',
            column_map={'huc12': 'huc12'},
            layer='WBDHU12',
        )
        watersheds = load_data('wbd_huc12_region')
    """
    registry.add_manual_source(name, local_path, format, description, **kwargs)


__all__ = ['DataRegistry', 'DataPipeline', 'DataSource', 'registry', 'load_data', 'add_manual_data']
