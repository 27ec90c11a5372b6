"""
Data loaders for different protocols.

Each loader is responsible for acquiring data from a specific type of source
(HTTP, local file, manually prepared file) and making it available locally.
"""

import os
import requests
import tempfile
import logging
from abc import ABC, abstractmethod

from .sources import DataSource


logger = logging.getLogger(__name__)


class BaseLoader(ABC):
    """Abstract base class for data loaders"""

    @abstractmethod
    def load(self, source: DataSource, target_path: str) -> bool:
        """Load data from source and save to target_path"""
        pass


class HTTPLoader(BaseLoader):
    """Loader for HTTP/HTTPS sources"""

    def __init__(self, timeout: float = 300):
        self.timeout = timeout

    def load(self, source: DataSource, target_path: str) -> bool:
        """Download file via HTTP/HTTPS"""
        if not source.url:
            logger.error(f"No URL provided for source {source.name}")
            return False

        try:
            logger.info(f"Downloading {source.name} from {source.url}")

            response = requests.get(source.url, stream=True, timeout=self.timeout)
            response.raise_for_status()

            os.makedirs(os.path.dirname(target_path), exist_ok=True)

            # Download to temporary file first
            with tempfile.NamedTemporaryFile(delete=False, dir=os.path.dirname(target_path)) as tmp_file:
                for chunk in response.iter_content(chunk_size=8192):
                    tmp_file.write(chunk)
                tmp_path = tmp_file.name

            os.replace(tmp_path, target_path)
            logger.info(f"Successfully downloaded {source.name} to {target_path}")
            return True

        except requests.RequestException as e:
            logger.error(f"Error downloading {source.name}: {e}")
            return False


class FileLoader(BaseLoader):
    """Loader for local files"""

    def load(self, source: DataSource, target_path: str) -> bool:
        """Use a local file in place"""
        if not source.path:
            logger.error(f"No path provided for source {source.name}")
            return False

        if not os.path.exists(source.path):
            logger.error(f"Source file not found: {source.path}")
            return False

        logger.info(f"Using local file {source.path} directly")

        return True


class ManualLoader(FileLoader):
    """Loader for files prepared out of band (e.g. the national WBD extract)"""

    def load(self, source: DataSource, target_path: str) -> bool:
        manual_path = source.params.get('local_path') or source.path
        if not manual_path or not os.path.exists(manual_path):
            logger.error(
                f"Manual data file for {source.name} not found: {manual_path}. "
                "Download it by hand and register its location."
            )
            return False
        logger.info(f"Using manually prepared file {manual_path} for {source.name}")
        return True


class LoaderFactory:
    """Factory for creating appropriate loaders"""

    _loaders = {
        'http': HTTPLoader,
        'https': HTTPLoader,
        'file': FileLoader,
        'manual': ManualLoader,
    }

    @classmethod
    def get_loader(cls, source_type: str) -> BaseLoader:
        """Get appropriate loader for source type"""
        loader_class = cls._loaders.get(source_type.lower())
        if not loader_class:
            raise ValueError(f"No loader available for source type: {source_type}")
        return loader_class()
