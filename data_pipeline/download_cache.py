import os
import hashlib
import time
import logging
import json
from pathlib import Path
from typing import Optional, Callable
from urllib.parse import urlparse

import portalocker  # cross-platform file locking so parallel runs don't download twice

logger = logging.getLogger(__name__)


class RawDownloadCache:
    """Shared on-disk cache for raw remote files.

    Remote resources (HTTP/HTTPS) are downloaded once per URL and reused by
    every later stage and re-run. Each resource lives under a path containing
    a truncated SHA-256 of its URL, so two URLs with the same file name do not
    collide.
    """

    ENV_VAR = "WSX_DATA_CACHE"

    def __init__(self, root_dir: Optional[str] = None):
        # explicit arg -> environment -> repo default
        if root_dir is None:
            root_dir = os.getenv(self.ENV_VAR)
        if root_dir is None:
            root_dir = Path(__file__).resolve().parent.parent / "data" / "raw_cache"
        self.root_dir = Path(root_dir).expanduser().resolve()
        self.root_dir.mkdir(parents=True, exist_ok=True)
        logger.debug("RawDownloadCache root set to %s", self.root_dir)

    def target_path(self, url: str, source_name: str) -> Path:
        """Return canonical cache path for *url*."""
        filename = Path(urlparse(url).path).name or "data"
        sha16 = hashlib.sha256(url.encode()).hexdigest()[:16]
        subdir = self.root_dir / source_name / sha16
        subdir.mkdir(parents=True, exist_ok=True)
        return subdir / filename

    def ensure(self, url: str, source_name: str, download_fn: Callable[[str], bool],
               lock_timeout: float = 1800) -> Optional[str]:
        """Make sure *url* is present locally and return its path.

        Parameters
        ----------
        url : str
            Remote URL pointing to the dataset.
        source_name : str
            DataSource name used to group files under the cache root.
        download_fn : Callable[[str], bool]
            Performs the actual download to the given file path and returns
            True on success.
        lock_timeout : float
            Seconds to wait for another process holding the download lock.
        """
        dest_path = self.target_path(url, source_name)
        lock_path = dest_path.with_suffix(dest_path.suffix + ".lock")
        meta_path = dest_path.with_suffix(dest_path.suffix + ".meta.json")

        if dest_path.exists() and dest_path.stat().st_size > 0:
            return str(dest_path)

        try:
            with portalocker.Lock(str(lock_path), timeout=lock_timeout):
                # Another process may have finished while we waited
                if dest_path.exists() and dest_path.stat().st_size > 0:
                    return str(dest_path)

                logger.info("Downloading remote resource for '%s' -> %s", source_name, dest_path)
                if not download_fn(str(dest_path)) or not dest_path.exists():
                    logger.error("Download failed for %s", url)
                    dest_path.unlink(missing_ok=True)
                    return None

                meta = {
                    "url": url,
                    "downloaded_at": int(time.time()),
                    "size_bytes": dest_path.stat().st_size,
                }
                with open(meta_path, "w", encoding="utf-8") as fp:
                    json.dump(meta, fp)

                return str(dest_path)
        except portalocker.exceptions.LockException as exc:
            logger.error("Timeout waiting to acquire lock for %s: %s", dest_path, exc)
            return None
