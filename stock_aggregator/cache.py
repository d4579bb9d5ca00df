"""
Caching layer for downloaded price samples.

A disk-based cache keyed by a hash of the query parameters. Intraday
samples go stale within minutes, so entries can carry a maximum age after
which they count as misses.
"""

import hashlib
import json
import pickle
import time
from pathlib import Path
from typing import Any, Optional
from stock_aggregator.errors import CacheError


class DataCache:
    """
    A disk-based cache for downloaded samples.

    Representation Invariants:
        - cache_dir exists and is a directory
        - cache files are named by the md5 of their sorted query params
        - max_age_seconds is None or > 0
    """

    def __init__(self, cache_dir: str = ".cache", max_age_seconds: Optional[float] = None):
        """
        Initialize the cache, creating cache_dir if needed.

        Args:
            cache_dir: Directory holding the .pkl files
            max_age_seconds: Entries older than this are ignored (None: never expire)
        """
        if max_age_seconds is not None and max_age_seconds <= 0:
            raise ValueError("max_age_seconds must be positive")
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.max_age_seconds = max_age_seconds

    def _compute_hash(self, query_params: dict) -> str:
        # Sort keys for consistent hashing
        sorted_params = json.dumps(query_params, sort_keys=True, default=str)
        return hashlib.md5(sorted_params.encode()).hexdigest()

    def _path(self, query_params: dict) -> Path:
        return self.cache_dir / f"{self._compute_hash(query_params)}.pkl"

    def _is_fresh(self, cache_file: Path) -> bool:
        if self.max_age_seconds is None:
            return True
        age = time.time() - cache_file.stat().st_mtime
        return age <= self.max_age_seconds

    def get(self, query_params: dict) -> Optional[Any]:
        """
        Retrieve cached data if present and fresh.

        Returns:
            Cached object, or None on a miss or an expired entry

        Raises:
            CacheError: If the cache file exists but cannot be read
        """
        cache_file = self._path(query_params)
        if not cache_file.exists() or not self._is_fresh(cache_file):
            return None

        try:
            with open(cache_file, "rb") as f:
                return pickle.load(f)
        except Exception as e:
            raise CacheError(f"Failed to read cache file: {e}") from e

    def set(self, query_params: dict, data: Any) -> None:
        """
        Store data under the hash of query_params.

        Raises:
            CacheError: If the file cannot be written
        """
        cache_file = self._path(query_params)
        try:
            with open(cache_file, "wb") as f:
                pickle.dump(data, f)
        except Exception as e:
            raise CacheError(f"Failed to write cache file: {e}") from e

    def clear(self) -> None:
        """Remove every cached file."""
        for cache_file in self.cache_dir.glob("*.pkl"):
            cache_file.unlink()

    def exists(self, query_params: dict) -> bool:
        """Whether a fresh entry exists for query_params."""
        cache_file = self._path(query_params)
        return cache_file.exists() and self._is_fresh(cache_file)
