import threading

from cachetools import TTLCache

from .ftp_client import FileStats


class MetadataCache:
    """
    Cache for stat results (FileStats snapshots).

    Thread-safe TTL cache keyed by remote path. Only existing entries are
    cached, so a path that was missing is always looked up again.
    """

    def __init__(self, ttl_seconds: int, max_entries: int = 1024):
        self.ttl_seconds = ttl_seconds
        self._cache: TTLCache = TTLCache(maxsize=max_entries, ttl=ttl_seconds)
        self._lock = threading.Lock()

    def get(self, path: str) -> FileStats | None:
        """Return the cached snapshot for a path, or None if absent or expired."""
        with self._lock:
            return self._cache.get(path)

    def put(self, path: str, stats: FileStats) -> None:
        with self._lock:
            self._cache[path] = stats

    def invalidate(self, path: str) -> None:
        with self._lock:
            self._cache.pop(path, None)

    def invalidate_tree(self, path: str) -> None:
        """
        Invalidate a path and everything below it.

        Args:
            path: The directory path whose subtree changed.
        """
        prefix = path.rstrip("/") + "/"
        with self._lock:
            for key in [k for k in self._cache if k == path or k.startswith(prefix)]:
                self._cache.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._cache.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cache)
