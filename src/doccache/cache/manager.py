"""Cache manager for persisting fetched documentation on local disk."""

import json
import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from typing_extensions import TypedDict

from doccache.cache.config import DEFAULT_CLEANUP_INTERVAL, CacheConfig
from doccache.cache.stats import STATS_FILENAME, CacheStats, CacheStatsDict
from doccache.cache.validation import (
    ENTRY_SUFFIX,
    TEMP_SUFFIX,
    build_entry,
    get_ttl_remaining,
    is_expired,
    now_ms,
    read_entry,
    sanitize_key,
    write_text_atomic,
)

logger = logging.getLogger(__name__)


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CacheConfigError(CacheError):
    """Raised when the cache is configured with invalid values."""

    pass


class CacheClosedError(CacheConfigError):
    """Raised when a closed cache manager is asked to modify the cache."""

    pass


class CacheInitError(CacheError):
    """Raised when the cache directory cannot be created or reconciled."""

    pass


class CacheSetError(CacheError):
    """Raised when an entry cannot be written."""

    pass


class CacheEntryTooLargeError(CacheSetError):
    """Raised when a single entry is larger than the whole cache budget."""

    pass


class CacheDeleteError(CacheError):
    """Raised when an entry cannot be removed."""

    pass


class CacheClearError(CacheError):
    """Raised when the cache directory cannot be wiped."""

    pass


class CacheCleanupError(CacheError):
    """Raised when a cleanup pass fails before completing."""

    pass


class CacheInfoError(CacheError):
    """Raised when the cache directory cannot be inspected."""

    pass


class DirectoryInfo(TypedDict):
    """Filesystem details about a cache directory."""

    path: str
    exists: bool
    is_writable: bool
    size: int  # st_size of the directory node
    files: int  # entry files, sidecar excluded
    last_modified: int  # epoch ms


class CacheManager:
    """Manages a directory of JSON cache entries with TTL and size limits.

    Each key is stored as ``<sanitized-key>.json`` holding the payload, its
    creation time and its serialized size. Aggregate statistics live in a
    ``.stats`` sidecar that is reconciled against the directory on
    :meth:`init`. Expired entries are removed lazily by :meth:`get` and
    proactively by :meth:`cleanup`, which also runs on a background thread.

    Reads never raise: any failure is reported as a miss. Writes raise a
    subclass of :class:`CacheError`.

    Example::

        with CacheManager("cache", max_size=10_000_000, ttl=86_400_000) as cache:
            cache.set("react/hooks", {"html": "..."})
            page = cache.get("react/hooks")
    """

    def __init__(
        self,
        cache_dir: Union[str, Path],
        max_size: int,
        ttl: int,
        cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL,
        clock: Callable[[], int] = now_ms,
    ):
        """Initialize cache manager. Does not touch the filesystem.

        Args:
            cache_dir: Directory for entry files and the stats sidecar
            max_size: Maximum total size of all entries in bytes
            ttl: Entry time-to-live in milliseconds
            cleanup_interval: Milliseconds between periodic cleanup passes
            clock: Source of the current time in epoch milliseconds

        Raises:
            CacheConfigError: If cache_dir is empty or a limit is invalid
        """
        # Path("") equals Path("."), the working directory
        if (
            cache_dir is None
            or (isinstance(cache_dir, str) and not cache_dir.strip())
            or (isinstance(cache_dir, Path) and cache_dir == Path(""))
        ):
            raise CacheConfigError("Cache directory must be provided")
        if max_size <= 0:
            raise CacheConfigError(f"max_size must be positive, got {max_size}")
        if ttl < 0:
            raise CacheConfigError(f"ttl must not be negative, got {ttl}")
        if cleanup_interval <= 0:
            raise CacheConfigError(
                f"cleanup_interval must be positive, got {cleanup_interval}"
            )

        self.cache_dir = Path(cache_dir).expanduser()
        self.max_size = max_size
        self.ttl = ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self.stats = CacheStats(self.cache_dir, clock)

        self._lock = threading.RLock()
        self._initialized = False
        self._closed = False
        self._stop_event = threading.Event()
        self._cleanup_thread: Optional[threading.Thread] = None

    @classmethod
    def from_config(
        cls, config: CacheConfig, clock: Callable[[], int] = now_ms
    ) -> "CacheManager":
        """Create a cache manager from a :class:`CacheConfig`."""
        return cls(
            config.cache_dir,
            max_size=config.max_size,
            ttl=config.ttl,
            cleanup_interval=config.cleanup_interval,
            clock=clock,
        )

    def __enter__(self) -> "CacheManager":
        self.init()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def closed(self) -> bool:
        return self._closed

    def init(self) -> None:
        """Create the cache directory, reconcile stats and start cleanup.

        Raises:
            CacheClosedError: If the manager has been closed
            CacheInitError: If the directory cannot be created or scanned
        """
        with self._lock:
            if self._closed:
                raise CacheClosedError(f"Cache at {self.cache_dir} is closed")
            if self._initialized:
                return

            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                self.stats.load()
                self._reconcile()
            except OSError as e:
                logger.error(f"Failed to initialize cache at {self.cache_dir}: {e}")
                raise CacheInitError(
                    f"Failed to initialize cache at {self.cache_dir}: {e}"
                ) from e

            self._initialized = True
            self._start_cleanup_thread()

    def _reconcile(self) -> None:
        """Recount size and entries from the files actually on disk."""
        actual_size = 0
        actual_entries = 0

        for path in self._entry_files():
            try:
                entry = read_entry(path)
            except FileNotFoundError:
                continue
            except ValueError as e:
                logger.warning(f"Skipping invalid cache file {path.name}: {e}")
                continue
            actual_size += entry["size"]
            actual_entries += 1

        if self.stats.reconcile(int(actual_size), actual_entries):
            self.stats.save()

    def _ensure_ready(self) -> None:
        if self._closed:
            raise CacheClosedError(f"Cache at {self.cache_dir} is closed")
        if not self._initialized:
            self.init()

    def _entry_path(self, key: str) -> Path:
        return self.cache_dir / f"{sanitize_key(key)}{ENTRY_SUFFIX}"

    def _cache_files(self) -> List[Path]:
        """List every file in the cache directory except the stats sidecar."""
        return [
            path
            for path in sorted(self.cache_dir.iterdir())
            if path.name != STATS_FILENAME and path.is_file()
        ]

    def _entry_files(self) -> List[Path]:
        """List entry files, leaving out temp files of unfinished writes."""
        return [
            path for path in self._cache_files() if not path.name.endswith(TEMP_SUFFIX)
        ]

    def _remove_invalid(self, path: Path) -> bool:
        """Unlink a file that is not a usable entry, logging any failure."""
        try:
            path.unlink(missing_ok=True)
            return True
        except OSError as e:
            logger.warning(f"Failed to remove invalid cache file {path.name}: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Optional[Any]:
        """Get a cached value.

        Missing, expired, corrupt and unreadable entries are all misses.
        Expired entries are deleted.

        Args:
            key: Cache key
            default: Returned on a miss. Pass a sentinel to tell a cached
                ``None`` apart from a miss.

        Returns:
            The cached value, or ``default`` on a miss
        """
        with self._lock:
            if self._closed:
                logger.warning(f"get({key!r}) called on closed cache {self.cache_dir}")
                return default
            try:
                self._ensure_ready()
            except CacheError as e:
                logger.error(f"Cache unavailable, treating {key!r} as a miss: {e}")
                return default

            path = self._entry_path(key)
            try:
                entry = read_entry(path)
            except FileNotFoundError:
                return self._miss(default)
            except (OSError, ValueError) as e:
                logger.warning(f"Unreadable cache entry {path.name}: {e}")
                return self._miss(default)

            now = self._clock()
            if is_expired(entry["timestamp"], self.ttl, now):
                logger.debug(
                    f"Cache entry {path.name} expired: age {now - entry['timestamp']}ms, "
                    f"TTL {self.ttl}ms"
                )
                try:
                    path.unlink()
                    self.stats.remove_entry(int(entry["size"]))
                except FileNotFoundError:
                    pass
                except OSError as e:
                    logger.warning(f"Failed to remove expired entry {path.name}: {e}")
                return self._miss(default)

            logger.debug(
                f"Cache hit {path.name}, expires in "
                f"{get_ttl_remaining(entry['timestamp'], self.ttl, now)}ms"
            )
            self.stats.record_hit()
            self.stats.save()
            return entry["data"]

    def _miss(self, default: Any) -> Any:
        self.stats.record_miss()
        self.stats.save()
        return default

    def set(self, key: str, value: Any) -> None:
        """Store a JSON-serializable value under ``key``.

        Runs a cleanup pass first when the write would exceed ``max_size``.

        Args:
            key: Cache key
            value: JSON-serializable payload

        Raises:
            CacheEntryTooLargeError: If the value alone exceeds max_size
            CacheSetError: If the value cannot be serialized or written
            CacheClosedError: If the manager has been closed
        """
        with self._lock:
            self._ensure_ready()

            try:
                entry = build_entry(value, self._clock())
                text = json.dumps(entry, separators=(",", ":"), ensure_ascii=False)
            except (TypeError, ValueError) as e:
                raise CacheSetError(
                    f"Value for {key!r} is not JSON-serializable: {e}"
                ) from e

            size = entry["size"]
            if size > self.max_size:
                raise CacheEntryTooLargeError(
                    f"Entry size ({size} bytes) exceeds maximum cache size "
                    f"({self.max_size} bytes)"
                )

            path = self._entry_path(key)
            try:
                if self.stats.size + size > self.max_size:
                    logger.info(
                        f"Cache over budget ({self.stats.size} + {size} > "
                        f"{self.max_size} bytes), running cleanup"
                    )
                    self.cleanup()

                self.delete(key)
                write_text_atomic(path, text)
            except (CacheError, OSError, ValueError) as e:
                logger.error(f"Failed to set cache entry {key!r}: {e}")
                raise CacheSetError(f"Failed to set cache entry {key!r}: {e}") from e

            self.stats.add_entry(size)
            self.stats.save()

    def delete(self, key: str) -> None:
        """Remove the entry for ``key`` if it exists.

        Raises:
            CacheDeleteError: If the entry exists but cannot be removed
            CacheClosedError: If the manager has been closed
        """
        with self._lock:
            self._ensure_ready()

            path = self._entry_path(key)
            if not path.exists():
                return

            try:
                size = int(read_entry(path)["size"])
            except FileNotFoundError:
                return
            except ValueError as e:
                # Recorded size of a corrupt entry can't be trusted
                logger.warning(f"Deleting corrupt cache entry {path.name}: {e}")
                size = 0
            except OSError as e:
                logger.error(f"Failed to read cache entry {path.name}: {e}")
                raise CacheDeleteError(f"Failed to delete cache entry {key!r}: {e}") from e

            try:
                path.unlink()
            except FileNotFoundError:
                return
            except OSError as e:
                logger.error(f"Failed to delete cache entry {path.name}: {e}")
                raise CacheDeleteError(f"Failed to delete cache entry {key!r}: {e}") from e

            self.stats.remove_entry(size)
            self.stats.save()

    def clear(self) -> None:
        """Remove every entry and reset statistics.

        Raises:
            CacheClearError: If a file cannot be removed
            CacheClosedError: If the manager has been closed
        """
        with self._lock:
            self._ensure_ready()

            try:
                for path in self._cache_files():
                    path.unlink(missing_ok=True)
            except OSError as e:
                logger.error(f"Failed to clear cache at {self.cache_dir}: {e}")
                raise CacheClearError(f"Failed to clear cache: {e}") from e

            self.stats.reset()
            self.stats.save()

    def cleanup(self) -> Dict[str, int]:
        """Delete expired and corrupt entries and update statistics.

        Statistics are only persisted once the whole pass has completed.

        Returns:
            Dict with ``removed`` (files deleted), ``remaining`` (live
            entries) and ``freed`` (bytes of expired entries)

        Raises:
            CacheCleanupError: If the directory or an expired entry cannot
                be processed
            CacheClosedError: If the manager has been closed
        """
        with self._lock:
            self._ensure_ready()

            now = self._clock()
            deleted_size = 0
            removed = 0
            remaining = 0
            logger.debug(f"Starting cleanup of {self.cache_dir} at {now}, TTL: {self.ttl}ms")

            try:
                for path in self._cache_files():
                    if path.name.endswith(TEMP_SUFFIX):
                        logger.warning(f"Removing stale temp file {path.name}")
                        removed += self._remove_invalid(path)
                        continue

                    try:
                        entry = read_entry(path)
                    except FileNotFoundError:
                        continue
                    except (OSError, ValueError) as e:
                        logger.warning(f"Removing invalid cache file {path.name}: {e}")
                        removed += self._remove_invalid(path)
                        continue

                    if is_expired(entry["timestamp"], self.ttl, now):
                        logger.debug(f"Deleting expired cache file {path.name}")
                        path.unlink(missing_ok=True)
                        deleted_size += entry["size"]
                        removed += 1
                    else:
                        remaining += 1
            except OSError as e:
                logger.error(f"Cache cleanup failed: {e}")
                raise CacheCleanupError(f"Failed to cleanup cache: {e}") from e

            self.stats.finish_cleanup(remaining, int(deleted_size), now)
            self.stats.save()
            logger.info(
                f"Cleanup complete: removed {removed} files, "
                f"{remaining} entries remaining"
            )
            return {"removed": removed, "remaining": remaining, "freed": int(deleted_size)}

    def get_stats(self) -> CacheStatsDict:
        """Get a copy of the cache statistics."""
        with self._lock:
            return self.stats.snapshot()

    def get_directory_info(self) -> DirectoryInfo:
        """Get filesystem details about the cache directory.

        Raises:
            CacheInfoError: If the directory cannot be inspected
        """
        try:
            st = self.cache_dir.stat()
            files = len(self._entry_files())
        except OSError as e:
            logger.error(f"Failed to inspect cache directory {self.cache_dir}: {e}")
            raise CacheInfoError(f"Failed to get cache directory info: {e}") from e

        return {
            "path": str(self.cache_dir),
            "exists": True,
            "is_writable": os.access(self.cache_dir, os.W_OK),
            "size": st.st_size,
            "files": files,
            "last_modified": int(st.st_mtime * 1000),
        }

    def close(self) -> None:
        """Stop periodic cleanup and persist final statistics.

        Safe to call more than once.
        """
        self._stop_cleanup_thread()
        with self._lock:
            if self._initialized:
                self.stats.save()
            self._closed = True

    def _start_cleanup_thread(self) -> None:
        if self._cleanup_thread is not None and self._cleanup_thread.is_alive():
            return

        self._stop_event.clear()
        self._cleanup_thread = threading.Thread(
            target=self._cleanup_loop,
            daemon=True,
            name="doccache-cleanup",
        )
        self._cleanup_thread.start()

    def _stop_cleanup_thread(self) -> None:
        self._stop_event.set()
        thread = self._cleanup_thread
        self._cleanup_thread = None
        # Never join from the cleanup thread itself
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)

    def _cleanup_loop(self) -> None:
        """Run cleanup every ``cleanup_interval`` ms until stopped."""
        while not self._stop_event.wait(self.cleanup_interval / 1000):
            try:
                self.cleanup()
            except CacheError as e:
                logger.error(f"Scheduled cache cleanup failed: {e}")
