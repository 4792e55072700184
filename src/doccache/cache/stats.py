"""Cache statistics sidecar management."""

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict

from typing_extensions import TypedDict

from doccache.cache.validation import now_ms, write_text_atomic

logger = logging.getLogger(__name__)

STATS_FILENAME = ".stats"


class CacheStatsDict(TypedDict):
    """Aggregate statistics for one cache directory."""

    size: int  # bytes, sum of live entry sizes
    entries: int
    hits: int
    misses: int
    last_cleanup: int  # epoch ms


# Python field name -> key in the .stats file
_FILE_KEYS = {
    "size": "size",
    "entries": "entries",
    "hits": "hits",
    "misses": "misses",
    "last_cleanup": "lastCleanup",
}


class CacheStats:
    """Manages the ``.stats`` sidecar for a cache directory.

    The sidecar tracks:
    - Total size and number of live entries
    - Hit and miss counters
    - Time of the last completed cleanup pass

    Persistence is best-effort: a corrupt sidecar loads as zero statistics
    and a failed write is logged rather than raised.
    """

    def __init__(self, cache_dir: Path, clock: Callable[[], int] = now_ms):
        """Initialize statistics for a cache directory.

        Args:
            cache_dir: Directory holding the sidecar file
            clock: Source of the current time in epoch milliseconds
        """
        self.cache_dir = Path(cache_dir)
        self.stats_path = self.cache_dir / STATS_FILENAME
        self._clock = clock
        self._data: CacheStatsDict = self._zero()

    def _zero(self) -> CacheStatsDict:
        return {
            "size": 0,
            "entries": 0,
            "hits": 0,
            "misses": 0,
            "last_cleanup": self._clock(),
        }

    def load(self) -> None:
        """Load statistics from the sidecar or start from zero."""
        if not self.stats_path.exists():
            self._data = self._zero()
            return

        try:
            with open(self.stats_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            self._data = self._from_file(raw)
        except (OSError, ValueError) as e:
            # Corrupted stats, counters restart from zero
            logger.warning(f"Ignoring unreadable cache stats {self.stats_path}: {e}")
            self._data = self._zero()

    def _from_file(self, raw: Any) -> CacheStatsDict:
        if not isinstance(raw, dict):
            raise ValueError("stats file does not contain an object")

        data = self._zero()
        for field, file_key in _FILE_KEYS.items():
            if file_key not in raw:
                continue
            value = raw[file_key]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ValueError(f"stats field {file_key!r} is not a number")
            data[field] = int(value)
        return data

    def save(self) -> None:
        """Save statistics to the sidecar, logging (not raising) on failure."""
        payload: Dict[str, int] = {
            file_key: self._data[field] for field, file_key in _FILE_KEYS.items()
        }
        try:
            write_text_atomic(self.stats_path, json.dumps(payload))
        except OSError as e:
            logger.error(f"Failed to save cache stats to {self.stats_path}: {e}")

    def snapshot(self) -> CacheStatsDict:
        """Get a copy of the current statistics."""
        return self._data.copy()

    @property
    def size(self) -> int:
        return self._data["size"]

    @property
    def entries(self) -> int:
        return self._data["entries"]

    @property
    def hit_rate(self) -> float:
        """Fraction of lookups that were hits, 0.0 before any lookup."""
        total = self._data["hits"] + self._data["misses"]
        return self._data["hits"] / total if total > 0 else 0.0

    def record_hit(self) -> None:
        self._data["hits"] += 1

    def record_miss(self) -> None:
        self._data["misses"] += 1

    def add_entry(self, size: int) -> None:
        """Account for a newly written entry of ``size`` bytes."""
        self._data["entries"] += 1
        self._data["size"] += size

    def remove_entry(self, size: int) -> None:
        """Account for a removed entry, flooring both totals at zero."""
        self._data["entries"] = max(0, self._data["entries"] - 1)
        self._data["size"] = max(0, self._data["size"] - size)

    def reset(self) -> None:
        """Reset every statistic to zero."""
        self._data = self._zero()

    def reconcile(self, size: int, entries: int) -> bool:
        """Replace size and entry totals with values counted on disk.

        Args:
            size: Sum of the sizes of valid entry files
            entries: Number of valid entry files

        Returns:
            True if the stored totals were wrong and have been corrected
        """
        if self._data["size"] == size and self._data["entries"] == entries:
            return False

        logger.info(
            f"Reconciled cache stats in {self.cache_dir}: "
            f"entries {self._data['entries']} -> {entries}, "
            f"size {self._data['size']} -> {size}"
        )
        self._data["size"] = size
        self._data["entries"] = entries
        return True

    def finish_cleanup(self, remaining: int, deleted_size: int, now: int) -> None:
        """Record the outcome of a completed cleanup pass."""
        self._data["entries"] = remaining
        self._data["size"] = max(0, self._data["size"] - deleted_size)
        self._data["last_cleanup"] = now
