"""Cache validation utilities for keys, TTL expiry and entry files."""

import json
import logging
import re
import time
from numbers import Real
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

ENTRY_SUFFIX = ".json"
TEMP_SUFFIX = ".tmp"

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9]")


class InvalidEntryError(ValueError):
    """Raised when an entry file is not a valid cache entry."""

    pass


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def sanitize_key(key: str) -> str:
    """Convert a cache key to a filesystem-safe file stem.

    Every character outside ``[a-zA-Z0-9]`` becomes an underscore, so
    distinct keys may map to the same file.

    Examples:
        >>> sanitize_key('react/docs@18')
        'react_docs_18'
    """
    return _UNSAFE_KEY_CHARS.sub("_", key)


def is_expired(timestamp: int, ttl: int, now: int) -> bool:
    """Check whether an entry written at ``timestamp`` has outlived ``ttl``.

    Args:
        timestamp: Entry creation time in epoch milliseconds
        ttl: Time-to-live in milliseconds
        now: Current time in epoch milliseconds

    Returns:
        True if the entry is older than the TTL
    """
    return now - timestamp > ttl


def get_ttl_remaining(timestamp: int, ttl: int, now: int) -> int:
    """Get milliseconds remaining until an entry expires (never negative)."""
    return max(0, int(timestamp + ttl - now))


def serialize_data(data: Any) -> str:
    """Serialize a payload to compact JSON.

    Raises:
        TypeError: If the payload is not JSON-serializable
        ValueError: If the payload contains circular references or NaN-like
            values that cannot be represented
    """
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def compute_size(data: Any) -> int:
    """Byte length of the UTF-8 encoded compact JSON form of ``data``."""
    return len(serialize_data(data).encode("utf-8"))


def build_entry(data: Any, timestamp: int) -> Dict[str, Any]:
    """Build the on-disk entry record for a payload."""
    return {
        "data": data,
        "timestamp": timestamp,
        "size": compute_size(data),
    }


def _is_number(value: Any) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def parse_entry(text: str) -> Dict[str, Any]:
    """Parse and validate the contents of an entry file.

    Args:
        text: Raw file contents

    Returns:
        Entry dict with ``data``, ``timestamp`` and ``size`` keys

    Raises:
        InvalidEntryError: If the text is not JSON or lacks the entry shape
    """
    try:
        entry = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidEntryError(f"Entry is not valid JSON: {e}") from e

    if not isinstance(entry, dict) or "data" not in entry:
        raise InvalidEntryError("Entry is missing its data field")
    if not _is_number(entry.get("timestamp")):
        raise InvalidEntryError("Entry has no numeric timestamp")
    if not _is_number(entry.get("size")):
        raise InvalidEntryError("Entry has no numeric size")
    return entry


def read_entry(path: Path) -> Dict[str, Any]:
    """Read and validate an entry file.

    Raises:
        OSError: If the file cannot be read (including FileNotFoundError)
        InvalidEntryError: If the contents are corrupt
    """
    with open(path, "r", encoding="utf-8") as f:
        text = f.read()
    return parse_entry(text)


def write_text_atomic(path: Path, text: str) -> None:
    """Write ``text`` to ``path`` through a temp file and an atomic rename.

    Readers see either the previous file or the complete new one.

    Raises:
        OSError: If the temp file cannot be written or renamed
    """
    temp_path = path.with_name(path.name + TEMP_SUFFIX)
    try:
        with open(temp_path, "w", encoding="utf-8") as f:
            f.write(text)
        temp_path.replace(path)
    except OSError:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning(f"Failed to clean up temp file {temp_path}: {e}")
        raise
