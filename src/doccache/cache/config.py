"""Cache configuration management."""

import json
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

DEFAULT_CACHE_DIR = Path("cache")
DEFAULT_MAX_SIZE = 50 * 1024 * 1024  # 50 MB
DEFAULT_TTL = 7 * 24 * 60 * 60 * 1000  # 7 days
DEFAULT_CLEANUP_INTERVAL = 60 * 60 * 1000  # 1 hour


@dataclass
class CacheConfig:
    """Configuration for the documentation cache.

    All durations are in milliseconds and all sizes in bytes.

    Attributes:
        cache_dir: Directory holding entry files and the ``.stats`` sidecar
        max_size: Maximum total size of all entries
        ttl: Time-to-live of an entry
        cleanup_interval: Delay between periodic cleanup passes
    """

    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR)
    max_size: int = DEFAULT_MAX_SIZE
    ttl: int = DEFAULT_TTL
    cleanup_interval: int = DEFAULT_CLEANUP_INTERVAL

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path object.

        Raises:
            ValueError: If cache_dir is an empty path
        """
        if self.cache_dir is None:
            self.cache_dir = DEFAULT_CACHE_DIR
        if not str(self.cache_dir).strip() or Path(self.cache_dir) == Path(""):
            raise ValueError("cache_dir must not be empty")
        self.cache_dir = Path(self.cache_dir).expanduser()

    @classmethod
    def load(cls, config_path: Path) -> "CacheConfig":
        """Load configuration from a JSON file.

        Args:
            config_path: Path to config file. A missing file gives defaults.

        Returns:
            CacheConfig instance

        Raises:
            ValueError: If the file is not valid JSON or has unknown keys
        """
        config_path = Path(config_path)
        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"Cache config {config_path} must be a JSON object")

        unknown = set(data) - {"cache_dir", "max_size", "ttl", "cleanup_interval"}
        if unknown:
            raise ValueError(
                f"Unknown cache config keys in {config_path}: {', '.join(sorted(unknown))}"
            )

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to a JSON file.

        Args:
            config_path: Destination path; parent directories are created.
        """
        config_path = Path(config_path)
        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = asdict(self)
        data["cache_dir"] = str(self.cache_dir)

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls, base: Optional["CacheConfig"] = None) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            DOCCACHE_DIR: Cache directory path
            DOCCACHE_MAX_SIZE: Maximum total cache size in bytes
            DOCCACHE_TTL: Entry time-to-live in milliseconds
            DOCCACHE_CLEANUP_INTERVAL: Cleanup interval in milliseconds

        Args:
            base: Configuration to start from (defaults if None)

        Returns:
            CacheConfig instance
        """
        config = cls(**asdict(base)) if base is not None else cls()

        if os.getenv("DOCCACHE_DIR"):
            config.cache_dir = Path(os.getenv("DOCCACHE_DIR")).expanduser()

        if os.getenv("DOCCACHE_MAX_SIZE"):
            config.max_size = int(os.getenv("DOCCACHE_MAX_SIZE"))

        if os.getenv("DOCCACHE_TTL"):
            config.ttl = int(os.getenv("DOCCACHE_TTL"))

        if os.getenv("DOCCACHE_CLEANUP_INTERVAL"):
            config.cleanup_interval = int(os.getenv("DOCCACHE_CLEANUP_INTERVAL"))

        return config
