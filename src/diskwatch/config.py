"""Configuration for the diskwatch package."""

import fnmatch
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from .exceptions import ConfigError
from .fingerprint import DEFAULT_ALGORITHMS, LEGACY_ALGORITHMS


_TRUTHY = {"1", "true", "yes", "on"}


@dataclass
class WatchConfig:
    """
    Configuration options for the disk watcher.
    
    Attributes:
        root: Directory (or file) to watch
        db_path: Path to the SQLite database holding the history
        log_file: Append-only event log, None disables the file sink
        interval: Seconds to sleep between the end of one cycle and the next
        workers: Number of threads fingerprinting files concurrently
        read_timeout: Seconds to wait for one file's fingerprint (workers > 1)
        hash_algorithms: One or two hashlib algorithm names
        follow_symlinks: Whether symbolic links are followed while walking
        ignore_patterns: Glob patterns for paths to leave out of snapshots
        table_name: Name of the history table
    """
    root: Path = field(default_factory=lambda: Path("."))
    db_path: Path = field(default_factory=lambda: Path("diskwatcher.db"))
    log_file: Optional[Path] = field(default_factory=lambda: Path("diskwatcher.log"))
    interval: float = 0.5
    workers: int = 1
    read_timeout: Optional[float] = None
    hash_algorithms: Tuple[str, ...] = DEFAULT_ALGORITHMS
    follow_symlinks: bool = False
    ignore_patterns: List[str] = field(default_factory=list)
    table_name: str = "history"

    def __post_init__(self):
        if isinstance(self.root, str):
            self.root = Path(self.root)
        if isinstance(self.db_path, str):
            self.db_path = Path(self.db_path)
        if isinstance(self.log_file, str):
            self.log_file = Path(self.log_file)
        self.hash_algorithms = tuple(self.hash_algorithms)

        if self.interval < 0:
            raise ConfigError(f"interval must be >= 0: {self.interval}")
        if self.workers < 1:
            raise ConfigError(f"workers must be >= 1: {self.workers}")
        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ConfigError(f"read_timeout must be positive: {self.read_timeout}")
        if not 1 <= len(self.hash_algorithms) <= 2:
            raise ConfigError(
                f"expected one or two hash algorithms, got {len(self.hash_algorithms)}"
            )
        if not self.table_name.isidentifier():
            raise ConfigError(f"invalid table name: {self.table_name!r}")

    @property
    def legacy_hashes(self) -> bool:
        """True when fingerprints use the MD5 + SHA-1 pair."""
        return self.hash_algorithms == LEGACY_ALGORITHMS

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on ignore patterns.
        
        Args:
            path: Path to check
            
        Returns:
            True if the path should be ignored
        """
        path = Path(path)
        path_str = str(path)
        name = path.name

        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
            if fnmatch.fnmatch(path_str, f"*/{pattern}"):
                return True
            if fnmatch.fnmatch(path_str, pattern):
                return True

        return False

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, **overrides) -> "WatchConfig":
        """
        Build a config from DISKWATCH_* environment variables.
        
        A .env file is loaded first (without overriding variables that are
        already set). Keyword overrides that are not None win over the
        environment.
        
        Args:
            env_file: Explicit .env file, defaults to searching from the cwd
            **overrides: Field values taking precedence over the environment
            
        Returns:
            The resulting WatchConfig
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values = {}
        if os.environ.get("DISKWATCH_DB"):
            values["db_path"] = Path(os.environ["DISKWATCH_DB"])
        if "DISKWATCH_LOG" in os.environ:
            log_file = os.environ["DISKWATCH_LOG"]
            values["log_file"] = Path(log_file) if log_file else None
        try:
            if os.environ.get("DISKWATCH_INTERVAL"):
                values["interval"] = float(os.environ["DISKWATCH_INTERVAL"])
            if os.environ.get("DISKWATCH_WORKERS"):
                values["workers"] = int(os.environ["DISKWATCH_WORKERS"])
        except ValueError as e:
            raise ConfigError(f"invalid DISKWATCH_* environment value: {e}") from e
        if os.environ.get("DISKWATCH_LEGACY_HASHES", "").lower() in _TRUTHY:
            values["hash_algorithms"] = LEGACY_ALGORITHMS

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
