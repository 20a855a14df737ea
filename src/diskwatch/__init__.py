"""
diskwatch

A polling change-detection agent that watches a directory subtree and
records every addition, content change and deletion of files and folders
in an append-only SQLite history.

Features:
- Snapshot of the watched tree on a fixed interval
- Content fingerprinting (SHA-256, or MD5 + SHA-1 for older databases)
- Two-way reconciliation of the snapshot against the history
- Append-only event log from which current state is derived
- Optional concurrent fingerprinting
"""

from .models import (
    EventKind,
    EntryClass,
    Fingerprint,
    Entry,
)

from .config import WatchConfig

from .exceptions import (
    DiskWatchError,
    ConfigError,
    StoreError,
    StoreUnavailableError,
    StoreWriteError,
    CycleError,
    WatchStateError,
)

from .fingerprint import (
    DEFAULT_ALGORITHMS,
    LEGACY_ALGORITHMS,
    compute_fingerprint,
    empty_fingerprint,
    fingerprint_file,
)
from .snapshot import Snapshot, take_snapshot
from .store import HistoryStore
from .reconciler import Reconciler, CycleResult
from .process import WatchProcess, WatchMode
from .report import format_entry, format_report


__all__ = [
    # Models
    "EventKind",
    "EntryClass",
    "Fingerprint",
    "Entry",
    # Config
    "WatchConfig",
    # Exceptions
    "DiskWatchError",
    "ConfigError",
    "StoreError",
    "StoreUnavailableError",
    "StoreWriteError",
    "CycleError",
    "WatchStateError",
    # Fingerprinting
    "DEFAULT_ALGORITHMS",
    "LEGACY_ALGORITHMS",
    "compute_fingerprint",
    "empty_fingerprint",
    "fingerprint_file",
    # Components
    "Snapshot",
    "take_snapshot",
    "HistoryStore",
    "Reconciler",
    "CycleResult",
    # Main Process
    "WatchProcess",
    "WatchMode",
    # Reporting
    "format_entry",
    "format_report",
]

__version__ = "0.1.0"
