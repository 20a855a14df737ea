"""Watch loop driving the reconciler on a fixed interval."""

import logging
import os
import threading
from enum import Enum
from pathlib import Path
from typing import FrozenSet, List, Optional

from .config import WatchConfig
from .exceptions import StoreError, WatchStateError
from .models import Entry
from .reconciler import CycleResult, Reconciler
from .snapshot import normalize_path, take_snapshot
from .store import HistoryStore

logger = logging.getLogger(__name__)


class WatchMode(Enum):
    """What a WatchProcess has been asked to do during this run."""
    IDLE = "idle"
    REPORTING = "reporting"
    WATCHING = "watching"


class WatchProcess:
    """
    Orchestrates snapshot, reconciliation and sleeping for one watched root.
    
    A process either reports or watches during its lifetime, never both.
    Cancellation is cooperative: the stop event is checked between cycles.
    """

    def __init__(
        self,
        config: Optional[WatchConfig] = None,
        store: Optional[HistoryStore] = None,
        stop_event: Optional[threading.Event] = None,
    ):
        """
        Initialize the watch process.
        
        Args:
            config: Watch configuration
            store: History store (opened from config.db_path when omitted)
            stop_event: Cancellation token, set to end the watch loop
            
        Raises:
            StoreUnavailableError: If the history store cannot be opened
        """
        self.config = config or WatchConfig()
        self._owns_store = store is None
        self.store = store or HistoryStore(self.config.db_path, self.config.table_name)
        self.reconciler = Reconciler(
            self.store,
            fingerprint_algorithms=self.config.hash_algorithms,
            workers=self.config.workers,
            read_timeout=self.config.read_timeout,
        )
        self._stop_event = stop_event or threading.Event()
        self._mode = WatchMode.IDLE
        self._running = False
        self._lock = threading.Lock()
        self._own_files = self._tool_files()

    @property
    def mode(self) -> WatchMode:
        return self._mode

    @property
    def is_running(self) -> bool:
        """Check if the watch loop is running."""
        return self._running

    @property
    def stop_event(self) -> threading.Event:
        return self._stop_event

    def _enter(self, mode: WatchMode) -> None:
        with self._lock:
            if self._mode not in (WatchMode.IDLE, mode):
                raise WatchStateError(
                    f"Cannot switch to {mode.value} while {self._mode.value}"
                )
            self._mode = mode

    def _tool_files(self) -> FrozenSet[str]:
        """Paths this process writes to, which are never reported as changes."""
        db = str(self.store.db_path)
        paths = [db] + [db + suffix for suffix in ("-wal", "-shm", "-journal")]
        if self.config.log_file is not None:
            paths.append(str(self.config.log_file))
        own = set()
        for path in paths:
            own.add(normalize_path(path))
            own.add(os.path.realpath(path))
        return frozenset(own)

    def _ignored(self, path: Path) -> bool:
        if str(path) in self._own_files:
            return True
        return bool(self.config.ignore_patterns) and self.config.should_ignore(path)

    def run_once(self) -> CycleResult:
        """
        Run one full cycle: snapshot the root, then reconcile.
        
        Returns:
            The cycle result
        """
        snapshot = take_snapshot(
            self.config.root,
            follow_symlinks=self.config.follow_symlinks,
            ignore=self._ignored,
        )
        return self.reconciler.run_cycle(snapshot)

    def watch(self, reset: bool = False, max_cycles: Optional[int] = None) -> int:
        """
        Run cycles until the stop event is set.
        
        Args:
            reset: Clear all history once before the first cycle
            max_cycles: Stop after this many cycles (None runs until stopped)
            
        Returns:
            Number of cycles completed
            
        Raises:
            WatchStateError: If this process already reported
        """
        self._enter(WatchMode.WATCHING)

        if reset:
            self.store.reset()

        interval = self.config.interval
        logger.info(f"Watching {self.config.root} every {interval}s")

        self._running = True
        cycles = 0
        try:
            while not self._stop_event.is_set():
                try:
                    result = self.run_once()
                except StoreError as e:
                    logger.error(f"Cycle failed, retrying next interval: {e}")
                else:
                    if not result.ok:
                        logger.error(
                            f"Cycle failed: {len(result.write_failures)} event(s) not recorded, "
                            "retrying next interval"
                        )
                cycles += 1

                if max_cycles is not None and cycles >= max_cycles:
                    break
                self._stop_event.wait(timeout=interval)
        finally:
            self._running = False

        logger.info(f"Watch stopped after {cycles} cycle(s)")
        return cycles

    def report(self, latest: bool = False, path: Optional[str] = None) -> List[Entry]:
        """
        Read the history without touching the filesystem.
        
        Args:
            latest: Return the current state of every path instead of the full log
            path: Return only this path's audit trail
            
        Returns:
            The requested entries
            
        Raises:
            WatchStateError: If this process is watching
        """
        self._enter(WatchMode.REPORTING)

        if path is not None:
            return self.store.history(path)
        if latest:
            return self.store.latest_per_path()
        return self.store.all()

    def stop(self) -> None:
        """Ask the watch loop to exit at the next cycle boundary."""
        self._stop_event.set()

    def close(self) -> None:
        """Stop the loop, release the workers and close the store if this process opened it."""
        self.stop()
        self.reconciler.close()
        if self._owns_store:
            self.store.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
