"""Diff of a snapshot against the history, in both directions."""

import logging
import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError, wait
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple

from .exceptions import CycleError, StoreError
from .fingerprint import DEFAULT_ALGORITHMS, empty_fingerprint, fingerprint_file
from .models import Entry, EntryClass, EventKind, Fingerprint, local_now
from .snapshot import Snapshot, display_path
from .store import HistoryStore

logger = logging.getLogger(__name__)
# Human-readable event sink; the CLI attaches the log file handler here.
event_logger = logging.getLogger("diskwatch.events")


_EVENT_MESSAGES = {
    (EntryClass.FILE, EventKind.ADDED): "File added",
    (EntryClass.FILE, EventKind.CHANGED): "File changed",
    (EntryClass.FILE, EventKind.DELETED): "File deleted",
    (EntryClass.FOLDER, EventKind.ADDED): "Folder added",
    (EntryClass.FOLDER, EventKind.DELETED): "Folder deleted",
}


@dataclass
class CycleResult:
    """
    Outcome of one reconciliation cycle.
    
    Attributes:
        entries: Entries appended during the cycle, in append order
        read_failures: Files whose content could not be read
        write_failures: (path, error) pairs for appends that failed
        started_at: When the cycle began
        finished_at: When the cycle completed
    """
    entries: List[Entry] = field(default_factory=list)
    read_failures: List[str] = field(default_factory=list)
    write_failures: List[Tuple[str, StoreError]] = field(default_factory=list)
    started_at: datetime = field(default_factory=local_now)
    finished_at: Optional[datetime] = None

    def _count(self, kind: EventKind) -> int:
        return sum(1 for e in self.entries if e.event_kind is kind)

    @property
    def added(self) -> int:
        return self._count(EventKind.ADDED)

    @property
    def changed(self) -> int:
        return self._count(EventKind.CHANGED)

    @property
    def deleted(self) -> int:
        return self._count(EventKind.DELETED)

    @property
    def ok(self) -> bool:
        return not self.write_failures

    @property
    def duration(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()


class Reconciler:
    """
    Classifies every path of a snapshot into Added/Changed/Deleted events.
    
    The forward pass walks the snapshot and records what is present; the
    reverse pass walks the current state of every known path and records
    what is gone. The forward pass always runs first.
    """

    def __init__(
        self,
        store: HistoryStore,
        fingerprint_algorithms: Sequence[str] = DEFAULT_ALGORITHMS,
        workers: int = 1,
        read_timeout: Optional[float] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize the reconciler.
        
        Args:
            store: History store to read current state from and append to
            fingerprint_algorithms: One or two hashlib algorithm names
            workers: Threads used to fingerprint files, 1 reads sequentially
            read_timeout: Seconds to wait for one file when workers > 1
            clock: Source of observed_at timestamps
        """
        self.store = store
        self.fingerprint_algorithms = tuple(fingerprint_algorithms)
        self.workers = workers
        self.read_timeout = read_timeout
        self.clock = clock or local_now
        self._empty = empty_fingerprint(self.fingerprint_algorithms)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._hung: Set = set()

    @property
    def empty(self) -> Fingerprint:
        """Sentinel fingerprint for folders, deletions and unreadable files."""
        return self._empty

    def fingerprint_files(self, paths: Sequence[str]) -> Tuple[Dict[str, Fingerprint], List[str]]:
        """
        Fingerprint every file, reading unreadable ones as empty content.
        
        With several workers, each read gets read_timeout seconds from the
        moment a worker picks it up. A read that overruns is abandoned and
        keeps its worker busy; once every worker is stuck that way the pool
        is replaced so the remaining files can still be read.
        
        Args:
            paths: File paths to fingerprint
            
        Returns:
            (fingerprints by path, paths that could not be read)
        """
        fingerprints: Dict[str, Fingerprint] = {}
        failures: List[str] = []

        def on_failure(path: str, error) -> None:
            event_logger.warning(f"Read file failed '{display_path(path)}': {error}")
            fingerprints[path] = self._empty
            failures.append(path)

        if self.workers <= 1:
            for path in paths:
                fp, error = fingerprint_file(Path(path), self.fingerprint_algorithms)
                if error is not None:
                    on_failure(path, error)
                else:
                    fingerprints[path] = fp
            return fingerprints, failures

        started: Dict[str, float] = {}

        def read(path: str):
            started[path] = time.monotonic()
            return fingerprint_file(Path(path), self.fingerprint_algorithms)

        executor = self._get_executor()
        pending = [(path, executor.submit(read, path)) for path in paths]
        for i in range(len(pending)):
            path, future = pending[i]
            while self.read_timeout is not None and not future.done() and path not in started:
                if self._saturated():
                    executor = self._replace_executor()
                    for j in range(i, len(pending)):
                        queued_path, queued = pending[j]
                        if queued.cancelled():
                            pending[j] = (queued_path, executor.submit(read, queued_path))
                    path, future = pending[i]
                else:
                    wait([future], timeout=self.read_timeout)

            try:
                if self.read_timeout is None or future.done():
                    fp, error = future.result()
                else:
                    remaining = started[path] + self.read_timeout - time.monotonic()
                    fp, error = future.result(timeout=max(remaining, 0))
            except FutureTimeoutError:
                self._hung.add(future)
                on_failure(path, f"read timed out after {self.read_timeout}s")
                continue
            if error is not None:
                on_failure(path, error)
            else:
                fingerprints[path] = fp
        return fingerprints, failures

    def _get_executor(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.workers, thread_name_prefix="fingerprint"
            )
        return self._executor

    def _saturated(self) -> bool:
        """True when every worker is stuck on an abandoned read."""
        self._hung = {f for f in self._hung if not f.done()}
        return len(self._hung) >= self.workers

    def _replace_executor(self) -> ThreadPoolExecutor:
        logger.warning(
            f"All {self.workers} fingerprint workers are stuck on reads, starting a new pool"
        )
        # Queued reads are cancelled; stuck threads exit when their read returns.
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._executor = None
        self._hung = set()
        return self._get_executor()

    def close(self) -> None:
        """Release the fingerprint workers without waiting for stuck reads."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
        self._hung = set()

    def _append(self, result: CycleResult, path: str, entry_class: EntryClass,
                fingerprint: Fingerprint, kind: EventKind) -> None:
        entry = Entry(
            path=path,
            entry_class=entry_class,
            fingerprint=fingerprint,
            event_kind=kind,
            observed_at=self.clock(),
        )
        try:
            stored = self.store.append(entry)
        except StoreError as e:
            logger.error(f"Failed to record {kind.value} for {display_path(path)}: {e}")
            result.write_failures.append((path, e))
            return
        result.entries.append(stored)
        event_logger.info(f"{_EVENT_MESSAGES[(entry_class, kind)]}: {display_path(path)}")

    def _latest(self, result: CycleResult, path: str) -> Tuple[bool, Optional[Entry]]:
        """Current state of one path, or (False, None) if it could not be looked up."""
        try:
            return True, self.store.latest(path)
        except StoreError as e:
            logger.error(f"Failed to look up {display_path(path)}: {e}")
            result.write_failures.append((path, e))
            return False, None

    def forward_pass(self, snapshot: Snapshot, fingerprints: Dict[str, Fingerprint],
                     result: CycleResult) -> None:
        """Record every file and folder of the snapshot that is new, resurrected or changed."""
        for path in snapshot.files:
            fp = fingerprints.get(path, self._empty)
            found, latest = self._latest(result, path)
            if not found:
                continue
            if latest is None or latest.is_deleted:
                self._append(result, path, EntryClass.FILE, fp, EventKind.ADDED)
            elif latest.fingerprint != fp:
                self._append(result, path, EntryClass.FILE, fp, EventKind.CHANGED)

        # Folders are presence-only, never Changed.
        for path in snapshot.folders:
            found, latest = self._latest(result, path)
            if not found:
                continue
            if latest is None or latest.is_deleted:
                self._append(result, path, EntryClass.FOLDER, self._empty, EventKind.ADDED)

    def reverse_pass(self, snapshot: Snapshot, result: CycleResult) -> None:
        """Record a deletion for every known path missing from the snapshot."""
        for entry in self.store.latest_per_path():
            if entry.is_deleted:
                continue
            if entry.is_file and entry.path not in snapshot.file_set:
                self._append(result, entry.path, EntryClass.FILE, self._empty, EventKind.DELETED)
            elif entry.is_folder and entry.path not in snapshot.folder_set:
                self._append(result, entry.path, EntryClass.FOLDER, self._empty, EventKind.DELETED)

    def run_cycle(self, snapshot: Snapshot, strict: bool = False) -> CycleResult:
        """
        Run one forward pass and one reverse pass against a snapshot.
        
        Args:
            snapshot: Current listing of the watched root
            strict: Raise CycleError after the cycle if any append failed
            
        Returns:
            The cycle result
            
        Raises:
            CycleError: If strict and at least one append failed
        """
        result = CycleResult(started_at=self.clock())
        start = time.monotonic()

        fingerprints, result.read_failures = self.fingerprint_files(snapshot.files)

        self.forward_pass(snapshot, fingerprints, result)
        self.reverse_pass(snapshot, result)

        result.finished_at = self.clock()
        logger.debug(
            f"Cycle finished in {time.monotonic() - start:.3f}s: "
            f"{result.added} added, {result.changed} changed, {result.deleted} deleted, "
            f"{len(result.read_failures)} unreadable, {len(result.write_failures)} failed writes"
        )

        if strict and result.write_failures:
            raise CycleError(
                f"{len(result.write_failures)} event(s) could not be recorded",
                result.write_failures,
            )
        return result
