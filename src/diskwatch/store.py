"""SQLite-backed append-only history of path events."""

import logging
import os
import sqlite3
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import List, Optional

from .exceptions import StoreError, StoreUnavailableError, StoreWriteError
from .models import Entry, EntryClass, EventKind, Fingerprint, local_now

logger = logging.getLogger(__name__)


_COLUMNS = "seq, path, fingerprint_primary, fingerprint_secondary, event_kind, observed_at, tz_offset, class"
_LATEST_ORDER = "observed_at DESC, seq DESC"


def _encode_path(path: str) -> bytes:
    # Keyed by on-disk bytes so names that are not valid UTF-8 round-trip.
    try:
        return os.fsencode(path)
    except UnicodeError as e:
        raise StoreError(f"Cannot encode path {path!r}: {e}") from e


class HistoryStore:
    """
    Append-only log of Entry records with "latest per path" queries.
    
    Features:
    - Entries are never updated or deleted individually
    - Current state of a path is its entry with the greatest observed_at,
      ties broken by insertion sequence
    - Thread-safe appends via a write lock and thread-local connections
    - Schema is created on first connect
    """

    def __init__(self, db_path: Path, table_name: str = "history"):
        """
        Open (or create) the history store.
        
        Args:
            db_path: Path to the SQLite database file
            table_name: Name of the history table
            
        Raises:
            StoreUnavailableError: If the database cannot be opened or created
        """
        self.db_path = Path(db_path)
        self.table_name = table_name
        self._lock = threading.Lock()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False

        try:
            self._init_db()
        except sqlite3.Error as e:
            self.close()
            raise StoreUnavailableError(f"Cannot open history store {self.db_path}: {e}") from e

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        if self._closed:
            raise StoreError("History store is closed")

        if getattr(self._local, "conn", None) is None:
            conn = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                isolation_level=None,  # Autocommit mode
            )
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return self._local.conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        conn = self._get_connection()
        conn.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table_name} (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                path BLOB NOT NULL,
                fingerprint_primary TEXT NOT NULL,
                fingerprint_secondary TEXT NOT NULL DEFAULT '',
                event_kind TEXT NOT NULL,
                observed_at REAL NOT NULL,
                tz_offset INTEGER,
                class TEXT NOT NULL
            )
        """)
        conn.execute(f"""
            CREATE INDEX IF NOT EXISTS idx_{self.table_name}_path
            ON {self.table_name}(path, observed_at, seq)
        """)

    @staticmethod
    def _row_to_entry(row) -> Entry:
        seq, path, primary, secondary, kind, observed_at, tz_offset, entry_class = row
        tz = timezone(timedelta(seconds=tz_offset)) if tz_offset is not None else None
        observed = datetime.fromtimestamp(observed_at, tz)
        return Entry(
            path=os.fsdecode(path),
            entry_class=EntryClass(entry_class),
            fingerprint=Fingerprint(primary, secondary or ""),
            event_kind=EventKind(kind),
            observed_at=observed,
            seq=seq,
        )

    def append(self, entry: Entry) -> Entry:
        """
        Durably record one event.
        
        Args:
            entry: The entry to record; any seq it carries is ignored
            
        Returns:
            The entry with its store-assigned seq
            
        Raises:
            StoreWriteError: If the insert fails
        """
        observed = entry.observed_at
        offset = observed.utcoffset()
        params = (
            _encode_path(entry.path),
            entry.fingerprint.primary,
            entry.fingerprint.secondary,
            entry.event_kind.value,
            observed.timestamp(),
            int(offset.total_seconds()) if offset is not None else None,
            entry.entry_class.value,
        )

        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(
                    f"INSERT INTO {self.table_name} "
                    "(path, fingerprint_primary, fingerprint_secondary, event_kind, observed_at, tz_offset, class) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    params,
                )
            except (sqlite3.Error, UnicodeError) as e:
                raise StoreWriteError(f"Failed to append {entry.event_kind.value} for {entry.path}: {e}") from e
            return entry.with_seq(cursor.lastrowid)

    def record(
        self,
        path: str,
        entry_class: EntryClass,
        fingerprint: Fingerprint,
        event_kind: EventKind,
        observed_at: Optional[datetime] = None,
    ) -> Entry:
        """Build an entry observed now (unless given) and append it."""
        entry = Entry(
            path=path,
            entry_class=entry_class,
            fingerprint=fingerprint,
            event_kind=event_kind,
            observed_at=observed_at or local_now(),
        )
        return self.append(entry)

    def _query(self, sql: str, params: tuple = ()) -> List[Entry]:
        conn = self._get_connection()
        try:
            rows = conn.execute(sql, params).fetchall()
        except (sqlite3.Error, UnicodeError) as e:
            raise StoreError(f"History query failed: {e}") from e
        return [self._row_to_entry(row) for row in rows]

    def latest(self, path: str) -> Optional[Entry]:
        """
        Get the current-state entry for a path.
        
        Args:
            path: Path to look up
            
        Returns:
            The most recently observed entry, or None if the path is unknown
        """
        entries = self._query(
            f"SELECT {_COLUMNS} FROM {self.table_name} WHERE path = ? ORDER BY {_LATEST_ORDER} LIMIT 1",
            (_encode_path(path),),
        )
        return entries[0] if entries else None

    def latest_per_path(self) -> List[Entry]:
        """
        Get the current-state entry of every path ever observed.
        
        Returns:
            One entry per distinct path, most recently observed first
        """
        return self._query(f"""
            SELECT {_COLUMNS} FROM {self.table_name} AS h
            WHERE h.seq = (
                SELECT seq FROM {self.table_name}
                WHERE path = h.path
                ORDER BY {_LATEST_ORDER}
                LIMIT 1
            )
            ORDER BY {_LATEST_ORDER}
        """)

    def all(self) -> List[Entry]:
        """
        Get every entry ever appended.
        
        Returns:
            All entries, oldest first
        """
        return self._query(
            f"SELECT {_COLUMNS} FROM {self.table_name} ORDER BY observed_at ASC, seq ASC"
        )

    def history(self, path: str) -> List[Entry]:
        """
        Get the audit trail of a single path.
        
        Args:
            path: Path to look up
            
        Returns:
            The path's entries, oldest first
        """
        return self._query(
            f"SELECT {_COLUMNS} FROM {self.table_name} WHERE path = ? ORDER BY observed_at ASC, seq ASC",
            (_encode_path(path),),
        )

    def count(self) -> int:
        """
        Get the number of entries in the history.
        
        Returns:
            Number of entries
        """
        conn = self._get_connection()
        cursor = conn.execute(f"SELECT COUNT(*) FROM {self.table_name}")
        return cursor.fetchone()[0]

    def reset(self) -> int:
        """
        Destroy all history.
        
        Returns:
            Number of entries removed
        """
        with self._lock:
            conn = self._get_connection()
            try:
                cursor = conn.execute(f"DELETE FROM {self.table_name}")
            except sqlite3.Error as e:
                raise StoreError(f"Failed to reset history: {e}") from e
            removed = cursor.rowcount
        logger.info(f"History reset, {removed} entries removed")
        return removed

    def close(self) -> None:
        """Close the store and release resources."""
        if self._closed:
            return

        self._closed = True

        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
