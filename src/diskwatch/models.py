"""Data models for the diskwatch package."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional


class EventKind(Enum):
    """Kinds of state transition recorded in the history."""
    ADDED = "Added"
    CHANGED = "Changed"
    DELETED = "Deleted"


class EntryClass(Enum):
    """Classes of filesystem object tracked by the history."""
    FILE = "File"
    FOLDER = "Folder"


@dataclass(frozen=True)
class Fingerprint:
    """
    Content identifier for a file.
    
    Attributes:
        primary: Hex digest of the first hash algorithm
        secondary: Hex digest of the second algorithm, empty when only one is used
    """
    primary: str
    secondary: str = ""

    def __str__(self) -> str:
        if self.secondary:
            return f"{self.primary}:{self.secondary}"
        return self.primary


def local_now() -> datetime:
    """Current wall-clock time in the local timezone."""
    return datetime.now().astimezone()


@dataclass(frozen=True)
class Entry:
    """
    One immutable record of a detected state transition.
    
    Attributes:
        path: Absolute, normalised path of the filesystem object
        entry_class: Whether the path is a file or a folder
        fingerprint: Content identifier (empty-input sentinel for folders and deletions)
        event_kind: The transition that was observed
        observed_at: When the transition was observed (timezone-aware)
        seq: Insertion sequence assigned by the store, None before append
    """
    path: str
    entry_class: EntryClass
    fingerprint: Fingerprint
    event_kind: EventKind
    observed_at: datetime = field(default_factory=local_now)
    seq: Optional[int] = None

    def __post_init__(self):
        if not self.path:
            raise ValueError("path must not be empty")
        if self.observed_at.tzinfo is None:
            object.__setattr__(self, "observed_at", self.observed_at.astimezone())

    @property
    def is_deleted(self) -> bool:
        return self.event_kind is EventKind.DELETED

    @property
    def is_file(self) -> bool:
        return self.entry_class is EntryClass.FILE

    @property
    def is_folder(self) -> bool:
        return self.entry_class is EntryClass.FOLDER

    def with_seq(self, seq: int) -> "Entry":
        """Return a copy carrying the store-assigned sequence number."""
        return replace(self, seq=seq)

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "seq": self.seq,
            "path": self.path,
            "class": self.entry_class.value,
            "fingerprint_primary": self.fingerprint.primary,
            "fingerprint_secondary": self.fingerprint.secondary,
            "event_kind": self.event_kind.value,
            "observed_at": self.observed_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Entry":
        """Create from dictionary."""
        return cls(
            path=data["path"],
            entry_class=EntryClass(data["class"]),
            fingerprint=Fingerprint(
                data["fingerprint_primary"],
                data.get("fingerprint_secondary", ""),
            ),
            event_kind=EventKind(data["event_kind"]),
            observed_at=datetime.fromisoformat(data["observed_at"]),
            seq=data.get("seq"),
        )
