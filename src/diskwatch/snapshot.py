"""Point-in-time listing of the files and folders under a watched root."""

import logging
import os
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, FrozenSet, Optional, Tuple, Union

from watchdog.utils.dirsnapshot import DirectorySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Snapshot:
    """
    Files and folders observed under a root at one instant.
    
    Attributes:
        root: The watched root, as an absolute path string
        files: Sorted absolute paths of regular files
        folders: Sorted absolute paths of directories (the root included)
    """
    root: str
    files: Tuple[str, ...] = ()
    folders: Tuple[str, ...] = ()
    file_set: FrozenSet[str] = field(init=False, repr=False, compare=False)
    folder_set: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "file_set", frozenset(self.files))
        object.__setattr__(self, "folder_set", frozenset(self.folders))

    @property
    def is_empty(self) -> bool:
        return not self.files and not self.folders

    def __len__(self) -> int:
        return len(self.files) + len(self.folders)


def normalize_path(path: Union[str, Path]) -> str:
    """Absolute, normalised string form used as the history key."""
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def take_snapshot(
    root: Union[str, Path],
    follow_symlinks: bool = False,
    ignore: Optional[Callable[[Path], bool]] = None,
) -> Snapshot:
    """
    Walk the root and classify every entry as file or folder.
    
    Holds no state between calls. A root that is missing or cannot be read
    produces an empty snapshot rather than an error.
    
    Args:
        root: Directory (or single file) to walk
        follow_symlinks: Follow symbolic links instead of skipping them
        ignore: Predicate returning True for paths to leave out
        
    Returns:
        The snapshot
    """
    root_str = normalize_path(root)
    stat_fn = os.stat if follow_symlinks else os.lstat

    try:
        dir_snapshot = DirectorySnapshot(root_str, recursive=True, stat=stat_fn)
    except OSError as e:
        logger.warning(f"Cannot walk root '{root_str}': {e}")
        return Snapshot(root=root_str)

    files = []
    folders = []
    for path in dir_snapshot.paths:
        if ignore is not None and path != root_str and ignore(Path(path)):
            continue
        mode = dir_snapshot.stat_info(path).st_mode
        if stat.S_ISREG(mode):
            files.append(path)
        elif stat.S_ISDIR(mode):
            folders.append(path)

    return Snapshot(root=root_str, files=tuple(sorted(files)), folders=tuple(sorted(folders)))


def display_path(path: str) -> str:
    """Printable form of a path, escaping bytes that are not valid UTF-8."""
    return os.fsencode(path).decode("utf-8", "backslashreplace")
