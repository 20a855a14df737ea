"""Content fingerprinting for files."""

import hashlib
from pathlib import Path
from typing import Optional, Sequence, Tuple

from .models import Fingerprint


DEFAULT_ALGORITHMS: Tuple[str, ...] = ("sha256",)
# The MD5 + SHA-1 pair written by earlier diskwatcher databases.
LEGACY_ALGORITHMS: Tuple[str, ...] = ("md5", "sha1")

CHUNK_SIZE = 65536


def _new_hashers(algorithms: Sequence[str]) -> list:
    if not 1 <= len(algorithms) <= 2:
        raise ValueError(f"expected one or two hash algorithms, got {len(algorithms)}")
    return [hashlib.new(name) for name in algorithms]


def _to_fingerprint(hashers: list) -> Fingerprint:
    digests = [h.hexdigest() for h in hashers]
    return Fingerprint(*digests)


def compute_fingerprint(data: bytes, algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> Fingerprint:
    """
    Compute the fingerprint of a byte string.
    
    Args:
        data: Raw content
        algorithms: One or two hashlib algorithm names
        
    Returns:
        Fingerprint with one digest per algorithm
    """
    hashers = _new_hashers(algorithms)
    for hasher in hashers:
        hasher.update(data)
    return _to_fingerprint(hashers)


def empty_fingerprint(algorithms: Sequence[str] = DEFAULT_ALGORITHMS) -> Fingerprint:
    """Fingerprint of empty content, used for folders, deletions and unreadable files."""
    return compute_fingerprint(b"", algorithms)


def fingerprint_file(
    path: Path,
    algorithms: Sequence[str] = DEFAULT_ALGORITHMS,
) -> Tuple[Fingerprint, Optional[OSError]]:
    """
    Fingerprint a file's contents in chunks.
    
    A file that cannot be read is fingerprinted as empty content.
    
    Args:
        path: Path to the file
        algorithms: One or two hashlib algorithm names
        
    Returns:
        (fingerprint, error) where error is the OSError that made the file
        unreadable, or None
    """
    hashers = _new_hashers(algorithms)
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
                for hasher in hashers:
                    hasher.update(chunk)
    except OSError as e:
        return empty_fingerprint(algorithms), e
    return _to_fingerprint(hashers), None
