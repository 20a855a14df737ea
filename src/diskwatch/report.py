"""Human- and machine-readable dumps of the history."""

import json
from typing import Iterable

from .models import Entry
from .snapshot import display_path


SEPARATOR = "==="


def format_entry(entry: Entry) -> str:
    """Render one entry as a block of `key: value` lines."""
    lines = [f"path: {display_path(entry.path)}"]
    lines.append(f"fingerprint: {entry.fingerprint.primary}")
    if entry.fingerprint.secondary:
        lines.append(f"fingerprint2: {entry.fingerprint.secondary}")
    lines.append(f"event: {entry.event_kind.value}")
    lines.append(f"class: {entry.entry_class.value}")
    lines.append(f"time: {entry.observed_at.strftime('%Y-%m-%d %H:%M:%S')}")
    return "\n".join(lines)


def format_report(entries: Iterable[Entry], fmt: str = "text") -> str:
    """
    Render a sequence of entries.
    
    Args:
        entries: Entries to render, in the order given
        fmt: "text" for separator-delimited blocks, "json" for a JSON list
        
    Returns:
        The rendered report; empty text when there are no entries
    """
    entries = list(entries)

    if fmt == "json":
        return json.dumps([e.to_dict() for e in entries], indent=2)
    if fmt != "text":
        raise ValueError(f"unknown report format: {fmt}")

    if not entries:
        return ""
    blocks = [SEPARATOR]
    for entry in entries:
        blocks.append(format_entry(entry))
        blocks.append(SEPARATOR)
    return "\n".join(blocks)
