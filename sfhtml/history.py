"""On-disk history of applied diffs, kept for rollback."""

from __future__ import annotations

import json
import os
import time
from dataclasses import asdict, dataclass, fields
from datetime import datetime, timezone
from pathlib import Path

from sfhtml.differ import generate_diff

__all__ = [
    "MAX_CACHE_BYTES",
    "HistoryError",
    "HistoryEntry",
    "HistorySummary",
    "cache_dir",
    "save_entry",
    "create_entry",
    "list_entries",
    "show_entry",
    "delete_entry",
    "cache_size",
    "clean_cache",
    "format_timestamp",
]

MAX_CACHE_BYTES = 10 * 1024 * 1024


class HistoryError(Exception):
    """Raised when the history cache cannot be used or an entry is missing."""


@dataclass
class HistoryEntry:
    id: str
    file_path: str
    timestamp: int
    timestamp_human: str
    diff_text: str
    reverse_diff: str
    hunks_applied: int
    lines_added: int
    lines_removed: int
    description: str

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> HistoryEntry:
        data = json.loads(text)
        if not isinstance(data, dict):
            raise ValueError("history entry is not an object")
        return cls(**{f.name: data[f.name] for f in fields(cls)})


@dataclass
class HistorySummary:
    id: str
    file_path: str
    timestamp_human: str
    hunks_applied: int
    lines_added: int
    lines_removed: int
    size_bytes: int
    description: str


def cache_dir() -> Path:
    """Return the history directory (``$SFHTML_CACHE_DIR`` or ``~/.sfhtml/history``)."""
    override = os.environ.get("SFHTML_CACHE_DIR")
    if override is not None:
        return Path(override)
    home = os.environ.get("HOME") or os.environ.get("USERPROFILE")
    if home is None:
        raise HistoryError("Cannot determine home directory")
    return Path(home) / ".sfhtml" / "history"


def _entry_path(entry_id: str) -> Path:
    return cache_dir() / f"{entry_id}.json"


def _json_files(directory: Path):
    return (p for p in directory.iterdir() if p.suffix == ".json")


def save_entry(entry: HistoryEntry) -> Path:
    """Store an entry and trim the cache to its size limit."""
    directory = cache_dir()
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{entry.id}.json"
    path.write_bytes(entry.to_json().encode("utf-8"))
    _enforce_cache_limit(directory)
    return path


def _sanitize_name(name: str) -> str:
    return "".join(c if c.isalnum() or c in ".-_" else "_" for c in name)


def create_entry(
    file_path,
    original_content: str,
    new_content: str,
    diff_text: str,
    hunks_applied: int,
    lines_added: int,
    lines_removed: int,
) -> HistoryEntry:
    """Build an entry for an applied diff, including the reverse diff."""
    now_ns = time.time_ns()
    secs, nanos = divmod(now_ns, 1_000_000_000)
    file_stem = _sanitize_name(Path(str(file_path)).name or "unknown")

    reverse_diff = generate_diff(
        new_content,
        original_content,
        f"b/{file_stem}",
        f"a/{file_stem}",
        3,
    )
    return HistoryEntry(
        id=f"{secs}_{nanos}_{file_stem}",
        file_path=str(file_path),
        timestamp=secs,
        timestamp_human=format_timestamp(secs),
        diff_text=diff_text,
        reverse_diff=reverse_diff,
        hunks_applied=hunks_applied,
        lines_added=lines_added,
        lines_removed=lines_removed,
        description=f"{file_stem}: +{lines_added} -{lines_removed} ({hunks_applied} hunks)",
    )


def list_entries(filter_file: str | None = None) -> list[HistorySummary]:
    """Summarise stored entries, newest first, optionally filtered by file path."""
    directory = cache_dir()
    if not directory.exists():
        return []

    summaries: list[HistorySummary] = []
    for path in _json_files(directory):
        try:
            record = HistoryEntry.from_json(path.read_bytes().decode("utf-8"))
        except (OSError, ValueError, KeyError, TypeError):
            continue
        if filter_file is not None and filter_file not in record.file_path:
            continue
        try:
            size = path.stat().st_size
        except OSError:
            size = 0
        summaries.append(
            HistorySummary(
                id=record.id,
                file_path=record.file_path,
                timestamp_human=record.timestamp_human,
                hunks_applied=record.hunks_applied,
                lines_added=record.lines_added,
                lines_removed=record.lines_removed,
                size_bytes=size,
                description=record.description,
            )
        )

    summaries.sort(key=lambda s: s.id, reverse=True)
    return summaries


def show_entry(entry_id: str) -> HistoryEntry:
    """Load one entry by id."""
    path = _entry_path(entry_id)
    if not path.exists():
        raise HistoryError(f"History entry '{entry_id}' not found")
    return HistoryEntry.from_json(path.read_bytes().decode("utf-8"))


def delete_entry(entry_id: str) -> int:
    """Remove one entry and return the number of bytes freed."""
    path = _entry_path(entry_id)
    if not path.exists():
        raise HistoryError(f"History entry '{entry_id}' not found")
    size = path.stat().st_size
    path.unlink()
    return size


def cache_size() -> int:
    """Return the total size in bytes of everything in the cache directory."""
    directory = cache_dir()
    if not directory.exists():
        return 0
    return sum(p.stat().st_size for p in directory.iterdir())


def _entry_timestamp(path: Path) -> int:
    head = path.stem.split("_", 1)[0]
    return int(head) if head.isascii() and head.isdigit() else 0


def _enforce_cache_limit(directory: Path) -> None:
    """Delete the oldest entries until the cache fits within MAX_CACHE_BYTES."""
    entries = [(p, p.stat().st_size, _entry_timestamp(p)) for p in _json_files(directory)]
    total = sum(size for _, size, _ in entries)
    if total <= MAX_CACHE_BYTES:
        return
    entries.sort(key=lambda e: e[2])
    for path, size, _ in entries:
        if total <= MAX_CACHE_BYTES:
            break
        path.unlink()
        total -= size


def clean_cache() -> tuple[int, int]:
    """Remove all entries; return (entries removed, bytes freed)."""
    directory = cache_dir()
    if not directory.exists():
        return 0, 0
    removed = 0
    freed = 0
    for path in list(_json_files(directory)):
        size = path.stat().st_size
        path.unlink()
        removed += 1
        freed += size
    return removed, freed


def format_timestamp(secs: int) -> str:
    """Format Unix seconds as ``YYYY-MM-DD HH:MM:SS UTC``."""
    moment = datetime.fromtimestamp(secs, tz=timezone.utc)
    return (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d} "
        f"{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d} UTC"
    )