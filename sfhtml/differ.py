"""Unified diff generation and parsing."""

from __future__ import annotations

import difflib
import enum
from dataclasses import dataclass, field

__all__ = [
    "DiffError",
    "DiffLineKind",
    "DiffLine",
    "DiffHunk",
    "generate_diff",
    "parse_unified_diff",
]

_NO_NEWLINE_MARKER = "\\ No newline at end of file"


class DiffError(ValueError):
    """Raised when a unified diff cannot be parsed."""


class DiffLineKind(enum.Enum):
    CONTEXT = "context"
    REMOVE = "remove"
    ADD = "add"


@dataclass(frozen=True)
class DiffLine:
    kind: DiffLineKind
    text: str


@dataclass
class DiffHunk:
    old_start: int
    old_count: int
    new_start: int
    new_count: int
    lines: list[DiffLine] = field(default_factory=list)


def _lines_keep_ends(text: str) -> list[str]:
    """Split on newlines only, keeping the line terminators."""
    parts = text.split("\n")
    result = [part + "\n" for part in parts[:-1]]
    if parts[-1]:
        result.append(parts[-1])
    return result


def _plain_lines(text: str) -> list[str]:
    """Split like a line iterator: on '\\n', dropping a trailing '\\r'."""
    if not text:
        return []
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def generate_diff(
    old_text: str,
    new_text: str,
    old_name: str,
    new_name: str,
    context_lines: int,
) -> str:
    """Return a unified diff from ``old_text`` to ``new_text``."""
    diff = difflib.unified_diff(
        _lines_keep_ends(old_text),
        _lines_keep_ends(new_text),
        fromfile=f"a/{old_name}",
        tofile=f"b/{new_name}",
        n=context_lines,
    )
    out = []
    for line in diff:
        if line.endswith("\n"):
            out.append(line)
        else:
            out.append(f"{line}\n{_NO_NEWLINE_MARKER}\n")
    return "".join(out)


def _parse_number(text: str) -> int:
    digits = text[1:] if text.startswith("+") else text
    if not digits or not (digits.isascii() and digits.isdigit()):
        raise DiffError(f"Error: Invalid number in hunk header: {text!r}")
    return int(digits)


def _parse_range(text: str) -> tuple[int, int]:
    start, comma, count = text.partition(",")
    if comma:
        return _parse_number(start), _parse_number(count)
    return _parse_number(start), 1


def _parse_hunk_header(line: str) -> DiffHunk:
    parts = line.split()
    if len(parts) < 4 or parts[0] != "@@":
        raise DiffError(f"Error: Invalid hunk header: {line}")
    old_start, old_count = _parse_range(parts[1].lstrip("-"))
    new_start, new_count = _parse_range(parts[2].lstrip("+"))
    return DiffHunk(old_start, old_count, new_start, new_count)


def parse_unified_diff(diff_text: str) -> list[DiffHunk]:
    """Parse unified diff text into hunks; raise DiffError if none are found."""
    hunks: list[DiffHunk] = []
    current: DiffHunk | None = None
    parsing_started = False

    for line in _plain_lines(diff_text):
        if line.startswith("--- ") or line.startswith("+++ "):
            parsing_started = True
            continue
        if line.startswith("@@ "):
            if current is not None:
                hunks.append(current)
            current = _parse_hunk_header(line)
            continue
        if current is None:
            continue
        if line.startswith("-"):
            current.lines.append(DiffLine(DiffLineKind.REMOVE, line[1:]))
        elif line.startswith("+"):
            current.lines.append(DiffLine(DiffLineKind.ADD, line[1:]))
        elif line.startswith(" "):
            current.lines.append(DiffLine(DiffLineKind.CONTEXT, line[1:]))
        elif not line and parsing_started:
            current.lines.append(DiffLine(DiffLineKind.CONTEXT, ""))

    if current is not None:
        hunks.append(current)

    if not hunks:
        raise DiffError("Error: Invalid unified diff format — no hunks found")
    return hunks