"""Applying unified diffs to files, with fuzzy matching, validation and history."""

from __future__ import annotations

import enum
import os
import shutil
import sys
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path

from sfhtml import header, history, locator
from sfhtml.differ import DiffLineKind, parse_unified_diff

__all__ = [
    "ContextMismatchError",
    "ApplyStatus",
    "ValidationIssue",
    "ValidationResult",
    "HunkDetail",
    "ApplyResult",
    "apply_diff",
    "format_apply_result",
    "rollback",
]

_PREVIEW_ROWS = 5
_DISPLAY_WIDTH = 25
_DISPLAY_CUT = 22


class ContextMismatchError(ValueError):
    """Raised when a hunk's context cannot be found in the target file."""

    def __init__(self, message: str, hunk_index: int, stated_line: int) -> None:
        super().__init__(message)
        self.hunk_index = hunk_index
        self.stated_line = stated_line


class ApplyStatus(enum.Enum):
    SUCCESS = "success"
    SUCCESS_WITH_WARNINGS = "success_with_warnings"


@dataclass
class ValidationIssue:
    severity: str
    line: int
    message: str
    locate_hint: str | None = None


@dataclass
class ValidationResult:
    status: ApplyStatus
    warnings: list[ValidationIssue] = field(default_factory=list)


@dataclass
class HunkDetail:
    hunk_index: int  # 1-based
    stated_line: int
    matched_line: int  # 1-based
    fuzz_offset: int
    context_search: bool  # matched by a whole-file search outside the fuzz range


@dataclass
class ApplyResult:
    hunks_applied: int
    lines_removed: int
    lines_added: int
    new_size: int
    hunk_details: list[HunkDetail]
    validation: ValidationResult | None
    history_id: str | None


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def _matches_at(lines: list[str], context: list[str], pos: int) -> bool:
    if pos + len(context) > len(lines):
        return False
    return lines[pos:pos + len(context)] == context


def _find_context_match(
    lines: list[str], context: list[str], expected: int, fuzz: int
) -> int | None:
    if not context:
        return min(expected, len(lines))
    if _matches_at(lines, context, expected):
        return expected
    for delta in range(1, fuzz + 1):
        if expected + delta < len(lines) and _matches_at(lines, context, expected + delta):
            return expected + delta
        if expected >= delta and _matches_at(lines, context, expected - delta):
            return expected - delta

    best: int | None = None
    best_dist: int | None = None
    for pos in range(len(lines)):
        dist = abs(pos - expected)
        if dist <= fuzz:
            continue
        if _matches_at(lines, context, pos) and (best_dist is None or dist < best_dist):
            best, best_dist = pos, dist
    return best


def _shorten(text: str) -> str:
    return f"{text[:_DISPLAY_CUT]}..." if len(text) > _DISPLAY_WIDTH else text


def _mismatch_message(
    file_path: Path,
    hunk_number: int,
    stated_line: int,
    context: list[str],
    lines: list[str],
    search_start: int,
) -> str:
    actual_start = min(search_start, max(len(lines) - 1, 0))
    actual_end = min(actual_start + len(context), len(lines))
    actual = lines[actual_start:actual_end]

    parts = [
        f"Error: Hunk {hunk_number} context mismatch at line {stated_line}.\n\n",
        "  Expected (from diff):     Actual (in file):\n",
        "  ─────────────────────     ─────────────────\n",
    ]
    rows = min(max(len(context), len(actual)), _PREVIEW_ROWS)
    for i in range(rows):
        expected = context[i] if i < len(context) else ""
        got = actual[i] if i < len(actual) else ""
        parts.append(f"  {_shorten(expected):<28} {_shorten(got)}\n")
    parts.append(
        "\n  The file may have been modified since the diff was generated.\n"
        "  Re-read the target region with "
        f"`sfhtml read {file_path} {max(stated_line - 5, 0)} {stated_line + 10}` "
        "and regenerate the diff."
    )
    return "".join(parts)


def _atomic_write(path: Path, data: bytes) -> None:
    directory = path.parent if str(path.parent) else Path(".")
    fd, tmp_name = tempfile.mkstemp(dir=directory)
    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def apply_diff(
    file_path,
    diff_text: str,
    fuzz: int = 3,
    dry_run: bool = False,
    backup: bool = False,
    force: bool = False,
) -> ApplyResult:
    """Apply a unified diff to ``file_path`` and record it in the history cache."""
    path = Path(file_path)
    content = path.read_bytes().decode("utf-8")
    lines = _split_lines(content)
    hunks = parse_unified_diff(diff_text)

    total_removed = 0
    total_added = 0
    offset = 0
    details: list[HunkDetail] = []

    for number, hunk in enumerate(hunks, start=1):
        stated_line = hunk.old_start
        search_start = max(stated_line - 1 + offset, 0)
        context = [
            dl.text for dl in hunk.lines
            if dl.kind in (DiffLineKind.CONTEXT, DiffLineKind.REMOVE)
        ]

        pos = _find_context_match(lines, context, search_start, fuzz)
        if pos is None:
            raise ContextMismatchError(
                _mismatch_message(path, number, stated_line, context, lines, search_start),
                number,
                stated_line,
            )

        fuzz_offset = pos - search_start
        details.append(
            HunkDetail(
                hunk_index=number,
                stated_line=stated_line,
                matched_line=pos + 1,
                fuzz_offset=fuzz_offset,
                context_search=abs(fuzz_offset) > fuzz,
            )
        )

        replacement: list[str] = []
        src = pos
        removed = added = 0
        for dl in hunk.lines:
            if dl.kind is DiffLineKind.CONTEXT:
                replacement.append(lines[src])
                src += 1
            elif dl.kind is DiffLineKind.REMOVE:
                src += 1
                removed += 1
            else:
                replacement.append(dl.text)
                added += 1
        lines = lines[:pos] + replacement + lines[src:]

        offset += added - removed
        total_removed += removed
        total_added += added

    new_content = "\n".join(lines)
    encoded = new_content.encode("utf-8")
    validation = _run_post_apply_validation(new_content)

    history_id = None
    if not dry_run:
        if backup:
            shutil.copyfile(path, f"{path}.bak.{int(time.time())}")
        _atomic_write(path, encoded)

        entry = history.create_entry(
            path, content, new_content, diff_text, len(details), total_added, total_removed
        )
        history_id = entry.id
        try:
            history.save_entry(entry)
        except (OSError, history.HistoryError) as exc:
            print(f"Warning: failed to save diff history: {exc}", file=sys.stderr)

    return ApplyResult(
        hunks_applied=len(details),
        lines_removed=total_removed,
        lines_added=total_added,
        new_size=len(encoded),
        hunk_details=details,
        validation=validation,
        history_id=history_id,
    )


def _find_line_containing(content: str, needle: str) -> int | None:
    for idx, line in enumerate(_split_lines(content), start=1):
        if needle in line:
            return idx
    return None


def _run_post_apply_validation(content: str) -> ValidationResult:
    """Check header anchors against the code; every finding is a warning."""
    warnings: list[ValidationIssue] = []
    try:
        header.extract_header(content)
    except header.HeaderError:
        has_header = False
    else:
        has_header = True

    if has_header:
        section5 = None
        try:
            section5 = header.extract_section(content, 5)
        except header.HeaderError:
            pass
        header_names = (
            [a.name for a in header.parse_anchor_list(section5.content)] if section5 else []
        )
        code_anchors = locator.list_anchors(content)
        code_names = {a.name for a in code_anchors}

        for name in header_names:
            if name not in code_names:
                warnings.append(
                    ValidationIssue(
                        severity="warning",
                        line=_find_line_containing(content, name) or 0,
                        message=(
                            f'Header anchor "{name}" not found in code — '
                            "run `sfhtml header-rebuild` to fix"
                        ),
                        locate_hint=name,
                    )
                )
        for anchor in code_anchors:
            if not anchor.in_header:
                warnings.append(
                    ValidationIssue(
                        severity="warning",
                        line=anchor.line,
                        message=(
                            f'Code block "{anchor.name}" not listed in header — '
                            "run `sfhtml header-rebuild` to update"
                        ),
                        locate_hint=anchor.name,
                    )
                )

    status = ApplyStatus.SUCCESS_WITH_WARNINGS if warnings else ApplyStatus.SUCCESS
    return ValidationResult(status=status, warnings=warnings)


def format_apply_result(result: ApplyResult, file_name: str) -> str:
    """Render an apply result as human-readable text."""
    plural = "s" if result.hunks_applied != 1 else ""
    out = [f"Applied {result.hunks_applied} hunk{plural} to {file_name}\n"]

    for detail in result.hunk_details:
        if detail.fuzz_offset == 0:
            how = "(exact)"
        elif detail.context_search:
            how = f"(context-search, offset {detail.fuzz_offset:+d})"
        else:
            how = f"(fuzz {detail.fuzz_offset:+d})"
        out.append(
            f"  Hunk {detail.hunk_index}: line {detail.stated_line} → "
            f"matched at {detail.matched_line} {how}\n"
        )

    out.append(
        f"  Lines removed: {result.lines_removed}, lines added: {result.lines_added}, "
        f"new size: {result.new_size} bytes\n"
    )
    if result.history_id is not None:
        out.append(
            f"  History saved: {result.history_id} "
            "(use `sfhtml history rollback` to undo)\n"
        )

    if result.validation is not None:
        out.append("\n=== Post-Apply Validation ===\n")
        if result.validation.status is ApplyStatus.SUCCESS:
            out.append("✓ Edit success — no issues detected.\n")
        else:
            out.append("✓ Edit success — but warnings detected:\n")
        for warning in result.validation.warnings:
            hint = f' → locate "{warning.locate_hint}"' if warning.locate_hint else ""
            out.append(f"  ⚠ [warning] line {warning.line}: {warning.message}{hint}\n")

    return "".join(out)


def rollback(file_path, entry_id: str, fuzz: int = 3, dry_run: bool = False) -> str:
    """Undo a recorded edit by applying its reverse diff (with a backup)."""
    entry = history.show_entry(entry_id)
    if dry_run:
        return entry.reverse_diff
    result = apply_diff(file_path, entry.reverse_diff, fuzz, False, True, True)
    return (
        f"Rollback applied: {result.hunks_applied} hunks, "
        f"+{result.lines_added} -{result.lines_removed} lines. Backup created."
    )