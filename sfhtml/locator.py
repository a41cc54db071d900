"""Locating anchors (script blocks, declarations, elements) inside an HTML file."""

from __future__ import annotations

from dataclasses import dataclass, field

from sfhtml import header, js_scope

__all__ = [
    "AnchorNotFoundError",
    "AnchorMatch",
    "LocateResult",
    "AnchorListEntry",
    "locate_anchor",
    "list_anchors",
    "levenshtein_distance",
]


class AnchorNotFoundError(LookupError):
    """Raised when an anchor does not occur in the file."""

    def __init__(self, anchor: str, suggestions: list[str]) -> None:
        self.anchor = anchor
        self.suggestions = suggestions
        if suggestions:
            message = (
                f'Error: Anchor "{anchor}" not found. '
                f"Did you mean: {', '.join(suggestions)}?"
            )
        else:
            message = f'Error: Anchor "{anchor}" not found.'
        super().__init__(message)


@dataclass
class AnchorMatch:
    line: int  # 1-based
    end_line: int | None  # 1-based
    context_preview: str


@dataclass
class LocateResult:
    anchor: str
    matches: list[AnchorMatch] = field(default_factory=list)


@dataclass
class AnchorListEntry:
    name: str
    line: int  # 1-based
    anchor_type: str
    in_header: bool


def _split_lines(text: str) -> list[str]:
    if not text:
        return []
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def _preview(lines: list[str], idx: int) -> str:
    return "\n".join(lines[idx:idx + 3])


def locate_anchor(content: str, anchor: str, context_lines: int = 0) -> LocateResult:
    """Find every line holding ``anchor``, preferring matches inside script blocks."""
    lines = _split_lines(content)
    matches: list[AnchorMatch] = []

    for region_start, region_end in header.find_script_regions(lines):
        for abs_line in range(region_start, region_end):
            if anchor not in lines[abs_line]:
                continue
            scope_end = js_scope.detect_scope_end(lines, abs_line)
            matches.append(
                AnchorMatch(
                    line=abs_line + 1,
                    end_line=None if scope_end is None else scope_end + 1,
                    context_preview=_preview(lines, abs_line),
                )
            )

    if not matches:
        matches = [
            AnchorMatch(line=idx + 1, end_line=None, context_preview=_preview(lines, idx))
            for idx, line in enumerate(lines)
            if anchor in line
        ]

    if not matches:
        raise AnchorNotFoundError(anchor, _find_similar_anchors(lines, anchor))

    if context_lines > 0:
        for match in matches:
            start = max(match.line - 1 - context_lines, 0)
            last = match.end_line if match.end_line is not None else match.line
            end = min(last + context_lines, len(lines))
            match.context_preview = "\n".join(lines[start:end])

    return LocateResult(anchor=anchor, matches=matches)


def _find_similar_anchors(lines: list[str], query: str) -> list[str]:
    candidates: list[str] = []
    for region in header.find_script_regions_full(lines):
        candidates.append(region.tag_label)
        region_lines = lines[region.content_start:region.content_end]
        candidates.extend(name for name, _, _ in js_scope.extract_js_declarations(region_lines))
    candidates.extend(label for _, _, label in header.find_html_id_elements(lines))

    query_lower = query.lower()
    similar: list[str] = []
    for candidate in candidates:
        lower = candidate.lower()
        if (
            query_lower in lower
            or lower in query_lower
            or levenshtein_distance(lower, query_lower) <= 5
        ):
            similar.append(candidate)
            if len(similar) == 5:
                break

    deduped: list[str] = []
    for candidate in similar:
        if not deduped or deduped[-1] != candidate:
            deduped.append(candidate)
    return deduped


def levenshtein_distance(a: str, b: str) -> int:
    """Return the edit distance between two strings."""
    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(previous[j] + 1, current[j - 1] + 1, previous[j - 1] + cost))
        previous = current
    return previous[-1]


def list_anchors(content: str) -> list[AnchorListEntry]:
    """List script blocks and id-carrying elements, noting which are in the header."""
    lines = _split_lines(content)

    try:
        info = header.extract_header(content)
    except header.HeaderError:
        header_anchors: set[str] = set()
    else:
        section5 = next((s for s in info.sections if s.number == 5), None)
        header_anchors = (
            {a.name for a in header.parse_anchor_list(section5.content)} if section5 else set()
        )

    entries = [
        AnchorListEntry(
            name=region.tag_label,
            line=region.tag_line + 1,
            anchor_type="script-block",
            in_header=region.tag_label in header_anchors,
        )
        for region in header.find_script_regions_full(lines)
    ]
    entries.extend(
        AnchorListEntry(
            name=label,
            line=line_idx + 1,
            anchor_type="html-element",
            in_header=label in header_anchors,
        )
        for _, line_idx, label in header.find_html_id_elements(lines)
    )
    return entries