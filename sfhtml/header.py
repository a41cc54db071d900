"""Reading, generating and rebuilding the AI-SKILL-HEADER block of an HTML file."""

from __future__ import annotations

from dataclasses import dataclass, field

from sfhtml import js_scope

__all__ = [
    "HEADER_START",
    "HEADER_END",
    "HeaderError",
    "ScriptRegion",
    "HeaderSection",
    "HeaderQuality",
    "HeaderInfo",
    "AnchorEntry",
    "extract_header",
    "extract_section",
    "parse_anchor_list",
    "parse_anchor_list_with_issues",
    "rebuild_header",
    "generate_init_header",
    "find_script_regions",
    "find_script_regions_full",
    "find_html_id_elements",
]

HEADER_START = "<!-- AI-SKILL-HEADER START"
HEADER_END = "AI-SKILL-HEADER END -->"

_INIT_HEADER_TEMPLATE = """<!-- AI-SKILL-HEADER START
# {app_name} — (feature summary)

## 1. Overview
(App description, deployment method)

## 2. Public JavaScript API
(Functions exposed on window, parameters, return values, side effects)

## 3. Automation Example
(Puppeteer / Playwright examples)

## 4. Conventions
(Units, angle formats, state management rules)

## 5. Key Internal Modules

{section5}
    AI-SKILL-HEADER END -->"""

_DECL_PREFIXES = ("function ", "class ", "const ", "let ", "var ")


class HeaderError(ValueError):
    """Raised when the header or a requested section is missing."""


@dataclass
class ScriptRegion:
    """A ``<script>`` block; all line numbers are 0-based."""

    tag_line: int
    content_start: int
    content_end: int  # exclusive
    close_line: int
    tag_label: str


@dataclass
class HeaderSection:
    number: int
    title: str
    content: str


@dataclass
class HeaderQuality:
    completeness: float
    stale_anchors: int
    missing_anchors: int
    section_5_coverage: str


@dataclass
class HeaderInfo:
    full_markdown: str
    title_line: str | None
    app_name: str | None
    summary: str | None
    sections: list[HeaderSection]
    start_line: int  # 1-based line of the start marker
    end_line: int  # 1-based line of the end marker
    header_quality: HeaderQuality | None = field(default=None)


@dataclass
class AnchorEntry:
    name: str
    purpose: str


def _split_lines(text: str) -> list[str]:
    """Split on '\\n', dropping a trailing '\\r' and a final empty line."""
    if not text:
        return []
    parts = text.split("\n")
    if parts[-1] == "":
        parts.pop()
    return [part[:-1] if part.endswith("\r") else part for part in parts]


def _parse_section_number(text: str) -> int | None:
    digits = text[1:] if text.startswith("+") else text
    if digits and digits.isascii() and digits.isdigit():
        return int(digits)
    return None


def extract_header(content: str) -> HeaderInfo:
    """Locate and parse the AI-SKILL-HEADER block."""
    lines = _split_lines(content)
    start_line = 0
    end_line = 0
    found_start = False

    for idx, line in enumerate(lines):
        stripped = line.strip()
        if stripped.startswith(HEADER_START):
            start_line = idx + 1
            found_start = True
        if found_start and HEADER_END in stripped:
            end_line = idx + 1
            break

    if not found_start or end_line == 0:
        raise HeaderError("No AI-SKILL-HEADER found. Run `sfhtml init <file>` to add one.")

    header_lines = lines[start_line:end_line - 1]
    full_markdown = "\n".join(header_lines)

    title_line = app_name = summary = None
    for line in header_lines:
        trimmed = line.strip()
        if not trimmed.startswith("# "):
            continue
        title_line = trimmed
        title = trimmed[2:]
        for separator in (" — ", " - "):
            name, sep, rest = title.partition(separator)
            if sep:
                app_name = name.strip()
                summary = rest.strip()
                break
        else:
            app_name = title.strip()
        break

    return HeaderInfo(
        full_markdown=full_markdown,
        title_line=title_line,
        app_name=app_name,
        summary=summary,
        sections=_parse_sections(full_markdown),
        start_line=start_line,
        end_line=end_line,
    )


def _parse_sections(markdown: str) -> list[HeaderSection]:
    """Split markdown into ``## N. Title`` sections."""
    sections: list[HeaderSection] = []
    number = 0
    title = ""
    body: list[str] = []
    in_section = False

    for line in _split_lines(markdown):
        trimmed = line.strip()
        if trimmed.startswith("## "):
            if in_section:
                sections.append(HeaderSection(number, title, "".join(body).strip()))
            rest = trimmed[3:]
            head, sep, tail = rest.partition(". ")
            parsed = _parse_section_number(head.strip()) if sep else None
            if parsed is not None:
                number = parsed
                title = tail.strip()
            else:
                number = len(sections) + 1
                title = rest
            body = []
            in_section = True
        elif in_section:
            body.append(line + "\n")

    if in_section:
        sections.append(HeaderSection(number, title, "".join(body).strip()))
    return sections


def extract_section(content: str, section_num: int) -> HeaderSection:
    """Return the header section with the given number."""
    header = extract_header(content)
    for section in header.sections:
        if section.number == section_num:
            return section
    raise HeaderError(f"Section {section_num} not found in header")


def parse_anchor_list(section_content: str) -> list[AnchorEntry]:
    """Parse anchor entries from Section 5 (definition list or table)."""
    return parse_anchor_list_with_issues(section_content)[0]


def _parse_definition(trimmed: str) -> AnchorEntry | None:
    rest = trimmed[3:]
    end_tick = rest.find("`")
    if end_tick < 0:
        return None
    name = rest[:end_tick]
    after = rest[end_tick + 1:].strip()
    if after.startswith("—"):
        after = after[1:]
    elif after.startswith("-"):
        after = after[1:]
    if not name:
        return None
    return AnchorEntry(name, after.strip())


def _parse_table_row(trimmed: str) -> AnchorEntry | None:
    parts = trimmed.split("|")
    is_legacy = len(parts) >= 5 and parts[1].strip() not in ("Name", "Anchor")
    if is_legacy:
        name, purpose = parts[1].strip().strip("`"), parts[4].strip()
    elif len(parts) >= 3:
        name, purpose = parts[1].strip().strip("`"), parts[2].strip()
    else:
        return None
    if not name or name in ("Name", "Anchor") or name.startswith("---"):
        return None
    return AnchorEntry(name, purpose)


def parse_anchor_list_with_issues(section_content: str) -> tuple[list[AnchorEntry], list[str]]:
    """Parse anchor entries, also returning entry-like lines that could not be parsed."""
    anchors: list[AnchorEntry] = []
    unparseable: list[str] = []

    for line in _split_lines(section_content):
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#") or trimmed.startswith("("):
            continue

        entry = None
        if trimmed.startswith("- `"):
            entry = _parse_definition(trimmed)
        if entry is None and trimmed.startswith("|") and not trimmed.startswith("|---"):
            entry = _parse_table_row(trimmed)

        if entry is not None:
            anchors.append(entry)
        elif trimmed.startswith(("- ", "* ", "|")):
            unparseable.append(trimmed)

    return anchors, unparseable


def _extract_subsections(section_content: str) -> str | None:
    """Return everything from the first ``###`` heading on, if any."""
    collected: list[str] = []
    in_subsection = False
    for line in _split_lines(section_content):
        if line.strip().startswith("### "):
            in_subsection = True
        if in_subsection:
            collected.append(line + "\n")
    result = "".join(collected)
    return result.rstrip() if result else None


def rebuild_header(content: str, preserve_descriptions: bool) -> str:
    """Regenerate Section 5 from the actual code blocks, keeping sections 1-4."""
    header = extract_header(content)
    old_section5 = next((s for s in header.sections if s.number == 5), None)
    old_anchors = parse_anchor_list(old_section5.content) if old_section5 else []

    lines = _split_lines(content)
    section5 = _build_section5_content(lines, preserve_descriptions, old_anchors)

    parts: list[str] = []
    if header.title_line is not None:
        parts.append(f"{header.title_line}\n\n")
    for section in header.sections:
        if section.number >= 5:
            continue
        parts.append(f"## {section.number}. {section.title}\n")
        if section.content:
            parts.append(f"{section.content}\n")
        parts.append("\n")
    parts.append("## 5. Key Internal Modules\n\n")
    parts.append(section5)
    if old_section5 is not None:
        subsections = _extract_subsections(old_section5.content)
        if subsections is not None:
            parts.append(f"\n{subsections}\n")
    parts.append("\n")
    new_markdown = "".join(parts)

    start_marker = header.start_line - 1
    end_marker = header.end_line - 1
    result: list[str] = []
    for idx, line in enumerate(lines):
        if idx == start_marker:
            result.append(HEADER_START)
            result.extend(_split_lines(new_markdown))
        elif idx == end_marker:
            result.append(f"    {HEADER_END}")
        elif start_marker < idx < end_marker:
            continue
        else:
            result.append(line)
    return "\n".join(result)


def generate_init_header(content: str) -> str:
    """Insert a fresh AI-SKILL-HEADER after the ``<head>`` line (or at the top)."""
    lines = _split_lines(content)
    app_name = _extract_title_text(content) or "MyApp"
    section5 = _build_section5_content(lines, False, [])
    header = _INIT_HEADER_TEMPLATE.format(app_name=app_name, section5=section5)

    out: list[str] = []
    inserted = False
    for line in lines:
        out.append(f"{line}\n")
        if not inserted and "<head" in line.lower():
            out.append(f"{header}\n")
            inserted = True

    if not inserted:
        return f"{header}\n{content}"
    return "".join(out)


def _short_decl_name(name: str) -> str:
    for prefix in _DECL_PREFIXES:
        if name.startswith(prefix):
            return name[len(prefix):]
    return name


def _preserved_purpose(old_anchors: list[AnchorEntry], label: str) -> str:
    for anchor in old_anchors:
        if anchor.name == label:
            return anchor.purpose
    return ""


def _anchor_line(label: str, purpose: str) -> str:
    return f"- `{label}` — {purpose}\n" if purpose else f"- `{label}`\n"


def _build_section5_content(
    lines: list[str],
    preserve_descriptions: bool,
    old_anchors: list[AnchorEntry],
) -> str:
    """List script blocks (with their declarations) and elements carrying an id."""
    out: list[str] = []

    for region in find_script_regions_full(lines):
        label = region.tag_label
        decls = js_scope.extract_js_declarations(lines[region.content_start:region.content_end])
        auto = ", ".join(_short_decl_name(name) for name, _, _ in decls)
        purpose = auto
        if preserve_descriptions:
            purpose = _preserved_purpose(old_anchors, label) or auto
        out.append(_anchor_line(label, purpose))

    for _id_val, _line_idx, tag_label in find_html_id_elements(lines):
        purpose = _preserved_purpose(old_anchors, tag_label) if preserve_descriptions else ""
        out.append(_anchor_line(tag_label, purpose))

    return "".join(out)


def find_script_regions(lines: list[str]) -> list[tuple[int, int]]:
    """Return (content_start, content_end) pairs of inline script blocks, 0-based."""
    return [(r.content_start, r.content_end) for r in find_script_regions_full(lines)]


def find_script_regions_full(lines: list[str]) -> list[ScriptRegion]:
    """Return inline ``<script>`` blocks with their tag labels."""
    regions: list[ScriptRegion] = []
    in_script = False
    tag_line = 0
    tag_label = ""

    for idx, line in enumerate(lines):
        lower = line.lower()
        if not in_script and "<script" in lower and "src=" not in lower:
            in_script = True
            tag_line = idx
            tag_label = _extract_script_tag_label(line)
        if in_script and "</script>" in lower:
            regions.append(ScriptRegion(tag_line, tag_line + 1, idx, idx, tag_label))
            in_script = False

    if in_script:
        regions.append(
            ScriptRegion(tag_line, tag_line + 1, len(lines), max(len(lines) - 1, 0), tag_label)
        )
    return regions


def _extract_script_tag_label(line: str) -> str:
    trimmed = line.strip()
    start = trimmed.lower().find("<script")
    if start >= 0:
        after = trimmed[start:]
        end = after.find(">")
        if end >= 0:
            return after[:end + 1]
    return "<script>"


def find_html_id_elements(lines: list[str]) -> list[tuple[str, int, str]]:
    """Return (id, 0-based line, tag label) for lines carrying an ``id="..."``."""
    elements: list[tuple[str, int, str]] = []
    for idx, line in enumerate(lines):
        lower = line.lower()
        if "<script" in lower or "<style" in lower:
            continue
        id_val = _extract_id_attr(line)
        if id_val is not None:
            elements.append((id_val, idx, _extract_element_tag_label(line, id_val)))
    return elements


def _extract_id_attr(line: str) -> str | None:
    pattern = 'id="'
    pos = line.lower().find(pattern)
    if pos < 0:
        return None
    after = line[pos + len(pattern):]
    end = after.find('"')
    if end <= 0:
        return None
    return after[:end]


def _extract_element_tag_label(line: str, id_val: str) -> str:
    lower = line.strip().lower()
    start = lower.find("<")
    if start < 0:
        return f'<div id="{id_val}">'
    after = lower[start + 1:]
    tag_end = len(after)
    for pos, ch in enumerate(after):
        if ch.isspace() or ch in ">/":
            tag_end = pos
            break
    return f'<{after[:tag_end]} id="{id_val}">'


def _extract_title_text(content: str) -> str | None:
    start = content.lower().find("<title>")
    if start < 0:
        return None
    after = content[start + len("<title>"):]
    end = after.lower().find("</title>")
    if end < 0:
        return None
    title = after[:end].strip()
    return title or None