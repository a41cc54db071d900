import pytest

from sfhtml.header import (
    HEADER_END,
    HEADER_START,
    HeaderError,
    extract_header,
    extract_section,
    find_html_id_elements,
    find_script_regions,
    find_script_regions_full,
    generate_init_header,
    parse_anchor_list,
    parse_anchor_list_with_issues,
    rebuild_header,
)

DOC = """<!DOCTYPE html>
<html>
<head>
<title>Demo App</title>
<!-- AI-SKILL-HEADER START
# Demo App — Plots numbers

## 1. Overview
Shows a chart.

## 2. Public JavaScript API
window.plot(data)

## 5. Key Internal Modules

- `<script>` — Custom text

### 5.1 Notes
Keep it small.
    AI-SKILL-HEADER END -->
</head>
<body>
<div id="chart"></div>
<script>
function initApp() {
  return 1;
}
const state = {};
</script>
</body>
</html>
"""

PLAIN = """<!DOCTYPE html>
<html>
<head>
<title>Demo App</title>
</head>
<body>
<section id="intro" class="big">Hi</section>
<script type="module">
function initApp() {}
</script>
</body>
</html>
"""


def test_extract_header_title_and_markers():
    info = extract_header(DOC)
    lines = DOC.split("\n")
    assert info.app_name == "Demo App"
    assert info.summary == "Plots numbers"
    assert info.title_line == "# Demo App — Plots numbers"
    assert lines[info.start_line - 1].startswith(HEADER_START)
    assert HEADER_END in lines[info.end_line - 1]
    assert HEADER_START not in info.full_markdown


def test_extract_header_hyphen_summary():
    doc = f"{HEADER_START}\n# Tool - Does things\n{HEADER_END}\n"
    info = extract_header(doc)
    assert info.app_name == "Tool"
    assert info.summary == "Does things"


def test_extract_header_sections():
    info = extract_header(DOC)
    assert [s.number for s in info.sections] == [1, 2, 5]
    assert [s.title for s in info.sections] == [
        "Overview",
        "Public JavaScript API",
        "Key Internal Modules",
    ]
    assert info.sections[0].content == "Shows a chart."


def test_unnumbered_section_gets_position_number():
    doc = f"{HEADER_START}\n# X\n## Intro\ntext\n## Next\n{HEADER_END}\n"
    info = extract_header(doc)
    assert [s.number for s in info.sections] == [1, 2]
    assert [s.title for s in info.sections] == ["Intro", "Next"]


def test_missing_header_raises():
    with pytest.raises(HeaderError):
        extract_header(PLAIN)


def test_extract_section_found_and_missing():
    section = extract_section(DOC, 2)
    assert section.content == "window.plot(data)"
    with pytest.raises(HeaderError):
        extract_section(DOC, 3)


def test_parse_anchor_definition_list():
    text = "- `<script>` — Entry point\n- `<div id=\"app\">` - Layout\n- `bare`\n(description)"
    anchors = parse_anchor_list(text)
    assert [(a.name, a.purpose) for a in anchors] == [
        ("<script>", "Entry point"),
        ('<div id="app">', "Layout"),
        ("bare", ""),
    ]


def test_parse_anchor_tables():
    table = "| Anchor | Purpose |\n|---|---|\n| `<script>` | Entry |"
    assert [(a.name, a.purpose) for a in parse_anchor_list(table)] == [("<script>", "Entry")]
    legacy = "| `initApp` | function | 12 | Boots app |"
    assert [(a.name, a.purpose) for a in parse_anchor_list(legacy)] == [("initApp", "Boots app")]


def test_parse_anchor_issues():
    anchors, issues = parse_anchor_list_with_issues("- plain item\n* star item\n- `ok` — fine")
    assert [a.name for a in anchors] == ["ok"]
    assert issues == ["- plain item", "* star item"]


def test_find_script_regions_full():
    lines = PLAIN.split("\n")
    regions = find_script_regions_full(lines)
    assert len(regions) == 1
    region = regions[0]
    assert region.tag_label == '<script type="module">'
    assert "<script" in lines[region.tag_line]
    assert region.content_start == region.tag_line + 1
    assert "</script>" in lines[region.content_end]
    assert find_script_regions(lines) == [(region.content_start, region.content_end)]


def test_script_regions_skip_src_and_handle_unclosed():
    lines = ['<script src="a.js"></script>', "<script>", "let a = 1;"]
    regions = find_script_regions_full(lines)
    assert len(regions) == 1
    assert regions[0].tag_line == 1
    assert regions[0].content_end == len(lines)


def test_find_html_id_elements():
    lines = PLAIN.split("\n")
    elements = find_html_id_elements(lines)
    assert [(e[0], e[2]) for e in elements] == [("intro", '<section id="intro">')]
    assert "intro" in lines[elements[0][1]]
    assert find_html_id_elements(['<script id="x">', '<style id="y">']) == []


def test_generate_init_header_round_trip():
    result = generate_init_header(PLAIN)
    info = extract_header(result)
    assert info.app_name == "Demo App"
    assert [s.number for s in info.sections] == [1, 2, 3, 4, 5]
    anchors = parse_anchor_list(extract_section(result, 5).content)
    assert [(a.name, a.purpose) for a in anchors] == [
        ('<script type="module">', "initApp"),
        ('<section id="intro">', ""),
    ]
    assert result.index(HEADER_START) > result.index("<head>")


def test_generate_init_header_without_head_or_title():
    content = "<p>hello</p>\n"
    result = generate_init_header(content)
    assert result.startswith(HEADER_START)
    assert result.endswith(content)
    assert extract_header(result).app_name == "MyApp"


def test_rebuild_preserves_descriptions():
    rebuilt = rebuild_header(DOC, True)
    anchors = parse_anchor_list(extract_section(rebuilt, 5).content)
    by_name = {a.name: a.purpose for a in anchors}
    assert by_name["<script>"] == "Custom text"
    assert '<div id="chart">' in by_name


def test_rebuild_without_preserve_uses_declarations():
    rebuilt = rebuild_header(DOC, False)
    anchors = parse_anchor_list(extract_section(rebuilt, 5).content)
    by_name = {a.name: a.purpose for a in anchors}
    assert by_name["<script>"] == "initApp, state"


def test_rebuild_keeps_other_sections_and_subsections():
    rebuilt = rebuild_header(DOC, False)
    info = extract_header(rebuilt)
    assert info.title_line == "# Demo App — Plots numbers"
    assert extract_section(rebuilt, 1).content == "Shows a chart."
    assert "### 5.1 Notes\nKeep it small." in extract_section(rebuilt, 5).content
    lines = rebuilt.split("\n")
    assert lines[info.end_line - 1] == f"    {HEADER_END}"
    assert rebuilt.endswith("</html>")


def test_rebuild_without_header_raises():
    with pytest.raises(HeaderError):
        rebuild_header(PLAIN, True)