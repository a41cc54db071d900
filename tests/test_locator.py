import pytest

from sfhtml.header import generate_init_header
from sfhtml.locator import (
    AnchorNotFoundError,
    levenshtein_distance,
    list_anchors,
    locate_anchor,
)

SAMPLE = "\n".join(
    [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        "<title>Demo</title>",
        "</head>",
        "<body>",
        '<div id="app">',
        "</div>",
        "<script>",
        "function initApp() {",
        "  return 1;",
        "}",
        "const x = 5;",
        "</script>",
        "</body>",
        "</html>",
    ]
) + "\n"


def test_locate_function_in_script():
    result = locate_anchor(SAMPLE, "function initApp", 0)
    assert result.anchor == "function initApp"
    assert len(result.matches) == 1
    match = result.matches[0]
    assert match.line == 10
    assert match.end_line == 12
    assert match.context_preview == "function initApp() {\n  return 1;\n}"


def test_locate_falls_back_to_html():
    result = locate_anchor(SAMPLE, 'id="app"', 0)
    assert len(result.matches) == 1
    assert result.matches[0].line == 7
    assert result.matches[0].end_line is None
    assert result.matches[0].context_preview.startswith('<div id="app">')


def test_locate_with_context_expansion():
    result = locate_anchor(SAMPLE, "const x", 1)
    match = result.matches[0]
    assert match.line == 13
    assert match.end_line == 13
    assert match.context_preview == "}\nconst x = 5;\n</script>"


def test_locate_not_found_without_suggestions():
    with pytest.raises(AnchorNotFoundError) as info:
        locate_anchor(SAMPLE, "qqqqqqqqqqqqqqqqqqqqqqqqq", 0)
    assert info.value.suggestions == []
    assert "not found" in str(info.value)


def test_locate_not_found_suggests_similar():
    with pytest.raises(AnchorNotFoundError) as info:
        locate_anchor(SAMPLE, "function initAqp", 0)
    assert info.value.suggestions == ["function initApp"]
    assert "Did you mean: function initApp?" in str(info.value)


def test_list_anchors_without_header():
    entries = list_anchors(SAMPLE)
    assert [(e.name, e.line, e.anchor_type, e.in_header) for e in entries] == [
        ("<script>", 9, "script-block", False),
        ('<div id="app">', 7, "html-element", False),
    ]


def test_list_anchors_after_init_header_all_in_header():
    entries = list_anchors(generate_init_header(SAMPLE))
    names = {e.name for e in entries}
    assert {"<script>", '<div id="app">'} <= names
    assert all(e.in_header for e in entries)


@pytest.mark.parametrize(
    "a, b, expected",
    [("kitten", "sitting", 3), ("", "abc", 3), ("same", "same", 0)],
)
def test_levenshtein_distance(a, b, expected):
    assert levenshtein_distance(a, b) == expected


def test_levenshtein_is_symmetric():
    assert levenshtein_distance("flaw", "lawn") == levenshtein_distance("lawn", "flaw")