import pytest

from sfhtml import history
from sfhtml.applier import (
    ApplyStatus,
    ContextMismatchError,
    apply_diff,
    format_apply_result,
    rollback,
)
from sfhtml.differ import DiffError


@pytest.fixture(autouse=True)
def cache(tmp_path, monkeypatch):
    cache_path = tmp_path / "cache"
    monkeypatch.setenv("SFHTML_CACHE_DIR", str(cache_path))
    return cache_path


def _write(tmp_path, text, name="page.html"):
    path = tmp_path / name
    path.write_bytes(text.encode("utf-8"))
    return path


def _read(path):
    return path.read_bytes().decode("utf-8")


SIMPLE_DIFF = "--- a/f\n+++ b/f\n@@ -1,3 +1,3 @@\n a\n-b\n+B\n c\n"


def test_exact_apply(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    assert _read(path) == "a\nB\nc"
    assert result.hunks_applied == 1
    assert result.lines_removed == 1
    assert result.lines_added == 1
    assert result.new_size == len("a\nB\nc")
    detail = result.hunk_details[0]
    assert detail.fuzz_offset == 0
    assert detail.matched_line == 1
    assert detail.context_search is False


def test_fuzz_match(tmp_path):
    path = _write(tmp_path, "x\na\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 2)
    assert _read(path) == "x\na\nB\nc"
    detail = result.hunk_details[0]
    assert detail.fuzz_offset == 1
    assert detail.matched_line == 2
    assert detail.context_search is False


def test_context_search_outside_fuzz(tmp_path):
    path = _write(tmp_path, "x\ny\nz\nw\na\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    assert _read(path).endswith("a\nB\nc")
    detail = result.hunk_details[0]
    assert detail.context_search is True
    assert detail.matched_line == 5


def test_offsets_accumulate_between_hunks(tmp_path):
    original = "\n".join(f"l{i}" for i in range(1, 11)) + "\n"
    path = _write(tmp_path, original)
    diff = (
        "--- a/f\n+++ b/f\n"
        "@@ -2,1 +2,2 @@\n l2\n+new\n"
        "@@ -8,1 +9,1 @@\n-l8\n+L8\n"
    )
    result = apply_diff(path, diff, 0)
    assert [d.fuzz_offset for d in result.hunk_details] == [0, 0]
    lines = _read(path).split("\n")
    assert lines[2] == "new"
    assert "L8" in lines and "l8" not in lines


def test_mismatch_raises(tmp_path):
    path = _write(tmp_path, "p\nq\nr\n")
    with pytest.raises(ContextMismatchError) as info:
        apply_diff(path, SIMPLE_DIFF, 3)
    assert "Hunk 1 context mismatch at line 1" in str(info.value)
    assert info.value.hunk_index == 1
    assert _read(path) == "p\nq\nr\n"


def test_invalid_diff_raises(tmp_path):
    path = _write(tmp_path, "a\n")
    with pytest.raises(DiffError):
        apply_diff(path, "not a diff", 0)


def test_dry_run_leaves_file(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0, dry_run=True)
    assert _read(path) == "a\nb\nc\n"
    assert result.history_id is None
    assert result.lines_added == 1
    assert history.list_entries() == []


def test_backup_created(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0, backup=True)
    assert result.hunks_applied == 1
    assert result.new_size == len("a\nB\nc")
    assert _read(path) == "a\nB\nc"
    backups = list(tmp_path.glob("page.html.bak.*"))
    assert len(backups) == 1
    assert _read(backups[0]) == "a\nb\nc\n"


def test_history_saved(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    entries = history.list_entries()
    assert [e.id for e in entries] == [result.history_id]
    entry = history.show_entry(result.history_id)
    assert entry.diff_text == SIMPLE_DIFF
    assert entry.hunks_applied == 1


def test_rollback_restores_lines(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    message = rollback(path, result.history_id, 3)
    assert message.startswith("Rollback applied:")
    assert _read(path) == "a\nb\nc"
    assert len(list(tmp_path.glob("page.html.bak.*"))) == 1


def test_rollback_dry_run_returns_reverse_diff(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    reverse = rollback(path, result.history_id, 3, dry_run=True)
    assert reverse == history.show_entry(result.history_id).reverse_diff
    assert "+b" in reverse
    assert _read(path) == "a\nB\nc"


def test_rollback_unknown_id(tmp_path):
    path = _write(tmp_path, "a\n")
    with pytest.raises(history.HistoryError):
        rollback(path, "missing", 3)


def test_plain_file_validates_clean(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0)
    assert result.validation.status is ApplyStatus.SUCCESS
    assert result.validation.warnings == []


def test_unlisted_element_warns(tmp_path):
    html = (
        "<html>\n<head>\n"
        "<!-- AI-SKILL-HEADER START\n"
        "# App — demo\n\n"
        "## 5. Key Internal Modules\n\n"
        "    AI-SKILL-HEADER END -->\n"
        "</head>\n<body>\n"
        "<p>old</p>\n"
        '<div id="app"></div>\n'
        "</body>\n</html>\n"
    )
    path = _write(tmp_path, html)
    diff = "--- a/f\n+++ b/f\n@@ -11,1 +11,1 @@\n-<p>old</p>\n+<p>new</p>\n"
    result = apply_diff(path, diff, 0)
    assert result.validation.status is ApplyStatus.SUCCESS_WITH_WARNINGS
    warning = result.validation.warnings[0]
    assert "not listed in header" in warning.message
    assert warning.locate_hint == '<div id="app">'
    assert warning.line == 12


def test_format_apply_result(tmp_path):
    path = _write(tmp_path, "x\na\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 2)
    text = format_apply_result(result, "page.html")
    assert text.startswith("Applied 1 hunk to page.html\n")
    assert "(fuzz +1)" in text
    assert "Lines removed: 1, lines added: 1" in text
    assert result.history_id in text
    assert "✓ Edit success — no issues detected." in text


def test_format_exact_and_dry_run(tmp_path):
    path = _write(tmp_path, "a\nb\nc\n")
    result = apply_diff(path, SIMPLE_DIFF, 0, dry_run=True)
    text = format_apply_result(result, "page.html")
    assert "(exact)" in text
    assert "History saved" not in text