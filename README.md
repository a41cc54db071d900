# sfhtml

A Python library for working with single-file HTML applications: one `.html`
file that holds its markup, styles and scripts together. It helps a person or
an automated agent find their way around such a file, edit it with unified
diffs that can be rolled back, serve it with live reload, and drive it in a
Chromium-family browser.

## Modules

- **`sfhtml.header`** works with the AI-SKILL-HEADER. This is a Markdown block
  kept in an HTML comment between `<!-- AI-SKILL-HEADER START` and
  `AI-SKILL-HEADER END -->`. Its numbered sections (`## N. Title`) describe the
  app. Section 5 lists the file's anchors: its inline `<script>` blocks and the
  elements that carry an `id`.
  - `extract_header` and `extract_section` read the header and its sections.
  - `parse_anchor_list` and `parse_anchor_list_with_issues` read anchor
    entries, written either as a definition list or as a table.
  - `generate_init_header` inserts a fresh header after the `<head>` line.
  - `rebuild_header` regenerates Section 5 from the code. It keeps sections 1–4
    and any `###` subsections of Section 5, and it can keep existing
    descriptions.
  - `find_script_regions`, `find_script_regions_full` and
    `find_html_id_elements` find the anchors themselves.
- **`sfhtml.js_scope`** finds top-level `function`, `async function`, `class`,
  `const`, `let` and `var` declarations in script text, with their 0-based
  start and end lines. It uses a small tokenizer that understands strings,
  template literals, regular expressions, comments and bracket nesting. It is
  not a full JavaScript parser.
- **`sfhtml.locator`** has two functions.
  - `locate_anchor` finds the lines that contain an anchor text. Matches inside
    script blocks come first. The result has 1-based line numbers and, for
    declarations, the end line. When nothing matches it raises
    `AnchorNotFoundError`, which lists up to five similar names.
  - `list_anchors` lists the script blocks and id-carrying elements, and marks
    which of them the header names.
- **`sfhtml.differ`** has two functions.
  - `generate_diff` produces unified diff text.
  - `parse_unified_diff` turns unified diff text into `DiffHunk` objects, or
    raises `DiffError`.
- **`sfhtml.applier`** edits files.
  - `apply_diff` applies a diff to a file. It tries each hunk at its stated
    line first, then within a fuzz window around that line, and then searches
    the whole file for the nearest place where the hunk's context matches. The
    file is written to a temporary file, which is then renamed over the
    original. The edit is recorded in the history, and the function returns an
    `ApplyResult`.
  - `format_apply_result` renders an `ApplyResult` as text.
  - `rollback` undoes a recorded edit.
- **`sfhtml.history`** stores every applied diff together with its reverse
  diff as JSON files. The store lives in `~/.sfhtml/history`, or in
  `$SFHTML_CACHE_DIR` if that is set. It is capped at 10 MB, and the oldest
  entries are removed first when it is full. The functions are
  `list_entries`, `show_entry`, `delete_entry`, `cache_size`, `clean_cache`
  and `cache_dir`.
- **`sfhtml.creator`** has two functions.
  - `create_html` writes a new HTML skeleton, with or without a header.
  - `save_as` copies a file, optionally adding a header.
- **`sfhtml.live`** provides `LiveServer` and `serve`. They serve one HTML file
  and the files next to it over HTTP. With live mode on, a small client script
  is injected before `</body>`. The file is polled for changes, and each change
  is pushed to every connected page over a WebSocket.
- **`sfhtml.browser`** starts Chrome, Chromium or Edge with remote debugging
  (`launch_browser`), or finds the page of a browser that is already running
  (`connect_to_port`). Through `CdpClient` it can take screenshots, read the
  DOM, collect console and network logs, click, type, scroll, touch, evaluate
  JavaScript, navigate and print to PDF.

## Installation

The package needs Python 3.10 or later. Its only dependency is
`websocket-client`.

## Usage

### Reading the header and locating anchors

```python
from pathlib import Path
from sfhtml import header, locator

content = Path("app.html").read_text(encoding="utf-8")

info = header.extract_header(content)          # raises header.HeaderError if absent
print(info.app_name, "-", info.summary)
for section in info.sections:
    print(section.number, section.title)

modules = header.extract_section(content, 5)
for entry in header.parse_anchor_list(modules.content):
    print(entry.name, entry.purpose)

result = locator.locate_anchor(content, "function initApp", 2)
for match in result.matches:
    print(match.line, match.end_line)
    print(match.context_preview)

for anchor in locator.list_anchors(content):
    print(anchor.name, anchor.line, anchor.anchor_type, anchor.in_header)
```

### Adding or refreshing a header

```python
from pathlib import Path
from sfhtml import header

path = Path("app.html")
content = path.read_text(encoding="utf-8")

if header.HEADER_START in content:
    updated = header.rebuild_header(content, True)   # keep existing descriptions
else:
    updated = header.generate_init_header(content)

path.write_text(updated, encoding="utf-8")
```

### Creating files

```python
from sfhtml import creator

creator.create_html("demo/index.html", "Demo", with_header=True)
creator.save_as("demo/index.html", "demo/copy.html", inject_header=True)
```

Both functions raise `FileExistsError` rather than overwrite a file, unless
`force=True` is passed. `save_as` raises `FileNotFoundError` if the source is
missing.

### Editing with a diff

```python
from pathlib import Path
from sfhtml import applier, differ

path = Path("app.html")
old = path.read_text(encoding="utf-8")
new = old.replace("Hello", "Hello, world")

diff_text = differ.generate_diff(old, new, "app.html", "app.html", 3)
result = applier.apply_diff(path, diff_text, fuzz=3, backup=True)
print(applier.format_apply_result(result, path.name))
```

- If a hunk's context cannot be found, `apply_diff` raises
  `applier.ContextMismatchError`. Its message lists the expected lines next to
  the lines actually found.
- With `backup=True`, the original is first copied to
  `<file>.bak.<unix-seconds>`.
- With `dry_run=True`, nothing is written and no history entry is made.
- After an apply, if the file has a header, the Section 5 anchors are compared
  with the anchors actually in the code. Each mismatch is reported as a
  warning in `result.validation`. Warnings never block the write.

### History and rollback

```python
from sfhtml import applier, history

for summary in history.list_entries("app.html"):
    print(summary.id, summary.timestamp_human, summary.description)

latest = history.list_entries()[0]
print(applier.rollback("app.html", latest.id, dry_run=True))   # show the reverse diff
print(applier.rollback("app.html", latest.id))                 # apply it, with a backup

print(history.cache_size(), "bytes in", history.cache_dir())
removed, freed = history.clean_cache()
```

### Live serving

```python
from sfhtml import live

live.serve("app.html", 8080, open_browser=True, inject_live=True)
```

The page is served at `http://localhost:8080/app.html` until you press Ctrl+C.
To embed the server in your own program, create a
`live.LiveServer(file, port, inject_live)`. Run `serve_forever()` in a thread
and call `shutdown()` to stop it. `handle_file_change()` reloads the file and
pushes it to the connected clients straight away.

### Driving a browser

```python
import base64
from sfhtml import browser

proc = browser.launch_browser("file:///path/to/app.html", 9222, headless=True)
try:
    with browser.CdpClient(proc.ws_url) as client:
        client.click("#start")
        client.type_text("#name", "example")
        print(client.evaluate("document.title"))
        png = base64.b64decode(client.screenshot())
finally:
    proc.process.terminate()
```

Failures raise `browser.CdpError`. To attach to a browser that is already
running with `--remote-debugging-port`, call `browser.connect_to_port(port)`.
It returns a page's WebSocket URL. `save_session`, `load_session`,
`list_sessions` and `remove_session` record running sessions as JSON files
under the system temporary directory.

## What it does not do

- There is no command-line program; everything is used from Python. Some
  error and status messages suggest commands such as `sfhtml init`,
  `sfhtml read`, `sfhtml header-rebuild` and `sfhtml history rollback`, and
  the live server's status output mentions a `--live` option. This package
  does not provide any of them.
- The checks after an apply only compare header anchors with the code. The
  HTML and JavaScript are not parsed for syntax errors.
- The live server always pushes the whole document. It has no way to send
  targeted patches from outside the server.