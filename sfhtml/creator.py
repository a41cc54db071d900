"""Creating new single-file HTML apps and saving copies of existing ones."""

from __future__ import annotations

from pathlib import Path

from sfhtml.header import HEADER_START, generate_init_header

__all__ = ["create_html", "save_as"]

_INDENT = "    "

_HEADER_CLOSE = "AI-SKILL-HEADER END -->"

# Placeholder sections 1-4 of a fresh header: (title, hint shown in parentheses).
_SECTIONS = (
    ("Overview", "App description, deployment method"),
    ("Public JavaScript API", "Functions exposed on window, parameters, return values, side effects"),
    ("Automation Example", "Puppeteer / Playwright examples"),
    ("Conventions", "Units, angle formats, state management rules"),
)

# Illustrative anchor entries for the module section of a fresh header.
_EXAMPLE_ANCHORS = (
    ('<script type="module">', "App entry: initApp, bindEvents, state management"),
    ("<script>", "Data processing: parseData, DataFusion, formatOutput"),
    ('<div id="app">', "Main layout container, chart panels, data table"),
)


def _header_lines(title: str) -> list[str]:
    out = [HEADER_START, f"# {title} — (feature summary)", ""]
    for number, (name, hint) in enumerate(_SECTIONS, start=1):
        out += [f"## {number}. {name}", f"({hint})", ""]
    out += [f"## {len(_SECTIONS) + 1}. Key Internal Modules", ""]
    out.append("(auto-generated by `sfhtml header-rebuild`, format:")
    out += [f"- `{label}` — {purpose}" for label, purpose in _EXAMPLE_ANCHORS]
    out[-1] += ")"
    out += ["", "", _INDENT + _HEADER_CLOSE]
    return out


def _render(title: str, with_header: bool) -> str:
    head_tags = (
        '<meta charset="UTF-8">',
        '<meta name="viewport" content="width=device-width, initial-scale=1.0">',
        f"<title>{title}</title>",
    )
    body_tags = (f"<h1>{title}</h1>", "<script>", "// Application code", "</script>")

    lines = ["<!DOCTYPE html>", '<html lang="en">', "<head>"]
    lines += [_INDENT + tag for tag in head_tags]
    if with_header:
        lines += _header_lines(title)
    lines += [
        _INDENT + "<style>",
        _INDENT * 2 + "body { font-family: sans-serif; margin: 20px; }",
        _INDENT + "</style>",
        "</head>",
        "<body>",
    ]
    lines += [_INDENT + tag for tag in body_tags]
    lines += ["</body>", "</html>", ""]
    return "\n".join(lines)


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def create_html(path, title: str, with_header: bool = False, force: bool = False) -> None:
    """Write a new HTML skeleton to ``path``; refuse to overwrite unless ``force``."""
    path = Path(path)
    if path.exists() and not force:
        raise FileExistsError(f"File already exists: {path}. Use --force to overwrite.")
    _ensure_parent(path)
    path.write_bytes(_render(title, with_header).encode("utf-8"))


def save_as(source, dest, inject_header: bool = False, force: bool = False) -> None:
    """Copy ``source`` to ``dest``, optionally adding an AI-SKILL-HEADER."""
    source = Path(source)
    dest = Path(dest)
    if not source.exists():
        raise FileNotFoundError(f"Source file not found: {source}")
    if dest.exists() and not force:
        raise FileExistsError(f"Destination already exists: {dest}. Use --force to overwrite.")
    _ensure_parent(dest)

    content = source.read_bytes().decode("utf-8")
    if inject_header and HEADER_START not in content:
        content = generate_init_header(content)
    dest.write_bytes(content.encode("utf-8"))