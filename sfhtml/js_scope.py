"""Top-level JavaScript declaration detection with line boundaries."""

from __future__ import annotations

import bisect
import enum
from dataclasses import dataclass

__all__ = [
    "JsDeclType",
    "JsDeclaration",
    "extract_js_declarations_full",
    "extract_js_declarations",
    "detect_scope_end_in_region",
    "detect_scope_end",
    "extract_purpose_comment",
]


class JsDeclType(enum.Enum):
    CONST = "js-const"
    LET = "js-let"
    VAR = "js-var"
    FUNCTION = "js-function"
    CLASS = "js-class"
    UNKNOWN = "js-unknown"

    def __str__(self) -> str:
        return self.value


@dataclass
class JsDeclaration:
    name: str
    decl_type: JsDeclType
    start_line: int  # 0-based, relative to the given lines
    end_line: int  # 0-based, relative to the given lines


# ---------------------------------------------------------------------------
# Lexer
# ---------------------------------------------------------------------------

_KEYWORD_OPERATORS = frozenset(
    {
        "return", "typeof", "instanceof", "in", "of", "new", "delete", "void",
        "throw", "case", "do", "else", "yield", "await", "extends",
    }
)

_PUNCTUATORS = frozenset(
    """
    >>>= ... === !== **= <<= >>= >>> &&= ||= ??=
    => == != <= >= && || ?? ?. ++ -- += -= *= /= %= &= |= ^= ** << >>
    { } ( ) [ ] ; , < > + - * / % & | ^ ! ~ ? : = . @ #
    """.split()
)

_NON_CONTINUING = frozenset({")", "]", "}", ";", "{", "++", "--", "!", "~", "...", "@", "#"})
_OPENERS = frozenset("([{")
_CLOSERS = frozenset(")]}")
_LINE_BREAKS = "\n\r\u2028\u2029"


@dataclass(frozen=True)
class _Token:
    kind: str  # ident, num, str, template, regex, punct
    value: str
    start: int
    end: int
    newline_before: bool


def _is_ident_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$#\\" or (ord(ch) > 127 and ch.isidentifier())


def _is_ident_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$\\" or (ord(ch) > 127 and f"a{ch}".isidentifier())


def _regex_allowed(prev: _Token | None) -> bool:
    if prev is None:
        return True
    if prev.kind == "punct":
        return prev.value not in _CLOSERS
    if prev.kind == "ident":
        return prev.value in _KEYWORD_OPERATORS
    return False


class _Lexer:
    def __init__(self, source: str) -> None:
        self.src = source
        self.n = len(source)

    def lex(self, pos: int, nested: bool) -> tuple[list[_Token], int]:
        """Tokenize from ``pos``; when ``nested``, stop after an unmatched '}'."""
        src, n = self.src, self.n
        tokens: list[_Token] = []
        braces = 0
        pending_newline = False
        while True:
            pos, saw_newline = self._skip_trivia(pos)
            pending_newline = pending_newline or saw_newline
            if pos >= n:
                return tokens, n
            ch = src[pos]
            start = pos
            prev = tokens[-1] if tokens else None
            if ch in "'\"":
                pos, kind = self._scan_string(pos), "str"
            elif ch == "`":
                pos, kind = self._scan_template(pos + 1), "template"
            elif _is_ident_start(ch):
                pos, kind = self._scan_ident(pos), "ident"
            elif ch.isdigit() or (ch == "." and pos + 1 < n and src[pos + 1].isdigit()):
                pos, kind = self._scan_number(pos), "num"
            elif ch == "/" and _regex_allowed(prev):
                pos, kind = self._scan_regex(pos), "regex"
            else:
                if nested and ch == "}" and braces == 0:
                    return tokens, pos + 1
                pos, kind = self._scan_punct(pos), "punct"
                if src[start:pos] == "{":
                    braces += 1
                elif src[start:pos] == "}":
                    braces -= 1
            tokens.append(_Token(kind, src[start:pos], start, pos, pending_newline))
            pending_newline = False

    def _skip_trivia(self, pos: int) -> tuple[int, bool]:
        src, n = self.src, self.n
        newline = False
        while pos < n:
            ch = src[pos]
            if ch in _LINE_BREAKS:
                newline = True
                pos += 1
            elif ch.isspace() or ch == "\ufeff":
                pos += 1
            elif src.startswith("//", pos):
                end = src.find("\n", pos)
                pos = n if end < 0 else end
            elif src.startswith("/*", pos):
                end = src.find("*/", pos + 2)
                end = n if end < 0 else end
                if any(c in _LINE_BREAKS for c in src[pos:end]):
                    newline = True
                pos = min(end + 2, n)
            else:
                break
        return pos, newline

    def _scan_string(self, pos: int) -> int:
        src, n = self.src, self.n
        quote = src[pos]
        pos += 1
        while pos < n:
            ch = src[pos]
            if ch == "\\":
                pos += 2
            elif ch == quote:
                return pos + 1
            elif ch == "\n":
                return pos
            else:
                pos += 1
        return n

    def _scan_template(self, pos: int) -> int:
        src, n = self.src, self.n
        while pos < n:
            ch = src[pos]
            if ch == "\\":
                pos += 2
            elif ch == "`":
                return pos + 1
            elif src.startswith("${", pos):
                _, pos = self.lex(pos + 2, nested=True)
            else:
                pos += 1
        return n

    def _scan_ident(self, pos: int) -> int:
        src, n = self.src, self.n
        pos += 1
        while pos < n and _is_ident_part(src[pos]):
            pos += 1
        return pos

    def _scan_number(self, pos: int) -> int:
        src, n = self.src, self.n
        is_hex = src.startswith(("0x", "0X"), pos)
        while pos < n:
            ch = src[pos]
            if ch.isalnum() or ch in "_.":
                pos += 1
            elif ch in "+-" and not is_hex and src[pos - 1] in "eE":
                pos += 1
            else:
                break
        return pos

    def _scan_regex(self, pos: int) -> int:
        src, n = self.src, self.n
        pos += 1
        in_class = False
        while pos < n:
            ch = src[pos]
            if ch == "\\":
                pos += 2
                continue
            if ch == "\n":
                return pos
            pos += 1
            if in_class:
                if ch == "]":
                    in_class = False
            elif ch == "[":
                in_class = True
            elif ch == "/":
                break
        while pos < n and (src[pos].isalnum() or src[pos] in "_$"):
            pos += 1
        return min(pos, n)

    def _scan_punct(self, pos: int) -> int:
        for length in (4, 3, 2, 1):
            if self.src[pos:pos + length] in _PUNCTUATORS:
                return pos + length
        return pos + 1


# ---------------------------------------------------------------------------
# Declaration scanning
# ---------------------------------------------------------------------------


def _pair_brackets(tokens: list[_Token]) -> tuple[dict[int, int], list[int]]:
    matches: dict[int, int] = {}
    depths: list[int] = []
    stack: list[int] = []
    for idx, tok in enumerate(tokens):
        if tok.kind == "punct" and tok.value in _OPENERS:
            depths.append(len(stack))
            stack.append(idx)
        elif tok.kind == "punct" and tok.value in _CLOSERS:
            if stack:
                opener = stack.pop()
                matches[opener] = idx
                matches[idx] = opener
            depths.append(len(stack))
        else:
            depths.append(len(stack))
    return matches, depths


def _ends_expression(tok: _Token) -> bool:
    if tok.kind in ("str", "num", "template", "regex"):
        return True
    if tok.kind == "ident":
        return tok.value not in _KEYWORD_OPERATORS
    return tok.value in (")", "]", "}", "++", "--")


def _continues(tok: _Token) -> bool:
    if tok.kind == "punct":
        return tok.value not in _NON_CONTINUING
    if tok.kind == "template":
        return True
    return tok.kind == "ident" and tok.value in ("in", "instanceof")


def _is_statement_start(tokens: list[_Token], idx: int) -> bool:
    if idx == 0:
        return True
    prev = tokens[idx - 1]
    if prev.kind == "punct" and prev.value in (";", "}"):
        return True
    return tokens[idx].newline_before and _ends_expression(prev)


def _is_punct(tokens: list[_Token], idx: int, value: str) -> bool:
    return idx < len(tokens) and tokens[idx].kind == "punct" and tokens[idx].value == value


_Found = tuple[list[tuple[str, JsDeclType]], int]


def _function_decl(tokens: list[_Token], idx: int, matches: dict[int, int]) -> _Found | None:
    j = idx + 1
    if _is_punct(tokens, j, "*"):
        j += 1
    if j >= len(tokens) or tokens[j].kind != "ident":
        return None
    name = tokens[j].value
    j += 1
    if not _is_punct(tokens, j, "(") or j not in matches:
        return None
    j = matches[j] + 1
    if not _is_punct(tokens, j, "{") or j not in matches:
        return None
    return [(f"function {name}", JsDeclType.FUNCTION)], matches[j]


def _class_decl(tokens: list[_Token], idx: int, matches: dict[int, int]) -> _Found | None:
    j = idx + 1
    if j >= len(tokens) or tokens[j].kind != "ident" or tokens[j].value == "extends":
        return None
    name = tokens[j].value
    j += 1
    while j < len(tokens):
        tok = tokens[j]
        if tok.kind == "punct" and tok.value in _OPENERS:
            if j not in matches:
                return None
            if tok.value == "{":
                return [(f"class {name}", JsDeclType.CLASS)], matches[j]
            j = matches[j]
        j += 1
    return None


_VAR_KINDS = {"const": JsDeclType.CONST, "let": JsDeclType.LET, "var": JsDeclType.VAR}


def _variable_decl(tokens: list[_Token], idx: int, matches: dict[int, int]) -> _Found | None:
    keyword = tokens[idx].value
    n = len(tokens)
    names: list[str] = []
    j = idx + 1
    while True:
        if j >= n:
            return None
        target = tokens[j]
        if target.kind == "ident" and target.value not in _KEYWORD_OPERATORS:
            names.append(target.value)
            j += 1
        elif target.kind == "punct" and target.value in ("[", "{") and j in matches:
            j = matches[j] + 1
        else:
            return None

        end = None
        next_declarator = False
        while j < n:
            tok = tokens[j]
            if tok.newline_before and _ends_expression(tokens[j - 1]) and not _continues(tok):
                end = j - 1
                break
            if tok.kind == "punct":
                if tok.value == ",":
                    next_declarator = True
                    break
                if tok.value == ";":
                    end = j
                    break
                if tok.value in _OPENERS:
                    if j not in matches:
                        end = n - 1
                        break
                    j = matches[j]
                elif tok.value in _CLOSERS:
                    end = j - 1
                    break
            j += 1
        if next_declarator:
            j += 1
            continue
        if end is None:
            end = n - 1
        kind = _VAR_KINDS[keyword]
        return [(f"{keyword} {name}", kind) for name in names], end


def _declaration_at(tokens: list[_Token], idx: int, matches: dict[int, int]) -> _Found | None:
    tok = tokens[idx]
    if tok.kind != "ident":
        return None
    if tok.value == "function":
        return _function_decl(tokens, idx, matches)
    if tok.value == "async":
        nxt = idx + 1
        if (
            nxt < len(tokens)
            and tokens[nxt].kind == "ident"
            and tokens[nxt].value == "function"
            and not tokens[nxt].newline_before
        ):
            return _function_decl(tokens, nxt, matches)
        return None
    if tok.value == "class":
        return _class_decl(tokens, idx, matches)
    if tok.value in _VAR_KINDS:
        nxt = idx + 1
        if nxt >= len(tokens):
            return None
        follower = tokens[nxt]
        if follower.kind == "ident" or (follower.kind == "punct" and follower.value in ("[", "{")):
            return _variable_decl(tokens, idx, matches)
    return None


def _line_offsets(source: str) -> list[int]:
    return [0] + [i + 1 for i, ch in enumerate(source) if ch == "\n"]


def _offset_to_line(offsets: list[int], offset: int) -> int:
    return max(bisect.bisect_right(offsets, offset) - 1, 0)


def extract_js_declarations_full(lines: list[str]) -> list[JsDeclaration]:
    """Return top-level function, class and variable declarations with line spans."""
    source = "\n".join(lines)
    tokens, _ = _Lexer(source).lex(0, nested=False)
    matches, depths = _pair_brackets(tokens)
    offsets = _line_offsets(source)
    results: list[JsDeclaration] = []

    idx = 0
    while idx < len(tokens):
        if depths[idx] == 0 and _is_statement_start(tokens, idx):
            found = _declaration_at(tokens, idx, matches)
            if found is not None:
                entries, end = found
                start_line = _offset_to_line(offsets, tokens[idx].start)
                end_line = _offset_to_line(offsets, max(tokens[end].end - 1, 0))
                results.extend(
                    JsDeclaration(name, decl_type, start_line, end_line)
                    for name, decl_type in entries
                )
                idx = end + 1
                continue
        idx += 1
    return results


def extract_js_declarations(lines: list[str]) -> list[tuple[str, JsDeclType, int]]:
    """Return (name, type, 0-based start line) for each top-level declaration."""
    return [(d.name, d.decl_type, d.start_line) for d in extract_js_declarations_full(lines)]


def detect_scope_end_in_region(
    lines: list[str],
    start_line: int,
    script_start: int,
    script_end: int,
) -> int | None:
    """Return the absolute 0-based end line of the declaration starting at ``start_line``."""
    rel_start = start_line - script_start
    if rel_start < 0:
        return None
    decls = extract_js_declarations_full(lines[script_start:script_end])
    for decl in decls:
        if decl.start_line == rel_start:
            return script_start + decl.end_line
    return None


def _find_script_regions(lines: list[str]) -> list[tuple[int, int]]:
    regions: list[tuple[int, int]] = []
    in_script = False
    script_start = 0
    for idx, line in enumerate(lines):
        lower = line.lower()
        if not in_script and "<script" in lower and "src=" not in lower:
            in_script = True
            script_start = idx + 1
        if in_script and "</script>" in lower:
            regions.append((script_start, idx))
            in_script = False
    if in_script:
        regions.append((script_start, len(lines)))
    return regions


def detect_scope_end(lines: list[str], start_line: int) -> int | None:
    """Find the end line of a declaration, searching the script block that holds it."""
    for region_start, region_end in _find_script_regions(lines):
        if region_start <= start_line < region_end:
            return detect_scope_end_in_region(lines, start_line, region_start, region_end)
    return None


def extract_purpose_comment(lines: list[str], decl_line_idx: int) -> str | None:
    """Read a ``// name — description`` comment from the line above a declaration."""
    if decl_line_idx == 0:
        return None
    prev = lines[decl_line_idx - 1].strip()
    if not prev.startswith("//"):
        return None
    head, sep, tail = prev.partition(" — ")
    if sep:
        return tail.strip()
    head, sep, tail = prev.partition("() - ")
    if sep:
        return tail.strip()
    return None