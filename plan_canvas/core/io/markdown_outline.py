from __future__ import annotations

import re

from plan_canvas.core.model import OutlineEntry


_HEADING_RE = re.compile(r"^(#{1,6})\s+(.*)$")
_LIST_RE = re.compile(r"^([ \t]*)([-*+]|\d+[.)])\s+(.*)$")
_KEY_RE = re.compile(r"\s*\{#([A-Za-z0-9_.:-]+)\}\s*$")
_SLUG_RE = re.compile(r"[^a-z0-9]+")

_HEADING_KINDS = ("header-one", "header-two", "header-three", "header-four", "header-five", "header-six")

# Two spaces (or one tab) per nesting level.
INDENT_WIDTH = 2


def parse_markdown_outline(text: str) -> list[OutlineEntry]:
    """Read a markdown document as an ordered outline.

    - `#` headings -> header-one .. header-six
    - `-`, `*`, `+` items -> unordered-list-item; `1.` / `1)` -> ordered-list-item
    - any other non-blank line -> unstyled
    A trailing `{#key}` pins the entry's key; otherwise the key is a slug of the
    text that avoids every pinned key in the document, wherever it appears.
    """

    lines = [_read_line(line) for line in text.splitlines() if line.strip()]
    used: set[str] = {key for _, _, _, key in lines if key}

    return [
        OutlineEntry(text=body, block_kind=kind, depth=depth, key=key or _unique_slug(body, used))
        for kind, depth, body, key in lines
    ]


def _read_line(line: str) -> tuple[str, int, str, str | None]:
    m = _LIST_RE.match(line)
    if m:
        indent = m.group(1).replace("\t", " " * INDENT_WIDTH)
        kind = "unordered-list-item" if m.group(2) in "-*+" else "ordered-list-item"
        body, key = _split_key(m.group(3))
        return kind, len(indent) // INDENT_WIDTH, body, key

    m = _HEADING_RE.match(line.strip())
    if m:
        body, key = _split_key(m.group(2))
        return _HEADING_KINDS[len(m.group(1)) - 1], 0, body, key
    body, key = _split_key(line.strip())
    return "unstyled", 0, body, key


def _split_key(text: str) -> tuple[str, str | None]:
    m = _KEY_RE.search(text)
    if not m:
        return text.strip(), None
    return text[: m.start()].strip(), m.group(1)


def _unique_slug(text: str, used: set[str]) -> str:
    base = _SLUG_RE.sub("-", text.lower()).strip("-") or "item"
    candidate = base
    n = 2
    while candidate in used:
        candidate = f"{base}-{n}"
        n += 1
    used.add(candidate)
    return candidate
