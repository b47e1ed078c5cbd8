"""Tokenizer: splits a movement file into indentation-aware statement lines."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final, Iterator

from scof.errors import MalformedIndentation

INDENT_UNIT: Final[int] = 4
COMMENT_MARKER: Final[str] = "//"
# Only measure lines carry quoted strings; elsewhere a `"` is plain text.
QUOTING_KEYWORD: Final[str] = "M"


@dataclass(frozen=True)
class Line:
    """
    One statement of a movement file.

    Attributes:
        line_no:  1-based line number in the source text.
        depth:    Indentation level (leading spaces / INDENT_UNIT).
        keyword:  First whitespace-delimited token, e.g. ``P`` or ``T3``.
        argument: Remainder of the line with comments and outer whitespace removed.
    """

    line_no: int
    depth: int
    keyword: str
    argument: str


def strip_comment(text: str, quoting: bool = True) -> str:
    """
    Remove a ``//`` comment.

    With *quoting*, markers inside double-quoted strings are kept and a
    backslash escapes the next character inside a quoted string.
    """
    if not quoting:
        idx = text.find(COMMENT_MARKER)
        return text if idx < 0 else text[:idx]
    in_quotes = False
    escaped = False
    for idx, ch in enumerate(text):
        if in_quotes:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_quotes = False
            continue
        if ch == '"':
            in_quotes = True
        elif text.startswith(COMMENT_MARKER, idx):
            return text[:idx]
    return text


def tokenize_line(raw: str, line_no: int = 1) -> Line | None:
    """
    Tokenize a single source line.

    Returns:
        The ``Line`` record, or ``None`` for blank and comment-only lines.

    Raises:
        MalformedIndentation: If the indentation contains a tab or is not a
            multiple of ``INDENT_UNIT`` spaces.
    """
    raw = raw.rstrip("\r\n")
    head = raw.split(None, 1)
    quoting = bool(head) and head[0] == QUOTING_KEYWORD
    text = strip_comment(raw, quoting).rstrip()
    body = text.lstrip()
    if not body:
        return None

    indent = text[: len(text) - len(body)]
    if "\t" in indent:
        raise MalformedIndentation("tabs are not allowed in indentation", line_no)
    if len(indent) % INDENT_UNIT:
        raise MalformedIndentation(
            f"indentation of {len(indent)} spaces is not a multiple of {INDENT_UNIT}",
            line_no,
        )

    keyword, *rest = body.split(None, 1)
    argument = rest[0] if rest else ""
    return Line(
        line_no=line_no,
        depth=len(indent) // INDENT_UNIT,
        keyword=keyword,
        argument=argument.strip(),
    )


def tokenize(text: str) -> Iterator[Line]:
    """Lazily yield the statement lines of a movement file."""
    if text.startswith("\ufeff"):
        text = text[1:]
    # Split on "\n" only, so a stray form feed or separator stays inside its line.
    for line_no, raw in enumerate(text.split("\n"), start=1):
        line = tokenize_line(raw, line_no)
        if line is not None:
            yield line
