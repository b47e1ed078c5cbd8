"""
Line-grammar parser: turns tokenized lines into an explicit, indexed tree.

Grammar
-------
    P <name>                          Part
    S [name]                          Section
    C                                 condensed marker for the enclosing Section
    G                                 Grand Staff
    T<n> <label>                      Track n
    M [key] [time] [tempo] ["text"]   Measure

Nesting follows indentation. Each node's children sit exactly one level
deeper than the node itself; a shallower line closes the open scopes.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Final, Iterable

from scof.errors import (
    ArityMismatch,
    MalformedIndentation,
    OrphanChild,
    UnexpectedChild,
    UnknownKeyword,
)
from scof.models import TimeSignature
from scof.tokenizer import Line, tokenize

PART: Final[str] = "P"
SECTION: Final[str] = "S"
CONDENSED: Final[str] = "C"
GRAND_STAFF: Final[str] = "G"
TRACK: Final[str] = "T"
MEASURE: Final[str] = "M"

TOP_LEVEL: Final[frozenset[str]] = frozenset({PART, SECTION, MEASURE})

ALLOWED_CHILDREN: Final[dict[str, frozenset[str]]] = {
    SECTION: frozenset({CONDENSED, PART, SECTION}),
    PART: frozenset({TRACK, GRAND_STAFF, SECTION}),
    GRAND_STAFF: frozenset({TRACK}),
    TRACK: frozenset(),
    CONDENSED: frozenset(),
    MEASURE: frozenset(),
}

_TRACK_KEYWORD_RE = re.compile(r"^T(\d+)$")
KEY_RE: Final = re.compile(r"^[A-G](?:##|#|bb|b)?m?$")
_TIME_RE = re.compile(r"^\d+/\d+$")
_TEMPO_RE = re.compile(r"^\d+$")

# Measure argument slots, in the order they must appear.
MEASURE_FIELDS: Final[tuple[str, ...]] = ("key", "time", "tempo", "instruction")


@dataclass
class Node:
    """
    One parsed statement.

    ``parent`` and ``children`` are indices into ``ParseTree.nodes`` so the
    tree can be re-traversed without recursion or re-parsing.
    """

    index: int
    depth: int
    keyword: str
    values: dict[str, Any]
    line_no: int
    parent: int | None = None
    children: list[int] = field(default_factory=list)


@dataclass
class ParseTree:
    nodes: list[Node] = field(default_factory=list)
    roots: list[int] = field(default_factory=list)

    def children_of(self, node: Node) -> list[Node]:
        return [self.nodes[i] for i in node.children]

    def top_level(self) -> list[Node]:
        return [self.nodes[i] for i in self.roots]


# ── Argument parsing ───────────────────────────────────────────────────────────

def split_measure_arguments(argument: str, line_no: int | None = None) -> list[str]:
    """
    Split measure arguments on whitespace, keeping quoted strings whole.

    Quoted tokens keep their surrounding quotes so callers can tell an
    instruction from a bare token.
    """
    tokens: list[str] = []
    idx = 0
    while idx < len(argument):
        ch = argument[idx]
        if ch.isspace():
            idx += 1
            continue
        if ch == '"':
            end = idx + 1
            while end < len(argument):
                if argument[end] == "\\":
                    end += 2
                    continue
                if argument[end] == '"':
                    break
                end += 1
            if end >= len(argument):
                raise ArityMismatch("unterminated instruction string", line_no)
            tokens.append(argument[idx : end + 1])
            idx = end + 1
            continue
        end = idx
        while end < len(argument) and not argument[end].isspace():
            end += 1
        tokens.append(argument[idx:end])
        idx = end
    return tokens


_ESCAPES: Final[dict[str, str]] = {"n": "\n", "r": "\r"}


def unquote(token: str) -> str:
    body = token[1:-1]
    out: list[str] = []
    escaped = False
    for ch in body:
        if escaped:
            out.append(_ESCAPES.get(ch, ch))
            escaped = False
        elif ch == "\\":
            escaped = True
        else:
            out.append(ch)
    return "".join(out)


def quote(text: str) -> str:
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return '"' + escaped.replace("\n", "\\n").replace("\r", "\\r") + '"'


def _classify_measure_token(token: str) -> str | None:
    if token.startswith('"'):
        return "instruction"
    if KEY_RE.match(token):
        return "key"
    if _TIME_RE.match(token):
        return "time"
    if _TEMPO_RE.match(token):
        return "tempo"
    return None


def parse_measure_arguments(argument: str, line_no: int | None = None) -> dict[str, Any]:
    """
    Parse the optional ``key time tempo "instruction"`` arguments of ``M``.

    Raises:
        ArityMismatch: On unknown tokens, repeated slots or out-of-order slots.
    """
    values: dict[str, Any] = {}
    last_slot = -1
    for token in split_measure_arguments(argument, line_no):
        slot = _classify_measure_token(token)
        if slot is None:
            raise ArityMismatch(f"unrecognized measure argument '{token}'", line_no)
        position = MEASURE_FIELDS.index(slot)
        if slot in values:
            raise ArityMismatch(f"measure {slot} given more than once", line_no)
        if position < last_slot:
            raise ArityMismatch(
                f"measure {slot} must come before {MEASURE_FIELDS[last_slot]}", line_no
            )
        last_slot = position

        if slot == "instruction":
            values[slot] = unquote(token)
        elif slot == "time":
            values[slot] = TimeSignature.parse(token)
        elif slot == "tempo":
            values[slot] = int(token)
        else:
            values[slot] = token
    return values


def parse_statement(line: Line) -> tuple[str, dict[str, Any]]:
    """
    Check one line against the grammar table.

    Returns:
        (canonical keyword, parsed argument values)

    Raises:
        UnknownKeyword: If the keyword is not in the grammar.
        ArityMismatch: If the arguments do not fit the keyword.
    """
    keyword, argument = line.keyword, line.argument

    track_match = _TRACK_KEYWORD_RE.match(keyword)
    if track_match:
        if not argument:
            raise ArityMismatch(f"{keyword} needs an instrument or voice label", line.line_no)
        return TRACK, {"id": int(track_match.group(1)), "label": argument}

    if keyword == PART:
        if not argument:
            raise ArityMismatch("P needs a part name", line.line_no)
        return PART, {"name": argument}
    if keyword == SECTION:
        return SECTION, {"name": argument or None}
    if keyword in (CONDENSED, GRAND_STAFF):
        if argument:
            raise ArityMismatch(f"{keyword} takes no arguments", line.line_no)
        return keyword, {}
    if keyword == MEASURE:
        return MEASURE, parse_measure_arguments(argument, line.line_no)

    raise UnknownKeyword(f"unknown keyword '{keyword}'", line.line_no)


# ── Tree construction ──────────────────────────────────────────────────────────

def parse_lines(lines: Iterable[Line]) -> ParseTree:
    """
    Build a ``ParseTree`` from tokenized lines.

    Raises:
        MalformedIndentation: If a line is indented more than one level past
            the line before it.
        OrphanChild: If T, G or C appears at depth 0.
        UnexpectedChild: If a statement is nested under a parent that
            cannot own it.
    """
    tree = ParseTree()
    # open_scopes[d] is the index of the node currently open at depth d.
    open_scopes: list[int] = []

    for line in lines:
        keyword, values = parse_statement(line)

        if line.depth > len(open_scopes):
            raise MalformedIndentation(
                f"indented {line.depth} levels but only {len(open_scopes)} scope(s) are open",
                line.line_no,
            )
        del open_scopes[line.depth :]

        node = Node(
            index=len(tree.nodes),
            depth=line.depth,
            keyword=keyword,
            values=values,
            line_no=line.line_no,
        )

        if line.depth == 0:
            if keyword not in TOP_LEVEL:
                raise OrphanChild(f"{line.keyword} must be nested inside a parent", line.line_no)
            tree.roots.append(node.index)
        else:
            parent = tree.nodes[open_scopes[-1]]
            if keyword not in ALLOWED_CHILDREN[parent.keyword]:
                raise UnexpectedChild(
                    f"{line.keyword} cannot be nested under {parent.keyword}", line.line_no
                )
            node.parent = parent.index
            parent.children.append(node.index)

        tree.nodes.append(node)
        open_scopes.append(node.index)

    return tree


def parse(text: str) -> ParseTree:
    """Tokenize and parse the full text of a movement file."""
    return parse_lines(tokenize(text))
