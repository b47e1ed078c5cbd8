"""Serializer: writes a Movement back out in its line-grammar text form."""

from __future__ import annotations

from scof import grammar
from scof.grammar import quote
from scof.models import GrandStaff, Measure, Movement, Node, Part, Section, Track
from scof.tokenizer import INDENT_UNIT


def format_measure(measure: Measure) -> str:
    """Render one ``M`` statement, writing only the overridden fields."""
    fields = [grammar.MEASURE]
    if measure.key is not None:
        fields.append(measure.key)
    if measure.time is not None:
        fields.append(str(measure.time))
    if measure.tempo is not None:
        fields.append(str(measure.tempo))
    if measure.instruction is not None:
        fields.append(quote(measure.instruction))
    return " ".join(fields)


def _statement(node: Node) -> str:
    if isinstance(node, Track):
        return f"{grammar.TRACK}{node.id} {node.label}"
    if isinstance(node, GrandStaff):
        return grammar.GRAND_STAFF
    if isinstance(node, Part):
        return f"{grammar.PART} {node.name}"
    if node.name:
        return f"{grammar.SECTION} {node.name}"
    return grammar.SECTION


def _emit(node: Node, depth: int, out: list[str]) -> None:
    indent = " " * (INDENT_UNIT * depth)
    out.append(indent + _statement(node))
    if isinstance(node, Section) and node.condensed:
        out.append(" " * (INDENT_UNIT * (depth + 1)) + grammar.CONDENSED)
    if isinstance(node, GrandStaff):
        children: list[Node] = list(node.tracks)
    elif isinstance(node, (Part, Section)):
        children = list(node.children)
    else:
        children = []
    for child in children:
        _emit(child, depth + 1, out)


def serialize(movement: Movement) -> str:
    """
    Render *movement* as movement-file text.

    Declarations keep their order, so for any movement that passes
    ``validate_movement``, ``parse_movement(serialize(m))`` rebuilds a
    movement equal to ``m``.
    """
    out: list[str] = []
    for declaration in movement.declarations:
        if isinstance(declaration, Measure):
            out.append(format_measure(declaration))
        else:
            _emit(declaration, 0, out)
    return "\n".join(out) + "\n" if out else ""
