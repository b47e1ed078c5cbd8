"""Object model builder: converts a ParseTree into a Movement."""

from __future__ import annotations

from scof import grammar
from scof.errors import DuplicateTrackId
from scof.grammar import Node, ParseTree
from scof.models import GrandStaff, Measure, Movement, Part, Section, Track


class MovementBuilder:
    """
    Walks a ``ParseTree`` once and produces the matching ``Movement``.

    Track ids are checked for uniqueness across the whole movement as they
    are encountered.
    """

    def __init__(self, tree: ParseTree) -> None:
        self.tree = tree
        self._track_lines: dict[int, int] = {}

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _track(self, node: Node) -> Track:
        track_id = node.values["id"]
        if track_id in self._track_lines:
            raise DuplicateTrackId(track_id, self._track_lines[track_id], node.line_no)
        self._track_lines[track_id] = node.line_no
        return Track(id=track_id, label=node.values["label"], line_no=node.line_no)

    def _grand_staff(self, node: Node) -> GrandStaff:
        tracks = [self._track(child) for child in self.tree.children_of(node)]
        return GrandStaff(tracks=tracks, line_no=node.line_no)

    def _part(self, node: Node) -> Part:
        part = Part(name=node.values["name"], line_no=node.line_no)
        for child in self.tree.children_of(node):
            if child.keyword == grammar.TRACK:
                part.children.append(self._track(child))
            elif child.keyword == grammar.GRAND_STAFF:
                part.children.append(self._grand_staff(child))
            else:
                part.children.append(self._section(child))
        return part

    def _section(self, node: Node) -> Section:
        section = Section(name=node.values["name"], line_no=node.line_no)
        for child in self.tree.children_of(node):
            if child.keyword == grammar.CONDENSED:
                section.condensed = True
            elif child.keyword == grammar.PART:
                section.children.append(self._part(child))
            else:
                section.children.append(self._section(child))
        return section

    def _measure(self, node: Node) -> Measure:
        return Measure(line_no=node.line_no, **node.values)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, name: str) -> Movement:
        """
        Produce the movement described by the tree.

        Raises:
            DuplicateTrackId: If two tracks share an id.
        """
        self._track_lines.clear()
        movement = Movement(name=name)
        for node in self.tree.top_level():
            if node.keyword == grammar.PART:
                movement.declarations.append(self._part(node))
            elif node.keyword == grammar.SECTION:
                movement.declarations.append(self._section(node))
            else:
                movement.declarations.append(self._measure(node))
        return movement


def build_movement(tree: ParseTree, name: str = "") -> Movement:
    return MovementBuilder(tree).build(name)


def parse_movement(text: str, name: str = "") -> Movement:
    """Tokenize, parse and build a movement from its text form."""
    return build_movement(grammar.parse(text), name)
