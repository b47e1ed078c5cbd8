"""MusicXmlExporter: converts a movement's staff layout and measures to MusicXML."""

from __future__ import annotations

import logging
from typing import Any

from scof.models import (
    BASELINE_ATTRIBUTES,
    GrandStaff,
    Measure,
    MeasureAttributes,
    Movement,
    Node,
    Part,
    Section,
    Track,
)
from scof.validator import ensure_valid

logger = logging.getLogger(__name__)


class MusicXmlExporter:
    """
    Render a movement as a MusicXML score skeleton via music21.

    Each track becomes one part; grand staves are joined with a brace and
    sections with a bracket. Every measure holds a full-measure rest and
    carries the key, time, tempo and instruction wherever the movement
    overrides them (the first measure always shows its effective values).
    """

    def __init__(self, title: str = "", composer: str | None = None) -> None:
        self.title = title
        self.composer = composer

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _music21_key(self, name: str) -> Any:
        from music21 import key

        minor = name.endswith("m")
        tonic = name[:-1] if minor else name
        # music21 spells flats with '-' and marks minor keys with a lowercase tonic.
        tonic = tonic[0] + tonic[1:].replace("b", "-")
        return key.Key(tonic.lower() if minor else tonic)

    def _fill_measure(
        self,
        number: int,
        measure: Measure,
        attributes: MeasureAttributes,
        with_directions: bool,
    ) -> Any:
        from music21 import expressions, meter, note, stream, tempo

        m21_measure = stream.Measure(number=number)
        first = number == 1
        if first or measure.time is not None:
            m21_measure.timeSignature = meter.TimeSignature(str(attributes.time))
        if first or measure.key is not None:
            m21_measure.keySignature = self._music21_key(attributes.key)
        if with_directions:
            if first or measure.tempo is not None:
                m21_measure.insert(0, tempo.MetronomeMark(number=attributes.tempo))
            if measure.instruction:
                m21_measure.insert(0, expressions.TextExpression(measure.instruction))
        m21_measure.append(note.Rest(quarterLength=attributes.time.quarter_length))
        return m21_measure

    def _build_part(
        self,
        track: Track,
        part_name: str | None,
        timeline: list[tuple[Measure, MeasureAttributes]],
        with_directions: bool,
    ) -> Any:
        from music21 import stream

        m21_part = stream.Part(id=f"T{track.id}")
        m21_part.partName = f"{part_name} ({track.label})" if part_name else track.label
        m21_part.partAbbreviation = f"T{track.id}"
        for number, (measure, attributes) in enumerate(timeline, start=1):
            m21_part.append(self._fill_measure(number, measure, attributes, with_directions))
        return m21_part

    def _add_nodes(
        self,
        nodes: list[Node],
        part_name: str | None,
        timeline: list[tuple[Measure, MeasureAttributes]],
        score: Any,
        built: list[Any],
    ) -> list[Any]:
        """Append parts for *nodes* to *score*; return the parts created here."""
        from music21 import layout

        created: list[Any] = []
        for node in nodes:
            if isinstance(node, Track):
                m21_part = self._build_part(node, part_name, timeline, with_directions=not built)
                score.insert(0, m21_part)
                built.append(m21_part)
                created.append(m21_part)
            elif isinstance(node, GrandStaff):
                staves = self._add_nodes(list(node.tracks), part_name, timeline, score, built)
                if staves:
                    score.insert(0, layout.StaffGroup(staves, name=part_name, symbol="brace"))
                created.extend(staves)
            elif isinstance(node, Part):
                created.extend(self._add_nodes(list(node.children), node.name, timeline, score, built))
            elif isinstance(node, Section):
                members = self._add_nodes(list(node.children), part_name, timeline, score, built)
                if members:
                    score.insert(0, layout.StaffGroup(members, name=node.name, symbol="bracket"))
                created.extend(members)
        return created

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_score(self, movement: Movement) -> Any:
        """
        Build a music21 ``Score`` for *movement*.

        Raises:
            StructuralViolation: If the movement does not validate.
        """
        from music21 import metadata, stream

        ensure_valid(movement)
        timeline = list(movement.iter_effective()) or [(Measure(), BASELINE_ATTRIBUTES)]

        score = stream.Score()
        score.metadata = metadata.Metadata()
        score.metadata.title = self.title or movement.name
        score.metadata.movementName = movement.name
        if self.composer:
            score.metadata.composer = self.composer

        built: list[Any] = []
        self._add_nodes(list(movement.groups), None, timeline, score, built)
        if not built:
            logger.warning("movement %s declares no tracks", movement.name or "(unnamed)")
        return score

    def to_musicxml_bytes(self, movement: Movement) -> bytes:
        from music21.musicxml.m21ToXml import GeneralObjectExporter

        exporter = GeneralObjectExporter(self.build_score(movement))
        return exporter.parse()

    def export(self, movement: Movement, output_path: str) -> None:
        """
        Write *movement* to *output_path* as MusicXML.

        Raises:
            StructuralViolation: If the movement does not validate.
            OSError: If the output file cannot be written.
        """
        content = self.to_musicxml_bytes(movement)
        with open(output_path, "wb") as fh:
            fh.write(content)
