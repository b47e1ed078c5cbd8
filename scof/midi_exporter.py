"""MidiExporter: writes a movement's tempo map and track layout as a MIDI file."""

from __future__ import annotations

import logging
from math import log2

from midiutil import MIDIFile
from midiutil.MidiFile import FLATS, MAJOR, MINOR, SHARPS

from scof.models import (
    BASELINE_ATTRIBUTES,
    GrandStaff,
    MeasureAttributes,
    Movement,
    Node,
    Part,
    Section,
    Track,
)
from scof.validator import ensure_valid

logger = logging.getLogger(__name__)

# Format 1 MIDI: track 0 is the conductor track (tempo, meter, key, text).
# Score tracks follow from MIDI track 1 onwards in declaration order.
TRACK_CONDUCTOR = 0

# Position of each natural tonic on the circle of fifths, relative to C.
_LETTER_FIFTHS: dict[str, int] = {"F": -1, "C": 0, "G": 1, "D": 2, "A": 3, "E": 4, "B": 5}


def key_to_fifths(key: str) -> tuple[int, bool]:
    """
    Convert a key name to (sharps > 0 / flats < 0, is_minor).

    ``C`` -> (0, False), ``Bb`` -> (-2, False), ``C#m`` -> (4, True).
    """
    minor = key.endswith("m")
    tonic = key[:-1] if minor else key
    fifths = _LETTER_FIFTHS[tonic[0]]
    for accidental in tonic[1:]:
        fifths += 7 if accidental == "#" else -7
    if minor:
        fifths -= 3
    return fifths, minor


def _named_tracks(nodes: list[Node], part_name: str | None) -> list[tuple[str, Track]]:
    named: list[tuple[str, Track]] = []
    for node in nodes:
        if isinstance(node, Track):
            name = f"{part_name} ({node.label})" if part_name else node.label
            named.append((name, node))
        elif isinstance(node, GrandStaff):
            named.extend(_named_tracks(list(node.tracks), part_name))
        elif isinstance(node, Part):
            named.extend(_named_tracks(list(node.children), node.name))
        elif isinstance(node, Section):
            named.extend(_named_tracks(list(node.children), part_name))
    return named


class MidiExporter:
    """
    Writes a Standard MIDI File (format 1) describing a movement's timeline.

    Track layout
    ------------
    Track 0: conductor with tempo, time signature, key signature and
    instruction text at every measure where the effective value changes.

    Tracks 1..n: one empty, named track per score track, so a sequencer
    opens the file with the staff layout already in place.

    Timing
    ------
    Measure start times are in quarter-note beats; each measure lasts
    ``beats * 4 / beat_value`` beats of its effective time signature.
    """

    CLOCKS_PER_TICK = 24  # MIDI clocks per metronome click

    def __init__(self, include_key_signatures: bool = True) -> None:
        """
        Args:
            include_key_signatures: Emit key signature meta events. Keys that
                need more than seven sharps or flats are always skipped.
        """
        self.include_key_signatures = include_key_signatures

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _add_key(self, midi: MIDIFile, time: float, key: str) -> None:
        fifths, minor = key_to_fifths(key)
        if abs(fifths) > 7:
            logger.warning("key %s has no MIDI key signature; skipped", key)
            return
        midi.addKeySignature(
            TRACK_CONDUCTOR,
            time,
            abs(fifths),
            SHARPS if fifths >= 0 else FLATS,
            MINOR if minor else MAJOR,
        )

    def _add_changes(
        self,
        midi: MIDIFile,
        time: float,
        current: MeasureAttributes,
        previous: MeasureAttributes | None,
    ) -> None:
        if previous is None or current.tempo != previous.tempo:
            midi.addTempo(TRACK_CONDUCTOR, time, current.tempo)
        if previous is None or current.time != previous.time:
            midi.addTimeSignature(
                TRACK_CONDUCTOR,
                time,
                current.time.beats,
                int(log2(current.time.beat_value)),
                self.CLOCKS_PER_TICK,
            )
        if self.include_key_signatures and (previous is None or current.key != previous.key):
            self._add_key(midi, time, current.key)
        if current.instruction and (previous is None or current.instruction != previous.instruction):
            midi.addText(TRACK_CONDUCTOR, time, current.instruction)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, movement: Movement) -> MIDIFile:
        """
        Build the in-memory MIDI file for *movement*.

        Raises:
            StructuralViolation: If the movement does not validate.
        """
        ensure_valid(movement)
        named = _named_tracks(list(movement.groups), None)

        midi = MIDIFile(numTracks=len(named) + 1, removeDuplicates=False, deinterleave=False)
        midi.addTrackName(TRACK_CONDUCTOR, 0, movement.name or "Conductor")
        for offset, (name, _track) in enumerate(named, start=1):
            midi.addTrackName(offset, 0, name)

        time = 0.0
        previous: MeasureAttributes | None = None
        for _measure, attributes in movement.iter_effective():
            self._add_changes(midi, time, attributes, previous)
            time += attributes.time.quarter_length
            previous = attributes

        if previous is None:
            midi.addTempo(TRACK_CONDUCTOR, 0, BASELINE_ATTRIBUTES.tempo)
        return midi

    def export(self, movement: Movement, output_path: str) -> None:
        """
        Write *movement* to *output_path* as a MIDI file.

        Raises:
            StructuralViolation: If the movement does not validate.
            OSError: If the output file cannot be opened for writing.
        """
        midi = self.build(movement)
        with open(output_path, "wb") as f:
            midi.writeFile(f)
        logger.info("wrote MIDI tempo map for %s to %s", movement.name or "movement", output_path)
