"""Tests for MusicXmlExporter. Require music21 and are marked as integration tests."""

from pathlib import Path

import pytest

from scof.builder import parse_movement
from scof.musicxml_exporter import MusicXmlExporter

pytest.importorskip("music21")

pytestmark = pytest.mark.integration

DOC_MOVEMENT = """\
S Voices
    P Piano
        T0 voice
        G
            T1 piano
            T2 piano
M
M C# 15/16 160 "Aggressively"
M
"""


def test_music21_key_spelling() -> None:
    exporter = MusicXmlExporter()
    assert exporter._music21_key("Bb").tonic.name == "B-"
    assert exporter._music21_key("C#m").mode == "minor"
    assert exporter._music21_key("C#m").tonic.name == "C#"


def test_build_score_has_one_part_per_track() -> None:
    score = MusicXmlExporter(title="Demo").build_score(parse_movement(DOC_MOVEMENT, "I"))
    parts = list(score.parts)
    assert [p.partName for p in parts] == ["Piano (voice)", "Piano (piano)", "Piano (piano)"]
    assert all(len(p.getElementsByClass("Measure")) == 3 for p in parts)


def test_build_score_groups_staves() -> None:
    score = MusicXmlExporter().build_score(parse_movement(DOC_MOVEMENT, "I"))
    symbols = sorted(group.symbol for group in score.getElementsByClass("StaffGroup"))
    assert symbols == ["brace", "bracket"]


def test_export_writes_musicxml(tmp_path: Path) -> None:
    out = tmp_path / "demo.musicxml"
    MusicXmlExporter(title="Demo", composer="Anonymous").export(
        parse_movement(DOC_MOVEMENT, "I"), str(out)
    )
    content = out.read_bytes()
    assert b"score-partwise" in content
    assert b"Aggressively" in content
    assert b"<beats>15</beats>" in content
    assert b"Piano (voice)" in content
