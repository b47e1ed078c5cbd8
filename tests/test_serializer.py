"""Unit tests for writing movements back to text."""

from scof.builder import parse_movement
from scof.models import GrandStaff, Measure, Movement, Part, Section, TimeSignature, Track
from scof.serializer import format_measure, serialize
from scof.validator import validate_movement


def _sample_movement() -> Movement:
    return Movement(
        name="Allegro",
        declarations=[
            Part(
                name="Piano",
                children=[
                    Track(0, "voice"),
                    GrandStaff(tracks=[Track(1, "piano"), Track(2, "piano")]),
                ],
            ),
            Section(
                name="Strings",
                condensed=True,
                children=[
                    Part(name="Violin I", children=[Track(3, "violin")]),
                    Section(children=[Part(name="Cello", children=[Track(4, "cello")])]),
                ],
            ),
            Measure(),
            Measure(key="C#", time=TimeSignature(15, 16), tempo=160, instruction="Aggressively"),
            Measure(instruction='say "hi" // not a comment'),
            Measure(tempo=72),
        ],
    )


def test_serialize_documentation_layout() -> None:
    movement = Movement(
        name="",
        declarations=[
            Part(
                name="Piano",
                children=[
                    Track(0, "voice"),
                    GrandStaff(tracks=[Track(1, "piano"), Track(2, "piano")]),
                ],
            )
        ],
    )
    assert serialize(movement) == (
        "P Piano\n"
        "    T0 voice\n"
        "    G\n"
        "        T1 piano\n"
        "        T2 piano\n"
    )


def test_serialize_condensed_section() -> None:
    text = serialize(_sample_movement())
    assert "S Strings\n    C\n    P Violin I\n        T3 violin\n    S\n        P Cello\n" in text


def test_format_measure_only_writes_overrides() -> None:
    assert format_measure(Measure()) == "M"
    assert format_measure(Measure(tempo=72)) == "M 72"
    assert format_measure(Measure(key="C#", time=TimeSignature(15, 16), tempo=160, instruction="Aggressively")) == (
        'M C# 15/16 160 "Aggressively"'
    )


def test_format_measure_escapes_quotes() -> None:
    assert format_measure(Measure(instruction='a "b"')) == r'M "a \"b\""'


def test_round_trip() -> None:
    movement = _sample_movement()
    assert parse_movement(serialize(movement), "Allegro") == movement


def test_round_trip_ignores_comments_and_spacing() -> None:
    text = (
        "// opening\n"
        "P Piano   // part\n"
        "\n"
        "    T0 voice\n"
        "M   D   3/4    // slower\n"
    )
    movement = parse_movement(text)
    assert serialize(movement) == "P Piano\n    T0 voice\nM D 3/4\n"
    assert parse_movement(serialize(movement)) == movement


def test_serialize_empty_movement() -> None:
    assert serialize(Movement(name="empty")) == ""


def test_format_measure_escapes_line_breaks() -> None:
    assert format_measure(Measure(instruction="rit.\npoco a poco")) == r'M "rit.\npoco a poco"'


def test_round_trip_instruction_with_line_break() -> None:
    movement = Movement(
        name="I",
        declarations=[Part(name="Piano", children=[Track(0, "piano")]), Measure(instruction="rit.\r\npoco a poco")],
    )
    text = serialize(movement)
    assert text.count("\n") == 3
    assert parse_movement(text, "I") == movement


def test_round_trip_quote_in_name() -> None:
    movement = Movement(name="I", declarations=[Part(name='12" Drum', children=[Track(0, "snare")]), Measure()])
    assert parse_movement(serialize(movement), "I") == movement


def test_blank_section_name_round_trips_as_unnamed() -> None:
    section = Section(name="", children=[Part(name="Flute", children=[Track(0, "flute")])])
    assert section.name is None
    movement = Movement(name="I", declarations=[section])
    assert serialize(movement) == "S\n    P Flute\n        T0 flute\n"
    assert parse_movement(serialize(movement), "I") == movement


def test_comment_marker_in_label_is_caught_before_writing() -> None:
    movement = Movement(name="I", declarations=[Part(name="Drums", children=[Track(0, "http://drum")])])
    assert [v.rule for v in validate_movement(movement)] == ["name-text"]
    assert parse_movement(serialize(movement), "I") != movement
