"""Data models for a score: movements, their staff tree, measures and records."""

from __future__ import annotations

import re
from dataclasses import dataclass, field, replace
from typing import Final, Iterator, Union

TITLE_MAX_LENGTH: Final[int] = 64
DEFAULT_TITLE: Final[str] = "Untitled Score"
DEFAULT_COMPOSER: Final[str] = "Anonymous"

_TIME_RE = re.compile(r"^(\d+)/(\d+)$")


@dataclass(frozen=True)
class TimeSignature:
    """A time signature such as 4/4 or 15/16."""

    beats: int
    beat_value: int

    @classmethod
    def parse(cls, text: str) -> TimeSignature:
        match = _TIME_RE.match(text.strip())
        if not match:
            raise ValueError(f"Invalid time signature '{text}'.")
        return cls(int(match.group(1)), int(match.group(2)))

    @property
    def quarter_length(self) -> float:
        """Length of one full measure in quarter notes."""
        return self.beats * 4.0 / self.beat_value

    def __str__(self) -> str:
        return f"{self.beats}/{self.beat_value}"


@dataclass(frozen=True)
class MeasureAttributes:
    """Fully resolved attributes of one measure."""

    key: str
    time: TimeSignature
    tempo: int
    instruction: str | None = None


BASELINE_ATTRIBUTES: Final[MeasureAttributes] = MeasureAttributes(
    key="C",
    time=TimeSignature(4, 4),
    tempo=120,
    instruction=None,
)


@dataclass
class Measure:
    """
    One measure of the movement timeline.

    Every attribute is a sparse override: ``None`` means "same as the
    previous measure".
    """

    key: str | None = None
    time: TimeSignature | None = None
    tempo: int | None = None
    instruction: str | None = None
    line_no: int | None = field(default=None, compare=False, repr=False)

    @property
    def has_overrides(self) -> bool:
        return any(v is not None for v in (self.key, self.time, self.tempo, self.instruction))

    def apply_to(self, previous: MeasureAttributes) -> MeasureAttributes:
        """Resolve this measure's overrides on top of *previous*."""
        return replace(
            previous,
            key=self.key if self.key is not None else previous.key,
            time=self.time if self.time is not None else previous.time,
            tempo=self.tempo if self.tempo is not None else previous.tempo,
            instruction=self.instruction if self.instruction is not None else previous.instruction,
        )


@dataclass
class Track:
    """A single staff line, referenced elsewhere by its numeric id."""

    id: int
    label: str
    line_no: int | None = field(default=None, compare=False, repr=False)


@dataclass
class GrandStaff:
    """Two or more tracks rendered as one bracketed staff group."""

    tracks: list[Track] = field(default_factory=list)
    line_no: int | None = field(default=None, compare=False, repr=False)


@dataclass
class Part:
    """A named instrumental part owning tracks, grand staves and sections."""

    name: str
    children: list[PartChild] = field(default_factory=list)
    line_no: int | None = field(default=None, compare=False, repr=False)


@dataclass
class Section:
    """A group of parts forming one orchestral system."""

    name: str | None = None
    condensed: bool = False
    children: list[SectionChild] = field(default_factory=list)
    line_no: int | None = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        # A bare `S` and `S` with a blank name are the same section.
        if self.name is not None and not self.name.strip():
            self.name = None


PartChild = Union[Track, GrandStaff, Section]
SectionChild = Union[Part, Section]
Declaration = Union[Part, Section, Measure]
Node = Union[Part, Section, GrandStaff, Track]


def child_nodes(node: Node) -> list[Node]:
    """Return the direct children of a tree node in declaration order."""
    if isinstance(node, GrandStaff):
        return list(node.tracks)
    if isinstance(node, (Part, Section)):
        return list(node.children)
    return []


@dataclass
class Movement:
    """One movement: a staff tree plus a flat, ordered measure timeline."""

    name: str
    declarations: list[Declaration] = field(default_factory=list)

    @property
    def measures(self) -> list[Measure]:
        return [d for d in self.declarations if isinstance(d, Measure)]

    @property
    def groups(self) -> list[Part | Section]:
        """Top-level parts and sections."""
        return [d for d in self.declarations if not isinstance(d, Measure)]

    @property
    def tracks(self) -> dict[int, Track]:
        return {node.id: node for node in self.walk() if isinstance(node, Track)}

    def walk(self) -> Iterator[Node]:
        """Yield every node of the staff tree, depth first, in source order."""
        stack: list[Node] = list(reversed(self.groups))
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(child_nodes(node)))

    def effective_attributes(self, index: int) -> MeasureAttributes:
        """
        Resolve the attributes in force at measure *index*.

        Each field comes from the nearest measure at or before *index* that
        overrides it, falling back to ``BASELINE_ATTRIBUTES``.

        Raises:
            IndexError: If *index* is outside the measure list.
        """
        measures = self.measures
        if not -len(measures) <= index < len(measures):
            raise IndexError(f"Measure index {index} out of range ({len(measures)} measures).")
        if index < 0:
            index += len(measures)

        attributes = BASELINE_ATTRIBUTES
        for measure in measures[: index + 1]:
            attributes = measure.apply_to(attributes)
        return attributes

    def iter_effective(self) -> Iterator[tuple[Measure, MeasureAttributes]]:
        """Yield each measure with its effective attributes, in order."""
        attributes = BASELINE_ATTRIBUTES
        for measure in self.measures:
            attributes = measure.apply_to(attributes)
            yield measure, attributes

    def new_measure(self) -> Measure:
        """Append a measure that inherits everything from the one before it."""
        measure = Measure()
        self.declarations.append(measure)
        return measure

    @classmethod
    def default(cls, name: str = "Movement 1") -> Movement:
        """A piano grand staff with a single measure."""
        piano = Part(
            name="Piano",
            children=[GrandStaff(tracks=[Track(0, "piano"), Track(1, "piano")])],
        )
        return cls(name=name, declarations=[piano, Measure()])


# ── Record entries ─────────────────────────────────────────────────────────────

@dataclass
class Arranger:
    """Arranger credit: "Arranged for {ensemble} by {name}"."""

    name: str
    ensemble: str | None = None


@dataclass
class Meta:
    """Score metadata stored in the ``Meta`` entry."""

    composer: str = DEFAULT_COMPOSER
    subtitle: str | None = None
    number: int | None = None
    lyricist: str | None = None
    translator: str | None = None
    performers: str | None = None
    arranger: list[Arranger] = field(default_factory=list)
    revised: list[str] = field(default_factory=list)
    licenses: list[str] = field(default_factory=list)
    # Playing level times two, so grade 1.5 is stored as 3.
    grade: int | None = None
    movement: list[str] = field(default_factory=list)


@dataclass
class SigStyle:
    """Rendering hints for one signature."""

    tempo: str | None = None
    time_symbol: bool = False
    swing_text: str | None = None


@dataclass
class Style:
    sig: list[SigStyle] = field(default_factory=list)


@dataclass
class SynthChannel:
    """Playback settings for one track."""

    track: int
    waveform: list[str] = field(default_factory=list)
    effect: list[int] = field(default_factory=list)
    volume: float = 1.0


@dataclass
class Synth:
    """Synthesis settings stored in the ``Synth`` entry."""

    effect: list[str] = field(default_factory=list)
    chan: list[SynthChannel] = field(default_factory=list)


@dataclass
class Instrument:
    """
    One soundfont instrument: a default waveform plus optional alternatives
    for mutes, harmonics and each dynamic level.
    """

    waveform: str = ""
    mute: str | None = None
    cup_mute: str | None = None
    harmon_mute: str | None = None
    plunger_mute: str | None = None
    harmonic: str | None = None
    ppp: str | None = None
    pp: str | None = None
    p: str | None = None
    mp: str | None = None
    mf: str | None = None
    f: str | None = None
    ff: str | None = None
    fff: str | None = None


@dataclass
class Soundfont:
    """Instruments stored in the ``Soundfont`` entry."""

    instrument: list[Instrument] = field(default_factory=list)


@dataclass
class Score:
    """The whole container: records, cover image and ordered movements."""

    title: str = DEFAULT_TITLE
    meta: Meta = field(default_factory=Meta)
    style: Style = field(default_factory=Style)
    synth: Synth = field(default_factory=Synth)
    soundfont: Soundfont = field(default_factory=Soundfont)
    movements: list[Movement] = field(default_factory=list)
    cover: bytes | None = None
    cover_name: str | None = None

    def movement(self, name: str) -> Movement:
        """
        Look up a movement by name.

        Raises:
            KeyError: If no movement has that name.
        """
        for movement in self.movements:
            if movement.name == name:
                return movement
        raise KeyError(name)

    @classmethod
    def default(cls, title: str = DEFAULT_TITLE) -> Score:
        return cls(title=title, movements=[Movement.default()])
