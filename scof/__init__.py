"""Scof: a music score container of plain-text movement files in a zip archive."""

from scof.archive import ReadResult, read_score, write_score
from scof.builder import build_movement, parse_movement
from scof.errors import (
    ArchiveIOError,
    ArityMismatch,
    DuplicateTrackId,
    MalformedIndentation,
    MalformedRecord,
    OrphanChild,
    ParseError,
    ScofError,
    StructuralViolation,
    UnexpectedChild,
    UnknownKeyword,
    UnrecognizedEntry,
)
from scof.grammar import parse
from scof.models import (
    GrandStaff,
    Instrument,
    Measure,
    MeasureAttributes,
    Meta,
    Movement,
    Part,
    Score,
    Section,
    Soundfont,
    Style,
    Synth,
    TimeSignature,
    Track,
)
from scof.schema import ContainerSchema
from scof.serializer import serialize
from scof.tokenizer import tokenize
from scof.validator import Violation, ensure_valid, validate_movement, validate_score

__version__ = "0.1.0"

__all__ = [
    "ArchiveIOError",
    "ArityMismatch",
    "ContainerSchema",
    "DuplicateTrackId",
    "GrandStaff",
    "Instrument",
    "MalformedIndentation",
    "MalformedRecord",
    "Measure",
    "MeasureAttributes",
    "Meta",
    "Movement",
    "OrphanChild",
    "ParseError",
    "Part",
    "ReadResult",
    "Score",
    "ScofError",
    "Section",
    "Soundfont",
    "StructuralViolation",
    "Style",
    "Synth",
    "TimeSignature",
    "Track",
    "UnexpectedChild",
    "UnknownKeyword",
    "UnrecognizedEntry",
    "Violation",
    "build_movement",
    "ensure_valid",
    "parse",
    "parse_movement",
    "read_score",
    "serialize",
    "tokenize",
    "validate_movement",
    "validate_score",
    "write_score",
]
