"""Exception hierarchy for reading, building and validating score files."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scof.validator import Violation


class ScofError(ValueError):
    """Base class for every error raised by the scof package."""


# ── Grammar errors ─────────────────────────────────────────────────────────────

class ParseError(ScofError):
    """A movement file could not be tokenized or parsed."""

    def __init__(self, message: str, line_no: int | None = None) -> None:
        self.line_no = line_no
        if line_no is not None:
            message = f"line {line_no}: {message}"
        super().__init__(message)


class MalformedIndentation(ParseError):
    """Leading whitespace is not a whole number of indentation units."""


class UnknownKeyword(ParseError):
    """A line starts with a keyword the grammar does not define."""


class ArityMismatch(ParseError):
    """A keyword received missing, extra or malformed arguments."""


class OrphanChild(ParseError):
    """A child-only statement (T, G, C) appears at the top level."""


class UnexpectedChild(ParseError):
    """A statement is nested under a parent that cannot own it."""


# ── Model errors ───────────────────────────────────────────────────────────────

class DuplicateTrackId(ScofError):
    """Two tracks in one movement share a numeric id."""

    def __init__(self, track_id: int, first_line: int | None, second_line: int | None) -> None:
        self.track_id = track_id
        self.first_line = first_line
        self.second_line = second_line
        where = ""
        if first_line is not None and second_line is not None:
            where = f" (lines {first_line} and {second_line})"
        super().__init__(f"Track T{track_id} is declared more than once{where}.")


class StructuralViolation(ScofError):
    """One or more validator rules failed; ``violations`` holds all of them."""

    def __init__(self, violations: list[Violation]) -> None:
        self.violations = list(violations)
        lines = "\n".join(f"  - {v}" for v in self.violations)
        super().__init__(f"{len(self.violations)} structural violation(s):\n{lines}")


# ── Container errors ───────────────────────────────────────────────────────────

class UnrecognizedEntry(ScofError):
    """An archive entry matches none of the configured entry patterns."""

    def __init__(self, entry: str) -> None:
        self.entry = entry
        super().__init__(f"Unrecognized archive entry '{entry}'.")


class MalformedRecord(ScofError):
    """A metadata, style or synthesis entry is not a valid record."""


class ArchiveIOError(ScofError):
    """The archive itself cannot be read or is missing required entries."""
