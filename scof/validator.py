"""Validator: collects every structural problem in a movement or score."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable

from scof.errors import StructuralViolation
from scof.models import (
    TITLE_MAX_LENGTH,
    GrandStaff,
    Movement,
    Node,
    Part,
    Score,
    Section,
    Track,
)
from scof.tokenizer import COMMENT_MARKER

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Violation:
    """
    A single failed rule.

    Attributes:
        rule:    Short machine-readable rule name, e.g. ``empty-section``.
        message: Human-readable description.
        where:   Location, e.g. ``Movement 1, line 4`` or ``Meta``.
    """

    rule: str
    message: str
    where: str = ""

    def __str__(self) -> str:
        if self.where:
            return f"[{self.rule}] {self.where}: {self.message}"
        return f"[{self.rule}] {self.message}"


def _is_power_of_two(value: int) -> bool:
    return value > 0 and value & (value - 1) == 0


def _where(movement: Movement, line_no: int | None) -> str:
    label = movement.name or "movement"
    return f"{label}, line {line_no}" if line_no is not None else label


def _text_problem(text: str) -> str | None:
    """Why *text* would not survive a trip through a movement file, if it would not."""
    if COMMENT_MARKER in text:
        return f"contains the comment marker '{COMMENT_MARKER}'"
    if any(not ch.isprintable() for ch in text):
        return "contains a line break or control character"
    if text != text.strip():
        return "has leading or trailing whitespace"
    return None


def _check_text(node: Node, where: str) -> list[Violation]:
    if isinstance(node, Track):
        what, text = f"Track T{node.id} label", node.label
        if node.id < 0:
            return [Violation("track-id", f"Track id {node.id} is negative.", where)]
    elif isinstance(node, Part):
        what, text = "Part name", node.name
    elif isinstance(node, Section) and node.name is not None:
        what, text = "Section name", node.name
    else:
        return []

    if not text:
        return [Violation("name-text", f"{what} is empty.", where)]
    problem = _text_problem(text)
    if problem:
        return [Violation("name-text", f"{what} {text!r} {problem}.", where)]
    return []


def _check_tree(movement: Movement) -> list[Violation]:
    violations: list[Violation] = []
    for node in movement.walk():
        where = _where(movement, node.line_no)
        violations.extend(_check_text(node, where))
        if isinstance(node, Section) and not node.children:
            name = f"Section '{node.name}'" if node.name else "Section"
            violations.append(Violation("empty-section", f"{name} contains no parts.", where))
        elif isinstance(node, GrandStaff) and len(node.tracks) < 2:
            violations.append(
                Violation(
                    "grand-staff-size",
                    f"Grand staff needs at least two tracks, found {len(node.tracks)}.",
                    where,
                )
            )
        elif isinstance(node, Part) and not node.children:
            violations.append(
                Violation("empty-part", f"Part '{node.name}' declares no staves.", where)
            )
    return violations


def _check_measures(movement: Movement) -> list[Violation]:
    violations: list[Violation] = []
    for number, measure in enumerate(movement.measures, start=1):
        where = _where(movement, measure.line_no)
        if measure.tempo is not None and measure.tempo <= 0:
            violations.append(
                Violation("tempo", f"Measure {number}: tempo must be positive, got {measure.tempo}.", where)
            )
        if measure.time is not None:
            if measure.time.beats < 1:
                violations.append(
                    Violation(
                        "time-signature",
                        f"Measure {number}: time signature {measure.time} has no beats.",
                        where,
                    )
                )
            if not _is_power_of_two(measure.time.beat_value):
                violations.append(
                    Violation(
                        "time-signature",
                        f"Measure {number}: denominator of {measure.time} is not a power of two.",
                        where,
                    )
                )
    return violations


def validate_movement(
    movement: Movement,
    referenced_track_ids: Iterable[int] = (),
) -> list[Violation]:
    """
    Check one movement and return every violation found (possibly none).

    Args:
        movement:             Movement to check.
        referenced_track_ids: Track ids referenced from other entries, e.g.
                              synthesis channels; each must resolve.
    """
    violations = _check_tree(movement) + _check_measures(movement)

    known = movement.tracks
    for track_id in sorted(set(referenced_track_ids)):
        if track_id not in known:
            violations.append(
                Violation(
                    "unresolved-track",
                    f"Track T{track_id} is referenced but never declared.",
                    _where(movement, None),
                )
            )
    return violations


def validate_score(score: Score) -> list[Violation]:
    """Check every movement plus the score-level records."""
    violations: list[Violation] = []

    if len(score.title) > TITLE_MAX_LENGTH:
        violations.append(
            Violation(
                "title-length",
                f"Title is {len(score.title)} characters; the limit is {TITLE_MAX_LENGTH}.",
                "title",
            )
        )

    for index, chan in enumerate(score.synth.chan):
        if not 0.0 <= chan.volume <= 1.0:
            violations.append(
                Violation(
                    "synth-volume",
                    f"Channel {index} volume {chan.volume} is outside 0..1.",
                    "Synth",
                )
            )

    names = {movement.name for movement in score.movements}
    for name in score.meta.movement:
        if name not in names:
            violations.append(
                Violation("missing-movement", f"Movement '{name}' is listed but not present.", "Meta")
            )

    referenced = [chan.track for chan in score.synth.chan]
    for movement in score.movements:
        violations.extend(validate_movement(movement, referenced))

    if violations:
        logger.debug("validation found %d violation(s)", len(violations))
    return violations


def ensure_valid(target: Movement | Score) -> None:
    """
    Validate *target* and raise if anything is wrong.

    Raises:
        StructuralViolation: Carrying the full list of violations.
    """
    if isinstance(target, Score):
        violations = validate_score(target)
    else:
        violations = validate_movement(target)
    if violations:
        raise StructuralViolation(violations)
