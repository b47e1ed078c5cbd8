"""Archive assembler/reader: maps a Score to and from a zip container."""

from __future__ import annotations

import logging
import re
import zipfile
import zlib
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Final

from scof import schema as kinds
from scof.builder import parse_movement
from scof.errors import ArchiveIOError, ParseError, ScofError, UnrecognizedEntry
from scof.models import Meta, Movement, Score, Soundfont, Style, Synth
from scof.records import dump_record, load_record
from scof.schema import ContainerSchema
from scof.serializer import serialize

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX: Final[str] = ".scof"


@dataclass
class ReadResult:
    """
    Outcome of reading an archive.

    Attributes:
        score:    Everything that loaded. Entries that failed are absent
                  (movements) or left at their defaults (records).
        failures: Entry name -> error for every entry that failed to parse.
    """

    score: Score
    failures: dict[str, ScofError] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failures


def title_from_path(path: str | Path) -> str:
    """
    Derive the score title from the archive file name.

    ``/`` cannot appear in a file name, so a backslash stands in for it:
    ``My Score \\ Symphony No. 1.scof`` -> ``My Score / Symphony No. 1``.
    """
    return Path(path).stem.replace("\\", "/")


def title_to_filename(title: str) -> str:
    """Convert a score title to an archive file name (the reverse of title_from_path)."""
    sanitized = title.replace("/", "\\")
    sanitized = re.sub(r'[\x00-\x1f<>:"|?*]', "", sanitized).strip()
    return f"{sanitized or 'untitled'}{ARCHIVE_SUFFIX}"


def _decode(entry: str, payload: bytes) -> str:
    try:
        return payload.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"{entry} is not valid UTF-8 ({exc.reason}).") from exc


class ScoreReader:
    """
    Reads a score archive.

    Each entry is dispatched by name through the ``ContainerSchema``. A
    movement or record that fails to parse is reported in
    ``ReadResult.failures`` without stopping the others; problems with the
    archive itself raise ``ArchiveIOError``.
    """

    def __init__(self, schema: ContainerSchema | None = None, workers: int = 1) -> None:
        """
        Args:
            schema:  Entry layout; defaults to ``ContainerSchema()``.
            workers: Threads used to parse movements. Movements share no
                     state while parsing, so any value >= 1 is safe.
        """
        self.schema = schema or ContainerSchema()
        self.workers = max(1, workers)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _collect_entries(self, path: Path) -> dict[str, tuple[str, bytes]]:
        entries: dict[str, tuple[str, bytes]] = {}
        try:
            with zipfile.ZipFile(path) as archive:
                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    kind = self.schema.classify(info.filename)
                    if kind is None:
                        if self.schema.strict:
                            raise UnrecognizedEntry(info.filename)
                        logger.warning("skipping unrecognized entry %s", info.filename)
                        continue
                    logger.debug("reading %s entry %s", kind, info.filename)
                    entries[info.filename] = (kind, archive.read(info))
        except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
            raise ArchiveIOError(f"'{path}' is not a valid score archive: {exc}") from exc
        except (OSError, NotImplementedError, RuntimeError) as exc:
            # NotImplementedError: unsupported compression. RuntimeError: encrypted entry.
            raise ArchiveIOError(f"Could not read '{path}': {exc}") from exc
        return entries

    def _check_required(self, path: Path, entries: dict[str, tuple[str, bytes]]) -> None:
        missing = [name for name in self.schema.required if name not in entries]
        if missing:
            raise ArchiveIOError(f"'{path}' is missing required entries: {', '.join(missing)}")

        movement_count = sum(1 for kind, _ in entries.values() if kind == kinds.MOVEMENT)
        if movement_count < self.schema.min_movements:
            raise ArchiveIOError(
                f"'{path}' holds {movement_count} movement(s); "
                f"at least {self.schema.min_movements} required."
            )

    def _load_movement(self, item: tuple[str, bytes]) -> tuple[str, Movement | None, ScofError | None]:
        entry, payload = item
        try:
            text = _decode(entry, payload)
            movement = parse_movement(text, self.schema.movement_name(entry))
        except ScofError as exc:
            return entry, None, exc
        return entry, movement, None

    @staticmethod
    def _order(movements: list[Movement], meta: Meta) -> list[Movement]:
        by_name = {movement.name: movement for movement in movements}
        ordered = [by_name.pop(name) for name in meta.movement if name in by_name]
        return ordered + [m for m in movements if m.name in by_name]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def read(self, path: str | Path) -> ReadResult:
        """
        Load the archive at *path*.

        Raises:
            ArchiveIOError: If the file is missing, corrupt, or lacks
                required entries.
            UnrecognizedEntry: If the schema is strict and an entry matches
                no known pattern.
        """
        path = Path(path)
        entries = self._collect_entries(path)
        self._check_required(path, entries)

        score = Score(title=title_from_path(path))
        result = ReadResult(score=score)

        records = {kinds.META: Meta, kinds.STYLE: Style, kinds.SYNTH: Synth, kinds.SOUNDFONT: Soundfont}
        for entry, (kind, payload) in entries.items():
            if kind in records:
                try:
                    record = load_record(records[kind], _decode(entry, payload), entry)
                except ScofError as exc:
                    logger.warning("could not load %s: %s", entry, exc)
                    result.failures[entry] = exc
                    continue
                setattr(score, kind, record)
            elif kind == kinds.COVER:
                score.cover = payload
                score.cover_name = entry

        movement_items = [
            (entry, payload) for entry, (kind, payload) in entries.items() if kind == kinds.MOVEMENT
        ]
        if self.workers > 1 and len(movement_items) > 1:
            with ThreadPoolExecutor(max_workers=self.workers) as pool:
                loaded = list(pool.map(self._load_movement, movement_items))
        else:
            loaded = [self._load_movement(item) for item in movement_items]

        movements: list[Movement] = []
        for entry, movement, error in loaded:
            if error is not None:
                logger.warning("could not load %s: %s", entry, error)
                result.failures[entry] = error
            elif movement is not None:
                movements.append(movement)

        score.movements = self._order(movements, score.meta)
        return result


class ScoreWriter:
    """Writes a Score as a zip archive, one entry per movement and record."""

    def __init__(self, schema: ContainerSchema | None = None) -> None:
        self.schema = schema or ContainerSchema()

    def _cover_entry(self, cover_name: str | None) -> str:
        if cover_name is not None and self.schema.classify(cover_name) == kinds.COVER:
            return cover_name
        fallback = self.schema.cover[0]
        if cover_name is not None:
            logger.warning("cover entry %s is not allowed by the schema; writing %s", cover_name, fallback)
        return fallback

    def _entries(self, score: Score) -> dict[str, bytes]:
        names = [movement.name for movement in score.movements]
        for name in names:
            if not name or "/" in name:
                raise ArchiveIOError(f"Invalid movement name {name!r}.")
        if len(set(names)) != len(names):
            raise ArchiveIOError("Movement names must be unique within a score.")

        meta = replace(score.meta, movement=names)
        entries = {
            self.schema.meta: dump_record(meta).encode("utf-8"),
            self.schema.style: dump_record(score.style).encode("utf-8"),
            self.schema.synth: dump_record(score.synth).encode("utf-8"),
        }
        if score.soundfont.instrument:
            entries[self.schema.soundfont] = dump_record(score.soundfont).encode("utf-8")
        for movement in score.movements:
            entries[self.schema.movement_entry(movement.name)] = serialize(movement).encode("utf-8")
        if score.cover is not None:
            entries[self._cover_entry(score.cover_name)] = score.cover
        return entries

    def write(self, score: Score, path: str | Path) -> None:
        """
        Write *score* to *path*, replacing any existing file.

        Raises:
            ArchiveIOError: If the archive cannot be written or a movement
                name cannot be stored.
        """
        entries = self._entries(score)
        try:
            with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
                for name, payload in entries.items():
                    archive.writestr(name, payload)
        except OSError as exc:
            raise ArchiveIOError(f"Could not write '{path}': {exc}") from exc
        logger.info("wrote %d entries to %s", len(entries), path)


def read_score(
    path: str | Path,
    schema: ContainerSchema | None = None,
    workers: int = 1,
) -> ReadResult:
    return ScoreReader(schema=schema, workers=workers).read(path)


def write_score(score: Score, path: str | Path, schema: ContainerSchema | None = None) -> None:
    ScoreWriter(schema=schema).write(score, path)
