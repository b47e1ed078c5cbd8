"""Container schema: which archive entries exist and which are required."""

from __future__ import annotations

from dataclasses import dataclass, fields
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Final

import yaml

from scof.errors import MalformedRecord

META: Final[str] = "meta"
STYLE: Final[str] = "style"
SYNTH: Final[str] = "synth"
SOUNDFONT: Final[str] = "soundfont"
MOVEMENT: Final[str] = "movement"
COVER: Final[str] = "cover"

ENTRY_KINDS: Final[tuple[str, ...]] = (META, STYLE, SYNTH, SOUNDFONT, MOVEMENT, COVER)


@dataclass
class ContainerSchema:
    """
    Entry layout of a score archive.

    The set of required entries is not fixed by the format yet, so it is
    configuration rather than a constant.

    Attributes:
        meta / style / synth / soundfont: Entry names of the record files.
        movement_dir:         Directory holding one entry per movement.
        movement_suffix:      Filename suffix of movement entries.
        cover:                Glob patterns accepted as the cover image.
        required:             Entry names that must be present when reading.
        min_movements:        Fewest movement entries a readable archive holds.
        strict:               Raise ``UnrecognizedEntry`` on unknown entries
                              instead of skipping them.
    """

    meta: str = "Meta.muon"
    style: str = "Style.muon"
    synth: str = "Synth.muon"
    soundfont: str = "Soundfont.muon"
    movement_dir: str = "Movement"
    movement_suffix: str = ".muon"
    cover: tuple[str, ...] = ("cover.svg", "cover.png", "cover.jpg")
    required: tuple[str, ...] = ()
    min_movements: int = 1
    strict: bool = True

    def movement_entry(self, name: str) -> str:
        return f"{self.movement_dir}/{name}{self.movement_suffix}"

    def movement_name(self, entry: str) -> str:
        stem = entry[len(self.movement_dir) + 1 :]
        return stem[: len(stem) - len(self.movement_suffix)]

    def classify(self, entry: str) -> str | None:
        """Return the entry kind for an archive member name, or ``None``."""
        if entry == self.meta:
            return META
        if entry == self.style:
            return STYLE
        if entry == self.synth:
            return SYNTH
        if entry == self.soundfont:
            return SOUNDFONT
        prefix = self.movement_dir + "/"
        if entry.startswith(prefix) and entry.endswith(self.movement_suffix):
            if "/" not in self.movement_name(entry) and self.movement_name(entry):
                return MOVEMENT
        if any(fnmatchcase(entry, pattern) for pattern in self.cover):
            return COVER
        return None

    @classmethod
    def from_yaml(cls, path: str | Path) -> ContainerSchema:
        """
        Load a schema from a YAML file; absent keys keep their defaults.

        Raises:
            MalformedRecord: If the file has unknown keys or is not a mapping.
            OSError: If the file cannot be read.
        """
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise MalformedRecord(f"{path}: schema must be a mapping.")

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise MalformedRecord(f"{path}: unknown schema key(s) {', '.join(unknown)}.")

        for key in ("cover", "required"):
            if key in data:
                data[key] = tuple(data[key])
        return cls(**data)
