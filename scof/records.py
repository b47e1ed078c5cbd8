"""
Record entries: the Meta, Style, Synth and Soundfont files inside the archive.

These are MuON-style ``key: value`` documents with indentation for nesting,
read and written through PyYAML. Unset optional fields are omitted on write
and take their dataclass defaults on read.
"""

from __future__ import annotations

import types
from dataclasses import asdict, fields, is_dataclass
from typing import Any, TypeVar, Union, get_args, get_origin, get_type_hints

import yaml

from scof.errors import MalformedRecord
from scof.models import Meta, Soundfont, Style, Synth

R = TypeVar("R")


def _prune(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _prune(v) for k, v in value.items() if v is not None and v != []}
    if isinstance(value, list):
        return [_prune(v) for v in value]
    return value


def _mismatch(where: str, expected: str, value: Any) -> MalformedRecord:
    return MalformedRecord(f"{where}: expected {expected}, got {type(value).__name__} {value!r}.")


def _coerce(value: Any, hint: Any, where: str) -> Any:
    """Check *value* against the field annotation *hint*, descending into lists and records."""
    origin = get_origin(hint)
    if origin in (Union, types.UnionType):
        options = [arg for arg in get_args(hint) if arg is not type(None)]
        if value is None and len(options) < len(get_args(hint)):
            return None
        return _coerce(value, options[0], where)
    if origin is list:
        if not isinstance(value, list):
            raise _mismatch(where, "a list", value)
        (item_hint,) = get_args(hint)
        return [_coerce(item, item_hint, f"{where}[{i}]") for i, item in enumerate(value)]
    if is_dataclass(hint):
        return _from_mapping(hint, value, where)
    # YAML booleans are ints to Python; keep them out of numeric fields.
    if hint is float:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise _mismatch(where, "a number", value)
        return float(value)
    if hint is int and isinstance(value, bool):
        raise _mismatch(where, "an integer", value)
    if not isinstance(value, hint):
        raise _mismatch(where, f"a {hint.__name__}", value)
    return value


def _from_mapping(cls: type[R], data: Any, where: str) -> R:
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedRecord(f"{where}: expected a mapping, got {type(data).__name__}.")

    known = {f.name for f in fields(cls)}  # type: ignore[arg-type]
    unknown = sorted(set(data) - known, key=str)
    if unknown:
        raise MalformedRecord(f"{where}: unknown field(s) {', '.join(map(str, unknown))}.")

    hints = get_type_hints(cls)
    kwargs = {name: _coerce(value, hints[name], f"{where}.{name}") for name, value in data.items()}
    try:
        return cls(**kwargs)
    except TypeError as exc:
        raise MalformedRecord(f"{where}: {exc}") from exc


def dump_record(record: Meta | Style | Synth | Soundfont) -> str:
    """Serialize a record dataclass to its text form."""
    return yaml.safe_dump(
        _prune(asdict(record)),
        sort_keys=False,
        allow_unicode=True,
        default_flow_style=False,
    )


def load_record(cls: type[R], text: str, where: str | None = None) -> R:
    """
    Parse record text into *cls* (``Meta``, ``Style``, ``Synth`` or ``Soundfont``).

    Raises:
        MalformedRecord: If the text is not valid, has unexpected fields, or a
            value does not match its field type.
    """
    where = where or cls.__name__
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise MalformedRecord(f"{where}: {exc}") from exc
    return _from_mapping(cls, data, where)


def load_meta(text: str) -> Meta:
    return load_record(Meta, text)


def load_style(text: str) -> Style:
    return load_record(Style, text)


def load_synth(text: str) -> Synth:
    return load_record(Synth, text)


def load_soundfont(text: str) -> Soundfont:
    return load_record(Soundfont, text)
