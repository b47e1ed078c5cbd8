"""Scof CLI entry point."""

from __future__ import annotations

import logging
import sys
import zipfile
from pathlib import Path
from typing import NoReturn

import click

from scof import __version__
from scof.archive import read_score, title_to_filename, write_score
from scof.builder import parse_movement
from scof.errors import ScofError
from scof.models import Movement, Score
from scof.schema import ContainerSchema
from scof.serializer import serialize
from scof.validator import Violation, validate_movement, validate_score

EXPORT_FORMATS = {"musicxml": ".musicxml", "midi": ".mid"}


def _fail(message: str) -> NoReturn:
    click.echo(f"  ERROR: {message}", err=True)
    sys.exit(1)


def _load_schema(schema_path: str | None) -> ContainerSchema:
    if schema_path is None:
        return ContainerSchema()
    try:
        return ContainerSchema.from_yaml(schema_path)
    except (ScofError, OSError) as exc:
        _fail(f"Could not load schema — {exc}")


def _read_movement_file(path: Path) -> Movement:
    text = path.read_text(encoding="utf-8-sig")
    return parse_movement(text, name=path.stem)


def _read_archive(path: Path, schema: ContainerSchema, workers: int = 1) -> tuple[Score, dict]:
    try:
        result = read_score(path, schema=schema, workers=workers)
    except ScofError as exc:
        _fail(str(exc))
    return result.score, result.failures


def _echo_violations(violations: list[Violation]) -> None:
    for violation in violations:
        click.echo(f"  {violation}", err=True)


schema_option = click.option(
    "--schema",
    "schema_path",
    default=None,
    metavar="PATH",
    type=click.Path(exists=True, dir_okay=False),
    help="YAML file overriding the archive entry layout.",
)


# ── CLI group ──────────────────────────────────────────────────────────────────

@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="scof")
@click.option("--verbose", "-v", is_flag=True, help="Log archive and export activity to stderr.")
def main(verbose: bool) -> None:
    """Scof — read, check and convert music score containers."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


# ── check subcommand ───────────────────────────────────────────────────────────

@main.command()
@click.argument("path", type=click.Path(exists=True, dir_okay=False, readable=True))
@schema_option
@click.option(
    "--workers",
    type=click.IntRange(1, 64),
    default=1,
    show_default=True,
    help="Threads used to parse movements in parallel.",
)
def check(path: str, schema_path: str | None, workers: int) -> None:
    """
    Parse and validate a score archive or a single movement file.

    All problems are reported in one pass; the exit status is 1 if any
    were found.

    \b
    Examples:
      scof check "Symphony No. 1.scof"
      scof check Movement/Allegro.muon
    """
    source = Path(path)
    violations: list[Violation] = []

    if zipfile.is_zipfile(source):
        score, failures = _read_archive(source, _load_schema(schema_path), workers)
        for entry, error in failures.items():
            click.echo(f"  ERROR: {entry}: {error}", err=True)
        violations = validate_score(score)
        checked = f"{len(score.movements)} movement(s)"
        problems = len(failures) + len(violations)
    else:
        try:
            movement = _read_movement_file(source)
        except ScofError as exc:
            _fail(f"{source.name}: {exc}")
        violations = validate_movement(movement)
        checked = f"{len(movement.measures)} measure(s), {len(movement.tracks)} track(s)"
        problems = len(violations)

    _echo_violations(violations)
    if problems:
        click.echo(f"{source.name}: {problems} problem(s) in {checked}.", err=True)
        sys.exit(1)
    click.echo(f"{source.name}: OK ({checked}).")


# ── fmt subcommand ─────────────────────────────────────────────────────────────

@main.command()
@click.argument("movement_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option("--write", "-w", is_flag=True, help="Rewrite the file in place instead of printing.")
def fmt(movement_file: str, write: bool) -> None:
    """
    Re-indent a movement file into canonical form.

    Comments are dropped and measure arguments are normalized.
    """
    source = Path(movement_file)
    try:
        movement = _read_movement_file(source)
    except ScofError as exc:
        _fail(f"{source.name}: {exc}")

    text = serialize(movement)
    if not write:
        click.echo(text, nl=False)
        return
    try:
        source.write_text(text, encoding="utf-8")
    except OSError as exc:
        _fail(f"Could not write '{source}' — {exc}")
    click.echo(f"Formatted {source}.")


# ── info subcommand ────────────────────────────────────────────────────────────

@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, readable=True))
@schema_option
def info(archive: str, schema_path: str | None) -> None:
    """Summarize the metadata and movements of a score archive."""
    score, failures = _read_archive(Path(archive), _load_schema(schema_path))

    click.echo(f"Title    : {score.title}")
    click.echo(f"Composer : {score.meta.composer}")
    if score.meta.subtitle:
        click.echo(f"Subtitle : {score.meta.subtitle}")
    click.echo(f"Movements: {len(score.movements)}")
    for movement in score.movements:
        tracks = ", ".join(f"T{t.id} {t.label}" for t in movement.tracks.values())
        click.echo(f"  {movement.name}: {len(movement.measures)} measure(s) | {tracks or 'no tracks'}")
    for entry, error in failures.items():
        click.echo(f"  ERROR: {entry}: {error}", err=True)


# ── new subcommand ─────────────────────────────────────────────────────────────

@main.command()
@click.option("--title", default="Untitled Score", show_default=True, help="Score title.")
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination archive. Defaults to a file name derived from --title.",
)
@schema_option
def new(title: str, output: str | None, schema_path: str | None) -> None:
    """Create a score archive holding one default piano movement."""
    resolved_output = output if output is not None else title_to_filename(title)
    try:
        write_score(Score.default(title), resolved_output, schema=_load_schema(schema_path))
    except ScofError as exc:
        _fail(str(exc))
    click.echo(f"Created '{resolved_output}'.")


# ── add subcommand ─────────────────────────────────────────────────────────────

@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.argument("movement_file", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option("--name", default=None, help="Movement name. Defaults to the file name stem.")
@schema_option
def add(archive: str, movement_file: str, name: str | None, schema_path: str | None) -> None:
    """Add (or replace) a movement in a score archive from a movement file."""
    schema = _load_schema(schema_path)
    score, failures = _read_archive(Path(archive), schema)
    if failures:
        _fail(f"'{archive}' has entries that failed to load; fix them first.")

    try:
        movement = _read_movement_file(Path(movement_file))
    except ScofError as exc:
        _fail(f"{Path(movement_file).name}: {exc}")
    if name is not None:
        movement.name = name

    replaced = any(m.name == movement.name for m in score.movements)
    score.movements = [m if m.name != movement.name else movement for m in score.movements]
    if not replaced:
        score.movements.append(movement)

    try:
        write_score(score, archive, schema=schema)
    except ScofError as exc:
        _fail(str(exc))
    verb = "Replaced" if replaced else "Added"
    click.echo(f"{verb} movement '{movement.name}' in '{archive}'.")


# ── export subcommand ──────────────────────────────────────────────────────────

@main.command()
@click.argument("archive", type=click.Path(exists=True, dir_okay=False, readable=True))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(sorted(EXPORT_FORMATS), case_sensitive=False),
    default="musicxml",
    show_default=True,
    help="musicxml: staff layout and measures via music21. midi: tempo map and named tracks.",
)
@click.option("--movement", "movement_name", default=None, help="Movement to export. Defaults to the first.")
@click.option(
    "--output",
    "-o",
    default=None,
    metavar="PATH",
    help="Destination file. Defaults to the movement name with the format's extension.",
)
@schema_option
def export(
    archive: str,
    output_format: str,
    movement_name: str | None,
    output: str | None,
    schema_path: str | None,
) -> None:
    """
    Export one movement of a score archive as MusicXML or MIDI.

    \b
    Examples:
      scof export score.scof
      scof export score.scof --format midi --movement Allegro -o allegro.mid
    """
    score, failures = _read_archive(Path(archive), _load_schema(schema_path))
    for entry, error in failures.items():
        click.echo(f"  WARNING: skipped {entry}: {error}", err=True)
    if not score.movements:
        _fail(f"'{archive}' has no readable movements.")

    if movement_name is None:
        movement = score.movements[0]
    else:
        try:
            movement = score.movement(movement_name)
        except KeyError:
            _fail(f"No movement named '{movement_name}'.")

    normalized_format = output_format.lower()
    resolved_output = output if output is not None else f"{movement.name}{EXPORT_FORMATS[normalized_format]}"

    click.echo(f"scof v{__version__}")
    click.echo(f"  Score    : {score.title}")
    click.echo(f"  Movement : {movement.name}")
    click.echo(f"  Format   : {normalized_format}")
    click.echo(f"  Output   : {resolved_output}")
    click.echo()

    try:
        if normalized_format == "midi":
            from scof.midi_exporter import MidiExporter

            MidiExporter().export(movement, resolved_output)
        else:
            from scof.musicxml_exporter import MusicXmlExporter

            MusicXmlExporter(title=score.title, composer=score.meta.composer).export(
                movement, resolved_output
            )
    except OSError as exc:
        _fail(f"Could not write output file — {exc}")
    except ScofError as exc:
        _fail(f"Could not export movement — {exc}")

    click.echo(f"Done!  Wrote '{resolved_output}'.")
