"""Tests for reading and writing score archives (uses real zip files in tmp_path)."""

import struct
import zipfile
from pathlib import Path

import pytest

from scof.archive import ScoreReader, read_score, title_from_path, title_to_filename, write_score
from scof.builder import parse_movement
from scof.errors import ArchiveIOError, DuplicateTrackId, MalformedIndentation, MalformedRecord, UnrecognizedEntry
from scof.models import Instrument, Meta, Score, Soundfont, Synth, SynthChannel
from scof.schema import ContainerSchema

ALLEGRO = """\
P Piano
    T0 voice
    G
        T1 piano
        T2 piano
M
M C# 15/16 160 "Aggressively"
M
"""

ADAGIO = """\
P Cello
    T0 cello
M Dm 3/4 60
"""


def _sample_score() -> Score:
    return Score(
        title="Sonata",
        meta=Meta(composer="Someone", subtitle="in C#"),
        synth=Synth(chan=[SynthChannel(track=0, waveform=["sine"], volume=0.8)]),
        movements=[parse_movement(ALLEGRO, "Allegro"), parse_movement(ADAGIO, "Adagio")],
        cover=b"<svg/>",
        cover_name="cover.svg",
    )


def _write_zip(path: Path, entries: dict[str, str]) -> None:
    with zipfile.ZipFile(path, "w") as archive:
        for name, text in entries.items():
            archive.writestr(name, text)


def test_title_from_path_maps_backslash_to_slash() -> None:
    assert title_from_path("My Score \\ Symphony No. 1.scof") == "My Score / Symphony No. 1"


def test_title_to_filename_reverses_title_from_path() -> None:
    filename = title_to_filename("My Score / Symphony No. 1")
    assert filename == "My Score \\ Symphony No. 1.scof"
    assert title_from_path(filename) == "My Score / Symphony No. 1"


def test_title_to_filename_empty_title() -> None:
    assert title_to_filename("") == "untitled.scof"


def test_write_creates_expected_entries(tmp_path: Path) -> None:
    out = tmp_path / "Sonata.scof"
    write_score(_sample_score(), out)
    with zipfile.ZipFile(out) as archive:
        names = set(archive.namelist())
        allegro = archive.read("Movement/Allegro.muon").decode("utf-8")
    assert names == {
        "Meta.muon",
        "Style.muon",
        "Synth.muon",
        "Movement/Allegro.muon",
        "Movement/Adagio.muon",
        "cover.svg",
    }
    assert allegro.startswith("P Piano\n    T0 voice\n")


def test_archive_round_trip(tmp_path: Path) -> None:
    score = _sample_score()
    out = tmp_path / "Sonata.scof"
    write_score(score, out)

    result = read_score(out)
    assert result.ok
    loaded = result.score
    assert loaded.title == "Sonata"
    assert loaded.meta.composer == "Someone"
    assert loaded.meta.movement == ["Allegro", "Adagio"]
    assert loaded.synth == score.synth
    assert loaded.cover == b"<svg/>"
    assert loaded.movements == score.movements


def test_movement_order_follows_meta(tmp_path: Path) -> None:
    out = tmp_path / "order.scof"
    _write_zip(
        out,
        {
            "Movement/B.muon": ADAGIO,
            "Movement/A.muon": ALLEGRO,
            "Meta.muon": "movement:\n  - A\n  - B\n",
        },
    )
    assert [m.name for m in read_score(out).score.movements] == ["A", "B"]


def test_movement_order_without_meta_is_archive_order(tmp_path: Path) -> None:
    out = tmp_path / "order.scof"
    _write_zip(out, {"Movement/B.muon": ADAGIO, "Movement/A.muon": ALLEGRO})
    result = read_score(out)
    assert [m.name for m in result.score.movements] == ["B", "A"]
    assert result.score.meta == Meta()


def test_failed_movement_does_not_block_others(tmp_path: Path) -> None:
    out = tmp_path / "partial.scof"
    _write_zip(
        out,
        {
            "Movement/Good.muon": ALLEGRO,
            "Movement/Bad.muon": "P Piano\n  T0 voice\n",
            "Movement/Dup.muon": "P A\n    T1 a\n    T1 b\n",
        },
    )
    result = read_score(out)
    assert [m.name for m in result.score.movements] == ["Good"]
    assert isinstance(result.failures["Movement/Bad.muon"], MalformedIndentation)
    assert isinstance(result.failures["Movement/Dup.muon"], DuplicateTrackId)
    assert not result.ok


def test_bad_record_is_reported_and_defaulted(tmp_path: Path) -> None:
    out = tmp_path / "meta.scof"
    _write_zip(out, {"Movement/A.muon": ALLEGRO, "Meta.muon": "composer: [\n"})
    result = read_score(out)
    assert isinstance(result.failures["Meta.muon"], MalformedRecord)
    assert result.score.meta == Meta()
    assert len(result.score.movements) == 1


def test_parallel_workers_give_same_result(tmp_path: Path) -> None:
    out = tmp_path / "many.scof"
    score = Score(movements=[parse_movement(ALLEGRO, f"M{i}") for i in range(6)])
    write_score(score, out)
    serial = read_score(out, workers=1)
    parallel = read_score(out, workers=4)
    assert parallel.score.movements == serial.score.movements


def test_unrecognized_entry_strict(tmp_path: Path) -> None:
    out = tmp_path / "extra.scof"
    _write_zip(out, {"Movement/A.muon": ALLEGRO, "notes.txt": "hello"})
    with pytest.raises(UnrecognizedEntry) as excinfo:
        read_score(out)
    assert excinfo.value.entry == "notes.txt"


def test_unrecognized_entry_skipped_when_lenient(tmp_path: Path) -> None:
    out = tmp_path / "extra.scof"
    _write_zip(out, {"Movement/A.muon": ALLEGRO, "notes.txt": "hello"})
    result = read_score(out, schema=ContainerSchema(strict=False))
    assert result.ok
    assert len(result.score.movements) == 1


def test_missing_required_entry(tmp_path: Path) -> None:
    out = tmp_path / "req.scof"
    _write_zip(out, {"Movement/A.muon": ALLEGRO})
    schema = ContainerSchema(required=("Meta.muon", "Style.muon"))
    with pytest.raises(ArchiveIOError, match="Meta.muon, Style.muon"):
        read_score(out, schema=schema)


def test_too_few_movements(tmp_path: Path) -> None:
    out = tmp_path / "empty.scof"
    _write_zip(out, {"Meta.muon": "composer: A\n"})
    with pytest.raises(ArchiveIOError):
        read_score(out)
    assert read_score(out, schema=ContainerSchema(min_movements=0)).score.movements == []


def test_corrupt_archive(tmp_path: Path) -> None:
    out = tmp_path / "corrupt.scof"
    out.write_bytes(b"definitely not a zip file")
    with pytest.raises(ArchiveIOError):
        read_score(out)


def test_corrupt_entry_data(tmp_path: Path) -> None:
    out = tmp_path / "damaged.scof"
    write_score(Score(movements=[parse_movement(ADAGIO + "M\n" * 400, "Long")]), out)
    with zipfile.ZipFile(out) as archive:
        info = archive.getinfo("Movement/Long.muon")

    data = bytearray(out.read_bytes())
    # Local file header: 30 fixed bytes, then the name and extra field.
    name_len, extra_len = struct.unpack("<HH", data[info.header_offset + 26 : info.header_offset + 30])
    start = info.header_offset + 30 + name_len + extra_len
    for i in range(start, start + info.compress_size):
        data[i] ^= 0xFF
    out.write_bytes(bytes(data))

    with pytest.raises(ArchiveIOError):
        read_score(out)


@pytest.mark.parametrize("error", [RuntimeError("File is encrypted"), NotImplementedError("compression type 99")])
def test_unreadable_entry(tmp_path: Path, monkeypatch: pytest.MonkeyPatch, error: Exception) -> None:
    out = tmp_path / "locked.scof"
    write_score(_sample_score(), out)

    def refuse(self: zipfile.ZipFile, name: object, pwd: object = None) -> bytes:
        raise error

    monkeypatch.setattr(zipfile.ZipFile, "read", refuse)
    with pytest.raises(ArchiveIOError):
        read_score(out)


def test_missing_archive(tmp_path: Path) -> None:
    with pytest.raises(ArchiveIOError):
        ScoreReader().read(tmp_path / "nope.scof")


def test_invalid_movement_name_on_write(tmp_path: Path) -> None:
    score = Score(movements=[parse_movement(ADAGIO, "a/b")])
    with pytest.raises(ArchiveIOError):
        write_score(score, tmp_path / "x.scof")


def test_duplicate_movement_names_on_write(tmp_path: Path) -> None:
    score = Score(movements=[parse_movement(ADAGIO, "I"), parse_movement(ALLEGRO, "I")])
    with pytest.raises(ArchiveIOError):
        write_score(score, tmp_path / "x.scof")


def test_custom_schema_layout(tmp_path: Path) -> None:
    schema = ContainerSchema(meta="meta.yaml", movement_dir="movements", movement_suffix=".txt")
    out = tmp_path / "custom.scof"
    write_score(_sample_score(), out, schema=schema)
    with zipfile.ZipFile(out) as archive:
        assert "movements/Allegro.txt" in archive.namelist()
        assert "meta.yaml" in archive.namelist()
    assert read_score(out, schema=schema).ok


def test_soundfont_entry_round_trip(tmp_path: Path) -> None:
    score = _sample_score()
    score.soundfont = Soundfont(instrument=[Instrument(waveform="trumpet", mute="trumpet_straight")])
    out = tmp_path / "brass.scof"
    write_score(score, out)
    with zipfile.ZipFile(out) as archive:
        assert "Soundfont.muon" in archive.namelist()
    assert read_score(out).score.soundfont == score.soundfont


def test_cover_name_outside_schema_is_renamed(tmp_path: Path) -> None:
    score = _sample_score()
    schema = ContainerSchema(cover=("cover.png",))
    out = tmp_path / "strict-cover.scof"
    write_score(score, out, schema=schema)
    with zipfile.ZipFile(out) as archive:
        names = archive.namelist()
    assert "cover.png" in names
    assert "cover.svg" not in names

    result = read_score(out, schema=schema)
    assert result.ok
    assert result.score.cover == b"<svg/>"


def test_cover_name_kept_when_schema_allows_it(tmp_path: Path) -> None:
    out = tmp_path / "cover.scof"
    write_score(_sample_score(), out)
    assert read_score(out).score.cover_name == "cover.svg"
