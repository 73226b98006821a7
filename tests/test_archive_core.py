from __future__ import annotations

import struct

import pytest

from zipkit.core.byte_store import MemoryStore
from zipkit.core.catalog import EntryKind
from zipkit.core.codec import METHOD_DEFLATE, METHOD_STORE
from zipkit.engine.archive import ArchiveCore
from zipkit.engine.zip_format import (
    EOCD_LEN,
    FLAG_UTF8,
    pack_end_record,
    pack_local_header,
)
from zipkit.errors import (
    AlreadyFinalized,
    ChecksumMismatch,
    InvalidName,
    IoError,
    MalformedArchive,
    UnsupportedFeature,
    UsageError,
)


def _build(entries: list[tuple[str, bytes]], *, method: str = "deflate", comment: bytes = b"") -> bytes:
    core = ArchiveCore.new(MemoryStore())
    for name, data in entries:
        core.add_entry(name, data, method=method)
    core.finalize(comment)
    return core.store.snapshot()


# Golden vectors (byte-level)
#
# These pin the record layouts; a change here is a format break.
def test_golden_empty_end_record() -> None:
    assert pack_end_record(count=0, cd_size=0, cd_offset=0) == bytes.fromhex("504b0506" + "00" * 18)


def test_golden_local_header() -> None:
    got = pack_local_header(
        b"a",
        flags=0,
        method=0,
        dos_time=0,
        dos_date=33,
        crc32=0x12345678,
        compressed_size=2,
        uncompressed_size=2,
    )
    assert got == bytes.fromhex("504b0304" "1400" "0000" "0000" "0000" "2100" "78563412" "02000000" "02000000" "0100" "0000" "61")


def test_empty_archive_is_just_an_end_record() -> None:
    blob = _build([])
    assert len(blob) == EOCD_LEN
    core = ArchiveCore.open(MemoryStore(blob))
    assert core.entries() == []


def test_begin_and_write_entry() -> None:
    core = ArchiveCore.new(MemoryStore())
    h = core.begin_entry("dir\\file.txt")
    assert h.name == "dir/file.txt"
    e = core.write_entry_data(h, b"payload " * 64, METHOD_DEFLATE)
    assert e.offset == 0
    assert e.method == METHOD_DEFLATE
    assert e.compressed_size < e.uncompressed_size == 512

    with pytest.raises(UsageError):
        core.write_entry_data(h, b"again")


def test_deflate_falls_back_to_store_for_incompressible_data() -> None:
    core = ArchiveCore.new(MemoryStore())
    e = core.add_entry("tiny", b"x", method="deflate")
    assert e.method == METHOD_STORE
    assert e.compressed_size == e.uncompressed_size == 1


def test_directory_entries_carry_no_data() -> None:
    core = ArchiveCore.new(MemoryStore())
    d = core.add_entry("folder", kind=EntryKind.DIRECTORY)
    assert d.name == "folder/"
    assert d.is_dir and d.method == METHOD_STORE and d.uncompressed_size == 0
    assert d.external_attr & 0x10
    with pytest.raises(UsageError):
        core.add_entry("other", b"data", kind=EntryKind.DIRECTORY)


@pytest.mark.parametrize("bad", ["", "../up.txt", "a/../../b", "x\x00y"])
def test_begin_entry_rejects_invalid_names(bad: str) -> None:
    core = ArchiveCore.new(MemoryStore())
    with pytest.raises(InvalidName):
        core.begin_entry(bad)


def test_finalize_twice_and_add_after_finalize() -> None:
    core = ArchiveCore.new(MemoryStore())
    core.add_entry("a", b"1")
    core.finalize()
    assert core.finalized
    with pytest.raises(AlreadyFinalized):
        core.finalize()
    with pytest.raises(AlreadyFinalized):
        core.add_entry("b", b"2")


def test_overwrite_leaves_padding_but_directory_points_at_last_copy() -> None:
    core = ArchiveCore.new(MemoryStore())
    first = core.add_entry("a.txt", b"first", method="store")
    second = core.add_entry("a.txt", b"second!", method="store")
    core.finalize()
    assert second.offset > first.offset

    blob = core.store.snapshot()
    assert b"first" in blob  # stale bytes stay

    rd = ArchiveCore.open(MemoryStore(blob))
    assert [e.name for e in rd.entries()] == ["a.txt"]
    e = rd.locate("a.txt")
    assert e is not None and e.offset == second.offset
    assert rd.read_entry(e) == b"second!"


def test_read_back_from_same_core_without_reparse() -> None:
    core = ArchiveCore.new(MemoryStore())
    core.add_entry("k", b"v" * 100)
    core.finalize()
    e = core.locate("k")
    assert e is not None
    assert core.read_entry(e) == b"v" * 100


def test_non_ascii_names_use_utf8_flag() -> None:
    blob = _build([("unicø∂e/Ω.txt", b"x"), ("plain.txt", b"y")])
    core = ArchiveCore.open(MemoryStore(blob))
    uni = core.locate("unicø∂e/Ω.txt")
    plain = core.locate("plain.txt")
    assert uni is not None and uni.flags & FLAG_UTF8
    assert plain is not None and not plain.flags & FLAG_UTF8


def test_comment_and_trailing_bytes_tolerated() -> None:
    blob = _build([("a", b"A")], comment=b"built by tests")
    core = ArchiveCore.open(MemoryStore(blob))
    assert core.comment == b"built by tests"

    # junk after the comment (some tools pad archives)
    core = ArchiveCore.open(MemoryStore(blob + b"\x00" * 100))
    assert [e.name for e in core.entries()] == ["a"]


def test_comment_too_long() -> None:
    core = ArchiveCore.new(MemoryStore())
    with pytest.raises(UsageError):
        core.finalize(b"x" * 70000)


def test_open_rejects_non_zip() -> None:
    with pytest.raises(MalformedArchive, match="too short"):
        ArchiveCore.open(MemoryStore(b"PK"))
    with pytest.raises(MalformedArchive, match="not found"):
        ArchiveCore.open(MemoryStore(b"\x00" * 4096))


def test_open_detects_count_mismatch() -> None:
    blob = bytearray(_build([("a", b"1"), ("b", b"2")]))
    eocd = len(blob) - EOCD_LEN
    # entries_total says 3 while entries_on_disk says 2
    struct.pack_into("<H", blob, eocd + 10, 3)
    with pytest.raises(MalformedArchive, match="entry count mismatch"):
        ArchiveCore.open(MemoryStore(bytes(blob)))

    # both say 3: the central directory runs out of records
    struct.pack_into("<H", blob, eocd + 8, 3)
    with pytest.raises(MalformedArchive, match="central directory"):
        ArchiveCore.open(MemoryStore(bytes(blob)))


def test_open_detects_truncated_central_directory() -> None:
    blob = bytearray(_build([("a", b"1")]))
    eocd = len(blob) - EOCD_LEN
    cd_size, cd_offset = struct.unpack_from("<II", blob, eocd + 12)
    struct.pack_into("<I", blob, eocd + 12, cd_size + 1000)
    with pytest.raises(MalformedArchive, match="out of bounds"):
        ArchiveCore.open(MemoryStore(bytes(blob)))


def test_open_detects_bad_central_signature() -> None:
    blob = bytearray(_build([("a", b"1")]))
    eocd = len(blob) - EOCD_LEN
    (cd_offset,) = struct.unpack_from("<I", blob, eocd + 16)
    blob[cd_offset] ^= 0xFF
    with pytest.raises(MalformedArchive, match="signature"):
        ArchiveCore.open(MemoryStore(bytes(blob)))


def test_open_rejects_multi_volume() -> None:
    blob = bytearray(_build([("a", b"1")]))
    eocd = len(blob) - EOCD_LEN
    struct.pack_into("<H", blob, eocd + 4, 1)
    with pytest.raises(UnsupportedFeature):
        ArchiveCore.open(MemoryStore(bytes(blob)))


def test_read_entry_checksum_and_truncation() -> None:
    blob = bytearray(_build([("a.txt", b"0123456789")], method="store"))
    core = ArchiveCore.open(MemoryStore(bytes(blob)))
    e = core.locate("a.txt")
    assert e is not None

    data_off = e.offset + 30 + len("a.txt")
    blob[data_off] ^= 0x01
    bad = ArchiveCore.open(MemoryStore(bytes(blob)))
    be = bad.locate("a.txt")
    assert be is not None
    with pytest.raises(ChecksumMismatch):
        bad.read_entry(be)

    # local header claims a name so long that the payload runs past the end
    struct.pack_into("<H", blob, e.offset + 26, 0xFFFF)
    worse = ArchiveCore.open(MemoryStore(bytes(blob)))
    we = worse.locate("a.txt")
    assert we is not None
    with pytest.raises(IoError):
        worse.read_entry(we)


def test_read_entry_bad_local_signature() -> None:
    blob = bytearray(_build([("a.txt", b"data")]))
    blob[0] ^= 0xFF
    core = ArchiveCore.open(MemoryStore(bytes(blob)))
    e = core.locate("a.txt")
    assert e is not None
    with pytest.raises(MalformedArchive, match="local header signature"):
        core.read_entry(e)


def test_level_validated() -> None:
    with pytest.raises(UsageError):
        ArchiveCore.new(MemoryStore(), level=11)
