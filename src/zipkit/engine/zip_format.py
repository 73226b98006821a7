"""ZIP on-disk records (classic, no ZIP64).

Layout written by the archive core:
  [local header 0][data 0]...[local header N-1][data N-1][central directory][EOCD]

Local file header (30 bytes + name + extra):
  sig 4B | version_needed 2B | flags 2B | method 2B | mtime 2B | mdate 2B |
  crc32 4B | comp_size 4B | uncomp_size 4B | name_len 2B | extra_len 2B

Central directory record (46 bytes + name + extra + comment):
  sig 4B | version_made_by 2B | version_needed 2B | flags 2B | method 2B |
  mtime 2B | mdate 2B | crc32 4B | comp_size 4B | uncomp_size 4B |
  name_len 2B | extra_len 2B | comment_len 2B | disk_start 2B |
  internal_attr 2B | external_attr 4B | local_header_offset 4B

End of central directory (22 bytes + comment):
  sig 4B | disk 2B | cd_disk 2B | entries_on_disk 2B | entries_total 2B |
  cd_size 4B | cd_offset 4B | comment_len 2B

All integers little endian.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass

from zipkit.errors import InvalidName, MalformedArchive

SIG_LOCAL_HEADER = 0x04034B50
SIG_CENTRAL_DIR = 0x02014B50
SIG_EOCD = 0x06054B50
SIG_ZIP64_EOCD_LOCATOR = 0x07064B50

LOCAL_HEADER = struct.Struct("<IHHHHHIIIHH")
CENTRAL_DIR = struct.Struct("<IHHHHHHIIIHHHHHII")
EOCD = struct.Struct("<IHHHHIIH")

LOCAL_HEADER_LEN = LOCAL_HEADER.size  # 30
CENTRAL_DIR_LEN = CENTRAL_DIR.size  # 46
EOCD_LEN = EOCD.size  # 22

EOCD_SIG_BYTES = struct.pack("<I", SIG_EOCD)

MAX_COMMENT_LEN = 0xFFFF
MAX_EOCD_SCAN = EOCD_LEN + MAX_COMMENT_LEN
MAX_ENTRIES = 0xFFFF
MAX_U32 = 0xFFFFFFFF

VERSION_NEEDED = 20  # 2.0: deflate + directories
VERSION_MADE_BY = (3 << 8) | 20  # Unix, APPNOTE 2.0

FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_UTF8 = 0x0800


# -------------------
# Names
# -------------------
def encode_name(name: str) -> tuple[bytes, int]:
    """Return (name bytes, flags): ASCII names stay plain, others get the UTF-8 flag."""
    try:
        return name.encode("ascii"), 0
    except UnicodeEncodeError:
        pass
    try:
        return name.encode("utf-8"), FLAG_UTF8
    except UnicodeEncodeError as e:
        raise InvalidName(f"entry name is not representable as UTF-8: {name!r}") from e


def decode_name(raw: bytes, flags: int) -> str:
    if flags & FLAG_UTF8:
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise MalformedArchive(f"entry name flagged UTF-8 is not valid UTF-8: {raw!r}") from e
    return raw.decode("cp437")


# -------------------
# DOS date/time
# -------------------
def to_dos_datetime(dt: tuple[int, int, int, int, int, int]) -> tuple[int, int]:
    year, month, day, hour, minute, second = dt
    if year < 1980:
        year, month, day, hour, minute, second = 1980, 1, 1, 0, 0, 0
    elif year > 2107:
        year, month, day, hour, minute, second = 2107, 12, 31, 23, 59, 58
    dos_date = ((year - 1980) << 9) | (month << 5) | day
    dos_time = (hour << 11) | (minute << 5) | (second // 2)
    return dos_time, dos_date


def from_dos_datetime(dos_time: int, dos_date: int) -> tuple[int, int, int, int, int, int]:
    return (
        ((dos_date >> 9) & 0x7F) + 1980,
        (dos_date >> 5) & 0x0F,
        dos_date & 0x1F,
        (dos_time >> 11) & 0x1F,
        (dos_time >> 5) & 0x3F,
        (dos_time & 0x1F) * 2,
    )


# -------------------
# Records
# -------------------
@dataclass(frozen=True)
class LocalHeader:
    flags: int
    method: int
    dos_time: int
    dos_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    name: bytes
    extra_len: int

    @property
    def total_len(self) -> int:
        return LOCAL_HEADER_LEN + len(self.name) + self.extra_len


@dataclass(frozen=True)
class CentralRecord:
    flags: int
    method: int
    dos_time: int
    dos_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    name: bytes
    disk_start: int
    external_attr: int
    local_header_offset: int
    record_len: int


@dataclass(frozen=True)
class EndRecord:
    disk: int
    cd_disk: int
    entries_on_disk: int
    entries_total: int
    cd_size: int
    cd_offset: int
    comment: bytes
    offset: int


def pack_local_header(
    name: bytes,
    *,
    flags: int,
    method: int,
    dos_time: int,
    dos_date: int,
    crc32: int,
    compressed_size: int,
    uncompressed_size: int,
) -> bytes:
    return (
        LOCAL_HEADER.pack(
            SIG_LOCAL_HEADER,
            VERSION_NEEDED,
            flags,
            method,
            dos_time,
            dos_date,
            crc32,
            compressed_size,
            uncompressed_size,
            len(name),
            0,
        )
        + name
    )


def unpack_local_header(fixed: bytes) -> tuple[LocalHeader, int]:
    """Parse the fixed 30-byte part. Returns (header without name, name_len)."""
    if len(fixed) != LOCAL_HEADER_LEN:
        raise MalformedArchive("local header truncated")
    (
        sig,
        _ver,
        flags,
        method,
        dos_time,
        dos_date,
        crc,
        csize,
        usize,
        name_len,
        extra_len,
    ) = LOCAL_HEADER.unpack(fixed)
    if sig != SIG_LOCAL_HEADER:
        raise MalformedArchive(f"local header signature invalid (0x{sig:08x})")
    hdr = LocalHeader(
        flags=flags,
        method=method,
        dos_time=dos_time,
        dos_date=dos_date,
        crc32=crc,
        compressed_size=csize,
        uncompressed_size=usize,
        name=b"",
        extra_len=extra_len,
    )
    return hdr, name_len


def pack_central_record(
    name: bytes,
    *,
    flags: int,
    method: int,
    dos_time: int,
    dos_date: int,
    crc32: int,
    compressed_size: int,
    uncompressed_size: int,
    external_attr: int,
    local_header_offset: int,
) -> bytes:
    return (
        CENTRAL_DIR.pack(
            SIG_CENTRAL_DIR,
            VERSION_MADE_BY,
            VERSION_NEEDED,
            flags,
            method,
            dos_time,
            dos_date,
            crc32,
            compressed_size,
            uncompressed_size,
            len(name),
            0,
            0,
            0,
            0,
            external_attr,
            local_header_offset,
        )
        + name
    )


def unpack_central_directory(cd: bytes, count: int) -> list[CentralRecord]:
    out: list[CentralRecord] = []
    idx = 0
    for i in range(count):
        if idx + CENTRAL_DIR_LEN > len(cd):
            raise MalformedArchive(
                f"central directory truncated: record {i} of {count} starts past its end"
            )
        (
            sig,
            _made_by,
            _ver,
            flags,
            method,
            dos_time,
            dos_date,
            crc,
            csize,
            usize,
            name_len,
            extra_len,
            comment_len,
            disk_start,
            _internal_attr,
            external_attr,
            lho,
        ) = CENTRAL_DIR.unpack_from(cd, idx)
        if sig != SIG_CENTRAL_DIR:
            raise MalformedArchive(f"central directory record {i}: signature invalid (0x{sig:08x})")

        rec_len = CENTRAL_DIR_LEN + name_len + extra_len + comment_len
        if idx + rec_len > len(cd):
            raise MalformedArchive(f"central directory record {i}: variable fields truncated")

        name = bytes(cd[idx + CENTRAL_DIR_LEN : idx + CENTRAL_DIR_LEN + name_len])
        out.append(
            CentralRecord(
                flags=flags,
                method=method,
                dos_time=dos_time,
                dos_date=dos_date,
                crc32=crc,
                compressed_size=csize,
                uncompressed_size=usize,
                name=name,
                disk_start=disk_start,
                external_attr=external_attr,
                local_header_offset=lho,
                record_len=rec_len,
            )
        )
        idx += rec_len

    if idx != len(cd):
        raise MalformedArchive(
            f"central directory size mismatch: {count} records use {idx} bytes, EOCD declares {len(cd)}"
        )
    return out


def pack_end_record(*, count: int, cd_size: int, cd_offset: int, comment: bytes = b"") -> bytes:
    return EOCD.pack(SIG_EOCD, 0, 0, count, count, cd_size, cd_offset, len(comment)) + comment


def find_end_record(tail: bytes, tail_offset: int) -> EndRecord:
    """Locate the EOCD in `tail` (the last bytes of the archive) by scanning backward.

    A candidate is accepted if its declared comment fits in the remaining bytes;
    trailing bytes after the comment are tolerated.
    """
    pos = tail.rfind(EOCD_SIG_BYTES)
    while pos >= 0:
        if pos + EOCD_LEN <= len(tail):
            (
                _sig,
                disk,
                cd_disk,
                on_disk,
                total,
                cd_size,
                cd_offset,
                comment_len,
            ) = EOCD.unpack_from(tail, pos)
            end = pos + EOCD_LEN + comment_len
            if end <= len(tail):
                return EndRecord(
                    disk=disk,
                    cd_disk=cd_disk,
                    entries_on_disk=on_disk,
                    entries_total=total,
                    cd_size=cd_size,
                    cd_offset=cd_offset,
                    comment=bytes(tail[pos + EOCD_LEN : end]),
                    offset=tail_offset + pos,
                )
        pos = tail.rfind(EOCD_SIG_BYTES, 0, pos)
    raise MalformedArchive("end of central directory record not found (not a ZIP archive?)")
