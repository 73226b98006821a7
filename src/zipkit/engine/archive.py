"""Archive core: the state shared by the writer (Zip) and the reader (Unzip).

One ArchiveCore owns exactly one ByteStore and one Catalog.

Lifecycle:
  new(store)   -> writing; entries are appended as local header + payload
  finalize()   -> central directory + EOCD appended, core becomes read-only
  open(store)  -> reading; catalog parsed from the central directory, entry data
                  is only decoded on demand

A re-added name replaces its catalog record; the stale bytes stay in the store
as unreachable padding (the central directory only points at final offsets).

Not internally synchronized.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from zipkit.core.byte_store import ByteStore
from zipkit.core.catalog import (
    DEFAULT_DATE_TIME,
    MODE_DIR_DEFAULT,
    MODE_FILE_DEFAULT,
    MSDOS_DIR_ATTR,
    Catalog,
    Entry,
    EntryKind,
    NameLike,
    catalog_key,
    normalize_name,
)
from zipkit.core.codec import METHOD_DEFLATE, METHOD_STORE, crc32, get_codec, method_id, method_name
from zipkit.engine.zip_format import (
    EOCD_LEN,
    FLAG_ENCRYPTED,
    LOCAL_HEADER_LEN,
    MAX_COMMENT_LEN,
    MAX_ENTRIES,
    MAX_EOCD_SCAN,
    MAX_U32,
    SIG_ZIP64_EOCD_LOCATOR,
    LocalHeader,
    decode_name,
    encode_name,
    find_end_record,
    from_dos_datetime,
    pack_central_record,
    pack_end_record,
    pack_local_header,
    to_dos_datetime,
    unpack_central_directory,
    unpack_local_header,
)
from zipkit.errors import (
    AlreadyFinalized,
    ArchiveClosed,
    ChecksumMismatch,
    MalformedArchive,
    UnsupportedFeature,
    UsageError,
)

log = logging.getLogger(__name__)

ZIP64_LOCATOR_LEN = 20


@dataclass
class EntryHandle:
    """A validated, not yet written entry (returned by begin_entry)."""

    name: str
    kind: EntryKind
    date_time: tuple[int, int, int, int, int, int] = DEFAULT_DATE_TIME
    mode: int | None = None
    written: bool = field(default=False, repr=False)


def check_level(level: int) -> int:
    if isinstance(level, bool) or not isinstance(level, int) or not (0 <= level <= 9):
        raise UsageError(f"deflate level must be 0..9, got {level!r}")
    return level


def _external_attr(kind: EntryKind, mode: int | None) -> int:
    if kind is EntryKind.DIRECTORY:
        m = mode if mode is not None else MODE_DIR_DEFAULT
        return ((m & 0xFFFF) << 16) | MSDOS_DIR_ATTR
    m = mode if mode is not None else MODE_FILE_DEFAULT
    return (m & 0xFFFF) << 16


class ArchiveCore:
    def __init__(
        self,
        store: ByteStore,
        catalog: Catalog,
        *,
        finalized: bool,
        comment: bytes = b"",
        level: int = 6,
    ):
        self._store: ByteStore | None = store
        self._catalog = catalog
        self._finalized = finalized
        self._comment = comment
        self.level = level

    # --- construction ---

    @classmethod
    def new(cls, store: ByteStore, *, level: int = 6) -> "ArchiveCore":
        check_level(level)
        if store.size != 0:
            raise UsageError("archive core: a new archive needs an empty byte store")
        return cls(store, Catalog(), finalized=False, level=level)

    @classmethod
    def open(cls, store: ByteStore) -> "ArchiveCore":
        catalog, comment = _parse_catalog(store)
        log.debug("opened archive (%d entries, %d bytes)", len(catalog), store.size)
        return cls(store, catalog, finalized=True, comment=comment)

    # --- state ---

    @property
    def store(self) -> ByteStore:
        if self._store is None:
            raise ArchiveClosed("archive closed")
        return self._store

    @property
    def catalog(self) -> Catalog:
        return self._catalog

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def closed(self) -> bool:
        return self._store is None

    @property
    def comment(self) -> bytes:
        return self._comment

    def entries(self) -> list[Entry]:
        return list(self._catalog)

    def close(self) -> None:
        if self._store is None:
            return
        store, self._store = self._store, None
        store.close()

    def _require_writable(self) -> ByteStore:
        store = self.store
        if self._finalized:
            raise AlreadyFinalized("archive already finalized (read-only)")
        return store

    # --- writing ---

    def begin_entry(
        self,
        name: NameLike,
        kind: EntryKind = EntryKind.FILE,
        *,
        date_time: tuple[int, int, int, int, int, int] | None = None,
        mode: int | None = None,
    ) -> EntryHandle:
        self._require_writable()
        norm = normalize_name(name, kind)
        encode_name(norm)  # fail early on names that cannot be stored
        return EntryHandle(
            name=norm,
            kind=kind,
            date_time=date_time if date_time is not None else DEFAULT_DATE_TIME,
            mode=mode,
        )

    def write_entry_data(self, handle: EntryHandle, data: bytes, method: int | str = METHOD_DEFLATE) -> Entry:
        store = self._require_writable()
        if handle.written:
            raise UsageError(f"entry handle already written: {handle.name}")

        raw = bytes(data)
        m = method_id(method)
        if handle.kind is EntryKind.DIRECTORY:
            if raw:
                raise UsageError(f"directory entries carry no data: {handle.name}")
            m = METHOD_STORE

        if len(raw) > MAX_U32:
            raise UnsupportedFeature(f"entry too large without ZIP64: {handle.name} ({len(raw)} bytes)")
        if len(self._catalog) >= MAX_ENTRIES and self._catalog.get(handle.name) is None:
            raise UnsupportedFeature(f"too many entries without ZIP64 (max {MAX_ENTRIES})")
        if store.size > MAX_U32:
            raise UnsupportedFeature("archive too large without ZIP64")

        crc = crc32(raw)
        comp = get_codec(m, level=self.level).compress(raw)
        if m == METHOD_DEFLATE and len(comp) >= len(raw):
            m = METHOD_STORE
            comp = raw

        name_b, flags = encode_name(handle.name)
        dos_time, dos_date = to_dos_datetime(handle.date_time)
        header = pack_local_header(
            name_b,
            flags=flags,
            method=m,
            dos_time=dos_time,
            dos_date=dos_date,
            crc32=crc,
            compressed_size=len(comp),
            uncompressed_size=len(raw),
        )
        offset = store.append(header + comp)
        handle.written = True

        entry = Entry(
            name=handle.name,
            kind=handle.kind,
            method=m,
            crc32=crc,
            compressed_size=len(comp),
            uncompressed_size=len(raw),
            offset=offset,
            date_time=from_dos_datetime(dos_time, dos_date),
            external_attr=_external_attr(handle.kind, handle.mode),
            flags=flags,
        )
        old = self._catalog.put(entry)
        log.debug(
            "added %s (%s, %d -> %d bytes, offset %d)%s",
            entry.name,
            method_name(m),
            entry.uncompressed_size,
            entry.compressed_size,
            offset,
            " [replaces previous record]" if old is not None else "",
        )
        return entry

    def add_entry(
        self,
        name: NameLike,
        data: bytes = b"",
        *,
        kind: EntryKind = EntryKind.FILE,
        method: int | str = METHOD_DEFLATE,
        date_time: tuple[int, int, int, int, int, int] | None = None,
        mode: int | None = None,
    ) -> Entry:
        handle = self.begin_entry(name, kind, date_time=date_time, mode=mode)
        return self.write_entry_data(handle, data, method)

    def finalize(self, comment: bytes = b"") -> None:
        store = self._require_writable()
        if len(comment) > MAX_COMMENT_LEN:
            raise UsageError(f"archive comment too long ({len(comment)} > {MAX_COMMENT_LEN} bytes)")

        cd_offset = store.size
        chunks: list[bytes] = []
        for e in self._catalog:
            name_b, _ = encode_name(e.name)
            dos_time, dos_date = to_dos_datetime(e.date_time)
            chunks.append(
                pack_central_record(
                    name_b,
                    flags=e.flags,
                    method=e.method,
                    dos_time=dos_time,
                    dos_date=dos_date,
                    crc32=e.crc32,
                    compressed_size=e.compressed_size,
                    uncompressed_size=e.uncompressed_size,
                    external_attr=e.external_attr,
                    local_header_offset=e.offset,
                )
            )
        cd = b"".join(chunks)
        if cd_offset > MAX_U32 or len(cd) > MAX_U32:
            raise UnsupportedFeature("central directory beyond 4 GiB needs ZIP64")

        store.append(cd)
        store.append(pack_end_record(count=len(self._catalog), cd_size=len(cd), cd_offset=cd_offset, comment=comment))
        store.flush()

        self._finalized = True
        self._comment = comment
        log.debug("finalized archive: %d entries, %d bytes", len(self._catalog), store.size)

    # --- reading ---

    def locate(self, name: NameLike) -> Entry | None:
        return self._catalog.find(name)

    def read_local_header(self, entry: Entry) -> LocalHeader:
        store = self.store
        fixed = store.read_at(entry.offset, LOCAL_HEADER_LEN)
        try:
            hdr, name_len = unpack_local_header(fixed)
        except MalformedArchive as e:
            raise MalformedArchive(f"entry {entry.name!r}: {e}") from e
        name = store.read_at(entry.offset + LOCAL_HEADER_LEN, name_len)
        return LocalHeader(
            flags=hdr.flags,
            method=hdr.method,
            dos_time=hdr.dos_time,
            dos_date=hdr.dos_date,
            crc32=hdr.crc32,
            compressed_size=hdr.compressed_size,
            uncompressed_size=hdr.uncompressed_size,
            name=name,
            extra_len=hdr.extra_len,
        )

    def read_entry(self, entry: Entry) -> bytes:
        """Decode one entry. Sizes and CRC always come from the central directory."""
        if entry.flags & FLAG_ENCRYPTED:
            raise UnsupportedFeature(f"entry {entry.name!r} is encrypted")
        codec = get_codec(entry.method)

        hdr = self.read_local_header(entry)
        comp = self.store.read_at(entry.offset + hdr.total_len, entry.compressed_size)

        try:
            data = codec.decompress(comp, out_size=entry.uncompressed_size)
        except MalformedArchive as e:
            raise ChecksumMismatch(f"entry {entry.name!r}: data corrupt: {e}") from e

        got = crc32(data)
        if got != entry.crc32:
            raise ChecksumMismatch(
                f"entry {entry.name!r}: CRC-32 mismatch (expected {entry.crc32:08x}, got {got:08x})"
            )
        log.debug("extracted %s (%d bytes)", entry.name, len(data))
        return data


def _parse_catalog(store: ByteStore) -> tuple[Catalog, bytes]:
    size = store.size
    if size < EOCD_LEN:
        raise MalformedArchive(f"archive too short ({size} bytes) for an end of central directory record")

    scan = min(size, MAX_EOCD_SCAN)
    tail_offset = size - scan
    end = find_end_record(store.read_at(tail_offset, scan), tail_offset)

    if end.disk != 0 or end.cd_disk != 0:
        raise UnsupportedFeature("multi-volume archives are not supported")
    if end.entries_total == 0xFFFF or end.cd_size == MAX_U32 or end.cd_offset == MAX_U32:
        loc = end.offset - ZIP64_LOCATOR_LEN
        if loc >= 0 and int.from_bytes(store.read_at(loc, 4), "little") == SIG_ZIP64_EOCD_LOCATOR:
            raise UnsupportedFeature("ZIP64 archives are not supported")
    if end.entries_on_disk != end.entries_total:
        raise MalformedArchive(
            f"entry count mismatch in EOCD (on disk {end.entries_on_disk}, total {end.entries_total})"
        )
    if end.cd_offset + end.cd_size > end.offset:
        raise MalformedArchive(
            f"central directory out of bounds (offset {end.cd_offset} + size {end.cd_size} > EOCD at {end.offset})"
        )

    cd = store.read_at(end.cd_offset, end.cd_size)
    records = unpack_central_directory(cd, end.entries_total)

    catalog = Catalog()
    for rec in records:
        name = decode_name(rec.name, rec.flags)
        if rec.disk_start != 0:
            raise UnsupportedFeature(f"entry {name!r} lives on another volume")
        if rec.local_header_offset + LOCAL_HEADER_LEN > end.cd_offset:
            raise MalformedArchive(f"entry {name!r}: local header offset {rec.local_header_offset} out of bounds")
        kind = EntryKind.DIRECTORY if name.endswith("/") else EntryKind.FILE
        entry = Entry(
            name=name,
            kind=kind,
            method=rec.method,
            crc32=rec.crc32,
            compressed_size=rec.compressed_size,
            uncompressed_size=rec.uncompressed_size,
            offset=rec.local_header_offset,
            date_time=from_dos_datetime(rec.dos_time, rec.dos_date),
            external_attr=rec.external_attr,
            flags=rec.flags,
        )
        catalog.put(entry, key=catalog_key(name))
    return catalog, end.comment
