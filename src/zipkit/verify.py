"""Archive verification.

Policy: light by default, full=True decodes every entry.
  - light: central directory parses, and every local header agrees with its
           central directory record (signature, name, method)
  - full:  light + every entry decompressed in memory with its CRC-32 checked
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from zipkit.core.byte_store import ByteStore, FileStore, MemoryStore
from zipkit.engine.archive import ArchiveCore
from zipkit.engine.zip_format import decode_name
from zipkit.errors import MalformedArchive

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class VerifyReport:
    entries: int
    files: int
    directories: int
    uncompressed_bytes: int
    compressed_bytes: int
    full: bool


def verify_archive(source: str | os.PathLike[str] | bytes, *, full: bool = False) -> VerifyReport:
    files = dirs = usize = csize = 0
    store: ByteStore
    if isinstance(source, (bytes, bytearray, memoryview)):
        store = MemoryStore(bytes(source))
    else:
        store = FileStore(Path(source), "r")

    try:
        core = ArchiveCore.open(store)
        for e in core.entries():
            hdr = core.read_local_header(e)
            local_name = decode_name(hdr.name, hdr.flags)
            if local_name != e.name:
                raise MalformedArchive(
                    f"entry {e.name!r}: local header name {local_name!r} disagrees with central directory"
                )
            if hdr.method != e.method:
                raise MalformedArchive(
                    f"entry {e.name!r}: local header method {hdr.method} disagrees with central directory ({e.method})"
                )
            if full:
                core.read_entry(e)

            if e.is_dir:
                dirs += 1
            else:
                files += 1
            usize += e.uncompressed_size
            csize += e.compressed_size
    finally:
        store.close()

    log.debug("verified %d entries (full=%s)", files + dirs, full)
    return VerifyReport(
        entries=files + dirs,
        files=files,
        directories=dirs,
        uncompressed_bytes=usize,
        compressed_bytes=csize,
        full=full,
    )
