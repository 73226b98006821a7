"""Writer facade over an ArchiveCore.

Finalize is explicit: close() (or leaving a `with` block) never writes the
central directory, so an unfinalized file-backed archive stays on disk as a
partial, unreadable file.

Not internally synchronized: serialize calls on one instance yourself.
"""

from __future__ import annotations

import logging
import os
import stat
import time
from pathlib import Path

from zipkit.core.byte_store import FileStore, MemoryStore
from zipkit.core.catalog import Entry, EntryKind, NameLike, join_name
from zipkit.core.codec import METHOD_DEFLATE, method_id
from zipkit.engine.archive import ArchiveCore, check_level
from zipkit.errors import (
    ArchiveClosed,
    InvalidName,
    IoError,
    NotADirectory,
    NotAFile,
    NotFound,
    NotInMemory,
    UsageError,
)
from zipkit.zip_reader import Unzip

log = logging.getLogger(__name__)


def _mtime_date_time(st: os.stat_result) -> tuple[int, int, int, int, int, int]:
    t = time.localtime(st.st_mtime)
    return (t.tm_year, t.tm_mon, t.tm_mday, t.tm_hour, t.tm_min, t.tm_sec)


class Zip:
    def __init__(self, core: ArchiveCore, *, method: int | str = METHOD_DEFLATE):
        self._core: ArchiveCore | None = core
        self.method = method_id(method)
        self._comment = b""

    @classmethod
    def create(
        cls,
        path: str | os.PathLike[str] | None = None,
        *,
        method: int | str = METHOD_DEFLATE,
        level: int = 6,
    ) -> "Zip":
        """New archive on disk at `path`, or in memory if `path` is None."""
        m = method_id(method)
        check_level(level)  # before FileStore truncates an existing file
        store = MemoryStore() if path is None else FileStore(Path(path), "w")
        try:
            core = ArchiveCore.new(store, level=level)
        except BaseException:
            store.close()
            raise
        return cls(core, method=m)

    def _require_core(self) -> ArchiveCore:
        if self._core is None or self._core.closed:
            raise ArchiveClosed("writer closed")
        return self._core

    # --- state ---

    def get_path(self) -> Path | None:
        """Path of the archive being written, or None if it lives in memory."""
        return self._require_core().store.path

    def get_data(self) -> bytes:
        store = self._require_core().store
        if not store.in_memory:
            raise NotInMemory(f"archive is file-backed ({store.path}); read the file instead")
        return store.snapshot()

    @property
    def finalized(self) -> bool:
        return self._require_core().finalized

    def entries(self) -> list[str]:
        return self._require_core().catalog.names()

    def set_comment(self, comment: str | bytes) -> None:
        self._comment = comment.encode("utf-8") if isinstance(comment, str) else bytes(comment)

    # --- adding ---

    def add(
        self,
        entry_path: NameLike,
        data: bytes | str,
        *,
        method: int | str | None = None,
        date_time: tuple[int, int, int, int, int, int] | None = None,
    ) -> Entry:
        raw = data.encode("utf-8") if isinstance(data, str) else bytes(data)
        return self._require_core().add_entry(
            entry_path,
            raw,
            method=self.method if method is None else method,
            date_time=date_time,
        )

    def add_folder(self, entry_path: NameLike) -> Entry:
        return self._require_core().add_entry(entry_path, b"", kind=EntryKind.DIRECTORY)

    def add_from_file(self, disk_path: str | os.PathLike[str], archive_dir: NameLike = "") -> Entry:
        """Add a file from disk as `archive_dir/<basename>`."""
        p = Path(disk_path)
        if not p.exists():
            raise NotFound(f"file not found: {p}")
        if not p.is_file():
            raise NotAFile(f"not a file: {p}")
        return self._add_disk_file(p, join_name(archive_dir, p.name))

    def add_all_from(self, disk_dir: str | os.PathLike[str]) -> list[Entry]:
        """Add a directory tree; entry names are relative to the parent of `disk_dir`.

        Every directory (the root and empty ones included) gets a directory entry.
        Per level, entries are visited in name order so the output is reproducible.
        Symlinked directories are not followed. On error, entries added so far stay.
        """
        root = Path(disk_dir)
        if not root.exists():
            raise NotFound(f"directory not found: {root}")
        if not root.is_dir():
            raise NotADirectory(f"not a directory: {root}")

        base = root.name or root.resolve().name
        if not base:
            raise InvalidName(f"cannot derive an archive name for {root}")

        added: list[Entry] = []
        stack: list[tuple[Path, str]] = [(root, base)]
        while stack:
            d, rel = stack.pop()
            added.append(self._add_disk_dir(d, rel))

            try:
                with os.scandir(d) as it:
                    children = sorted(it, key=lambda de: de.name)
            except OSError as e:
                raise IoError(f"cannot list {d}: {e}") from e

            subdirs: list[tuple[Path, str]] = []
            for ch in children:
                child = Path(ch.path)
                child_rel = f"{rel}/{ch.name}"
                if ch.is_dir(follow_symlinks=False):
                    subdirs.append((child, child_rel))
                elif ch.is_symlink() and ch.is_dir():
                    log.debug("skipping symlinked directory %s", child)
                elif ch.is_file():
                    added.append(self._add_disk_file(child, child_rel))
                else:
                    log.debug("skipping special file %s", child)
            stack.extend(reversed(subdirs))

        return added

    def _add_disk_file(self, p: Path, name: str) -> Entry:
        try:
            st = p.stat()
            data = p.read_bytes()
        except OSError as e:
            raise IoError(f"cannot read {p}: {e}") from e
        return self._require_core().add_entry(
            name,
            data,
            method=self.method,
            date_time=_mtime_date_time(st),
            mode=stat.S_IFREG | stat.S_IMODE(st.st_mode),
        )

    def _add_disk_dir(self, p: Path, name: str) -> Entry:
        try:
            st = p.stat()
        except OSError as e:
            raise IoError(f"cannot stat {p}: {e}") from e
        return self._require_core().add_entry(
            name,
            b"",
            kind=EntryKind.DIRECTORY,
            date_time=_mtime_date_time(st),
            mode=stat.S_IFDIR | stat.S_IMODE(st.st_mode),
        )

    # --- lifecycle ---

    def finalize(self) -> None:
        self._require_core().finalize(self._comment)

    def into_reader(self) -> Unzip:
        """Hand the finalized archive to a reader without re-parsing it.

        The writer is detached afterwards; the reader owns the byte store.
        """
        core = self._require_core()
        if not core.finalized:
            raise UsageError("finalize the archive before reading it back")
        self._core = None
        return Unzip(core)

    def close(self) -> None:
        if self._core is None:
            return
        core, self._core = self._core, None
        core.close()

    def __enter__(self) -> "Zip":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
