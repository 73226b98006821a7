"""Reader facade over an ArchiveCore.

Traversal policy for extract_all_to: every entry name is validated before the
first byte is written. One hostile name (resolving outside the destination,
directly via '..' or through a symlink already present in the destination)
aborts the whole extraction with PathTraversal and nothing is written. A name
that cannot be normalized counts as hostile, except directory entries naming
the destination itself ("./", "/"), which are skipped.

Not internally synchronized: serialize calls on one instance yourself.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Union

from zipkit.core.byte_store import FileStore, MemoryStore
from zipkit.core.catalog import Entry, NameLike, escapes_root, normalize_name
from zipkit.engine.archive import ArchiveCore
from zipkit.errors import ArchiveClosed, InvalidName, IoError, NotFound, PathTraversal

log = logging.getLogger(__name__)

Source = Union[str, "os.PathLike[str]", bytes, bytearray, memoryview]


class Unzip:
    def __init__(self, core: ArchiveCore):
        self._core: ArchiveCore | None = core

    # --- construction ---

    @classmethod
    def open(cls, path: str | os.PathLike[str]) -> "Unzip":
        store = FileStore(Path(path), "r")
        try:
            core = ArchiveCore.open(store)
        except BaseException:
            store.close()
            raise
        return cls(core)

    @classmethod
    def from_bytes(cls, data: bytes | bytearray | memoryview) -> "Unzip":
        return cls(ArchiveCore.open(MemoryStore(bytes(data))))

    @classmethod
    def create(cls, source: Source) -> "Unzip":
        """Open a ZIP from a path or from in-memory bytes."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            return cls.from_bytes(source)
        return cls.open(source)

    # --- state ---

    def _require_core(self) -> ArchiveCore:
        if self._core is None or self._core.closed:
            raise ArchiveClosed("reader closed")
        return self._core

    def get_path(self) -> Path | None:
        """Path of the opened archive, or None if it lives in memory."""
        return self._require_core().store.path

    @property
    def comment(self) -> bytes:
        return self._require_core().comment

    def get_entries(self) -> list[str]:
        return self._require_core().catalog.names()

    def has_entry(self, name: NameLike) -> bool:
        return self._require_core().locate(name) is not None

    def info(self, name: NameLike) -> Entry:
        e = self._require_core().locate(name)
        if e is None:
            raise NotFound(f"entry not found in archive: {os.fsdecode(name)!r}")
        return e

    # --- extraction ---

    def extract(self, name: NameLike) -> bytes:
        e = self.info(name)
        return self._require_core().read_entry(e)

    def extract_to(self, name: NameLike, path: str | os.PathLike[str]) -> None:
        e = self.info(name)
        target = Path(path)
        if e.is_dir:
            _mkdir(target)
            return
        _write_file(target, self._require_core().read_entry(e))

    def extract_all_to(self, directory: str | os.PathLike[str]) -> list[Path]:
        core = self._require_core()
        dest = Path(directory)
        plan = _plan_extraction(core.entries(), dest)

        _mkdir(dest)
        written: list[Path] = []
        for e, target in plan:
            if e.is_dir:
                _mkdir(target)
            else:
                _write_file(target, core.read_entry(e))
            written.append(target)
        log.debug("extracted %d entries to %s", len(written), dest)
        return written

    @staticmethod
    def into_dir(
        from_zip: str | os.PathLike[str],
        to_dir: str | os.PathLike[str],
        delete_zip_after: bool = False,
    ) -> None:
        """Extract a ZIP file into a directory; optionally delete the ZIP on success."""
        with Unzip.open(from_zip) as u:
            u.extract_all_to(to_dir)
        if delete_zip_after:
            try:
                Path(from_zip).unlink()
            except OSError as e:
                raise IoError(f"cannot delete {from_zip}: {e}") from e

    # --- lifecycle ---

    def close(self) -> None:
        if self._core is None:
            return
        core, self._core = self._core, None
        core.close()

    def __enter__(self) -> "Unzip":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def _plan_extraction(entries: list[Entry], dest: Path) -> list[tuple[Entry, Path]]:
    root = dest.resolve()
    plan: list[tuple[Entry, Path]] = []
    for e in entries:
        if escapes_root(e.name):
            raise PathTraversal(f"entry {e.name!r} resolves outside {dest}")
        try:
            rel = normalize_name(e.name, e.kind).rstrip("/")
        except InvalidName as err:
            if e.is_dir and "\x00" not in e.name:
                log.debug("skipping root directory entry %r", e.name)
                continue
            raise PathTraversal(f"entry {e.name!r} cannot be extracted safely: {err}") from err
        target = dest.joinpath(*rel.split("/"))
        try:
            target.resolve().relative_to(root)
        except ValueError as err:
            raise PathTraversal(f"entry {e.name!r} resolves outside {dest}") from err
        plan.append((e, target))
    return plan


def _mkdir(p: Path) -> None:
    try:
        p.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise IoError(f"cannot create directory {p}: {e}") from e


def _write_file(p: Path, data: bytes) -> None:
    _mkdir(p.parent)
    try:
        p.write_bytes(data)
    except OSError as e:
        raise IoError(f"cannot write {p}: {e}") from e
