"""Entry catalog: the logical directory of an archive.

Names are archive-relative, '/' separated, no leading slash, no drive.
Directory entries carry a trailing '/'. Because of that suffix the catalog key
(normalized name) also encodes the kind: "a" (file) and "a/" (directory) are
two different entries.
"""

from __future__ import annotations

import enum
import os
from collections.abc import Iterator
from dataclasses import dataclass
from typing import Union

from zipkit.errors import InvalidName

NameLike = Union[str, bytes, "os.PathLike[str]"]

# 1980-01-01 00:00:00, the DOS epoch
DEFAULT_DATE_TIME: tuple[int, int, int, int, int, int] = (1980, 1, 1, 0, 0, 0)

MODE_FILE_DEFAULT = 0o100644
MODE_DIR_DEFAULT = 0o040755
MSDOS_DIR_ATTR = 0x10


class EntryKind(enum.Enum):
    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class Entry:
    name: str
    kind: EntryKind
    method: int = 0
    crc32: int = 0
    compressed_size: int = 0
    uncompressed_size: int = 0
    offset: int = 0
    date_time: tuple[int, int, int, int, int, int] = DEFAULT_DATE_TIME
    external_attr: int = 0
    flags: int = 0

    @property
    def is_dir(self) -> bool:
        return self.kind is EntryKind.DIRECTORY

    @property
    def mode(self) -> int:
        return (self.external_attr >> 16) & 0xFFFF


def _as_text(name: NameLike) -> str:
    if isinstance(name, str):
        return name
    return os.fsdecode(os.fspath(name))


def _segments(raw: str) -> tuple[list[str], bool]:
    """Split a raw name into resolved segments; second value is True if it escapes the root."""
    s = raw.replace("\\", "/")
    if len(s) >= 2 and s[1] == ":" and s[0].isalpha():
        s = s[2:]
    parts: list[str] = []
    escaped = False
    for seg in s.split("/"):
        if seg in ("", "."):
            continue
        if seg == "..":
            if not parts:
                escaped = True
                continue
            parts.pop()
            continue
        parts.append(seg)
    return parts, escaped


def escapes_root(name: NameLike) -> bool:
    """True if the name, once normalized, would resolve above the archive root."""
    _, escaped = _segments(_as_text(name))
    return escaped


def normalize_name(name: NameLike, kind: EntryKind = EntryKind.FILE) -> str:
    raw = _as_text(name)
    if not raw:
        raise InvalidName("entry name is empty")
    if "\x00" in raw:
        raise InvalidName(f"entry name contains NUL byte: {raw!r}")

    parts, escaped = _segments(raw)
    if escaped:
        raise InvalidName(f"entry name escapes archive root: {raw!r}")
    if not parts:
        raise InvalidName(f"entry name is empty after normalization: {raw!r}")

    out = "/".join(parts)
    if kind is EntryKind.DIRECTORY:
        out += "/"
    return out


def join_name(directory: NameLike, name: str) -> str:
    d = _as_text(directory).replace("\\", "/").strip("/")
    return f"{d}/{name}" if d else name


def catalog_key(stored_name: str) -> str:
    """Lookup key for a name read from an archive (raw name if it cannot be normalized)."""
    kind = EntryKind.DIRECTORY if stored_name.endswith("/") else EntryKind.FILE
    try:
        return normalize_name(stored_name, kind)
    except InvalidName:
        return stored_name


class Catalog:
    """Insertion-ordered entries; a repeated key replaces the record in place."""

    def __init__(self) -> None:
        self._entries: dict[str, Entry] = {}

    def put(self, entry: Entry, *, key: str | None = None) -> Entry | None:
        k = entry.name if key is None else key
        old = self._entries.get(k)
        self._entries[k] = entry
        return old

    def get(self, key: str) -> Entry | None:
        return self._entries.get(key)

    def find(self, name: NameLike) -> Entry | None:
        raw = _as_text(name)
        kinds = (EntryKind.FILE, EntryKind.DIRECTORY)
        if raw.endswith(("/", "\\")):
            kinds = (EntryKind.DIRECTORY, EntryKind.FILE)

        for kind in kinds:
            try:
                k = normalize_name(raw, kind)
            except InvalidName:
                break
            e = self._entries.get(k)
            if e is not None:
                return e
        return self._entries.get(raw)

    def names(self) -> list[str]:
        return [e.name for e in self._entries.values()]

    def __iter__(self) -> Iterator[Entry]:
        return iter(list(self._entries.values()))

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, bytes, os.PathLike)):
            return False
        return self.find(name) is not None
