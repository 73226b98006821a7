"""Byte stores: the growable binary blob every archive lives in.

Two backings share one interface:
  - MemoryStore: bytearray, retained for the store's lifetime
  - FileStore:   a file handle, written in place and fsync'ed on flush()

All container I/O goes through append()/read_at(). Stores are not internally
synchronized.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import BinaryIO

from zipkit.errors import IoError, NotAFile, NotFound


class ByteStore(ABC):
    path: Path | None = None

    @property
    def in_memory(self) -> bool:
        return self.path is None

    @property
    @abstractmethod
    def size(self) -> int:
        raise NotImplementedError

    @abstractmethod
    def append(self, data: bytes) -> int:
        """Append data, return the offset it was written at."""
        raise NotImplementedError

    @abstractmethod
    def read_at(self, offset: int, length: int) -> bytes:
        raise NotImplementedError

    @abstractmethod
    def flush(self) -> None:
        raise NotImplementedError

    @abstractmethod
    def snapshot(self) -> bytes:
        """Copy of the current content."""
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _check_range(self, offset: int, length: int) -> None:
        if offset < 0 or length < 0:
            raise IoError(f"byte store: invalid range offset={offset} length={length}")
        if offset + length > self.size:
            raise IoError(
                f"byte store: read out of bounds (offset={offset} length={length} size={self.size})"
            )


class MemoryStore(ByteStore):
    def __init__(self, data: bytes = b""):
        self._buf = bytearray(data)

    @property
    def size(self) -> int:
        return len(self._buf)

    def append(self, data: bytes) -> int:
        off = len(self._buf)
        self._buf += data
        return off

    def read_at(self, offset: int, length: int) -> bytes:
        self._check_range(offset, length)
        return bytes(self._buf[offset : offset + length])

    def flush(self) -> None:
        pass

    def snapshot(self) -> bytes:
        return bytes(self._buf)


class FileStore(ByteStore):
    """File-backed store.

    mode="w" creates (or truncates) the file and keeps it open read+write, so an
    archive just written can be read back through the same handle.
    mode="r" opens an existing file read-only.
    """

    def __init__(self, path: Path, mode: str = "r"):
        if mode not in ("r", "w"):
            raise ValueError(f"FileStore: mode must be 'r' or 'w', got {mode!r}")
        self.path = Path(path)
        self.mode = mode

        if mode == "r":
            if not self.path.exists():
                raise NotFound(f"archive not found: {self.path}")
            if not self.path.is_file():
                raise NotAFile(f"archive is not a file: {self.path}")

        try:
            if mode == "w":
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self._fp: BinaryIO | None = self.path.open("w+b")
            else:
                self._fp = self.path.open("rb")
        except OSError as e:
            raise IoError(f"cannot open {self.path}: {e}") from e

        self._size = self._measure()

    def _handle(self) -> BinaryIO:
        if self._fp is None:
            raise IoError(f"byte store closed: {self.path}")
        return self._fp

    def _measure(self) -> int:
        fp = self._handle()
        try:
            fp.seek(0, os.SEEK_END)
            return int(fp.tell())
        except OSError as e:
            raise IoError(f"cannot stat {self.path}: {e}") from e

    @property
    def size(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return self._fp is None

    def append(self, data: bytes) -> int:
        if self.mode != "w":
            raise IoError(f"byte store opened read-only: {self.path}")
        fp = self._handle()
        off = self._size
        try:
            fp.seek(off)
            fp.write(data)
        except OSError as e:
            raise IoError(f"write failed on {self.path}: {e}") from e
        self._size += len(data)
        return off

    def read_at(self, offset: int, length: int) -> bytes:
        self._check_range(offset, length)
        fp = self._handle()
        try:
            fp.seek(int(offset))
            blob = fp.read(int(length))
        except OSError as e:
            raise IoError(f"read failed on {self.path}: {e}") from e
        if len(blob) != int(length):
            raise IoError(f"short read on {self.path} at offset {offset}")
        return blob

    def flush(self) -> None:
        fp = self._handle()
        if self.mode != "w":
            return
        try:
            fp.flush()
            os.fsync(fp.fileno())
        except OSError as e:
            raise IoError(f"flush failed on {self.path}: {e}") from e

    def snapshot(self) -> bytes:
        if self.mode == "w":
            self._handle().flush()
        return self.read_at(0, self._size)

    def close(self) -> None:
        if self._fp is None:
            return
        fp, self._fp = self._fp, None
        try:
            fp.close()
        except OSError as e:
            raise IoError(f"close failed on {self.path}: {e}") from e
