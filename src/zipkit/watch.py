"""File change watch (polling).

Watches are keyed by filesystem identity (st_dev, st_ino), not by path string:
two paths resolving to the same file collapse to one watch and one dispatch
per listener. A change is a different st_mtime_ns or st_size since the last
poll. Dispatch happens synchronously inside poll(), on the caller's thread.

Independent from the archive core; callers may use events to trigger rebuilds.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from zipkit.errors import IoError, NotFound

log = logging.getLogger(__name__)

FileId = tuple[int, int]


@dataclass(frozen=True)
class FileWatchEvent:
    path: Path


Listener = Callable[[FileWatchEvent], None]


@dataclass
class _Watch:
    path: Path
    mtime_ns: int
    size: int


def _stat(path: Path) -> os.stat_result:
    try:
        return os.stat(path)
    except FileNotFoundError as e:
        raise NotFound(f"cannot watch, file not found: {path}") from e
    except OSError as e:
        raise IoError(f"cannot stat {path}: {e}") from e


def _file_id(st: os.stat_result) -> FileId:
    return (int(st.st_dev), int(st.st_ino))


class FileWatcher:
    def __init__(self) -> None:
        self._watches: dict[FileId, _Watch] = {}
        self._listeners: list[tuple[Listener, FileId | None]] = []

    def watch(self, path: str | os.PathLike[str]) -> None:
        p = Path(path)
        st = _stat(p)
        fid = _file_id(st)
        if fid in self._watches:
            return
        self._watches[fid] = _Watch(path=p, mtime_ns=st.st_mtime_ns, size=st.st_size)
        log.debug("watching %s (dev=%d ino=%d)", p, *fid)

    def unwatch(self, path: str | os.PathLike[str]) -> None:
        p = Path(path)
        try:
            fid: FileId | None = _file_id(os.stat(p))
        except OSError:
            fid = None
        if fid not in self._watches:
            # gone or replaced by another inode: match the recorded path
            fid = next((k for k, w in self._watches.items() if w.path == p), None)
        if fid is not None and self._watches.pop(fid, None) is not None:
            log.debug("unwatched %s", p)

    def is_watching(self, path: str | os.PathLike[str]) -> bool:
        try:
            return _file_id(os.stat(path)) in self._watches
        except OSError:
            return False

    def add_listener(
        self, callback: Listener, path: str | os.PathLike[str] | None = None
    ) -> Callable[[], None]:
        """Register a listener, optionally filtered on one file. Returns a remover."""
        fid = _file_id(_stat(Path(path))) if path is not None else None
        item = (callback, fid)
        if item not in self._listeners:
            self._listeners.append(item)

        def remove() -> None:
            if item in self._listeners:
                self._listeners.remove(item)

        return remove

    def poll(self) -> list[FileWatchEvent]:
        events: list[FileWatchEvent] = []
        for fid, w in list(self._watches.items()):
            try:
                st = os.stat(w.path)
            except FileNotFoundError:
                log.debug("watched file vanished: %s", w.path)
                continue
            except OSError as e:
                raise IoError(f"cannot stat {w.path}: {e}") from e

            if st.st_mtime_ns == w.mtime_ns and st.st_size == w.size:
                continue
            w.mtime_ns, w.size = st.st_mtime_ns, st.st_size

            ev = FileWatchEvent(path=w.path)
            events.append(ev)
            for callback, want in list(self._listeners):
                if want is None or want == fid:
                    callback(ev)
        return events
