"""Watch files and directories for changes and deliver filtered change events."""

from __future__ import annotations

import json
import os
import queue
import threading
from dataclasses import dataclass
from enum import IntFlag
from typing import Any, Callable, Iterator, NamedTuple

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer


class Notify(IntFlag):
    """Kinds of change: the bits of an event and the filter given to ``watch_flags``."""

    CREATE = 1
    MODIFY = 2
    DELETE = 4
    RENAME = 8
    ATTRIB = 16
    ALL = CREATE | MODIFY | DELETE | RENAME


@dataclass(frozen=True)
class FileEvent:
    """A change to the file at ``name``."""

    name: str
    mask: Notify

    def is_create(self) -> bool:
        """True when the file was created or moved into a watched directory."""
        return bool(self.mask & Notify.CREATE)

    def is_delete(self) -> bool:
        """True when the file was removed."""
        return bool(self.mask & Notify.DELETE)

    def is_modify(self) -> bool:
        """True when the contents or the metadata changed."""
        return bool(self.mask & (Notify.MODIFY | Notify.ATTRIB))

    def is_rename(self) -> bool:
        """True when the file was moved away from this name."""
        return bool(self.mask & Notify.RENAME)

    def is_attrib(self) -> bool:
        """True when the metadata changed."""
        return bool(self.mask & Notify.ATTRIB)

    def __str__(self) -> str:
        kinds = [
            label
            for label, present in (
                ("CREATE", self.is_create()),
                ("DELETE", self.is_delete()),
                ("MODIFY", self.is_modify()),
                ("RENAME", self.is_rename()),
                ("ATTRIB", self.is_attrib()),
            )
            if present
        ]
        return f"{json.dumps(self.name, ensure_ascii=False)}: {'|'.join(kinds)}"


class _Signature(NamedTuple):
    size: int
    mtime: int
    ctime: int
    mode: int
    uid: int
    gid: int


def _signature(path: str) -> _Signature:
    info = os.lstat(path)
    return _Signature(
        info.st_size, info.st_mtime_ns, info.st_ctime_ns, info.st_mode, info.st_uid, info.st_gid
    )


class _Handler(FileSystemEventHandler):
    def __init__(self, receive: Callable[[FileSystemEvent], None]) -> None:
        super().__init__()
        self._receive = receive

    def dispatch(self, event: FileSystemEvent) -> None:
        self._receive(event)


class Watcher:
    """Deliver changes to watched paths on the ``events`` queue.

    Watching a directory reports changes to the directory itself and to the
    entries directly inside it. Event names are absolute paths. After
    :meth:`close` the queue receives ``None``; iterating over the watcher
    yields events until then. Problems met while reading changes are put on
    the ``errors`` queue.
    """

    def __init__(self) -> None:
        self.events: queue.Queue[FileEvent | None] = queue.Queue()
        self.errors: queue.Queue[OSError] = queue.Queue()
        self._lock = threading.RLock()
        self._flags: dict[str, Notify] = {}
        self._watches: dict[str, str] = {}
        self._scheduled: dict[str, Any] = {}
        self._users: dict[str, int] = {}
        self._stats: dict[str, _Signature] = {}
        self._closed = False
        self._handler = _Handler(self._receive)
        self._observer = Observer()
        self._observer.daemon = True
        self._observer.start()

    def watch(self, path: str | os.PathLike[str]) -> None:
        """Watch ``path`` for every kind of change."""
        self.watch_flags(path, Notify.ALL)

    def watch_flags(self, path: str | os.PathLike[str], flags: Notify | int) -> None:
        """Watch ``path``, delivering only the kinds of change in ``flags``."""
        path = os.path.abspath(os.fspath(path))
        with self._lock:
            if self._closed:
                raise RuntimeError("watcher already closed")
            os.stat(path)
            directory = path if os.path.isdir(path) else os.path.dirname(path)
            self._flags[path] = Notify(flags)
            if path not in self._watches:
                self._schedule(directory)
                self._watches[path] = directory
            self._remember(path)
            if directory == path:
                with os.scandir(path) as entries:
                    for entry in entries:
                        self._remember(entry.path)

    def remove_watch(self, path: str | os.PathLike[str]) -> None:
        """Stop watching ``path``."""
        path = os.path.abspath(os.fspath(path))
        with self._lock:
            self._flags.pop(path, None)
            directory = self._watches.pop(path, None)
            if directory is None:
                raise ValueError(f"can't remove non-existent watch for: {path}")
            self._release(directory)

    def close(self) -> None:
        """Remove every watch and end the event stream; later calls do nothing."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._watches.clear()
            self._users.clear()
            self._scheduled.clear()
        self._observer.stop()
        if threading.current_thread() is not self._observer:
            self._observer.join()
        self.events.put(None)

    def __enter__(self) -> "Watcher":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[FileEvent]:
        while True:
            event = self.events.get()
            if event is None:
                self.events.put(None)
                return
            yield event

    def _schedule(self, directory: str) -> None:
        if not self._users.get(directory):
            self._scheduled[directory] = self._observer.schedule(
                self._handler, directory, recursive=False
            )
            self._users[directory] = 0
        self._users[directory] += 1

    def _release(self, directory: str) -> None:
        self._users[directory] -= 1
        if self._users[directory] > 0:
            return
        del self._users[directory]
        observed = self._scheduled.pop(directory)
        try:
            self._observer.unschedule(observed)
        except KeyError:
            pass

    def _remember(self, path: str) -> None:
        try:
            self._stats[path] = _signature(path)
        except OSError:
            self._stats.pop(path, None)

    def _receive(self, event: FileSystemEvent) -> None:
        source = os.fsdecode(event.src_path)
        try:
            if event.event_type == EVENT_TYPE_CREATED:
                self._emit(source, Notify.CREATE)
            elif event.event_type == EVENT_TYPE_DELETED:
                self._emit(source, Notify.DELETE)
            elif event.event_type == EVENT_TYPE_MODIFIED:
                mask = self._modification(source, event.is_directory)
                if mask:
                    self._emit(source, mask)
            elif event.event_type == EVENT_TYPE_MOVED:
                destination = os.fsdecode(event.dest_path)
                with self._lock:
                    moved = self._stats.pop(source, None)
                    if moved is not None:
                        self._stats[destination] = moved
                self._emit(source, Notify.RENAME)
                self._emit(destination, Notify.CREATE)
        except OSError as err:
            self.errors.put(err)

    def _modification(self, path: str, is_directory: bool) -> Notify | None:
        with self._lock:
            try:
                new = _signature(path)
            except OSError:
                return None
            old = self._stats.get(path)
            self._stats[path] = new
        if old is None:
            return None if is_directory else Notify.MODIFY
        mask = Notify(0)
        if not is_directory and (old.size != new.size or old.mtime != new.mtime):
            mask |= Notify.MODIFY
        if (old.mode, old.uid, old.gid) != (new.mode, new.uid, new.gid):
            mask |= Notify.ATTRIB
        if not mask and not is_directory and old.ctime != new.ctime:
            mask |= Notify.ATTRIB
        return mask or None

    def _origin(self, name: str) -> str | None:
        if name in self._watches:
            return name
        parent = os.path.dirname(name)
        if self._watches.get(parent) == parent:
            return parent
        return None

    def _emit(self, name: str, mask: Notify) -> None:
        with self._lock:
            if self._closed:
                return
            watched = self._origin(name)
            if watched is None:
                return
            event = FileEvent(name, mask)
            if not (event.is_delete() or event.is_rename()):
                # A change reported for a file that is already gone is dropped;
                # its delete has come or will come.
                if not os.path.lexists(name):
                    return
                if event.is_create():
                    self._stats.pop(name, None)
            flags = self._flags.get(name)
            if flags is None:
                flags = self._flags.get(watched, Notify.ALL)
                self._flags[name] = flags
            if self._wanted(event, flags):
                self.events.put(event)
            if event.is_delete():
                self._flags.pop(name, None)
                self._stats.pop(name, None)

    @staticmethod
    def _wanted(event: FileEvent, flags: Notify) -> bool:
        return (
            (bool(flags & Notify.CREATE) and event.is_create())
            or (bool(flags & Notify.MODIFY) and event.is_modify())
            or (bool(flags & Notify.DELETE) and event.is_delete())
            or (bool(flags & Notify.RENAME) and event.is_rename())
        )