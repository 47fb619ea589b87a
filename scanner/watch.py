"""Filesystem watch source feeding the reconciliation engine."""
from __future__ import annotations

import fnmatch
import logging
import os
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .events import ADDED, CHANGED, REMOVED, ChangeEvent, FileStat

LOGGER = logging.getLogger("mediascanner.watch")

EventSink = Callable[[ChangeEvent], None]


@dataclass(slots=True)
class _Pending:
    kind: str
    stat: Optional[FileStat]
    since: float


class StabilityTracker:
    """Holds back add/change events until a file stops growing.

    A path is emitted once its size and mtime have been identical across polls
    for at least ``threshold_s`` seconds.
    """

    def __init__(
        self,
        emit: EventSink,
        *,
        threshold_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._emit = emit
        self._threshold_s = max(0.0, float(threshold_s))
        self._clock = clock
        self._pending: Dict[str, _Pending] = {}
        self._lock = threading.Lock()

    def touch(self, path: str, kind: str = CHANGED) -> None:
        with self._lock:
            current = self._pending.get(path)
            if current is not None and current.kind == ADDED:
                kind = ADDED
            self._pending[path] = _Pending(kind=kind, stat=None, since=self._clock())

    def discard(self, path: str) -> None:
        with self._lock:
            self._pending.pop(path, None)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._pending)

    def poll(self) -> int:
        """Emit every pending path that has settled; return how many were emitted."""

        now = self._clock()
        ready: List[ChangeEvent] = []
        with self._lock:
            for path, pending in list(self._pending.items()):
                try:
                    stat = FileStat.from_path(path)
                except OSError:
                    # deletion arrives as its own event
                    del self._pending[path]
                    continue
                if stat.is_dir:
                    del self._pending[path]
                    continue
                if stat != pending.stat:
                    pending.stat = stat
                    pending.since = now
                    if self._threshold_s > 0:
                        continue
                if now - pending.since >= self._threshold_s:
                    ready.append(ChangeEvent(pending.kind, path, stat))
                    del self._pending[path]
        for event in ready:
            _deliver(self._emit, event)
        return len(ready)


def _deliver(sink: EventSink, event: ChangeEvent) -> None:
    try:
        sink(event)
    except Exception:
        LOGGER.exception("Event sink failed for %s", event.path, extra={"path": event.path})


class _WatchHandler(FileSystemEventHandler):
    def __init__(self, watcher: "MediaWatcher") -> None:
        super().__init__()
        self._watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher._touch(os.fsdecode(event.src_path), ADDED)

    def on_modified(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher._touch(os.fsdecode(event.src_path), CHANGED)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher._removed(os.fsdecode(event.src_path))

    def on_moved(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        self._watcher._removed(os.fsdecode(event.src_path))
        self._watcher._touch(os.fsdecode(event.dest_path), ADDED)


class MediaWatcher:
    def __init__(
        self,
        roots: Sequence[Path | str],
        sink: EventSink,
        *,
        stability_threshold_s: float = 2.0,
        poll_interval_s: float = 1.0,
        ignore: Iterable[str] = (),
        observer_factory: Callable[[], Observer] = Observer,
    ) -> None:
        self._roots = [os.path.abspath(os.fspath(root)) for root in roots]
        self._sink = sink
        self._ignore = tuple(ignore)
        self._poll_interval_s = max(0.05, float(poll_interval_s))
        self._observer_factory = observer_factory
        self._observer: Optional[Observer] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self.tracker = StabilityTracker(sink, threshold_s=stability_threshold_s)

    # ------------------------------------------------------------------
    def is_ignored(self, path: str) -> bool:
        if not self._ignore:
            return False
        name = os.path.basename(path)
        normalized = path.replace(os.sep, "/")
        return any(
            fnmatch.fnmatch(name, pattern) or fnmatch.fnmatch(normalized, pattern)
            for pattern in self._ignore
        )

    def _touch(self, path: str, kind: str) -> None:
        if self.is_ignored(path):
            return
        self.tracker.touch(path, kind)

    def _removed(self, path: str) -> None:
        if self.is_ignored(path):
            return
        self.tracker.discard(path)
        _deliver(self._sink, ChangeEvent(REMOVED, path))

    # ------------------------------------------------------------------
    def initial_scan(self) -> int:
        """Emit ``added`` for every regular file already present under the roots."""

        emitted = 0
        for root in self._roots:
            if not os.path.isdir(root):
                LOGGER.warning("Scan root %s does not exist", root)
                continue
            for dirpath, dirnames, filenames in os.walk(root):
                dirnames.sort()
                for filename in sorted(filenames):
                    path = os.path.join(dirpath, filename)
                    if self.is_ignored(path):
                        continue
                    try:
                        stat = FileStat.from_path(path)
                    except OSError as exc:
                        LOGGER.debug("Skipping %s: %s", path, exc)
                        continue
                    if stat.is_dir:
                        continue
                    _deliver(self._sink, ChangeEvent(ADDED, path, stat))
                    emitted += 1
        LOGGER.info("Initial scan emitted %d files", emitted)
        return emitted

    def poll_once(self) -> int:
        return self.tracker.poll()

    def start(self) -> None:
        if self._observer is not None:
            return
        self.initial_scan()
        observer = self._observer_factory()
        handler = _WatchHandler(self)
        for root in self._roots:
            if os.path.isdir(root):
                observer.schedule(handler, root, recursive=True)
        observer.start()
        self._observer = observer
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="watch-stability", daemon=True)
        self._thread.start()
        LOGGER.info("Watching %s", ", ".join(self._roots))

    def stop(self) -> None:
        self._stop_event.set()
        observer = self._observer
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
            self._observer = None
        if self._thread is not None:
            self._thread.join(timeout=5)
            self._thread = None

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tracker.poll()
            except Exception:
                LOGGER.exception("Stability poll failed")
            self._stop_event.wait(self._poll_interval_s)


__all__ = ["EventSink", "MediaWatcher", "StabilityTracker"]
