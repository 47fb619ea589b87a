from __future__ import annotations

import os
from pathlib import Path
from typing import List

from watchdog.events import DirCreatedEvent, FileCreatedEvent, FileDeletedEvent, FileModifiedEvent, FileMovedEvent

from scanner.events import ADDED, CHANGED, REMOVED, ChangeEvent
from scanner.watch import MediaWatcher, StabilityTracker, _WatchHandler


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class FakeObserver:
    def __init__(self) -> None:
        self.scheduled: List[tuple] = []
        self.started = False
        self.stopped = False

    def schedule(self, handler, path, recursive=False):
        self.scheduled.append((handler, path, recursive))

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.stopped = True

    def join(self, timeout=None) -> None:
        return None


def test_tracker_waits_for_stable_size(tmp_path: Path) -> None:
    events: List[ChangeEvent] = []
    clock = FakeClock()
    tracker = StabilityTracker(events.append, threshold_s=2.0, clock=clock)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"part")

    tracker.touch(str(clip), ADDED)
    assert tracker.poll() == 0
    clock.now += 1
    clip.write_bytes(b"partial upload")
    os.utime(clip, ns=(1_000_000_000, 1_000_000_000))
    assert tracker.poll() == 0
    clock.now += 1.5
    assert tracker.poll() == 0
    clock.now += 1
    assert tracker.poll() == 1

    assert len(events) == 1
    assert events[0].kind == ADDED
    assert events[0].path == str(clip)
    assert events[0].stat.size == len(b"partial upload")
    assert tracker.pending == 0


def test_tracker_keeps_added_kind_and_drops_vanished(tmp_path: Path) -> None:
    events: List[ChangeEvent] = []
    tracker = StabilityTracker(events.append, threshold_s=0)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"x")

    tracker.touch(str(clip), ADDED)
    tracker.touch(str(clip), CHANGED)
    tracker.touch(str(tmp_path / "vanished.mov"), ADDED)
    assert tracker.poll() == 1
    assert events[0].kind == ADDED
    assert tracker.pending == 0


def test_tracker_discard(tmp_path: Path) -> None:
    events: List[ChangeEvent] = []
    tracker = StabilityTracker(events.append, threshold_s=0)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"x")
    tracker.touch(str(clip))
    tracker.discard(str(clip))
    assert tracker.poll() == 0
    assert events == []


def test_tracker_survives_sink_errors(tmp_path: Path) -> None:
    def broken_sink(event: ChangeEvent) -> None:
        raise RuntimeError("queue closed")

    tracker = StabilityTracker(broken_sink, threshold_s=0)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"x")
    tracker.touch(str(clip))
    assert tracker.poll() == 1


def test_initial_scan_emits_existing_files(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.mov").write_bytes(b"a")
    (tmp_path / "sub" / "b.mp4").write_bytes(b"bb")
    (tmp_path / ".DS_Store").write_bytes(b"junk")
    events: List[ChangeEvent] = []
    watcher = MediaWatcher([tmp_path], events.append, ignore=[".*"])

    assert watcher.initial_scan() == 2
    assert {Path(event.path).name for event in events} == {"a.mov", "b.mp4"}
    assert all(event.kind == ADDED and event.stat is not None for event in events)


def test_handler_translates_watchdog_events(tmp_path: Path) -> None:
    events: List[ChangeEvent] = []
    watcher = MediaWatcher([tmp_path], events.append, stability_threshold_s=0, ignore=["*.tmp"])
    handler = _WatchHandler(watcher)
    clip = tmp_path / "clip.mov"
    clip.write_bytes(b"x")

    handler.on_created(FileCreatedEvent(str(clip)))
    handler.on_modified(FileModifiedEvent(str(clip)))
    handler.on_created(DirCreatedEvent(str(tmp_path / "folder")))
    handler.on_created(FileCreatedEvent(str(tmp_path / "upload.tmp")))
    assert watcher.tracker.pending == 1
    assert watcher.poll_once() == 1
    assert events[-1].kind == ADDED

    renamed = tmp_path / "renamed.mov"
    clip.rename(renamed)
    handler.on_moved(FileMovedEvent(str(clip), str(renamed)))
    assert events[-1] == ChangeEvent(REMOVED, str(clip))
    assert watcher.poll_once() == 1
    assert events[-1].kind == ADDED
    assert events[-1].path == str(renamed)

    handler.on_deleted(FileDeletedEvent(str(renamed)))
    assert events[-1] == ChangeEvent(REMOVED, str(renamed))


def test_start_and_stop_schedule_observer(tmp_path: Path) -> None:
    (tmp_path / "a.mov").write_bytes(b"a")
    observer = FakeObserver()
    events: List[ChangeEvent] = []
    watcher = MediaWatcher(
        [tmp_path, tmp_path / "missing"],
        events.append,
        poll_interval_s=0.05,
        observer_factory=lambda: observer,
    )

    watcher.start()
    try:
        assert observer.started
        assert [(path, recursive) for _, path, recursive in observer.scheduled] == [(str(tmp_path), True)]
        assert len(events) == 1
    finally:
        watcher.stop()
    assert observer.stopped
