from __future__ import annotations

import logging
import os
from pathlib import Path

import pytest

from scanner.config import MetadataSettings
from scanner.engine import (
    COLLISION,
    CONFLICT,
    FAILED,
    IGNORED,
    MISSING,
    REMOVED_OUTCOME,
    SCANNED,
    UNCHANGED,
    ReconcileEngine,
)
from scanner.errors import StoreConflict
from scanner.events import ADDED, CHANGED, REMOVED, ChangeEvent, FileStat
from scanner.store import MediaStore

from fakes import FakeProber


@pytest.fixture
def engine(store: MediaStore, prober: FakeProber, media_root: Path):
    instance = ReconcileEngine(
        store,
        prober,
        media_root=media_root,
        metadata=MetadataSettings(enable=True, field_order=True),
    )
    yield instance
    instance.stop(timeout=5)


def _write(path: Path, payload: bytes = b"frames") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(payload)
    return path


def _added(path: Path) -> ChangeEvent:
    return ChangeEvent(ADDED, str(path), FileStat.from_path(str(path)))


def test_added_file_is_scanned(engine: ReconcileEngine, store: MediaStore, media_root: Path) -> None:
    clip = _write(media_root / "clips" / "Intro.mov")

    assert engine.process_event(_added(clip)) == SCANNED

    entry = store.get("CLIPS/INTRO")
    stat = clip.stat()
    assert entry.media_path == str(clip)
    assert entry.media_size == stat.st_size
    assert entry.media_time == stat.st_mtime_ns // 1_000_000
    assert entry.cinf.startswith('"CLIPS/INTRO"  MOVIE  ')
    assert entry.cinf.endswith(" 250 1/25\r\n")
    assert entry.tinf.startswith('"CLIPS/INTRO" ')
    assert entry.thumbnail is not None
    assert entry.media_info["field_order"] == "progressive"
    assert entry.media_info["path"] == str(clip)


def test_unchanged_file_is_not_probed_again(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path
) -> None:
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    revision = store.get("A").revision
    calls = len(prober.calls)

    assert engine.process_event(ChangeEvent(CHANGED, str(clip), FileStat.from_path(str(clip)))) == UNCHANGED
    assert len(prober.calls) == calls
    assert store.get("A").revision == revision


def test_changed_file_is_rescanned(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path
) -> None:
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    _write(clip, b"longer payload")

    assert engine.process_event(ChangeEvent(CHANGED, str(clip), FileStat.from_path(str(clip)))) == SCANNED
    assert store.get("A").media_size == len(b"longer payload")


def test_forced_event_bypasses_fast_path(engine: ReconcileEngine, prober: FakeProber, media_root: Path) -> None:
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    calls = len(prober.calls)

    assert engine.process_event(ChangeEvent(CHANGED, str(clip), force=True)) == SCANNED
    assert len(prober.calls) > calls


def test_id_collision_is_skipped(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path, caplog
) -> None:
    first = _write(media_root / "amb.mov")
    second = _write(media_root / "AMB.mp4", b"another clip")
    engine.process_event(_added(first))
    before = store.get("AMB")
    calls = len(prober.calls)

    with caplog.at_level(logging.INFO, logger="mediascanner.engine"):
        assert engine.process_event(_added(second)) == COLLISION

    after = store.get("AMB")
    assert after.revision == before.revision
    assert after.media_path == str(first)
    assert len(prober.calls) == calls
    assert "already bound" in caplog.text


def test_removed_event_deletes_entry(engine: ReconcileEngine, store: MediaStore, media_root: Path) -> None:
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    clip.unlink()

    assert engine.process_event(ChangeEvent(REMOVED, str(clip))) == REMOVED_OUTCOME
    assert store.count() == 0
    assert engine.process_event(ChangeEvent(REMOVED, str(clip))) == MISSING


def test_removing_colliding_file_keeps_bound_entry(
    engine: ReconcileEngine, store: MediaStore, media_root: Path
) -> None:
    first = _write(media_root / "amb.mov")
    second = _write(media_root / "AMB.mp4", b"another clip")
    engine.process_event(_added(first))
    assert engine.process_event(_added(second)) == COLLISION
    before = store.get("AMB")
    second.unlink()

    assert engine.process_event(ChangeEvent(REMOVED, str(second))) == COLLISION

    after = store.get("AMB")
    assert after.revision == before.revision
    assert after.media_path == str(first)
    assert engine.stats.removed == 0


def test_events_outside_root_are_ignored(engine: ReconcileEngine, store: MediaStore, tmp_path: Path) -> None:
    outside = _write(tmp_path / "elsewhere" / "a.mov")
    assert engine.process_event(_added(outside)) == IGNORED
    assert engine.process_event(ChangeEvent(REMOVED, str(outside))) == IGNORED
    assert store.count() == 0


def test_directory_and_vanished_paths(engine: ReconcileEngine, media_root: Path) -> None:
    folder = media_root / "folder"
    folder.mkdir()
    assert engine.process_event(ChangeEvent(ADDED, str(folder), FileStat.from_path(str(folder)))) == IGNORED
    assert engine.process_event(ChangeEvent(CHANGED, str(media_root / "gone.mov"))) == MISSING


def test_info_failure_keeps_thumbnail(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path
) -> None:
    prober.fail_info = True
    clip = _write(media_root / "a.mov")

    assert engine.process_event(_added(clip)) == SCANNED

    entry = store.get("A")
    assert entry.cinf == ""
    assert entry.media_info is None
    assert entry.tinf != ""
    assert entry.thumb_size == prober.thumbnail.size


def test_partial_failure_keeps_previous_fields(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path
) -> None:
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    original = store.get("A")

    prober.fail_info = True
    prober.fail_thumbnail = True
    _write(clip, b"grown in place")
    assert engine.process_event(_added(clip)) == SCANNED

    entry = store.get("A")
    assert entry.media_size == len(b"grown in place")
    assert entry.cinf == original.cinf
    assert entry.tinf == original.tinf
    assert entry.thumbnail == original.thumbnail


def test_field_order_failure_is_unknown(engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path) -> None:
    prober.fail_field_order = True
    clip = _write(media_root / "a.mov")
    engine.process_event(_added(clip))
    assert store.get("A").media_info["field_order"] == "unknown"


def test_metadata_disabled_skips_media_info(store: MediaStore, prober: FakeProber, media_root: Path) -> None:
    engine = ReconcileEngine(store, prober, media_root=media_root, metadata=MetadataSettings(enable=False))
    try:
        clip = _write(media_root / "a.mov")
        assert engine.process_event(_added(clip)) == SCANNED
    finally:
        engine.stop()
    entry = store.get("A")
    assert entry.cinf != ""
    assert entry.media_info is None
    assert not any(call.startswith("idet:") for call in prober.calls)


def test_write_conflict_is_not_retried(
    engine: ReconcileEngine, store: MediaStore, media_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    attempts = []

    def conflicting_put(entry):
        attempts.append(entry.id)
        raise StoreConflict("stale")

    monkeypatch.setattr(store, "put", conflicting_put)
    clip = _write(media_root / "a.mov")
    assert engine.process_event(_added(clip)) == CONFLICT
    assert attempts == ["A"]
    assert engine.stats.conflicts == 1


def test_unexpected_errors_do_not_escape(
    engine: ReconcileEngine, store: MediaStore, media_root: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def broken_put(entry):
        raise RuntimeError("disk on fire")

    monkeypatch.setattr(store, "put", broken_put)
    clip = _write(media_root / "a.mov")
    assert engine.process_event(_added(clip)) == FAILED
    assert engine.stats.errors == 1


def test_worker_processes_queue_in_order(engine: ReconcileEngine, store: MediaStore, media_root: Path) -> None:
    clip = _write(media_root / "a.mov")
    engine.start()
    engine.submit(_added(clip))
    engine.submit(ChangeEvent(REMOVED, str(clip)))
    engine.submit(_added(clip))
    engine.join()

    assert engine.stats.processed == 3
    assert engine.stats.removed == 1
    assert store.get("A").media_path == str(clip)


def test_request_rescan_queues_forced_events(
    engine: ReconcileEngine, store: MediaStore, prober: FakeProber, media_root: Path
) -> None:
    for name in ("a.mov", "b.mov"):
        engine.process_event(_added(_write(media_root / name)))
    calls = len(prober.calls)

    assert engine.request_rescan("B") == 1
    assert engine.request_rescan("NOPE") == 0
    assert engine.request_rescan() == 2
    assert engine.queue_depth == 3

    engine.start()
    engine.join()
    assert engine.stats.scanned == 5
    assert len(prober.calls) > calls
    assert os.path.basename(store.get("B").media_path) == "b.mov"
