"""Serialized reconciliation of filesystem events into catalog documents."""
from __future__ import annotations

import logging
import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Tuple

from .config import MetadataSettings
from .errors import IdCollisionSkip, NotFound, StoreConflict
from .events import CHANGED, REMOVED, ChangeEvent, FileStat
from .field_order import UNKNOWN
from .ids import get_id
from .probe import ProbeInfo
from .records import generate_cinf, generate_media_info, generate_tinf
from .store import CatalogEntry, MediaStore
from .thumbnail import Thumbnail

LOGGER = logging.getLogger("mediascanner.engine")

IGNORED = "ignored"
REMOVED_OUTCOME = "removed"
MISSING = "missing"
COLLISION = "collision"
UNCHANGED = "unchanged"
SCANNED = "scanned"
CONFLICT = "conflict"
FAILED = "failed"


class Prober(Protocol):
    def probe_info(self, media_path: str) -> ProbeInfo: ...

    def generate_thumbnail(self, media_path: str) -> Thumbnail: ...

    def detect_field_order(self, media_path: str) -> str: ...


@dataclass(slots=True)
class EngineStats:
    processed: int = 0
    scanned: int = 0
    skipped: int = 0
    removed: int = 0
    conflicts: int = 0
    errors: int = 0


class ReconcileEngine:
    """Single-worker FIFO consumer of :class:`ChangeEvent` objects.

    Events are handled one at a time in arrival order. Within one event the
    info probe and the thumbnail probe run side by side on a two-thread pool
    and are joined before the single catalog write.
    """

    def __init__(
        self,
        store: MediaStore,
        prober: Prober,
        *,
        media_root: Path | str,
        metadata: Optional[MetadataSettings] = None,
    ) -> None:
        self._store = store
        self._prober = prober
        self._media_root = str(media_root)
        self._metadata = metadata or MetadataSettings()
        self._queue: "queue.Queue[object]" = queue.Queue()
        self._sentinel = object()
        self._thread: Optional[threading.Thread] = None
        self._executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="probe")
        self.stats = EngineStats()

    # ------------------------------------------------------------------
    # Queue lifecycle
    # ------------------------------------------------------------------
    def submit(self, event: ChangeEvent) -> None:
        self._queue.put(event)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._worker, name="reconcile-worker", daemon=True)
        self._thread.start()

    def join(self) -> None:
        """Block until every submitted event has been processed."""

        self._queue.join()

    def stop(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None:
            self._queue.put(self._sentinel)
            thread.join(timeout)
            self._thread = None
        self._executor.shutdown(wait=True)

    @property
    def queue_depth(self) -> int:
        return self._queue.qsize()

    def request_rescan(self, media_id: Optional[str] = None) -> int:
        """Queue forced re-scans for one entry, or for every entry when *media_id* is None."""

        if media_id is not None:
            try:
                entries = [self._store.get(media_id)]
            except NotFound:
                return 0
        else:
            entries = list(self._store.iter_entries())
        queued = 0
        for entry in entries:
            if not entry.media_path:
                continue
            self.submit(ChangeEvent(CHANGED, entry.media_path, force=True))
            queued += 1
        LOGGER.info("Queued %d forced re-scans", queued)
        return queued

    def _worker(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is self._sentinel:
                    return
                if isinstance(item, ChangeEvent):
                    self.process_event(item)
            finally:
                self._queue.task_done()

    # ------------------------------------------------------------------
    # Per-event state machine
    # ------------------------------------------------------------------
    def process_event(self, event: ChangeEvent) -> str:
        """Apply one event to the catalog. Never raises."""

        media_id = get_id(self._media_root, event.path)
        self.stats.processed += 1
        context: Dict[str, Any] = {"media_id": media_id, "path": event.path}
        try:
            if not media_id:
                LOGGER.debug("Ignoring %s outside media root", event.path)
                return IGNORED
            if event.kind == REMOVED:
                return self._remove(media_id, event, context)
            return self._scan(media_id, event, context)
        except IdCollisionSkip as exc:
            self.stats.skipped += 1
            LOGGER.info("Skipped: id already bound to %s", exc.stored_path, extra=context)
            return COLLISION
        except Exception:
            self.stats.errors += 1
            LOGGER.exception("Failed to process %s event", event.kind, extra=context)
            return FAILED

    def _remove(self, media_id: str, event: ChangeEvent, context: Dict[str, Any]) -> str:
        try:
            entry = self._store.get(media_id)
        except NotFound:
            return MISSING
        if entry.media_path and entry.media_path != event.path:
            raise IdCollisionSkip(media_id, event.path, entry.media_path)
        try:
            self._store.remove(entry)
        except NotFound:
            return MISSING
        except StoreConflict:
            self.stats.conflicts += 1
            LOGGER.error("Remove conflict", extra=context)
            return CONFLICT
        self.stats.removed += 1
        LOGGER.info("Removed", extra=context)
        return REMOVED_OUTCOME

    def _fetch(self, media_id: str, context: Dict[str, Any]) -> CatalogEntry:
        try:
            return self._store.get(media_id)
        except NotFound:
            return CatalogEntry.placeholder(media_id)
        except Exception:
            LOGGER.warning("Catalog lookup failed; treating as new", exc_info=True, extra=context)
            return CatalogEntry.placeholder(media_id)

    def _scan(self, media_id: str, event: ChangeEvent, context: Dict[str, Any]) -> str:
        stat = event.stat
        if stat is None:
            try:
                stat = FileStat.from_path(event.path)
            except OSError:
                LOGGER.debug("File vanished before scan", extra=context)
                return MISSING
        if stat.is_dir:
            return IGNORED

        entry = self._fetch(media_id, context)
        if entry.media_path and entry.media_path != event.path:
            raise IdCollisionSkip(media_id, event.path, entry.media_path)

        if not event.force and entry.media_size == stat.size and entry.media_time == stat.mtime_ms:
            self.stats.skipped += 1
            return UNCHANGED

        entry.media_path = event.path
        entry.media_size = stat.size
        entry.media_time = stat.mtime_ms
        context.update({"size": stat.size, "mtime": stat.mtime_ms})

        info_future = self._executor.submit(self._generate_info, entry.media_path)
        thumb_future = self._executor.submit(self._prober.generate_thumbnail, entry.media_path)

        info: Optional[Tuple[ProbeInfo, str]] = None
        thumbnail: Optional[Thumbnail] = None
        try:
            info = info_future.result()
        except Exception:
            LOGGER.error("Info failed", exc_info=True, extra=context)
        try:
            thumbnail = thumb_future.result()
        except Exception:
            LOGGER.error("Thumbnail failed", exc_info=True, extra=context)

        if thumbnail is not None:
            entry.thumb_size = thumbnail.size
            entry.thumb_time = thumbnail.mtime_ms
            entry.thumbnail = thumbnail.data
            entry.tinf = generate_tinf(media_id, entry.thumb_time, entry.thumb_size)
        if info is not None:
            probe, field_order = info
            entry.cinf = generate_cinf(media_id, entry.media_size, entry.thumb_time, probe)
            if self._metadata.enable:
                entry.media_info = generate_media_info(
                    media_id=media_id,
                    media_path=entry.media_path,
                    media_size=entry.media_size,
                    media_time=entry.media_time,
                    probe=probe,
                    field_order=field_order,
                )

        try:
            self._store.put(entry)
        except StoreConflict:
            self.stats.conflicts += 1
            LOGGER.error("Write conflict; update dropped", exc_info=True, extra=context)
            return CONFLICT
        self.stats.scanned += 1
        LOGGER.info("Scanned", extra=context)
        return SCANNED

    def _generate_info(self, media_path: str) -> Tuple[ProbeInfo, str]:
        probe = self._prober.probe_info(media_path)
        field_order = UNKNOWN
        if self._metadata.enable:
            try:
                field_order = self._prober.detect_field_order(media_path)
            except Exception:
                LOGGER.warning("Field order detection failed for %s", media_path, exc_info=True)
        return probe, field_order


__all__ = [
    "COLLISION",
    "CONFLICT",
    "EngineStats",
    "FAILED",
    "IGNORED",
    "MISSING",
    "Prober",
    "REMOVED_OUTCOME",
    "ReconcileEngine",
    "SCANNED",
    "UNCHANGED",
]
