"""Periodic catalog sweep that removes entries whose files have disappeared."""
from __future__ import annotations

import logging
import os
import stat as stat_module
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from .ids import is_under_root
from .store import CatalogEntry, MediaStore

LOGGER = logging.getLogger("mediascanner.sweep")


@dataclass(slots=True)
class SweepSummary:
    checked: int = 0
    deleted: int = 0
    pages: int = 0
    errors: int = 0


class SweepScanner:
    def __init__(
        self,
        store: MediaStore,
        *,
        scan_roots: Sequence[Path | str],
        page_size: int = 256,
        interval_s: float = 0.0,
    ) -> None:
        self._store = store
        self._roots = [str(root) for root in scan_roots]
        self._page_size = max(1, int(page_size))
        self._interval_s = max(0.0, float(interval_s))
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    def _in_scope(self, media_path: str) -> bool:
        return any(is_under_root(media_path, root) for root in self._roots)

    def _is_gone(self, entry: CatalogEntry) -> bool:
        try:
            result = os.stat(entry.media_path)
        except (FileNotFoundError, NotADirectoryError):
            return True
        return not stat_module.S_ISREG(result.st_mode)

    def run(self) -> SweepSummary:
        """Walk the whole catalog once, page by page, ordered by id."""

        summary = SweepSummary()
        cursor: Optional[str] = None
        while not self._stop_event.is_set():
            entries, has_more = self._store.list_page(cursor, self._page_size)
            if not entries:
                break
            summary.pages += 1
            doomed: List[CatalogEntry] = []
            for entry in entries:
                if not entry.media_path or not self._in_scope(entry.media_path):
                    continue
                summary.checked += 1
                try:
                    if self._is_gone(entry):
                        doomed.append(entry)
                except OSError as exc:
                    summary.errors += 1
                    LOGGER.warning(
                        "Sweep could not stat %s: %s",
                        entry.media_path,
                        exc,
                        extra={"media_id": entry.id, "path": entry.media_path},
                    )
            if doomed:
                try:
                    removed = self._store.bulk_delete(doomed)
                except Exception:
                    summary.errors += 1
                    LOGGER.exception("Sweep delete failed for page after %s", cursor)
                else:
                    summary.deleted += len(removed)
                    for media_id in removed:
                        LOGGER.info("Sweep removed %s", media_id, extra={"media_id": media_id})
            if not has_more:
                break
            cursor = entries[-1].id
        LOGGER.info(
            "Sweep finished: checked=%d deleted=%d pages=%d errors=%d",
            summary.checked,
            summary.deleted,
            summary.pages,
            summary.errors,
        )
        return summary

    # ------------------------------------------------------------------
    def start_periodic(self) -> None:
        """Run one sweep now on a background thread, then repeat every interval."""

        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            self._stop_event.clear()
            self._thread = threading.Thread(target=self._run_loop, name="catalog-sweep", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        with self._lock:
            thread = self._thread
        if thread:
            thread.join(timeout=5)
        with self._lock:
            self._thread = None

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.run()
            except Exception:
                LOGGER.exception("Sweep failed")
            if self._interval_s <= 0:
                return
            self._stop_event.wait(self._interval_s)


__all__ = ["SweepScanner", "SweepSummary"]
