"""SQLite-backed catalog of media documents with revision-checked writes."""
from __future__ import annotations

import json
import logging
import sqlite3
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from core.db import connect, ensure_catalog_schema, transaction

from .errors import NotFound, StoreConflict

LOGGER = logging.getLogger("mediascanner.store")

NEW_REVISION = "new"


@dataclass(slots=True)
class CatalogEntry:
    id: str
    media_path: str = ""
    media_size: int = 0
    media_time: int = 0
    thumb_size: int = 0
    thumb_time: int = 0
    cinf: str = ""
    tinf: str = ""
    media_info: Optional[Dict[str, Any]] = None
    thumbnail: Optional[bytes] = None
    revision: str = NEW_REVISION

    @classmethod
    def placeholder(cls, media_id: str) -> "CatalogEntry":
        return cls(id=media_id)

    def to_doc(self) -> Dict[str, Any]:
        return {
            "media_path": self.media_path,
            "media_size": self.media_size,
            "media_time": self.media_time,
            "thumb_size": self.thumb_size,
            "thumb_time": self.thumb_time,
            "cinf": self.cinf,
            "tinf": self.tinf,
            "media_info": self.media_info,
        }

    @classmethod
    def from_row(cls, media_id: str, rev: str, doc_json: str, thumb: Optional[bytes]) -> "CatalogEntry":
        doc = json.loads(doc_json)
        return cls(
            id=media_id,
            media_path=str(doc.get("media_path") or ""),
            media_size=int(doc.get("media_size") or 0),
            media_time=int(doc.get("media_time") or 0),
            thumb_size=int(doc.get("thumb_size") or 0),
            thumb_time=int(doc.get("thumb_time") or 0),
            cinf=str(doc.get("cinf") or ""),
            tinf=str(doc.get("tinf") or ""),
            media_info=doc.get("media_info") if isinstance(doc.get("media_info"), dict) else None,
            thumbnail=bytes(thumb) if thumb is not None else None,
            revision=rev,
        )


def _utc_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def _next_revision(current: Optional[str]) -> str:
    generation = 0
    if current and current != NEW_REVISION:
        head = current.split("-", 1)[0]
        try:
            generation = int(head)
        except ValueError:
            generation = 0
    return f"{generation + 1}-{uuid.uuid4().hex[:12]}"


class MediaStore:
    """Document store keyed by media id.

    Every write names the revision it was based on; a mismatch raises
    :class:`StoreConflict`. The connection is shared between the engine worker,
    the sweep thread and API handlers, so all access is serialised on a lock.
    """

    def __init__(self, db_path: Path) -> None:
        self._path = Path(db_path)
        self._conn = connect(self._path)
        self._lock = threading.RLock()
        with self._lock:
            ensure_catalog_schema(self._conn)

    # ------------------------------------------------------------------
    # Context management
    # ------------------------------------------------------------------
    def __enter__(self) -> "MediaStore":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        self.close()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Document API
    # ------------------------------------------------------------------
    def get(self, media_id: str) -> CatalogEntry:
        with self._lock:
            row = self._conn.execute(
                "SELECT id, rev, doc_json, thumb_blob FROM media WHERE id = ?",
                (media_id,),
            ).fetchone()
        if row is None:
            raise NotFound(media_id)
        return CatalogEntry.from_row(*row)

    def put(self, entry: CatalogEntry) -> str:
        """Insert or update *entry*; return the new revision."""

        doc_json = json.dumps(entry.to_doc(), ensure_ascii=False)
        thumb = sqlite3.Binary(entry.thumbnail) if entry.thumbnail is not None else None
        with self._lock, transaction(self._conn) as conn:
            row = conn.execute("SELECT rev FROM media WHERE id = ?", (entry.id,)).fetchone()
            if row is None:
                if entry.revision != NEW_REVISION:
                    raise StoreConflict(f"{entry.id}: document was deleted (had {entry.revision})")
                revision = _next_revision(None)
                conn.execute(
                    "INSERT INTO media (id, rev, doc_json, thumb_blob, updated_utc) VALUES (?, ?, ?, ?, ?)",
                    (entry.id, revision, doc_json, thumb, _utc_now()),
                )
                return revision
            stored = row[0]
            if stored != entry.revision:
                raise StoreConflict(f"{entry.id}: revision {entry.revision} is stale (now {stored})")
            revision = _next_revision(stored)
            conn.execute(
                "UPDATE media SET rev = ?, doc_json = ?, thumb_blob = ?, updated_utc = ? WHERE id = ?",
                (revision, doc_json, thumb, _utc_now(), entry.id),
            )
            return revision

    def remove(self, entry: CatalogEntry) -> None:
        with self._lock, transaction(self._conn) as conn:
            row = conn.execute("SELECT rev FROM media WHERE id = ?", (entry.id,)).fetchone()
            if row is None:
                raise NotFound(entry.id)
            if row[0] != entry.revision:
                raise StoreConflict(f"{entry.id}: revision {entry.revision} is stale (now {row[0]})")
            conn.execute("DELETE FROM media WHERE id = ?", (entry.id,))

    def list_page(
        self,
        start_after: Optional[str] = None,
        limit: int = 256,
        *,
        include_thumbnail: bool = False,
    ) -> Tuple[List[CatalogEntry], bool]:
        """Return up to *limit* entries ordered by id, after *start_after*."""

        limit = max(1, int(limit))
        thumb_col = "thumb_blob" if include_thumbnail else "NULL"
        sql = f"SELECT id, rev, doc_json, {thumb_col} FROM media"
        params: List[Any] = []
        if start_after is not None:
            sql += " WHERE id > ?"
            params.append(start_after)
        sql += " ORDER BY id LIMIT ?"
        params.append(limit + 1)
        with self._lock:
            rows = self._conn.execute(sql, params).fetchall()
        has_more = len(rows) > limit
        return [CatalogEntry.from_row(*row) for row in rows[:limit]], has_more

    def bulk_delete(self, entries: Sequence[CatalogEntry]) -> List[str]:
        """Delete every entry whose revision still matches; return removed ids."""

        if not entries:
            return []
        removed: List[str] = []
        with self._lock, transaction(self._conn) as conn:
            for entry in entries:
                cursor = conn.execute(
                    "DELETE FROM media WHERE id = ? AND rev = ?",
                    (entry.id, entry.revision),
                )
                if cursor.rowcount:
                    removed.append(entry.id)
                else:
                    LOGGER.warning("Bulk delete skipped %s: revision changed", entry.id)
        return removed

    # ------------------------------------------------------------------
    # Query surface
    # ------------------------------------------------------------------
    def iter_entries(self, *, page_size: int = 256, include_thumbnail: bool = False) -> Iterator[CatalogEntry]:
        cursor: Optional[str] = None
        while True:
            entries, has_more = self.list_page(cursor, page_size, include_thumbnail=include_thumbnail)
            yield from entries
            if not has_more or not entries:
                return
            cursor = entries[-1].id

    def count(self) -> int:
        with self._lock:
            row = self._conn.execute("SELECT COUNT(*) FROM media").fetchone()
        return int(row[0]) if row else 0

    def _find(self, media_id: str) -> Optional[CatalogEntry]:
        try:
            return self.get(media_id)
        except NotFound:
            return None

    def get_cinf(self, media_id: str) -> Optional[str]:
        entry = self._find(media_id)
        return entry.cinf if entry and entry.cinf else None

    def get_tinf(self, media_id: str) -> Optional[str]:
        entry = self._find(media_id)
        return entry.tinf if entry and entry.tinf else None

    def get_media_info(self, media_id: str) -> Optional[Dict[str, Any]]:
        entry = self._find(media_id)
        return entry.media_info if entry else None

    def get_thumbnail(self, media_id: str) -> Optional[bytes]:
        with self._lock:
            row = self._conn.execute("SELECT thumb_blob FROM media WHERE id = ?", (media_id,)).fetchone()
        if row is None or row[0] is None:
            return None
        return bytes(row[0])

    def list_cinf(self) -> List[str]:
        return [entry.cinf for entry in self.iter_entries() if entry.cinf]

    def list_tinf(self) -> List[str]:
        return [entry.tinf for entry in self.iter_entries() if entry.tinf]


__all__ = ["NEW_REVISION", "CatalogEntry", "MediaStore"]
