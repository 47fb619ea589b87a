"""Pydantic schemas for the media scanner HTTP API."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from scanner.store import CatalogEntry


class HealthResponse(BaseModel):
    """Health response summarising catalog and queue state."""

    ok: bool = Field(True, description="Indicates the API server is reachable.")
    version: str = Field(..., description="Application version string.")
    time_utc: str = Field(..., description="Current UTC timestamp in ISO8601 format.")
    entries: int = Field(..., ge=0, description="Number of documents in the catalog.")
    queue_depth: Optional[int] = Field(
        None, ge=0, description="Events waiting for the reconciliation worker, when it is running."
    )


class MediaEntryModel(BaseModel):
    id: str = Field(..., description="Root-relative, upper-cased media id without extension.")
    media_path: str
    media_size: int
    media_time: int = Field(..., description="File mtime in epoch milliseconds.")
    thumb_size: int
    thumb_time: int
    cinf: str
    tinf: str
    media_info: Optional[Dict[str, Any]] = None
    revision: str

    @classmethod
    def from_entry(cls, entry: CatalogEntry) -> "MediaEntryModel":
        return cls(
            id=entry.id,
            media_path=entry.media_path,
            media_size=entry.media_size,
            media_time=entry.media_time,
            thumb_size=entry.thumb_size,
            thumb_time=entry.thumb_time,
            cinf=entry.cinf,
            tinf=entry.tinf,
            media_info=entry.media_info,
            revision=entry.revision,
        )


class MediaListResponse(BaseModel):
    """One page of the bulk export, ordered by id."""

    items: List[MediaEntryModel]
    next_cursor: Optional[str] = Field(
        None, description="Pass as ``start_after`` to fetch the next page; null on the last page."
    )


__all__ = ["HealthResponse", "MediaEntryModel", "MediaListResponse"]
