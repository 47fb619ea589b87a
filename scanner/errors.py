"""Exception taxonomy for the scan-and-reconcile pipeline."""
from __future__ import annotations


class ScannerError(RuntimeError):
    """Base error type."""


class ProbeError(ScannerError):
    """ffprobe/ffmpeg execution or output parsing problem."""


class NotMediaError(ProbeError):
    """The probe succeeded but reported no decodable streams."""


class ThumbnailError(ScannerError):
    """Thumbnail generation or read-back failed."""


class StoreConflict(ScannerError):
    """Optimistic-concurrency write rejected because the revision is stale."""


class NotFound(ScannerError):
    """Catalog lookup miss."""


class IdCollisionSkip(ScannerError):
    """Event skipped because its id is already bound to another path."""

    def __init__(self, media_id: str, event_path: str, stored_path: str) -> None:
        super().__init__(f"{media_id}: {event_path} collides with {stored_path}")
        self.media_id = media_id
        self.event_path = event_path
        self.stored_path = stored_path


__all__ = [
    "IdCollisionSkip",
    "NotFound",
    "NotMediaError",
    "ProbeError",
    "ScannerError",
    "StoreConflict",
    "ThumbnailError",
]
