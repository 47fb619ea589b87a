"""Media scan-and-reconcile pipeline: watch, probe, record generation, catalog."""

from .config import MetadataSettings, ScannerSettings, ThumbnailSettings
from .engine import ReconcileEngine
from .errors import (
    IdCollisionSkip,
    NotFound,
    NotMediaError,
    ProbeError,
    ScannerError,
    StoreConflict,
    ThumbnailError,
)
from .events import ADDED, CHANGED, REMOVED, ChangeEvent, FileStat
from .ids import get_id
from .probe import MediaProber, ProbeFormat, ProbeInfo, ProbeStream
from .records import MediaType, generate_cinf, generate_media_info, generate_tinf, infer_timebase
from .store import CatalogEntry, MediaStore
from .sweep import SweepScanner, SweepSummary
from .watch import MediaWatcher, StabilityTracker

__all__ = [
    "ADDED",
    "CHANGED",
    "CatalogEntry",
    "ChangeEvent",
    "FileStat",
    "IdCollisionSkip",
    "MediaProber",
    "MediaStore",
    "MediaType",
    "MediaWatcher",
    "MetadataSettings",
    "NotFound",
    "NotMediaError",
    "ProbeError",
    "ProbeFormat",
    "ProbeInfo",
    "ProbeStream",
    "REMOVED",
    "ReconcileEngine",
    "ScannerError",
    "ScannerSettings",
    "StabilityTracker",
    "StoreConflict",
    "SweepScanner",
    "SweepSummary",
    "ThumbnailError",
    "ThumbnailSettings",
    "generate_cinf",
    "generate_media_info",
    "generate_tinf",
    "get_id",
    "infer_timebase",
]
