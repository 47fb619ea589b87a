from __future__ import annotations

import os
import stat as stat_module
from dataclasses import dataclass
from typing import Optional

ADDED = "added"
CHANGED = "changed"
REMOVED = "removed"

EVENT_KINDS = frozenset({ADDED, CHANGED, REMOVED})


@dataclass(frozen=True, slots=True)
class FileStat:
    size: int
    mtime_ms: int
    is_dir: bool = False

    @classmethod
    def from_stat_result(cls, result: os.stat_result) -> "FileStat":
        return cls(
            size=int(result.st_size),
            mtime_ms=int(result.st_mtime_ns // 1_000_000),
            is_dir=stat_module.S_ISDIR(result.st_mode),
        )

    @classmethod
    def from_path(cls, path: str) -> "FileStat":
        return cls.from_stat_result(os.stat(path))


@dataclass(frozen=True, slots=True)
class ChangeEvent:
    """Single filesystem change as delivered to the reconciliation engine.

    ``force`` bypasses the size/mtime fast path and is only set for explicit
    re-index requests.
    """

    kind: str
    path: str
    stat: Optional[FileStat] = None
    force: bool = False

    def __post_init__(self) -> None:
        if self.kind not in EVENT_KINDS:
            raise ValueError(f"unknown event kind: {self.kind!r}")


__all__ = ["ADDED", "CHANGED", "REMOVED", "ChangeEvent", "FileStat"]
