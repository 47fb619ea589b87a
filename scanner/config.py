"""Typed views over the ``settings.json`` sections used by the scanner."""
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple


def _section(settings: Mapping[str, Any], key: str) -> Dict[str, Any]:
    value = settings.get(key)
    return dict(value) if isinstance(value, dict) else {}


def _as_path(value: str, base_dir: Optional[Path]) -> Path:
    expanded = Path(os.path.expandvars(os.path.expanduser(value)))
    if not expanded.is_absolute() and base_dir is not None:
        expanded = base_dir / expanded
    return expanded.resolve()


@dataclass(slots=True)
class ThumbnailSettings:
    width: int = 256
    height: int = -1
    scene_threshold: float = 0.4

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "ThumbnailSettings":
        data = dict(mapping or {})
        return cls(
            width=int(data.get("width", 256)),
            height=int(data.get("height", -1)),
            scene_threshold=float(data.get("scene_threshold", 0.4)),
        )


@dataclass(slots=True)
class MetadataSettings:
    enable: bool = True
    field_order: bool = False
    field_order_scan_frames: int = 200

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any] | None) -> "MetadataSettings":
        data = dict(mapping or {})
        return cls(
            enable=bool(data.get("enable", True)),
            field_order=bool(data.get("field_order", False)),
            field_order_scan_frames=max(1, int(data.get("field_order_scan_frames", 200) or 200)),
        )


@dataclass(slots=True)
class ScannerSettings:
    media_root: Path
    scan_roots: List[Path]
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    probe_timeout_s: float = 60.0
    thumbnails: ThumbnailSettings = field(default_factory=ThumbnailSettings)
    metadata: MetadataSettings = field(default_factory=MetadataSettings)
    stability_threshold_s: float = 2.0
    poll_interval_s: float = 1.0
    sweep_page_size: int = 256
    sweep_interval_s: float = 0.0
    ignore: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, settings: Mapping[str, Any], *, base_dir: Optional[Path] = None) -> "ScannerSettings":
        paths = _section(settings, "paths")
        scanner = _section(settings, "scanner")
        probe = _section(settings, "probe")

        media_root = _as_path(str(paths.get("media") or "media"), base_dir)
        raw_roots = scanner.get("paths")
        if isinstance(raw_roots, str) and raw_roots.strip():
            scan_roots = [_as_path(raw_roots, base_dir)]
        elif isinstance(raw_roots, list) and raw_roots:
            scan_roots = [_as_path(str(item), base_dir) for item in raw_roots if str(item).strip()]
        else:
            scan_roots = [media_root]

        ignore = scanner.get("ignore") or []
        return cls(
            media_root=media_root,
            scan_roots=scan_roots,
            ffmpeg_path=str(paths.get("ffmpeg") or "ffmpeg"),
            ffprobe_path=str(paths.get("ffprobe") or "ffprobe"),
            probe_timeout_s=max(1.0, float(probe.get("timeout_s", 60) or 60)),
            thumbnails=ThumbnailSettings.from_mapping(_section(settings, "thumbnails")),
            metadata=MetadataSettings.from_mapping(_section(settings, "metadata")),
            stability_threshold_s=max(0.0, float(scanner.get("stability_threshold_ms", 2000)) / 1000.0),
            poll_interval_s=max(0.05, float(scanner.get("poll_interval_ms", 1000)) / 1000.0),
            sweep_page_size=max(1, int(scanner.get("sweep_page_size", 256) or 256)),
            sweep_interval_s=max(0.0, float(scanner.get("sweep_interval_s", 0) or 0)),
            ignore=tuple(str(p).strip() for p in ignore if str(p).strip()),
        )


__all__ = ["MetadataSettings", "ScannerSettings", "ThumbnailSettings"]
