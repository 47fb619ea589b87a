"""ffprobe/ffmpeg adapter used by the reconciliation engine."""
from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from .config import MetadataSettings, ScannerSettings, ThumbnailSettings
from .errors import NotMediaError, ProbeError
from .field_order import UNKNOWN, detect_field_order
from .thumbnail import Thumbnail, generate_thumbnail

LOGGER = logging.getLogger("mediascanner.probe")


@dataclass(slots=True)
class ProbeStream:
    codec_type: str
    index: Optional[int] = None
    codec_name: Optional[str] = None
    codec_long_name: Optional[str] = None
    codec_time_base: Optional[str] = None
    codec_tag_string: Optional[str] = None
    is_avc: Optional[str] = None
    time_base: Optional[str] = None
    avg_frame_rate: Optional[str] = None
    r_frame_rate: Optional[str] = None
    # video
    width: Optional[int] = None
    height: Optional[int] = None
    sample_aspect_ratio: Optional[str] = None
    display_aspect_ratio: Optional[str] = None
    pix_fmt: Optional[str] = None
    bits_per_raw_sample: Optional[str] = None
    # audio
    sample_fmt: Optional[str] = None
    sample_rate: Optional[str] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    bits_per_sample: Optional[int] = None
    # common
    start_time: Optional[str] = None
    duration_ts: Optional[int] = None
    duration: Optional[str] = None
    bit_rate: Optional[str] = None
    max_bit_rate: Optional[str] = None
    nb_frames: Optional[str] = None


@dataclass(slots=True)
class ProbeFormat:
    format_name: Optional[str] = None
    format_long_name: Optional[str] = None
    size: Optional[str] = None
    start_time: Optional[str] = None
    duration: Optional[str] = None
    bit_rate: Optional[str] = None
    max_bit_rate: Optional[str] = None

    @property
    def duration_s(self) -> Optional[float]:
        return _safe_float(self.duration)


@dataclass(slots=True)
class ProbeInfo:
    format: ProbeFormat
    streams: List[ProbeStream] = field(default_factory=list)


_STR_FIELDS = (
    "codec_name",
    "codec_long_name",
    "codec_time_base",
    "codec_tag_string",
    "is_avc",
    "time_base",
    "avg_frame_rate",
    "r_frame_rate",
    "sample_aspect_ratio",
    "display_aspect_ratio",
    "pix_fmt",
    "bits_per_raw_sample",
    "sample_fmt",
    "sample_rate",
    "channel_layout",
    "start_time",
    "duration",
    "bit_rate",
    "max_bit_rate",
    "nb_frames",
)
_INT_FIELDS = ("index", "width", "height", "channels", "bits_per_sample", "duration_ts")
_FORMAT_FIELDS = (
    "format_name",
    "format_long_name",
    "size",
    "start_time",
    "duration",
    "bit_rate",
    "max_bit_rate",
)


def _safe_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _safe_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None or isinstance(value, (dict, list)):
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _parse_stream(position: int, raw: Any) -> ProbeStream:
    if not isinstance(raw, dict):
        raise ProbeError(f"stream #{position} is not an object")
    codec_type = raw.get("codec_type")
    if not isinstance(codec_type, str) or not codec_type:
        raise ProbeError(f"stream #{position} has no codec_type")
    values: Dict[str, Any] = {name: _opt_str(raw.get(name)) for name in _STR_FIELDS}
    values.update({name: _safe_int(raw.get(name)) for name in _INT_FIELDS})
    return ProbeStream(codec_type=codec_type.lower(), **values)


def parse_probe_output(payload: str | bytes | Mapping[str, Any]) -> ProbeInfo:
    """Turn ffprobe's JSON document into :class:`ProbeInfo`.

    Raises :class:`ProbeError` for malformed output and :class:`NotMediaError`
    when the document lists no streams.
    """

    if isinstance(payload, Mapping):
        parsed: Any = dict(payload)
    else:
        try:
            parsed = json.loads(payload or "{}")
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ProbeError(f"invalid ffprobe output: {exc}") from exc
    if not isinstance(parsed, dict):
        raise ProbeError("ffprobe output is not a JSON object")

    raw_format = parsed.get("format")
    if raw_format is None:
        raw_format = {}
    if not isinstance(raw_format, dict):
        raise ProbeError("ffprobe format section is not an object")

    raw_streams = parsed.get("streams")
    if raw_streams is None:
        raw_streams = []
    if not isinstance(raw_streams, list):
        raise ProbeError("ffprobe streams section is not a list")
    if not raw_streams:
        raise NotMediaError("not media: no streams reported")

    fmt = ProbeFormat(**{name: _opt_str(raw_format.get(name)) for name in _FORMAT_FIELDS})
    streams = [_parse_stream(position, raw) for position, raw in enumerate(raw_streams)]
    return ProbeInfo(format=fmt, streams=streams)


def run_ffprobe(ffprobe_path: str, media_path: str, *, timeout: float) -> ProbeInfo:
    """Execute ffprobe for *media_path* and return structured stream metadata."""

    cmd = [
        ffprobe_path,
        "-hide_banner",
        "-v",
        "error",
        "-show_streams",
        "-show_format",
        "-print_format",
        "json",
        media_path,
    ]
    try:
        proc = subprocess.run(
            cmd,
            check=False,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=max(1.0, float(timeout)),
        )
    except subprocess.TimeoutExpired as exc:
        raise ProbeError(f"ffprobe timeout after {exc.timeout}s") from exc
    except FileNotFoundError as exc:
        raise ProbeError(f"ffprobe not found: {ffprobe_path}") from exc
    except OSError as exc:
        raise ProbeError(f"ffprobe exec error: {exc}") from exc

    if proc.returncode != 0:
        message = (proc.stderr or "").strip() or f"ffprobe exited {proc.returncode}"
        raise ProbeError(message)
    return parse_probe_output(proc.stdout)


class MediaProber:
    """Request/response wrapper around the external probing tools."""

    def __init__(
        self,
        *,
        ffprobe_path: str = "ffprobe",
        ffmpeg_path: str = "ffmpeg",
        timeout_s: float = 60.0,
        thumbnails: Optional[ThumbnailSettings] = None,
        metadata: Optional[MetadataSettings] = None,
    ) -> None:
        self.ffprobe_path = ffprobe_path
        self.ffmpeg_path = ffmpeg_path
        self.timeout_s = float(timeout_s)
        self.thumbnails = thumbnails or ThumbnailSettings()
        self.metadata = metadata or MetadataSettings()

    @classmethod
    def from_settings(cls, settings: ScannerSettings) -> "MediaProber":
        return cls(
            ffprobe_path=settings.ffprobe_path,
            ffmpeg_path=settings.ffmpeg_path,
            timeout_s=settings.probe_timeout_s,
            thumbnails=settings.thumbnails,
            metadata=settings.metadata,
        )

    def probe_info(self, media_path: str) -> ProbeInfo:
        return run_ffprobe(self.ffprobe_path, media_path, timeout=self.timeout_s)

    def generate_thumbnail(self, media_path: str) -> Thumbnail:
        return generate_thumbnail(
            self.ffmpeg_path,
            media_path,
            width=self.thumbnails.width,
            height=self.thumbnails.height,
            scene_threshold=self.thumbnails.scene_threshold,
            timeout=self.timeout_s,
        )

    def detect_field_order(self, media_path: str) -> str:
        if not (self.metadata.enable and self.metadata.field_order):
            return UNKNOWN
        return detect_field_order(
            self.ffmpeg_path,
            media_path,
            frames=self.metadata.field_order_scan_frames,
            timeout=self.timeout_s,
        )


__all__ = [
    "MediaProber",
    "ProbeFormat",
    "ProbeInfo",
    "ProbeStream",
    "parse_probe_output",
    "run_ffprobe",
]
