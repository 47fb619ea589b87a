"""Legacy CINF/TINF records and the structured media-info document.

Everything here is pure: no I/O, no clock, no logging. The record layouts are
parsed by field position on the playout side, so spacing and order matter.
"""
from __future__ import annotations

import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .probe import ProbeInfo, ProbeStream

Timebase = Tuple[int, int]

DEFAULT_TIMEBASE: Timebase = (1, 25)
STILL_TIMEBASE: Timebase = (0, 1)
STILL_CODEC_TIME_BASE = "0/1"
FALLBACK_DURATION_S = 1 / 24
CRLF = "\r\n"


class MediaType(str, Enum):
    MOVIE = "MOVIE"
    STILL = "STILL"
    AUDIO = "AUDIO"

    @property
    def token(self) -> str:
        return f" {self.value} "


def parse_rational(value: Optional[str]) -> Optional[Timebase]:
    if not value or "/" not in value:
        return None
    num_s, den_s = value.split("/", 1)
    try:
        return int(num_s), int(den_s)
    except ValueError:
        return None


def _stream_timebase(stream: ProbeStream) -> Timebase:
    return parse_rational(stream.time_base) or DEFAULT_TIMEBASE


def _motion_timebase(stream: ProbeStream) -> Timebase:
    frame_rate = parse_rational(stream.avg_frame_rate or stream.r_frame_rate)
    if frame_rate is not None:
        rate_num, rate_den = frame_rate
        return rate_den, rate_num
    return _stream_timebase(stream)


def infer_timebase(streams: Sequence[ProbeStream]) -> Tuple[MediaType, Timebase]:
    """Classify the clip and pick the single timebase the playout engine uses."""

    audio_tb: Optional[Timebase] = None
    video_tb: Optional[Timebase] = None
    still_tb: Optional[Timebase] = None

    for stream in streams:
        if stream.codec_type == "audio":
            if audio_tb is None:
                audio_tb = _stream_timebase(stream)
        elif stream.codec_type == "video":
            if stream.codec_time_base == STILL_CODEC_TIME_BASE:
                if still_tb is None:
                    still_tb = STILL_TIMEBASE
            elif video_tb is None:
                video_tb = _motion_timebase(stream)

    if video_tb is not None:
        return MediaType.MOVIE, video_tb
    if still_tb is not None and audio_tb is None:
        return MediaType.STILL, still_tb
    return MediaType.AUDIO, audio_tb or STILL_TIMEBASE


def frame_duration(duration_s: Optional[float], timebase: Timebase) -> int:
    num, den = timebase
    if num == 0:
        return 0
    duration = duration_s if duration_s and math.isfinite(duration_s) else FALLBACK_DURATION_S
    return math.floor(duration * den / num)


def _format_time(epoch_ms: int, pattern: str) -> str:
    return datetime.fromtimestamp(epoch_ms / 1000.0, tz=timezone.utc).strftime(pattern)


def generate_cinf(media_id: str, media_size: int, thumb_time: int, probe: ProbeInfo) -> str:
    media_type, timebase = infer_timebase(probe.streams)
    fields = [
        f'"{media_id}"',
        media_type.token,
        str(int(media_size)),
        _format_time(thumb_time, "%Y%m%d%H%M%S"),
        str(frame_duration(probe.format.duration_s, timebase)),
        f"{timebase[0]}/{timebase[1]}",
    ]
    return " ".join(fields) + CRLF


def generate_tinf(media_id: str, thumb_time: int, thumb_size: int) -> str:
    fields = [
        f'"{media_id}"',
        _format_time(thumb_time, "%Y%m%dT%H%M%S"),
        str(int(thumb_size)),
    ]
    return " ".join(fields) + CRLF


def _stream_info(stream: ProbeStream) -> Dict[str, Any]:
    return {
        "codec": {
            "long_name": stream.codec_long_name,
            "type": stream.codec_type,
            "time_base": stream.codec_time_base,
            "tag_string": stream.codec_tag_string,
            "is_avc": stream.is_avc,
        },
        # video
        "width": stream.width,
        "height": stream.height,
        "sample_aspect_ratio": stream.sample_aspect_ratio,
        "display_aspect_ratio": stream.display_aspect_ratio,
        "pix_fmt": stream.pix_fmt,
        "bits_per_raw_sample": stream.bits_per_raw_sample,
        # audio
        "sample_fmt": stream.sample_fmt,
        "sample_rate": stream.sample_rate,
        "channels": stream.channels,
        "channel_layout": stream.channel_layout,
        "bits_per_sample": stream.bits_per_sample,
        # common
        "time_base": stream.time_base,
        "start_time": stream.start_time,
        "duration_ts": stream.duration_ts,
        "duration": stream.duration,
        "bit_rate": stream.bit_rate,
        "max_bit_rate": stream.max_bit_rate,
        "nb_frames": stream.nb_frames,
    }


def generate_media_info(
    *,
    media_id: str,
    media_path: str,
    media_size: int,
    media_time: int,
    probe: ProbeInfo,
    field_order: str,
) -> Dict[str, Any]:
    fmt = probe.format
    return {
        "name": media_id,
        "path": media_path,
        "size": media_size,
        "time": media_time,
        "field_order": field_order,
        "streams": [_stream_info(stream) for stream in probe.streams],
        "format": {
            "name": fmt.format_name,
            "long_name": fmt.format_long_name,
            "size": fmt.size,
            "start_time": fmt.start_time,
            "duration": fmt.duration,
            "bit_rate": fmt.bit_rate,
            "max_bit_rate": fmt.max_bit_rate,
        },
    }


__all__ = [
    "MediaType",
    "Timebase",
    "frame_duration",
    "generate_cinf",
    "generate_media_info",
    "generate_tinf",
    "infer_timebase",
    "parse_rational",
]
