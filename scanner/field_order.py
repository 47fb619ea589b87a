"""Interlace detection through ffmpeg's ``idet`` filter."""
from __future__ import annotations

import os
import re
import subprocess

from .errors import ProbeError

PROGRESSIVE = "progressive"
TFF = "tff"
BFF = "bff"
UNKNOWN = "unknown"

# idet counts at or below this are treated as detection noise
INTERLACED_NOISE_FRAMES = 10

_RESULT_PATTERN = re.compile(
    r"Multi frame detection: TFF:\s+(\d+)\s+BFF:\s+(\d+)\s+Progressive:\s+(\d+)"
)


def classify_field_order(tff: int, bff: int) -> str:
    if tff <= INTERLACED_NOISE_FRAMES and bff <= INTERLACED_NOISE_FRAMES:
        return PROGRESSIVE
    return TFF if tff > bff else BFF


def parse_idet_output(stderr: str) -> str:
    match = _RESULT_PATTERN.search(stderr or "")
    if match is None:
        return UNKNOWN
    return classify_field_order(int(match.group(1)), int(match.group(2)))


def detect_field_order(
    ffmpeg_path: str,
    media_path: str,
    *,
    frames: int = 200,
    timeout: float = 60.0,
) -> str:
    args = [
        ffmpeg_path,
        "-hide_banner",
        "-i",
        media_path,
        "-filter:v",
        "idet",
        "-frames:v",
        str(int(frames)),
        "-an",
        "-f",
        "rawvideo",
        "-y",
        os.devnull,
    ]
    try:
        proc = subprocess.run(
            args,
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            errors="replace",
            timeout=max(1.0, float(timeout)),
        )
    except subprocess.TimeoutExpired as exc:
        raise ProbeError(f"idet timeout after {exc.timeout}s") from exc
    except OSError as exc:
        raise ProbeError(f"ffmpeg exec error: {exc}") from exc
    if proc.returncode != 0:
        raise ProbeError((proc.stderr or "").strip()[-500:] or f"ffmpeg exited {proc.returncode}")
    return parse_idet_output(proc.stderr)


__all__ = [
    "BFF",
    "PROGRESSIVE",
    "TFF",
    "UNKNOWN",
    "classify_field_order",
    "detect_field_order",
    "parse_idet_output",
]
