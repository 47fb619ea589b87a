"""Single-frame PNG thumbnails extracted with ffmpeg."""
from __future__ import annotations

import io
import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import List

from PIL import Image, UnidentifiedImageError

from .errors import ThumbnailError

LOGGER = logging.getLogger("mediascanner.thumbnail")


@dataclass(frozen=True, slots=True)
class Thumbnail:
    data: bytes
    size: int
    mtime_ms: int


def _thumbnail_args(
    ffmpeg_path: str,
    media_path: str,
    target: str,
    *,
    width: int,
    height: int,
    scene_threshold: float | None,
) -> List[str]:
    filters = []
    if scene_threshold is not None:
        # commas inside a filter expression must be escaped in the filtergraph
        filters.append(f"select=gt(scene\\,{scene_threshold:g})")
    filters.append(f"scale={int(width)}:{int(height)}")
    return [
        ffmpeg_path,
        "-hide_banner",
        "-loglevel",
        "error",
        "-i",
        media_path,
        "-vf",
        ",".join(filters),
        "-frames:v",
        "1",
        "-threads",
        "1",
        "-y",
        target,
    ]


def _run_ffmpeg(args: List[str], *, timeout: float) -> None:
    try:
        proc = subprocess.run(
            args,
            check=False,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            timeout=max(1.0, float(timeout)),
        )
    except subprocess.TimeoutExpired as exc:
        raise ThumbnailError(f"ffmpeg timeout after {exc.timeout}s") from exc
    except FileNotFoundError as exc:
        raise ThumbnailError(f"ffmpeg not found: {args[0]}") from exc
    except OSError as exc:
        raise ThumbnailError(f"ffmpeg exec error: {exc}") from exc
    if proc.returncode != 0:
        stderr = (proc.stderr or b"").decode("utf-8", errors="replace").strip()
        raise ThumbnailError(stderr or f"ffmpeg exited {proc.returncode}")


def _read_png(path: str) -> Thumbnail:
    try:
        stat_result = os.stat(path)
        with open(path, "rb") as handle:
            data = handle.read()
    except OSError as exc:
        raise ThumbnailError(f"thumbnail unreadable: {exc}") from exc
    try:
        with Image.open(io.BytesIO(data)) as image:
            if image.format != "PNG":
                raise ThumbnailError(f"thumbnail is {image.format}, expected PNG")
            image.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise ThumbnailError(f"thumbnail is not a valid image: {exc}") from exc
    return Thumbnail(
        data=data,
        size=int(stat_result.st_size),
        mtime_ms=int(stat_result.st_mtime_ns // 1_000_000),
    )


def generate_thumbnail(
    ffmpeg_path: str,
    media_path: str,
    *,
    width: int = 256,
    height: int = -1,
    scene_threshold: float = 0.4,
    timeout: float = 60.0,
) -> Thumbnail:
    """Grab the first frame past the scene-change threshold, else the first frame."""

    fd, target = tempfile.mkstemp(prefix="mediascanner-", suffix=".png")
    os.close(fd)
    try:
        for threshold in (scene_threshold, None):
            if os.path.exists(target):
                os.unlink(target)
            args = _thumbnail_args(
                ffmpeg_path,
                media_path,
                target,
                width=width,
                height=height,
                scene_threshold=threshold,
            )
            _run_ffmpeg(args, timeout=timeout)
            if os.path.exists(target) and os.path.getsize(target) > 0:
                return _read_png(target)
            LOGGER.debug("No frame selected for %s (scene threshold %s)", media_path, threshold)
        raise ThumbnailError("ffmpeg produced no frame")
    finally:
        try:
            os.unlink(target)
        except FileNotFoundError:
            pass


__all__ = ["Thumbnail", "generate_thumbnail"]
