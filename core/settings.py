from __future__ import annotations

import copy
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, Mapping

from .paths import get_default_settings_paths, get_logs_dir
from .settings_schema import SETTINGS_VALIDATOR

__all__ = [
    "DEFAULT_SETTINGS",
    "SETTINGS_VERSION",
    "load_settings",
    "merge_defaults",
    "save_settings",
]

LOGGER = logging.getLogger("mediascanner.settings")

SETTINGS_VERSION = 1


DEFAULT_SETTINGS: Dict[str, Any] = {
    "version": SETTINGS_VERSION,
    "paths": {
        "media": "media",
        "ffmpeg": "ffmpeg",
        "ffprobe": "ffprobe",
    },
    "scanner": {
        "paths": None,
        "stability_threshold_ms": 2000,
        "poll_interval_ms": 1000,
        "sweep_page_size": 256,
        "sweep_interval_s": 0,
        "ignore": [],
    },
    "thumbnails": {
        "width": 256,
        "height": -1,
        "scene_threshold": 0.4,
    },
    "metadata": {
        "enable": True,
        "field_order": False,
        "field_order_scan_frames": 200,
    },
    "probe": {
        "timeout_s": 60,
    },
    "api": {
        "enable": True,
        "host": "127.0.0.1",
        "port": 8000,
    },
    "logging": {
        "level": "INFO",
    },
}

# camelCase keys used by pre-versioned (v0) config files, by section
_LEGACY_KEYS: Dict[str, Dict[str, str]] = {
    "metadata": {
        "fieldOrder": "field_order",
        "fieldOrderScanDuration": "field_order_scan_frames",
    },
    "scanner": {
        "stabilityThreshold": "stability_threshold_ms",
        "pollInterval": "poll_interval_ms",
        "ignored": "ignore",
    },
}


def merge_defaults(data: Mapping[str, Any] | None) -> Dict[str, Any]:
    """Overlay *data* on a copy of :data:`DEFAULT_SETTINGS`.

    Sections present in the defaults are merged key by key; a section given
    as a non-object in *data* is replaced by its defaults. Keys the defaults do
    not know are carried through untouched so the validator can report them.
    """

    merged = copy.deepcopy(DEFAULT_SETTINGS)
    for key, value in (data or {}).items():
        default = merged.get(key)
        if isinstance(default, dict):
            if isinstance(value, Mapping):
                default.update(copy.deepcopy(dict(value)))
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _migrate_legacy(raw: Dict[str, Any]) -> Dict[str, Any]:
    """Upgrade an unversioned settings payload in place."""

    if "metadata" in raw and raw["metadata"] is None:
        raw["metadata"] = {"enable": False}
    for section, renames in _LEGACY_KEYS.items():
        block = raw.get(section)
        if not isinstance(block, dict):
            continue
        for old, new in renames.items():
            if old in block:
                block.setdefault(new, block.pop(old))
    scanner = raw.get("scanner")
    if isinstance(scanner, dict):
        write_finish = scanner.pop("awaitWriteFinish", None)
        if isinstance(write_finish, dict):
            scanner.setdefault("stability_threshold_ms", write_finish.get("stabilityThreshold", 2000))
            scanner.setdefault("poll_interval_ms", write_finish.get("pollInterval", 1000))
    return raw


def _apply_migrations(raw: Dict[str, Any]) -> Dict[str, Any]:
    try:
        version = int(raw.get("version") or 0)
    except (TypeError, ValueError):
        version = 0
    if version < 1:
        raw = _migrate_legacy(raw)
        LOGGER.info("Migrated settings from version %d to %d", version, SETTINGS_VERSION)
    raw["version"] = SETTINGS_VERSION
    return raw


def _report_unknown_keys(settings: Dict[str, Any], working_dir: Path) -> None:
    unknown = list(SETTINGS_VALIDATOR.unknown_keys(settings))
    if not unknown:
        return
    LOGGER.warning("Ignoring unknown settings keys: %s", ", ".join(unknown))
    target = get_logs_dir(working_dir) / "settings_unknown.json"
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(
            json.dumps({"ts": time.time(), "unknown": unknown}, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    except OSError as exc:
        LOGGER.debug("Could not write %s: %s", target, exc)


def _read_first_settings_file(working_dir: Path) -> Dict[str, Any]:
    for candidate in get_default_settings_paths(working_dir):
        try:
            loaded = json.loads(candidate.read_text(encoding="utf-8"))
        except FileNotFoundError:
            continue
        except (OSError, json.JSONDecodeError) as exc:
            LOGGER.warning("Skipping unreadable settings file %s: %s", candidate, exc)
            continue
        if isinstance(loaded, dict):
            return loaded
        LOGGER.warning("Skipping settings file %s: top level is not an object", candidate)
    return {}


def load_settings(working_dir: Path) -> Dict[str, Any]:
    """Read ``settings.json`` for *working_dir*, migrated and merged with defaults."""

    merged = merge_defaults(_apply_migrations(_read_first_settings_file(working_dir)))
    merged.setdefault("working_dir", str(working_dir))
    _report_unknown_keys(merged, working_dir)
    return merged


def save_settings(settings: Mapping[str, Any], working_dir: Path) -> None:
    merged = merge_defaults(_apply_migrations(copy.deepcopy(dict(settings))))
    merged.setdefault("working_dir", str(working_dir))
    path = working_dir / "settings.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(merged, ensure_ascii=False, indent=2), encoding="utf-8")
