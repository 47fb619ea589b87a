from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Iterable, List, Optional

__all__ = [
    "ENV_HOME",
    "ensure_working_dir_structure",
    "get_catalog_db_path",
    "get_data_dir",
    "get_default_settings_paths",
    "get_logs_dir",
    "resolve_working_dir",
]

ENV_HOME = "MEDIASCANNER_HOME"

_PROJECT_ROOT = Path(__file__).resolve().parent.parent


def _candidate_dirs() -> Iterable[Path]:
    env_home = os.environ.get(ENV_HOME)
    if env_home:
        yield Path(os.path.expandvars(os.path.expanduser(env_home))).resolve()
    yield Path.home() / ".mediascanner"
    yield Path.cwd() / ".mediascanner"


def _usable(directory: Path) -> bool:
    """Create *directory* if needed and confirm a file can be written inside it."""

    try:
        directory.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(dir=directory, prefix=".write_test_", delete=True):
            pass
    except OSError:
        return False
    return True


def resolve_working_dir() -> Path:
    """Return the first writable working directory, laid out for use.

    Order: ``$MEDIASCANNER_HOME``, ``~/.mediascanner``, ``./.mediascanner``.
    """

    fallback: Optional[Path] = None
    for candidate in _candidate_dirs():
        fallback = candidate
        if _usable(candidate):
            ensure_working_dir_structure(candidate)
            return candidate
    assert fallback is not None
    ensure_working_dir_structure(fallback)
    return fallback


def get_data_dir(working_dir: Path) -> Path:
    return working_dir / "data"


def get_catalog_db_path(working_dir: Path) -> Path:
    return get_data_dir(working_dir) / "media.db"


def get_logs_dir(working_dir: Path) -> Path:
    return working_dir / "logs"


def ensure_working_dir_structure(working_dir: Path) -> None:
    for directory in (working_dir, get_data_dir(working_dir), get_logs_dir(working_dir)):
        directory.mkdir(parents=True, exist_ok=True)


def get_default_settings_paths(working_dir: Path) -> List[Path]:
    """Return the search order for settings.json files."""

    return [working_dir / "settings.json", _PROJECT_ROOT / "settings.json"]
