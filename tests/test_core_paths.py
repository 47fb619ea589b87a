from __future__ import annotations

from pathlib import Path

import pytest

from core import paths as core_paths


def test_resolve_working_dir_prefers_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "scanner-home"
    monkeypatch.setenv("MEDIASCANNER_HOME", str(home))

    resolved = core_paths.resolve_working_dir()

    assert resolved == home.resolve()
    assert core_paths.get_data_dir(resolved).is_dir()


def test_layout_helpers(tmp_path: Path) -> None:
    core_paths.ensure_working_dir_structure(tmp_path)

    assert core_paths.get_catalog_db_path(tmp_path) == tmp_path / "data" / "media.db"
    assert core_paths.get_logs_dir(tmp_path).is_dir()
    assert core_paths.get_default_settings_paths(tmp_path)[0] == tmp_path / "settings.json"
