from __future__ import annotations

import json
from pathlib import Path

import pytest

import media_scanner
from core.paths import get_catalog_db_path
from scanner.store import MediaStore

from fakes import FakeProber


class _FakeProberFactory:
    @staticmethod
    def from_settings(settings) -> FakeProber:
        return FakeProber()


def test_once_indexes_media_root_and_exits(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    media = tmp_path / "media"
    (media / "clips").mkdir(parents=True)
    (media / "clips" / "intro.mov").write_bytes(b"intro")
    (media / "logo.png").write_bytes(b"logo")
    home.mkdir()
    (home / "settings.json").write_text(json.dumps({"paths": {"media": str(media)}}), encoding="utf-8")
    monkeypatch.setenv("MEDIASCANNER_HOME", str(home))
    monkeypatch.setattr(media_scanner, "MediaProber", _FakeProberFactory)
    monkeypatch.setattr(media_scanner, "configure_json_logging", lambda *args, **kwargs: None)

    assert media_scanner.main(["--once"]) == 0

    with MediaStore(get_catalog_db_path(home.resolve())) as store:
        ids = [entry.id for entry in store.iter_entries()]
        assert ids == ["CLIPS/INTRO", "LOGO"]
        assert store.get_cinf("LOGO").startswith('"LOGO"')


def test_once_sweeps_stale_entries(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    home = tmp_path / "home"
    media = tmp_path / "media"
    media.mkdir()
    clip = media / "old.mov"
    clip.write_bytes(b"old")
    monkeypatch.setenv("MEDIASCANNER_HOME", str(home))
    monkeypatch.setattr(media_scanner, "MediaProber", _FakeProberFactory)
    monkeypatch.setattr(media_scanner, "configure_json_logging", lambda *args, **kwargs: None)

    assert media_scanner.main(["--once", "--media", str(media)]) == 0
    clip.unlink()
    assert media_scanner.main(["--once", "--media", str(media)]) == 0

    with MediaStore(get_catalog_db_path(home.resolve())) as store:
        assert store.count() == 0
