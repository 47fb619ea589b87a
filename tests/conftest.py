from __future__ import annotations

from pathlib import Path

import pytest

from scanner.store import MediaStore

from fakes import FakeProber


@pytest.fixture
def store(tmp_path: Path):
    with MediaStore(tmp_path / "media.db") as catalog:
        yield catalog


@pytest.fixture
def media_root(tmp_path: Path) -> Path:
    root = tmp_path / "media"
    root.mkdir()
    return root


@pytest.fixture
def prober() -> FakeProber:
    return FakeProber()
