from __future__ import annotations

import base64
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from api.server import create_app
from scanner.engine import ReconcileEngine
from scanner.store import CatalogEntry, MediaStore

from fakes import PNG_BYTES, FakeProber

CINF_A = '"CLIPS/A"  MOVIE  10 20240101120000 250 1/25\r\n'
CINF_B = '"LOGO"  STILL  20 20240101120000 0 0/1\r\n'
TINF_A = '"CLIPS/A" 20240101T120000 42\r\n'


@pytest.fixture
def populated(store: MediaStore, media_root: Path) -> MediaStore:
    first = CatalogEntry.placeholder("CLIPS/A")
    first.media_path = str(media_root / "clips" / "a.mov")
    first.cinf = CINF_A
    first.tinf = TINF_A
    first.thumbnail = PNG_BYTES
    first.media_info = {"name": "CLIPS/A", "field_order": "progressive"}
    store.put(first)
    second = CatalogEntry.placeholder("LOGO")
    second.media_path = str(media_root / "logo.png")
    second.cinf = CINF_B
    store.put(second)
    return store


@pytest.fixture
def engine(populated: MediaStore, media_root: Path):
    instance = ReconcileEngine(populated, FakeProber(), media_root=media_root)
    yield instance
    instance.stop()


def test_cls_and_tls(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))

    response = client.get("/cls")
    assert response.status_code == 200
    assert response.text == "200 CLS OK\r\n" + CINF_A + CINF_B + "\r\n"

    response = client.get("/tls")
    assert response.text == "200 TLS OK\r\n" + TINF_A + "\r\n"


def test_cinf_lookup_is_case_insensitive(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))

    response = client.get("/cinf/clips/a")
    assert response.status_code == 201
    assert response.text == "201 CINF OK\r\n" + CINF_A

    response = client.get("/cinf/NOPE")
    assert response.status_code == 404
    assert response.text == "404 CINF ERROR\r\n"


def test_tinf_lookup(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))

    response = client.get("/tinf/Clips/A")
    assert response.status_code == 201
    assert response.text == "201 TINF OK\r\n" + TINF_A

    response = client.get("/tinf/LOGO")
    assert response.status_code == 404
    assert response.text == "404 TINF ERROR\r\n"


def test_thumbnail_retrieve(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))

    response = client.get("/thumbnail/CLIPS/A")
    assert response.status_code == 201
    header, body, trailer = response.text.split("\r\n")
    assert header == "201 THUMBNAIL RETRIEVE OK"
    assert base64.b64decode(body) == PNG_BYTES
    assert trailer == ""

    assert client.get("/thumbnail/LOGO").status_code == 404


def test_thumbnail_generate_queues_rescans(populated: MediaStore, engine: ReconcileEngine) -> None:
    client = TestClient(create_app(populated, engine))

    response = client.get("/thumbnail/generate/logo")
    assert response.status_code == 202
    assert response.text == "202 THUMBNAIL GENERATE OK\r\n"
    assert engine.queue_depth == 1

    response = client.get("/thumbnail/generate")
    assert response.text == "202 THUMBNAIL GENERATE_ALL OK\r\n"
    assert engine.queue_depth == 3

    assert client.get("/thumbnail/generate/NOPE").status_code == 404


def test_thumbnail_generate_without_engine(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))
    assert client.get("/thumbnail/generate").status_code == 503


def test_media_listing_and_info(populated: MediaStore) -> None:
    client = TestClient(create_app(populated))

    payload = client.get("/media").json()
    assert [item["id"] for item in payload["items"]] == ["CLIPS/A", "LOGO"]
    assert payload["next_cursor"] is None
    assert payload["items"][0]["cinf"] == CINF_A

    page = client.get("/media", params={"limit": 1}).json()
    assert [item["id"] for item in page["items"]] == ["CLIPS/A"]
    assert page["next_cursor"] == "CLIPS/A"

    info = client.get("/media/info/clips/a")
    assert info.status_code == 200
    assert info.json()["field_order"] == "progressive"

    missing = client.get("/media/info/LOGO")
    assert missing.status_code == 404
    assert missing.json() == {"error": "media info not found"}


def test_healthz(populated: MediaStore, engine: ReconcileEngine) -> None:
    client = TestClient(create_app(populated, engine, version="9.9"))
    payload = client.get("/healthz").json()
    assert payload["ok"] is True
    assert payload["version"] == "9.9"
    assert payload["entries"] == 2
    assert payload["queue_depth"] == 0
