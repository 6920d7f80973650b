import os
import time

import pytest
from fastapi.testclient import TestClient

from savebag import webapp


@pytest.fixture
def client():
    return TestClient(webapp.app)


def test_index_page(client):
    response = client.get("/")
    assert response.status_code == 200
    assert "Save File Inspector" in response.text


def test_upload_returns_tree_and_document(client, gvas_bytes):
    response = client.post("/api/upload", files={"file": ("game.sav", gvas_bytes, "application/octet-stream")})
    assert response.status_code == 200
    payload = response.json()
    assert payload["header"]["format"] == "gvas"
    level = payload["properties"][0]
    assert (level["name"], level["type"], level["value"]) == ("Level", "IntProperty", "7")
    assert payload["document"]["properties"]["Level"] == {"type": "int32", "value": 7}


def test_upload_sav_lists_objects(client, sav_bytes):
    response = client.post("/api/upload", files={"file": ("profile.sav", sav_bytes, "application/octet-stream")})
    assert response.status_code == 200
    nodes = response.json()["properties"]
    assert nodes[0]["name"] == "#0 /Game/Test/BP_Save"
    assert [c["name"] for c in nodes[0]["children"]] == ["Level", "Score"]


def test_upload_rejects_other_extensions(client):
    response = client.post("/api/upload", files={"file": ("notes.txt", b"hi", "text/plain")})
    assert response.status_code == 400


def test_upload_reports_parse_errors(client):
    response = client.post("/api/upload", files={"file": ("broken.sav", b"\xff" * 8, "application/octet-stream")})
    assert response.status_code == 400
    assert "Parse error" in response.json()["detail"]


def test_encode_round_trip(client, gvas_bytes):
    document = client.post("/api/upload", files={"file": ("game.sav", gvas_bytes, "application/octet-stream")}).json()["document"]
    response = client.post("/api/encode", json=document)
    assert response.status_code == 200
    assert response.content == gvas_bytes


def test_encode_reports_unknown_format(client):
    response = client.post("/api/encode", content=b'{"header": {}}')
    assert response.status_code == 400
    assert response.json()["detail"].startswith("Encode error")


def test_clean_uploads_removes_expired_files():
    stale = webapp.UPLOAD_ROOT / "stale_test_upload.sav"
    stale.write_bytes(b"x")
    old = time.time() - webapp.FILE_TTL_SECONDS - 10
    os.utime(stale, (old, old))
    assert webapp.clean_uploads() >= 1
    assert not stale.exists()


def test_encode_reports_json_path(client):
    body = b'{"header": {"format": "bag"}, "properties": {"Level": {"value": 1}}}'
    response = client.post("/api/encode", content=body)
    assert response.status_code == 400
    detail = response.json()["detail"]
    assert "MalformedJsonError" in detail
    assert "properties.Level.type" in detail
