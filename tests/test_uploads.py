import pytest

from bikerhub.config import settings
from tests.conftest import auth_headers, register

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def upload_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(settings, "UPLOAD_DIR", str(tmp_path))
    return tmp_path


def test_upload_and_delete(client, user, upload_dir):
    resp = client.post(
        "/api/uploads",
        files=[("files", ("frame.png", PNG, "image/png")), ("files", ("geometry.pdf", b"%PDF-1.4", "application/pdf"))],
        headers=user["headers"],
    )
    assert resp.status_code == 201, resp.text
    saved = resp.json()["data"]
    assert [s["original_name"] for s in saved] == ["frame.png", "geometry.pdf"]
    assert saved[0]["url"] == f"/uploads/{saved[0]['filename']}"
    assert saved[0]["size"] == len(PNG)
    assert (upload_dir / saved[0]["filename"]).read_bytes() == PNG

    listed = client.get("/api/uploads", headers=user["headers"]).json()["data"]
    assert len(listed) == 2

    resp = client.delete(f"/api/uploads/{saved[0]['id']}", headers=user["headers"])
    assert resp.status_code == 200
    assert not (upload_dir / saved[0]["filename"]).exists()


def test_upload_rejects_type(client, user, upload_dir):
    resp = client.post("/api/uploads", files=[("files", ("notes.txt", b"hi", "text/plain"))], headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Unsupported file type."


def test_upload_rejects_size(client, user, upload_dir, monkeypatch):
    monkeypatch.setattr(settings, "MAX_FILE_SIZE", 16)
    resp = client.post("/api/uploads", files=[("files", ("frame.png", PNG, "image/png"))], headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "File too large. Maximum size is 1MB."


def test_upload_rejects_count(client, user, upload_dir):
    files = [("files", (f"{i}.png", PNG, "image/png")) for i in range(settings.MAX_FILES + 1)]
    resp = client.post("/api/uploads", files=files, headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Too many files. Maximum is 5 files."


def test_upload_rejects_unexpected_field(client, user, upload_dir):
    files = [("files", ("frame.png", PNG, "image/png")), ("avatar", ("me.png", PNG, "image/png"))]
    resp = client.post("/api/uploads", files=files, headers=user["headers"])
    assert resp.status_code == 400
    assert resp.json()["message"] == "Unexpected file field."
    assert list(upload_dir.iterdir()) == []


def test_delete_someone_elses_upload(client, user, upload_dir):
    saved = client.post(
        "/api/uploads", files=[("files", ("frame.png", PNG, "image/png"))], headers=user["headers"]
    ).json()["data"]
    stranger = register(client, username="stranger", email="stranger@bikerhub.com")
    resp = client.delete(f"/api/uploads/{saved[0]['id']}", headers=auth_headers(stranger["token"]))
    assert resp.status_code == 403
