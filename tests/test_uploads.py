import re
from urllib.parse import parse_qs, urlparse

import pytest

from bello.config import Settings, get_settings
from bello.errors import UploadUnavailable
from bello.main import app
from bello.uploads import presign_upload, storage_key
from conftest import auth

U1 = auth("u1", email="u1@example.com")


def test_storage_key_is_prefixed_and_timestamped():
    assert re.fullmatch(r"attachments/\d{13}-report\.pdf", storage_key("report.pdf", "attachments"))
    assert re.fullmatch(r"covers/\d{13}-a\.png", storage_key("a.png", "/covers/"))
    assert re.fullmatch(r"\d{13}-a\.png", storage_key("a.png"))


def test_presign_returns_signed_put_url(client):
    resp = client.post(
        "/v1/uploads/presign",
        json={"filename": "report.pdf", "contentType": "application/pdf", "prefix": "attachments"},
        headers=U1,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["expiresIn"] == 600
    assert re.fullmatch(r"attachments/\d{13}-report\.pdf", body["key"])

    url = urlparse(body["uploadUrl"])
    assert "acct123.r2.cloudflarestorage.com" in url.netloc
    assert "bello-uploads" in body["uploadUrl"]
    assert url.path.endswith(body["key"])
    query = parse_qs(url.query)
    assert "X-Amz-Signature" in query
    assert query["X-Amz-Expires"] == ["600"]


def test_presign_honours_custom_endpoint_and_expiry():
    settings = Settings(
        r2_account_id="acct123",
        r2_access_key_id="k",
        r2_secret_access_key="s",
        r2_bucket_name="files",
        r2_endpoint_url="https://storage.example.com",
    )
    upload = presign_upload(settings, "a.txt", "text/plain", expires_in=60)
    assert upload.expires_in == 60
    assert upload.upload_url.startswith("https://")
    assert "storage.example.com" in upload.upload_url
    assert parse_qs(urlparse(upload.upload_url).query)["X-Amz-Expires"] == ["60"]


def test_presign_without_storage_is_unavailable(client):
    app.dependency_overrides[get_settings] = lambda: Settings()
    resp = client.post("/v1/uploads/presign", json={"filename": "a.txt", "contentType": "text/plain"}, headers=U1)
    assert resp.status_code == 503
    assert resp.json()["error"]["code"] == "upload_unavailable"


def test_presign_unconfigured_raises_directly():
    with pytest.raises(UploadUnavailable):
        presign_upload(Settings(r2_bucket_name="files"), "a.txt", "text/plain")


def test_presign_requires_identity(client):
    resp = client.post("/v1/uploads/presign", json={"filename": "a.txt", "contentType": "text/plain"})
    assert resp.status_code == 401


def test_presign_validates_payload(client):
    resp = client.post("/v1/uploads/presign", json={"filename": "", "contentType": "text/plain"}, headers=U1)
    assert resp.status_code == 400
    assert "filename" in resp.json()["error"]["details"]["fields"]

