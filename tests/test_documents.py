from urllib.parse import parse_qs, urlparse

import pytest
from werkzeug.security import generate_password_hash

from app.scholartrack import create_app
from app.scholartrack.db import session_scope
from app.scholartrack.errors import StorageError
from app.scholartrack.models import Base, User
from app.scholartrack.modules.documents.models import Document
from app.scholartrack.modules.documents.service import build_storage_key, sanitize_upload_filename, validate_upload_payload
from app.scholartrack.storage import LocalStorage, S3Storage, storage_from_config

S3_ENV = {
    "STORAGE_BACKEND": "s3",
    "S3_REGION": "us-east-1",
    "S3_BUCKET": "scholartrack-docs",
    "S3_ACCESS_KEY_ID": "AKIAEXAMPLEKEY",
    "S3_SECRET_ACCESS_KEY": "example-secret",
}


def _make_app(tmp_path, monkeypatch, **env):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    for k in ("S3_ENDPOINT", "S3_REGION", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY", "PRESIGNED_URL_EXPIRES"):
        monkeypatch.delenv(k, raising=False)
    for k, v in env.items():
        monkeypatch.setenv(k, v)

    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    with session_scope(app) as s:
        for email in ("alice@example.com", "bob@example.com"):
            s.add(User(email=email, password_hash=generate_password_hash("pw"), is_active=True))
    return app


def _login(app, email="alice@example.com"):
    c = app.test_client()
    assert c.post("/auth/login", json={"email": email, "password": "pw"}).status_code == 200
    return c


def _s3_config():
    return {k: v for k, v in S3_ENV.items()}


def test_storage_from_config():
    assert isinstance(storage_from_config({}), LocalStorage)
    assert isinstance(storage_from_config(_s3_config()), S3Storage)
    with pytest.raises(StorageError):
        storage_from_config({"STORAGE_BACKEND": "s3"})


def test_local_storage_cannot_presign():
    with pytest.raises(StorageError) as exc:
        storage_from_config({}).presigned_upload_url("documents/1/x.pdf")
    assert exc.value.status_code == 503


def test_s3_presign_is_offline_and_short_lived():
    storage = storage_from_config(_s3_config())
    url = storage.presigned_upload_url("documents/1/abc/cv.pdf", content_type="application/pdf", expires_in=300)
    parsed = urlparse(url)
    assert "scholartrack-docs" in parsed.netloc + parsed.path
    assert parsed.path.endswith("documents/1/abc/cv.pdf")
    assert parse_qs(parsed.query)["X-Amz-Expires"] == ["300"]

    url = storage.presigned_download_url("documents/1/abc/cv.pdf", filename="cv.pdf")
    assert "response-content-disposition" in urlparse(url).query


def test_upload_payload_validation():
    fields, errors = validate_upload_payload({"filename": "../../My CV.pdf", "contentType": "application/pdf"})
    assert errors == []
    assert fields["filename"] == "My_CV.pdf"
    assert fields["title"] == "../../My CV.pdf"

    _, errors = validate_upload_payload({"filename": "run.exe"})
    assert errors[0].startswith("Unsupported content type")

    fields, errors = validate_upload_payload({"contentType": "image/png"})
    assert fields == {}
    assert errors == ["filename is required"]

    assert sanitize_upload_filename("") == "document.bin"
    assert build_storage_key(7, "cv.pdf").startswith("documents/7/")


def test_upload_url_unavailable_on_local_backend(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch)
    c = _login(app)
    r = c.post("/documents/upload-url", json={"filename": "cv.pdf", "contentType": "application/pdf"})
    assert r.status_code == 503

    with session_scope(app) as s:
        assert s.query(Document).count() == 0


def test_upload_and_download_urls(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, **S3_ENV)
    alice = _login(app)

    r = alice.post("/documents/upload-url", json={"filename": "cv.pdf", "title": "My CV", "contentType": "application/pdf"})
    assert r.status_code == 201
    assert r.json["expiresIn"] == 300
    assert "X-Amz-Expires=300" in r.json["uploadUrl"]
    doc = r.json["document"]
    assert doc["title"] == "My CV"
    assert doc["contentType"] == "application/pdf"

    r = alice.get(f"/documents/{doc['id']}/download-url")
    assert r.status_code == 200
    assert "X-Amz-Expires=300" in r.json["downloadUrl"]

    bob = _login(app, "bob@example.com")
    assert bob.get(f"/documents/{doc['id']}/download-url").status_code == 404


def test_upload_url_requires_login(tmp_path, monkeypatch):
    app = _make_app(tmp_path, monkeypatch, **S3_ENV)
    r = app.test_client().post("/documents/upload-url", json={"filename": "cv.pdf", "contentType": "application/pdf"})
    assert r.status_code == 401
