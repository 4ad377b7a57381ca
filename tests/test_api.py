import asyncio
from pathlib import Path

import cloudinary.uploader
import pytest
from cloudinary.exceptions import AuthorizationRequired
from fastapi.testclient import TestClient

from consult.auth.credentials import CredentialService
from consult.storage.document_store import MemoryDocumentStore
from consult.utils.config import (
    AppSettings,
    AuthSettings,
    CloudinarySettings,
    DatabaseSettings,
    Settings,
    StorageSettings,
)
from consult.utils.exceptions import StartupError, StoreError
from web.main import create_app

SECRET = "test-secret"
ADMIN_PASSWORD = "admin-pass-1"


def make_settings(tmp_path: Path, environment: str = "development", backend: str = "local") -> Settings:
    return Settings(
        app=AppSettings(environment=environment),
        database=DatabaseSettings(url="memory://"),
        auth=AuthSettings(secret_key=SECRET, bcrypt_rounds=4, admin_password=ADMIN_PASSWORD),
        storage=StorageSettings(
            backend=backend,
            config_file=str(tmp_path / "storagePath.json"),
            local_root=str(tmp_path / "uploads"),
        ),
        cloudinary=CloudinarySettings(
            cloud_name="demo", api_key="key", api_secret="secret", max_retries=1
        )
        if backend == "cloud"
        else CloudinarySettings(),
    )


@pytest.fixture
def client(tmp_path: Path):
    app = create_app(make_settings(tmp_path), process_guard=False)
    with TestClient(app) as test_client:
        yield test_client


def auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def register(client: TestClient, login_id: str, password: str = "p@ss", role: str = "doctor") -> dict:
    res = client.post(
        "/api/auth/register", json={"loginId": login_id, "password": password, "role": role}
    )
    assert res.status_code == 201, res.text
    return res.json()


def login(client: TestClient, login_id: str, password: str = "p@ss") -> str:
    res = client.post("/api/auth/login", json={"loginId": login_id, "password": password})
    assert res.status_code == 200, res.text
    return res.json()["token"]


def admin_token(client: TestClient) -> str:
    return login(client, "admin", ADMIN_PASSWORD)


def upload(client: TestClient, token: str, name: str = "clip.mp4", data: bytes = b"video-bytes"):
    return client.post(
        "/api/save-video",
        headers=auth(token),
        files={"videoFile": (name, data, "video/mp4")},
    )


def test_health(client: TestClient):
    res = client.get("/api/health")
    assert res.status_code == 200
    assert res.json()["status"] == "healthy"


def test_default_admin_is_bootstrapped_once(tmp_path: Path):
    app = create_app(make_settings(tmp_path), process_guard=False)
    with TestClient(app):
        pass
    with TestClient(app) as client:
        res = client.get("/api/auth/users", headers=auth(admin_token(client)))

    assert res.status_code == 200, res.text
    admins = [u for u in res.json()["users"] if u["role"] == "admin"]
    assert len(admins) == 1
    assert admins[0]["loginId"] == "admin"


def test_doctor_registers_logs_in_and_uploads(client: TestClient, tmp_path: Path):
    user = register(client, "doc1", "p@ss", "doctor")
    assert user["role"] == "doctor"
    assert "passwordHash" not in user and "password_hash" not in user

    res = client.post("/api/auth/login", json={"loginId": "doc1", "password": "p@ss"})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["role"] == "doctor"
    assert body["user"]["loginId"] == "doc1"

    res = upload(client, body["token"])
    assert res.status_code == 200, res.text
    saved = res.json()
    assert saved["success"] is True

    expected = tmp_path / "uploads" / "default-folder" / "clip.mp4"
    assert saved["path"] == str(expected.resolve())
    assert expected.read_bytes() == b"video-bytes"


def test_register_validation(client: TestClient):
    register(client, "doc1")

    duplicate = client.post(
        "/api/auth/register", json={"loginId": "DOC1", "password": "x", "role": "patient"}
    )
    assert duplicate.status_code == 400
    assert duplicate.json()["success"] is False

    admin = client.post(
        "/api/auth/register", json={"loginId": "sneaky", "password": "x", "role": "admin"}
    )
    assert admin.status_code == 400

    missing = client.post("/api/auth/register", json={"loginId": "nopass"})
    assert missing.status_code == 422


def test_login_failures(client: TestClient):
    register(client, "doc1")

    assert client.post("/api/auth/login", json={"loginId": "doc1", "password": "nope"}).status_code == 401
    assert client.post("/api/auth/login", json={"loginId": "ghost", "password": "p@ss"}).status_code == 401


def test_protected_routes_reject_missing_and_bad_tokens(client: TestClient):
    res = client.get("/api/auth/me")
    assert res.status_code == 401
    assert res.json()["detail"] == "Not authenticated"
    assert res.headers["www-authenticate"] == "Bearer"

    for headers in (
        {"Authorization": "Bearer garbage"},
        {"Authorization": "Token abc"},
        {"Authorization": "Bearer "},
    ):
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    assert upload(client, "garbage").status_code == 401


def test_expired_and_foreign_tokens(client: TestClient):
    services = client.app.state.services
    admin = services.store.find_user_by_login_id("admin")

    expired = CredentialService(
        services.store, AuthSettings(secret_key=SECRET, token_ttl_hours=-1), SECRET
    ).issue_token(admin)
    foreign = CredentialService(
        services.store, AuthSettings(secret_key="other"), "other"
    ).issue_token(admin)

    for token in (expired, foreign):
        res = client.get("/api/auth/me", headers=auth(token))
        assert res.status_code == 401
        assert res.json()["detail"] == "Invalid or expired token"


def test_storage_path_update_is_admin_only(client: TestClient, tmp_path: Path):
    register(client, "doc1")
    doctor = login(client, "doc1")
    new_path = str(tmp_path / "videos")

    no_token = client.post("/api/update-storage-path", json={"newStoragePath": new_path})
    assert no_token.status_code == 401

    forbidden = client.post(
        "/api/update-storage-path", json={"newStoragePath": new_path}, headers=auth(doctor)
    )
    assert forbidden.status_code == 403
    assert client.get("/api/get-storage-path").json() == {"path": "default-folder"}

    res = client.post(
        "/api/update-storage-path", json={"newStoragePath": new_path}, headers=auth(admin_token(client))
    )
    assert res.status_code == 200, res.text
    assert res.json()["success"] is True
    assert res.json()["folder"] == new_path

    assert client.get("/api/get-storage-path").json() == {"path": new_path}

    saved = upload(client, doctor)
    assert saved.status_code == 200, saved.text
    assert (tmp_path / "videos" / "clip.mp4").exists()


def test_storage_path_update_accepts_get_with_body(client: TestClient):
    res = client.request(
        "GET",
        "/api/update-storage-path",
        json={"newStoragePath": "clinic-videos"},
        headers=auth(admin_token(client)),
    )
    assert res.status_code == 200, res.text
    assert client.get("/api/get-storage-path").json()["path"] == "clinic-videos"


@pytest.mark.parametrize("payload", [{}, {"newStoragePath": ""}, {"newStoragePath": "   "}, None])
def test_storage_path_update_requires_value(client: TestClient, payload):
    token = admin_token(client)
    client.post("/api/update-storage-path", json={"newStoragePath": "kept"}, headers=auth(token))

    res = client.post("/api/update-storage-path", json=payload, headers=auth(token))

    assert res.status_code == 400
    assert res.json() == {"success": False, "detail": "Storage path is required"}
    assert client.get("/api/get-storage-path").json()["path"] == "kept"


def test_save_video_without_file(client: TestClient):
    register(client, "doc1")
    token = login(client, "doc1")

    empty = client.post("/api/save-video", headers=auth(token))
    wrong_field = client.post(
        "/api/save-video",
        headers=auth(token),
        files={"otherField": ("clip.mp4", b"x", "video/mp4")},
    )

    for res in (empty, wrong_field):
        assert res.status_code == 400
        assert res.json()["detail"] == "No video file uploaded"


def test_cloud_upload(tmp_path: Path, monkeypatch):
    calls = []

    def fake_upload(file, **options):
        calls.append(options)
        return {
            "secure_url": "https://res.cloudinary.com/demo/video/upload/v1/default-folder/clip.mp4",
            "public_id": "default-folder/clip",
        }

    monkeypatch.setattr(cloudinary.uploader, "upload", fake_upload)
    app = create_app(make_settings(tmp_path, backend="cloud"), process_guard=False)

    with TestClient(app) as client:
        res = upload(client, admin_token(client))

    assert res.status_code == 200, res.text
    assert res.json() == {
        "success": True,
        "message": "Video uploaded successfully to Cloudinary",
        "videoUrl": "https://res.cloudinary.com/demo/video/upload/v1/default-folder/clip.mp4",
        "publicId": "default-folder/clip",
    }
    assert calls[0]["resource_type"] == "video"
    assert calls[0]["folder"] == "default-folder"


@pytest.mark.parametrize("environment, shows_error", [("development", True), ("production", False)])
def test_cloud_failure_is_reported(tmp_path: Path, monkeypatch, environment, shows_error):
    def rejected(file, **options):
        raise AuthorizationRequired("Invalid api_key key")

    monkeypatch.setattr(cloudinary.uploader, "upload", rejected)
    app = create_app(make_settings(tmp_path, environment, backend="cloud"), process_guard=False)

    with TestClient(app) as client:
        res = upload(client, admin_token(client))

    assert res.status_code == 500
    body = res.json()
    assert body["success"] is False
    assert body["detail"] == "Video upload failed"
    assert ("error" in body) is shows_error
    if shows_error:
        assert "Invalid api_key" in body["error"]


def test_store_failure_is_a_generic_500(client: TestClient, monkeypatch):
    token = admin_token(client)

    def broken():
        raise StoreError("users.json unreadable")

    monkeypatch.setattr(client.app.state.services.store, "list_users", broken)
    res = client.get("/api/auth/users", headers=auth(token))

    assert res.status_code == 500
    assert res.json()["detail"] == "Database error"


def test_unexpected_error_is_a_generic_500(tmp_path: Path, monkeypatch):
    app = create_app(make_settings(tmp_path), process_guard=False)

    with TestClient(app, raise_server_exceptions=False) as client:
        token = admin_token(client)

        def broken():
            raise RuntimeError("boom")

        monkeypatch.setattr(app.state.services.store, "list_users", broken)
        res = client.get("/api/auth/users", headers=auth(token))

    assert res.status_code == 500
    assert res.json()["detail"] == "Something went wrong!"


def test_deactivated_user_loses_access(client: TestClient):
    patient = register(client, "pat1", role="patient")
    token = login(client, "pat1")
    admin = admin_token(client)

    res = client.post(f"/api/auth/users/{patient['id']}/deactivate", headers=auth(admin))
    assert res.status_code == 200, res.text
    assert res.json()["isActive"] is False

    assert client.get("/api/auth/me", headers=auth(token)).status_code == 401
    disabled = client.post("/api/auth/login", json={"loginId": "pat1", "password": "p@ss"})
    assert disabled.status_code == 403

    client.post(f"/api/auth/users/{patient['id']}/activate", headers=auth(admin))
    assert client.get("/api/auth/me", headers=auth(login(client, "pat1"))).status_code == 200


def test_user_administration_guards(client: TestClient):
    admin = admin_token(client)
    me = client.get("/api/auth/me", headers=auth(admin)).json()

    assert client.post(f"/api/auth/users/{me['id']}/deactivate", headers=auth(admin)).status_code == 400
    assert client.post("/api/auth/users/unknown/deactivate", headers=auth(admin)).status_code == 404

    register(client, "doc1")
    assert client.get("/api/auth/users", headers=auth(login(client, "doc1"))).status_code == 403


def test_change_password(client: TestClient):
    register(client, "doc1", "old-pass")
    token = login(client, "doc1", "old-pass")

    wrong = client.put(
        "/api/auth/password",
        json={"currentPassword": "nope", "newPassword": "new-pass"},
        headers=auth(token),
    )
    assert wrong.status_code == 400

    ok = client.put(
        "/api/auth/password",
        json={"currentPassword": "old-pass", "newPassword": "new-pass"},
        headers=auth(token),
    )
    assert ok.status_code == 204
    login(client, "doc1", "new-pass")


def test_consultation_visibility(client: TestClient):
    doctor_id = register(client, "doc1")["id"]
    register(client, "doc2")
    patient_id = register(client, "pat1", role="patient")["id"]
    register(client, "pat2", role="patient")

    doctor = login(client, "doc1")
    res = client.post(
        "/api/consultations",
        json={
            "patientId": patient_id,
            "title": "Follow-up",
            "videoUrl": "https://res.cloudinary.com/demo/video/upload/v1/clip.mp4",
        },
        headers=auth(doctor),
    )
    assert res.status_code == 201, res.text
    record = res.json()
    assert record["doctorId"] == doctor_id
    assert record["status"] == "scheduled"

    def visible(login_id):
        token = login(client, login_id)
        listed = client.get("/api/consultations", headers=auth(token)).json()["consultations"]
        single = client.get(f"/api/consultations/{record['id']}", headers=auth(token))
        return [c["id"] for c in listed], single.status_code

    assert visible("doc1") == ([record["id"]], 200)
    assert visible("pat1") == ([record["id"]], 200)
    assert visible("doc2") == ([], 404)
    assert visible("pat2") == ([], 404)

    admin = admin_token(client)
    everything = client.get(f"/api/consultations?patientId={patient_id}", headers=auth(admin))
    assert [c["id"] for c in everything.json()["consultations"]] == [record["id"]]


def test_consultation_creation_rules(client: TestClient):
    doctor_id = register(client, "doc1")["id"]
    other_doctor_id = register(client, "doc2")["id"]
    patient_id = register(client, "pat1", role="patient")["id"]
    doctor = login(client, "doc1")
    admin = admin_token(client)

    as_patient = client.post(
        "/api/consultations",
        json={"patientId": patient_id, "title": "Self-booked"},
        headers=auth(login(client, "pat1")),
    )
    assert as_patient.status_code == 403

    for_other_doctor = client.post(
        "/api/consultations",
        json={"patientId": patient_id, "doctorId": other_doctor_id, "title": "Cover"},
        headers=auth(doctor),
    )
    assert for_other_doctor.status_code == 403

    unknown_patient = client.post(
        "/api/consultations", json={"patientId": doctor_id, "title": "Wrong"}, headers=auth(doctor)
    )
    assert unknown_patient.status_code == 400

    admin_without_doctor = client.post(
        "/api/consultations", json={"patientId": patient_id, "title": "Intake"}, headers=auth(admin)
    )
    assert admin_without_doctor.status_code == 400

    by_admin = client.post(
        "/api/consultations",
        json={"patientId": patient_id, "doctorId": doctor_id, "title": "Intake"},
        headers=auth(admin),
    )
    assert by_admin.status_code == 201, by_admin.text
    assert by_admin.json()["doctorId"] == doctor_id


def test_startup_requires_secret_in_production(tmp_path: Path):
    settings = make_settings(tmp_path, environment="production")
    settings.auth.secret_key = ""

    with pytest.raises(StartupError):
        create_app(settings, store=MemoryDocumentStore(), process_guard=False)


def test_change_password_rejects_short_password(client: TestClient):
    register(client, "doc1", "old-pass")
    token = login(client, "doc1", "old-pass")

    res = client.put(
        "/api/auth/password",
        json={"currentPassword": "old-pass", "newPassword": "x"},
        headers=auth(token),
    )

    assert res.status_code == 422
    login(client, "doc1", "old-pass")


@pytest.mark.parametrize("login_id", ["   ", "\t"])
def test_register_rejects_blank_login_id(client: TestClient, login_id):
    res = client.post(
        "/api/auth/register", json={"loginId": login_id, "password": "p", "role": "doctor"}
    )

    assert res.status_code == 422
    users = client.get("/api/auth/users", headers=auth(admin_token(client))).json()["users"]
    assert [u["loginId"] for u in users] == ["admin"]


def test_login_id_is_stored_stripped(client: TestClient):
    user = register(client, "  doc1  ")
    assert user["loginId"] == "doc1"
    login(client, "doc1")


def _running_on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_store_reads_run_in_worker_threads(client: TestClient, monkeypatch):
    store = client.app.state.services.store
    doctor_id = register(client, "doc1")["id"]
    patient_id = register(client, "pat1", role="patient")["id"]
    admin = admin_token(client)
    doctor = login(client, "doc1")

    on_loop = []
    for name in ("find_user_by_id", "list_users", "find_consultations", "find_consultation_by_id"):
        original = getattr(store, name)

        def recorded(*args, _original=original, **kwargs):
            on_loop.append(_running_on_event_loop())
            return _original(*args, **kwargs)

        monkeypatch.setattr(store, name, recorded)

    created = client.post(
        "/api/consultations",
        json={"patientId": patient_id, "doctorId": doctor_id, "title": "Intake"},
        headers=auth(admin),
    )
    assert created.status_code == 201, created.text
    client.get("/api/consultations", headers=auth(doctor))
    client.get(f"/api/consultations/{created.json()['id']}", headers=auth(doctor))
    client.get("/api/auth/users", headers=auth(admin))
    client.post(f"/api/auth/users/{patient_id}/deactivate", headers=auth(admin))

    assert on_loop
    assert not any(on_loop)


@pytest.mark.parametrize("environment", ["development", "production"])
def test_cors_uses_allow_list(tmp_path: Path, environment):
    app = create_app(make_settings(tmp_path, environment), process_guard=False)

    with TestClient(app) as client:
        allowed = client.get("/api/health", headers={"Origin": "http://localhost:3000"})
        other = client.get("/api/health", headers={"Origin": "https://elsewhere.example"})

    assert allowed.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert "access-control-allow-origin" not in other.headers
