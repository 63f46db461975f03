# tests/test_main.py
from fastapi import FastAPI
from fastapi.testclient import TestClient

from pagecast.config import Settings, settings
from pagecast.main import app, mount_audio_storage


def test_root():
    with TestClient(app) as client:
        response = client.get("/")
        assert response.status_code == 200
        assert response.json() == {"message": "Pagecast API is running"}


def test_log_files_are_not_served():
    (settings.LOGS_PATH / "api.log").write_text("owner-a secret log line")

    with TestClient(app) as client:
        assert client.get("/storage/logs/api.log").status_code == 404


def test_local_backend_serves_only_audio(tmp_path):
    config = Settings(STORAGE_BACKEND="local", STORAGE_PATH=tmp_path)
    (config.AUDIO_PATH / "1-1-5.mp3").write_bytes(b"narration")
    (config.LOGS_PATH / "api.log").write_text("owner-a secret log line")

    local_app = FastAPI()
    assert mount_audio_storage(local_app, config) is True

    client = TestClient(local_app)
    response = client.get("/storage/audio/1-1-5.mp3")
    assert response.status_code == 200
    assert response.content == b"narration"
    assert client.get("/storage/logs/api.log").status_code == 404


def test_s3_backend_mounts_nothing(tmp_path):
    config = Settings(STORAGE_BACKEND="s3", STORAGE_PATH=tmp_path)
    s3_app = FastAPI()

    assert mount_audio_storage(s3_app, config) is False
    assert TestClient(s3_app).get("/storage/audio/1-1-5.mp3").status_code == 404
