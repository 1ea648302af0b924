import pytest
from fastapi.testclient import TestClient

from app.api.compilations import get_orchestrator
from app.core import config
from app.main import app
from conftest import wait_for_job

SOURCE = "https://x/video.mp4"


@pytest.fixture
def client(orchestrator):
    app.dependency_overrides[get_orchestrator] = lambda: orchestrator
    yield TestClient(app)
    app.dependency_overrides.clear()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["service"] == "video-compilation"
    assert body["ffmpeg"] == "available"
    assert "timestamp" in body


def test_compile_returns_job_id_then_completes(client, tracker):
    response = client.post("/compile", json={
        "videoId": "abc",
        "clips": [{"start": "0:00:10", "end": "0:00:20", "videoUrl": SOURCE}],
    })
    assert response.status_code == 202
    job_id = response.json()["jobId"]

    wait_for_job(tracker, job_id)
    status = client.get("/status", params={"jobId": job_id})
    assert status.status_code == 200
    body = status.json()
    assert body["status"] == "completed"
    assert body["progress"] == 100
    assert body["videoUrl"].startswith("https://storage.example.com/")
    assert "error" not in body


def test_compile_rejects_clip_without_video_url(client, tracker):
    payload = {
        "videoId": "abc",
        "clips": [
            {"start": "0:00:10", "end": "0:00:20", "videoUrl": SOURCE},
            {"start": "0:00:30", "end": "0:00:40"},
        ],
    }
    for _ in range(2):
        response = client.post("/compile", json=payload)
        assert response.status_code == 400
        assert response.json() == {"error": "All clips must have a videoUrl property"}
    assert len(tracker) == 0


@pytest.mark.parametrize(
    "payload",
    [
        {},
        {"videoId": "abc"},
        {"videoId": "abc", "clips": []},
        {"videoId": "abc", "clips": "not-a-list"},
        {"videoId": "abc", "clips": [{"start": "0:00:10", "videoUrl": SOURCE}]},
        {"videoId": "abc", "clips": [{"start": "0:00:20", "end": "0:00:10", "videoUrl": SOURCE}]},
    ],
)
def test_compile_bad_payloads_are_400(client, tracker, payload):
    response = client.post("/compile", json=payload)
    assert response.status_code == 400
    assert "error" in response.json()
    assert len(tracker) == 0


def test_failed_job_reports_error(client, tracker, fetcher):
    fetcher.fail_on = SOURCE
    job_id = client.post("/compile", json={
        "videoId": "abc",
        "clips": [{"start": "0:00:10", "end": "0:00:20", "videoUrl": SOURCE}],
    }).json()["jobId"]

    wait_for_job(tracker, job_id)
    body = client.get("/status", params={"jobId": job_id}).json()
    assert body["status"] == "failed"
    assert body["message"] == "Failed to download source video"
    assert "404" in body["error"]
    assert "videoUrl" not in body


def test_status_requires_job_id(client):
    response = client.get("/status")
    assert response.status_code == 400
    assert response.json() == {"error": "Job ID is required"}


def test_unknown_job_gets_placeholder(client):
    response = client.get("/status", params={"jobId": "1700000000000-deadbeef"})
    assert response.status_code == 200
    assert response.json() == {"status": "processing", "message": "Processing video...", "progress": 10}


def test_expired_job_gets_placeholder(client, tracker):
    tracker.retention_seconds = 0
    job_id = client.post("/compile", json={
        "videoId": "abc",
        "clips": [{"start": "0:00:10", "end": "0:00:20", "videoUrl": SOURCE}],
    }).json()["jobId"]

    response = client.get("/status", params={"jobId": job_id})
    assert response.status_code == 200
    assert response.json()["progress"] == 10


def test_unknown_job_not_found_policy(client, monkeypatch):
    monkeypatch.setattr(config, "UNKNOWN_JOB_POLICY", "not_found")
    response = client.get("/status", params={"jobId": "nope"})
    assert response.status_code == 404
    assert response.json() == {"error": "Job not found"}
