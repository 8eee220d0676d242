import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from recapper.api import routes
from recapper.config import get_settings
from recapper.main import app
from recapper.services.errors import OverloadedError
from tests.conftest import FakeEngine, FakeScriptGenerator, make_orchestrator

API_KEY = "valid-key"


@pytest.fixture
def inbox(tmp_path, monkeypatch):
    inbox_dir = tmp_path / "inbox"
    inbox_dir.mkdir()
    (inbox_dir / "match.mp4").write_bytes(b"\x00" * 1024)
    (inbox_dir / "notes.txt").write_text("not a video")

    monkeypatch.setenv("INBOX_DIR", str(inbox_dir))
    monkeypatch.setenv("WORK_DIR", str(tmp_path / "work"))
    monkeypatch.setenv("SCRIPT_SETTLE_DELAY", "0")
    monkeypatch.setenv("AUDIO_STAGE_DELAY", "0")
    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
    get_settings.cache_clear()

    yield inbox_dir

    get_settings.cache_clear()


@pytest.fixture
def generator():
    return FakeScriptGenerator("A daring escape across the rooftops.")


@pytest.fixture
def client(inbox, generator, monkeypatch):
    orchestrator = make_orchestrator(get_settings(), FakeEngine(), generator)
    monkeypatch.setattr(routes, "_orchestrator", orchestrator)
    return TestClient(app)


def start(client, **overrides):
    body = {
        "video_filename": "match.mp4",
        "target_duration_seconds": 30,
        "sample_interval_seconds": 8,
        "capture_window_seconds": 1,
        "description": "a rooftop chase",
    }
    body.update(overrides)
    return client.post("/api/recaps", json=body, headers={"X-Api-Key": API_KEY})


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_inbox_lists_only_videos(client):
    response = client.get("/api/inbox")

    assert response.status_code == 200
    assert response.json() == ["match.mp4"]


def test_recap_runs_to_completion(client, generator):
    response = start(client)

    assert response.status_code == 200
    job_id = response.json()["job_id"]

    job = client.get(f"/api/jobs/{job_id}").json()
    assert job["finished"] is True
    assert job["stage"]["kind"] == "completed"
    assert job["overall_progress"] == 100
    assert job["script"] == "A daring escape across the rooftops."
    assert generator.calls == [("a rooftop chase", API_KEY)]

    clip = client.get(f"/api/jobs/{job_id}/clip")
    assert clip.status_code == 200
    assert clip.content == b"fake-mp4-bytes"
    assert clip.headers["content-type"] == "video/mp4"


def test_recap_failure_is_reported_on_the_job(client, generator):
    generator.error = OverloadedError(attempts=3)

    job_id = start(client).json()["job_id"]

    job = client.get(f"/api/jobs/{job_id}").json()
    assert job["finished"] is True
    assert job["stage"]["kind"] == "error"
    assert job["stage"]["error_category"] == "overloaded"
    assert client.get(f"/api/jobs/{job_id}/clip").status_code == 404


def test_missing_video_is_404(client):
    response = start(client, video_filename="missing.mp4")

    assert response.status_code == 404


def test_missing_api_key_is_400(client):
    response = client.post(
        "/api/recaps",
        json={"video_filename": "match.mp4", "description": "a rooftop chase"},
    )

    assert response.status_code == 400
    assert "API key" in response.json()["detail"]


def test_blank_description_is_400(client):
    response = start(client, description="   ")

    assert response.status_code == 400
    assert "description" in response.json()["detail"]


def test_capture_longer_than_interval_is_400(client):
    response = start(client, sample_interval_seconds=2, capture_window_seconds=5)

    assert response.status_code == 400


def test_unknown_job_is_404(client):
    assert client.get("/api/jobs/does-not-exist").status_code == 404


def test_stats_without_service_are_zero(client):
    response = client.get("/api/stats")

    assert response.status_code == 200
    assert response.json() == {
        "recaps_created": 0,
        "total_rating_sum": 0,
        "rating_count": 0,
        "average_rating": 0.0,
    }


def test_rating_without_service_is_502(client):
    response = client.post("/api/stats/rating", json={"rating": 5})

    assert response.status_code == 502


def test_websocket_sends_final_snapshot_for_finished_job(client):
    job_id = start(client).json()["job_id"]

    with client.websocket_connect(f"/ws/{job_id}") as websocket:
        message = websocket.receive_json()

    assert message["job_id"] == job_id
    assert message["final"] is True
    assert message["stage"]["kind"] == "completed"
    assert message["script"] == "A daring escape across the rooftops."


def test_websocket_rejects_unknown_job(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws/unknown-job") as websocket:
            websocket.receive_json()
