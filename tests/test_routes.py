import pytest
from fastapi.testclient import TestClient

from fakes import LLM_CONFIG
from pipeline.errors import RemoteError
from server.app import create_app


@pytest.fixture
def client(db, orchestrator, object_store, summarizer):
    return TestClient(create_app(db, orchestrator, object_store, summarizer))


def create(client, task_id, task_type, **fields):
    response = client.post("/api/tasks", json={"id": task_id, "name": task_id, "type": task_type, **fields})
    assert response.status_code == 201
    return response.json()


def test_task_crud(client):
    created = create(client, "t1", "webpage", url="https://example.com")
    assert created["status"] == "pending"
    assert created["isRecording"] is False
    assert created["audioFile"] is None

    assert [t["id"] for t in client.get("/api/tasks").json()] == ["t1"]

    created["name"] = "Renamed"
    response = client.put("/api/tasks/t1", json=created)
    assert response.status_code == 200
    assert client.get("/api/tasks/t1").json()["name"] == "Renamed"

    assert client.delete("/api/tasks/t1").status_code == 204
    response = client.get("/api/tasks/t1")
    assert response.status_code == 404
    assert "error" in response.json()


def test_update_with_mismatched_id_is_rejected(client):
    create(client, "t1", "webpage")
    response = client.put("/api/tasks/t1", json={"id": "t2", "type": "webpage"})
    assert response.status_code == 400


def test_update_unknown_task_is_not_found(client):
    response = client.put("/api/tasks/t9", json={"id": "t9", "type": "webpage"})
    assert response.status_code == 404


def test_invalid_task_body_is_a_bad_request(client):
    response = client.post("/api/tasks", json={"id": "t1", "type": "podcast"})
    assert response.status_code == 400
    assert "error" in response.json()


def test_process_webpage(client, pages):
    pages["https://example.com"] = "Hello"
    create(client, "t1", "webpage", url="https://example.com")

    response = client.post("/api/process-webpage/t1")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["content"] == "Hello"
    assert body["summary"] == "# Summary\nHello."


def test_process_webpage_failure_returns_error(client, pages):
    pages["https://example.com"] = RemoteError("Failed to fetch page content: timed out")
    create(client, "t1", "webpage", url="https://example.com")

    response = client.post("/api/process-webpage/t1")

    assert response.status_code == 500
    assert "timed out" in response.json()["error"]
    assert client.get("/api/tasks/t1").json()["status"] == "failed"


def test_audio_summary_without_recording_is_a_bad_request(client):
    create(client, "t1", "live")

    response = client.post("/api/generate-audio-summary/t1")

    assert response.status_code == 400
    assert client.get("/api/tasks/t1").json()["status"] == "pending"


def test_upload_stop_and_serve_audio(client):
    create(client, "t1", "live")

    response = client.post("/api/upload-audio/t1", files={"audio": ("t1.webm", b"abc", "audio/webm")})
    assert response.json() == {"filename": "t1.webm", "size": 3}
    assert client.get("/api/tasks/t1").json()["isRecording"] is True

    response = client.post("/api/upload-audio-segment/t1", files={"audio": ("seg.webm", b"def", "audio/webm")})
    assert response.json() == {"filename": "t1.webm", "size": 6}

    stopped = client.post("/api/stop-recording/t1").json()
    assert stopped["status"] == "completed"
    assert stopped["audioFile"] == "t1.webm"
    assert stopped["isRecording"] is False

    served = client.get("/audio/t1.webm")
    assert served.status_code == 200
    assert served.content == b"abcdef"


@pytest.mark.parametrize("route", ["/api/upload-audio/{}", "/api/upload-audio-segment/{}"])
def test_uploads_for_unknown_or_non_live_tasks_write_nothing(client, audio, route):
    create(client, "w1", "webpage", url="https://example.com")
    files = {"audio": ("a.webm", b"abc", "audio/webm")}

    assert client.post(route.format("ghost"), files=files).status_code == 404
    assert client.post(route.format("w1"), files=files).status_code == 400
    assert list(audio.audio_dir.iterdir()) == []


def test_audio_summary_while_recording_is_a_bad_request(client, object_store):
    create(client, "t1", "live")
    client.post("/api/upload-audio-segment/t1", files={"audio": ("seg.webm", b"abc", "audio/webm")})

    for query in ("", "?background=true"):
        response = client.post(f"/api/generate-audio-summary/t1{query}")
        assert response.status_code == 400
        assert "still recording" in response.json()["error"]
    assert object_store.puts == []
    assert client.get("/api/tasks/t1").json()["isRecording"] is True


def test_generate_audio_summary(client, object_store):
    create(client, "t1", "live")
    client.post("/api/upload-audio/t1", files={"audio": ("t1.webm", b"abc", "audio/webm")})
    client.post("/api/stop-recording/t1")

    body = client.post("/api/generate-audio-summary/t1").json()

    assert body["status"] == "completed"
    assert body["content"] == "transcribed words"
    assert object_store.puts == ["temp_audio/t1.webm"]


def test_process_audio_summary_requires_fields(client):
    response = client.post("/api/process-audio-summary", json={"taskId": "t1"})
    assert response.status_code == 400


def test_cancel_idle_task_is_a_bad_request(client):
    create(client, "t1", "live")
    assert client.post("/api/cancel/t1").status_code == 400


def test_llm_config_round_trip(client):
    new_config = {"baseUrl": "https://other.example.com/v1", "model": "m2", "apiKey": "sk-2"}

    assert client.get("/api/llm-config").json() == LLM_CONFIG
    assert client.post("/api/llm-config", json=new_config).status_code == 201
    assert client.get("/api/llm-config").json() == new_config


def test_incomplete_oss_config_is_rejected(client):
    response = client.post("/api/oss-config", json={"region": "oss-cn-hangzhou"})
    assert response.status_code == 400
    assert client.get("/api/oss-config").json() == {}


def test_oss_config_is_saved(client):
    document = {
        "region": "oss-cn-hangzhou",
        "accessKeyId": "id",
        "accessKeySecret": "secret",
        "bucket": "b",
    }
    assert client.post("/api/oss-config", json=document).status_code == 200
    assert client.get("/api/oss-config").json() == document


def test_status_and_llm_check(client):
    status = client.get("/api/status").json()
    assert status == {"objectStorage": True, "llmConfigured": True, "activeTasks": 0}

    response = client.post("/api/test-llm", json={"question": "ping"})
    assert response.json() == {"response": "echo: ping"}
