from __future__ import annotations

import base64

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.routes import EngineServices, build_services, router
from config import Settings
from conftest import CONFIG_PATH, FakeLlmClient, FakeResponse, decision_reply


def _services(llm: FakeLlmClient) -> EngineServices:
    return build_services(Settings(TRANSCRIPT_STORE="mock"), config_path=CONFIG_PATH, llm_client=llm)


def _app(services: EngineServices) -> FastAPI:
    app = FastAPI()
    app.include_router(router)
    app.state.services = services
    return app


@pytest.fixture
def llm():
    return FakeLlmClient([decision_reply("Q2")])


@pytest.fixture
def services(llm):
    return _services(llm)


@pytest.fixture
def client(services):
    with TestClient(_app(services)) as test_client:
        yield test_client

STUDY = {
    "studyConfig": {
        "studyName": "Coffee Habits",
        "researchGoal": "Understand coffee choices",
        "coreQuestions": [
            {"id": "q1", "text": "Q1", "predefinedProbes": []},
            {"id": "q2", "text": "Q2", "predefinedProbes": []},
        ],
    }
}


def test_health_reports_wiring(client):
    resp = client.get("/api/health")

    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "oracleRoute": "default", "transcriptStore": "mock"}


def test_start_session_snapshot(client):
    resp = client.post("/api/sessions", json=STUDY)

    assert resp.status_code == 200
    body = resp.json()
    assert body["studyName"] == "Coffee Habits"
    assert body["currentQuestion"] == "Q1"
    assert body["progress"] == 50
    assert body["coreQuestionIndex"] == 0
    assert body["respondentId"].startswith("user_")
    assert body["steps"][0]["kind"] == "core"
    assert body["steps"][0]["response"] is None


@pytest.mark.parametrize(
    "study_config",
    [
        {"studyName": "", "researchGoal": "Goal", "coreQuestions": [{"id": "a", "text": "Q"}]},
        {"studyName": "Study", "researchGoal": "Goal", "coreQuestions": []},
        {"studyName": "Study", "researchGoal": "Goal", "coreQuestions": [{"id": "a", "text": " "}]},
    ],
)
def test_invalid_study_config_is_rejected(client, study_config):
    resp = client.post("/api/sessions", json={"studyConfig": study_config})

    assert resp.status_code == 422


def test_unknown_session_is_404(client):
    assert client.get("/api/sessions/missing").status_code == 404
    assert client.post("/api/sessions/missing/answers", json={"answer": "hi"}).status_code == 404
    assert client.delete("/api/sessions/missing").status_code == 404


def test_blank_answer_leaves_state_unchanged(client, llm):
    session_id = client.post("/api/sessions", json=STUDY).json()["sessionId"]

    resp = client.post(f"/api/sessions/{session_id}/answers", json={"answer": "   "})

    assert resp.status_code == 200
    assert len(resp.json()["steps"]) == 1
    assert llm.requests == []


def test_exit_removes_session(client):
    session_id = client.post("/api/sessions", json=STUDY).json()["sessionId"]

    assert client.delete(f"/api/sessions/{session_id}").status_code == 204
    assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_extract_requires_a_source(client):
    assert client.post("/api/guides/extract", json={}).status_code == 422
    both = {"text": "Q?", "mediaType": "text/plain", "data": base64.b64encode(b"Q?").decode()}
    assert client.post("/api/guides/extract", json=both).status_code == 422


def test_extract_failure_maps_to_422():
    llm = FakeLlmClient([FakeResponse({"error": "down"}, status_code=502)])

    with TestClient(_app(_services(llm))) as client:
        resp = client.post("/api/guides/extract", json={"text": "1. How are you?"})

    assert resp.status_code == 422
    assert "502" in resp.json()["detail"]


def test_extract_rejects_bad_base64(client):
    resp = client.post("/api/guides/extract", json={"mediaType": "application/pdf", "data": "***"})

    assert resp.status_code == 422
    assert "base64" in resp.json()["detail"]


def test_completed_session_leaves_the_store():
    llm = FakeLlmClient([decision_reply(exhausted=True, reasoning="covered")])
    services = _services(llm)
    single = {
        "studyConfig": {
            "studyName": "Coffee Habits",
            "researchGoal": "Understand coffee choices",
            "coreQuestions": [{"id": "q1", "text": "Q1", "predefinedProbes": []}],
        }
    }

    with TestClient(_app(services)) as client:
        session_id = client.post("/api/sessions", json=single).json()["sessionId"]
        assert len(services.sessions) == 1

        done = client.post(f"/api/sessions/{session_id}/answers", json={"answer": "All said"})

        assert done.status_code == 200
        assert done.json()["isComplete"] is True
        assert done.json()["steps"][0]["response"] == "All said"
        assert len(services.sessions) == 0
        assert client.get(f"/api/sessions/{session_id}").status_code == 404


def test_unfinished_session_stays_in_the_store(client, services):
    session_id = client.post("/api/sessions", json=STUDY).json()["sessionId"]

    resp = client.post(f"/api/sessions/{session_id}/answers", json={"answer": "Filter coffee"})

    assert resp.json()["currentQuestion"] == "Q2"
    assert len(services.sessions) == 1
