import pytest
from fastapi.testclient import TestClient

from main import create_app


@pytest.fixture
def client(tmp_path, monkeypatch, fake_openai):
    monkeypatch.setenv("DATABASE_DIR", str(tmp_path / "db"))
    monkeypatch.setenv("MEDIA_DIR", str(tmp_path / "media"))
    with TestClient(create_app(openai_client=fake_openai)) as test_client:
        yield test_client


def _explore(client, utterance, session_id="S1", **extra):
    body = {"sessionId": session_id, "userName": "Ann", "userUtterance": utterance, **extra}
    return client.post("/topics/explore", json=body)


def test_health(client):
    assert client.get("/health").json() == {"ok": True, "db_initialized": True, "openai_available": True}


def test_full_exploration_over_http(client):
    first = _explore(client, "first", rejectedCount=0, isTimedOut="true")
    assert first.status_code == 200
    topics = first.json()["topics"]
    assert len(topics) == 3
    assert first.json()["select"] == "false"

    selected = _explore(client, topics[0])
    assert selected.status_code == 200
    assert selected.json()["topics"] == topics[0]

    confirmed = _explore(client, "yes")
    body = confirmed.json()
    assert confirmed.status_code == 200
    assert body["select"] == "true"
    assert len(body["metadata"]["guidelineSteps"]) == 3

    image = client.get(body["metadata"]["imageRef"])
    assert image.status_code == 200
    assert image.content.startswith(b"\x89PNG")

    status = client.get(f"/topics/{topics[0]}/metadata").json()
    assert status["status"] == "ready"
    assert status["metadata"]["topic"] == topics[0]

    guide = client.get(f"/sessions/S1/guides/{topics[0]}")
    assert guide.status_code == 200
    assert guide.json()["topic"] == topics[0]

    history = client.get("/sessions/S1/conversation", params={"limit": 2}).json()
    assert [turn["order"] for turn in history["turns"]] == [3, 2]


def test_confirmation_without_pending_topic_is_conflict(client):
    _explore(client, "first")
    response = _explore(client, "yes")
    assert response.status_code == 409
    assert "S1" in response.json()["detail"]


def test_payload_validation(client):
    assert _explore(client, "first", isTimedOut="maybe").status_code == 422
    assert client.post("/topics/explore", json={"sessionId": "S1"}).status_code == 422


def test_unknown_topic_metadata_is_missing(client):
    assert client.get("/topics/unicorn/metadata").json() == {"topic": "unicorn", "status": "missing"}


def test_unknown_guide_is_not_found(client):
    assert client.get("/sessions/S9/guides/unicorn").status_code == 404


def test_ending_a_session_starts_over_on_next_reply(client):
    first = _explore(client, "first").json()
    _explore(client, first["topics"][0])

    ended = client.delete("/sessions/S1")
    assert ended.json() == {"session_id": "S1", "deleted": True}
    assert client.delete("/sessions/S1").json()["deleted"] is False

    # With no stored session a reply starts a new episode.
    restarted = _explore(client, "yes").json()
    assert restarted["select"] == "false"
    assert len(restarted["topics"]) == 3


def test_welcome_conversation_over_http(client):
    greeting = client.post(
        "/conversation/welcome",
        json={"sessionId": "S1", "userName": "Ann", "userUtterance": "first", "attendanceTotal": 4},
    )
    assert greeting.status_code == 200
    assert greeting.json()["choice"] is False

    ready = client.post(
        "/conversation/welcome",
        json={"sessionId": "S1", "userName": "Ann", "userUtterance": "Let's draw something"},
    )
    assert ready.json()["choice"] is True

    history = client.get("/sessions/S1/conversation").json()
    assert [turn["order"] for turn in history["turns"]] == [2, 1]
    assert client.post("/conversation/welcome", json={"sessionId": "S1"}).status_code == 422
