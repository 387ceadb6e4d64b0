from __future__ import annotations

import time
from collections.abc import Callable, Generator
from typing import Any

import pytest
from fastapi.testclient import TestClient

import vignette.api.deps as deps
from vignette.config import Settings
from vignette.main import app
from vignette.sessions import SessionStore


@pytest.fixture()
def client(monkeypatch: pytest.MonkeyPatch) -> Generator[TestClient, None, None]:
    monkeypatch.setattr(deps, "_SESSIONS", SessionStore(settings=Settings()))
    with TestClient(app) as c:
        yield c


def _poll(client: TestClient, session_id: str, until: Callable[[dict[str, Any]], bool], *, timeout: float = 2.0) -> dict[str, Any]:
    deadline = time.monotonic() + timeout
    while True:
        data = client.get(f"/sessions/{session_id}").json()
        if until(data):
            return data
        if time.monotonic() > deadline:
            raise AssertionError(f"session never reached expected state: {data}")
        time.sleep(0.01)


def _keys(data: dict[str, Any]) -> list[str]:
    return [o["key"] for o in data["objects"]]


def test_healthcheck(client: TestClient) -> None:
    assert client.get("/healthcheck").json() == {"status": "ok"}


def test_post_session_starts_the_story(client: TestClient) -> None:
    resp = client.post("/sessions", json={"story": "forest"})
    assert resp.status_code == 201
    data = resp.json()

    assert data["story"] == "forest"
    assert data["scene_id"] == "forest"
    assert data["phase"] == "active"
    assert data["generation"] == 1
    assert _keys(data) == ["chest", "signpost"]
    assert data["state"] == {}
    assert data["pending_prompt"] is None
    assert data["handler_active"] is False


def test_post_session_rejects_unknown_story_and_bad_options(client: TestClient) -> None:
    resp = client.post("/sessions", json={"story": "moon"})
    assert resp.status_code == 422
    assert "Unknown story" in resp.json()["detail"]

    resp = client.post("/sessions", json={"story": "forest", "options": {"maxAngel": 5}})
    assert resp.status_code == 422


def test_unknown_session_is_404(client: TestClient) -> None:
    missing = "00000000-0000-0000-0000-000000000000"
    assert client.get(f"/sessions/{missing}").status_code == 404
    assert client.post(f"/sessions/{missing}/click", json={"object_id": "chest"}).status_code == 404
    assert client.post(f"/sessions/{missing}/ack").status_code == 404
    assert client.delete(f"/sessions/{missing}").status_code == 404


def test_click_chest_ack_and_arrive_at_gate(client: TestClient) -> None:
    sid = client.post("/sessions", json={}).json()["session_id"]

    resp = client.post(f"/sessions/{sid}/click", json={"object_id": "chest"})
    assert resp.json() == {"accepted": True}

    data = _poll(client, sid, lambda d: d["pending_prompt"] is not None)
    assert data["pending_prompt"] == {"kind": "line", "speaker": "You", "text": "Inside the chest lies an old iron key."}
    assert data["handler_active"] is True
    assert data["state"] == {"hasKey": True}

    # Busy: a second click is dropped.
    assert client.post(f"/sessions/{sid}/click", json={"object_id": "signpost"}).json() == {"accepted": False}
    # Nothing to select while a line is shown.
    assert client.post(f"/sessions/{sid}/select", json={"value": "key"}).json() == {"accepted": False}

    assert client.post(f"/sessions/{sid}/ack").json() == {"accepted": True}
    data = _poll(client, sid, lambda d: d["scene_id"] == "gate" and not d["handler_active"])

    assert data["generation"] == 2
    assert _keys(data) == ["gate", "back"]
    assert data["state"] == {"hasKey": True, "gateVisits": 1}
    assert client.post(f"/sessions/{sid}/ack").json() == {"accepted": False}


def test_choice_over_http(client: TestClient) -> None:
    sid = client.post("/sessions", json={}).json()["session_id"]
    client.post(f"/sessions/{sid}/click", json={"object_id": "chest"})
    _poll(client, sid, lambda d: d["pending_prompt"] is not None)
    client.post(f"/sessions/{sid}/ack")
    _poll(client, sid, lambda d: d["scene_id"] == "gate" and not d["handler_active"])

    assert client.post(f"/sessions/{sid}/click", json={"object_id": "gate"}).json() == {"accepted": True}
    data = _poll(client, sid, lambda d: d["pending_prompt"] is not None)
    assert data["pending_prompt"]["kind"] == "choice"
    assert [o["value"] for o in data["pending_prompt"]["options"]] == ["key", "leave"]

    assert client.post(f"/sessions/{sid}/select", json={"value": "fly"}).json() == {"accepted": False}
    assert client.post(f"/sessions/{sid}/select", json={"value": "key"}).json() == {"accepted": True}

    data = _poll(client, sid, lambda d: d["pending_prompt"] is not None and d["pending_prompt"]["kind"] == "line")
    assert data["state"]["gateOpen"] is True
    client.post(f"/sessions/{sid}/ack")

    data = _poll(client, sid, lambda d: not d["handler_active"])
    assert _keys(data) == ["gate", "beyond", "back"]


def test_click_on_hidden_object_is_not_accepted(client: TestClient) -> None:
    sid = client.post("/sessions", json={}).json()["session_id"]
    assert client.post(f"/sessions/{sid}/click", json={"object_id": "path"}).json() == {"accepted": False}
    assert client.post(f"/sessions/{sid}/click", json={"object_id": ""}).status_code == 422


def test_delete_session(client: TestClient) -> None:
    sid = client.post("/sessions", json={}).json()["session_id"]
    assert client.delete(f"/sessions/{sid}").status_code == 204
    assert client.get(f"/sessions/{sid}").status_code == 404
