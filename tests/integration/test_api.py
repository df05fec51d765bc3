"""Integration tests for the HTTP API (in-memory UoW via dependency override)."""
from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from relay_chat.config import settings
from tests.conftest import FakeUoW, issue_token, make_message, make_test_app


@pytest.fixture
def uow() -> FakeUoW:
    uow = FakeUoW()
    uow.users.add("alice")
    uow.users.add("bob")
    return uow


@pytest.fixture
def client(uow):
    return TestClient(make_test_app(uow), raise_server_exceptions=False)


def _auth(user_id: str = "user-alice") -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id)}"}


def test_healthz(client):
    resp = client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok", "connections": 0}


def test_login_sets_cookie(client):
    resp = client.post("/api/auth/login", json={"username": "alice", "password": "password123"})

    assert resp.status_code == 200
    assert resp.json() == {"user": {"id": "user-alice", "username": "alice"}}
    assert resp.cookies.get(settings.AUTH_COOKIE_NAME)
    assert resp.headers["X-Request-ID"]

    me = client.get("/api/auth/user")
    assert me.status_code == 200
    assert me.json()["user"]["username"] == "alice"


def test_login_wrong_password(client):
    resp = client.post("/api/auth/login", json={"username": "alice", "password": "not-the-one"})
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid credentials"


def test_login_validates_input(client):
    resp = client.post("/api/auth/login", json={"username": "a!", "password": "short"})
    assert resp.status_code == 422


def test_logout_clears_cookie(client):
    client.post("/api/auth/login", json={"username": "alice", "password": "password123"})
    resp = client.post("/api/auth/logout")

    assert resp.status_code == 200
    assert client.get("/api/auth/user").status_code == 401


def test_messages_require_auth(client):
    assert client.get("/api/messages").status_code == 401
    assert client.get("/api/messages", headers={"Authorization": "Bearer junk"}).status_code == 401


def test_token_for_deleted_user_is_rejected(client):
    resp = client.get("/api/messages", headers=_auth("user-ghost"))
    assert resp.status_code == 401
    assert resp.json()["detail"] == "Invalid session"


def test_list_messages_oldest_first_in_wire_format(client, uow):
    for i in range(3):
        msg = make_message(f"m{i}", sender="bob", content=f"msg {i}", seconds=i)
        uow.messages._messages[msg.id] = msg

    resp = client.get("/api/messages", params={"limit": 2}, headers=_auth())

    assert resp.status_code == 200
    body = resp.json()
    assert [m["id"] for m in body] == ["m1", "m2"]
    assert body[0]["deliveryStatus"] == "sent"
    assert "fileUrl" in body[0]
    assert resp.headers["Cache-Control"] == "private, max-age=60"


def test_edit_own_message(client, uow):
    uow.messages._messages["m1"] = make_message("m1", sender="alice", content="draft")

    resp = client.patch("/api/messages/m1", json={"content": "final"}, headers=_auth())

    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["message"]["content"] == "final"
    assert body["message"]["edited"] is True


def test_edit_someone_elses_message(client, uow):
    uow.messages._messages["m1"] = make_message("m1", sender="bob")

    resp = client.patch("/api/messages/m1", json={"content": "mine now"}, headers=_auth())

    assert resp.status_code == 403


def test_delete_message(client, uow):
    uow.messages._messages["m1"] = make_message("m1", sender="alice")

    resp = client.delete("/api/messages/m1", headers=_auth())
    assert resp.status_code == 200
    assert resp.json()["success"] is True

    assert client.delete("/api/messages/m1", headers=_auth()).status_code == 404
