from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from app import main as app_main
from app.domain.models import RegisterRequest
from app.infra import audit, db
from app.services.user_service import UserService


@pytest.fixture()
def chat_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "chat_test.db"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(test_engine, "connect")
    def _enable_foreign_keys(dbapi_connection: object, _connection_record: object) -> None:
        cursor = dbapi_connection.cursor()  # type: ignore[attr-defined]
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    SQLModel.metadata.create_all(test_engine)
    monkeypatch.setattr(db, "engine", test_engine)
    monkeypatch.setattr(audit, "engine", test_engine)

    client = TestClient(app_main.app)
    yield client
    client.close()
    app_main.app.dependency_overrides.clear()


def _auth_header(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


def _login(client: TestClient, email: str, password: str) -> str:
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200
    client.cookies.clear()
    return response.json()["token"]


def _setup_chat(client: TestClient) -> dict[str, str]:
    UserService().bootstrap_admin(RegisterRequest(name="Admin", email="admin@example.com", password="admin-pass"))
    ids: dict[str, str] = {"admin": _login(client, "admin@example.com", "admin-pass")}
    for key in ("u1", "u2"):
        response = client.post(
            "/api/auth/register",
            json={"name": key.upper(), "email": f"{key}@example.com", "password": "pw"},
        )
        ids[f"{key}_id"] = response.json()["id"]
        ids[key] = _login(client, f"{key}@example.com", "pw")
        project = client.post(
            "/api/projects",
            json={"name": f"{key} app", "clientId": ids[f"{key}_id"], "startDate": "2026-01-01T00:00:00Z"},
            headers=_auth_header(ids["admin"]),
        )
        ids[f"{key}_project"] = project.json()["id"]
    return ids


def test_conversations_create_once_per_project(chat_client: TestClient) -> None:
    ids = _setup_chat(chat_client)

    created = chat_client.post(
        "/api/conversations",
        json={"projectId": ids["u1_project"], "initialMessage": "Kickoff?"},
        headers=_auth_header(ids["u1"]),
    )
    assert created.status_code == 201
    body = created.json()
    assert body["name"] == "u1 app"
    assert body["projectName"] == "u1 app"
    assert body["customer"]["id"] == ids["u1_id"]
    assert body["lastMessage"]["content"] == "Kickoff?"
    assert body["lastMessage"]["sender"] == "self"

    reused = chat_client.post(
        "/api/conversations",
        json={"projectId": ids["u1_project"], "name": "Other name"},
        headers=_auth_header(ids["admin"]),
    )
    assert reused.status_code == 200
    assert reused.json()["id"] == body["id"]
    assert reused.json()["unreadCount"] == 1

    foreign = chat_client.post(
        "/api/conversations",
        json={"projectId": ids["u1_project"]},
        headers=_auth_header(ids["u2"]),
    )
    assert foreign.status_code == 403

    missing = chat_client.post(
        "/api/conversations",
        json={"projectId": "nope"},
        headers=_auth_header(ids["admin"]),
    )
    assert missing.status_code == 404

    anonymous = chat_client.get("/api/conversations")
    assert anonymous.status_code == 401


def test_conversations_scoped_listing(chat_client: TestClient) -> None:
    ids = _setup_chat(chat_client)
    for key in ("u1", "u2"):
        response = chat_client.post(
            "/api/conversations",
            json={"projectId": ids[f"{key}_project"]},
            headers=_auth_header(ids[key]),
        )
        assert response.status_code == 201

    u1 = chat_client.get("/api/conversations", headers=_auth_header(ids["u1"])).json()
    assert [row["projectId"] for row in u1["conversations"]] == [ids["u1_project"]]
    assert u1["conversations"][0]["lastMessage"] is None

    admin = chat_client.get("/api/conversations", headers=_auth_header(ids["admin"])).json()
    assert admin["pagination"]["total"] == 2

    filtered = chat_client.get(
        f"/api/conversations?projectId={ids['u2_project']}",
        headers=_auth_header(ids["u1"]),
    ).json()
    assert filtered["conversations"] == []


def test_conversations_messages_and_read_state(chat_client: TestClient) -> None:
    ids = _setup_chat(chat_client)
    conversation_id = chat_client.post(
        "/api/conversations",
        json={"projectId": ids["u1_project"]},
        headers=_auth_header(ids["u1"]),
    ).json()["id"]

    blank = chat_client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"content": "  "},
        headers=_auth_header(ids["u1"]),
    )
    assert blank.status_code == 400
    assert blank.json()["error"] == "Message content is required"

    sent = chat_client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"content": "Can we move the deadline?"},
        headers=_auth_header(ids["u1"]),
    )
    assert sent.status_code == 201
    assert sent.json()["sender"] == "self"
    assert sent.json()["senderRole"] == "CUSTOMER"

    reply = chat_client.post(
        f"/api/conversations/{conversation_id}/messages",
        json={"content": "Sure, by a week."},
        headers=_auth_header(ids["admin"]),
    )
    assert reply.status_code == 201

    as_customer = chat_client.get(
        f"/api/conversations/{conversation_id}/messages",
        headers=_auth_header(ids["u1"]),
    ).json()["messages"]
    assert [row["sender"] for row in as_customer] == ["self", "other"]
    assert [row["senderName"] for row in as_customer] == ["U1", "Admin"]
    assert as_customer[1]["read"] is False

    foreign = chat_client.get(
        f"/api/conversations/{conversation_id}/messages",
        headers=_auth_header(ids["u2"]),
    )
    assert foreign.status_code == 403

    marked = chat_client.post(f"/api/conversations/{conversation_id}/read", headers=_auth_header(ids["u1"]))
    assert marked.status_code == 200
    assert marked.json() == {"updated": 1}
    again = chat_client.post(f"/api/conversations/{conversation_id}/read", headers=_auth_header(ids["u1"]))
    assert again.json() == {"updated": 0}

    listing = chat_client.get("/api/conversations", headers=_auth_header(ids["u1"])).json()
    assert listing["conversations"][0]["unreadCount"] == 0
    assert listing["conversations"][0]["lastMessage"]["sender"] == "other"

    missing = chat_client.get("/api/conversations/nope/messages", headers=_auth_header(ids["admin"]))
    assert missing.status_code == 404
