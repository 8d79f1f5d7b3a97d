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
def content_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "content_test.db"
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


def _admin_and_customer(client: TestClient) -> tuple[str, str, str]:
    UserService().bootstrap_admin(RegisterRequest(name="Admin", email="admin@example.com", password="admin-pass"))
    admin = _login(client, "admin@example.com", "admin-pass")
    customer_id = client.post(
        "/api/auth/register",
        json={"name": "Lena", "email": "lena@example.com", "password": "pw", "company": "Lena Co"},
    ).json()["id"]
    customer = _login(client, "lena@example.com", "pw")
    return admin, customer, customer_id


def test_testimonials_public_and_admin_views(content_client: TestClient) -> None:
    admin, customer, customer_id = _admin_and_customer(content_client)

    missing_client = content_client.post(
        "/api/testimonials",
        json={"content": "Great", "clientId": "nobody"},
        headers=_auth_header(admin),
    )
    assert missing_client.status_code == 404
    assert missing_client.json() == {"error": "Client not found"}

    bad_rating = content_client.post(
        "/api/testimonials",
        json={"content": "Great", "clientId": customer_id, "rating": 7},
        headers=_auth_header(admin),
    )
    assert bad_rating.status_code == 400
    assert bad_rating.json() == {"error": "Invalid rating", "details": "Rating must be between 1 and 5"}

    shown = content_client.post(
        "/api/testimonials",
        json={"content": "Shipped on time", "clientId": customer_id, "rating": 5, "order": 1},
        headers=_auth_header(admin),
    )
    assert shown.status_code == 201
    assert shown.json()["clientName"] == "Lena"
    hidden = content_client.post(
        "/api/testimonials",
        json={"content": "Draft", "clientId": customer_id, "isActive": False},
        headers=_auth_header(admin),
    ).json()

    public = content_client.get("/api/testimonials")
    assert public.status_code == 200
    assert [row["content"] for row in public.json()] == ["Shipped on time"]
    assert "clientEmail" not in public.json()[0]

    admin_list = content_client.get("/api/testimonials/admin", headers=_auth_header(admin)).json()
    assert {row["content"] for row in admin_list} == {"Shipped on time", "Draft"}
    assert content_client.get("/api/testimonials/admin", headers=_auth_header(customer)).status_code == 403

    assert content_client.get(f"/api/testimonials/{hidden['id']}").status_code == 404
    assert content_client.get(f"/api/testimonials/{hidden['id']}", headers=_auth_header(admin)).json()["isActive"] is False

    activated = content_client.put(
        f"/api/testimonials/{hidden['id']}",
        json={"isActive": True, "content": "Final words"},
        headers=_auth_header(admin),
    )
    assert activated.status_code == 200
    assert activated.json()["content"] == "Final words"
    empty = content_client.put(f"/api/testimonials/{hidden['id']}", json={}, headers=_auth_header(admin))
    assert empty.status_code == 400

    deleted = content_client.delete(f"/api/testimonials/{hidden['id']}", headers=_auth_header(admin))
    assert deleted.status_code == 204
    again = content_client.delete(f"/api/testimonials/{hidden['id']}", headers=_auth_header(admin))
    assert again.status_code == 404


def test_portfolio_crud_and_category_validation(content_client: TestClient) -> None:
    admin, customer, _ = _admin_and_customer(content_client)

    created = content_client.post(
        "/api/portfolio-items",
        json={
            "title": "Shop",
            "description": "Headless commerce",
            "category": "fullstack",
            "image": "https://img.example.com/shop.png",
            "demoLink": "https://shop.example.com",
            "technologies": "Next.js, Postgres",
            "tags": ["ecommerce"],
        },
        headers=_auth_header(admin),
    )
    assert created.status_code == 201
    item = created.json()
    assert item["category"] == "FULLSTACK"
    assert item["imageUrl"] == "https://img.example.com/shop.png"
    assert item["demoUrl"] == "https://shop.example.com"
    assert item["technologies"] == ["Next.js", "Postgres"]
    assert item["features"] == []

    bogus = content_client.put(
        f"/api/portfolio-items/{item['id']}",
        json={"category": "bogus"},
        headers=_auth_header(admin),
    )
    assert bogus.status_code == 400
    assert bogus.json()["error"] == "Invalid category"
    for category in ("FULLSTACK", "FRONTEND", "BACKEND", "MOBILE", "FUTURE", "PERSONAL"):
        assert category in bogus.json()["details"]

    empty = content_client.put(f"/api/portfolio-items/{item['id']}", json={}, headers=_auth_header(admin))
    assert empty.status_code == 400
    assert empty.json()["error"] == "No valid fields provided for update."

    updated = content_client.put(
        f"/api/portfolio-items/{item['id']}",
        json={"category": "mobile", "githubLink": "https://github.com/example/shop"},
        headers=_auth_header(admin),
    )
    assert updated.status_code == 200
    assert updated.json()["category"] == "MOBILE"
    assert updated.json()["githubUrl"] == "https://github.com/example/shop"

    public = content_client.get("/api/portfolio-items")
    assert [row["id"] for row in public.json()["projects"]] == [item["id"]]

    forbidden = content_client.post(
        "/api/portfolio-items",
        json={"title": "x", "description": "y", "category": "FRONTEND"},
        headers=_auth_header(customer),
    )
    assert forbidden.status_code == 403

    deleted = content_client.delete(f"/api/portfolio-items/{item['id']}", headers=_auth_header(admin))
    assert deleted.status_code == 204
    assert content_client.get("/api/portfolio-items").json() == {"projects": []}


def test_site_configuration_defaults_and_upsert(content_client: TestClient) -> None:
    admin, customer, _ = _admin_and_customer(content_client)

    defaults = content_client.get("/api/site-configuration")
    assert defaults.status_code == 200
    assert defaults.json()["heroTitle"] == ""
    assert defaults.json()["updatedAt"] is None

    empty = content_client.put("/api/site-configuration", json={}, headers=_auth_header(admin))
    assert empty.status_code == 400

    forbidden = content_client.put(
        "/api/site-configuration",
        json={"heroTitle": "Hi"},
        headers=_auth_header(customer),
    )
    assert forbidden.status_code == 403

    saved = content_client.put(
        "/api/site-configuration",
        json={"heroTitle": "Build with us", "aboutText": "Ten years of shipping"},
        headers=_auth_header(admin),
    )
    assert saved.status_code == 200
    partial = content_client.put(
        "/api/site-configuration",
        json={"heroSubtitle": "Web and mobile"},
        headers=_auth_header(admin),
    )
    body = partial.json()
    assert body["heroTitle"] == "Build with us"
    assert body["heroSubtitle"] == "Web and mobile"
    assert body["updatedAt"].endswith("Z")
    assert content_client.get("/api/site-configuration").json()["aboutText"] == "Ten years of shipping"


def test_contact_submit_and_admin_inbox(content_client: TestClient) -> None:
    admin, customer, customer_id = _admin_and_customer(content_client)

    no_email = content_client.post("/api/contact", json={"name": "Max", "message": "Quote please"})
    assert no_email.status_code == 400
    assert "email" in no_email.json()["details"]

    blank_email = content_client.post(
        "/api/contact",
        json={"name": "Max", "email": "  ", "message": "Quote please"},
    )
    assert blank_email.status_code == 400
    assert blank_email.json()["details"].endswith("missing: email")

    anonymous = content_client.post(
        "/api/contact",
        json={"name": "Max", "email": "max@example.com", "message": "Quote please", "subject": "Pricing"},
    )
    assert anonymous.status_code == 201
    assert anonymous.json()["message"].startswith("Thank you")
    signed_in = content_client.post(
        "/api/contact",
        json={"name": "Lena", "email": "lena@example.com", "message": "Follow-up"},
        headers=_auth_header(customer),
    )
    assert signed_in.status_code == 201

    assert content_client.get("/api/contact", headers=_auth_header(customer)).status_code == 403

    inbox = content_client.get("/api/contact", headers=_auth_header(admin)).json()
    assert inbox["pagination"]["total"] == 2
    by_id = {row["id"]: row for row in inbox["submissions"]}
    assert by_id[signed_in.json()["id"]]["userId"] == customer_id
    assert by_id[anonymous.json()["id"]]["userId"] is None

    marked = content_client.patch(
        f"/api/contact/{anonymous.json()['id']}",
        json={"read": True},
        headers=_auth_header(admin),
    )
    assert marked.status_code == 200
    assert marked.json()["read"] is True

    unread = content_client.get("/api/contact?read=false", headers=_auth_header(admin)).json()
    assert [row["id"] for row in unread["submissions"]] == [signed_in.json()["id"]]
    searched = content_client.get("/api/contact?search=pricing", headers=_auth_header(admin)).json()
    assert searched["submissions"] == []
    searched = content_client.get("/api/contact?search=MAX@", headers=_auth_header(admin)).json()
    assert [row["id"] for row in searched["submissions"]] == [anonymous.json()["id"]]

    deleted = content_client.delete(f"/api/contact/{anonymous.json()['id']}", headers=_auth_header(admin))
    assert deleted.status_code == 204
    missing = content_client.patch("/api/contact/nope", json={"read": True}, headers=_auth_header(admin))
    assert missing.status_code == 404
