from __future__ import annotations

from collections.abc import Generator, Sequence
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event, func
from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine, select

from app import main as app_main
from app.adapters.fake_adapter import FakePaymentAdapter
from app.api.routers import payments
from app.domain.models import Invoice, InvoiceItem, Payment, Project, RegisterRequest, Task, User
from app.infra import audit, db
from app.services import cascade
from app.services.user_service import UserService


@pytest.fixture()
def persistence_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "persistence_test.db"
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
    app_main.app.dependency_overrides[payments.get_payment_provider] = lambda: FakePaymentAdapter()

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


def _count(model: type[SQLModel]) -> int:
    with Session(db.engine) as session:
        return session.exec(select(func.count()).select_from(model)).one()


def _setup_paid_invoice(client: TestClient) -> dict[str, str]:
    UserService().bootstrap_admin(RegisterRequest(name="Admin", email="admin@example.com", password="admin-pass"))
    admin = _login(client, "admin@example.com", "admin-pass")
    customer_id = client.post(
        "/api/auth/register",
        json={"name": "Kim", "email": "kim@example.com", "password": "pw"},
    ).json()["id"]
    customer = _login(client, "kim@example.com", "pw")
    project_id = client.post(
        "/api/projects",
        json={"name": "Kim site", "clientId": customer_id, "startDate": "2026-01-01T00:00:00Z"},
        headers=_auth_header(admin),
    ).json()["id"]
    client.post(
        "/api/tasks",
        json={"title": "Build", "projectId": project_id, "dueDate": "2026-06-01T00:00:00Z"},
        headers=_auth_header(admin),
    )
    invoice_id = client.post(
        "/api/invoices",
        json={
            "clientId": customer_id,
            "projectId": project_id,
            "dueDate": "2026-05-01T00:00:00Z",
            "items": [
                {"description": "Design", "quantity": 1, "rate": 200},
                {"description": "Hosting", "quantity": 1, "rate": 20},
            ],
        },
        headers=_auth_header(admin),
    ).json()["id"]
    order = client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice_id},
        headers=_auth_header(customer),
    ).json()
    captured = client.post(
        "/api/payments/paypal/capture",
        json={"orderId": order["orderId"]},
        headers=_auth_header(customer),
    )
    assert captured.status_code == 200
    return {"admin": admin, "project": project_id, "invoice": invoice_id}


def test_cascade_failure_midway_leaves_invoice_intact(
    persistence_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ids = _setup_paid_invoice(persistence_client)
    assert (_count(Invoice), _count(InvoiceItem), _count(Payment)) == (1, 2, 1)

    real_delete_all = cascade._delete_all
    calls: list[int] = []

    def flaky_delete_all(session: Session, rows: Sequence[Any]) -> None:
        calls.append(len(rows))
        if len(calls) == 2:
            raise OperationalError("DELETE FROM invoice_items", {}, Exception("disk I/O error"))
        real_delete_all(session, rows)

    monkeypatch.setattr(cascade, "_delete_all", flaky_delete_all)

    response = persistence_client.delete(f"/api/invoices/{ids['invoice']}", headers=_auth_header(ids["admin"]))
    assert response.status_code == 500
    assert response.json() == {"error": "Database error"}
    assert calls == [1, 2]
    assert (_count(Invoice), _count(InvoiceItem), _count(Payment)) == (1, 2, 1)

    monkeypatch.setattr(cascade, "_delete_all", real_delete_all)
    detail = persistence_client.get(f"/api/invoices/{ids['invoice']}", headers=_auth_header(ids["admin"])).json()
    assert len(detail["items"]) == 2
    assert len(detail["payments"]) == 1


def test_commit_failure_rolls_back_project_cascade(
    persistence_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    ids = _setup_paid_invoice(persistence_client)
    real_commit = Session.commit
    armed = {"fail": True}

    def failing_commit(self: Session) -> None:
        if armed["fail"]:
            armed["fail"] = False
            raise SQLAlchemyError("commit failed")
        real_commit(self)

    monkeypatch.setattr(Session, "commit", failing_commit)

    response = persistence_client.delete(f"/api/projects/{ids['project']}", headers=_auth_header(ids["admin"]))
    assert response.status_code == 500
    assert response.json() == {"error": "Database error"}
    assert (_count(Project), _count(Task), _count(Invoice), _count(InvoiceItem), _count(Payment)) == (1, 1, 1, 2, 1)


def test_unique_email_violation_maps_to_conflict(
    persistence_client: TestClient,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    first = persistence_client.post(
        "/api/auth/register",
        json={"name": "Kim", "email": "kim@example.com", "password": "pw"},
    )
    assert first.status_code == 201

    monkeypatch.setattr(UserService, "_ensure_email_free", lambda self, session, email, exclude_id=None: None)
    duplicate = persistence_client.post(
        "/api/auth/register",
        json={"name": "Kim again", "email": "KIM@example.com", "password": "pw"},
    )
    assert duplicate.status_code == 409
    assert duplicate.json() == {"error": "Email already registered"}
    assert _count(User) == 1
