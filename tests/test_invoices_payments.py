from __future__ import annotations

from collections.abc import Generator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import event
from sqlmodel import SQLModel, create_engine

from app import main as app_main
from app.adapters.base import PaymentProviderError
from app.adapters.fake_adapter import FakePaymentAdapter
from app.adapters.paypal_adapter import PayPalAdapter
from app.api.routers import payments
from app.domain.models import RegisterRequest
from app.infra import audit, db
from app.services.user_service import UserService


@pytest.fixture()
def fake_provider() -> FakePaymentAdapter:
    return FakePaymentAdapter()


@pytest.fixture()
def billing_client(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    fake_provider: FakePaymentAdapter,
) -> Generator[TestClient, None, None]:
    db_path = tmp_path / "billing_test.db"
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
    app_main.app.dependency_overrides[payments.get_payment_provider] = lambda: fake_provider

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


def _setup_billing(client: TestClient) -> dict[str, str]:
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
            json={"name": f"{key} project", "clientId": ids[f"{key}_id"], "startDate": "2026-01-01T00:00:00Z"},
            headers=_auth_header(ids["admin"]),
        )
        ids[f"{key}_project"] = project.json()["id"]
    return ids


def _create_invoice(client: TestClient, ids: dict[str, str], key: str, rate: float = 250.0) -> dict:
    response = client.post(
        "/api/invoices",
        json={
            "clientId": ids[f"{key}_id"],
            "projectId": ids[f"{key}_project"],
            "dueDate": "2026-04-01T00:00:00Z",
            "items": [
                {"description": "Design", "quantity": 2, "rate": rate},
                {"description": "Hosting", "quantity": 1, "rate": 49.99},
            ],
        },
        headers=_auth_header(ids["admin"]),
    )
    assert response.status_code == 201
    return response.json()


def test_invoices_create_numbers_and_totals(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    first = _create_invoice(billing_client, ids, "u1")
    second = _create_invoice(billing_client, ids, "u2")

    assert first["number"].startswith("INV-")
    assert first["number"].endswith("-001")
    assert second["number"].endswith("-002")
    assert first["amount"] == pytest.approx(549.99)
    assert first["status"] == "UNPAID"
    assert [item["amount"] for item in first["items"]] == [pytest.approx(500.0), pytest.approx(49.99)]
    assert first["projectName"] == "u1 project"
    assert first["client"]["email"] == "u1@example.com"


def test_invoices_create_rejects_bad_input(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    mismatched = billing_client.post(
        "/api/invoices",
        json={
            "clientId": ids["u1_id"],
            "projectId": ids["u2_project"],
            "dueDate": "2026-04-01T00:00:00Z",
            "items": [{"description": "Design", "quantity": 1, "rate": 10}],
        },
        headers=_auth_header(ids["admin"]),
    )
    assert mismatched.status_code == 400
    assert mismatched.json()["error"] == "Project does not belong to client"

    no_items = billing_client.post(
        "/api/invoices",
        json={"clientId": ids["u1_id"], "projectId": ids["u1_project"], "dueDate": "2026-04-01T00:00:00Z", "items": []},
        headers=_auth_header(ids["admin"]),
    )
    assert no_items.status_code == 400

    customer = billing_client.post("/api/invoices", json={}, headers=_auth_header(ids["u1"]))
    assert customer.status_code == 403


def test_invoices_scoped_and_stats(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    mine = _create_invoice(billing_client, ids, "u1")
    theirs = _create_invoice(billing_client, ids, "u2", rate=100.0)

    u1_list = billing_client.get("/api/invoices", headers=_auth_header(ids["u1"])).json()
    assert [row["id"] for row in u1_list["invoices"]] == [mine["id"]]
    assert billing_client.get(f"/api/invoices/{theirs['id']}", headers=_auth_header(ids["u1"])).status_code == 403

    paid = billing_client.post(f"/api/invoices/{theirs['id']}/mark-paid", headers=_auth_header(ids["admin"]))
    assert paid.status_code == 200
    assert paid.json() == {"message": "Invoice marked as paid successfully"}

    filtered = billing_client.get("/api/invoices?status=paid", headers=_auth_header(ids["admin"])).json()
    assert [row["id"] for row in filtered["invoices"]] == [theirs["id"]]
    u1_paid = billing_client.get("/api/invoices?status=PAID", headers=_auth_header(ids["u1"])).json()
    assert u1_paid["invoices"] == []

    stats = billing_client.get("/api/invoices/stats", headers=_auth_header(ids["admin"]))
    assert stats.status_code == 200
    assert stats.json() == {
        "totalRevenue": pytest.approx(249.99),
        "outstandingAmount": pytest.approx(549.99),
        "paidInvoices": 1,
        "unpaidInvoices": 1,
        "overdueInvoices": 0,
    }
    assert billing_client.get("/api/invoices/stats", headers=_auth_header(ids["u1"])).status_code == 403


def test_invoices_mark_paid_is_idempotent(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")

    for _ in range(2):
        response = billing_client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=_auth_header(ids["admin"]))
        assert response.status_code == 200

    detail = billing_client.get(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["u1"])).json()
    assert detail["status"] == "PAID"

    missing = billing_client.post("/api/invoices/nope/mark-paid", headers=_auth_header(ids["admin"]))
    assert missing.status_code == 404


def test_invoices_mark_paid_twice_both_succeed_without_version_check(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")

    # Two racing mark-paid calls are not detected; the second one wins silently.
    first = billing_client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=_auth_header(ids["admin"]))
    second = billing_client.post(f"/api/invoices/{invoice['id']}/mark-paid", headers=_auth_header(ids["admin"]))
    assert (first.status_code, second.status_code) == (200, 200)
    assert first.json() == second.json() == {"message": "Invoice marked as paid successfully"}


def test_invoices_follow_project_reassignment(
    billing_client: TestClient,
    fake_provider: FakePaymentAdapter,
) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")

    moved = billing_client.put(
        f"/api/projects/{ids['u1_project']}",
        json={"clientId": ids["u2_id"]},
        headers=_auth_header(ids["admin"]),
    )
    assert moved.status_code == 200
    assert moved.json()["client"]["id"] == ids["u2_id"]

    u1_list = billing_client.get("/api/invoices", headers=_auth_header(ids["u1"])).json()
    assert u1_list["invoices"] == []
    u2_list = billing_client.get("/api/invoices", headers=_auth_header(ids["u2"])).json()
    assert [row["id"] for row in u2_list["invoices"]] == [invoice["id"]]
    assert u2_list["invoices"][0]["client"]["id"] == ids["u2_id"]

    assert billing_client.get(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["u1"])).status_code == 403
    stale_order = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u1"]),
    )
    assert stale_order.status_code == 403
    order = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u2"]),
    )
    assert order.status_code == 200


def test_invoices_delete_cascades_items_and_payments(

    billing_client: TestClient,
    fake_provider: FakePaymentAdapter,
) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")
    order = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u1"]),
    ).json()
    billing_client.post(
        "/api/payments/paypal/capture",
        json={"orderId": order["orderId"]},
        headers=_auth_header(ids["u1"]),
    )

    deleted = billing_client.delete(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["admin"]))
    assert deleted.status_code == 204
    assert billing_client.get(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["admin"])).status_code == 404
    again = billing_client.delete(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["admin"]))
    assert again.status_code == 404


def test_payments_paypal_order_and_capture(
    billing_client: TestClient,
    fake_provider: FakePaymentAdapter,
) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")

    foreign = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u2"]),
    )
    assert foreign.status_code == 403

    order_resp = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u1"]),
    )
    assert order_resp.status_code == 200
    order = order_resp.json()
    assert order["orderId"].startswith("FAKE-")
    assert order["approveUrl"].endswith(order["orderId"])
    assert fake_provider.orders[order["orderId"]].amount == pytest.approx(549.99)

    unknown = billing_client.post(
        "/api/payments/paypal/capture",
        json={"orderId": "FAKE-UNKNOWN"},
        headers=_auth_header(ids["u1"]),
    )
    assert unknown.status_code == 404
    assert unknown.json()["error"] == "Invoice not found for order"

    capture = billing_client.post(
        "/api/payments/paypal/capture",
        json={"orderId": order["orderId"]},
        headers=_auth_header(ids["u1"]),
    )
    assert capture.status_code == 200
    assert capture.json() == {
        "status": "COMPLETED",
        "orderId": order["orderId"],
        "invoiceId": invoice["id"],
        "transactionId": f"TX-{order['orderId']}",
    }

    detail = billing_client.get(f"/api/invoices/{invoice['id']}", headers=_auth_header(ids["u1"])).json()
    assert detail["status"] == "PAID"
    assert len(detail["payments"]) == 1
    assert detail["payments"][0]["method"] == "PayPal"
    assert detail["payments"][0]["transactionReference"] == f"TX-{order['orderId']}"

    repeat = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u1"]),
    )
    assert repeat.status_code == 409


def test_payments_provider_failure_maps_to_bad_gateway(billing_client: TestClient) -> None:
    ids = _setup_billing(billing_client)
    invoice = _create_invoice(billing_client, ids, "u1")
    app_main.app.dependency_overrides[payments.get_payment_provider] = lambda: FakePaymentAdapter(fail=True)

    response = billing_client.post(
        "/api/payments/paypal/create-order",
        json={"invoiceId": invoice["id"]},
        headers=_auth_header(ids["u1"]),
    )
    assert response.status_code == 502
    assert response.json()["error"] == "Failed to create payment order"


def test_paypal_adapter_order_and_capture_requests() -> None:
    seen: list[tuple[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        if request.url.path == "/v1/oauth2/token":
            assert request.headers["Authorization"].startswith("Basic ")
            return httpx.Response(200, json={"access_token": "tok-1"})
        assert request.headers["Authorization"] == "Bearer tok-1"
        if request.url.path == "/v2/checkout/orders":
            return httpx.Response(
                201,
                json={
                    "id": "ORDER-1",
                    "links": [
                        {"rel": "self", "href": "https://paypal.test/self"},
                        {"rel": "approve", "href": "https://paypal.test/approve/ORDER-1"},
                    ],
                },
            )
        if request.url.path == "/v2/checkout/orders/ORDER-1/capture":
            return httpx.Response(
                201,
                json={
                    "id": "ORDER-1",
                    "status": "COMPLETED",
                    "purchase_units": [{"payments": {"captures": [{"id": "CAPTURE-9"}]}}],
                },
            )
        return httpx.Response(404)

    adapter = PayPalAdapter(
        base_url="https://paypal.test",
        client_id="client",
        secret="secret",
        transport=httpx.MockTransport(handler),
    )
    order = adapter.create_order(invoice_id="inv-1", amount=10.5, currency="USD", description="Invoice INV-1")
    assert order.order_id == "ORDER-1"
    assert order.approve_url == "https://paypal.test/approve/ORDER-1"

    capture = adapter.capture_order("ORDER-1")
    assert capture.completed
    assert capture.transaction_id == "CAPTURE-9"
    assert ("POST", "/v2/checkout/orders/ORDER-1/capture") in seen


def test_paypal_adapter_surfaces_errors() -> None:
    adapter = PayPalAdapter(
        base_url="https://paypal.test",
        client_id="client",
        secret="secret",
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"error": "invalid_client"})),
    )
    with pytest.raises(PaymentProviderError):
        adapter.capture_order("ORDER-1")

    unconfigured = PayPalAdapter(base_url="https://paypal.test", client_id="", secret="")
    with pytest.raises(PaymentProviderError):
        unconfigured.create_order(invoice_id="inv-1", amount=1.0, currency="USD", description="x")
