"""End-to-end smoke run against a live portal.

Expects an admin created with ``portal-bootstrap-admin`` and its credentials in
DEMO_ADMIN_EMAIL / DEMO_ADMIN_PASSWORD. Set PAYMENT_PROVIDER=fake on the server
to exercise the payment leg without PayPal.
"""

from __future__ import annotations

import asyncio
import os
import time
from uuid import uuid4

import httpx


def _assert_status(response: httpx.Response, expected: int | tuple[int, ...]) -> None:
    expected_codes = (expected,) if isinstance(expected, int) else expected
    if response.status_code not in expected_codes:
        raise RuntimeError(
            f"{response.request.method} {response.request.url} expected {expected_codes}, "
            f"got {response.status_code}: {response.text}"
        )


def _auth_headers(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


async def _wait_ok(client: httpx.AsyncClient, path: str, timeout_seconds: float = 60.0) -> None:
    deadline = time.monotonic() + timeout_seconds
    last_status = "n/a"
    while time.monotonic() < deadline:
        try:
            response = await client.get(path)
            if response.status_code == 200:
                return
            last_status = str(response.status_code)
        except httpx.HTTPError as exc:
            last_status = f"http_error: {exc}"
        await asyncio.sleep(1.0)
    raise RuntimeError(f"timeout waiting for {path}, last_status={last_status}")


async def _login(client: httpx.AsyncClient, email: str, password: str) -> str:
    response = await client.post("/api/auth/login", json={"email": email, "password": password})
    _assert_status(response, 200)
    client.cookies.clear()
    return response.json()["token"]


async def _run() -> None:
    base_url = os.getenv("PORTAL_BASE_URL", "http://localhost:8000").rstrip("/")
    admin_email = os.getenv("DEMO_ADMIN_EMAIL", "admin@example.com")
    admin_password = os.getenv("DEMO_ADMIN_PASSWORD", "admin-pass")
    run_id = uuid4().hex[:8]

    async with httpx.AsyncClient(base_url=base_url, timeout=httpx.Timeout(20.0)) as client:
        await _wait_ok(client, "/healthz")
        await _wait_ok(client, "/readyz")

        admin = _auth_headers(await _login(client, admin_email, admin_password))
        customer_email = f"demo-{run_id}@example.com"
        register = await client.post(
            "/api/auth/register",
            json={"name": f"Demo {run_id}", "email": customer_email, "password": f"pass-{run_id}"},
        )
        _assert_status(register, 201)
        customer_id = register.json()["id"]
        customer = _auth_headers(await _login(client, customer_email, f"pass-{run_id}"))

        project = await client.post(
            "/api/projects",
            json={"name": f"Demo site {run_id}", "clientId": customer_id, "startDate": "2026-01-01T00:00:00Z"},
            headers=admin,
        )
        _assert_status(project, 201)
        project_id = project.json()["id"]

        task = await client.post(
            "/api/tasks",
            json={"title": "Kickoff", "projectId": project_id, "dueDate": "2030-01-01T00:00:00Z"},
            headers=admin,
        )
        _assert_status(task, 201)

        visible = await client.get("/api/tasks", headers=customer)
        _assert_status(visible, 200)
        if [row["id"] for row in visible.json()["tasks"]] != [task.json()["id"]]:
            raise RuntimeError("customer task listing is not scoped to the customer's projects")

        conversation = await client.post(
            "/api/conversations",
            json={"projectId": project_id, "initialMessage": "Hello from the demo"},
            headers=customer,
        )
        _assert_status(conversation, 201)

        invoice = await client.post(
            "/api/invoices",
            json={
                "clientId": customer_id,
                "projectId": project_id,
                "dueDate": "2030-02-01T00:00:00Z",
                "items": [{"description": "Deposit", "quantity": 1, "rate": 100}],
            },
            headers=admin,
        )
        _assert_status(invoice, 201)
        invoice_id = invoice.json()["id"]

        order = await client.post(
            "/api/payments/paypal/create-order",
            json={"invoiceId": invoice_id},
            headers=customer,
        )
        _assert_status(order, (200, 502))
        if order.status_code == 200:
            capture = await client.post(
                "/api/payments/paypal/capture",
                json={"orderId": order.json()["orderId"]},
                headers=customer,
            )
            _assert_status(capture, (200, 502))

        stats = await client.get("/api/dashboard/customer/stats", headers=customer)
        _assert_status(stats, 200)

        denied = await client.get("/api/customers", headers=customer)
        _assert_status(denied, 403)

        cleanup = await client.delete(f"/api/users/{customer_id}", headers=admin)
        _assert_status(cleanup, 204)

    print(f"portal demo ok: run_id={run_id}")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
