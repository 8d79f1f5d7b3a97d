from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from app.domain.errors import AuthenticationRequired, AuthorizationDenied
from app.domain.models import ProjectRead
from app.domain.normalize import UNKNOWN_CLIENT, client_ref, iso, progress
from app.domain.permissions import Identity, Role, authorize, enforce
from app.domain.state_machine import InvoiceStatus, can_transition

ADMIN = Identity(id="admin-1", role=Role.ADMIN)
CUSTOMER = Identity(id="cust-1", role=Role.CUSTOMER)


def test_authorize_checks_authentication_before_role() -> None:
    decision = authorize(None, required_role=Role.ADMIN, owner_id="cust-1")
    assert not decision.allowed
    assert decision.status_code == 401
    assert decision.reason == "Not authenticated"


def test_authorize_role_then_ownership() -> None:
    assert authorize(CUSTOMER, required_role=Role.ADMIN).status_code == 403
    assert authorize(CUSTOMER, owner_id="cust-2").status_code == 403
    assert authorize(CUSTOMER, owner_id="cust-1").allowed
    assert authorize(ADMIN, owner_id="cust-2").allowed
    assert authorize(ADMIN, required_role=Role.ADMIN).allowed


def test_enforce_raises_matching_errors() -> None:
    with pytest.raises(AuthenticationRequired):
        enforce(None)
    with pytest.raises(AuthorizationDenied) as excinfo:
        enforce(CUSTOMER, required_role=Role.ADMIN)
    assert excinfo.value.to_body() == {"error": "Not authorized"}
    assert enforce(ADMIN, required_role=Role.ADMIN) is ADMIN


def test_progress_rounds_half_up() -> None:
    assert progress(0, 0) == 0
    assert progress(1, 8) == 13
    assert progress(1, 3) == 33
    assert progress(2, 3) == 67
    assert progress(4, 4) == 100


def test_iso_renders_utc_milliseconds() -> None:
    naive = datetime(2026, 3, 1, 9, 30, 0, 123456)
    assert iso(naive) == "2026-03-01T09:30:00.123Z"
    offset = datetime(2026, 3, 1, 11, 30, tzinfo=timezone(timedelta(hours=2)))
    assert iso(offset) == "2026-03-01T09:30:00.000Z"
    assert iso(None) is None


def test_client_ref_falls_back_to_placeholder(caplog: pytest.LogCaptureFixture) -> None:
    with caplog.at_level(logging.WARNING, logger="app.domain.normalize"):
        ref = client_ref(None, context="project p-1")
    assert ref == UNKNOWN_CLIENT
    assert "data integrity" in caplog.text


def test_project_read_serializes_lowercase_status_and_camel_case() -> None:
    now = datetime(2026, 1, 2, 3, 4, 5)
    read = ProjectRead(
        id="p-1",
        name="Site",
        status="ON_HOLD",
        start_date=now,
        client_id="c-1",
        client={"id": "c-1", "name": "Client", "email": "c@example.com"},
        progress=50,
        created_at=now,
        updated_at=now,
    )
    body = read.model_dump(by_alias=True)
    assert body["status"] == "on_hold"
    assert body["startDate"] == "2026-01-02T03:04:05.000Z"
    assert body["clientId"] == "c-1"


def test_invoice_transitions() -> None:
    assert can_transition(InvoiceStatus.UNPAID, InvoiceStatus.PAID)
    assert can_transition(InvoiceStatus.UNPAID, InvoiceStatus.OVERDUE)
    assert can_transition(InvoiceStatus.OVERDUE, InvoiceStatus.PAID)
    assert not can_transition(InvoiceStatus.PAID, InvoiceStatus.UNPAID)
    assert not can_transition(InvoiceStatus.OVERDUE, InvoiceStatus.UNPAID)
