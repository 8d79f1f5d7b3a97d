from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlmodel import Session, col, select

from app.domain.errors import Conflict, NotFound, ValidationFailed
from app.domain.models import (
    ClientRef,
    Invoice,
    InvoiceCreate,
    InvoiceItem,
    InvoiceItemRead,
    InvoiceRead,
    InvoiceStatsRead,
    Payment,
    PaymentRead,
    Project,
    User,
    now_utc,
)
from app.domain.normalize import client_ref
from app.domain.permissions import Identity, Role, enforce
from app.domain.state_machine import InvoiceStatus, can_transition
from app.infra.db import commit_or_raise, get_engine
from app.services import cascade
from app.services.project_service import get_customer
from app.services.query import Page, paginate, scope

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "INV"


def next_invoice_number(session: Session, year: int) -> str:
    prefix = f"{INVOICE_NUMBER_PREFIX}-{year}-"
    numbers = session.exec(select(Invoice.number).where(col(Invoice.number).startswith(prefix))).all()
    highest = 0
    for number in numbers:
        suffix = number.removeprefix(prefix)
        if suffix.isdigit():
            highest = max(highest, int(suffix))
    return f"{prefix}{highest + 1:03d}"


def transition_invoice(invoice: Invoice, target: InvoiceStatus) -> bool:
    """Move ``invoice`` to ``target``; returns False when it was already there."""
    source = InvoiceStatus(invoice.status)
    if not can_transition(source, target):
        raise Conflict(f"Invoice cannot move from {source} to {target}")
    if source == target:
        return False
    invoice.status = target
    invoice.updated_at = now_utc()
    return True


class InvoiceService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_invoice(self, session: Session, invoice_id: str) -> Invoice:
        row = session.get(Invoice, invoice_id)
        if row is None:
            raise NotFound("Invoice not found")
        return row

    def get_owned_invoice(self, session: Session, identity: Identity | None, invoice_id: str) -> Invoice:
        enforce(identity)
        invoice = self._get_invoice(session, invoice_id)
        enforce(identity, owner_id=invoice.client_id)
        return invoice

    def _build_reads(self, session: Session, invoices: Sequence[Invoice]) -> list[InvoiceRead]:
        ids = [invoice.id for invoice in invoices]
        if not ids:
            return []
        items: dict[str, list[InvoiceItem]] = {invoice_id: [] for invoice_id in ids}
        for item in session.exec(select(InvoiceItem).where(col(InvoiceItem.invoice_id).in_(ids))).all():
            items[item.invoice_id].append(item)
        payments: dict[str, list[Payment]] = {invoice_id: [] for invoice_id in ids}
        for payment in session.exec(
            select(Payment).where(col(Payment.invoice_id).in_(ids)).order_by(col(Payment.created_at).asc())
        ).all():
            payments[payment.invoice_id].append(payment)
        projects = {
            project.id: project
            for project in session.exec(
                select(Project).where(col(Project.id).in_([invoice.project_id for invoice in invoices]))
            ).all()
        }
        clients = {
            user.id: user
            for user in session.exec(
                select(User).where(col(User.id).in_([invoice.client_id for invoice in invoices]))
            ).all()
        }
        reads: list[InvoiceRead] = []
        for invoice in invoices:
            project = projects.get(invoice.project_id)
            reads.append(
                InvoiceRead(
                    id=invoice.id,
                    number=invoice.number,
                    amount=invoice.amount,
                    status=invoice.status,
                    due_date=invoice.due_date,
                    project_id=invoice.project_id,
                    project_name=project.name if project is not None else "",
                    client=ClientRef(
                        **client_ref(clients.get(invoice.client_id), context=f"invoice {invoice.id}")
                    ),
                    items=[InvoiceItemRead.model_validate(item) for item in items[invoice.id]],
                    payments=[PaymentRead.model_validate(payment) for payment in payments[invoice.id]],
                    paypal_order_id=invoice.paypal_order_id,
                    created_at=invoice.created_at,
                    updated_at=invoice.updated_at,
                )
            )
        return reads

    def list_invoices(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        status: InvoiceStatus | None = None,
    ) -> tuple[list[InvoiceRead], Page[Invoice]]:
        caller = enforce(identity)
        with self._session() as session:
            statement = scope(caller, select(Invoice), Invoice.client_id)
            if status is not None:
                statement = statement.where(Invoice.status == status)
            statement = statement.order_by(col(Invoice.created_at).desc())
            result = paginate(session, statement, page, limit)
            return self._build_reads(session, result.items), result

    def get_invoice(self, identity: Identity | None, invoice_id: str) -> InvoiceRead:
        with self._session() as session:
            invoice = self.get_owned_invoice(session, identity, invoice_id)
            return self._build_reads(session, [invoice])[0]

    def create_invoice(self, identity: Identity | None, payload: InvoiceCreate) -> InvoiceRead:
        enforce(identity, required_role=Role.ADMIN)
        if not payload.items:
            raise ValidationFailed("Missing required fields", details="Invoice requires at least one item")
        with self._session() as session:
            client = get_customer(session, payload.client_id)
            project = session.get(Project, payload.project_id)
            if project is None:
                raise NotFound("Project not found")
            if project.client_id != client.id:
                raise ValidationFailed(
                    "Project does not belong to client",
                    details=f"project {project.id} is not owned by client {client.id}",
                )

            lines = [
                InvoiceItem(
                    invoice_id="",
                    description=item.description,
                    quantity=item.quantity,
                    rate=item.rate,
                    amount=round(item.quantity * item.rate, 2),
                )
                for item in payload.items
            ]
            invoice = Invoice(
                number=next_invoice_number(session, datetime.now(UTC).year),
                amount=round(sum(line.amount for line in lines), 2),
                status=InvoiceStatus.UNPAID,
                due_date=payload.due_date,
                project_id=project.id,
                client_id=client.id,
            )
            session.add(invoice)
            session.flush()
            for line in lines:
                line.invoice_id = invoice.id
                session.add(line)
            commit_or_raise(session, conflict_message="Invoice number already exists")
            session.refresh(invoice)
            logger.info("invoice %s created for client %s", invoice.number, client.id)
            return self._build_reads(session, [invoice])[0]

    def mark_paid(self, identity: Identity | None, invoice_id: str) -> Invoice:
        """Accepted on an already paid invoice; that call changes nothing."""
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            invoice = self._get_invoice(session, invoice_id)
            if transition_invoice(invoice, InvoiceStatus.PAID):
                session.add(invoice)
                commit_or_raise(session)
            else:
                logger.info("invoice %s already paid; mark-paid is a no-op", invoice.id)
            return invoice

    def delete_invoice(self, identity: Identity | None, invoice_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            invoice = self._get_invoice(session, invoice_id)
            cascade.delete_invoices(session, [invoice])
            commit_or_raise(session)
        logger.info("invoice %s deleted with items and payments", invoice_id)

    def stats(self, identity: Identity | None) -> InvoiceStatsRead:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            invoices = session.exec(select(Invoice)).all()
        paid = [invoice for invoice in invoices if invoice.status == InvoiceStatus.PAID]
        unpaid = [invoice for invoice in invoices if invoice.status == InvoiceStatus.UNPAID]
        overdue = [invoice for invoice in invoices if invoice.status == InvoiceStatus.OVERDUE]
        return InvoiceStatsRead(
            total_revenue=round(sum(invoice.amount for invoice in paid), 2),
            outstanding_amount=round(sum(invoice.amount for invoice in unpaid + overdue), 2),
            paid_invoices=len(paid),
            unpaid_invoices=len(unpaid),
            overdue_invoices=len(overdue),
        )
