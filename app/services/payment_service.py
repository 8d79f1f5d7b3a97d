from __future__ import annotations

import logging
import os

from sqlmodel import Session, select

from app.adapters.base import PaymentProvider, PaymentProviderError
from app.adapters.fake_adapter import FakePaymentAdapter
from app.adapters.paypal_adapter import PayPalAdapter
from app.domain.errors import Conflict, NotFound, UpstreamFailure
from app.domain.models import CaptureRead, Invoice, OrderRead, Payment, now_utc
from app.domain.permissions import Identity, enforce
from app.domain.state_machine import InvoiceStatus
from app.infra.db import commit_or_raise, get_engine
from app.services.invoice_service import InvoiceService, transition_invoice

logger = logging.getLogger(__name__)

PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "paypal").strip().lower()
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "USD")
PAYMENT_METHOD_PAYPAL = "PayPal"


def build_payment_provider() -> PaymentProvider:
    if PAYMENT_PROVIDER == "fake":
        return FakePaymentAdapter()
    return PayPalAdapter()


class PaymentService:
    def __init__(self, provider: PaymentProvider) -> None:
        self._provider = provider
        self._invoices = InvoiceService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def create_order(self, identity: Identity | None, invoice_id: str) -> OrderRead:
        with self._session() as session:
            invoice = self._invoices.get_owned_invoice(session, identity, invoice_id)
            if invoice.status == InvoiceStatus.PAID:
                raise Conflict("Invoice is already paid")
            try:
                order = self._provider.create_order(
                    invoice_id=invoice.id,
                    amount=invoice.amount,
                    currency=PAYMENT_CURRENCY,
                    description=f"Invoice {invoice.number}",
                )
            except PaymentProviderError as exc:
                logger.warning("create order failed for invoice %s: %s", invoice.id, exc)
                raise UpstreamFailure("Failed to create payment order", details=str(exc)) from exc
            invoice.paypal_order_id = order.order_id
            invoice.updated_at = now_utc()
            session.add(invoice)
            commit_or_raise(session)
            return OrderRead(order_id=order.order_id, approve_url=order.approve_url)

    def capture_order(self, identity: Identity | None, order_id: str) -> CaptureRead:
        caller = enforce(identity)
        with self._session() as session:
            invoice = session.exec(select(Invoice).where(Invoice.paypal_order_id == order_id)).first()
            if invoice is None:
                raise NotFound("Invoice not found for order")
            enforce(caller, owner_id=invoice.client_id)
            if invoice.status == InvoiceStatus.PAID:
                raise Conflict("Invoice is already paid")
            try:
                capture = self._provider.capture_order(order_id)
            except PaymentProviderError as exc:
                logger.warning("capture failed for order %s: %s", order_id, exc)
                raise UpstreamFailure("Failed to capture payment", details=str(exc)) from exc

            if capture.completed:
                transition_invoice(invoice, InvoiceStatus.PAID)
                invoice.paypal_transaction_id = capture.transaction_id
                session.add(invoice)
                session.add(
                    Payment(
                        invoice_id=invoice.id,
                        user_id=invoice.client_id,
                        amount=invoice.amount,
                        method=PAYMENT_METHOD_PAYPAL,
                        transaction_reference=capture.transaction_id,
                    )
                )
                commit_or_raise(session)
                logger.info("invoice %s paid via order %s", invoice.id, order_id)
            else:
                logger.warning("order %s captured with status %s", order_id, capture.status)
            return CaptureRead(
                status=capture.status,
                order_id=capture.order_id,
                invoice_id=invoice.id,
                transaction_id=capture.transaction_id,
            )
