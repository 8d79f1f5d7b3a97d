from __future__ import annotations

from dataclasses import dataclass
from hashlib import sha1

from app.adapters.base import CAPTURE_COMPLETED, CaptureResult, OrderResult, PaymentProviderError


@dataclass
class FakeOrder:
    invoice_id: str
    amount: float
    currency: str
    captured: bool = False


class FakePaymentAdapter:
    """In-process payment provider for local runs and tests."""

    def __init__(self, *, capture_status: str = CAPTURE_COMPLETED, fail: bool = False) -> None:
        self._capture_status = capture_status
        self._fail = fail
        self.orders: dict[str, FakeOrder] = {}

    def create_order(
        self,
        *,
        invoice_id: str,
        amount: float,
        currency: str,
        description: str,
    ) -> OrderResult:
        if self._fail:
            raise PaymentProviderError("fake provider unavailable")
        order_id = f"FAKE-{sha1(f'{invoice_id}:{len(self.orders)}'.encode()).hexdigest()[:12].upper()}"
        self.orders[order_id] = FakeOrder(invoice_id=invoice_id, amount=amount, currency=currency)
        return OrderResult(order_id=order_id, approve_url=f"https://fake-payments.local/approve/{order_id}")

    def capture_order(self, order_id: str) -> CaptureResult:
        if self._fail:
            raise PaymentProviderError("fake provider unavailable")
        order = self.orders.get(order_id)
        if order is None:
            raise PaymentProviderError(f"unknown order {order_id}")
        order.captured = self._capture_status == CAPTURE_COMPLETED
        transaction_id = f"TX-{order_id}" if order.captured else None
        return CaptureResult(
            order_id=order_id,
            status=self._capture_status,
            transaction_id=transaction_id,
            raw={"id": order_id, "status": self._capture_status},
        )
