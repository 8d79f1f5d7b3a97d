from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol

CAPTURE_COMPLETED = "COMPLETED"


class PaymentProviderError(Exception):
    pass


@dataclass
class OrderResult:
    order_id: str
    approve_url: str


@dataclass
class CaptureResult:
    order_id: str
    status: str
    transaction_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def completed(self) -> bool:
        return self.status == CAPTURE_COMPLETED


class PaymentProvider(Protocol):
    def create_order(
        self,
        *,
        invoice_id: str,
        amount: float,
        currency: str,
        description: str,
    ) -> OrderResult: ...

    def capture_order(self, order_id: str) -> CaptureResult: ...
