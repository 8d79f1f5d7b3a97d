from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request

from app.adapters.base import PaymentProvider
from app.api.deps import OptionalIdentity, require_identity
from app.domain.models import CaptureOrderRequest, CaptureRead, CreateOrderRequest, OrderRead
from app.infra.audit import annotate_audit
from app.services.payment_service import PaymentService, build_payment_provider

router = APIRouter()


def get_payment_provider() -> PaymentProvider:
    return build_payment_provider()


def get_payment_service(
    provider: Annotated[PaymentProvider, Depends(get_payment_provider)],
) -> PaymentService:
    return PaymentService(provider)


Service = Annotated[PaymentService, Depends(get_payment_service)]


@router.post("/paypal/create-order", response_model=OrderRead, dependencies=[Depends(require_identity)])
def create_order(
    payload: CreateOrderRequest,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> OrderRead:
    order = service.create_order(identity, payload.invoice_id)
    annotate_audit(
        request,
        action="payment.order.create",
        detail={"target": {"invoice_id": payload.invoice_id, "order_id": order.order_id}},
    )
    return order


@router.post("/paypal/capture", response_model=CaptureRead, dependencies=[Depends(require_identity)])
def capture_order(
    payload: CaptureOrderRequest,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> CaptureRead:
    capture = service.capture_order(identity, payload.order_id)
    annotate_audit(
        request,
        action="payment.order.capture",
        detail={"target": {"order_id": capture.order_id, "invoice_id": capture.invoice_id, "status": capture.status}},
    )
    return capture
