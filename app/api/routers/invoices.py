from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, require_admin, require_identity
from app.domain.models import (
    InvoiceCreate,
    InvoicePage,
    InvoiceRead,
    InvoiceStatsRead,
    StatusMessageRead,
)
from app.domain.normalize import UpperInput
from app.domain.state_machine import InvoiceStatus
from app.infra.audit import annotate_audit
from app.services.invoice_service import InvoiceService
from app.services.query import DEFAULT_LIMITS

router = APIRouter()


def get_invoice_service() -> InvoiceService:
    return InvoiceService()


Service = Annotated[InvoiceService, Depends(get_invoice_service)]
InvoiceStatusParam = Annotated[InvoiceStatus | None, UpperInput, Query()]


@router.get("", response_model=InvoicePage, dependencies=[Depends(require_identity)])
def list_invoices(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["invoices"],
    status: InvoiceStatusParam = None,
) -> InvoicePage:
    reads, result = service.list_invoices(identity, page=page, limit=limit, status=status)
    return InvoicePage(invoices=reads, pagination=result.meta())


@router.get("/stats", response_model=InvoiceStatsRead, dependencies=[Depends(require_admin)])
def invoice_stats(identity: OptionalIdentity, service: Service) -> InvoiceStatsRead:
    return service.stats(identity)


@router.post(
    "",
    response_model=InvoiceRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_invoice(payload: InvoiceCreate, request: Request, identity: OptionalIdentity, service: Service) -> InvoiceRead:
    invoice = service.create_invoice(identity, payload)
    annotate_audit(
        request,
        action="invoice.create",
        detail={"target": {"invoice_id": invoice.id, "number": invoice.number, "amount": invoice.amount}},
    )
    return invoice


@router.get("/{invoice_id}", response_model=InvoiceRead, dependencies=[Depends(require_identity)])
def get_invoice(invoice_id: str, identity: OptionalIdentity, service: Service) -> InvoiceRead:
    return service.get_invoice(identity, invoice_id)


@router.post(
    "/{invoice_id}/mark-paid",
    response_model=StatusMessageRead,
    dependencies=[Depends(require_admin)],
)
def mark_paid(invoice_id: str, request: Request, identity: OptionalIdentity, service: Service) -> StatusMessageRead:
    invoice = service.mark_paid(identity, invoice_id)
    annotate_audit(
        request,
        action="invoice.mark_paid",
        detail={"target": {"invoice_id": invoice.id, "status": invoice.status}},
    )
    return StatusMessageRead(message="Invoice marked as paid successfully")


@router.delete(
    "/{invoice_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_invoice(invoice_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_invoice(identity, invoice_id)
    annotate_audit(request, action="invoice.delete", detail={"target": {"invoice_id": invoice_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
