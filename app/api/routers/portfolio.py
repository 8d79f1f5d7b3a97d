from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import OptionalIdentity, require_admin
from app.domain.models import PortfolioItemCreate, PortfolioItemRead, PortfolioItemUpdate, PortfolioList
from app.infra.audit import annotate_audit
from app.services.portfolio_service import PortfolioService

router = APIRouter()


def get_portfolio_service() -> PortfolioService:
    return PortfolioService()


Service = Annotated[PortfolioService, Depends(get_portfolio_service)]


@router.get("", response_model=PortfolioList)
def list_portfolio_items(service: Service) -> PortfolioList:
    return PortfolioList(projects=[PortfolioItemRead.model_validate(item) for item in service.list_items()])


@router.post(
    "",
    response_model=PortfolioItemRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_portfolio_item(
    payload: PortfolioItemCreate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> PortfolioItemRead:
    item = service.create_item(identity, payload)
    annotate_audit(request, action="portfolio.create", detail={"target": {"item_id": item.id}})
    return PortfolioItemRead.model_validate(item)


@router.put("/{item_id}", response_model=PortfolioItemRead, dependencies=[Depends(require_admin)])
def update_portfolio_item(
    item_id: str,
    payload: PortfolioItemUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> PortfolioItemRead:
    item = service.update_item(identity, item_id, payload)
    annotate_audit(
        request,
        action="portfolio.update",
        detail={"target": {"item_id": item_id, "fields": sorted(payload.model_fields_set)}},
    )
    return PortfolioItemRead.model_validate(item)


@router.delete(
    "/{item_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_portfolio_item(item_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_item(identity, item_id)
    annotate_audit(request, action="portfolio.delete", detail={"target": {"item_id": item_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
