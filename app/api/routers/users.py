from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, SearchParam, require_admin, require_identity
from app.domain.models import (
    CustomerPage,
    CustomerRead,
    UserCreate,
    UserPage,
    UserRead,
    UserUpdate,
)
from app.domain.normalize import UpperInput
from app.domain.permissions import Role
from app.infra.audit import annotate_audit
from app.services.query import DEFAULT_LIMITS
from app.services.user_service import UserService

router = APIRouter()
customers_router = APIRouter()


def get_user_service() -> UserService:
    return UserService()


Service = Annotated[UserService, Depends(get_user_service)]


@router.get("", response_model=UserPage, dependencies=[Depends(require_admin)])
def list_users(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["users"],
    search: SearchParam = None,
    role: Annotated[Role | None, UpperInput, Query()] = None,
) -> UserPage:
    result = service.list_users(identity, page=page, limit=limit, search=search, role=role)
    return UserPage(users=[UserRead.model_validate(row) for row in result.items], pagination=result.meta())


@router.post(
    "",
    response_model=UserRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_user(payload: UserCreate, request: Request, identity: OptionalIdentity, service: Service) -> UserRead:
    user = service.create_user(identity, payload)
    annotate_audit(request, action="user.create", detail={"target": {"user_id": user.id, "role": user.role}})
    return UserRead.model_validate(user)


@router.get("/{user_id}", response_model=UserRead, dependencies=[Depends(require_identity)])
def get_user(user_id: str, identity: OptionalIdentity, service: Service) -> UserRead:
    return UserRead.model_validate(service.get_user(identity, user_id))


@router.put("/{user_id}", response_model=UserRead, dependencies=[Depends(require_identity)])
def update_user(
    user_id: str,
    payload: UserUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> UserRead:
    user = service.update_user(identity, user_id, payload)
    annotate_audit(
        request,
        action="user.update",
        detail={"target": {"user_id": user.id, "fields": sorted(payload.model_fields_set)}},
    )
    return UserRead.model_validate(user)


@router.delete(
    "/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_user(user_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_user(identity, user_id)
    annotate_audit(request, action="user.delete", detail={"target": {"user_id": user_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@customers_router.get("", response_model=CustomerPage, dependencies=[Depends(require_admin)])
def list_customers(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["customers"],
    search: SearchParam = None,
) -> CustomerPage:
    result, counts = service.list_customers(identity, page=page, limit=limit, search=search)
    customers = [
        CustomerRead(**dict(UserRead.model_validate(row)), **counts[row.id])
        for row in result.items
    ]
    return CustomerPage(customers=customers, pagination=result.meta())
