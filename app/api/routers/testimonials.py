from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import OptionalIdentity, require_admin
from app.domain.models import (
    TestimonialAdminRead,
    TestimonialCreate,
    TestimonialRead,
    TestimonialUpdate,
)
from app.infra.audit import annotate_audit
from app.services.testimonial_service import TestimonialService

router = APIRouter()


def get_testimonial_service() -> TestimonialService:
    return TestimonialService()


Service = Annotated[TestimonialService, Depends(get_testimonial_service)]


@router.get("", response_model=list[TestimonialRead])
def list_testimonials(service: Service) -> list[TestimonialRead]:
    return service.list_public()


@router.get("/admin", response_model=list[TestimonialAdminRead], dependencies=[Depends(require_admin)])
def list_testimonials_admin(identity: OptionalIdentity, service: Service) -> list[TestimonialAdminRead]:
    return service.list_admin(identity)


@router.get("/{testimonial_id}", response_model=TestimonialAdminRead | TestimonialRead)
def get_testimonial(testimonial_id: str, identity: OptionalIdentity, service: Service) -> TestimonialRead:
    return service.get_testimonial(identity, testimonial_id)


@router.post(
    "",
    response_model=TestimonialAdminRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_testimonial(
    payload: TestimonialCreate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> TestimonialAdminRead:
    testimonial = service.create_testimonial(identity, payload)
    annotate_audit(request, action="testimonial.create", detail={"target": {"testimonial_id": testimonial.id}})
    return testimonial


@router.put("/{testimonial_id}", response_model=TestimonialAdminRead, dependencies=[Depends(require_admin)])
def update_testimonial(
    testimonial_id: str,
    payload: TestimonialUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> TestimonialAdminRead:
    testimonial = service.update_testimonial(identity, testimonial_id, payload)
    annotate_audit(request, action="testimonial.update", detail={"target": {"testimonial_id": testimonial_id}})
    return testimonial


@router.delete(
    "/{testimonial_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_testimonial(testimonial_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_testimonial(identity, testimonial_id)
    annotate_audit(request, action="testimonial.delete", detail={"target": {"testimonial_id": testimonial_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
