from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, SearchParam, require_admin
from app.domain.models import (
    ContactCreate,
    ContactCreatedRead,
    ContactPage,
    ContactReadUpdate,
    ContactSubmissionRead,
)
from app.infra.audit import annotate_audit
from app.services.contact_service import ContactService
from app.services.query import DEFAULT_LIMITS

router = APIRouter()


def get_contact_service() -> ContactService:
    return ContactService()


Service = Annotated[ContactService, Depends(get_contact_service)]


@router.post("", response_model=ContactCreatedRead, status_code=status.HTTP_201_CREATED)
def submit_contact(
    payload: ContactCreate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> ContactCreatedRead:
    submission = service.submit(identity, payload)
    annotate_audit(request, action="contact.submit", detail={"target": {"submission_id": submission.id}})
    return ContactCreatedRead(id=submission.id, message="Thank you for your message. We will get back to you soon.")


@router.get("", response_model=ContactPage, dependencies=[Depends(require_admin)])
def list_contact_submissions(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["contact"],
    search: SearchParam = None,
    read: bool | None = None,
) -> ContactPage:
    result = service.list_submissions(identity, page=page, limit=limit, search=search, read=read)
    return ContactPage(
        submissions=[ContactSubmissionRead.model_validate(row) for row in result.items],
        pagination=result.meta(),
    )


@router.patch("/{submission_id}", response_model=ContactSubmissionRead, dependencies=[Depends(require_admin)])
def set_contact_read(
    submission_id: str,
    payload: ContactReadUpdate,
    identity: OptionalIdentity,
    service: Service,
) -> ContactSubmissionRead:
    return ContactSubmissionRead.model_validate(service.set_read(identity, submission_id, payload.read))


@router.delete(
    "/{submission_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_contact_submission(
    submission_id: str,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> Response:
    service.delete_submission(identity, submission_id)
    annotate_audit(request, action="contact.delete", detail={"target": {"submission_id": submission_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
