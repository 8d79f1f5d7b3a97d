from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, SearchParam, require_admin, require_identity
from app.domain.models import (
    ProjectCreate,
    ProjectDetailRead,
    ProjectPage,
    ProjectRead,
    ProjectStatus,
    ProjectUpdate,
)
from app.domain.normalize import UpperInput
from app.infra.audit import annotate_audit
from app.services.project_service import ProjectService
from app.services.query import DEFAULT_LIMITS

router = APIRouter()


def get_project_service() -> ProjectService:
    return ProjectService()


Service = Annotated[ProjectService, Depends(get_project_service)]


@router.get("", response_model=ProjectPage, dependencies=[Depends(require_identity)])
def list_projects(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["projects"],
    status: Annotated[ProjectStatus | None, UpperInput, Query()] = None,
    search: SearchParam = None,
) -> ProjectPage:
    reads, result = service.list_projects(identity, page=page, limit=limit, status=status, search=search)
    return ProjectPage(projects=reads, pagination=result.meta())


@router.post(
    "",
    response_model=ProjectRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_project(
    payload: ProjectCreate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> ProjectRead:
    project = service.create_project(identity, payload)
    annotate_audit(
        request,
        action="project.create",
        detail={"target": {"project_id": project.id, "client_id": project.client_id}},
    )
    return project


@router.get(
    "/{project_id}",
    response_model=ProjectDetailRead,
    dependencies=[Depends(require_identity)],
)
def get_project(project_id: str, identity: OptionalIdentity, service: Service) -> ProjectDetailRead:
    return service.get_project_detail(identity, project_id)


@router.put("/{project_id}", response_model=ProjectRead, dependencies=[Depends(require_admin)])
def update_project(
    project_id: str,
    payload: ProjectUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> ProjectRead:
    project = service.update_project(identity, project_id, payload)
    annotate_audit(
        request,
        action="project.update",
        detail={"target": {"project_id": project_id, "fields": sorted(payload.model_fields_set)}},
    )
    return project


@router.delete(
    "/{project_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_project(project_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_project(identity, project_id)
    annotate_audit(request, action="project.delete", detail={"target": {"project_id": project_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)
