from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, SearchParam, require_admin, require_identity
from app.domain.models import (
    TaskCommentCreate,
    TaskCommentRead,
    TaskCreate,
    TaskDetailRead,
    TaskPage,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskUpdate,
)
from app.domain.normalize import UpperInput
from app.infra.audit import annotate_audit
from app.services.query import DEFAULT_LIMITS
from app.services.task_service import TaskService

router = APIRouter()


def get_task_service() -> TaskService:
    return TaskService()


Service = Annotated[TaskService, Depends(get_task_service)]


@router.get("", response_model=TaskPage, dependencies=[Depends(require_identity)])
def list_tasks(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["tasks"],
    status: Annotated[TaskStatus | None, UpperInput, Query()] = None,
    priority: Annotated[TaskPriority | None, UpperInput, Query()] = None,
    project_id: Annotated[str | None, Query(alias="projectId")] = None,
    search: SearchParam = None,
) -> TaskPage:
    reads, projects, result = service.list_tasks(
        identity,
        page=page,
        limit=limit,
        status=status,
        priority=priority,
        project_id=project_id,
        search=search,
    )
    return TaskPage(tasks=reads, projects=projects, pagination=result.meta())


@router.post(
    "",
    response_model=TaskRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_admin)],
)
def create_task(payload: TaskCreate, request: Request, identity: OptionalIdentity, service: Service) -> TaskRead:
    task = service.create_task(identity, payload)
    annotate_audit(
        request,
        action="task.create",
        detail={"target": {"task_id": task.id, "project_id": task.project_id}},
    )
    return task


@router.get("/{task_id}", response_model=TaskDetailRead, dependencies=[Depends(require_identity)])
def get_task(task_id: str, identity: OptionalIdentity, service: Service) -> TaskDetailRead:
    return service.get_task_detail(identity, task_id)


@router.put("/{task_id}", response_model=TaskRead, dependencies=[Depends(require_admin)])
def update_task(
    task_id: str,
    payload: TaskUpdate,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> TaskRead:
    task = service.update_task(identity, task_id, payload)
    annotate_audit(
        request,
        action="task.update",
        detail={"target": {"task_id": task_id, "fields": sorted(payload.model_fields_set)}},
    )
    return task


@router.delete(
    "/{task_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    dependencies=[Depends(require_admin)],
)
def delete_task(task_id: str, request: Request, identity: OptionalIdentity, service: Service) -> Response:
    service.delete_task(identity, task_id)
    annotate_audit(request, action="task.delete", detail={"target": {"task_id": task_id}})
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post(
    "/{task_id}/comments",
    response_model=TaskCommentRead,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_identity)],
)
def add_comment(
    task_id: str,
    payload: TaskCommentCreate,
    identity: OptionalIdentity,
    service: Service,
) -> TaskCommentRead:
    return service.add_comment(identity, task_id, payload)
