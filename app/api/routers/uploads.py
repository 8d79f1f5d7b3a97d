from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse

from app.api.deps import OptionalIdentity, require_identity
from app.domain.models import DeleteBlobRequest, StatusMessageRead, UploadRead
from app.infra.audit import annotate_audit
from app.services.object_storage_service import ObjectStorageService
from app.services.upload_service import UploadService

router = APIRouter()


def get_object_storage() -> ObjectStorageService:
    return ObjectStorageService()


def get_upload_service(
    storage: Annotated[ObjectStorageService, Depends(get_object_storage)],
) -> UploadService:
    return UploadService(storage)


Service = Annotated[UploadService, Depends(get_upload_service)]


@router.post("/upload", response_model=UploadRead, dependencies=[Depends(require_identity)])
async def upload_file(
    request: Request,
    identity: OptionalIdentity,
    service: Service,
    filename: str | None = None,
    project_id: Annotated[str | None, Query(alias="projectId")] = None,
    task_id: Annotated[str | None, Query(alias="taskId")] = None,
) -> UploadRead:
    content = await request.body()
    upload = service.upload(
        identity,
        filename=filename,
        content=content,
        project_id=project_id,
        task_id=task_id,
    )
    annotate_audit(
        request,
        action="blob.put",
        detail={
            "target": {"pathname": upload.pathname, "size": upload.size, "project_id": project_id, "task_id": task_id}
        },
    )
    return upload


@router.post("/delete-blob", response_model=StatusMessageRead, dependencies=[Depends(require_identity)])
def delete_blob(
    payload: DeleteBlobRequest,
    request: Request,
    identity: OptionalIdentity,
    service: Service,
) -> StatusMessageRead:
    service.delete_blob(identity, payload.url)
    annotate_audit(request, action="blob.delete", detail={"target": {"url": payload.url}})
    return StatusMessageRead(message="File deleted successfully")


@router.get("/files/{object_key:path}")
def download_file(object_key: str, service: Service) -> FileResponse:
    path = service.get_path(object_key)
    return FileResponse(path=path, filename=path.name)
