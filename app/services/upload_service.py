from __future__ import annotations

import logging
from pathlib import Path

from sqlmodel import Session, select

from app.domain.errors import AuthorizationDenied, NotFound, UpstreamFailure, ValidationFailed
from app.domain.models import ProjectFile, TaskAttachment, UploadRead
from app.domain.permissions import Identity, enforce
from app.infra.db import commit_or_raise, get_engine
from app.services.object_storage_service import (
    ObjectStorageError,
    ObjectStorageNotFoundError,
    ObjectStorageService,
)
from app.services.project_service import ProjectService
from app.services.task_service import TaskService

logger = logging.getLogger(__name__)


class UploadService:
    def __init__(self, storage: ObjectStorageService) -> None:
        self._storage = storage
        self._projects = ProjectService()
        self._tasks = TaskService()

    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def upload(
        self,
        identity: Identity | None,
        *,
        filename: str | None,
        content: bytes,
        project_id: str | None = None,
        task_id: str | None = None,
    ) -> UploadRead:
        caller = enforce(identity)
        if filename is None or not filename.strip():
            raise ValidationFailed("Filename is required", details="Missing required query parameter: filename")
        with self._session() as session:
            if project_id:
                self._projects.get_owned_project(session, caller, project_id)
            if task_id:
                self._tasks.get_owned_task(session, caller, task_id)
            try:
                blob = self._storage.put(filename, content)
            except ObjectStorageError as exc:
                raise UpstreamFailure("Failed to store file", details=str(exc)) from exc

            name = Path(filename).name
            if project_id:
                session.add(
                    ProjectFile(
                        project_id=project_id, uploaded_by_id=caller.id, name=name, url=blob.url, size=blob.size
                    )
                )
            if task_id:
                session.add(
                    TaskAttachment(task_id=task_id, uploaded_by_id=caller.id, name=name, url=blob.url, size=blob.size)
                )
            if project_id or task_id:
                try:
                    commit_or_raise(session)
                except Exception:
                    self._storage.delete(blob.url)
                    raise
        return UploadRead(url=blob.url, pathname=blob.pathname, size=blob.size, content_type=blob.content_type)

    def delete_blob(self, identity: Identity | None, url: str) -> None:
        caller = enforce(identity)
        if not url.strip():
            raise ValidationFailed("Missing required fields", details="Missing required fields: url")
        with self._session() as session:
            records: list[ProjectFile | TaskAttachment] = [
                *session.exec(select(ProjectFile).where(ProjectFile.url == url)).all(),
                *session.exec(select(TaskAttachment).where(TaskAttachment.url == url)).all(),
            ]
            if not caller.is_admin and (
                not records or any(record.uploaded_by_id != caller.id for record in records)
            ):
                raise AuthorizationDenied()
            for record in records:
                session.delete(record)
            session.flush()
            try:
                self._storage.delete(url)
            except ObjectStorageNotFoundError as exc:
                raise NotFound("Blob not found") from exc
            commit_or_raise(session)
        logger.info("blob %s deleted by %s", url, caller.id)

    def get_path(self, object_key: str) -> Path:
        try:
            return self._storage.get_path(object_key)
        except ObjectStorageError as exc:
            raise NotFound("File not found") from exc
