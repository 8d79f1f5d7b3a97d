from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import (
    AssigneeRef,
    AttachmentRead,
    CommentAuthorRead,
    Project,
    ProjectOption,
    Task,
    TaskAttachment,
    TaskComment,
    TaskCommentCreate,
    TaskCommentRead,
    TaskCreate,
    TaskDetailRead,
    TaskPriority,
    TaskRead,
    TaskStatus,
    TaskUpdate,
    User,
    now_utc,
)
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine
from app.services import cascade
from app.services.query import Page, apply_search, paginate, scope

logger = logging.getLogger(__name__)

NON_NULLABLE_FIELDS = {"title", "due_date", "status", "priority"}


def build_task_read(task: Task, project: Project, assignee: User | None) -> TaskRead:
    return TaskRead(
        id=task.id,
        title=task.title,
        description=task.description,
        status=task.status,
        priority=task.priority,
        due_date=task.due_date,
        project_id=task.project_id,
        project_name=project.name,
        assigned_to=AssigneeRef(id=assignee.id, name=assignee.name) if assignee is not None else None,
        created_at=task.created_at,
        updated_at=task.updated_at,
    )


class TaskService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_task(self, session: Session, task_id: str) -> tuple[Task, Project]:
        row = session.exec(
            select(Task, Project)
            .join(Project, col(Project.id) == col(Task.project_id))
            .where(Task.id == task_id)
        ).first()
        if row is None:
            raise NotFound("Task not found")
        return row[0], row[1]

    def get_owned_task(self, session: Session, identity: Identity | None, task_id: str) -> tuple[Task, Project]:
        enforce(identity)
        task, project = self._get_task(session, task_id)
        enforce(identity, owner_id=project.client_id)
        return task, project

    @staticmethod
    def _assignees(session: Session, tasks: Sequence[Task]) -> dict[str, User]:
        ids = list({task.assigned_to_id for task in tasks if task.assigned_to_id})
        if not ids:
            return {}
        return {user.id: user for user in session.exec(select(User).where(col(User.id).in_(ids))).all()}

    @staticmethod
    def _get_assignee(session: Session, user_id: str | None) -> User | None:
        if user_id is None:
            return None
        user = session.get(User, user_id)
        if user is None:
            raise NotFound("Assignee not found")
        return user

    def list_tasks(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        status: TaskStatus | None = None,
        priority: TaskPriority | None = None,
        project_id: str | None = None,
        search: str | None = None,
    ) -> tuple[list[TaskRead], list[ProjectOption], Page[Any]]:
        caller = enforce(identity)
        with self._session() as session:
            statement = scope(
                caller,
                select(Task).join(Project, col(Project.id) == col(Task.project_id)),
                Project.client_id,
            )
            if status is not None:
                statement = statement.where(Task.status == status)
            if priority is not None:
                statement = statement.where(Task.priority == priority)
            if project_id:
                statement = statement.where(Task.project_id == project_id)
            statement = apply_search(statement, search, Task.title, Task.description)
            statement = statement.order_by(col(Task.due_date).asc(), col(Task.created_at).desc())
            result = paginate(session, statement, page, limit)

            project_statement = scope(caller, select(Project), Project.client_id).order_by(col(Project.name).asc())
            projects = session.exec(project_statement).all()
            by_id = {project.id: project for project in projects}
            assignees = self._assignees(session, result.items)
            reads = [
                build_task_read(task, by_id[task.project_id], assignees.get(task.assigned_to_id or ""))
                for task in result.items
            ]
            options = [ProjectOption(id=project.id, name=project.name) for project in projects]
            return reads, options, result

    def get_task_detail(self, identity: Identity | None, task_id: str) -> TaskDetailRead:
        with self._session() as session:
            task, project = self.get_owned_task(session, identity, task_id)
            assignee = session.get(User, task.assigned_to_id) if task.assigned_to_id else None
            comments = session.exec(
                select(TaskComment, User)
                .join(User, col(User.id) == col(TaskComment.author_id))
                .where(TaskComment.task_id == task.id)
                .order_by(col(TaskComment.created_at).asc())
            ).all()
            attachments = session.exec(
                select(TaskAttachment)
                .where(TaskAttachment.task_id == task.id)
                .order_by(col(TaskAttachment.created_at).desc())
            ).all()
            return TaskDetailRead(
                **dict(build_task_read(task, project, assignee)),
                comments=[self._comment_read(comment, author) for comment, author in comments],
                attachments=[
                    AttachmentRead(id=item.id, name=item.name, url=item.url, size=item.size, uploaded_at=item.created_at)
                    for item in attachments
                ],
            )

    @staticmethod
    def _comment_read(comment: TaskComment, author: User) -> TaskCommentRead:
        return TaskCommentRead(
            id=comment.id,
            content=comment.content,
            created_at=comment.created_at,
            author=CommentAuthorRead(id=author.id, name=author.name, role=author.role),
        )

    def create_task(self, identity: Identity | None, payload: TaskCreate) -> TaskRead:
        enforce(identity, required_role=Role.ADMIN)
        title = payload.title.strip()
        if not title:
            raise ValidationFailed("Missing required fields", details="Missing required fields: title")
        with self._session() as session:
            project = session.get(Project, payload.project_id)
            if project is None:
                raise NotFound("Project not found")
            assignee = self._get_assignee(session, payload.assigned_to_id)
            task = Task(
                title=title,
                description=payload.description,
                status=payload.status,
                priority=payload.priority,
                due_date=payload.due_date,
                project_id=project.id,
                assigned_to_id=payload.assigned_to_id,
            )
            session.add(task)
            commit_or_raise(session)
            session.refresh(task)
            return build_task_read(task, project, assignee)

    def update_task(self, identity: Identity | None, task_id: str, payload: TaskUpdate) -> TaskRead:
        enforce(identity, required_role=Role.ADMIN)
        changes: dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key not in NON_NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed("No valid fields provided")
        with self._session() as session:
            task, project = self._get_task(session, task_id)
            if changes.get("assigned_to_id"):
                self._get_assignee(session, changes["assigned_to_id"])
            for key, value in changes.items():
                setattr(task, key, value)
            task.updated_at = now_utc()
            session.add(task)
            commit_or_raise(session)
            session.refresh(task)
            assignee = session.get(User, task.assigned_to_id) if task.assigned_to_id else None
            return build_task_read(task, project, assignee)

    def delete_task(self, identity: Identity | None, task_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            task, _ = self._get_task(session, task_id)
            cascade.delete_tasks(session, [task])
            commit_or_raise(session)
        logger.info("task %s deleted", task_id)

    def add_comment(self, identity: Identity | None, task_id: str, payload: TaskCommentCreate) -> TaskCommentRead:
        content = payload.content.strip()
        with self._session() as session:
            task, _ = self.get_owned_task(session, identity, task_id)
            if not content:
                raise ValidationFailed("Comment content is required")
            author = session.get(User, identity.id) if identity is not None else None
            if author is None:
                raise NotFound("User not found")
            comment = TaskComment(task_id=task.id, author_id=author.id, content=content)
            session.add(comment)
            commit_or_raise(session)
            session.refresh(comment)
            return self._comment_read(comment, author)
