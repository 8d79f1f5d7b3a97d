from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import (
    ClientRef,
    Conversation,
    DocumentRead,
    Invoice,
    Message,
    Project,
    ProjectCreate,
    ProjectDetailRead,
    ProjectFile,
    ProjectRead,
    ProjectStatus,
    ProjectTaskCounts,
    ProjectUpdate,
    RecentMessageRead,
    RecentTaskRead,
    Task,
    TaskStatus,
    TeamMemberRead,
    User,
    now_utc,
)
from app.domain.normalize import as_utc, client_ref, progress
from app.domain.permissions import Identity, Role, enforce
from app.infra.db import commit_or_raise, get_engine
from app.services import cascade
from app.services.query import Page, apply_search, paginate, scope

logger = logging.getLogger(__name__)

RECENT_LIMIT = 5
NON_NULLABLE_FIELDS = {"name", "client_id", "start_date", "status"}


def get_customer(session: Session, client_id: str) -> User:
    client = session.get(User, client_id)
    if client is None or client.role != Role.CUSTOMER:
        raise NotFound("Client not found")
    return client


def task_counts(session: Session, project_ids: Sequence[str]) -> dict[str, tuple[int, int]]:
    counts: dict[str, tuple[int, int]] = {project_id: (0, 0) for project_id in project_ids}
    if not project_ids:
        return counts
    for task in session.exec(select(Task).where(col(Task.project_id).in_(list(project_ids)))).all():
        total, completed = counts[task.project_id]
        counts[task.project_id] = (total + 1, completed + (task.status == TaskStatus.COMPLETED))
    return counts


def build_project_read(project: Project, client: User | None, counts: tuple[int, int]) -> ProjectRead:
    total, completed = counts
    return ProjectRead(
        id=project.id,
        name=project.name,
        description=project.description,
        status=project.status,
        start_date=project.start_date,
        end_date=project.end_date,
        client_id=project.client_id,
        client=ClientRef(**client_ref(client, context=f"project {project.id}")),
        progress=progress(completed, total),
        created_at=project.created_at,
        updated_at=project.updated_at,
    )


class ProjectService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_project(self, session: Session, project_id: str) -> Project:
        row = session.get(Project, project_id)
        if row is None:
            raise NotFound("Project not found")
        return row

    def get_owned_project(self, session: Session, identity: Identity | None, project_id: str) -> Project:
        enforce(identity)
        project = self._get_project(session, project_id)
        enforce(identity, owner_id=project.client_id)
        return project

    def list_projects(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        status: ProjectStatus | None = None,
        search: str | None = None,
    ) -> tuple[list[ProjectRead], Page[Project]]:
        caller = enforce(identity)
        with self._session() as session:
            statement = scope(caller, select(Project), Project.client_id)
            if status is not None:
                statement = statement.where(Project.status == status)
            statement = apply_search(statement, search, Project.name, Project.description)
            result = paginate(session, statement.order_by(col(Project.name).asc()), page, limit)
            counts = task_counts(session, [project.id for project in result.items])
            client_ids = list({project.client_id for project in result.items})
            clients = {
                user.id: user for user in session.exec(select(User).where(col(User.id).in_(client_ids))).all()
            }
            reads = [
                build_project_read(project, clients.get(project.client_id), counts[project.id])
                for project in result.items
            ]
            return reads, result

    def get_project_detail(self, identity: Identity | None, project_id: str) -> ProjectDetailRead:
        with self._session() as session:
            project = self.get_owned_project(session, identity, project_id)
            client = session.get(User, project.client_id)
            tasks = session.exec(
                select(Task)
                .where(Task.project_id == project.id)
                .order_by(col(Task.due_date).asc(), col(Task.created_at).desc())
            ).all()
            now = now_utc()
            open_tasks = [task for task in tasks if task.status != TaskStatus.COMPLETED]
            completed = len(tasks) - len(open_tasks)
            overdue = sum(1 for task in open_tasks if as_utc(task.due_date) < now)
            upcoming = [task.due_date for task in open_tasks if as_utc(task.due_date) >= now]

            assignee_ids = [task.assigned_to_id for task in tasks[:RECENT_LIMIT] if task.assigned_to_id]
            assignees = {
                user.id: user.name for user in session.exec(select(User).where(col(User.id).in_(assignee_ids))).all()
            }
            admins = session.exec(select(User).where(User.role == Role.ADMIN).order_by(col(User.name).asc())).all()
            files = session.exec(
                select(ProjectFile)
                .where(ProjectFile.project_id == project.id)
                .order_by(col(ProjectFile.created_at).desc())
            ).all()

            base = build_project_read(project, client, (len(tasks), completed))
            return ProjectDetailRead(
                **dict(base),
                tasks=ProjectTaskCounts(total=len(tasks), completed=completed, overdue=overdue),
                next_deadline=min(upcoming, default=None),
                team=self._team(client, admins),
                documents=[
                    DocumentRead(id=item.id, name=item.name, url=item.url, size=item.size, uploaded_at=item.created_at)
                    for item in files
                ],
                recent_tasks=[
                    RecentTaskRead(
                        id=task.id,
                        title=task.title,
                        status=task.status,
                        priority=task.priority,
                        due_date=task.due_date,
                        assigned_to=assignees.get(task.assigned_to_id or "", "Unassigned"),
                    )
                    for task in tasks[:RECENT_LIMIT]
                ],
                recent_messages=self._recent_messages(session, project.id),
            )

    @staticmethod
    def _team(client: User | None, admins: Sequence[User]) -> list[TeamMemberRead]:
        team = [
            TeamMemberRead(id=admin.id, name=admin.name, email=admin.email, role="Project Manager")
            for admin in admins
        ]
        if client is not None:
            team.append(TeamMemberRead(id=client.id, name=client.name, email=client.email, role="Client"))
        return team

    @staticmethod
    def _recent_messages(session: Session, project_id: str) -> list[RecentMessageRead]:
        rows = session.exec(
            select(Message, User)
            .join(Conversation, col(Conversation.id) == col(Message.conversation_id))
            .join(User, col(User.id) == col(Message.sender_id))
            .where(Conversation.project_id == project_id)
            .order_by(col(Message.created_at).desc())
            .limit(RECENT_LIMIT)
        ).all()
        return [
            RecentMessageRead(
                id=message.id,
                content=message.content,
                sender="admin" if sender.role == Role.ADMIN else "customer",
                sender_name=sender.name,
                timestamp=message.created_at,
            )
            for message, sender in rows
        ]

    def create_project(self, identity: Identity | None, payload: ProjectCreate) -> ProjectRead:
        enforce(identity, required_role=Role.ADMIN)
        name = payload.name.strip()
        if not name:
            raise ValidationFailed("Missing required fields", details="Missing required fields: name")
        with self._session() as session:
            client = get_customer(session, payload.client_id)
            project = Project(
                name=name,
                description=payload.description,
                status=payload.status,
                start_date=payload.start_date,
                end_date=payload.end_date,
                client_id=client.id,
            )
            session.add(project)
            commit_or_raise(session)
            session.refresh(project)
            return build_project_read(project, client, (0, 0))

    def update_project(self, identity: Identity | None, project_id: str, payload: ProjectUpdate) -> ProjectRead:
        enforce(identity, required_role=Role.ADMIN)
        changes: dict[str, Any] = {
            key: value
            for key, value in payload.model_dump(exclude_unset=True).items()
            if value is not None or key not in NON_NULLABLE_FIELDS
        }
        if not changes:
            raise ValidationFailed("No valid fields provided")
        with self._session() as session:
            project = self._get_project(session, project_id)
            if "client_id" in changes:
                get_customer(session, changes["client_id"])
                for invoice in session.exec(select(Invoice).where(Invoice.project_id == project.id)).all():
                    invoice.client_id = changes["client_id"]
                    invoice.updated_at = now_utc()
                    session.add(invoice)
            for key, value in changes.items():
                setattr(project, key, value)
            project.updated_at = now_utc()
            session.add(project)
            commit_or_raise(session)
            session.refresh(project)
            counts = task_counts(session, [project.id])
            return build_project_read(project, session.get(User, project.client_id), counts[project.id])

    def delete_project(self, identity: Identity | None, project_id: str) -> None:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            project = self._get_project(session, project_id)
            cascade.delete_projects(session, [project])
            commit_or_raise(session)
        logger.info("project %s deleted with dependent rows", project_id)
