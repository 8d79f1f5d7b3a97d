"""Dependent-row removal for cascading deletes.

Each helper deletes children before parents and flushes between levels so
foreign keys hold at every step. None of them commit; the calling service
commits once, so a cascade is applied entirely or not at all.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from sqlmodel import Session, col, select

from app.domain.models import (
    ContactSubmission,
    Conversation,
    Invoice,
    InvoiceItem,
    Message,
    Payment,
    Project,
    ProjectFile,
    Task,
    TaskAttachment,
    TaskComment,
    Testimonial,
    User,
)


def _delete_all(session: Session, rows: Sequence[Any]) -> None:
    for row in rows:
        session.delete(row)
    session.flush()


def delete_invoices(session: Session, invoices: Sequence[Invoice]) -> None:
    ids = [item.id for item in invoices]
    if not ids:
        return
    _delete_all(session, session.exec(select(Payment).where(col(Payment.invoice_id).in_(ids))).all())
    _delete_all(session, session.exec(select(InvoiceItem).where(col(InvoiceItem.invoice_id).in_(ids))).all())
    _delete_all(session, invoices)


def delete_tasks(session: Session, tasks: Sequence[Task]) -> None:
    ids = [item.id for item in tasks]
    if not ids:
        return
    _delete_all(session, session.exec(select(TaskComment).where(col(TaskComment.task_id).in_(ids))).all())
    _delete_all(
        session,
        session.exec(select(TaskAttachment).where(col(TaskAttachment.task_id).in_(ids))).all(),
    )
    _delete_all(session, tasks)


def delete_conversations(session: Session, conversations: Sequence[Conversation]) -> None:
    ids = [item.id for item in conversations]
    if not ids:
        return
    _delete_all(session, session.exec(select(Message).where(col(Message.conversation_id).in_(ids))).all())
    _delete_all(session, conversations)


def delete_projects(session: Session, projects: Sequence[Project]) -> None:
    ids = [item.id for item in projects]
    if not ids:
        return
    delete_tasks(session, session.exec(select(Task).where(col(Task.project_id).in_(ids))).all())
    delete_conversations(
        session,
        session.exec(select(Conversation).where(col(Conversation.project_id).in_(ids))).all(),
    )
    delete_invoices(session, session.exec(select(Invoice).where(col(Invoice.project_id).in_(ids))).all())
    _delete_all(session, session.exec(select(ProjectFile).where(col(ProjectFile.project_id).in_(ids))).all())
    _delete_all(session, projects)


def delete_user(session: Session, user: User) -> None:
    delete_projects(session, session.exec(select(Project).where(Project.client_id == user.id)).all())
    delete_invoices(session, session.exec(select(Invoice).where(Invoice.client_id == user.id)).all())
    _delete_all(session, session.exec(select(Testimonial).where(Testimonial.client_id == user.id)).all())
    _delete_all(session, session.exec(select(Payment).where(Payment.user_id == user.id)).all())
    _delete_all(session, session.exec(select(TaskComment).where(TaskComment.author_id == user.id)).all())
    _delete_all(session, session.exec(select(Message).where(Message.sender_id == user.id)).all())

    for task in session.exec(select(Task).where(Task.assigned_to_id == user.id)).all():
        task.assigned_to_id = None
        session.add(task)
    for project_file in session.exec(select(ProjectFile).where(ProjectFile.uploaded_by_id == user.id)).all():
        project_file.uploaded_by_id = None
        session.add(project_file)
    for attachment in session.exec(
        select(TaskAttachment).where(TaskAttachment.uploaded_by_id == user.id)
    ).all():
        attachment.uploaded_by_id = None
        session.add(attachment)
    for submission in session.exec(select(ContactSubmission).where(ContactSubmission.user_id == user.id)).all():
        submission.user_id = None
        session.add(submission)
    session.flush()
    _delete_all(session, [user])
