from __future__ import annotations

from datetime import UTC, datetime, timedelta

from sqlmodel import Session, col, select

from app.domain.models import (
    ActivityRead,
    AdminStatsRead,
    ContactSubmission,
    Conversation,
    CustomerStatsRead,
    Invoice,
    Message,
    NotificationRead,
    Payment,
    Project,
    ProjectStatus,
    Task,
    TaskStatus,
    User,
    now_utc,
)
from app.domain.normalize import as_utc
from app.domain.permissions import Identity, Role, enforce
from app.domain.state_machine import InvoiceStatus
from app.infra.db import get_engine
from app.services.conversation_service import ConversationService
from app.services.query import scope

ACTIVITY_LIMIT = 10
UPCOMING_TASK_DAYS = 7


def _month_start(value: datetime) -> datetime:
    normalized = as_utc(value)
    return datetime(normalized.year, normalized.month, 1, tzinfo=UTC)


def _latest(activities: list[ActivityRead]) -> list[ActivityRead]:
    return sorted(activities, key=lambda item: as_utc(item.timestamp), reverse=True)[:ACTIVITY_LIMIT]


class DashboardService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def admin_stats(self, identity: Identity | None) -> AdminStatsRead:
        enforce(identity, required_role=Role.ADMIN)
        month_start = _month_start(now_utc())
        with self._session() as session:
            customers = session.exec(select(User).where(User.role == Role.CUSTOMER)).all()
            projects = session.exec(select(Project)).all()
            tasks = session.exec(select(Task)).all()
            open_inquiries = session.exec(
                select(ContactSubmission).where(col(ContactSubmission.read).is_(False))
            ).all()
            payments = session.exec(select(Payment)).all()
            paid_invoices = session.exec(select(Invoice).where(Invoice.status == InvoiceStatus.PAID)).all()
        return AdminStatsRead(
            total_customers=len(customers),
            active_projects=sum(1 for project in projects if project.status == ProjectStatus.ACTIVE),
            completed_projects=sum(1 for project in projects if project.status == ProjectStatus.COMPLETED),
            tasks_completed=sum(1 for task in tasks if task.status == TaskStatus.COMPLETED),
            pending_tasks=sum(1 for task in tasks if task.status != TaskStatus.COMPLETED),
            open_inquiries=len(open_inquiries),
            monthly_revenue=round(
                sum(payment.amount for payment in payments if as_utc(payment.created_at) >= month_start), 2
            ),
            total_revenue=round(sum(invoice.amount for invoice in paid_invoices), 2),
        )

    def customer_stats(self, identity: Identity | None) -> CustomerStatsRead:
        caller = enforce(identity)
        now = now_utc()
        with self._session() as session:
            projects = session.exec(scope(caller, select(Project), Project.client_id)).all()
            tasks = session.exec(
                scope(
                    caller,
                    select(Task).join(Project, col(Project.id) == col(Task.project_id)),
                    Project.client_id,
                )
            ).all()
            invoices = session.exec(scope(caller, select(Invoice), Invoice.client_id)).all()
            unread = session.exec(
                scope(
                    caller,
                    select(Message)
                    .join(Conversation, col(Conversation.id) == col(Message.conversation_id))
                    .join(Project, col(Project.id) == col(Conversation.project_id)),
                    Project.client_id,
                )
                .where(Message.sender_id != caller.id)
                .where(col(Message.read).is_(False))
            ).all()
        open_tasks = [task for task in tasks if task.status != TaskStatus.COMPLETED]
        upcoming = [task.due_date for task in open_tasks if as_utc(task.due_date) >= now]
        outstanding = [invoice for invoice in invoices if invoice.status != InvoiceStatus.PAID]
        return CustomerStatsRead(
            active_projects=sum(1 for project in projects if project.status == ProjectStatus.ACTIVE),
            completed_projects=sum(1 for project in projects if project.status == ProjectStatus.COMPLETED),
            pending_tasks=len(open_tasks),
            completed_tasks=len(tasks) - len(open_tasks),
            total_invoices=len(invoices),
            unpaid_invoices=len(outstanding),
            outstanding_amount=round(sum(invoice.amount for invoice in outstanding), 2),
            unread_messages=len(unread),
            next_deadline=min(upcoming, key=as_utc, default=None),
        )

    def admin_activities(self, identity: Identity | None) -> list[ActivityRead]:
        enforce(identity, required_role=Role.ADMIN)
        with self._session() as session:
            tasks = session.exec(
                select(Task, Project)
                .join(Project, col(Project.id) == col(Task.project_id))
                .order_by(col(Task.updated_at).desc())
                .limit(ACTIVITY_LIMIT)
            ).all()
            messages = session.exec(
                select(Message, User)
                .join(User, col(User.id) == col(Message.sender_id))
                .order_by(col(Message.created_at).desc())
                .limit(ACTIVITY_LIMIT)
            ).all()
            payments = session.exec(
                select(Payment, Invoice)
                .join(Invoice, col(Invoice.id) == col(Payment.invoice_id))
                .order_by(col(Payment.created_at).desc())
                .limit(ACTIVITY_LIMIT)
            ).all()
        activities = [
            ActivityRead(
                id=task.id,
                type="task",
                title=task.title,
                description=f"{project.name}: {task.status.lower().replace('_', ' ')}",
                timestamp=task.updated_at,
            )
            for task, project in tasks
        ]
        activities += [
            ActivityRead(
                id=message.id,
                type="message",
                title=f"Message from {sender.name}",
                description=message.content[:120],
                timestamp=message.created_at,
            )
            for message, sender in messages
        ]
        activities += [
            ActivityRead(
                id=payment.id,
                type="payment",
                title=f"Payment for {invoice.number}",
                description=f"{payment.amount:.2f} via {payment.method}",
                timestamp=payment.created_at,
            )
            for payment, invoice in payments
        ]
        return _latest(activities)

    def customer_activities(self, identity: Identity | None) -> list[ActivityRead]:
        caller = enforce(identity)
        with self._session() as session:
            tasks = session.exec(
                scope(
                    caller,
                    select(Task, Project).join(Project, col(Project.id) == col(Task.project_id)),
                    Project.client_id,
                )
                .order_by(col(Task.updated_at).desc())
                .limit(ACTIVITY_LIMIT)
            ).all()
            invoices = session.exec(
                scope(caller, select(Invoice), Invoice.client_id)
                .order_by(col(Invoice.updated_at).desc())
                .limit(ACTIVITY_LIMIT)
            ).all()
        activities = [
            ActivityRead(
                id=task.id,
                type="task",
                title=task.title,
                description=f"{project.name}: {task.status.lower().replace('_', ' ')}",
                timestamp=task.updated_at,
            )
            for task, project in tasks
        ]
        activities += [
            ActivityRead(
                id=invoice.id,
                type="invoice",
                title=f"Invoice {invoice.number}",
                description=f"{invoice.amount:.2f} ({invoice.status})",
                timestamp=invoice.updated_at,
            )
            for invoice in invoices
        ]
        return _latest(activities)

    def customer_notifications(self, identity: Identity | None) -> list[NotificationRead]:
        """Unread conversations, tasks due soon and open invoices, newest first."""
        caller = enforce(identity)
        now = now_utc()
        horizon = now + timedelta(days=UPCOMING_TASK_DAYS)
        with self._session() as session:
            unread = session.exec(
                scope(
                    caller,
                    select(Message, Conversation, Project)
                    .join(Conversation, col(Conversation.id) == col(Message.conversation_id))
                    .join(Project, col(Project.id) == col(Conversation.project_id)),
                    Project.client_id,
                )
                .where(Message.sender_id != caller.id)
                .where(col(Message.read).is_(False))
            ).all()
            tasks = session.exec(
                scope(
                    caller,
                    select(Task, Project).join(Project, col(Project.id) == col(Task.project_id)),
                    Project.client_id,
                ).where(Task.status != TaskStatus.COMPLETED)
            ).all()
            invoices = session.exec(
                scope(caller, select(Invoice), Invoice.client_id).where(Invoice.status != InvoiceStatus.PAID)
            ).all()

        by_conversation: dict[str, tuple[int, datetime, Project]] = {}
        for message, conversation, project in unread:
            count, latest, _ = by_conversation.get(conversation.id, (0, message.created_at, project))
            by_conversation[conversation.id] = (count + 1, max(latest, message.created_at, key=as_utc), project)

        notifications = [
            NotificationRead(
                id=f"msg-{conversation_id}",
                type="message",
                target_id=conversation_id,
                message=f"{count} new message{'s' if count != 1 else ''} in {project.name}",
                read=False,
                time=latest,
                link="/dashboard/customer/messages",
            )
            for conversation_id, (count, latest, project) in by_conversation.items()
        ]
        notifications += [
            NotificationRead(
                id=f"task-{task.id}",
                type="task",
                target_id=task.id,
                message=f"Task '{task.title}' in {project.name} is due {as_utc(task.due_date):%b %d}",
                read=False,
                time=task.due_date,
                link=f"/dashboard/customer/projects/{project.id}",
            )
            for task, project in tasks
            if now <= as_utc(task.due_date) <= horizon
        ]
        notifications += [
            NotificationRead(
                id=f"inv-{invoice.id}",
                type="invoice",
                target_id=invoice.id,
                message=f"Invoice {invoice.number} for ${invoice.amount:.2f} is {invoice.status.lower()}",
                read=False,
                time=invoice.due_date,
                link="/dashboard/customer/invoices",
            )
            for invoice in invoices
        ]
        return sorted(notifications, key=lambda item: as_utc(item.time), reverse=True)

    def mark_message_notification_read(self, identity: Identity | None, conversation_id: str) -> int:
        return ConversationService().mark_read(identity, conversation_id)
