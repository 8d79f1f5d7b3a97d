from __future__ import annotations

import logging
from collections.abc import Sequence

from sqlmodel import Session, col, select

from app.domain.errors import NotFound, ValidationFailed
from app.domain.models import (
    ChatMessageRead,
    ClientRef,
    Conversation,
    ConversationCreate,
    ConversationRead,
    LastMessageRead,
    Message,
    MessageCreate,
    Project,
    User,
    now_utc,
)
from app.domain.normalize import client_ref
from app.domain.permissions import Identity, enforce
from app.infra.db import commit_or_raise, get_engine
from app.services.query import Page, paginate, scope

logger = logging.getLogger(__name__)


def _relative_sender(identity: Identity, sender_id: str) -> str:
    return "self" if sender_id == identity.id else "other"


class ConversationService:
    def _session(self) -> Session:
        return Session(get_engine(), expire_on_commit=False)

    def _get_owned(
        self, session: Session, identity: Identity | None, conversation_id: str
    ) -> tuple[Identity, Conversation, Project]:
        caller = enforce(identity)
        row = session.exec(
            select(Conversation, Project)
            .join(Project, col(Project.id) == col(Conversation.project_id))
            .where(Conversation.id == conversation_id)
        ).first()
        if row is None:
            raise NotFound("Conversation not found")
        conversation, project = row
        enforce(caller, owner_id=project.client_id)
        return caller, conversation, project

    def _build_reads(
        self,
        session: Session,
        identity: Identity,
        rows: Sequence[tuple[Conversation, Project]],
    ) -> list[ConversationRead]:
        ids = [conversation.id for conversation, _ in rows]
        if not ids:
            return []
        messages: dict[str, list[Message]] = {conversation_id: [] for conversation_id in ids}
        for message in session.exec(
            select(Message)
            .where(col(Message.conversation_id).in_(ids))
            .order_by(col(Message.created_at).asc())
        ).all():
            messages[message.conversation_id].append(message)
        clients = {
            user.id: user
            for user in session.exec(
                select(User).where(col(User.id).in_([project.client_id for _, project in rows]))
            ).all()
        }

        reads: list[ConversationRead] = []
        for conversation, project in rows:
            history = messages[conversation.id]
            last = history[-1] if history else None
            reads.append(
                ConversationRead(
                    id=conversation.id,
                    name=conversation.name,
                    project_id=project.id,
                    project_name=project.name,
                    customer=ClientRef(
                        **client_ref(clients.get(project.client_id), context=f"conversation {conversation.id}")
                    ),
                    last_message=(
                        LastMessageRead(
                            content=last.content,
                            sender=_relative_sender(identity, last.sender_id),
                            timestamp=last.created_at,
                        )
                        if last is not None
                        else None
                    ),
                    unread_count=sum(
                        1 for message in history if not message.read and message.sender_id != identity.id
                    ),
                    created_at=conversation.created_at,
                    updated_at=conversation.updated_at,
                )
            )
        return reads

    def list_conversations(
        self,
        identity: Identity | None,
        *,
        page: int,
        limit: int,
        project_id: str | None = None,
    ) -> tuple[list[ConversationRead], Page[Conversation]]:
        caller = enforce(identity)
        with self._session() as session:
            statement = scope(
                caller,
                select(Conversation).join(Project, col(Project.id) == col(Conversation.project_id)),
                Project.client_id,
            )
            if project_id:
                statement = statement.where(Conversation.project_id == project_id)
            result = paginate(session, statement.order_by(col(Conversation.updated_at).desc()), page, limit)
            projects = {
                project.id: project
                for project in session.exec(
                    select(Project).where(col(Project.id).in_([item.project_id for item in result.items]))
                ).all()
            }
            rows = [(conversation, projects[conversation.project_id]) for conversation in result.items]
            return self._build_reads(session, caller, rows), result

    def create_conversation(
        self, identity: Identity | None, payload: ConversationCreate
    ) -> tuple[ConversationRead, bool]:
        """Return the project's conversation and whether it was created now."""
        caller = enforce(identity)
        with self._session() as session:
            project = session.get(Project, payload.project_id)
            if project is None:
                raise NotFound("Project not found")
            enforce(caller, owner_id=project.client_id)

            conversation = session.exec(
                select(Conversation).where(Conversation.project_id == project.id)
            ).first()
            created = conversation is None
            if conversation is None:
                conversation = Conversation(
                    project_id=project.id,
                    name=(payload.name or "").strip() or project.name,
                )
                session.add(conversation)
                session.flush()
            initial = (payload.initial_message or "").strip()
            if initial:
                session.add(Message(conversation_id=conversation.id, sender_id=caller.id, content=initial))
                conversation.updated_at = now_utc()
                session.add(conversation)
            commit_or_raise(session, conflict_message="Conversation already exists for project")
            session.refresh(conversation)
            return self._build_reads(session, caller, [(conversation, project)])[0], created

    def list_messages(self, identity: Identity | None, conversation_id: str) -> list[ChatMessageRead]:
        with self._session() as session:
            caller, conversation, _ = self._get_owned(session, identity, conversation_id)
            rows = session.exec(
                select(Message, User)
                .join(User, col(User.id) == col(Message.sender_id))
                .where(Message.conversation_id == conversation.id)
                .order_by(col(Message.created_at).asc())
            ).all()
            return [self._message_read(caller, message, sender) for message, sender in rows]

    @staticmethod
    def _message_read(identity: Identity, message: Message, sender: User | None) -> ChatMessageRead:
        return ChatMessageRead(
            id=message.id,
            conversation_id=message.conversation_id,
            content=message.content,
            sender_id=message.sender_id,
            sender_name=sender.name if sender is not None else "",
            sender_role=sender.role if sender is not None else None,
            sender=_relative_sender(identity, message.sender_id),
            read=message.read,
            created_at=message.created_at,
        )

    def send_message(
        self, identity: Identity | None, conversation_id: str, payload: MessageCreate
    ) -> ChatMessageRead:
        content = payload.content.strip()
        with self._session() as session:
            caller, conversation, _ = self._get_owned(session, identity, conversation_id)
            if not content:
                raise ValidationFailed("Message content is required")
            message = Message(conversation_id=conversation.id, sender_id=caller.id, content=content)
            conversation.updated_at = now_utc()
            session.add(message)
            session.add(conversation)
            commit_or_raise(session)
            session.refresh(message)
            return self._message_read(caller, message, session.get(User, caller.id))

    def mark_read(self, identity: Identity | None, conversation_id: str) -> int:
        """Mark messages from the other participants as read."""
        with self._session() as session:
            caller, conversation, _ = self._get_owned(session, identity, conversation_id)
            unread = session.exec(
                select(Message)
                .where(Message.conversation_id == conversation.id)
                .where(Message.sender_id != caller.id)
                .where(col(Message.read).is_(False))
            ).all()
            for message in unread:
                message.read = True
                session.add(message)
            commit_or_raise(session)
            return len(unread)
