from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from app.api.deps import LimitParam, OptionalIdentity, PageParam, require_identity
from app.domain.models import (
    ChatMessageList,
    ChatMessageRead,
    ConversationCreate,
    ConversationPage,
    ConversationRead,
    MarkReadRead,
    MessageCreate,
)
from app.infra.audit import annotate_audit
from app.services.conversation_service import ConversationService
from app.services.query import DEFAULT_LIMITS

router = APIRouter(dependencies=[Depends(require_identity)])


def get_conversation_service() -> ConversationService:
    return ConversationService()


Service = Annotated[ConversationService, Depends(get_conversation_service)]


@router.get("", response_model=ConversationPage)
def list_conversations(
    identity: OptionalIdentity,
    service: Service,
    page: PageParam = 1,
    limit: LimitParam = DEFAULT_LIMITS["conversations"],
    project_id: Annotated[str | None, Query(alias="projectId")] = None,
) -> ConversationPage:
    reads, result = service.list_conversations(identity, page=page, limit=limit, project_id=project_id)
    return ConversationPage(conversations=reads, pagination=result.meta())


@router.post("", response_model=ConversationRead, status_code=status.HTTP_201_CREATED)
def create_conversation(
    payload: ConversationCreate,
    request: Request,
    response: Response,
    identity: OptionalIdentity,
    service: Service,
) -> ConversationRead:
    conversation, created = service.create_conversation(identity, payload)
    if not created:
        response.status_code = status.HTTP_200_OK
    annotate_audit(
        request,
        action="conversation.create" if created else "conversation.reuse",
        detail={"target": {"conversation_id": conversation.id, "project_id": conversation.project_id}},
    )
    return conversation


@router.get("/{conversation_id}/messages", response_model=ChatMessageList)
def list_messages(conversation_id: str, identity: OptionalIdentity, service: Service) -> ChatMessageList:
    return ChatMessageList(messages=service.list_messages(identity, conversation_id))


@router.post(
    "/{conversation_id}/messages",
    response_model=ChatMessageRead,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: str,
    payload: MessageCreate,
    identity: OptionalIdentity,
    service: Service,
) -> ChatMessageRead:
    return service.send_message(identity, conversation_id, payload)


@router.post("/{conversation_id}/read", response_model=MarkReadRead)
def mark_read(conversation_id: str, identity: OptionalIdentity, service: Service) -> MarkReadRead:
    return MarkReadRead(updated=service.mark_read(identity, conversation_id))
