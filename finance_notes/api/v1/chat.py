"""/v1/chat - per-transaction messaging"""

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from finance_notes.api.dependencies import get_push_client, get_request_id
from finance_notes.api.errors import commit_or_rollback
from finance_notes.api.security import get_current_account
from finance_notes.api.v1.schemas import (
    ChatMessageSchema,
    ChatSendRequest,
    ChatThreadResponse,
    ConversationListResponse,
    ConversationSchema,
    UnreadCountResponse,
)
from finance_notes.domain.models import AccountContext
from finance_notes.infrastructure.clients.push import PushClient
from finance_notes.infrastructure.database.session import get_db
from finance_notes.services.chat import ChatThread

router = APIRouter()


@router.get("/chat/conversations", response_model=ConversationListResponse)
def list_conversations(
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """Latest message per transaction the caller has chatted on, newest first"""
    conversations = ChatThread(db).list_conversations(caller)
    return ConversationListResponse(conversations=[ConversationSchema.from_summary(c) for c in conversations])


@router.get("/chat/unread-count", response_model=UnreadCountResponse)
def get_unread_count(
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    return UnreadCountResponse(count=ChatThread(db).unread_count(caller))


@router.get("/chat/{transaction_id}/messages", response_model=ChatThreadResponse)
def get_thread(
    transaction_id: str,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
):
    """All messages in creation order; messages addressed to the caller become read"""
    with commit_or_rollback(db, get_request_id(request), "read thread"):
        messages = ChatThread(db).get_thread(caller, transaction_id)
        response = ChatThreadResponse(messages=[ChatMessageSchema.from_model(m) for m in messages])
    return response


@router.post("/chat/{transaction_id}/messages", response_model=ChatMessageSchema)
async def send_message(
    transaction_id: str,
    request_body: ChatSendRequest,
    request: Request,
    db: Session = Depends(get_db),
    caller: AccountContext = Depends(get_current_account),
    push_client: PushClient = Depends(get_push_client),
):
    with commit_or_rollback(db, get_request_id(request), "send message"):
        message = await ChatThread(db, push_client).send_message(caller, transaction_id, request_body.message)
        response = ChatMessageSchema.from_model(message)
    return response
