from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from venture_chat.schemas.chat import ConversationSummary, CreateConversationRequest
from venture_chat.schemas.user import CurrentUser
from venture_chat.services.chat_service import ChatService
from venture_chat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items = await service.list_conversations(current_user.id)
    return {"items": [item.to_wire() for item in items]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(body: CreateConversationRequest, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    summary: ConversationSummary = await service.create_conversation(current_user.id, body.participant_ids)
    return summary.to_wire()


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    summary = await service.get_conversation(conversation_id, current_user.id)
    return summary.to_wire()


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: Optional[int] = Query(None, ge=1, le=500), current_user: CurrentUser = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages = await service.get_history(conversation_id, current_user.id, limit=limit)
    return {"items": [message.to_wire() for message in messages]}
