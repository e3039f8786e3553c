from typing import Optional

from fastapi import APIRouter, Depends, Query, Response, status

from bizchat.schemas.auth import Identity
from bizchat.schemas.chat import CreateConversationRequest, MessageContent, ParticipantRequest
from bizchat.services.chat_service import ChatService
from bizchat.utils.dependencies import get_chat_service, get_current_user


router = APIRouter(prefix="/conversations", tags=["chat"])


@router.get("")
async def list_conversations(limit: int = Query(20, ge=1, le=100), cursor: Optional[str] = None, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    items, next_cursor = await service.list_conversations(current_user.user_id, limit=limit, cursor=cursor)
    return {"success": True, "data": [it.to_api() for it in items], "nextCursor": next_cursor}


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_conversation(body: CreateConversationRequest, response: Response, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    convo, created = await service.create_conversation(
        current_user.user_id,
        body.type,
        body.participants,
        title=body.title,
        description=body.description,
        business_id=body.business_id,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return {"success": True, "data": convo.to_api()}


@router.get("/stats")
async def conversation_stats(current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    stats = await service.stats(current_user.user_id)
    return {"success": True, "data": stats.to_api()}


@router.delete("/messages/{message_id}")
async def delete_message(message_id: str, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.delete_message(current_user.user_id, message_id)
    return {"success": True, "message": "Message deleted"}


@router.get("/{conversation_id}")
async def get_conversation(conversation_id: str, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    convo = await service.get_conversation(current_user.user_id, conversation_id)
    return {"success": True, "data": convo.to_api()}


@router.get("/{conversation_id}/messages")
async def list_messages(conversation_id: str, limit: int = Query(50, ge=1, le=200), cursor: Optional[str] = None, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    messages, next_cursor = await service.list_messages(current_user.user_id, conversation_id, limit=limit, cursor=cursor)
    return {"success": True, "data": [m.to_api() for m in messages], "nextCursor": next_cursor}


@router.post("/{conversation_id}/messages", status_code=status.HTTP_201_CREATED)
async def send_message(conversation_id: str, body: MessageContent, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    message = await service.send_message(current_user.user_id, conversation_id, body)
    return {"success": True, "data": message.to_api()}


@router.patch("/{conversation_id}/read")
async def mark_read(conversation_id: str, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    count = await service.mark_read(current_user.user_id, conversation_id)
    return {"success": True, "updated": count}


@router.post("/{conversation_id}/participants")
async def add_participant(conversation_id: str, body: ParticipantRequest, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    added = await service.add_participant(current_user.user_id, conversation_id, body.user_id)
    return {"success": True, "added": added}


@router.delete("/{conversation_id}/participants/{participant_id}")
async def remove_participant(conversation_id: str, participant_id: str, current_user: Identity = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.remove_participant(current_user.user_id, conversation_id, participant_id)
    return {"success": True}
