import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException

from dependencies import get_chat_service, get_current_user_id
from errors import BookVerseError
from models.chat_models import ChatMessage, ChatSession, InitiateChatRequest, SendMessageRequest
from services.chat_service import ChatService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])

@router.post("/initiate", response_model=ChatSession)
async def initiate_chat(
    body: InitiateChatRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.initiate_chat(user_id, body.otherUserId)
    except BookVerseError:
        raise
    except Exception as e:
        logger.exception("Error initiating chat for %s", user_id)
        raise HTTPException(status_code=500, detail=f"Server error initiating chat: {e}")

@router.get("/sessions", response_model=List[ChatSession])
async def get_chat_sessions(
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.list_sessions(user_id)
    except Exception as e:
        logger.exception("Error fetching chat sessions for %s", user_id)
        raise HTTPException(status_code=500, detail=f"Server error fetching chat sessions: {e}")

@router.get("/sessions/{session_id}/messages", response_model=List[ChatMessage])
async def get_chat_messages(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.get_messages(session_id, user_id)
    except BookVerseError:
        raise
    except Exception as e:
        logger.exception("Error fetching messages for session %s", session_id)
        raise HTTPException(status_code=500, detail=f"Server error fetching messages: {e}")

@router.post("/sessions/{session_id}/messages", response_model=ChatMessage)
async def send_chat_message(
    session_id: str,
    body: SendMessageRequest,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    try:
        return await service.send_message(session_id, user_id, body.messageText)
    except BookVerseError:
        raise
    except Exception as e:
        logger.exception("Error sending message in session %s", session_id)
        raise HTTPException(status_code=500, detail=f"Server error sending message: {e}")

@router.put("/sessions/{session_id}/read")
async def mark_chat_read(
    session_id: str,
    user_id: str = Depends(get_current_user_id),
    service: ChatService = Depends(get_chat_service),
):
    await service.mark_read(session_id, user_id)
    return {"message": "Chat marked as read"}
