import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status

from dependencies import get_chat_service, get_hub
from errors import BookVerseError
from services.broadcast import BroadcastHub
from services.chat_service import ChatService
from utils import verify_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])


def _session_id_from(data: Any) -> Optional[str]:
    # Clients send either the bare id or {"sessionId": ...}
    if isinstance(data, dict):
        return data.get("sessionId")
    return data if isinstance(data, str) else None


async def handle_client_event(
    event: str,
    data: Any,
    user_id: str,
    websocket: WebSocket,
    service: ChatService,
    broadcast_hub: BroadcastHub,
) -> None:
    if event == "join_session":
        session = await service.require_participant(_session_id_from(data) or "", user_id)
        broadcast_hub.join(broadcast_hub.session_group(session.id), websocket)
        logger.info("User %s joined session room %s", user_id, session.id)
        await websocket.send_json({"event": "session_joined", "data": {"sessionId": session.id}})
    elif event == "send_message":
        data = data if isinstance(data, dict) else {}
        await service.send_message(data.get("sessionId") or "", user_id, data.get("messageText"))
    elif event == "mark_chat_read":
        await service.mark_read(_session_id_from(data) or "", user_id)
    else:
        await websocket.send_json({"event": "chat_error", "data": {"message": f"Unknown event: {event}"}})


@router.websocket("/ws")
async def chat_socket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    service: ChatService = Depends(get_chat_service),
    broadcast_hub: BroadcastHub = Depends(get_hub),
):
    user_id = verify_token(token) if token else None
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await websocket.accept()
    # Personal room for cross-session updates such as conversation list refreshes
    broadcast_hub.join(broadcast_hub.user_group(user_id), websocket)
    logger.info("User connected: %s", user_id)

    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
                event, data = frame["event"], frame.get("data")
            except (ValueError, KeyError, TypeError):
                await websocket.send_json({"event": "chat_error", "data": {"message": "Malformed event."}})
                continue

            try:
                await handle_client_event(event, data, user_id, websocket, service, broadcast_hub)
            except BookVerseError as e:
                await websocket.send_json({"event": "chat_error", "data": {"message": e.message}})
            except Exception:
                logger.exception("Error handling %s from %s", event, user_id)
                await websocket.send_json({"event": "chat_error", "data": {"message": "Failed to process event."}})
    except WebSocketDisconnect:
        logger.info("User disconnected: %s", user_id)
    finally:
        broadcast_hub.leave_all(websocket)
