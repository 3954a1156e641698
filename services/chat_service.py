import logging
from typing import Any, Dict, List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from errors import NotFoundError, UnauthorizedError, ValidationError
from models.chat_models import ChatMessage, ChatParticipant, ChatSession
from utils import now_ms, serialize_doc

logger = logging.getLogger(__name__)

# Only the last 7 days of a conversation are readable
MESSAGE_WINDOW_MS = 7 * 24 * 60 * 60 * 1000


def participant_key(first_id: str, second_id: str) -> str:
    """Direction-independent key for a pair of users."""
    return ":".join(sorted((first_id, second_id)))


def session_from_doc(doc: Dict[str, Any]) -> ChatSession:
    session = serialize_doc(doc)
    session["participantIds"] = [str(p) for p in session.get("participantIds", [])]
    session["unreadCounts"] = {str(k): int(v) for k, v in (session.get("unreadCounts") or {}).items()}
    session.pop("participantKey", None)
    return ChatSession(**session)


def message_from_doc(doc: Dict[str, Any]) -> ChatMessage:
    return ChatMessage(**serialize_doc(doc))


def _check_user_id(value: Optional[str], message: str) -> str:
    value = (value or "").strip()
    # User ids become field names in unreadCounts
    if not value or "." in value or value.startswith("$"):
        raise ValidationError(message)
    return value


class ChatService:
    def __init__(self, database, hub, users):
        self.db = database
        self.hub = hub
        self.users = users

    async def initiate_chat(self, self_id: str, other_id: Optional[str]) -> ChatSession:
        """Find or create the one session between two users."""
        self_id = _check_user_id(self_id, "Current user ID is invalid.")
        other_id = _check_user_id(other_id, "Other user ID is required.")
        if self_id == other_id:
            raise ValidationError("You cannot start a chat with yourself.")

        participants = sorted([self_id, other_id])
        key = participant_key(self_id, other_id)
        try:
            doc = await self.db.chat_sessions.find_one_and_update(
                {"participantKey": key},
                {
                    "$setOnInsert": {
                        "participantIds": participants,
                        "lastMessageTimestamp": now_ms(),
                        "unreadCounts": {p: 0 for p in participants},
                    }
                },
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        except DuplicateKeyError:
            # Lost the insert race against the same pair; the winner's session is the one
            doc = await self.db.chat_sessions.find_one({"participantKey": key})

        session = session_from_doc(doc)
        logger.debug("Chat session %s ready for %s", session.id, key)
        return await self._with_participants(session)

    async def list_sessions(self, user_id: str) -> List[ChatSession]:
        sessions = []
        cursor = self.db.chat_sessions.find({"participantIds": user_id}).sort("lastMessageTimestamp", -1)
        async for doc in cursor:
            sessions.append(await self._with_participants(session_from_doc(doc)))
        return sessions

    async def get_session(self, session_id: str) -> ChatSession:
        if not ObjectId.is_valid(session_id):
            raise NotFoundError("Chat session not found")
        doc = await self.db.chat_sessions.find_one({"_id": ObjectId(session_id)})
        if not doc:
            raise NotFoundError("Chat session not found")
        return session_from_doc(doc)

    async def require_participant(self, session_id: str, user_id: str) -> ChatSession:
        session = await self.get_session(session_id)
        if user_id not in session.participantIds:
            raise UnauthorizedError("Not authorized to access this chat")
        return session

    async def send_message(self, session_id: str, sender_id: str, text: Optional[str]) -> ChatMessage:
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message text is required.")

        session = await self.require_participant(session_id, sender_id)
        receiver_id = next(p for p in session.participantIds if p != sender_id)

        timestamp = now_ms()
        message_doc = {
            "sessionId": session.id,
            "senderId": sender_id,
            "receiverId": receiver_id,
            "messageText": text,
            "timestamp": timestamp,
        }
        result = await self.db.chat_messages.insert_one(message_doc)
        message = ChatMessage(id=str(result.inserted_id), **{k: v for k, v in message_doc.items() if k != "_id"})

        # Touches only the receiver's counter so concurrent senders never lose increments
        await self.db.chat_sessions.update_one(
            {"_id": ObjectId(session.id)},
            {
                "$set": {"lastMessageText": text, "lastMessageTimestamp": timestamp},
                "$inc": {f"unreadCounts.{receiver_id}": 1},
            },
        )

        await self._publish(message, session.id, sender_id, receiver_id)
        return message

    async def mark_read(self, session_id: str, user_id: str) -> None:
        session = await self.require_participant(session_id, user_id)
        await self._reset_unread(session.id, user_id)

    async def get_messages(self, session_id: str, user_id: str, now: Optional[int] = None) -> List[ChatMessage]:
        """Messages from the last 7 days, oldest first. Viewing marks the session read."""
        session = await self.require_participant(session_id, user_id)
        since = (now if now is not None else now_ms()) - MESSAGE_WINDOW_MS

        messages = []
        cursor = self.db.chat_messages.find(
            {"sessionId": session.id, "timestamp": {"$gte": since}}
        ).sort("timestamp", 1)
        async for doc in cursor:
            messages.append(message_from_doc(doc))

        await self._reset_unread(session.id, user_id)
        return messages

    async def _reset_unread(self, session_id: str, user_id: str) -> None:
        await self.db.chat_sessions.update_one(
            {"_id": ObjectId(session_id)},
            {"$set": {f"unreadCounts.{user_id}": 0}},
        )

    async def _with_participants(self, session: ChatSession) -> ChatSession:
        participants = []
        for participant_id in session.participantIds:
            try:
                user = await self.users.find_by_id(participant_id)
            except Exception:
                logger.exception("Failed to resolve chat participant %s", participant_id)
                user = None
            participants.append(ChatParticipant(
                id=participant_id,
                name=user.name if user else "Unknown User",
                communityUnit=user.communityUnit if user else "",
            ))
        session.participants = participants
        return session

    async def _publish(self, message: ChatMessage, session_id: str, sender_id: str, receiver_id: str) -> None:
        try:
            payload = message.dict()
            payload["senderName"] = await self.users.display_name(sender_id, "Unknown User")
            await self.hub.broadcast(self.hub.session_group(session_id), "new_message", payload)

            # Lets the receiver refresh their conversation list without polling
            updated = await self._with_participants(await self.get_session(session_id))
            await self.hub.broadcast(self.hub.user_group(receiver_id), "session_updated", updated.dict())
        except Exception:
            logger.exception("Failed to push message %s for session %s", message.id, session_id)
