from pydantic import BaseModel
from typing import Dict, List, Optional

class ChatParticipant(BaseModel):
    id: str
    name: str
    communityUnit: str = ""

class ChatSession(BaseModel):
    id: str
    participantIds: List[str]
    lastMessageTimestamp: int
    lastMessageText: Optional[str] = None
    unreadCounts: Dict[str, int] = {}
    participants: Optional[List[ChatParticipant]] = None

class ChatMessage(BaseModel):
    id: str
    sessionId: str
    senderId: str
    receiverId: str
    messageText: str
    timestamp: int

class InitiateChatRequest(BaseModel):
    otherUserId: Optional[str] = None

class SendMessageRequest(BaseModel):
    messageText: str = ""
