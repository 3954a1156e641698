from pydantic import BaseModel
from typing import Optional
from enum import Enum

class NotificationType(str, Enum):
    BORROW_REQUEST_RECEIVED = "borrow_request_received"
    BORROW_REQUEST_APPROVED = "borrow_request_approved"
    BORROW_REQUEST_REJECTED = "borrow_request_rejected"
    BORROW_REQUEST_CANCELLED = "borrow_request_cancelled"
    APPROVAL_REVOKED = "approval_revoked_by_owner_to_requester"
    BOOK_PICKED_UP = "book_picked_up"
    GIVEAWAY_COMPLETED = "giveaway_completed"
    BOOK_MARKED_RETURNED = "book_marked_returned"

class NotificationEvent(BaseModel):
    userId: str
    type: NotificationType
    message: str
    bookId: Optional[str] = None
    relatedUserId: Optional[str] = None

class Notification(NotificationEvent):
    id: str
    timestamp: int
    isRead: bool = False
