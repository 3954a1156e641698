from pydantic import BaseModel
from typing import Optional
from enum import Enum

class BorrowRequestStatus(str, Enum):
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    PICKUP_CONFIRMED = "pickup_confirmed"
    RETURNED = "returned"
    GIVEAWAY_COMPLETED = "giveaway_completed"

class Book(BaseModel):
    id: str
    ownerId: str
    title: str = ""
    author: str = ""
    genre: str = ""
    language: str = ""
    borrowRequestStatus: BorrowRequestStatus = BorrowRequestStatus.NONE
    requestedByUserId: Optional[str] = None
    borrowedByUserId: Optional[str] = None
    requestedTimestamp: Optional[int] = None
    decisionTimestamp: Optional[int] = None
    pickupTimestamp: Optional[int] = None
    returnedTimestamp: Optional[int] = None
    isAvailable: bool = True
    isGiveaway: bool = False
    isPausedByOwner: bool = False
    isDeactivatedByAdmin: bool = False
