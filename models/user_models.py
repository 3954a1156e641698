from pydantic import BaseModel
from typing import Optional


class UserProfile(BaseModel):
    id: str
    name: str = "Unknown User"
    communityUnit: str = ""
    email: Optional[str] = None
    isActive: bool = True
    isApproved: bool = False
    emailOptOut: bool = False
