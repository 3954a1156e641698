import logging
from typing import Optional

from bson import ObjectId

from models.user_models import UserProfile

logger = logging.getLogger(__name__)


class UserDirectory:
    """Read-only view over the `users` collection.

    Identity and registration live elsewhere; the core only needs names and
    flags for notification text and chat display, so lookup failures are
    logged and reported as a missing user.
    """

    def __init__(self, database):
        self.db = database

    async def find_by_id(self, user_id: Optional[str]) -> Optional[UserProfile]:
        if not user_id:
            return None
        query = {"_id": ObjectId(user_id)} if ObjectId.is_valid(user_id) else {"_id": user_id}
        try:
            user = await self.db.users.find_one(query)
            if not user:
                return None
            # Older user documents carry nulls where the profile expects values
            return UserProfile(
                id=str(user["_id"]),
                name=str(user.get("name") or "Unknown User"),
                communityUnit=str(user.get("communityUnit") or ""),
                email=user.get("email") or None,
                isActive=user.get("isActive") is not False,
                isApproved=bool(user.get("isApproved")),
                emailOptOut=bool(user.get("emailOptOut")),
            )
        except Exception:
            logger.warning("User lookup failed for %s", user_id, exc_info=True)
            return None

    async def display_name(self, user_id: Optional[str], fallback: str = "Someone") -> str:
        user = await self.find_by_id(user_id)
        return user.name if user else fallback
