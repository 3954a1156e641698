import asyncio
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any, Dict, List, Optional

from config import Settings, settings as default_settings
from models.notification_models import Notification, NotificationEvent
from models.user_models import UserProfile
from utils import now_ms, serialize_doc, to_object_id

logger = logging.getLogger(__name__)


class NotificationEmitter:
    """Stores in-app notifications in the `notifications` collection."""

    def __init__(self, database):
        self.db = database

    async def create(self, event: NotificationEvent) -> str:
        notification_dict = event.dict()
        notification_dict["type"] = event.type.value
        notification_dict["timestamp"] = now_ms()
        notification_dict["isRead"] = False
        result = await self.db.notifications.insert_one(notification_dict)
        return str(result.inserted_id)

    async def list_for_user(
        self,
        user_id: str,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        query: Dict[str, Any] = {"userId": user_id}
        if unread_only:
            query["isRead"] = False

        notifications = []
        cursor = self.db.notifications.find(query).sort("timestamp", -1).skip(skip).limit(limit)
        async for notif in cursor:
            notifications.append(Notification(**serialize_doc(notif)))
        return notifications

    async def mark_read(self, notification_id: str, user_id: str) -> bool:
        result = await self.db.notifications.update_one(
            {"_id": to_object_id(notification_id, "notification ID"), "userId": user_id},
            {"$set": {"isRead": True}},
        )
        return result.matched_count > 0

    async def mark_all_read(self, user_id: str) -> int:
        result = await self.db.notifications.update_many(
            {"userId": user_id, "isRead": False},
            {"$set": {"isRead": True}},
        )
        return result.modified_count


# kind -> (subject, body). Bodies are formatted with the recipient's name
# plus whatever the caller puts in the payload.
EMAIL_TEMPLATES: Dict[str, tuple] = {
    "book_request": (
        "[BookVerse] Request for your book: {book_title}",
        "Hi {name},\n\n{actor_name} ({actor_unit}) has requested to borrow your book, "
        "\"{book_title}\".\nPlease log in to your BookVerse account to approve or reject "
        "this request.\n\nThanks,\nThe BookVerse Team",
    ),
    "request_approved": (
        "[BookVerse] Your request for \"{book_title}\" was approved!",
        "Hi {name},\n\nGreat news! {actor_name} has approved your request to borrow "
        "\"{book_title}\".\nPlease coordinate with them to arrange a pickup time.\n\n"
        "Thanks,\nThe BookVerse Team",
    ),
    "request_rejected": (
        "[BookVerse] Update on your request for \"{book_title}\"",
        "Hi {name},\n\nThis is an update on your request for \"{book_title}\". "
        "Unfortunately, {actor_name} has rejected the request at this time. The book may "
        "become available again later.\n\nThanks,\nThe BookVerse Team",
    ),
    "book_returned": (
        "[BookVerse] \"{book_title}\" has been returned",
        "Hi {name},\n\nThis is a confirmation that {actor_name} has marked \"{book_title}\" "
        "as returned. Thank you for participating in our community!\n\nHappy reading,\n"
        "The BookVerse Team",
    ),
}


class EmailSender:
    """Best-effort plain-text email over SMTP.

    Without SMTP settings the message is logged instead of sent. Delivery
    errors are logged and never reach the caller.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or default_settings

    def render(self, kind: str, user: UserProfile, payload: Dict[str, Any]) -> EmailMessage:
        subject_template, body_template = EMAIL_TEMPLATES[kind]
        values = {"name": user.name, **payload}
        message = EmailMessage()
        message["From"] = self.config.smtp_from_email
        message["To"] = user.email
        message["Subject"] = subject_template.format(**values)
        message.set_content(body_template.format(**values))
        return message

    async def send(self, kind: str, user: Optional[UserProfile], payload: Dict[str, Any]) -> bool:
        if user is None or not user.email or user.emailOptOut:
            return False
        try:
            message = self.render(kind, user, payload)
        except (KeyError, IndexError):
            logger.error("Cannot render email %r for user %s", kind, user.id, exc_info=True)
            return False

        if not self.config.smtp_configured:
            logger.info(
                "Simulating email (SMTP not configured) to=%s subject=%r",
                user.email,
                message["Subject"],
            )
            return False

        try:
            await asyncio.to_thread(self._deliver, message)
        except (smtplib.SMTPException, OSError):
            logger.error("Error sending email %r to %s", kind, user.email, exc_info=True)
            return False
        logger.info("Email sent to %s with subject %r", user.email, message["Subject"])
        return True

    def _deliver(self, message: EmailMessage) -> None:
        context = ssl.create_default_context()
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=30) as server:
            server.ehlo()
            server.starttls(context=context)
            if self.config.smtp_username and self.config.smtp_password:
                server.login(self.config.smtp_username, self.config.smtp_password)
            server.send_message(message)
