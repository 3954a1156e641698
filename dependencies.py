from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from dataBase import db
from services import (
    ChatService,
    EmailSender,
    KpiCounters,
    NotificationEmitter,
    TransactionService,
    UserDirectory,
    hub,
)
from utils import verify_token

bearer_scheme = HTTPBearer(auto_error=False)
email_sender = EmailSender()


def get_db():
    return db


def get_hub():
    return hub


def get_email_sender():
    return email_sender


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    """The authenticated principal, passed explicitly to every operation."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authorized, no token")
    user_id = verify_token(credentials.credentials)
    if not user_id:
        raise HTTPException(status_code=401, detail="Not authorized, token failed")
    return user_id


def get_transaction_service(database=Depends(get_db), sender=Depends(get_email_sender)) -> TransactionService:
    return TransactionService(
        database,
        notifier=NotificationEmitter(database),
        counters=KpiCounters(database),
        users=UserDirectory(database),
        email_sender=sender,
    )


def get_chat_service(database=Depends(get_db), broadcast_hub=Depends(get_hub)) -> ChatService:
    return ChatService(database, broadcast_hub, UserDirectory(database))


def get_notification_emitter(database=Depends(get_db)) -> NotificationEmitter:
    return NotificationEmitter(database)


def get_kpi_counters(database=Depends(get_db)) -> KpiCounters:
    return KpiCounters(database)
