from fastapi import APIRouter, Depends, HTTPException, Query
from typing import List

from dependencies import get_current_user_id, get_notification_emitter
from errors import BookVerseError
from models.notification_models import Notification
from services.notification_service import NotificationEmitter

router = APIRouter(prefix="/api/notifications", tags=["notifications"])

@router.get("", response_model=List[Notification])
async def get_my_notifications(
    unread_only: bool = False,
    skip: int = Query(0, ge=0),
    limit: int = Query(20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationEmitter = Depends(get_notification_emitter),
):
    try:
        return await notifier.list_for_user(user_id, unread_only=unread_only, skip=skip, limit=limit)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

@router.put("/read-all")
async def mark_all_notifications_read(
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationEmitter = Depends(get_notification_emitter),
):
    try:
        updated = await notifier.mark_all_read(user_id)
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))
    return {"message": "All notifications marked as read", "updated": updated}

@router.put("/{notification_id}/read")
async def mark_notification_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    notifier: NotificationEmitter = Depends(get_notification_emitter),
):
    try:
        found = await notifier.mark_read(notification_id, user_id)
    except BookVerseError:
        raise
    except Exception as e:
        raise HTTPException(status_code=500, detail=str(e))

    if not found:
        raise HTTPException(status_code=404, detail="Notification not found")
    return {"message": "Notification marked as read"}
