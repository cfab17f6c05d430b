from fastapi import APIRouter, Depends

from chatline.api.deps import get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.models.user import User
from chatline.schemas.notification import NotificationList, NotificationOut, UnreadCount
from chatline.services.notification import NotificationService

router = APIRouter()


@router.get("/", response_model=NotificationList)
async def list_notifications(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Get the current user's notifications, newest first"""
    service = NotificationService(store)
    notifications = await service.get_notifications(current_user.id)
    return NotificationList(
        notifications=[NotificationOut.model_validate(n) for n in notifications],
        unread_count=sum(1 for n in notifications if not n.is_read)
    )


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    service = NotificationService(store)
    return UnreadCount(unread_count=await service.get_unread_count(current_user.id))


@router.post("/read-all")
async def mark_all_as_read(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Mark every unread notification as read"""
    service = NotificationService(store)
    return {"marked": await service.mark_all_as_read(current_user.id)}


@router.post("/{notification_id}/read", response_model=NotificationOut)
async def mark_as_read(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    service = NotificationService(store)
    return NotificationOut.model_validate(await service.mark_as_read(notification_id, current_user.id))


@router.delete("/{notification_id}")
async def delete_notification(
    notification_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    service = NotificationService(store)
    await service.delete_notification(notification_id, current_user.id)
    return {"message": "Notification deleted"}
