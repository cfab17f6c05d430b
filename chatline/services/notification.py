from typing import Any, Dict, List, Optional
import logging

from chatline.core.document_store import DocumentStore, WriteBatch
from chatline.models.notification import Notification, NotificationType
from chatline.repositories.notification import NotificationRepository
from chatline.utils.exceptions import AuthorizationError, NotFoundError
from chatline.utils.ids import new_id
from chatline.utils.time import utcnow

logger = logging.getLogger(__name__)


class NotificationService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.notification_repo = NotificationRepository(store)

    @staticmethod
    def build(
        user_id: str,
        title: str,
        body: str,
        notification_type: NotificationType,
        data: Optional[Dict[str, Any]] = None,
        notification_id: Optional[str] = None
    ) -> Notification:
        return Notification(
            id=notification_id or new_id(),
            user_id=user_id,
            title=title,
            body=body,
            type=notification_type,
            data=data or {},
            created_at=utcnow()
        )

    async def create_notification(self, notification: Notification) -> Notification:
        return await self.notification_repo.create(notification)

    async def get_notifications(self, user_id: str) -> List[Notification]:
        """Notifications of a user, newest first"""
        return await self.notification_repo.list_for_user(user_id)

    async def get_unread_count(self, user_id: str) -> int:
        return len(await self.notification_repo.list_unread(user_id))

    async def _get_owned(self, notification_id: str, user_id: str) -> Notification:
        notification = await self.notification_repo.get_by_id(notification_id)
        if not notification:
            raise NotFoundError("Notification not found")
        if notification.user_id != user_id:
            raise AuthorizationError("You can only manage your own notifications")
        return notification

    async def mark_as_read(self, notification_id: str, user_id: str) -> Notification:
        notification = await self._get_owned(notification_id, user_id)
        if not notification.is_read:
            await self.notification_repo.update(notification_id, {"isRead": True})
        return notification.copy_with(is_read=True)

    async def mark_all_as_read(self, user_id: str) -> int:
        """Mark every unread notification of the user as read in one batch"""
        unread = await self.notification_repo.list_unread(user_id)
        batch = self.store.batch()
        for notification in unread:
            batch.update(NotificationRepository.collection, notification.id, {"isRead": True})
        await batch.commit()
        return len(unread)

    async def delete_notification(self, notification_id: str, user_id: str) -> bool:
        await self._get_owned(notification_id, user_id)
        return await self.notification_repo.delete(notification_id)

    async def stage_delete_by_type_and_user(
        self,
        batch: WriteBatch,
        user_id: str,
        notification_type: NotificationType,
        related_user_id: str
    ) -> int:
        """Add deletions of ``user_id``'s notifications of a type that reference ``related_user_id``"""
        notifications = await self.notification_repo.list_by_type(user_id, notification_type)
        staged = 0
        for notification in notifications:
            if related_user_id in (notification.data.get("senderId"), notification.data.get("userId")):
                batch.delete(NotificationRepository.collection, notification.id)
                staged += 1
        return staged

    async def delete_by_type_and_user(
        self,
        user_id: str,
        notification_type: NotificationType,
        related_user_id: str
    ) -> int:
        """Best-effort cleanup: failures are logged, never raised"""
        try:
            batch = self.store.batch()
            staged = await self.stage_delete_by_type_and_user(batch, user_id, notification_type, related_user_id)
            await batch.commit()
            return staged
        except Exception as e:
            logger.error(f"Error deleting {notification_type.value} notifications for {user_id}: {e}")
            return 0

    def watch_notifications(self, user_id: str):
        return self.notification_repo.watch_for_user(user_id)
