from typing import Any, Dict, List, Optional

from chatline.core.document_store import DocumentStore
from chatline.models.notification import Notification, NotificationType
from chatline.utils.exceptions import gateway_call


class NotificationRepository:
    collection = "notifications"

    def __init__(self, store: DocumentStore):
        self.store = store

    @gateway_call("create notification")
    async def create(self, notification: Notification) -> Notification:
        await self.store.set(self.collection, notification.id, notification.to_map())
        return notification

    @gateway_call("get notification")
    async def get_by_id(self, notification_id: str) -> Optional[Notification]:
        data = await self.store.get(self.collection, notification_id)
        return Notification.from_map(data) if data is not None else None

    async def _for_user(self, user_id: str) -> List[Notification]:
        rows = await (
            self.store.query(self.collection)
            .where("userId", "==", user_id)
            .order_by("createdAt", descending=True)
            .get()
        )
        return [Notification.from_map(row) for row in rows]

    @gateway_call("get notifications")
    async def list_for_user(self, user_id: str) -> List[Notification]:
        return await self._for_user(user_id)

    @gateway_call("get notifications")
    async def list_unread(self, user_id: str) -> List[Notification]:
        rows = await (
            self.store.query(self.collection)
            .where("userId", "==", user_id)
            .where("isRead", "==", False)
            .get()
        )
        return [Notification.from_map(row) for row in rows]

    @gateway_call("get notifications")
    async def list_by_type(self, user_id: str, notification_type: NotificationType) -> List[Notification]:
        rows = await (
            self.store.query(self.collection)
            .where("userId", "==", user_id)
            .where("type", "==", notification_type.value)
            .get()
        )
        return [Notification.from_map(row) for row in rows]

    @gateway_call("update notification")
    async def update(self, notification_id: str, fields: Dict[str, Any]) -> None:
        await self.store.update(self.collection, notification_id, fields)

    @gateway_call("delete notification")
    async def delete(self, notification_id: str) -> bool:
        return await self.store.delete(self.collection, notification_id)

    def watch_for_user(self, user_id: str):
        return self.store.watch(lambda: self._for_user(user_id), [self.collection])
