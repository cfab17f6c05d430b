from enum import Enum
from typing import Any, Dict, Mapping

from chatline.models.base import Record, Timestamp, read_bool, read_enum, read_map, read_str, read_time
from chatline.utils.time import to_millis


class NotificationType(str, Enum):
    FRIEND_REQUEST = "friendRequest"
    FRIEND_REQUEST_ACCEPTED = "friendRequestAccepted"
    FRIEND_REQUEST_DECLINED = "friendRequestDeclined"
    NEW_MESSAGE = "newMessage"
    FRIEND_REMOVED = "friendRemoved"


class Notification(Record):
    id: str
    user_id: str
    title: str
    body: str
    type: NotificationType
    data: Dict[str, Any] = {}
    is_read: bool = False
    created_at: Timestamp

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "userId": self.user_id,
            "title": self.title,
            "body": self.body,
            "type": self.type.value,
            "data": dict(self.data),
            "isRead": self.is_read,
            "createdAt": to_millis(self.created_at),
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "Notification":
        return cls(
            id=read_str(data, "id"),
            user_id=read_str(data, "userId"),
            title=read_str(data, "title"),
            body=read_str(data, "body"),
            type=read_enum(data, "type", NotificationType, NotificationType.NEW_MESSAGE),
            data=read_map(data, "data"),
            is_read=read_bool(data, "isRead"),
            created_at=read_time(data, "createdAt"),
        )
