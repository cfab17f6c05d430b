from enum import Enum
from typing import Any, Dict, Mapping, Optional

from chatline.models.base import (
    Record, Timestamp, read_bool, read_enum, read_optional_time, read_str, read_time
)
from chatline.utils.time import optional_millis, to_millis

DELETED_MESSAGE_CONTENT = "This message was deleted"


class MessageType(str, Enum):
    TEXT = "text"


class Message(Record):
    id: str
    sender_id: str
    receiver_id: str
    content: str
    type: MessageType = MessageType.TEXT
    timestamp: Timestamp
    is_read: bool = False
    is_edited: bool = False
    edited_at: Optional[Timestamp] = None
    is_deleted: bool = False
    deleted_at: Optional[Timestamp] = None

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "content": self.content,
            "type": self.type.value,
            "timestamp": to_millis(self.timestamp),
            "isRead": self.is_read,
            "isEdited": self.is_edited,
            "editedAt": optional_millis(self.edited_at),
            "isDeleted": self.is_deleted,
            "deletedAt": optional_millis(self.deleted_at),
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "Message":
        return cls(
            id=read_str(data, "id"),
            sender_id=read_str(data, "senderId"),
            receiver_id=read_str(data, "receiverId"),
            content=read_str(data, "content"),
            type=read_enum(data, "type", MessageType, MessageType.TEXT),
            timestamp=read_time(data, "timestamp"),
            is_read=read_bool(data, "isRead"),
            is_edited=read_bool(data, "isEdited"),
            edited_at=read_optional_time(data, "editedAt"),
            is_deleted=read_bool(data, "isDeleted"),
            deleted_at=read_optional_time(data, "deletedAt"),
        )
