from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from chatline.models.base import (
    Record, Timestamp, read_map, read_optional_str, read_optional_time, read_str, read_str_list, read_time
)
from chatline.utils.time import from_millis, optional_millis, to_millis


class Chat(Record):
    """Denormalized summary of the conversation between two users"""

    id: str
    participants: List[str]
    last_message: Optional[str] = None
    last_message_time: Optional[Timestamp] = None
    last_message_sender_id: Optional[str] = None
    unread_count: Dict[str, int] = {}
    deleted_by: Dict[str, bool] = {}
    deleted_at: Dict[str, Optional[Timestamp]] = {}
    last_seen_by: Dict[str, Optional[Timestamp]] = {}
    created_at: Timestamp
    updated_at: Timestamp

    def other_participant(self, user_id: str) -> str:
        return next((uid for uid in self.participants if uid != user_id), "")

    def unread_count_for(self, user_id: str) -> int:
        return self.unread_count.get(user_id, 0)

    def is_deleted_by(self, user_id: str) -> bool:
        return self.deleted_by.get(user_id, False)

    def deleted_at_for(self, user_id: str) -> Optional[datetime]:
        return self.deleted_at.get(user_id)

    def last_seen_by_user(self, user_id: str) -> Optional[datetime]:
        return self.last_seen_by.get(user_id)

    def is_message_seen(self, current_user_id: str, other_user_id: str) -> bool:
        """Whether the last message, sent by ``current_user_id``, was seen by ``other_user_id``"""
        if self.last_message_sender_id != current_user_id:
            return False
        other_last_seen = self.last_seen_by_user(other_user_id)
        if other_last_seen is None or self.last_message_time is None:
            return False
        return other_last_seen >= self.last_message_time

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "participants": list(self.participants),
            "lastMessage": self.last_message,
            "lastMessageTime": optional_millis(self.last_message_time),
            "lastMessageSenderId": self.last_message_sender_id,
            "unreadCount": dict(self.unread_count),
            "deletedBy": dict(self.deleted_by),
            "deletedAt": {uid: optional_millis(value) for uid, value in self.deleted_at.items()},
            "lastSeenBy": {uid: optional_millis(value) for uid, value in self.last_seen_by.items()},
            "createdAt": to_millis(self.created_at),
            "updatedAt": to_millis(self.updated_at),
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "Chat":
        unread_count = {
            uid: int(value)
            for uid, value in read_map(data, "unreadCount").items()
            if isinstance(value, (int, float)) and not isinstance(value, bool)
        }
        deleted_by = {
            uid: value
            for uid, value in read_map(data, "deletedBy").items()
            if isinstance(value, bool)
        }
        return cls(
            id=read_str(data, "id"),
            participants=read_str_list(data, "participants"),
            last_message=read_optional_str(data, "lastMessage"),
            last_message_time=read_optional_time(data, "lastMessageTime"),
            last_message_sender_id=read_optional_str(data, "lastMessageSenderId"),
            unread_count=unread_count,
            deleted_by=deleted_by,
            deleted_at={uid: from_millis(value) for uid, value in read_map(data, "deletedAt").items()},
            last_seen_by={uid: from_millis(value) for uid, value in read_map(data, "lastSeenBy").items()},
            created_at=read_time(data, "createdAt"),
            updated_at=read_time(data, "updatedAt"),
        )
