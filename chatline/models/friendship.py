from enum import Enum
from typing import Any, Dict, Mapping, Optional

from chatline.models.base import (
    Record, Timestamp, read_bool, read_enum, read_optional_str, read_optional_time, read_str, read_time
)
from chatline.utils.time import optional_millis, to_millis


class FriendRequestStatus(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class FriendRequest(Record):
    id: str
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus = FriendRequestStatus.PENDING
    created_at: Timestamp
    responded_at: Optional[Timestamp] = None
    message: Optional[str] = None

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "status": self.status.value,
            "createdAt": to_millis(self.created_at),
            "respondedAt": optional_millis(self.responded_at),
            "message": self.message,
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "FriendRequest":
        return cls(
            id=read_str(data, "id"),
            sender_id=read_str(data, "senderId"),
            receiver_id=read_str(data, "receiverId"),
            status=read_enum(data, "status", FriendRequestStatus, FriendRequestStatus.PENDING),
            created_at=read_time(data, "createdAt"),
            responded_at=read_optional_time(data, "respondedAt"),
            message=read_optional_str(data, "message"),
        )


class Friendship(Record):
    id: str
    user1_id: str
    user2_id: str
    created_at: Timestamp
    is_blocked: bool = False
    blocked_by: Optional[str] = None

    def other_user_id(self, user_id: str) -> str:
        return self.user2_id if self.user1_id == user_id else self.user1_id

    def is_blocked_by(self, user_id: str) -> bool:
        return self.is_blocked and self.blocked_by == user_id

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user1Id": self.user1_id,
            "user2Id": self.user2_id,
            "createdAt": to_millis(self.created_at),
            "isBlocked": self.is_blocked,
            "blockedBy": self.blocked_by,
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "Friendship":
        return cls(
            id=read_str(data, "id"),
            user1_id=read_str(data, "user1Id"),
            user2_id=read_str(data, "user2Id"),
            created_at=read_time(data, "createdAt"),
            is_blocked=read_bool(data, "isBlocked"),
            blocked_by=read_optional_str(data, "blockedBy"),
        )
