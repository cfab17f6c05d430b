from typing import Any, Dict, Mapping

from chatline.models.base import Record, Timestamp, read_bool, read_str, read_time
from chatline.utils.time import to_millis


class User(Record):
    id: str
    email: str
    display_name: str
    photo_url: str = ""
    is_online: bool = False
    last_seen: Timestamp
    created_at: Timestamp

    def to_map(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "email": self.email,
            "displayName": self.display_name,
            "photoURL": self.photo_url,
            "isOnline": self.is_online,
            "lastSeen": to_millis(self.last_seen),
            "createdAt": to_millis(self.created_at),
        }

    @classmethod
    def from_map(cls, data: Mapping[str, Any]) -> "User":
        return cls(
            id=read_str(data, "id"),
            email=read_str(data, "email"),
            display_name=read_str(data, "displayName"),
            photo_url=read_str(data, "photoURL"),
            is_online=read_bool(data, "isOnline"),
            last_seen=read_time(data, "lastSeen"),
            created_at=read_time(data, "createdAt"),
        )
