from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
from typing import List


class RelationshipStatus(str, Enum):
    NONE = "none"
    FRIEND_REQUEST_SENT = "friendRequestSent"
    FRIEND_REQUEST_RECEIVED = "friendRequestReceived"
    FRIENDS = "friends"
    BLOCKED = "blocked"


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    email: str
    display_name: str
    photo_url: str = ""
    is_online: bool = False
    last_seen: datetime
    created_at: datetime


class UserUpdate(BaseModel):
    display_name: str = Field(..., max_length=100)


class DirectoryEntry(BaseModel):
    user: UserOut
    relationship: RelationshipStatus
    last_seen_text: str


class DirectoryList(BaseModel):
    users: List[DirectoryEntry]
    total_count: int
