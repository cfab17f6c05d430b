from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from chatline.models.friendship import FriendRequestStatus
from chatline.schemas.user import UserOut


class FriendRequestCreate(BaseModel):
    receiver_id: str
    message: Optional[str] = Field(None, max_length=500)


class FriendRequestAction(str, Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class FriendRequestRespond(BaseModel):
    action: FriendRequestAction


class FriendRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    receiver_id: str
    status: FriendRequestStatus
    created_at: datetime
    responded_at: Optional[datetime] = None
    message: Optional[str] = None


class FriendRequestDetail(BaseModel):
    request: FriendRequestOut
    user: Optional[UserOut] = None
    time_text: str


class FriendshipOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user1_id: str
    user2_id: str
    created_at: datetime
    is_blocked: bool = False
    blocked_by: Optional[str] = None


class FriendOut(BaseModel):
    friendship: FriendshipOut
    user: UserOut
    last_seen_text: str


class FriendsList(BaseModel):
    friends: List[FriendOut]
    total_count: int
