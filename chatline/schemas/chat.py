from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from chatline.models.message import MessageType
from chatline.schemas.user import UserOut


class ChatFilter(str, Enum):
    ALL = "all"
    UNREAD = "unread"
    RECENT = "recent"
    ACTIVE = "active"


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=4000)


class MessageEdit(BaseModel):
    content: str = Field(..., max_length=4000)


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    sender_id: str
    receiver_id: str
    content: str
    type: MessageType
    timestamp: datetime
    is_read: bool
    is_edited: bool
    edited_at: Optional[datetime] = None
    is_deleted: bool
    deleted_at: Optional[datetime] = None


class ChatOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    participants: List[str]
    last_message: Optional[str] = None
    last_message_time: Optional[datetime] = None
    last_message_sender_id: Optional[str] = None
    unread_count: Dict[str, int] = {}
    deleted_by: Dict[str, bool] = {}
    deleted_at: Dict[str, Optional[datetime]] = {}
    last_seen_by: Dict[str, Optional[datetime]] = {}
    created_at: datetime
    updated_at: datetime


class ChatListItem(BaseModel):
    chat: ChatOut
    other_user: Optional[UserOut] = None
    unread_count: int
    is_last_message_seen: bool
    last_message_time_text: str


class ChatList(BaseModel):
    chats: List[ChatListItem]
    total_unread: int


class SeenStatus(BaseModel):
    chat_id: str
    is_seen: bool


class SubscribeFrame(BaseModel):
    """Client frame on the live WebSocket"""
    type: str
    id: Optional[str] = None
    stream: Optional[str] = None
    params: Dict[str, Any] = {}
