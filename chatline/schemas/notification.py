from pydantic import BaseModel, ConfigDict
from datetime import datetime
from typing import Any, Dict, List

from chatline.models.notification import NotificationType


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    user_id: str
    title: str
    body: str
    type: NotificationType
    data: Dict[str, Any] = {}
    is_read: bool
    created_at: datetime


class NotificationList(BaseModel):
    notifications: List[NotificationOut]
    unread_count: int


class UnreadCount(BaseModel):
    unread_count: int
