from chatline.models.document import Document
from chatline.models.user import User
from chatline.models.message import Message, MessageType, DELETED_MESSAGE_CONTENT
from chatline.models.chat import Chat
from chatline.models.friendship import FriendRequest, FriendRequestStatus, Friendship
from chatline.models.notification import Notification, NotificationType

__all__ = [
    "Document", "User", "Message", "MessageType", "DELETED_MESSAGE_CONTENT", "Chat",
    "FriendRequest", "FriendRequestStatus", "Friendship", "Notification", "NotificationType"
]
