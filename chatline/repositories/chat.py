from typing import Any, Dict, List, Optional

from chatline.core.document_store import DocumentStore
from chatline.models.chat import Chat
from chatline.models.message import Message
from chatline.utils.exceptions import gateway_call


class ChatRepository:
    collection = "chats"

    def __init__(self, store: DocumentStore):
        self.store = store

    @gateway_call("create chat")
    async def create(self, chat: Chat) -> Chat:
        await self.store.set(self.collection, chat.id, chat.to_map())
        return chat

    @gateway_call("get chat")
    async def get_by_id(self, chat_id: str) -> Optional[Chat]:
        data = await self.store.get(self.collection, chat_id)
        return Chat.from_map(data) if data is not None else None

    @gateway_call("update chat")
    async def update(self, chat_id: str, fields: Dict[str, Any]) -> None:
        await self.store.update(self.collection, chat_id, fields)

    @gateway_call("get chats")
    async def list_for_user(self, user_id: str) -> List[Chat]:
        """Chats of a user, most recently updated first, hiding the ones the user deleted"""
        rows = await (
            self.store.query(self.collection)
            .where("participants", "array-contains", user_id)
            .order_by("updatedAt", descending=True)
            .get()
        )
        chats = [Chat.from_map(row) for row in rows]
        return [chat for chat in chats if not chat.is_deleted_by(user_id)]


class MessageRepository:
    collection = "messages"

    def __init__(self, store: DocumentStore):
        self.store = store

    @gateway_call("get message")
    async def get_by_id(self, message_id: str) -> Optional[Message]:
        data = await self.store.get(self.collection, message_id)
        return Message.from_map(data) if data is not None else None

    @gateway_call("update message")
    async def update(self, message_id: str, fields: Dict[str, Any]) -> None:
        await self.store.update(self.collection, message_id, fields)

    @gateway_call("get messages")
    async def list_between(self, user1_id: str, user2_id: str) -> List[Message]:
        """Every message exchanged by the pair, oldest first"""
        messages: List[Message] = []
        for sender_id, receiver_id in ((user1_id, user2_id), (user2_id, user1_id)):
            rows = await (
                self.store.query(self.collection)
                .where("senderId", "==", sender_id)
                .where("receiverId", "==", receiver_id)
                .get()
            )
            messages.extend(Message.from_map(row) for row in rows)
        messages.sort(key=lambda message: message.timestamp)
        return messages

    @gateway_call("get unread messages")
    async def list_unread(self, sender_id: str, receiver_id: str) -> List[Message]:
        rows = await (
            self.store.query(self.collection)
            .where("senderId", "==", sender_id)
            .where("receiverId", "==", receiver_id)
            .where("isRead", "==", False)
            .get()
        )
        return [Message.from_map(row) for row in rows]
