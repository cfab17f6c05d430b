from datetime import datetime, timedelta
from typing import List, Optional, Tuple
import logging

from chatline.core.document_store import DocumentStore, Increment
from chatline.models.chat import Chat
from chatline.models.message import DELETED_MESSAGE_CONTENT, Message
from chatline.models.user import User
from chatline.repositories.chat import ChatRepository, MessageRepository
from chatline.repositories.friendship import FriendshipRepository
from chatline.repositories.user import UserRepository
from chatline.schemas.chat import ChatFilter
from chatline.utils.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError, gateway_call
)
from chatline.utils.ids import new_id, pair_id
from chatline.utils.time import to_millis, utcnow

logger = logging.getLogger(__name__)

RECENT_WINDOW = timedelta(days=3)
ACTIVE_WINDOW = timedelta(days=7)

ChatEntry = Tuple[Chat, Optional[User]]


def _clean_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    return text


def passes_filter(chat: Chat, user_id: str, chat_filter: ChatFilter, now: datetime) -> bool:
    if chat_filter == ChatFilter.UNREAD:
        return chat.unread_count_for(user_id) > 0
    if chat_filter == ChatFilter.RECENT:
        return chat.last_message_time is not None and chat.last_message_time > now - RECENT_WINDOW
    if chat_filter == ChatFilter.ACTIVE:
        return chat.last_message_time is not None and chat.last_message_time > now - ACTIVE_WINDOW
    return True


def matches_search(chat: Chat, other_user: Optional[User], query: str) -> bool:
    if other_user is None:
        return False
    return (
        query in other_user.display_name.lower()
        or query in other_user.email.lower()
        or query in (chat.last_message or "").lower()
    )


class ChatService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.chat_repo = ChatRepository(store)
        self.message_repo = MessageRepository(store)
        self.friendship_repo = FriendshipRepository(store)
        self.user_repo = UserRepository(store)

    @staticmethod
    def _new_chat(user1_id: str, user2_id: str, now: datetime) -> Chat:
        participants = sorted([user1_id, user2_id])
        return Chat(
            id=pair_id(user1_id, user2_id),
            participants=participants,
            unread_count={uid: 0 for uid in participants},
            deleted_by={uid: False for uid in participants},
            deleted_at={uid: None for uid in participants},
            last_seen_by={uid: now for uid in participants},
            created_at=now,
            updated_at=now
        )

    async def _get_participant_chat(self, chat_id: str, user_id: str) -> Chat:
        chat = await self.chat_repo.get_by_id(chat_id)
        if not chat:
            raise NotFoundError("Chat not found")
        if user_id not in chat.participants:
            raise AuthorizationError("You are not a participant of this chat")
        return chat

    @gateway_call("create chat")
    async def create_or_get_chat(self, user1_id: str, user2_id: str) -> Chat:
        """Return the pair's chat, creating it or restoring it for participants who deleted it"""
        if user1_id == user2_id:
            raise ValidationError("You cannot chat with yourself")

        chat = await self.chat_repo.get_by_id(pair_id(user1_id, user2_id))
        if chat is None:
            chat = await self.chat_repo.create(self._new_chat(user1_id, user2_id, utcnow()))
            logger.info(f"Created chat {chat.id}")
            return chat

        restored = [uid for uid in chat.participants if chat.is_deleted_by(uid)]
        if restored:
            await self.chat_repo.update(chat.id, {f"deletedBy.{uid}": False for uid in restored})
            chat = chat.copy_with(deleted_by={**chat.deleted_by, **{uid: False for uid in restored}})
        return chat

    @gateway_call("open chat")
    async def open_chat(self, user_id: str, other_user_id: str) -> Chat:
        """Chat with an existing friend, created on first use"""
        if user_id != other_user_id:
            if not await self.user_repo.get_by_id(other_user_id):
                raise NotFoundError("User not found")
            await self.can_message(user_id, other_user_id)
        return await self.create_or_get_chat(user_id, other_user_id)

    async def get_chat(self, user_id: str, other_user_id: str) -> Chat:
        return await self._get_participant_chat(pair_id(user_id, other_user_id), user_id)

    async def can_message(self, sender_id: str, receiver_id: str) -> None:
        """Refuse when the pair is unfriended or blocked"""
        friendship = await self.friendship_repo.get(sender_id, receiver_id)
        if not friendship:
            raise AuthorizationError("You can only send messages to your friends")
        if friendship.is_blocked:
            raise AuthorizationError("You cannot send messages in a blocked conversation")

    @gateway_call("send message")
    async def send_message(self, sender_id: str, receiver_id: str, content: str) -> Message:
        """Persist a message and refresh the chat summary in one transaction"""
        text = _clean_content(content)
        if sender_id == receiver_id:
            raise ValidationError("You cannot send a message to yourself")
        await self.can_message(sender_id, receiver_id)

        chat = await self.create_or_get_chat(sender_id, receiver_id)
        now = utcnow()
        now_ms = to_millis(now)
        message = Message(
            id=new_id(),
            sender_id=sender_id,
            receiver_id=receiver_id,
            content=text,
            timestamp=now
        )

        batch = self.store.batch()
        batch.set(MessageRepository.collection, message.id, message.to_map())
        batch.update(ChatRepository.collection, chat.id, {
            "lastMessage": text,
            "lastMessageTime": now_ms,
            "lastMessageSenderId": sender_id,
            "updatedAt": now_ms,
            f"lastSeenBy.{sender_id}": now_ms,
            f"unreadCount.{receiver_id}": Increment(1),
        })
        await batch.commit()

        logger.info(f"Message {message.id} sent in chat {chat.id}")
        return message

    async def _visible_messages(self, viewer_id: str, other_user_id: str) -> List[Message]:
        chat = await self.chat_repo.get_by_id(pair_id(viewer_id, other_user_id))
        messages = await self.message_repo.list_between(viewer_id, other_user_id)
        cutoff = chat.deleted_at_for(viewer_id) if chat else None
        if cutoff is not None:
            messages = [message for message in messages if message.timestamp >= cutoff]
        return messages

    async def get_messages(self, viewer_id: str, other_user_id: str) -> List[Message]:
        """Messages of the pair, oldest first, hiding what predates the viewer's chat deletion"""
        return await self._visible_messages(viewer_id, other_user_id)

    @gateway_call("mark messages as read")
    async def mark_chat_as_read(self, viewer_id: str, other_user_id: str) -> int:
        """Mark received messages read, reset the viewer's counter and stamp last seen"""
        unread = await self.message_repo.list_unread(other_user_id, viewer_id)
        chat = await self.chat_repo.get_by_id(pair_id(viewer_id, other_user_id))

        batch = self.store.batch()
        for message in unread:
            batch.update(MessageRepository.collection, message.id, {"isRead": True})
        if chat:
            batch.update(ChatRepository.collection, chat.id, {
                f"unreadCount.{viewer_id}": 0,
                f"lastSeenBy.{viewer_id}": to_millis(utcnow()),
            })
        await batch.commit()
        return len(unread)

    @gateway_call("mark message as read")
    async def mark_message_as_read(self, message_id: str, user_id: str) -> Message:
        message = await self.message_repo.get_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        if message.receiver_id != user_id:
            raise AuthorizationError("Only the receiver can mark a message as read")
        if not message.is_read:
            await self.message_repo.update(message_id, {"isRead": True})
        return message.copy_with(is_read=True)

    async def _get_own_message(self, message_id: str, user_id: str) -> Message:
        message = await self.message_repo.get_by_id(message_id)
        if not message:
            raise NotFoundError("Message not found")
        if message.sender_id != user_id:
            raise AuthorizationError("You can only change your own messages")
        return message

    @gateway_call("edit message")
    async def edit_message(self, message_id: str, user_id: str, content: str) -> Message:
        text = _clean_content(content)
        message = await self._get_own_message(message_id, user_id)
        if message.is_deleted:
            raise ConflictError("Deleted messages cannot be edited")

        now = utcnow()
        await self.message_repo.update(message_id, {
            "content": text,
            "isEdited": True,
            "editedAt": to_millis(now),
        })
        return message.copy_with(content=text, is_edited=True, edited_at=now)

    @gateway_call("delete message")
    async def delete_message(self, message_id: str, user_id: str) -> Message:
        """Soft delete: the message stays with placeholder content"""
        message = await self._get_own_message(message_id, user_id)
        if message.is_deleted:
            return message

        now = utcnow()
        await self.message_repo.update(message_id, {
            "isDeleted": True,
            "deletedAt": to_millis(now),
            "content": DELETED_MESSAGE_CONTENT,
        })
        return message.copy_with(is_deleted=True, deleted_at=now, content=DELETED_MESSAGE_CONTENT)

    async def delete_chat_for_user(self, user_id: str, other_user_id: str) -> None:
        """Hide the chat and its current history for ``user_id`` only"""
        chat = await self.get_chat(user_id, other_user_id)
        await self.chat_repo.update(chat.id, {
            f"deletedBy.{user_id}": True,
            f"deletedAt.{user_id}": to_millis(utcnow()),
        })
        logger.info(f"Chat {chat.id} deleted for {user_id}")

    async def restore_chat_for_user(self, user_id: str, other_user_id: str) -> None:
        """Show the chat again; the deletion timestamp keeps older messages hidden"""
        chat = await self.get_chat(user_id, other_user_id)
        await self.chat_repo.update(chat.id, {f"deletedBy.{user_id}": False})

    async def _chat_entries(
        self,
        user_id: str,
        chat_filter: ChatFilter = ChatFilter.ALL,
        query: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[ChatEntry]:
        now = now or utcnow()
        chats = await self.chat_repo.list_for_user(user_id)
        users = await self.user_repo.get_many([chat.other_participant(user_id) for chat in chats])

        entries = [
            (chat, users.get(chat.other_participant(user_id)))
            for chat in chats
            if passes_filter(chat, user_id, chat_filter, now)
        ]

        needle = (query or "").strip().lower()
        if needle:
            entries = [(chat, user) for chat, user in entries if matches_search(chat, user, needle)]
            entries.sort(key=lambda entry: (
                not (entry[1] is not None and entry[1].display_name.lower().startswith(needle)),
                -(to_millis(entry[0].last_message_time) if entry[0].last_message_time else 0),
            ))
        return entries

    async def get_chat_list(
        self,
        user_id: str,
        chat_filter: ChatFilter = ChatFilter.ALL,
        query: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[ChatEntry]:
        """Visible chats with the other participant's profile.

        Without a query the order is most recently updated first; with one,
        display-name prefix matches come first, then the most recent messages.
        """
        return await self._chat_entries(user_id, chat_filter, query, now)

    async def get_total_unread_count(self, user_id: str) -> int:
        chats = await self.chat_repo.list_for_user(user_id)
        return sum(chat.unread_count_for(user_id) for chat in chats)

    async def is_message_seen(self, user_id: str, other_user_id: str) -> bool:
        chat = await self.chat_repo.get_by_id(pair_id(user_id, other_user_id))
        return bool(chat and chat.is_message_seen(user_id, other_user_id))

    def watch_chats(self, user_id: str):
        return self.store.watch(
            lambda: self._chat_entries(user_id),
            [ChatRepository.collection, UserRepository.collection]
        )

    def watch_messages(self, viewer_id: str, other_user_id: str):
        return self.store.watch(
            lambda: self._visible_messages(viewer_id, other_user_id),
            [MessageRepository.collection, ChatRepository.collection]
        )
