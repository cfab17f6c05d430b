from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from chatline.api.deps import get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.models.chat import Chat
from chatline.models.user import User
from chatline.schemas.chat import (
    ChatFilter, ChatList, ChatListItem, ChatOut, MessageCreate, MessageOut, SeenStatus
)
from chatline.schemas.notification import UnreadCount
from chatline.schemas.user import UserOut
from chatline.services.chat import ChatService
from chatline.utils.ids import pair_id
from chatline.utils.time import format_message_time

router = APIRouter()


def chat_list_item(chat: Chat, other_user: Optional[User], user_id: str) -> ChatListItem:
    return ChatListItem(
        chat=ChatOut.model_validate(chat),
        other_user=UserOut.model_validate(other_user) if other_user else None,
        unread_count=chat.unread_count_for(user_id),
        is_last_message_seen=chat.is_message_seen(user_id, chat.other_participant(user_id)),
        last_message_time_text=format_message_time(chat.last_message_time)
    )


@router.get("/", response_model=ChatList)
async def list_chats(
    filter: ChatFilter = Query(ChatFilter.ALL, description="all, unread, recent or active"),
    q: Optional[str] = Query(None, description="Search by name, email or last message"),
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Get the current user's chats"""
    service = ChatService(store)
    entries = await service.get_chat_list(current_user.id, filter, q)
    total_unread = await service.get_total_unread_count(current_user.id)
    return ChatList(
        chats=[chat_list_item(chat, other, current_user.id) for chat, other in entries],
        total_unread=total_unread
    )


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Total unread messages across visible chats"""
    service = ChatService(store)
    return UnreadCount(unread_count=await service.get_total_unread_count(current_user.id))


@router.post("/{other_user_id}", response_model=ChatOut)
async def open_chat(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Create the chat with a friend or return the existing one"""
    service = ChatService(store)
    return ChatOut.model_validate(await service.open_chat(current_user.id, other_user_id))


@router.delete("/{other_user_id}")
async def delete_chat(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Delete the chat for the current user only"""
    service = ChatService(store)
    await service.delete_chat_for_user(current_user.id, other_user_id)
    return {"message": "Chat deleted"}


@router.post("/{other_user_id}/restore")
async def restore_chat(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Show a deleted chat again"""
    service = ChatService(store)
    await service.restore_chat_for_user(current_user.id, other_user_id)
    return {"message": "Chat restored"}


@router.get("/{other_user_id}/messages", response_model=List[MessageOut])
async def get_messages(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Messages with another user, oldest first"""
    service = ChatService(store)
    messages = await service.get_messages(current_user.id, other_user_id)
    return [MessageOut.model_validate(message) for message in messages]


@router.post("/{other_user_id}/messages", response_model=MessageOut, status_code=status.HTTP_201_CREATED)
async def send_message(
    other_user_id: str,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Send a text message to a friend"""
    service = ChatService(store)
    message = await service.send_message(current_user.id, other_user_id, message_data.content)
    return MessageOut.model_validate(message)


@router.post("/{other_user_id}/read")
async def mark_chat_as_read(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Mark received messages as read and reset the unread counter"""
    service = ChatService(store)
    marked = await service.mark_chat_as_read(current_user.id, other_user_id)
    return {"marked": marked}


@router.get("/{other_user_id}/seen", response_model=SeenStatus)
async def get_seen_status(
    other_user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Whether the other user has seen the current user's last message"""
    service = ChatService(store)
    is_seen = await service.is_message_seen(current_user.id, other_user_id)
    return SeenStatus(chat_id=pair_id(current_user.id, other_user_id), is_seen=is_seen)
