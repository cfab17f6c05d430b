from fastapi import APIRouter, Depends

from chatline.api.deps import get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.models.user import User
from chatline.schemas.chat import MessageEdit, MessageOut
from chatline.services.chat import ChatService

router = APIRouter()


@router.patch("/{message_id}", response_model=MessageOut)
async def edit_message(
    message_id: str,
    message_data: MessageEdit,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Edit one of your messages"""
    service = ChatService(store)
    return MessageOut.model_validate(await service.edit_message(message_id, current_user.id, message_data.content))


@router.delete("/{message_id}", response_model=MessageOut)
async def delete_message(
    message_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Delete one of your messages; it stays as a placeholder"""
    service = ChatService(store)
    return MessageOut.model_validate(await service.delete_message(message_id, current_user.id))


@router.post("/{message_id}/read", response_model=MessageOut)
async def mark_message_as_read(
    message_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    service = ChatService(store)
    return MessageOut.model_validate(await service.mark_message_as_read(message_id, current_user.id))
