import logging
from typing import Any, AsyncIterator, Callable, Dict, Tuple
from fastapi import Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import ValidationError as PydanticValidationError

from chatline.api.v1.endpoints.chats import chat_list_item
from chatline.core.document_store import DocumentStore, get_store
from chatline.core.identity import IdentityClient, get_identity
from chatline.core.websocket import LiveSession, connection_manager
from chatline.models.user import User
from chatline.schemas.chat import MessageOut, SubscribeFrame
from chatline.schemas.friendship import FriendRequestOut, FriendshipOut
from chatline.schemas.notification import NotificationOut
from chatline.schemas.user import UserOut
from chatline.services.auth import AuthService
from chatline.services.chat import ChatService
from chatline.services.friendship import FriendshipService
from chatline.services.notification import NotificationService
from chatline.services.user import UserService
from chatline.utils.exceptions import ChatlineException, ValidationError

logger = logging.getLogger(__name__)

Stream = Tuple[AsyncIterator, Callable[[Any], Any]]


def _dump(schema, value) -> Dict[str, Any]:
    return schema.model_validate(value).model_dump(mode="json")


def open_stream(name: str, params: Dict[str, Any], user: User, store: DocumentStore) -> Stream:
    """Resolve a stream name to a live view and the renderer of its snapshots"""
    if name == "user":
        user_id = params.get("user_id") or user.id
        return (
            UserService(store).watch_user(user_id),
            lambda value: _dump(UserOut, value) if value else None
        )
    if name == "users":
        return (
            UserService(store).watch_users(),
            lambda users: [_dump(UserOut, u) for u in users if u.id != user.id]
        )
    if name == "chats":
        return (
            ChatService(store).watch_chats(user.id),
            lambda entries: [
                chat_list_item(chat, other, user.id).model_dump(mode="json") for chat, other in entries
            ]
        )
    if name == "messages":
        other_user_id = params.get("other_user_id")
        if not other_user_id:
            raise ValidationError("The messages stream needs other_user_id")
        return (
            ChatService(store).watch_messages(user.id, other_user_id),
            lambda messages: [_dump(MessageOut, m) for m in messages]
        )
    if name == "notifications":
        return (
            NotificationService(store).watch_notifications(user.id),
            lambda notifications: [_dump(NotificationOut, n) for n in notifications]
        )
    if name == "friend_requests":
        return (
            FriendshipService(store).watch_received_requests(user.id),
            lambda requests: [_dump(FriendRequestOut, r) for r in requests]
        )
    if name == "sent_friend_requests":
        return (
            FriendshipService(store).watch_sent_requests(user.id),
            lambda requests: [_dump(FriendRequestOut, r) for r in requests]
        )
    if name == "friends":
        return (
            FriendshipService(store).watch_friends(user.id),
            lambda friendships: [_dump(FriendshipOut, f) for f in friendships]
        )
    raise ValidationError(f"Unknown stream: {name}")


async def handle_frame(frame: SubscribeFrame, session: LiveSession, user: User, store: DocumentStore):
    if frame.type == "ping":
        await session.send_json({"type": "pong"})
    elif frame.type == "subscribe":
        subscription_id = frame.id or frame.stream
        try:
            stream, render = open_stream(frame.stream or "", frame.params, user, store)
        except ChatlineException as e:
            await session.send_error(str(e), "INVALID_SUBSCRIPTION", subscription_id)
            return
        await session.subscribe(subscription_id, stream, render)
    elif frame.type == "unsubscribe":
        subscription_id = frame.id or frame.stream
        if not await session.unsubscribe(subscription_id):
            await session.send_error("Unknown subscription", "UNKNOWN_SUBSCRIPTION", subscription_id)
    else:
        await session.send_error(f"Unknown message type: {frame.type}", "UNKNOWN_TYPE", frame.id)


async def live_endpoint(
    websocket: WebSocket,
    token: str = Query(..., description="ID token"),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """WebSocket endpoint pushing live snapshots of chats, messages, requests and notifications"""
    try:
        user = await AuthService(store, identity).authenticate_token(token)
    except ChatlineException as e:
        logger.info(f"Rejected WebSocket connection: {e}")
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    session = LiveSession(websocket, user.id)
    user_service = UserService(store)
    if await connection_manager.connect(session):
        await user_service.set_online_status(user.id, True)

    try:
        while True:
            try:
                data = await websocket.receive_text()
            except KeyError:
                # Binary frame
                await session.send_error("Only text frames are supported", "INVALID_FORMAT")
                continue
            try:
                frame = SubscribeFrame.model_validate_json(data)
            except PydanticValidationError as e:
                await session.send_error(f"Invalid message format: {e.errors()[0]['msg']}", "INVALID_FORMAT")
                continue
            await handle_frame(frame, session, user, store)
    except WebSocketDisconnect:
        logger.info(f"User {user.id} closed the WebSocket")
    finally:
        if await connection_manager.disconnect(session):
            await user_service.set_online_status(user.id, False)
