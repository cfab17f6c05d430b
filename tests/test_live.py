"""Tests for live WebSocket sessions and stream subscriptions."""

import asyncio
from typing import Any, Dict

from fastapi import WebSocketDisconnect

from chatline.api.v1.endpoints.live import handle_frame, live_endpoint
from chatline.core.websocket import ConnectionManager, LiveSession
from chatline.models.user import User
from chatline.repositories.user import UserRepository
from chatline.schemas.chat import SubscribeFrame
from chatline.services.friendship import FriendshipService


class FakeWebSocket:
    def __init__(self, incoming=()):
        self.accepted = False
        self.sent: asyncio.Queue = asyncio.Queue()
        self.incoming = list(incoming)

    async def receive_text(self) -> str:
        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        item = self.incoming.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def accept(self):
        self.accepted = True

    async def send_json(self, payload: Dict[str, Any]):
        await self.sent.put(payload)

    async def next_frame(self) -> Dict[str, Any]:
        return await asyncio.wait_for(self.sent.get(), 1)


async def test_ping_gets_pong(store, alice: User):
    websocket = FakeWebSocket()
    session = LiveSession(websocket, alice.id)
    await handle_frame(SubscribeFrame(type="ping"), session, alice, store)
    assert await websocket.next_frame() == {"type": "pong"}


async def test_notification_subscription_pushes_snapshots(store, alice: User, bob: User):
    websocket = FakeWebSocket()
    session = LiveSession(websocket, bob.id)
    frame = SubscribeFrame(type="subscribe", id="n1", stream="notifications")
    try:
        await handle_frame(frame, session, bob, store)
        assert await websocket.next_frame() == {"type": "snapshot", "id": "n1", "data": []}

        await FriendshipService(store).send_friend_request(alice.id, bob.id)
        snapshot = await websocket.next_frame()
        assert snapshot["id"] == "n1"
        assert [n["type"] for n in snapshot["data"]] == ["friendRequest"]
        assert snapshot["data"][0]["data"]["senderId"] == alice.id
    finally:
        await session.close()
    assert session.subscriptions == {}


async def test_invalid_subscriptions_report_errors(store, alice: User):
    websocket = FakeWebSocket()
    session = LiveSession(websocket, alice.id)

    await handle_frame(SubscribeFrame(type="subscribe", stream="weather"), session, alice, store)
    error = await websocket.next_frame()
    assert error["code"] == "INVALID_SUBSCRIPTION"
    assert error["message"] == "Unknown stream: weather"

    await handle_frame(SubscribeFrame(type="subscribe", id="m", stream="messages"), session, alice, store)
    error = await websocket.next_frame()
    assert error["id"] == "m"
    assert "other_user_id" in error["message"]

    await handle_frame(SubscribeFrame(type="unsubscribe", id="nothing"), session, alice, store)
    assert (await websocket.next_frame())["code"] == "UNKNOWN_SUBSCRIPTION"

    await handle_frame(SubscribeFrame(type="shout"), session, alice, store)
    assert (await websocket.next_frame())["code"] == "UNKNOWN_TYPE"


async def test_resubscribing_replaces_the_stream(store, alice: User):
    websocket = FakeWebSocket()
    session = LiveSession(websocket, alice.id)
    frame = SubscribeFrame(type="subscribe", id="me", stream="user")
    try:
        await handle_frame(frame, session, alice, store)
        first = await websocket.next_frame()
        assert first["data"]["id"] == alice.id

        await handle_frame(frame, session, alice, store)
        await websocket.next_frame()
        assert list(session.subscriptions) == ["me"]

        await handle_frame(SubscribeFrame(type="unsubscribe", id="me"), session, alice, store)
        assert session.subscriptions == {}
    finally:
        await session.close()


async def test_connection_manager_tracks_first_and_last_session():
    manager = ConnectionManager()
    first = LiveSession(FakeWebSocket(), "alice")
    second = LiveSession(FakeWebSocket(), "alice")

    assert await manager.connect(first)
    assert first.websocket.accepted
    assert not await manager.connect(second)
    assert manager.is_connected("alice")

    assert not await manager.disconnect(first)
    assert await manager.disconnect(second)
    assert not manager.is_connected("alice")


async def test_binary_frame_gets_error_and_session_survives(store, identity, alice: User):
    identity.accounts[alice.id] = {"email": alice.email, "password": "secret1"}
    # Starlette raises KeyError reading text from a binary frame
    websocket = FakeWebSocket([KeyError("text"), '{"type": "ping"}'])

    await live_endpoint(websocket, token=f"token-{alice.id}", store=store, identity=identity)

    error = await websocket.next_frame()
    assert error["type"] == "error" and error["code"] == "INVALID_FORMAT"
    assert await websocket.next_frame() == {"type": "pong"}
    assert not (await UserRepository(store).get_by_id(alice.id)).is_online
