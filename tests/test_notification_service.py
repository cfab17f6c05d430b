"""Tests for notifications and the live views built on the change feed."""

import asyncio

import pytest

from chatline.models.notification import NotificationType
from chatline.models.user import User
from chatline.services.chat import ChatService
from chatline.services.friendship import FriendshipService
from chatline.services.notification import NotificationService
from chatline.utils.exceptions import AuthorizationError, NotFoundError
from tests.conftest import tick


async def _seed(service: NotificationService, user_id: str, count: int):
    created = []
    for index in range(count):
        notification = NotificationService.build(
            user_id, f"title {index}", "body", NotificationType.NEW_MESSAGE, {"userId": "x"}
        )
        created.append(await service.create_notification(notification))
        await tick()
    return created


async def test_list_is_newest_first_and_counts_unread(store, alice: User):
    service = NotificationService(store)
    created = await _seed(service, alice.id, 3)

    listed = await service.get_notifications(alice.id)
    assert [n.id for n in listed] == [n.id for n in reversed(created)]
    assert await service.get_unread_count(alice.id) == 3

    await service.mark_as_read(created[0].id, alice.id)
    assert await service.get_unread_count(alice.id) == 2


async def test_mark_all_as_read(store, alice: User, bob: User):
    service = NotificationService(store)
    await _seed(service, alice.id, 2)
    await _seed(service, bob.id, 1)

    assert await service.mark_all_as_read(alice.id) == 2
    assert await service.get_unread_count(alice.id) == 0
    assert await service.get_unread_count(bob.id) == 1
    assert await service.mark_all_as_read(alice.id) == 0


async def test_only_owner_can_manage_notification(store, alice: User, bob: User):
    service = NotificationService(store)
    [notification] = await _seed(service, alice.id, 1)

    with pytest.raises(AuthorizationError):
        await service.mark_as_read(notification.id, bob.id)
    with pytest.raises(AuthorizationError):
        await service.delete_notification(notification.id, bob.id)

    assert await service.delete_notification(notification.id, alice.id)
    with pytest.raises(NotFoundError):
        await service.delete_notification(notification.id, alice.id)


async def test_delete_by_type_and_user_matches_payload(store, alice: User):
    service = NotificationService(store)
    keep = NotificationService.build(alice.id, "t", "b", NotificationType.FRIEND_REQUEST, {"senderId": "carol"})
    drop_sender = NotificationService.build(alice.id, "t", "b", NotificationType.FRIEND_REQUEST, {"senderId": "bob"})
    drop_user = NotificationService.build(alice.id, "t", "b", NotificationType.FRIEND_REQUEST, {"userId": "bob"})
    other_type = NotificationService.build(alice.id, "t", "b", NotificationType.FRIEND_REMOVED, {"userId": "bob"})
    for notification in (keep, drop_sender, drop_user, other_type):
        await service.create_notification(notification)

    deleted = await service.delete_by_type_and_user(alice.id, NotificationType.FRIEND_REQUEST, "bob")

    assert deleted == 2
    remaining = {n.id for n in await service.get_notifications(alice.id)}
    assert remaining == {keep.id, other_type.id}


async def test_notification_stream_pushes_new_snapshots(store, alice: User, bob: User):
    service = NotificationService(store)
    stream = service.watch_notifications(bob.id)
    try:
        assert await asyncio.wait_for(stream.__anext__(), 1) == []

        await FriendshipService(store).send_friend_request(alice.id, bob.id)
        snapshot = await asyncio.wait_for(stream.__anext__(), 1)
        assert [n.type for n in snapshot] == [NotificationType.FRIEND_REQUEST]
    finally:
        await stream.aclose()


async def test_chat_list_stream_follows_new_messages(store, alice: User, bob: User, befriend):
    await befriend(alice, bob)
    chats = ChatService(store)
    stream = chats.watch_chats(bob.id)
    try:
        assert await asyncio.wait_for(stream.__anext__(), 1) == []

        await chats.send_message(alice.id, bob.id, "hey")
        snapshot = await asyncio.wait_for(stream.__anext__(), 1)
        # The chat may surface before the first message lands
        while snapshot[0][0].last_message is None:
            snapshot = await asyncio.wait_for(stream.__anext__(), 1)
        [(chat, other)] = snapshot
        assert other.id == alice.id
        assert chat.unread_count_for(bob.id) == 1
    finally:
        await stream.aclose()
