"""Tests for the friend request and friendship state machine."""

import pytest

from chatline.core.document_store import DocumentStore
from chatline.models.friendship import FriendRequestStatus
from chatline.models.notification import NotificationType
from chatline.models.user import User
from chatline.repositories.notification import NotificationRepository
from chatline.schemas.user import RelationshipStatus
from chatline.services.chat import ChatService
from chatline.services.friendship import FriendshipService
from chatline.utils.exceptions import (
    AuthorizationError, ConflictError, GatewayError, NotFoundError, ValidationError
)
from chatline.utils.ids import pair_id


async def _notifications(store: DocumentStore, user_id: str):
    return await NotificationRepository(store).list_for_user(user_id)


async def test_send_request_creates_request_and_notification(store, alice: User, bob: User):
    service = FriendshipService(store)
    request = await service.send_friend_request(alice.id, bob.id, message="hi")

    assert request.status == FriendRequestStatus.PENDING
    assert await service.get_friend_request(alice.id, bob.id) == request

    notifications = await _notifications(store, bob.id)
    assert len(notifications) == 1
    notification = notifications[0]
    assert notification.type == NotificationType.FRIEND_REQUEST
    assert notification.title == "New Friend Request"
    assert notification.data == {"senderId": alice.id, "requestId": request.id}
    assert notification.id == service.request_notification_id(request)
    assert notification.id.startswith(f"friend_request_{alice.id}_{bob.id}_")


async def test_send_request_guards(store, alice: User, bob: User, befriend, carol: User):
    service = FriendshipService(store)
    with pytest.raises(ValidationError):
        await service.send_friend_request(alice.id, alice.id)
    with pytest.raises(NotFoundError):
        await service.send_friend_request(alice.id, "nobody")

    await service.send_friend_request(alice.id, bob.id)
    with pytest.raises(ConflictError):
        await service.send_friend_request(alice.id, bob.id)
    with pytest.raises(ConflictError):
        await service.send_friend_request(bob.id, alice.id)

    await befriend(alice, carol)
    with pytest.raises(ConflictError):
        await service.send_friend_request(carol.id, alice.id)


async def test_cancel_removes_request_and_notification(store, alice: User, bob: User):
    service = FriendshipService(store)
    request = await service.send_friend_request(alice.id, bob.id)

    with pytest.raises(AuthorizationError):
        await service.cancel_friend_request(request.id, bob.id)

    await service.cancel_friend_request(request.id, alice.id)

    assert await service.request_repo.get_by_id(request.id) is None
    assert await _notifications(store, bob.id) == []
    assert await service.get_relationship_status(alice.id, bob.id) == RelationshipStatus.NONE


async def test_accept_creates_single_friendship(store, alice: User, bob: User):
    service = FriendshipService(store)
    request = await service.send_friend_request(alice.id, bob.id)

    with pytest.raises(AuthorizationError):
        await service.respond_to_friend_request(request.id, alice.id, accept=True)

    accepted = await service.respond_to_friend_request(request.id, bob.id, accept=True)
    assert accepted.status == FriendRequestStatus.ACCEPTED
    assert accepted.responded_at is not None

    stored = await service.request_repo.get_by_id(request.id)
    assert stored.status == FriendRequestStatus.ACCEPTED

    friendships = await service.friendship_repo.list_for_user(alice.id)
    assert len(friendships) == 1
    assert friendships[0].id == pair_id(alice.id, bob.id)
    assert friendships[0].user1_id == alice.id

    # The receiver's request notification is gone, the sender got an acceptance
    assert await _notifications(store, bob.id) == []
    sender_notifications = await _notifications(store, alice.id)
    assert [n.type for n in sender_notifications] == [NotificationType.FRIEND_REQUEST_ACCEPTED]
    assert sender_notifications[0].data == {"userId": bob.id}

    with pytest.raises(ConflictError):
        await service.respond_to_friend_request(request.id, bob.id, accept=False)


async def test_decline_creates_no_friendship(store, alice: User, bob: User):
    service = FriendshipService(store)
    request = await service.send_friend_request(alice.id, bob.id)
    declined = await service.respond_to_friend_request(request.id, bob.id, accept=False)

    assert declined.status == FriendRequestStatus.DECLINED
    assert await service.get_friendship(alice.id, bob.id) is None
    assert await service.is_unfriended(alice.id, bob.id)
    notifications = await _notifications(store, alice.id)
    assert notifications[0].type == NotificationType.FRIEND_REQUEST_DECLINED
    assert notifications[0].title == "Friend Request Declined"

    # A declined request does not block a new one
    await service.send_friend_request(alice.id, bob.id)


async def test_block_and_unblock(store, alice: User, bob: User, befriend):
    await befriend(alice, bob)
    service = FriendshipService(store)

    blocked = await service.block_user(alice.id, bob.id)
    assert blocked.is_blocked and blocked.blocked_by == alice.id
    assert await service.is_user_blocked(bob.id, alice.id)
    assert await service.get_friends(alice.id) == []

    with pytest.raises(AuthorizationError):
        await service.unblock_user(bob.id, alice.id)

    unblocked = await service.unblock_user(alice.id, bob.id)
    assert not unblocked.is_blocked and unblocked.blocked_by is None
    stored = await service.get_friendship(alice.id, bob.id)
    assert stored.blocked_by is None
    assert not await service.is_user_blocked(alice.id, bob.id)


async def test_block_requires_friendship(store, alice: User, bob: User):
    with pytest.raises(NotFoundError):
        await FriendshipService(store).block_user(alice.id, bob.id)


async def test_remove_friendship_notifies_other_user(store, alice: User, bob: User, befriend):
    await befriend(alice, bob)
    service = FriendshipService(store)

    await service.remove_friendship(bob.id, alice.id)

    assert await service.is_unfriended(alice.id, bob.id)
    removed = [n for n in await _notifications(store, alice.id) if n.type == NotificationType.FRIEND_REMOVED]
    assert len(removed) == 1
    assert removed[0].data == {"userId": bob.id}
    assert removed[0].body == "You are no longer friends"

    with pytest.raises(NotFoundError):
        await service.remove_friendship(bob.id, alice.id)


async def test_relationship_statuses(store, alice: User, bob: User, carol: User, make_user, befriend):
    dave = await make_user("dave", "Dave Dunn")
    erin = await make_user("erin", "Erin Eve")
    service = FriendshipService(store)

    await befriend(alice, bob)
    await service.send_friend_request(alice.id, carol.id)
    await service.send_friend_request(dave.id, alice.id)
    await befriend(erin, alice)
    await service.block_user(erin.id, alice.id)

    statuses = await service.get_relationship_statuses(alice.id, [bob.id, carol.id, dave.id, erin.id])
    assert statuses == {
        bob.id: RelationshipStatus.FRIENDS,
        carol.id: RelationshipStatus.FRIEND_REQUEST_SENT,
        dave.id: RelationshipStatus.FRIEND_REQUEST_RECEIVED,
        erin.id: RelationshipStatus.BLOCKED,
    }


async def test_friends_list_search(store, alice: User, bob: User, carol: User, befriend):
    await befriend(alice, bob)
    await befriend(carol, alice)
    service = FriendshipService(store)

    friends = await service.get_friends(alice.id)
    assert [user.id for _, user in friends] == [bob.id, carol.id]

    friends = await service.get_friends(alice.id, "CLARK")
    assert [user.id for _, user in friends] == [carol.id]


async def test_request_lists(store, alice: User, bob: User, carol: User):
    service = FriendshipService(store)
    await service.send_friend_request(bob.id, alice.id)
    await service.send_friend_request(carol.id, alice.id)

    received = await service.get_received_requests(alice.id)
    assert {user.id for _, user in received} == {bob.id, carol.id}
    created = [request.created_at for request, _ in received]
    assert created == sorted(created, reverse=True)

    sent = await service.get_sent_requests(bob.id)
    assert [(request.receiver_id, user.id) for request, user in sent] == [(alice.id, alice.id)]


async def test_friendship_stores_users_in_sorted_order(store, alice: User, make_user):
    zed = await make_user("zed", "Zed Zane")
    service = FriendshipService(store)
    request = await service.send_friend_request(zed.id, alice.id)
    await service.respond_to_friend_request(request.id, alice.id, accept=True)

    friendship = await service.get_friendship(zed.id, alice.id)
    assert (friendship.user1_id, friendship.user2_id) == (alice.id, zed.id)
    assert friendship.id == f"{alice.id}_{zed.id}"


async def test_empty_friendship_document_counts_as_unfriended(store, alice: User, bob: User):
    await store.set("friendships", pair_id(alice.id, bob.id), {})
    service = FriendshipService(store)

    assert await service.is_unfriended(alice.id, bob.id)
    assert await service.get_friendship(alice.id, bob.id) is None
    with pytest.raises(AuthorizationError):
        await ChatService(store).can_message(alice.id, bob.id)


async def test_block_wraps_unexpected_failures(store, alice: User, bob: User, monkeypatch):
    service = FriendshipService(store)

    async def broken(*args):
        raise RuntimeError("connection reset")

    monkeypatch.setattr(service.friendship_repo, "get", broken)
    with pytest.raises(GatewayError, match="Failed to block user: connection reset"):
        await service.block_user(alice.id, bob.id)
    with pytest.raises(GatewayError, match="Failed to unblock user"):
        await service.unblock_user(alice.id, bob.id)
