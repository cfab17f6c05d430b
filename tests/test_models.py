"""Tests for the domain records: document mapping, defaults and derived state."""

from datetime import datetime, timedelta, timezone

import pytest

from chatline.models.chat import Chat
from chatline.models.friendship import FriendRequest, FriendRequestStatus, Friendship
from chatline.models.message import Message, MessageType
from chatline.models.notification import Notification, NotificationType
from chatline.models.user import User
from chatline.utils.ids import pair_id
from chatline.utils.time import EPOCH, format_last_seen, format_message_time, format_relative, to_millis

NOW = datetime(2024, 5, 17, 14, 30, 15, 123456, tzinfo=timezone.utc)


def test_pair_id_is_order_independent():
    assert pair_id("zed", "amy") == pair_id("amy", "zed") == "amy_zed"


def test_timestamps_are_truncated_to_milliseconds():
    user = User(id="u1", email="u1@example.com", display_name="U", last_seen=NOW, created_at=NOW)
    assert user.last_seen.microsecond == 123000
    assert User.from_map(user.to_map()) == user


def test_naive_timestamps_are_read_as_utc():
    user = User(
        id="u1", email="e", display_name="U",
        last_seen=datetime(2024, 1, 1, 12, 0), created_at=datetime(2024, 1, 1, 12, 0),
    )
    assert user.last_seen.tzinfo == timezone.utc
    assert user.to_map()["lastSeen"] == to_millis(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


def test_user_map_uses_stored_field_names():
    user = User(id="u1", email="a@b.c", display_name="Ann", photo_url="http://x/p.png",
                is_online=True, last_seen=NOW, created_at=NOW)
    data = user.to_map()
    assert set(data) == {"id", "email", "displayName", "photoURL", "isOnline", "lastSeen", "createdAt"}
    assert isinstance(data["createdAt"], int)


def test_user_from_empty_map_uses_defaults():
    user = User.from_map({})
    assert user.id == ""
    assert user.photo_url == ""
    assert user.is_online is False
    assert user.created_at == EPOCH


@pytest.mark.parametrize("optional", [
    {},
    {"edited_at": NOW, "is_edited": True},
    {"deleted_at": NOW + timedelta(seconds=3), "is_deleted": True, "content": "This message was deleted"},
])
def test_message_round_trip(optional):
    fields = {"content": "hi", **optional}
    message = Message(id="m1", sender_id="a", receiver_id="b", timestamp=NOW, **fields)
    assert Message.from_map(message.to_map()) == message


def test_message_unknown_type_falls_back_to_text():
    message = Message.from_map({"id": "m", "type": "sticker", "timestamp": 5})
    assert message.type == MessageType.TEXT
    assert message.edited_at is None


def test_chat_round_trip_with_partial_maps():
    chat = Chat(
        id="a_b",
        participants=["a", "b"],
        last_message="hey",
        last_message_time=NOW,
        last_message_sender_id="a",
        unread_count={"a": 0, "b": 3},
        deleted_by={"a": True, "b": False},
        deleted_at={"a": NOW, "b": None},
        last_seen_by={"a": NOW, "b": None},
        created_at=NOW,
        updated_at=NOW,
    )
    data = chat.to_map()
    assert data["deletedAt"] == {"a": to_millis(NOW), "b": None}
    assert Chat.from_map(data) == chat


def test_chat_round_trip_with_all_optionals_missing():
    chat = Chat(id="a_b", participants=["a", "b"], created_at=NOW, updated_at=NOW)
    restored = Chat.from_map(chat.to_map())
    assert restored == chat
    assert restored.last_message is None
    assert restored.unread_count_for("b") == 0
    assert restored.deleted_at_for("a") is None


def test_chat_helpers():
    chat = Chat(id="a_b", participants=["a", "b"], deleted_by={"b": True},
                created_at=NOW, updated_at=NOW)
    assert chat.other_participant("a") == "b"
    assert chat.other_participant("b") == "a"
    assert chat.is_deleted_by("b")
    assert not chat.is_deleted_by("a")


def test_message_seen_requires_last_sender_and_later_last_seen():
    chat = Chat(
        id="a_b", participants=["a", "b"],
        last_message_time=NOW, last_message_sender_id="a",
        last_seen_by={"b": NOW + timedelta(seconds=1)},
        created_at=NOW, updated_at=NOW,
    )
    assert chat.is_message_seen("a", "b")
    assert not chat.is_message_seen("b", "a")

    equal = chat.copy_with(last_seen_by={"b": NOW})
    assert equal.is_message_seen("a", "b")

    earlier = chat.copy_with(last_seen_by={"b": NOW - timedelta(seconds=1)})
    assert not earlier.is_message_seen("a", "b")

    unseen = chat.copy_with(last_seen_by={})
    assert not unseen.is_message_seen("a", "b")

    no_time = chat.copy_with(last_message_time=None)
    assert not no_time.is_message_seen("a", "b")


def test_friend_request_status_fallback_and_round_trip():
    request = FriendRequest(id="r", sender_id="a", receiver_id="b", created_at=NOW, message="hi")
    assert FriendRequest.from_map(request.to_map()) == request
    assert FriendRequest.from_map({"status": "weird"}).status == FriendRequestStatus.PENDING
    accepted = request.copy_with(status=FriendRequestStatus.ACCEPTED, responded_at=NOW)
    assert FriendRequest.from_map(accepted.to_map()) == accepted


def test_friendship_helpers():
    friendship = Friendship(id="a_b", user1_id="a", user2_id="b", created_at=NOW,
                            is_blocked=True, blocked_by="b")
    assert friendship.other_user_id("a") == "b"
    assert friendship.other_user_id("b") == "a"
    assert friendship.is_blocked_by("b")
    assert not friendship.is_blocked_by("a")
    assert Friendship.from_map(friendship.to_map()) == friendship


def test_notification_type_fallback():
    notification = Notification.from_map({"type": "party", "data": {"senderId": "a"}})
    assert notification.type == NotificationType.NEW_MESSAGE
    assert notification.data == {"senderId": "a"}
    full = Notification(id="n", user_id="b", title="t", body="b",
                        type=NotificationType.FRIEND_REMOVED, created_at=NOW)
    assert Notification.from_map(full.to_map()) == full


def test_copy_with_rejects_unknown_fields():
    user = User(id="u1", email="e", display_name="U", last_seen=NOW, created_at=NOW)
    with pytest.raises(ValueError):
        user.copy_with(nickname="x")
    assert user.copy_with(display_name="V").display_name == "V"
    assert user.display_name == "U"


def test_relative_time_formats():
    assert format_relative(NOW - timedelta(seconds=30), NOW) == "Just now"
    assert format_relative(NOW - timedelta(minutes=5), NOW) == "5m ago"
    assert format_relative(NOW - timedelta(hours=3), NOW) == "3h ago"
    assert format_relative(NOW - timedelta(days=2), NOW) == "2d ago"
    assert format_relative(datetime(2024, 3, 4, tzinfo=timezone.utc), NOW) == "4/3/2024"


def test_last_seen_and_message_time_formats():
    assert format_last_seen(True, NOW - timedelta(days=30), NOW) == "Online"
    assert format_last_seen(False, NOW - timedelta(minutes=10), NOW) == "Last seen 10m ago"
    assert format_last_seen(False, NOW, NOW) == "Just now"
    assert format_message_time(NOW - timedelta(hours=2), NOW) == "12:30 PM"
    assert format_message_time(None, NOW) == ""
