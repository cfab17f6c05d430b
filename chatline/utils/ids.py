import uuid


def pair_id(user1_id: str, user2_id: str) -> str:
    """Deterministic id shared by a chat and a friendship between two users"""
    return "_".join(sorted([user1_id, user2_id]))


def new_id() -> str:
    return uuid.uuid4().hex


def friend_request_notification_id(sender_id: str, receiver_id: str, created_at_ms: int) -> str:
    return f"friend_request_{sender_id}_{receiver_id}_{created_at_ms}"
