from typing import Any, Dict, List, Optional

from chatline.core.document_store import DocumentStore
from chatline.models.friendship import FriendRequest, FriendRequestStatus, Friendship
from chatline.utils.exceptions import gateway_call
from chatline.utils.ids import pair_id


class FriendRequestRepository:
    collection = "friendRequests"

    def __init__(self, store: DocumentStore):
        self.store = store

    @gateway_call("get friend request")
    async def get_by_id(self, request_id: str) -> Optional[FriendRequest]:
        data = await self.store.get(self.collection, request_id)
        return FriendRequest.from_map(data) if data is not None else None

    @gateway_call("get friend request")
    async def get_pending(self, sender_id: str, receiver_id: str) -> Optional[FriendRequest]:
        """Pending request from ``sender_id`` to ``receiver_id``, if any"""
        rows = await (
            self.store.query(self.collection)
            .where("senderId", "==", sender_id)
            .where("receiverId", "==", receiver_id)
            .where("status", "==", FriendRequestStatus.PENDING.value)
            .limit(1)
            .get()
        )
        return FriendRequest.from_map(rows[0]) if rows else None

    async def _received(self, user_id: str) -> List[FriendRequest]:
        rows = await (
            self.store.query(self.collection)
            .where("receiverId", "==", user_id)
            .where("status", "==", FriendRequestStatus.PENDING.value)
            .order_by("createdAt", descending=True)
            .get()
        )
        return [FriendRequest.from_map(row) for row in rows]

    async def _sent(self, user_id: str) -> List[FriendRequest]:
        rows = await (
            self.store.query(self.collection)
            .where("senderId", "==", user_id)
            .order_by("createdAt", descending=True)
            .get()
        )
        return [FriendRequest.from_map(row) for row in rows]

    @gateway_call("get friend requests")
    async def list_received(self, user_id: str) -> List[FriendRequest]:
        return await self._received(user_id)

    @gateway_call("get sent friend requests")
    async def list_sent(self, user_id: str) -> List[FriendRequest]:
        return await self._sent(user_id)

    def watch_received(self, user_id: str):
        return self.store.watch(lambda: self._received(user_id), [self.collection])

    def watch_sent(self, user_id: str):
        return self.store.watch(lambda: self._sent(user_id), [self.collection])


class FriendshipRepository:
    collection = "friendships"

    def __init__(self, store: DocumentStore):
        self.store = store

    async def _raw(self, user1_id: str, user2_id: str) -> Optional[Dict[str, Any]]:
        return await self.store.get(self.collection, pair_id(user1_id, user2_id))

    @gateway_call("get friendship")
    async def get(self, user1_id: str, user2_id: str) -> Optional[Friendship]:
        data = await self._raw(user1_id, user2_id)
        return Friendship.from_map(data) if data else None

    @gateway_call("check friendship")
    async def is_missing(self, user1_id: str, user2_id: str) -> bool:
        """True when no friendship document exists or it carries no data"""
        data = await self._raw(user1_id, user2_id)
        return not data

    @gateway_call("update friendship")
    async def update(self, user1_id: str, user2_id: str, fields: Dict[str, Any]) -> None:
        await self.store.update(self.collection, pair_id(user1_id, user2_id), fields)

    async def _for_user(self, user_id: str, include_blocked: bool = False) -> List[Friendship]:
        friendships: Dict[str, Friendship] = {}
        for field in ("user1Id", "user2Id"):
            rows = await self.store.query(self.collection).where(field, "==", user_id).get()
            for row in rows:
                friendship = Friendship.from_map(row)
                friendships[friendship.id] = friendship
        result = [
            friendship for friendship in friendships.values()
            if include_blocked or not friendship.is_blocked
        ]
        result.sort(key=lambda friendship: friendship.created_at, reverse=True)
        return result

    @gateway_call("get friends")
    async def list_for_user(self, user_id: str, include_blocked: bool = False) -> List[Friendship]:
        return await self._for_user(user_id, include_blocked)

    def watch_for_user(self, user_id: str):
        return self.store.watch(lambda: self._for_user(user_id), [self.collection])
