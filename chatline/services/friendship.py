from typing import Dict, Iterable, List, Optional, Tuple
import logging

from chatline.core.document_store import DocumentStore
from chatline.models.friendship import FriendRequest, FriendRequestStatus, Friendship
from chatline.models.notification import NotificationType
from chatline.models.user import User
from chatline.repositories.friendship import FriendRequestRepository, FriendshipRepository
from chatline.repositories.notification import NotificationRepository
from chatline.repositories.user import UserRepository
from chatline.schemas.user import RelationshipStatus
from chatline.services.notification import NotificationService
from chatline.utils.exceptions import (
    AuthorizationError, ConflictError, NotFoundError, ValidationError, gateway_call
)
from chatline.utils.ids import friend_request_notification_id, new_id, pair_id
from chatline.utils.time import to_millis, utcnow

logger = logging.getLogger(__name__)


def matches_user(user: User, query: Optional[str]) -> bool:
    """Case-insensitive match on display name or email"""
    if not query:
        return True
    needle = query.strip().lower()
    return needle in user.display_name.lower() or needle in user.email.lower()


class FriendshipService:
    def __init__(self, store: DocumentStore):
        self.store = store
        self.request_repo = FriendRequestRepository(store)
        self.friendship_repo = FriendshipRepository(store)
        self.user_repo = UserRepository(store)
        self.notification_service = NotificationService(store)

    @staticmethod
    def request_notification_id(request: FriendRequest) -> str:
        return friend_request_notification_id(request.sender_id, request.receiver_id, to_millis(request.created_at))

    async def _get_request(self, request_id: str) -> FriendRequest:
        request = await self.request_repo.get_by_id(request_id)
        if not request:
            raise NotFoundError("Friend request not found")
        return request

    @gateway_call("send friend request")
    async def send_friend_request(self, sender_id: str, receiver_id: str, message: Optional[str] = None) -> FriendRequest:
        """Create a pending request and notify the receiver"""
        if sender_id == receiver_id:
            raise ValidationError("You cannot send a friend request to yourself")

        receiver = await self.user_repo.get_by_id(receiver_id)
        if not receiver:
            raise NotFoundError("User not found")

        if await self.request_repo.get_pending(sender_id, receiver_id):
            raise ConflictError("Friend request already sent")
        if await self.request_repo.get_pending(receiver_id, sender_id):
            raise ConflictError("This user has already sent you a friend request")
        if await self.friendship_repo.get(sender_id, receiver_id):
            raise ConflictError("You are already friends with this user")

        request = FriendRequest(
            id=new_id(),
            sender_id=sender_id,
            receiver_id=receiver_id,
            created_at=utcnow(),
            message=message
        )
        notification = NotificationService.build(
            receiver_id,
            "New Friend Request",
            "You have received a new friend request",
            NotificationType.FRIEND_REQUEST,
            {"senderId": sender_id, "requestId": request.id},
            notification_id=self.request_notification_id(request)
        )

        batch = self.store.batch()
        batch.set(FriendRequestRepository.collection, request.id, request.to_map())
        batch.set(NotificationRepository.collection, notification.id, notification.to_map())
        await batch.commit()

        logger.info(f"Friend request {request.id} sent from {sender_id} to {receiver_id}")
        return request

    @gateway_call("cancel friend request")
    async def cancel_friend_request(self, request_id: str, user_id: str) -> None:
        """Withdraw a pending request together with the receiver's notification"""
        request = await self._get_request(request_id)
        if request.sender_id != user_id:
            raise AuthorizationError("Only the sender can cancel a friend request")
        if request.status != FriendRequestStatus.PENDING:
            raise ConflictError("Friend request is no longer pending")

        batch = self.store.batch()
        batch.delete(FriendRequestRepository.collection, request.id)
        batch.delete(NotificationRepository.collection, self.request_notification_id(request))
        await self.notification_service.stage_delete_by_type_and_user(
            batch, request.receiver_id, NotificationType.FRIEND_REQUEST, request.sender_id
        )
        await batch.commit()
        logger.info(f"Friend request {request_id} cancelled by {user_id}")

    @gateway_call("respond to friend request")
    async def respond_to_friend_request(self, request_id: str, user_id: str, accept: bool) -> FriendRequest:
        """Accept or decline a pending request as its receiver"""
        request = await self._get_request(request_id)
        if request.receiver_id != user_id:
            raise AuthorizationError("Only the receiver can respond to a friend request")
        if request.status != FriendRequestStatus.PENDING:
            raise ConflictError("Friend request is no longer pending")

        now = utcnow()
        status = FriendRequestStatus.ACCEPTED if accept else FriendRequestStatus.DECLINED
        batch = self.store.batch()
        batch.update(
            FriendRequestRepository.collection,
            request.id,
            {"status": status.value, "respondedAt": to_millis(now)}
        )

        if accept:
            if not await self.friendship_repo.get(request.sender_id, request.receiver_id):
                user1_id, user2_id = sorted([request.sender_id, request.receiver_id])
                friendship = Friendship(
                    id=pair_id(user1_id, user2_id),
                    user1_id=user1_id,
                    user2_id=user2_id,
                    created_at=now
                )
                batch.set(FriendshipRepository.collection, friendship.id, friendship.to_map())
            notification = NotificationService.build(
                request.sender_id,
                "Friend Request Accepted",
                "Your friend request has been accepted",
                NotificationType.FRIEND_REQUEST_ACCEPTED,
                {"userId": request.receiver_id}
            )
        else:
            notification = NotificationService.build(
                request.sender_id,
                "Friend Request Declined",
                "Your friend request has been declined",
                NotificationType.FRIEND_REQUEST_DECLINED,
                {"userId": request.receiver_id}
            )
        batch.set(NotificationRepository.collection, notification.id, notification.to_map())

        batch.delete(NotificationRepository.collection, self.request_notification_id(request))
        await self.notification_service.stage_delete_by_type_and_user(
            batch, request.receiver_id, NotificationType.FRIEND_REQUEST, request.sender_id
        )
        await batch.commit()

        logger.info(f"Friend request {request_id} {status.value} by {user_id}")
        return request.copy_with(status=status, responded_at=now)

    @gateway_call("remove friendship")
    async def remove_friendship(self, user_id: str, friend_id: str) -> None:
        """Delete the friendship and tell the other user; history is kept"""
        friendship = await self.friendship_repo.get(user_id, friend_id)
        if not friendship:
            raise NotFoundError("You are not friends with this user")

        notification = NotificationService.build(
            friend_id,
            "Friend Removed",
            "You are no longer friends",
            NotificationType.FRIEND_REMOVED,
            {"userId": user_id}
        )
        batch = self.store.batch()
        batch.delete(FriendshipRepository.collection, friendship.id)
        batch.set(NotificationRepository.collection, notification.id, notification.to_map())
        await batch.commit()
        logger.info(f"Friendship {friendship.id} removed by {user_id}")

    @gateway_call("block user")
    async def block_user(self, blocker_id: str, user_id: str) -> Friendship:
        friendship = await self.friendship_repo.get(blocker_id, user_id)
        if not friendship:
            raise NotFoundError("You are not friends with this user")
        if friendship.is_blocked:
            if friendship.blocked_by == blocker_id:
                return friendship
            raise ConflictError("This friendship is already blocked")

        await self.friendship_repo.update(blocker_id, user_id, {"isBlocked": True, "blockedBy": blocker_id})
        return friendship.copy_with(is_blocked=True, blocked_by=blocker_id)

    @gateway_call("unblock user")
    async def unblock_user(self, user_id: str, other_user_id: str) -> Friendship:
        """Clear the block flag; only the user who blocked may do this"""
        friendship = await self.friendship_repo.get(user_id, other_user_id)
        if not friendship:
            raise NotFoundError("You are not friends with this user")
        if not friendship.is_blocked:
            return friendship
        if friendship.blocked_by != user_id:
            raise AuthorizationError("Only the user who blocked can unblock")

        await self.friendship_repo.update(user_id, other_user_id, {"isBlocked": False, "blockedBy": None})
        return friendship.copy_with(is_blocked=False, blocked_by=None)

    async def get_friendship(self, user1_id: str, user2_id: str) -> Optional[Friendship]:
        return await self.friendship_repo.get(user1_id, user2_id)

    async def is_user_blocked(self, user1_id: str, user2_id: str) -> bool:
        friendship = await self.friendship_repo.get(user1_id, user2_id)
        return bool(friendship and friendship.is_blocked)

    async def is_unfriended(self, user1_id: str, user2_id: str) -> bool:
        return await self.friendship_repo.is_missing(user1_id, user2_id)

    async def get_friend_request(self, sender_id: str, receiver_id: str) -> Optional[FriendRequest]:
        return await self.request_repo.get_pending(sender_id, receiver_id)

    async def get_relationship_statuses(
        self,
        current_user_id: str,
        user_ids: Iterable[str]
    ) -> Dict[str, RelationshipStatus]:
        """Relationship of the current user with each of ``user_ids``"""
        friendships = {
            friendship.other_user_id(current_user_id): friendship
            for friendship in await self.friendship_repo.list_for_user(current_user_id, include_blocked=True)
        }
        sent = {request.receiver_id for request in await self.request_repo.list_sent(current_user_id)
                if request.status == FriendRequestStatus.PENDING}
        received = {request.sender_id for request in await self.request_repo.list_received(current_user_id)}

        statuses: Dict[str, RelationshipStatus] = {}
        for user_id in user_ids:
            friendship = friendships.get(user_id)
            if friendship and friendship.is_blocked:
                statuses[user_id] = RelationshipStatus.BLOCKED
            elif friendship:
                statuses[user_id] = RelationshipStatus.FRIENDS
            elif user_id in sent:
                statuses[user_id] = RelationshipStatus.FRIEND_REQUEST_SENT
            elif user_id in received:
                statuses[user_id] = RelationshipStatus.FRIEND_REQUEST_RECEIVED
            else:
                statuses[user_id] = RelationshipStatus.NONE
        return statuses

    async def get_relationship_status(self, current_user_id: str, other_user_id: str) -> RelationshipStatus:
        statuses = await self.get_relationship_statuses(current_user_id, [other_user_id])
        return statuses[other_user_id]

    async def get_friends(self, user_id: str, query: Optional[str] = None) -> List[Tuple[Friendship, User]]:
        """Non-blocked friends with their profiles, sorted by display name"""
        friendships = await self.friendship_repo.list_for_user(user_id)
        users = await self.user_repo.get_many([f.other_user_id(user_id) for f in friendships])
        friends = [
            (friendship, users[friendship.other_user_id(user_id)])
            for friendship in friendships
            if friendship.other_user_id(user_id) in users
        ]
        friends = [(friendship, user) for friendship, user in friends if matches_user(user, query)]
        friends.sort(key=lambda item: item[1].display_name.lower())
        return friends

    async def _with_users(self, requests: List[FriendRequest], sent: bool) -> List[Tuple[FriendRequest, Optional[User]]]:
        user_ids = [request.receiver_id if sent else request.sender_id for request in requests]
        users = await self.user_repo.get_many(user_ids)
        return [(request, users.get(user_id)) for request, user_id in zip(requests, user_ids)]

    async def get_received_requests(self, user_id: str) -> List[Tuple[FriendRequest, Optional[User]]]:
        """Pending requests addressed to the user, newest first"""
        return await self._with_users(await self.request_repo.list_received(user_id), sent=False)

    async def get_sent_requests(self, user_id: str) -> List[Tuple[FriendRequest, Optional[User]]]:
        return await self._with_users(await self.request_repo.list_sent(user_id), sent=True)

    def watch_received_requests(self, user_id: str):
        return self.request_repo.watch_received(user_id)

    def watch_sent_requests(self, user_id: str):
        return self.request_repo.watch_sent(user_id)

    def watch_friends(self, user_id: str):
        return self.friendship_repo.watch_for_user(user_id)
