from fastapi import APIRouter, Depends, Query, status
from typing import List, Optional

from chatline.api.deps import get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.models.user import User
from chatline.schemas.friendship import (
    FriendOut, FriendRequestAction, FriendRequestCreate, FriendRequestDetail,
    FriendRequestOut, FriendRequestRespond, FriendsList, FriendshipOut
)
from chatline.schemas.user import UserOut
from chatline.services.friendship import FriendshipService
from chatline.utils.time import format_last_seen, format_relative

router = APIRouter()


def _details(entries) -> List[FriendRequestDetail]:
    return [
        FriendRequestDetail(
            request=FriendRequestOut.model_validate(request),
            user=UserOut.model_validate(user) if user else None,
            time_text=format_relative(request.created_at)
        )
        for request, user in entries
    ]


@router.get("/", response_model=FriendsList)
async def get_friends(
    q: Optional[str] = Query(None, description="Search friends by display name or email"),
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Get the current user's friends, blocked ones excluded"""
    service = FriendshipService(store)
    friends = [
        FriendOut(
            friendship=FriendshipOut.model_validate(friendship),
            user=UserOut.model_validate(user),
            last_seen_text=format_last_seen(user.is_online, user.last_seen)
        )
        for friendship, user in await service.get_friends(current_user.id, q)
    ]
    return FriendsList(friends=friends, total_count=len(friends))


@router.post("/requests", response_model=FriendRequestOut, status_code=status.HTTP_201_CREATED)
async def send_friend_request(
    request_data: FriendRequestCreate,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Send a friend request to another user"""
    service = FriendshipService(store)
    request = await service.send_friend_request(current_user.id, request_data.receiver_id, request_data.message)
    return FriendRequestOut.model_validate(request)


@router.get("/requests", response_model=List[FriendRequestDetail])
async def get_received_requests(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Pending requests sent to the current user, newest first"""
    service = FriendshipService(store)
    return _details(await service.get_received_requests(current_user.id))


@router.get("/requests/sent", response_model=List[FriendRequestDetail])
async def get_sent_requests(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Requests sent by the current user, newest first"""
    service = FriendshipService(store)
    return _details(await service.get_sent_requests(current_user.id))


@router.put("/requests/{request_id}", response_model=FriendRequestOut)
async def respond_to_friend_request(
    request_id: str,
    action_data: FriendRequestRespond,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Accept or decline a friend request"""
    service = FriendshipService(store)
    request = await service.respond_to_friend_request(
        request_id, current_user.id, action_data.action == FriendRequestAction.ACCEPT
    )
    return FriendRequestOut.model_validate(request)


@router.delete("/requests/{request_id}")
async def cancel_friend_request(
    request_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Cancel a friend request you sent"""
    service = FriendshipService(store)
    await service.cancel_friend_request(request_id, current_user.id)
    return {"message": "Friend request cancelled"}


@router.delete("/{friend_id}")
async def remove_friend(
    friend_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Remove friendship with another user"""
    service = FriendshipService(store)
    await service.remove_friendship(current_user.id, friend_id)
    return {"message": "Friend removed"}


@router.post("/{user_id}/block", response_model=FriendshipOut)
async def block_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Block a friend"""
    service = FriendshipService(store)
    return FriendshipOut.model_validate(await service.block_user(current_user.id, user_id))


@router.delete("/{user_id}/block", response_model=FriendshipOut)
async def unblock_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Unblock a friend you blocked"""
    service = FriendshipService(store)
    return FriendshipOut.model_validate(await service.unblock_user(current_user.id, user_id))
