from fastapi import APIRouter, Depends, File, Query, UploadFile
from typing import Optional

from chatline.api.deps import get_bearer_token, get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.core.identity import IdentityClient, get_identity
from chatline.models.user import User
from chatline.schemas.user import DirectoryEntry, DirectoryList, UserOut, UserUpdate
from chatline.services.user import UserService
from chatline.utils.time import format_last_seen

router = APIRouter()


@router.get("/me", response_model=UserOut)
async def read_current_user(current_user: User = Depends(get_current_user)):
    """Get the signed-in user's profile"""
    return UserOut.model_validate(current_user)


@router.put("/me", response_model=UserOut)
async def update_current_user(
    data: UserUpdate,
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Update the display name"""
    service = UserService(store, identity)
    user = await service.update_display_name(current_user, data.display_name, token)
    return UserOut.model_validate(user)


@router.post("/me/photo", response_model=UserOut)
async def upload_profile_picture(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Upload a new profile picture"""
    service = UserService(store, identity)
    content = await file.read()
    user = await service.update_profile_picture(
        current_user, content, file.filename or "", token, file.content_type
    )
    return UserOut.model_validate(user)


@router.delete("/me/photo", response_model=UserOut)
async def remove_profile_picture(
    current_user: User = Depends(get_current_user),
    token: str = Depends(get_bearer_token),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Remove the profile picture"""
    service = UserService(store, identity)
    user = await service.remove_profile_picture(current_user, token)
    return UserOut.model_validate(user)


@router.get("/", response_model=DirectoryList)
async def list_users(
    q: Optional[str] = Query(None, description="Search by display name or email"),
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """List other users with the caller's relationship to each"""
    service = UserService(store)
    entries = await service.list_directory(current_user.id, q)
    users = [
        DirectoryEntry(
            user=UserOut.model_validate(user),
            relationship=relationship,
            last_seen_text=format_last_seen(user.is_online, user.last_seen)
        )
        for user, relationship in entries
    ]
    return DirectoryList(users=users, total_count=len(users))


@router.get("/{user_id}", response_model=DirectoryEntry)
async def read_user(
    user_id: str,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store)
):
    """Get another user's profile"""
    service = UserService(store)
    user = await service.get_user(user_id)
    relationship = await service.friendship_service.get_relationship_status(current_user.id, user_id)
    return DirectoryEntry(
        user=UserOut.model_validate(user),
        relationship=relationship,
        last_seen_text=format_last_seen(user.is_online, user.last_seen)
    )
