from typing import List, Optional, Tuple
import logging

from chatline.core.document_store import DocumentStore
from chatline.core.identity import IdentityClient
from chatline.models.user import User
from chatline.repositories.user import UserRepository
from chatline.schemas.user import RelationshipStatus
from chatline.services.auth import clean_display_name
from chatline.services.friendship import FriendshipService, matches_user
from chatline.services.storage import StorageService
from chatline.utils.exceptions import NotFoundError, StorageError
from chatline.utils.time import to_millis, utcnow

logger = logging.getLogger(__name__)


class UserService:
    def __init__(
        self,
        store: DocumentStore,
        identity: Optional[IdentityClient] = None,
        storage: Optional[StorageService] = None
    ):
        self.user_repo = UserRepository(store)
        self.friendship_service = FriendshipService(store)
        self.identity = identity
        self.storage = storage or StorageService()

    async def get_user(self, user_id: str) -> User:
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise NotFoundError("User not found")
        return user

    async def list_directory(
        self,
        current_user_id: str,
        query: Optional[str] = None
    ) -> List[Tuple[User, RelationshipStatus]]:
        """Every other user matching the query, with the caller's relationship to them"""
        users = [
            user for user in await self.user_repo.list_all()
            if user.id != current_user_id and matches_user(user, query)
        ]
        users.sort(key=lambda user: user.display_name.lower())
        statuses = await self.friendship_service.get_relationship_statuses(
            current_user_id, [user.id for user in users]
        )
        return [(user, statuses[user.id]) for user in users]

    async def set_online_status(self, user_id: str, is_online: bool) -> bool:
        return await self.user_repo.update_online_status(user_id, is_online, to_millis(utcnow()))

    async def update_display_name(self, user: User, display_name: str, id_token: str) -> User:
        name = clean_display_name(display_name)
        if self.identity:
            await self.identity.update_profile(id_token, display_name=name)
        await self.user_repo.update(user.id, {"displayName": name})
        return user.copy_with(display_name=name)

    async def _discard_image(self, url: str) -> None:
        if not url:
            return
        try:
            await self.storage.delete_image(url)
        except StorageError as e:
            logger.warning(f"Could not delete previous profile picture {url}: {e}")

    async def update_profile_picture(
        self,
        user: User,
        content: bytes,
        filename: str,
        id_token: str,
        content_type: Optional[str] = None
    ) -> User:
        photo_url = await self.storage.upload_image(content, filename, user.id, content_type)
        if self.identity:
            await self.identity.update_profile(id_token, photo_url=photo_url)
        await self.user_repo.update(user.id, {"photoURL": photo_url})
        await self._discard_image(user.photo_url)
        return user.copy_with(photo_url=photo_url)

    async def remove_profile_picture(self, user: User, id_token: str) -> User:
        if self.identity:
            await self.identity.update_profile(id_token, photo_url="")
        await self.user_repo.update(user.id, {"photoURL": ""})
        await self._discard_image(user.photo_url)
        return user.copy_with(photo_url="")

    def watch_user(self, user_id: str):
        return self.user_repo.watch_user(user_id)

    def watch_users(self):
        return self.user_repo.watch_all()
