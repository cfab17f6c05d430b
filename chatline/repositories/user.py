from typing import Any, Dict, List, Optional
import logging

from chatline.core.config import settings
from chatline.core.document_store import DocumentStore
from chatline.core.redis import RedisClient, redis_client
from chatline.models.user import User
from chatline.utils.exceptions import gateway_call

logger = logging.getLogger(__name__)


class UserRepository:
    collection = "users"

    def __init__(self, store: DocumentStore, cache: Optional[RedisClient] = None):
        self.store = store
        self.cache = cache or redis_client

    def _get_cache_key(self, user_id: str) -> str:
        """Get cache key for a user profile"""
        return f"user:profile:{user_id}"

    async def _invalidate(self, user_id: str) -> None:
        await self.cache.delete(self._get_cache_key(user_id))

    @gateway_call("create user")
    async def create(self, user: User) -> User:
        await self.store.set(self.collection, user.id, user.to_map())
        await self._invalidate(user.id)
        return user

    @gateway_call("get user")
    async def get_by_id(self, user_id: str) -> Optional[User]:
        """Get a user profile, served from Redis when cached"""
        cache_key = self._get_cache_key(user_id)
        cached_data = await self.cache.get_json(cache_key)
        if cached_data:
            return User.from_map(cached_data)

        data = await self.store.get(self.collection, user_id)
        if data is None:
            return None

        await self.cache.set_json(cache_key, data, expire=settings.USER_CACHE_TTL_SECONDS)
        return User.from_map(data)

    async def load(self, user_id: str) -> Optional[User]:
        """Uncached read used by live views"""
        data = await self.store.get(self.collection, user_id)
        return User.from_map(data) if data is not None else None

    @gateway_call("get users")
    async def get_many(self, user_ids: List[str]) -> Dict[str, User]:
        users: Dict[str, User] = {}
        for user_id in dict.fromkeys(user_ids):
            user = await self.get_by_id(user_id)
            if user:
                users[user_id] = user
        return users

    @gateway_call("list users")
    async def list_all(self) -> List[User]:
        rows = await self.store.query(self.collection).get()
        return [User.from_map(row) for row in rows]

    @gateway_call("update user")
    async def update(self, user_id: str, fields: Dict[str, Any]) -> None:
        await self.store.update(self.collection, user_id, fields)
        await self._invalidate(user_id)

    @gateway_call("delete user")
    async def delete(self, user_id: str) -> bool:
        deleted = await self.store.delete(self.collection, user_id)
        await self._invalidate(user_id)
        return deleted

    @gateway_call("update online status")
    async def update_online_status(self, user_id: str, is_online: bool, last_seen_ms: int) -> bool:
        """Set the presence flag; a missing user is logged and skipped"""
        if not await self.store.exists(self.collection, user_id):
            logger.warning(f"User document {user_id} does not exist, skipping online status update")
            return False
        await self.update(user_id, {"isOnline": is_online, "lastSeen": last_seen_ms})
        return True

    def watch_user(self, user_id: str):
        return self.store.watch(lambda: self.load(user_id), [self.collection])

    def watch_all(self):
        async def load_all() -> List[User]:
            rows = await self.store.query(self.collection).get()
            return [User.from_map(row) for row in rows]
        return self.store.watch(load_all, [self.collection])
