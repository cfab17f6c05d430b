import asyncio
import uuid
from collections.abc import AsyncGenerator
from typing import Any

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import StaticPool
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import chatline.models  # noqa: F401
from chatline.api.deps import get_bearer_token, get_current_user
from chatline.core.change_feed import ChangeFeed
from chatline.core.database import Base
from chatline.core.document_store import DocumentStore, get_store
from chatline.core.identity import get_identity
from chatline.core.redis import redis_client
from chatline.main import app
from chatline.models.user import User
from chatline.repositories.user import UserRepository
from chatline.schemas.auth import IdentityTokens
from chatline.services.friendship import FriendshipService
from chatline.utils.exceptions import AuthenticationError, ConflictError
from chatline.utils.time import utcnow

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakeRedis:
    """In-memory Redis mock for testing."""

    def __init__(self):
        self._store: dict[str, str] = {}
        self._ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None) -> bool:
        self._store[key] = str(value)
        if ex:
            self._ttls[key] = ex
        return True

    async def delete(self, key: str) -> int:
        return 1 if self._store.pop(key, None) is not None else 0

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        pass


class FakeIdentity:
    """In-memory stand-in for the identity provider client."""

    def __init__(self):
        self.accounts: dict[str, dict[str, Any]] = {}
        self.reset_emails: list[str] = []

    def _tokens(self, uid: str) -> IdentityTokens:
        return IdentityTokens(
            id_token=f"token-{uid}",
            refresh_token=f"refresh-{uid}",
            user_id=uid,
            email=self.accounts[uid]["email"],
        )

    def _uid(self, id_token: str) -> str:
        uid = id_token.removeprefix("token-")
        if uid not in self.accounts:
            raise AuthenticationError("Failed to verify token: INVALID_ID_TOKEN")
        return uid

    async def sign_up(self, email: str, password: str) -> IdentityTokens:
        if any(account["email"] == email for account in self.accounts.values()):
            raise ConflictError("Failed to register: EMAIL_EXISTS")
        uid = uuid.uuid4().hex[:12]
        self.accounts[uid] = {"email": email, "password": password}
        return self._tokens(uid)

    async def sign_in(self, email: str, password: str) -> IdentityTokens:
        for uid, account in self.accounts.items():
            if account["email"] == email and account["password"] == password:
                return self._tokens(uid)
        raise AuthenticationError("Failed to sign in: INVALID_LOGIN_CREDENTIALS")

    async def update_profile(self, id_token_value, display_name=None, photo_url=None) -> None:
        account = self.accounts[self._uid(id_token_value)]
        if display_name is not None:
            account["displayName"] = display_name
        if photo_url is not None:
            account["photoUrl"] = photo_url

    async def change_password(self, id_token_value: str, new_password: str) -> IdentityTokens:
        uid = self._uid(id_token_value)
        self.accounts[uid]["password"] = new_password
        return self._tokens(uid)

    async def send_password_reset(self, email: str) -> None:
        self.reset_emails.append(email)

    async def delete_account(self, id_token_value: str) -> None:
        del self.accounts[self._uid(id_token_value)]

    async def refresh(self, refresh_token: str) -> IdentityTokens:
        return self._tokens(refresh_token.removeprefix("refresh-"))

    async def verify_id_token(self, token: str) -> dict[str, Any]:
        return {"user_id": self._uid(token)}


async def tick() -> None:
    """Let the millisecond clock move on"""
    await asyncio.sleep(0.005)


@pytest.fixture(autouse=True)
def fake_redis():
    fake = FakeRedis()
    redis_client.redis = fake
    yield fake
    redis_client.redis = None


@pytest.fixture
async def db_engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture
async def store(db_engine) -> DocumentStore:
    session_factory = async_sessionmaker(
        db_engine, class_=AsyncSession, expire_on_commit=False
    )
    return DocumentStore(session_factory, ChangeFeed())


@pytest.fixture
def identity() -> FakeIdentity:
    return FakeIdentity()


@pytest.fixture
def make_user(store: DocumentStore):
    async def _make_user(user_id: str, display_name: str, email: str | None = None) -> User:
        now = utcnow()
        user = User(
            id=user_id,
            email=email or f"{user_id}@example.com",
            display_name=display_name,
            last_seen=now,
            created_at=now,
        )
        return await UserRepository(store).create(user)
    return _make_user


@pytest.fixture
async def alice(make_user) -> User:
    return await make_user("alice", "Alice Adams")


@pytest.fixture
async def bob(make_user) -> User:
    return await make_user("bob", "Bob Brown")


@pytest.fixture
async def carol(make_user) -> User:
    return await make_user("carol", "Carol Clark")


@pytest.fixture
def befriend(store: DocumentStore):
    async def _befriend(sender: User, receiver: User):
        service = FriendshipService(store)
        request = await service.send_friend_request(sender.id, receiver.id)
        await service.respond_to_friend_request(request.id, receiver.id, accept=True)
        return await service.get_friendship(sender.id, receiver.id)
    return _befriend


@pytest.fixture
async def client(store: DocumentStore, identity: FakeIdentity, alice: User) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_store():
        return store

    async def override_get_identity():
        return identity

    async def override_get_current_user():
        return alice

    async def override_get_bearer_token():
        return f"token-{alice.id}"

    app.dependency_overrides[get_store] = override_get_store
    app.dependency_overrides[get_identity] = override_get_identity
    app.dependency_overrides[get_current_user] = override_get_current_user
    app.dependency_overrides[get_bearer_token] = override_get_bearer_token

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
