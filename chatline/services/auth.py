from typing import Optional, Tuple
import logging

from chatline.core.document_store import DocumentStore
from chatline.core.identity import IdentityClient
from chatline.models.user import User
from chatline.repositories.user import UserRepository
from chatline.schemas.auth import IdentityTokens
from chatline.utils.exceptions import AuthenticationError, NotFoundError, ValidationError
from chatline.utils.time import to_millis, utcnow

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6


def validate_new_password(password: str) -> None:
    if not password:
        raise ValidationError("Please enter a new password")
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters")


def validate_password_change(current_password: str, new_password: str, confirm_password: str) -> None:
    if not current_password:
        raise ValidationError("Please enter your current password")
    validate_new_password(new_password)
    if new_password == current_password:
        raise ValidationError("New password must be different from current password")
    if not confirm_password:
        raise ValidationError("Please confirm your new password")
    if new_password != confirm_password:
        raise ValidationError("Passwords do not match")


def clean_display_name(display_name: str) -> str:
    name = (display_name or "").strip()
    if not name:
        raise ValidationError("Display name cannot be empty")
    return name


class AuthService:
    def __init__(self, store: DocumentStore, identity: IdentityClient):
        self.user_repo = UserRepository(store)
        self.identity = identity

    async def register(
        self,
        email: str,
        password: str,
        display_name: str,
        photo_url: Optional[str] = None
    ) -> Tuple[User, IdentityTokens]:
        """Create the identity account and its user document"""
        validate_new_password(password)
        name = clean_display_name(display_name)

        tokens = await self.identity.sign_up(email, password)
        await self.identity.update_profile(tokens.id_token, display_name=name, photo_url=photo_url or None)

        now = utcnow()
        user = User(
            id=tokens.user_id,
            email=email,
            display_name=name,
            photo_url=photo_url or "",
            is_online=True,
            last_seen=now,
            created_at=now
        )
        await self.user_repo.create(user)
        logger.info(f"Registered user {user.id}")
        return user, tokens

    async def login(self, email: str, password: str) -> Tuple[User, IdentityTokens]:
        tokens = await self.identity.sign_in(email, password)
        await self.user_repo.update_online_status(tokens.user_id, True, to_millis(utcnow()))

        user = await self.user_repo.get_by_id(tokens.user_id)
        if not user:
            raise NotFoundError("User profile not found")
        return user, tokens

    async def logout(self, user_id: str) -> None:
        await self.user_repo.update_online_status(user_id, False, to_millis(utcnow()))

    async def refresh_tokens(self, refresh_token: str) -> IdentityTokens:
        return await self.identity.refresh(refresh_token)

    async def send_password_reset(self, email: str) -> None:
        await self.identity.send_password_reset(email)

    async def _reauthenticate(self, user: User, password: str) -> IdentityTokens:
        try:
            tokens = await self.identity.sign_in(user.email, password)
        except AuthenticationError as e:
            raise AuthenticationError("Current password is incorrect") from e
        if tokens.user_id != user.id:
            raise AuthenticationError("Current password is incorrect")
        return tokens

    async def change_password(
        self,
        user: User,
        current_password: str,
        new_password: str,
        confirm_password: str
    ) -> IdentityTokens:
        """Re-authenticate with the current password, then set the new one"""
        validate_password_change(current_password, new_password, confirm_password)
        tokens = await self._reauthenticate(user, current_password)
        new_tokens = await self.identity.change_password(tokens.id_token, new_password)
        logger.info(f"Password changed for user {user.id}")
        return new_tokens

    async def delete_account(self, user: User, password: str) -> None:
        """Remove the user document, then the identity account"""
        tokens = await self._reauthenticate(user, password)
        await self.user_repo.delete(user.id)
        await self.identity.delete_account(tokens.id_token)
        logger.info(f"Deleted account {user.id}")

    async def authenticate_token(self, token: str) -> User:
        """Resolve a bearer ID token to its user document"""
        claims = await self.identity.verify_id_token(token)
        user_id = claims.get("user_id") or claims.get("sub")
        user = await self.user_repo.get_by_id(user_id)
        if not user:
            raise AuthenticationError("User not found")
        return user
