from typing import Any, Dict, List, Optional
import logging

import httpx
from google.auth import exceptions as google_exceptions
from google.auth.transport import requests as google_requests
from google.oauth2 import id_token
from starlette.concurrency import run_in_threadpool

from chatline.core.config import settings
from chatline.schemas.auth import IdentityTokens
from chatline.utils.exceptions import AuthenticationError, ConflictError, GatewayError

logger = logging.getLogger(__name__)

CREDENTIAL_ERRORS = {
    "EMAIL_NOT_FOUND",
    "INVALID_PASSWORD",
    "INVALID_LOGIN_CREDENTIALS",
    "INVALID_ID_TOKEN",
    "INVALID_REFRESH_TOKEN",
    "TOKEN_EXPIRED",
    "USER_DISABLED",
    "USER_NOT_FOUND",
    "CREDENTIAL_TOO_OLD_LOGIN_AGAIN",
}
CONFLICT_ERRORS = {"EMAIL_EXISTS"}


class IdentityClient:
    """Client of the hosted identity provider (Firebase Authentication REST API)"""

    def __init__(
        self,
        api_key: Optional[str] = None,
        project_id: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.api_key = api_key if api_key is not None else settings.FIREBASE_API_KEY
        self.project_id = project_id if project_id is not None else settings.FIREBASE_PROJECT_ID
        self.transport = transport
        self._request = google_requests.Request()

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=settings.IDENTITY_TIMEOUT_SECONDS
        )

    def _raise_for_error(self, action: str, response: httpx.Response):
        try:
            payload = response.json()
        except ValueError:
            payload = {}
        error = payload.get("error") if isinstance(payload, dict) else None
        if isinstance(error, dict):
            message = str(error.get("message", response.status_code))
        elif isinstance(error, str):
            message = error.upper()
        else:
            message = f"HTTP {response.status_code}"
        code = message.split(" ")[0].split(":")[0]

        logger.warning(f"Identity provider rejected {action}: {message}")
        if code in CREDENTIAL_ERRORS:
            raise AuthenticationError(f"Failed to {action}: {message}")
        if code in CONFLICT_ERRORS:
            raise ConflictError(f"Failed to {action}: {message}")
        raise GatewayError(action, message)

    async def _post(self, action: str, endpoint: str, body: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{settings.IDENTITY_TOOLKIT_URL}/{endpoint}"
        try:
            async with self._client() as client:
                response = await client.post(url, params={"key": self.api_key}, json=body)
        except httpx.HTTPError as e:
            raise GatewayError(action, e) from e
        if response.status_code >= 400:
            self._raise_for_error(action, response)
        return response.json()

    @staticmethod
    def _tokens(payload: Dict[str, Any]) -> IdentityTokens:
        return IdentityTokens(
            id_token=payload["idToken"],
            refresh_token=payload["refreshToken"],
            user_id=payload["localId"],
            email=payload.get("email", ""),
            expires_in=int(payload.get("expiresIn", 3600))
        )

    async def sign_up(self, email: str, password: str) -> IdentityTokens:
        payload = await self._post(
            "register",
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True}
        )
        return self._tokens(payload)

    async def sign_in(self, email: str, password: str) -> IdentityTokens:
        payload = await self._post(
            "sign in",
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True}
        )
        return self._tokens(payload)

    async def update_profile(
        self,
        id_token_value: str,
        display_name: Optional[str] = None,
        photo_url: Optional[str] = None
    ) -> None:
        """Update display name and photo; an empty ``photo_url`` removes the photo"""
        body: Dict[str, Any] = {"idToken": id_token_value, "returnSecureToken": False}
        delete_attributes: List[str] = []
        if display_name is not None:
            body["displayName"] = display_name
        if photo_url is not None:
            if photo_url:
                body["photoUrl"] = photo_url
            else:
                delete_attributes.append("PHOTO_URL")
        if delete_attributes:
            body["deleteAttribute"] = delete_attributes
        await self._post("update profile", "accounts:update", body)

    async def change_password(self, id_token_value: str, new_password: str) -> IdentityTokens:
        payload = await self._post(
            "change password",
            "accounts:update",
            {"idToken": id_token_value, "password": new_password, "returnSecureToken": True}
        )
        return self._tokens(payload)

    async def send_password_reset(self, email: str) -> None:
        await self._post(
            "send password reset email",
            "accounts:sendOobCode",
            {"requestType": "PASSWORD_RESET", "email": email}
        )

    async def delete_account(self, id_token_value: str) -> None:
        await self._post("delete account", "accounts:delete", {"idToken": id_token_value})

    async def refresh(self, refresh_token: str) -> IdentityTokens:
        url = f"{settings.SECURE_TOKEN_URL}/token"
        try:
            async with self._client() as client:
                response = await client.post(
                    url,
                    params={"key": self.api_key},
                    data={"grant_type": "refresh_token", "refresh_token": refresh_token}
                )
        except httpx.HTTPError as e:
            raise GatewayError("refresh token", e) from e
        if response.status_code >= 400:
            self._raise_for_error("refresh token", response)
        payload = response.json()
        return IdentityTokens(
            id_token=payload["id_token"],
            refresh_token=payload["refresh_token"],
            user_id=payload["user_id"],
            expires_in=int(payload.get("expires_in", 3600))
        )

    async def verify_id_token(self, token: str) -> Dict[str, Any]:
        """Verify an ID token and return its claims"""
        try:
            claims = await run_in_threadpool(
                id_token.verify_firebase_token,
                token,
                self._request,
                self.project_id or None
            )
        except google_exceptions.TransportError as e:
            raise GatewayError("verify token", e) from e
        except (ValueError, google_exceptions.GoogleAuthError) as e:
            raise AuthenticationError(f"Invalid authentication token: {e}") from e
        if not claims or not (claims.get("user_id") or claims.get("sub")):
            raise AuthenticationError("Invalid authentication token")
        return claims


# Global identity client instance
identity_client = IdentityClient()


async def get_identity() -> IdentityClient:
    """Dependency to get the identity provider client"""
    return identity_client
