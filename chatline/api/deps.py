from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from typing import Optional

from chatline.core.document_store import DocumentStore, get_store
from chatline.core.identity import IdentityClient, get_identity
from chatline.models.user import User
from chatline.services.auth import AuthService

security = HTTPBearer(auto_error=False)


async def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security)
) -> str:
    """Raw ID token from the Authorization header"""
    if not credentials or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


async def get_current_user(
    token: str = Depends(get_bearer_token),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
) -> User:
    """Get the user behind a verified ID token"""
    auth_service = AuthService(store, identity)
    return await auth_service.authenticate_token(token)
