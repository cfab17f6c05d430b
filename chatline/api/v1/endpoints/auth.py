from fastapi import APIRouter, Depends, status

from chatline.api.deps import get_current_user
from chatline.core.document_store import DocumentStore, get_store
from chatline.core.identity import IdentityClient, get_identity
from chatline.models.user import User
from chatline.schemas.auth import (
    AuthResponse,
    ChangePasswordRequest,
    DeleteAccountRequest,
    IdentityTokens,
    LoginRequest,
    PasswordResetRequest,
    RefreshTokenRequest,
    RegisterRequest,
    Token,
)
from chatline.schemas.user import UserOut
from chatline.services.auth import AuthService

router = APIRouter()


def _token(tokens: IdentityTokens) -> Token:
    return Token(
        access_token=tokens.id_token,
        refresh_token=tokens.refresh_token,
        token_type="bearer",
        expires_in=tokens.expires_in
    )


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
async def register(
    data: RegisterRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Register a new account"""
    auth_service = AuthService(store, identity)
    user, tokens = await auth_service.register(data.email, data.password, data.display_name, data.photo_url)
    return AuthResponse(user=UserOut.model_validate(user), token=_token(tokens))


@router.post("/login", response_model=AuthResponse)
async def login(
    data: LoginRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Login with email and password"""
    auth_service = AuthService(store, identity)
    user, tokens = await auth_service.login(data.email, data.password)
    return AuthResponse(user=UserOut.model_validate(user), token=_token(tokens))


@router.post("/logout")
async def logout(
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Mark the user offline"""
    auth_service = AuthService(store, identity)
    await auth_service.logout(current_user.id)
    return {"message": "Signed out successfully"}


@router.post("/refresh", response_model=Token)
async def refresh_token(
    data: RefreshTokenRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Exchange a refresh token for a new ID token"""
    auth_service = AuthService(store, identity)
    return _token(await auth_service.refresh_tokens(data.refresh_token))


@router.post("/forgot-password")
async def forgot_password(
    data: PasswordResetRequest,
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Send a password reset email"""
    auth_service = AuthService(store, identity)
    await auth_service.send_password_reset(data.email)
    return {"message": "Password reset email sent"}


@router.post("/change-password", response_model=Token)
async def change_password(
    data: ChangePasswordRequest,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Change the password after confirming the current one"""
    auth_service = AuthService(store, identity)
    tokens = await auth_service.change_password(
        current_user, data.current_password, data.new_password, data.confirm_password
    )
    return _token(tokens)


@router.post("/delete-account")
async def delete_account(
    data: DeleteAccountRequest,
    current_user: User = Depends(get_current_user),
    store: DocumentStore = Depends(get_store),
    identity: IdentityClient = Depends(get_identity)
):
    """Permanently delete the account"""
    auth_service = AuthService(store, identity)
    await auth_service.delete_account(current_user, data.password)
    return {"message": "Account deleted"}
