from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from chatline.schemas.user import UserOut


class IdentityTokens(BaseModel):
    id_token: str
    refresh_token: str
    user_id: str
    email: str = ""
    expires_in: int = 3600


class Token(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int


class AuthResponse(BaseModel):
    user: UserOut
    token: Token


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    display_name: str = Field(..., max_length=100)
    photo_url: Optional[str] = None


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class RefreshTokenRequest(BaseModel):
    refresh_token: str


class PasswordResetRequest(BaseModel):
    email: EmailStr


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class DeleteAccountRequest(BaseModel):
    password: str
