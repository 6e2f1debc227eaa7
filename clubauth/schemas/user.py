from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr


class RegisterRequest(BaseModel):
    email: EmailStr
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    preferred_name: Optional[str] = None
    phone: Optional[str] = None
    pronouns: Optional[str] = None
    school_name: Optional[str] = None
    user_linkedin: Optional[str] = None
    user_github: Optional[str] = None

    def profile(self) -> dict:
        return self.model_dump(exclude={"email", "password"}, exclude_none=True)


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class EmailRequest(BaseModel):
    email: EmailStr


class TokenRequest(BaseModel):
    token: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str


class ProfileUpdate(BaseModel):
    """Mutable profile fields; anything else is rejected."""

    model_config = ConfigDict(extra="forbid")

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    preferred_name: Optional[str] = None
    phone: Optional[str] = None
    pronouns: Optional[str] = None
    school_name: Optional[str] = None
    user_linkedin: Optional[str] = None
    user_github: Optional[str] = None


class UserRead(BaseModel):
    user_id: str
    email: str
    first_name: str
    last_name: str
    preferred_name: Optional[str] = None
    phone: Optional[str] = None
    pronouns: Optional[str] = None
    school_name: Optional[str] = None
    user_linkedin: Optional[str] = None
    user_github: Optional[str] = None
    is_admin: bool
    email_is_verified: bool
    created_at: datetime
    updated_at: datetime


class UserResponse(BaseModel):
    user: UserRead


class MessageResponse(BaseModel):
    message: str


class UserMessageResponse(BaseModel):
    message: str
    user: UserRead


class RegisterResponse(BaseModel):
    message: str
    user: UserRead
    dev: Optional[dict] = None
