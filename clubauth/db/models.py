import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime
from sqlmodel import Field, SQLModel


def utc_now():
    return datetime.now(timezone.utc)


def _optional_timestamp():
    return Field(default=None, sa_column=Column(DateTime(timezone=True), nullable=True))


class User(SQLModel, table=True):
    id: uuid.UUID = Field(default_factory=uuid.uuid4, primary_key=True)
    email: str = Field(index=True, nullable=False, unique=True, max_length=320)
    first_name: str = Field(max_length=50)
    last_name: str = Field(max_length=50)
    preferred_name: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=30)
    pronouns: Optional[str] = Field(default=None, max_length=20)
    school_name: Optional[str] = Field(default=None, max_length=100)
    user_linkedin: Optional[str] = Field(default=None, max_length=200)
    user_github: Optional[str] = Field(default=None, max_length=200)
    created_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )
    updated_at: datetime = Field(
        default_factory=utc_now, sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class Credential(SQLModel, table=True):
    user_id: uuid.UUID = Field(foreign_key="user.id", primary_key=True)
    username: str = Field(index=True, nullable=False, unique=True, max_length=320)
    password_hash: str
    password_salt: str = Field(max_length=64)
    is_admin: bool = False
    email_is_verified: bool = False
    email_verification_token: Optional[str] = Field(default=None, index=True, max_length=64)
    email_verification_expires: Optional[datetime] = _optional_timestamp()
    password_reset_token: Optional[str] = Field(default=None, index=True, max_length=64)
    password_reset_expires: Optional[datetime] = _optional_timestamp()
