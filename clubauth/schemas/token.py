from typing import Optional

from pydantic import BaseModel, model_serializer

from clubauth.schemas.user import UserRead


class AccessToken(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class Token(AccessToken):
    user: UserRead
    # only present when refresh tokens travel in the body
    refresh_token: Optional[str] = None

    @model_serializer(mode="wrap")
    def _omit_cookie_refresh_token(self, handler):
        data = handler(self)
        if data.get("refresh_token") is None:
            data.pop("refresh_token", None)
        return data


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None
