from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request, Response, status
from fastapi.responses import RedirectResponse

from clubauth.api.deps import client_ip, get_auth_service, get_current_user, get_mailer
from clubauth.core.config import settings
from clubauth.core.errors import InvalidToken, NotAuthenticated
from clubauth.core.rate_limit import limiter
from clubauth.core.tokens import TokenKind
from clubauth.db.store import Account
from clubauth.schemas.token import AccessToken, RefreshRequest, Token
from clubauth.schemas.user import (
    ChangePasswordRequest,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    ProfileUpdate,
    RegisterRequest,
    RegisterResponse,
    ResetPasswordRequest,
    TokenRequest,
    UserMessageResponse,
    UserRead,
    UserResponse,
)
from clubauth.services.auth_service import AuthContext, AuthService
from clubauth.services.email import EmailService

router = APIRouter()

RESEND_MESSAGE = (
    "If an unverified account exists for that email, a new verification link has been sent."
)
FORGOT_MESSAGE = "If an account exists for that email, a password reset link has been sent."


def _user(account: Account) -> UserRead:
    return UserRead(**account.public_profile())


def _expires_in(service: AuthService, kind: TokenKind) -> int:
    return int(service.tokens.ttl_for(kind).total_seconds())


def _set_refresh_cookie(response: Response, token: str, max_age: int) -> None:
    response.set_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        value=token,
        max_age=max_age,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
        path=settings.REFRESH_COOKIE_PATH,
    )


def _clear_refresh_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.REFRESH_COOKIE_NAME,
        path=settings.REFRESH_COOKIE_PATH,
        httponly=True,
        secure=settings.REFRESH_COOKIE_SECURE,
        samesite=settings.REFRESH_COOKIE_SAMESITE,
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
@limiter.limit(settings.RATE_LIMIT_REGISTER)
async def register(
    request: Request,
    payload: RegisterRequest,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
    mailer: EmailService = Depends(get_mailer),
):
    result = await service.register(payload.email, payload.password, payload.profile())
    background_tasks.add_task(mailer.deliver, result.delivery)

    body = RegisterResponse(
        message="Registration successful. Please check your email to verify your account.",
        user=_user(result.account),
    )
    if settings.DEBUG:
        body.dev = {
            "verification_token": result.verification_token,
            "verification_link": mailer.verification_link(result.verification_token),
        }
    return body


@router.post("/login", response_model=Token)
@limiter.limit(settings.RATE_LIMIT_LOGIN)
async def login(
    request: Request,
    response: Response,
    payload: LoginRequest,
    service: AuthService = Depends(get_auth_service),
):
    result = await service.login(
        payload.email,
        payload.password,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    token = Token(
        access_token=result.access_token,
        expires_in=_expires_in(service, TokenKind.ACCESS),
        user=_user(result.account),
    )
    if settings.REFRESH_TOKEN_TRANSPORT == "cookie":
        _set_refresh_cookie(
            response, result.refresh_token, _expires_in(service, TokenKind.REFRESH)
        )
    else:
        token.refresh_token = result.refresh_token
    return token


@router.post("/logout", response_model=MessageResponse)
async def logout(response: Response):
    # session tokens are stateless; dropping the cookie ends the refresh chain client-side
    _clear_refresh_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.post("/refresh", response_model=AccessToken)
async def refresh(
    request: Request,
    payload: Optional[RefreshRequest] = None,
    service: AuthService = Depends(get_auth_service),
):
    if settings.REFRESH_TOKEN_TRANSPORT == "cookie":
        refresh_token = request.cookies.get(settings.REFRESH_COOKIE_NAME)
    else:
        refresh_token = payload.refresh_token if payload else None
    if not refresh_token:
        raise NotAuthenticated("Refresh token required")

    try:
        access_token, _ = await service.refresh_access_token(refresh_token)
    except InvalidToken as exc:
        raise NotAuthenticated("Invalid refresh token") from exc
    return AccessToken(
        access_token=access_token, expires_in=_expires_in(service, TokenKind.ACCESS)
    )


@router.post("/verify-email", response_model=UserMessageResponse)
async def verify_email(payload: TokenRequest, service: AuthService = Depends(get_auth_service)):
    account = await service.verify_email(payload.token)
    return UserMessageResponse(message="Email verified successfully", user=_user(account))


@router.get("/verify-email/{token}")
async def verify_email_link(token: str, service: AuthService = Depends(get_auth_service)):
    """Target of the emailed link; redirects to the frontend when one is configured."""
    frontend = settings.FRONTEND_BASE_URL.rstrip("/") if settings.FRONTEND_BASE_URL else None
    try:
        account = await service.verify_email(token)
    except InvalidToken:
        if frontend:
            return RedirectResponse(f"{frontend}/email-verified?status=error", status_code=302)
        raise
    if frontend:
        return RedirectResponse(f"{frontend}/email-verified?status=success", status_code=302)
    return UserMessageResponse(message="Email verified successfully", user=_user(account))


@router.post("/resend-verification", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_EMAIL)
async def resend_verification(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
    mailer: EmailService = Depends(get_mailer),
):
    delivery = await service.resend_verification(payload.email)
    if delivery is not None:
        background_tasks.add_task(mailer.deliver, delivery)
    return MessageResponse(message=RESEND_MESSAGE)


@router.post("/forgot-password", response_model=MessageResponse)
@limiter.limit(settings.RATE_LIMIT_EMAIL)
async def forgot_password(
    request: Request,
    payload: EmailRequest,
    background_tasks: BackgroundTasks,
    service: AuthService = Depends(get_auth_service),
    mailer: EmailService = Depends(get_mailer),
):
    delivery = await service.request_password_reset(payload.email)
    if delivery is not None:
        background_tasks.add_task(mailer.deliver, delivery)
    return MessageResponse(message=FORGOT_MESSAGE)


@router.post("/reset-password", response_model=MessageResponse)
async def reset_password(
    payload: ResetPasswordRequest, service: AuthService = Depends(get_auth_service)
):
    await service.reset_password(payload.token, payload.password)
    return MessageResponse(message="Password has been reset successfully")


@router.get("/profile", response_model=UserResponse)
async def read_profile(
    current_user: AuthContext = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    account = await service.get_profile(current_user.user_id)
    return UserResponse(user=_user(account))


@router.put("/profile", response_model=UserMessageResponse)
async def update_profile(
    payload: ProfileUpdate,
    current_user: AuthContext = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    account = await service.update_profile(
        current_user.user_id, payload.model_dump(exclude_unset=True)
    )
    return UserMessageResponse(message="Profile updated successfully", user=_user(account))


@router.put("/change-password", response_model=MessageResponse)
async def change_password(
    payload: ChangePasswordRequest,
    current_user: AuthContext = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
):
    await service.change_password(
        current_user.user_id, payload.current_password, payload.new_password
    )
    return MessageResponse(message="Password changed successfully")
