from typing import List

from fastapi import APIRouter, Depends, Query, Request

from clubauth.api.deps import client_ip, get_auth_service, get_current_admin
from clubauth.core.logging import log_user_action
from clubauth.db.store import Account
from clubauth.schemas.user import UserMessageResponse, UserRead
from clubauth.services.auth_service import AuthService

router = APIRouter()


# Admin endpoints
@router.get("/", response_model=List[UserRead])
async def list_users(
    request: Request,
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    admin: Account = Depends(get_current_admin),
    service: AuthService = Depends(get_auth_service),
):
    """List all users (admin only)"""
    accounts = await service.list_accounts(skip=skip, limit=limit)
    log_user_action("list_users", admin.user_id, ip_address=client_ip(request))
    return [UserRead(**account.public_profile()) for account in accounts]


@router.get("/{user_id}", response_model=UserRead)
async def get_user_by_id(
    request: Request,
    user_id: str,
    admin: Account = Depends(get_current_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Get user by ID (admin only)"""
    account = await service.get_profile(user_id)
    log_user_action("view_user", admin.user_id, user_id, client_ip(request))
    return UserRead(**account.public_profile())


@router.post("/{user_id}/unlock", response_model=UserMessageResponse)
async def unlock_user(
    request: Request,
    user_id: str,
    admin: Account = Depends(get_current_admin),
    service: AuthService = Depends(get_auth_service),
):
    """Clear the login lockout for a user (admin only)"""
    account = await service.unlock_account(user_id)
    log_user_action("unlock_user", admin.user_id, user_id, client_ip(request))
    return UserMessageResponse(
        message=f"User {account.email} unlocked successfully",
        user=UserRead(**account.public_profile()),
    )
