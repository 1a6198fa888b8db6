from fastapi import APIRouter, Depends, status, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict

from app.core.config import settings
from app.core.database import get_db
from app.core.logging_config import logger, set_account_id
from app.schemas.auth import (
    SignupRequest,
    LoginRequest,
    LoginResponse,
    AccountResponse,
    LoginHistoryResponse,
    LoginSessionResponse,
    ProfileUpdate,
    ChangePasswordRequest,
    CloseAccountRequest,
)
from app.modules.auth.dependencies import get_current_account, get_fanout, get_token_claims
from app.services.account_lifecycle import AccountLifecycleService
from app.services.fanout import EventFanout
from app.services.auth_service import AuthService, ClientInfo
from app.utils.pagination import create_paginated_response

router = APIRouter()


@router.post("/signup", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def signup(
    payload: SignupRequest,
    db: AsyncSession = Depends(get_db)
):
    """Register a student or vendor account; it starts pending review"""
    account = await AuthService(db).signup(
        payload.role,
        payload.password,
        name=payload.name,
        email=payload.email,
        **payload.profile_fields(),
    )
    return AccountResponse.model_validate(account)


@router.post("/login", response_model=LoginResponse)
async def login(
    request: Request,
    credentials: LoginRequest,
    db: AsyncSession = Depends(get_db)
):
    """
    Login to the portal of one role.

    Every rejection is recorded in the login history with its reason.
    """
    result = await AuthService(db).login(
        credentials.email,
        credentials.password,
        credentials.role,
        ClientInfo.from_request(request),
    )
    set_account_id(str(result.account.id))

    return {
        "access_token": result.access_token,
        "token_type": "bearer",
        "expires_in": settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "account": AccountResponse.model_validate(result.account),
    }


@router.get("/me", response_model=AccountResponse)
async def get_me(account=Depends(get_current_account)):
    return AccountResponse.model_validate(account)


@router.put("/profile", response_model=AccountResponse)
async def update_profile(
    payload: ProfileUpdate,
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """Edit the caller's own profile fields"""
    updated = await AuthService(db).update_profile(account, **payload.changes())
    return AccountResponse.model_validate(updated)


@router.post("/change-password")
async def change_password(
    payload: ChangePasswordRequest,
    account=Depends(get_current_account),
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db)
):
    """Change the password; every other open login session is ended"""
    ended = await AuthService(db).change_password(
        account, payload.current_password, payload.new_password, keep_session_id=claims.get("sid")
    )
    return {"message": "Password changed successfully", "success": True, "sessions_ended": ended}


@router.delete("/account")
async def close_account(
    payload: CloseAccountRequest,
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    """
    Permanently delete the caller's account.

    Requires the current password. Live realtime connections are closed
    and admins are notified.
    """
    AuthService(db).confirm_password(account, payload.password)
    await AccountLifecycleService(db, fanout).close_own_account(account)
    return {"message": "Account deleted successfully", "success": True}


@router.post("/logout")
async def logout(
    account=Depends(get_current_account),
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db)
):
    """End the login session behind this token"""
    ended = await AuthService(db).logout(str(account.id), claims.get("sid"))
    logger.log_auth_event(
        event="logout",
        success=True,
        user_email=account.email,
        sessions_ended=ended
    )
    return {"message": "Successfully logged out", "success": True}


@router.get("/login-history", response_model=LoginHistoryResponse)
async def login_history(
    page: int = Query(1, ge=1),
    page_size: int = Query(10, ge=1, le=100),
    days: int = Query(30, ge=1, le=365),
    account=Depends(get_current_account),
    db: AsyncSession = Depends(get_db)
):
    """Recent login attempts for the current account, with summary stats"""
    service = AuthService(db)
    sessions, total = await service.login_history(str(account.id), page=page, limit=page_size)
    stats = await service.login_stats(str(account.id), days=days)

    response = create_paginated_response(
        [LoginSessionResponse.model_validate(s) for s in sessions], total, page, page_size
    )
    response["stats"] = stats
    return response
