"""
Admin Account Management endpoints.

Each transition persists first, then notifies the account's private room
and the admin dashboard room.
"""
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Optional

from app.core.database import get_db
from app.models.account import AccountRole, ApprovalStatus, VerificationStatus
from app.modules.auth.dependencies import get_actor, get_current_admin, get_fanout
from app.schemas.account import (
    AccountListResponse,
    AdminCreate,
    ApprovalDecision,
    ReasonRequest,
    VerificationDecision,
)
from app.schemas.auth import AccountResponse
from app.services.account_lifecycle import AccountLifecycleService
from app.services.account_store import AccountStore
from app.services.audit import record_admin_action
from app.services.auth_service import AuthService
from app.services.events import Actor
from app.services.fanout import EventFanout
from app.utils.pagination import PaginationParams, create_paginated_response, pagination_params

router = APIRouter()


def lifecycle(db: AsyncSession, fanout: EventFanout) -> AccountLifecycleService:
    return AccountLifecycleService(db, fanout)


@router.get("/{role}", response_model=AccountListResponse)
async def list_accounts(
    role: AccountRole,
    verification_status: Optional[VerificationStatus] = None,
    approval_status: Optional[ApprovalStatus] = None,
    is_suspended: Optional[bool] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = Query(None, max_length=100),
    pagination: PaginationParams = Depends(pagination_params),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
):
    """List accounts of one role, filtered by lifecycle status"""
    accounts, total = await AccountStore(db).list_accounts(
        role,
        verification_status=verification_status,
        approval_status=approval_status,
        is_suspended=is_suspended,
        is_active=is_active,
        search=search,
        offset=pagination.offset,
        limit=pagination.limit,
    )
    return create_paginated_response(
        [AccountResponse.model_validate(a) for a in accounts], total, pagination.page, pagination.page_size
    )


@router.post("/admins", response_model=AccountResponse, status_code=status.HTTP_201_CREATED)
async def create_admin(
    payload: AdminCreate,
    current_admin=Depends(get_current_admin),
    actor: Actor = Depends(get_actor),
    db: AsyncSession = Depends(get_db),
):
    """Create another admin account (approved and verified from the start)"""
    account = await AuthService(db).signup(
        AccountRole.ADMIN,
        payload.password,
        name=payload.name,
        email=payload.email,
        department=payload.department,
        approval_status=ApprovalStatus.APPROVED,
        verification_status=VerificationStatus.VERIFIED,
        is_verified=True,
    )
    record_admin_action(db, actor, "admin_created", AccountRole.ADMIN.value, str(account.id),
                        {"email": account.email})
    await db.commit()
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/verify", response_model=AccountResponse)
async def verify_account(
    role: AccountRole,
    account_id: str,
    payload: VerificationDecision,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).verify_documents(
        role, account_id, payload.status, payload.remarks, actor
    )
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/approval", response_model=AccountResponse)
async def decide_approval(
    role: AccountRole,
    account_id: str,
    payload: ApprovalDecision,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).approve_account(
        role, account_id, payload.status, payload.remarks, actor
    )
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/suspend", response_model=AccountResponse)
async def suspend_account(
    role: AccountRole,
    account_id: str,
    payload: ReasonRequest,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).suspend(role, account_id, payload.reason, actor)
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/unsuspend", response_model=AccountResponse)
async def unsuspend_account(
    role: AccountRole,
    account_id: str,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).unsuspend(role, account_id, actor)
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/deactivate", response_model=AccountResponse)
async def deactivate_account(
    role: AccountRole,
    account_id: str,
    payload: ReasonRequest,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).deactivate(role, account_id, payload.reason, actor)
    return AccountResponse.model_validate(account)


@router.post("/{role}/{account_id}/reactivate", response_model=AccountResponse)
async def reactivate_account(
    role: AccountRole,
    account_id: str,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    account = await lifecycle(db, fanout).reactivate(role, account_id, actor)
    return AccountResponse.model_validate(account)


@router.delete("/{role}/{account_id}")
async def delete_account(
    role: AccountRole,
    account_id: str,
    actor: Actor = Depends(get_actor),
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    fanout: EventFanout = Depends(get_fanout),
):
    await lifecycle(db, fanout).delete_account(role, account_id, actor)
    return {"success": True, "message": f"{role.value.capitalize()} account deleted"}
