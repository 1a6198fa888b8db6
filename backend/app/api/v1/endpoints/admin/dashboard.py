"""
Admin dashboard overview: account pipeline, offers and who is online.
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.account import AccountRole, ApprovalStatus, VerificationStatus
from app.modules.auth.dependencies import get_current_admin, get_fanout, get_registry
from app.schemas.account import DashboardResponse
from app.services.account_store import AccountStore
from app.services.connection_registry import ConnectionRegistry
from app.services.fanout import EventFanout
from app.services.offer_service import OfferService

router = APIRouter()


async def role_counts(store: AccountStore, registry: ConnectionRegistry, role: AccountRole) -> dict:
    return {
        "total": await store.count_accounts(role),
        "pending_approval": await store.count_accounts(role, approval_status=ApprovalStatus.PENDING),
        "pending_verification": await store.count_accounts(
            role, verification_status=VerificationStatus.PENDING
        ),
        "suspended": await store.count_accounts(role, is_suspended=True),
        "online": len(registry.list_online(role)),
    }


@router.get("", response_model=DashboardResponse)
async def get_dashboard(
    current_admin=Depends(get_current_admin),
    db: AsyncSession = Depends(get_db),
    registry: ConnectionRegistry = Depends(get_registry),
    fanout: EventFanout = Depends(get_fanout),
):
    store = AccountStore(db)
    return {
        "students": await role_counts(store, registry, AccountRole.STUDENT),
        "vendors": await role_counts(store, registry, AccountRole.VENDOR),
        "admins": await role_counts(store, registry, AccountRole.ADMIN),
        "offers": await OfferService(db, fanout).offer_stats(),
    }
