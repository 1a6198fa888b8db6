from fastapi import APIRouter, Depends, Query
from typing import Optional

from app.models.account import AccountRole
from app.modules.auth.dependencies import get_current_admin, get_registry
from app.schemas.account import OnlineAccountsResponse
from app.services.connection_registry import ConnectionRegistry

router = APIRouter()


@router.get("/online", response_model=OnlineAccountsResponse)
async def list_online(
    role: Optional[AccountRole] = Query(None),
    current_admin=Depends(get_current_admin),
    registry: ConnectionRegistry = Depends(get_registry),
):
    """Accounts with at least one joined realtime connection"""
    if role is not None:
        online = sorted(registry.list_online(role))
    else:
        online = sorted(set().union(*(registry.list_online(r) for r in AccountRole)))
    return {
        "role": role.value if role else None,
        "online": online,
        "counts": registry.counts(),
    }
