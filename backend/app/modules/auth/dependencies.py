from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from typing import Any, Dict

from app.core.database import get_db
from app.core.exceptions import (
    AccountInactiveError,
    AccountSuspendedError,
    AuthenticationError,
    AuthorizationError,
    InvalidTokenError,
)
from app.core.logging_config import set_account_id
from app.core.security import decode_token, security
from app.models.account import AccountRole
from app.services.account_store import AccountStore
from app.services.auth_service import AuthService, ClientInfo
from app.services.connection_registry import ConnectionRegistry
from app.services.events import Actor
from app.services.fanout import EventFanout
from app.utils.storage_client import StorageClient, get_storage_client


async def get_token_claims(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> Dict[str, Any]:
    if credentials is None:
        raise AuthenticationError("Not authenticated", code="NOT_AUTHENTICATED")
    return decode_token(credentials.credentials)


async def get_current_account(
    claims: Dict[str, Any] = Depends(get_token_claims),
    db: AsyncSession = Depends(get_db),
):
    """
    Load the account behind the bearer token.

    Status is re-checked on every request so a suspension or deactivation
    takes effect immediately, not when the token expires.
    """
    try:
        role = AccountRole(claims["role"])
    except ValueError:
        raise InvalidTokenError("Unknown role in token")

    account = await AccountStore(db).find_by_id(role, claims["sub"])
    if account is None:
        raise InvalidTokenError("Account no longer exists")

    if not account.is_active:
        raise AccountInactiveError()
    if account.is_suspended:
        raise AccountSuspendedError(account.suspension_reason)

    sid = claims.get("sid")
    if sid and not await AuthService(db).is_session_active(sid):
        raise InvalidTokenError("Session has ended, please log in again")

    set_account_id(str(account.id))
    return account


def require_role(*roles: AccountRole):
    """Dependency factory: the current account must hold one of ``roles``"""
    allowed = {AccountRole(role) for role in roles}

    async def checker(account=Depends(get_current_account)):
        if account.role not in allowed:
            names = " or ".join(sorted(role.value for role in allowed))
            raise AuthorizationError(f"{names.capitalize()} access required")
        return account

    return checker


get_current_student = require_role(AccountRole.STUDENT)
get_current_vendor = require_role(AccountRole.VENDOR)
get_current_admin = require_role(AccountRole.ADMIN)


def get_actor(request: Request, account=Depends(get_current_account)) -> Actor:
    client = ClientInfo.from_request(request)
    return Actor(
        role=account.role,
        account_id=str(account.id),
        name=account.name,
        ip_address=client.ip_address,
        user_agent=client.user_agent,
    )


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.connection_registry


def get_fanout(request: Request) -> EventFanout:
    return request.app.state.event_fanout


def get_storage() -> StorageClient:
    return get_storage_client()
