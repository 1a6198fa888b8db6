"""
Auth Service - signup, login and login-session bookkeeping.

Login checks run in a fixed order so that an account's status is never
revealed to a caller who does not know the password:

    role match → password → active → not suspended → approved (if required)

Every rejection is written to ``login_sessions`` with a short reason.
Writing that record is best-effort and never changes the login outcome.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Union

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import (
    AccountInactiveError,
    AccountNotApprovedError,
    AccountSuspendedError,
    DuplicateAccountError,
    IncorrectPasswordError,
    InvalidCredentialsError,
    WrongRoleError,
)
from app.core.logging_config import logger
from app.core.security import create_access_token, get_password_hash, verify_password
from app.models.account import AccountRole, ApprovalStatus
from app.models.login_session import LoginSession, LoginStatus
from app.services.account_store import AccountStore


# Failure reasons stored on LoginSession.failure_reason
REASON_NOT_FOUND = "Account not found"
REASON_BAD_PASSWORD = "Invalid password"
REASON_INACTIVE = "Account inactive"
REASON_SUSPENDED = "Account suspended"
REASON_NOT_APPROVED = "Account not approved"


def wrong_role_reason(actual_role: AccountRole) -> str:
    return f"Email is registered as {actual_role.value}"


def parse_user_agent(user_agent: Optional[str]) -> Dict[str, str]:
    """Coarse browser / OS / device classification of a User-Agent header"""
    ua = user_agent or ""

    # Edge and Chrome both advertise Safari; Edge also advertises Chrome
    if "Edg" in ua:
        browser = "Edge"
    elif "Firefox" in ua:
        browser = "Firefox"
    elif "Chrome" in ua:
        browser = "Chrome"
    elif "Safari" in ua:
        browser = "Safari"
    else:
        browser = "Unknown"

    if "iPhone" in ua or "iPad" in ua:
        os_name = "iOS"
    elif "Android" in ua:
        os_name = "Android"
    elif "Windows" in ua:
        os_name = "Windows"
    elif "Mac" in ua:
        os_name = "macOS"
    elif "Linux" in ua:
        os_name = "Linux"
    else:
        os_name = "Unknown"

    if "iPad" in ua or "Tablet" in ua:
        device = "Tablet"
    elif "Mobile" in ua:
        device = "Mobile"
    else:
        device = "Desktop"

    return {"browser": browser, "os": os_name, "device": device}


@dataclass
class ClientInfo:
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @classmethod
    def from_request(cls, request) -> "ClientInfo":
        forwarded = request.headers.get("x-forwarded-for")
        if forwarded:
            ip_address = forwarded.split(",")[0].strip()
        else:
            ip_address = request.client.host if request.client else None
        return cls(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


@dataclass
class LoginResult:
    account: Any
    access_token: str
    session_id: str


class AuthService:
    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = AccountStore(session)

    async def signup(self, role: Union[AccountRole, str], password: str, **fields):
        """Create a pending account; an email can belong to one role only"""
        role = AccountRole(role)
        email = fields["email"].strip().lower()
        if await self.store.find_roles_for_email(email):
            raise DuplicateAccountError(email, role.value)

        account = await self.store.create(
            role,
            hashed_password=get_password_hash(password),
            **fields,
        )
        await self.session.commit()
        logger.log_auth_event("signup", success=True, user_email=email, role=role.value)
        return account

    async def login(
        self,
        email: str,
        password: str,
        role: Union[AccountRole, str],
        client: Optional[ClientInfo] = None,
    ) -> LoginResult:
        role = AccountRole(role)
        email = email.strip().lower()
        client = client or ClientInfo()

        account = await self.store.find_by_email_and_role(email, role)
        if account is None:
            other_roles = await self.store.find_roles_for_email(email)
            if other_roles:
                actual = other_roles[0]
                await self.record_failed_login(email, role, client, wrong_role_reason(actual))
                raise WrongRoleError(role.value, actual.value)
            await self.record_failed_login(email, role, client, REASON_NOT_FOUND)
            raise InvalidCredentialsError()

        if not verify_password(password, account.hashed_password):
            await self.record_failed_login(email, role, client, REASON_BAD_PASSWORD, account.id)
            raise InvalidCredentialsError()

        if not account.is_active:
            await self.record_failed_login(email, role, client, REASON_INACTIVE, account.id)
            raise AccountInactiveError()

        if account.is_suspended:
            suspension_reason = account.suspension_reason
            await self.record_failed_login(email, role, client, REASON_SUSPENDED, account.id)
            raise AccountSuspendedError(suspension_reason)

        if (role.value in settings.LOGIN_REQUIRES_APPROVAL_ROLES
                and account.approval_status != ApprovalStatus.APPROVED):
            approval_status = account.approval_status.value
            await self.record_failed_login(email, role, client, REASON_NOT_APPROVED, account.id)
            raise AccountNotApprovedError(approval_status)

        login_session = self._new_session(email, role, client, LoginStatus.SUCCESS, account_id=account.id)
        self.session.add(login_session)
        account.last_login = datetime.utcnow()
        await self.session.flush()

        token = create_access_token(
            {
                "sub": str(account.id),
                "role": role.value,
                "email": account.email,
                "sid": str(login_session.id),
            },
            expires_delta=timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES),
        )
        await self.session.commit()

        logger.log_auth_event("login", success=True, user_email=email, role=role.value)
        return LoginResult(account=account, access_token=token, session_id=str(login_session.id))

    def _new_session(self, email, role, client, status, account_id=None, failure_reason=None):
        return LoginSession(
            account_id=str(account_id) if account_id else None,
            email=email,
            role=AccountRole(role).value,
            ip_address=client.ip_address,
            user_agent=client.user_agent,
            device_info=parse_user_agent(client.user_agent),
            login_status=status,
            failure_reason=failure_reason,
            is_active=status == LoginStatus.SUCCESS,
        )

    async def record_failed_login(
        self,
        email: str,
        role: AccountRole,
        client: ClientInfo,
        reason: str,
        account_id: Optional[str] = None,
    ) -> Optional[LoginSession]:
        """Store a failed attempt; storage errors are logged, not raised"""
        logger.log_auth_event("login", success=False, user_email=email, reason=reason, role=role.value)
        try:
            record = self._new_session(
                email, role, client, LoginStatus.FAILED,
                account_id=account_id, failure_reason=reason,
            )
            self.session.add(record)
            await self.session.commit()
            return record
        except Exception as e:
            logger.log_error_with_context(e, context="record failed login", user_email=email)
            try:
                await self.session.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback after failed-login record error also failed: {rollback_error}")
            return None

    async def logout(self, account_id: str, session_id: Optional[str]) -> int:
        """End the token's login session, or every open session when the token has none"""
        query = update(LoginSession).where(
            LoginSession.account_id == str(account_id),
            LoginSession.is_active.is_(True),
        )
        if session_id:
            query = query.where(LoginSession.id == session_id)
        result = await self.session.execute(
            query.values(is_active=False, logout_time=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        return result.rowcount

    def confirm_password(self, account, password: str) -> None:
        if not verify_password(password, account.hashed_password):
            logger.log_auth_event("password_confirm", success=False, user_email=account.email,
                                  reason=REASON_BAD_PASSWORD)
            raise IncorrectPasswordError()

    async def change_password(self, account, current_password: str, new_password: str,
                              keep_session_id: Optional[str] = None) -> int:
        """
        Replace the password and end every other open login session.

        Returns the number of sessions ended. The session behind the
        caller's token (``keep_session_id``) stays open.
        """
        self.confirm_password(account, current_password)
        await self.store.update_status_fields(
            account.role, str(account.id), hashed_password=get_password_hash(new_password)
        )

        query = update(LoginSession).where(
            LoginSession.account_id == str(account.id),
            LoginSession.is_active.is_(True),
        )
        if keep_session_id:
            query = query.where(LoginSession.id != keep_session_id)
        result = await self.session.execute(
            query.values(is_active=False, logout_time=datetime.utcnow())
            .execution_options(synchronize_session=False)
        )
        await self.session.commit()
        logger.log_auth_event("password_change", success=True, user_email=account.email,
                              sessions_ended=result.rowcount)
        return result.rowcount

    async def update_profile(self, account, **fields):
        updated = await self.store.update_profile(account.role, str(account.id), **fields)
        await self.session.commit()
        return updated

    async def is_session_active(self, session_id: str) -> bool:
        result = await self.session.execute(
            select(LoginSession.is_active, LoginSession.expiry_time)
            .where(LoginSession.id == session_id)
        )
        row = result.first()
        if row is None:
            return False
        return bool(row.is_active) and row.expiry_time > datetime.utcnow()

    async def login_history(self, account_id: str, page: int = 1, limit: int = 10):
        """Return (sessions, total), newest first"""
        base = select(LoginSession).where(LoginSession.account_id == str(account_id))
        total = await self.session.scalar(
            select(func.count(LoginSession.id)).where(LoginSession.account_id == str(account_id))
        )
        result = await self.session.execute(
            base.order_by(LoginSession.login_time.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return result.scalars().all(), total or 0

    async def login_stats(self, account_id: str, days: int = 30) -> Dict[str, Any]:
        since = datetime.utcnow() - timedelta(days=days)
        result = await self.session.execute(
            select(LoginSession).where(
                LoginSession.account_id == str(account_id),
                LoginSession.login_time >= since,
            )
        )
        sessions = result.scalars().all()
        devices: List[str] = sorted({(s.device_info or {}).get("device", "Unknown") for s in sessions})
        browsers: List[str] = sorted({(s.device_info or {}).get("browser", "Unknown") for s in sessions})
        return {
            "total_logins": sum(1 for s in sessions if s.login_status == LoginStatus.SUCCESS),
            "failed_attempts": sum(1 for s in sessions if s.login_status == LoginStatus.FAILED),
            "unique_devices": devices,
            "unique_browsers": browsers,
            "days": days,
        }
