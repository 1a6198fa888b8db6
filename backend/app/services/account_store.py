"""
Account Store - persistence for students, vendors and admins.

Status changes go through ``update_status_fields``, a single atomic
``UPDATE ... WHERE id = :id``. Concurrent updates to the same account are
last-write-wins.
"""

from datetime import datetime
from typing import List, Optional, Union

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.models.account import (
    ACCOUNT_MODELS,
    AccountRole,
    ApprovalStatus,
    VerificationStatus,
    model_for_role,
)
from app.models.coupon import Coupon
from app.models.notification import Notification, NotificationRead
from app.models.offer import Offer
from app.models.verification_document import VerificationDocument


# Columns an account may edit on its own profile, per role
PROFILE_FIELDS = {
    AccountRole.STUDENT: ("name", "college_name", "course_name", "enrollment_number", "graduation_year"),
    AccountRole.VENDOR: ("name", "business_name", "business_category", "phone"),
    AccountRole.ADMIN: ("name", "department"),
}


class AccountStore:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, role: Union[AccountRole, str], account_id: str):
        model = model_for_role(role)
        result = await self.session.execute(
            select(model).where(model.id == str(account_id))
        )
        return result.scalar_one_or_none()

    async def find_any(self, account_id: str):
        """Look an id up in every account table"""
        for role in AccountRole:
            account = await self.find_by_id(role, account_id)
            if account is not None:
                return account
        return None

    async def find_by_email_and_role(self, email: str, role: Union[AccountRole, str]):
        model = model_for_role(role)
        result = await self.session.execute(
            select(model).where(model.email == email.strip().lower())
        )
        return result.scalar_one_or_none()

    async def find_roles_for_email(self, email: str) -> List[AccountRole]:
        """Roles that have an account registered under this email"""
        roles = []
        for role in AccountRole:
            if await self.find_by_email_and_role(email, role) is not None:
                roles.append(role)
        return roles

    async def list_accounts(
        self,
        role: Union[AccountRole, str],
        verification_status: Optional[VerificationStatus] = None,
        approval_status: Optional[ApprovalStatus] = None,
        is_suspended: Optional[bool] = None,
        is_active: Optional[bool] = None,
        search: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ):
        """Return (accounts, total) for an admin listing"""
        model = model_for_role(role)
        query = select(model)
        if verification_status is not None:
            query = query.where(model.verification_status == verification_status)
        if approval_status is not None:
            query = query.where(model.approval_status == approval_status)
        if is_suspended is not None:
            query = query.where(model.is_suspended == is_suspended)
        if is_active is not None:
            query = query.where(model.is_active == is_active)
        if search:
            pattern = f"%{search.lower()}%"
            query = query.where(
                (func.lower(model.name).like(pattern)) | (model.email.like(pattern))
            )

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(model.created_at.desc()).offset(offset).limit(limit)
        )
        return result.scalars().all(), total or 0

    async def update_status_fields(self, role: Union[AccountRole, str], account_id: str, **fields):
        """
        Atomically set status fields on one account.

        Values may be SQL expressions (e.g. ``func.coalesce``). Returns the
        refreshed account, or None when no row matched.
        """
        model = model_for_role(role)
        fields["updated_at"] = datetime.utcnow()
        result = await self.session.execute(
            update(model)
            .where(model.id == str(account_id))
            .values(**fields)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            return None

        refreshed = await self.session.execute(
            select(model)
            .where(model.id == str(account_id))
            .execution_options(populate_existing=True)
        )
        return refreshed.scalar_one_or_none()

    async def update_profile(self, role: Union[AccountRole, str], account_id: str, **fields):
        """Apply self-service profile edits; lifecycle columns are never touched here"""
        role = AccountRole(role)
        allowed = PROFILE_FIELDS[role]
        foreign = sorted(set(fields) - set(allowed))
        if foreign:
            raise ValidationError(
                f"Fields not editable for {role.value} accounts: {', '.join(foreign)}",
                field=foreign[0],
            )
        if not fields:
            return await self.find_by_id(role, account_id)
        return await self.update_status_fields(role, account_id, **fields)

    async def count_accounts(self, role: Union[AccountRole, str], **filters) -> int:
        """Count accounts of a role; filters are column == value pairs"""
        model = model_for_role(role)
        query = select(func.count(model.id))
        for column, value in filters.items():
            query = query.where(getattr(model, column) == value)
        return await self.session.scalar(query) or 0

    async def create(self, role: Union[AccountRole, str], **fields):
        """Insert a new account; lifecycle columns take their pending defaults"""
        model = model_for_role(role)
        fields["email"] = fields["email"].strip().lower()
        account = model(**fields)
        self.session.add(account)
        await self.session.flush()
        return account

    async def delete(self, role: Union[AccountRole, str], account_id: str) -> bool:
        """Remove an account and the rows that only make sense with it"""
        role = AccountRole(role)
        model = ACCOUNT_MODELS[role]
        account_id = str(account_id)

        recipient_column = {
            AccountRole.STUDENT: Notification.student_id,
            AccountRole.VENDOR: Notification.vendor_id,
            AccountRole.ADMIN: Notification.admin_id,
        }[role]
        await self.session.execute(delete(Notification).where(recipient_column == account_id))
        await self.session.execute(delete(NotificationRead).where(NotificationRead.account_id == account_id))
        await self.session.execute(
            delete(VerificationDocument).where(
                VerificationDocument.account_id == account_id,
                VerificationDocument.role == role.value,
            )
        )
        if role == AccountRole.STUDENT:
            await self.session.execute(delete(Coupon).where(Coupon.student_id == account_id))
        elif role == AccountRole.VENDOR:
            await self.session.execute(delete(Coupon).where(Coupon.vendor_id == account_id))
            await self.session.execute(delete(Offer).where(Offer.vendor_id == account_id))

        result = await self.session.execute(delete(model).where(model.id == account_id))
        return result.rowcount > 0
