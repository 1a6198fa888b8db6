"""
Notification Service - the durable inbox behind realtime events.

An account sees notifications addressed to it directly plus global ones
whose audience includes its role. Read state of a global notification is
tracked per account in ``notification_reads``.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, NotificationNotFoundError
from app.core.logging_config import logger
from app.models.account import AccountRole
from app.models.notification import Notification, NotificationRead, NotificationType


def recipient_column(role: AccountRole):
    return {
        AccountRole.STUDENT: Notification.student_id,
        AccountRole.VENDOR: Notification.vendor_id,
        AccountRole.ADMIN: Notification.admin_id,
    }[role]


def serialize_notification(notification: Notification, read_at: Optional[datetime] = None) -> Dict[str, Any]:
    """API shape; ``read_at`` is the per-account marker for global rows"""
    if notification.is_global:
        is_read = read_at is not None
    else:
        is_read = bool(notification.is_read)
        read_at = notification.read_at
    return {
        "id": str(notification.id),
        "title": notification.title,
        "message": notification.message,
        "type": notification.type.value,
        "event_type": notification.event_type,
        "is_global": notification.is_global,
        "is_read": is_read,
        "read_at": read_at.isoformat() if read_at else None,
        "related_offer_id": notification.related_offer_id,
        "related_coupon_id": notification.related_coupon_id,
        "created_by_id": notification.created_by_id,
        "created_by_role": notification.created_by_role,
        "metadata": notification.extra or {},
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
        "expires_at": notification.expires_at.isoformat() if notification.expires_at else None,
    }


class NotificationService:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _visible_to(self, role: AccountRole, account_id: str):
        now = datetime.utcnow()
        return and_(
            Notification.expires_at > now,
            or_(
                recipient_column(role) == str(account_id),
                and_(
                    Notification.is_global.is_(True),
                    or_(Notification.audience_role.is_(None), Notification.audience_role == role.value),
                ),
            ),
        )

    def _with_read_marker(self, account_id: str):
        return (
            select(Notification, NotificationRead.read_at)
            .outerjoin(
                NotificationRead,
                and_(
                    NotificationRead.notification_id == Notification.id,
                    NotificationRead.account_id == str(account_id),
                ),
            )
        )

    def _unread(self):
        return or_(
            and_(Notification.is_global.is_(False), Notification.is_read.is_(False)),
            and_(Notification.is_global.is_(True), NotificationRead.id.is_(None)),
        )

    async def list_for(
        self,
        role: AccountRole,
        account_id: str,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        page: int = 1,
        limit: int = 20,
    ) -> Tuple[List[Dict[str, Any]], int]:
        query = self._with_read_marker(account_id).where(self._visible_to(role, account_id))
        if unread_only:
            query = query.where(self._unread())
        if notification_type is not None:
            query = query.where(Notification.type == notification_type)

        total = await self.session.scalar(select(func.count()).select_from(query.subquery()))
        result = await self.session.execute(
            query.order_by(Notification.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        items = [serialize_notification(n, read_at) for n, read_at in result.all()]
        return items, total or 0

    async def unread_count(self, role: AccountRole, account_id: str) -> int:
        query = (
            self._with_read_marker(account_id)
            .where(self._visible_to(role, account_id))
            .where(self._unread())
        )
        return await self.session.scalar(select(func.count()).select_from(query.subquery())) or 0

    async def _get_visible(self, role: AccountRole, account_id: str, notification_id: str) -> Notification:
        result = await self.session.execute(
            select(Notification).where(
                Notification.id == str(notification_id),
                self._visible_to(role, account_id),
            )
        )
        notification = result.scalar_one_or_none()
        if notification is None:
            raise NotificationNotFoundError(str(notification_id))
        return notification

    async def mark_read(self, role: AccountRole, account_id: str, notification_id: str) -> Dict[str, Any]:
        notification = await self._get_visible(role, account_id, notification_id)
        now = datetime.utcnow()
        read_at = None
        if notification.is_global:
            existing = await self.session.scalar(
                select(NotificationRead).where(
                    NotificationRead.notification_id == notification.id,
                    NotificationRead.account_id == str(account_id),
                )
            )
            if existing is None:
                self.session.add(NotificationRead(
                    notification_id=notification.id, account_id=str(account_id), read_at=now
                ))
                read_at = now
            else:
                read_at = existing.read_at
        elif not notification.is_read:
            notification.is_read = True
            notification.read_at = now
        await self.session.commit()
        return serialize_notification(notification, read_at)

    async def mark_all_read(self, role: AccountRole, account_id: str) -> int:
        now = datetime.utcnow()
        direct = await self.session.execute(
            update(Notification)
            .where(
                recipient_column(role) == str(account_id),
                Notification.is_read.is_(False),
                Notification.expires_at > now,
            )
            .values(is_read=True, read_at=now)
            .execution_options(synchronize_session=False)
        )

        unread_globals = await self.session.execute(
            self._with_read_marker(account_id)
            .where(self._visible_to(role, account_id))
            .where(Notification.is_global.is_(True), NotificationRead.id.is_(None))
        )
        marked = 0
        for notification, _ in unread_globals.all():
            self.session.add(NotificationRead(
                notification_id=notification.id, account_id=str(account_id), read_at=now
            ))
            marked += 1

        await self.session.commit()
        return (direct.rowcount or 0) + marked

    async def delete(self, role: AccountRole, account_id: str, notification_id: str) -> None:
        notification = await self._get_visible(role, account_id, notification_id)
        if notification.is_global and role != AccountRole.ADMIN:
            raise AuthorizationError("Broadcast notifications cannot be deleted")
        await self.session.execute(
            delete(NotificationRead).where(NotificationRead.notification_id == notification.id)
        )
        await self.session.delete(notification)
        await self.session.commit()

    async def purge_expired(self) -> int:
        now = datetime.utcnow()
        expired_ids = select(Notification.id).where(Notification.expires_at <= now)
        await self.session.execute(
            delete(NotificationRead).where(NotificationRead.notification_id.in_(expired_ids))
        )
        result = await self.session.execute(
            delete(Notification).where(Notification.expires_at <= now)
        )
        await self.session.commit()
        purged = result.rowcount or 0
        if purged:
            logger.info(f"Purged {purged} expired notification(s)")
        return purged
