from sqlalchemy import Column, String, Boolean, DateTime, Text, ForeignKey, Index, UniqueConstraint
from datetime import datetime, timedelta
import enum

from app.core.config import settings
from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid
from app.models.account import status_enum


class NotificationType(str, enum.Enum):
    """Notification category shown in the client inbox"""
    EVENT = "event"
    OFFER = "offer"
    ANNOUNCEMENT = "announcement"
    GENERAL = "general"
    ACCOUNT = "account"


def default_expiry() -> datetime:
    return datetime.utcnow() + timedelta(days=settings.NOTIFICATION_RETENTION_DAYS)


class Notification(Base):
    """
    Durable copy of a realtime event.

    Addressed to exactly one account (one of student_id / vendor_id /
    admin_id) or, when ``is_global`` is set, to every account of
    ``audience_role`` (or everyone when that is empty).
    """
    __tablename__ = "notifications"

    __table_args__ = (
        Index('ix_notifications_student', 'student_id', 'is_read'),
        Index('ix_notifications_vendor', 'vendor_id', 'is_read'),
        Index('ix_notifications_admin', 'admin_id', 'is_read'),
        Index('ix_notifications_expires', 'expires_at'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    type = Column(status_enum(NotificationType, "notification_type"),
                  default=NotificationType.GENERAL, nullable=False)
    event_type = Column(String(50), nullable=True)  # realtime event that produced it

    # Recipient
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=True)
    vendor_id = Column(GUID, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=True)
    admin_id = Column(GUID, ForeignKey("admins.id", ondelete="CASCADE"), nullable=True)
    is_global = Column(Boolean, default=False, nullable=False)
    audience_role = Column(String(20), nullable=True)

    # Origin
    created_by_id = Column(GUID, nullable=True)
    created_by_role = Column(String(20), nullable=True)
    related_offer_id = Column(GUID, ForeignKey("offers.id", ondelete="SET NULL"), nullable=True)
    related_coupon_id = Column(GUID, ForeignKey("coupons.id", ondelete="SET NULL"), nullable=True)

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)

    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSONType, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    expires_at = Column(DateTime, default=default_expiry, nullable=False)

    def __repr__(self):
        return f"<Notification {self.event_type or self.type} {self.id}>"


class NotificationRead(Base):
    """Per-account read marker for global notifications"""
    __tablename__ = "notification_reads"

    __table_args__ = (
        UniqueConstraint('notification_id', 'account_id', name='uq_notification_reads'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    notification_id = Column(GUID, ForeignKey("notifications.id", ondelete="CASCADE"), nullable=False)
    account_id = Column(GUID, nullable=False, index=True)
    read_at = Column(DateTime, default=datetime.utcnow, nullable=False)
