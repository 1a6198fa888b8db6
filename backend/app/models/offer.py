"""
Offer model - a discount a vendor publishes for students.

Offers start pending and only reach students once an admin approves them.
"""

from sqlalchemy import Column, String, DateTime, Integer, Boolean, ForeignKey, Text, Index, Float
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid
from app.models.account import ApprovalStatus, status_enum


class DiscountType(str, enum.Enum):
    PERCENTAGE = "percentage"
    FLAT = "flat"


class Offer(Base):
    __tablename__ = "offers"

    __table_args__ = (
        Index('ix_offers_vendor', 'vendor_id'),
        Index('ix_offers_approval', 'approval_status', 'is_active'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    vendor_id = Column(GUID, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)

    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)

    discount = Column(Float, nullable=False)
    discount_type = Column(status_enum(DiscountType, "discount_type"),
                           default=DiscountType.PERCENTAGE, nullable=False)
    code = Column(String(50), nullable=True)  # prefix for generated coupon codes

    is_active = Column(Boolean, default=True, nullable=False)

    # Moderation
    approval_status = Column(status_enum(ApprovalStatus, "offer_approval_status"),
                             default=ApprovalStatus.PENDING, nullable=False)
    approved_by = Column(GUID, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejection_reason = Column(Text, nullable=True)

    # None or 0 means unlimited
    max_redemptions = Column(Integer, nullable=True)
    current_redemptions = Column(Integer, default=0, nullable=False)

    valid_until = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    def __repr__(self):
        return f"<Offer {self.title} ({self.approval_status})>"

    @property
    def remaining_redemptions(self):
        """Redemptions left, or None when unlimited"""
        if not self.max_redemptions:
            return None
        return max(self.max_redemptions - (self.current_redemptions or 0), 0)
