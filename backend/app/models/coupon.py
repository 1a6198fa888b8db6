"""
Coupon model - a student's claimed redemption of an offer.

A student can hold at most one coupon per offer.
"""

from sqlalchemy import Column, String, DateTime, ForeignKey, Index, UniqueConstraint
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class Coupon(Base):
    __tablename__ = "coupons"

    __table_args__ = (
        UniqueConstraint('offer_id', 'student_id', name='uq_coupons_offer_student'),
        Index('ix_coupons_student', 'student_id'),
        Index('ix_coupons_vendor', 'vendor_id'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)

    # Code shown to the vendor at checkout
    code = Column(String(50), unique=True, nullable=False)

    offer_id = Column(GUID, ForeignKey("offers.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(GUID, ForeignKey("students.id", ondelete="CASCADE"), nullable=False)
    vendor_id = Column(GUID, ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)

    redeemed_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    def __repr__(self):
        return f"<Coupon {self.code} (Student: {self.student_id})>"
