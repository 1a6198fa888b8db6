from sqlalchemy import Column, String, DateTime, Text, ForeignKey
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid


class AuditLog(Base):
    """Audit trail of admin actions (account transitions, offer moderation, messages)"""
    __tablename__ = "audit_logs"

    id = Column(GUID, primary_key=True, default=generate_uuid)
    admin_id = Column(GUID, ForeignKey("admins.id", ondelete="SET NULL"), nullable=True, index=True)

    # Action details
    action = Column(String(100), nullable=False)  # e.g. 'account_approval_changed', 'offer_approved'
    target_type = Column(String(50), nullable=False)  # 'student', 'vendor', 'admin', 'offer'
    target_id = Column(GUID, nullable=True)

    # Changed fields, remarks, reasons
    details = Column(JSONType, nullable=True)

    # Request metadata
    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.admin_id}>"
