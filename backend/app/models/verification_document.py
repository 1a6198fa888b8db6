from sqlalchemy import Column, String, DateTime, Integer, Text, Index
from datetime import datetime

from app.core.database import Base
from app.core.types import GUID, generate_uuid
from app.models.account import VerificationStatus, status_enum


class VerificationDocument(Base):
    """Identity / business document uploaded for admin review"""
    __tablename__ = "verification_documents"

    __table_args__ = (
        Index('ix_verification_documents_account', 'account_id', 'role'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)
    account_id = Column(GUID, nullable=False)
    role = Column(String(20), nullable=False)

    document_type = Column(String(50), nullable=False)
    file_url = Column(Text, nullable=False)
    public_id = Column(String(500), nullable=False)  # object store key
    file_name = Column(String(255), nullable=True)
    file_size = Column(Integer, nullable=True)
    mime_type = Column(String(100), nullable=True)

    status = Column(status_enum(VerificationStatus, "document_status"),
                    default=VerificationStatus.PENDING, nullable=False)
    remarks = Column(Text, nullable=True)

    uploaded_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    reviewed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<VerificationDocument {self.document_type} for {self.role} {self.account_id}>"
