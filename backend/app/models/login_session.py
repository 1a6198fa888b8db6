from sqlalchemy import Column, String, Boolean, DateTime, Text, Index
from datetime import datetime, timedelta
import enum

from app.core.config import settings
from app.core.database import Base
from app.core.types import GUID, JSONType, generate_uuid
from app.models.account import status_enum


class LoginStatus(str, enum.Enum):
    SUCCESS = "success"
    FAILED = "failed"


def default_session_expiry() -> datetime:
    return datetime.utcnow() + timedelta(days=settings.LOGIN_SESSION_DAYS)


class LoginSession(Base):
    """One row per login attempt, successful or not"""
    __tablename__ = "login_sessions"

    __table_args__ = (
        Index('ix_login_sessions_account', 'account_id', 'login_time'),
        Index('ix_login_sessions_email', 'email'),
    )

    id = Column(GUID, primary_key=True, default=generate_uuid)

    # Null when the email matched no account
    account_id = Column(GUID, nullable=True)
    email = Column(String(255), nullable=False)
    role = Column(String(20), nullable=False)  # role the caller tried to log in as

    ip_address = Column(String(45), nullable=True)
    user_agent = Column(Text, nullable=True)
    device_info = Column(JSONType, nullable=True)  # {"browser", "os", "device"}

    login_status = Column(status_enum(LoginStatus, "login_status"), nullable=False)
    failure_reason = Column(String(255), nullable=True)

    login_time = Column(DateTime, default=datetime.utcnow, nullable=False)
    logout_time = Column(DateTime, nullable=True)
    expiry_time = Column(DateTime, default=default_session_expiry, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    def __repr__(self):
        return f"<LoginSession {self.email} {self.login_status}>"
