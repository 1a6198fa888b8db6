"""
Account models - students, vendors and admins.

The three roles live in disjoint tables that share one lifecycle shape
(verification, approval, activation, suspension). An account's role never
changes; it is fixed by the table the row lives in.
"""
from sqlalchemy import Column, String, Boolean, DateTime, Enum as SQLEnum, Integer, Text
from datetime import datetime
import enum

from app.core.database import Base
from app.core.types import GUID, generate_uuid


class AccountRole(str, enum.Enum):
    """Account roles"""
    STUDENT = "student"
    VENDOR = "vendor"
    ADMIN = "admin"


class VerificationStatus(str, enum.Enum):
    """Outcome of the document verification review"""
    PENDING = "pending"
    VERIFIED = "verified"
    REJECTED = "rejected"


class ApprovalStatus(str, enum.Enum):
    """Outcome of the admin approval decision"""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def enum_values(enum_cls):
    """Store enum values ("pending") rather than member names ("PENDING")"""
    return [member.value for member in enum_cls]


def status_enum(enum_cls, name: str) -> SQLEnum:
    return SQLEnum(enum_cls, name=name, native_enum=False, values_callable=enum_values, length=20)


class AccountLifecycleMixin:
    """Columns every account table carries; subclasses set ``role``"""

    id = Column(GUID, primary_key=True, default=generate_uuid)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)

    # Document verification
    verification_status = Column(
        status_enum(VerificationStatus, "verification_status"),
        default=VerificationStatus.PENDING, nullable=False
    )
    verification_remarks = Column(Text, nullable=True)
    verified_at = Column(DateTime, nullable=True)
    is_verified = Column(Boolean, default=False, nullable=False)  # mirrors verification_status == verified

    # Admin approval
    approval_status = Column(
        status_enum(ApprovalStatus, "approval_status"),
        default=ApprovalStatus.PENDING, nullable=False
    )
    approval_remarks = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)  # first approval only

    # Activation / suspension
    is_active = Column(Boolean, default=True, nullable=False)
    is_suspended = Column(Boolean, default=False, nullable=False)
    suspension_reason = Column(Text, nullable=True)
    suspended_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
    last_login = Column(DateTime, nullable=True)

    @property
    def role_value(self) -> str:
        return self.role.value

    def __repr__(self):
        return f"<{type(self).__name__} {self.email}>"


class Student(AccountLifecycleMixin, Base):
    __tablename__ = "students"

    role = AccountRole.STUDENT

    college_name = Column(String(255), nullable=True)
    course_name = Column(String(255), nullable=True)
    enrollment_number = Column(String(100), nullable=True)
    graduation_year = Column(Integer, nullable=True)


class Vendor(AccountLifecycleMixin, Base):
    __tablename__ = "vendors"

    role = AccountRole.VENDOR

    business_name = Column(String(255), nullable=True)
    business_category = Column(String(100), nullable=True)
    phone = Column(String(20), nullable=True)


class Admin(AccountLifecycleMixin, Base):
    __tablename__ = "admins"

    role = AccountRole.ADMIN

    department = Column(String(100), nullable=True)


ACCOUNT_MODELS = {
    AccountRole.STUDENT: Student,
    AccountRole.VENDOR: Vendor,
    AccountRole.ADMIN: Admin,
}


def model_for_role(role):
    """Account model class for a role (enum member or its string value)"""
    return ACCOUNT_MODELS[AccountRole(role)]
