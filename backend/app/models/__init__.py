# Re-export all models for convenient imports
from app.models.account import (
    AccountRole,
    VerificationStatus,
    ApprovalStatus,
    Student,
    Vendor,
    Admin,
    ACCOUNT_MODELS,
    model_for_role,
)
from app.models.offer import Offer, DiscountType
from app.models.coupon import Coupon
from app.models.notification import Notification, NotificationRead, NotificationType
from app.models.login_session import LoginSession, LoginStatus
from app.models.audit_log import AuditLog
from app.models.verification_document import VerificationDocument

__all__ = [
    # Accounts
    "AccountRole",
    "VerificationStatus",
    "ApprovalStatus",
    "Student",
    "Vendor",
    "Admin",
    "ACCOUNT_MODELS",
    "model_for_role",
    # Offers
    "Offer",
    "DiscountType",
    "Coupon",
    # Notifications
    "Notification",
    "NotificationType",
    "NotificationRead",
    # Auth
    "LoginSession",
    "LoginStatus",
    # Admin
    "AuditLog",
    "VerificationDocument",
]
