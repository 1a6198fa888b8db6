"""
Custom Exceptions for CampusPerks
=================================

Every error raised by services carries a stable ``code`` and the HTTP
``status_code`` the API layer renders it with.

Usage:
    from app.core.exceptions import AccountNotFoundError, InvalidTransitionError

    if not account:
        raise AccountNotFoundError(role, account_id)

    try:
        await lifecycle.approve_account(...)
    except InvalidTransitionError as e:
        logger.warning(f"Rejected transition: {e}")
        raise
"""

from typing import Optional, Any, Dict, List


class CampusPerksError(Exception):
    """Base exception for all CampusPerks errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
        status_code: Optional[int] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Authentication & Authorization Errors
# ============================================

class AuthenticationError(CampusPerksError):
    """Caller could not be authenticated"""

    status_code = 401

    def __init__(self, message: str = "Authentication failed", code: str = "AUTH_FAILED"):
        super().__init__(message, code=code)


class AuthorizationError(CampusPerksError):
    """Caller is authenticated but not allowed to do this"""

    status_code = 403

    def __init__(self, message: str = "Not authorized", code: str = "NOT_AUTHORIZED"):
        super().__init__(message, code=code)


class InvalidTokenError(AuthenticationError):
    """JWT token is invalid or expired"""

    def __init__(self, message: str = "Invalid token"):
        super().__init__(message, code="INVALID_TOKEN")


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password (deliberately indistinguishable)"""

    def __init__(self):
        super().__init__("Invalid email or password", code="INVALID_CREDENTIALS")


class IncorrectPasswordError(AuthenticationError):
    """Current password did not match on a password-confirmed action"""

    def __init__(self):
        super().__init__("Current password is incorrect", code="INCORRECT_PASSWORD")


class WrongRoleError(AuthenticationError):
    """Email belongs to an account of a different role"""

    def __init__(self, requested_role: str, actual_role: str):
        article = "an" if actual_role[0] in "aeiou" else "a"
        super().__init__(
            f"This email is registered as {article} {actual_role} account. "
            f"Please use the {actual_role} login page.",
            code="WRONG_ROLE"
        )
        self.details = {"requested_role": requested_role, "actual_role": actual_role}


class AccountInactiveError(AuthorizationError):
    """Account has been deactivated"""

    def __init__(self):
        super().__init__("Your account has been deactivated", code="ACCOUNT_INACTIVE")


class AccountSuspendedError(AuthorizationError):
    """Account is suspended"""

    def __init__(self, reason: Optional[str] = None):
        message = "Your account has been suspended"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, code="ACCOUNT_SUSPENDED")
        if reason:
            self.details["reason"] = reason


class AccountNotApprovedError(AuthorizationError):
    """Account is not approved yet (only for roles that require it)"""

    def __init__(self, approval_status: str):
        super().__init__(
            "Your account is awaiting admin approval",
            code="ACCOUNT_NOT_APPROVED"
        )
        self.details["approval_status"] = approval_status


class RedemptionNotAllowedError(AuthorizationError):
    """Student may not redeem offers in the current account state"""

    def __init__(self, reason: str):
        super().__init__(f"You cannot redeem offers: {reason}", code="REDEMPTION_NOT_ALLOWED")
        self.details["reason"] = reason


# ============================================
# Resource Errors (404-type)
# ============================================

class ResourceNotFoundError(CampusPerksError):
    """Base class for not found errors"""

    status_code = 404

    def __init__(self, resource_type: str, resource_id: str):
        super().__init__(
            f"{resource_type} with ID '{resource_id}' not found",
            code=f"{resource_type.upper()}_NOT_FOUND",
            details={"resource_type": resource_type, "resource_id": resource_id}
        )


class AccountNotFoundError(ResourceNotFoundError):
    """No account of this role with this ID"""

    def __init__(self, role: str, account_id: str):
        super().__init__("Account", account_id)
        self.details["role"] = role


class OfferNotFoundError(ResourceNotFoundError):
    def __init__(self, offer_id: str):
        super().__init__("Offer", offer_id)


class NotificationNotFoundError(ResourceNotFoundError):
    def __init__(self, notification_id: str):
        super().__init__("Notification", notification_id)


# ============================================
# Validation / Conflict Errors (400/409-type)
# ============================================

class ValidationError(CampusPerksError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidTransitionError(ValidationError):
    """Outcome is not valid for this lifecycle transition"""

    def __init__(self, transition: str, outcome: Any, allowed: List[str]):
        super().__init__(
            f"Invalid outcome '{outcome}' for {transition}. Allowed: {', '.join(allowed)}"
        )
        self.code = "INVALID_TRANSITION"
        self.details = {"transition": transition, "outcome": outcome, "allowed": allowed}


class PreconditionFailedError(CampusPerksError):
    """Transition refused because the account is in the wrong state"""

    status_code = 409

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, code="PRECONDITION_FAILED", details=details)


class DuplicateAccountError(CampusPerksError):
    """An account with this email already exists for the role"""

    status_code = 409

    def __init__(self, email: str, role: str):
        super().__init__(
            f"An account with email '{email}' already exists",
            code="DUPLICATE_ACCOUNT",
            details={"email": email, "role": role}
        )


class OfferUnavailableError(CampusPerksError):
    """Offer is not approved, inactive or fully redeemed"""

    status_code = 409

    def __init__(self, offer_id: str, reason: str):
        super().__init__(
            f"Offer is not available: {reason}",
            code="OFFER_UNAVAILABLE",
            details={"offer_id": offer_id, "reason": reason}
        )


class AlreadyRedeemedError(CampusPerksError):
    """Student already holds a coupon for this offer"""

    status_code = 409

    def __init__(self, offer_id: str):
        super().__init__(
            "You have already redeemed this offer",
            code="ALREADY_REDEEMED",
            details={"offer_id": offer_id}
        )


class InvalidFileTypeError(ValidationError):
    """File type not allowed"""

    def __init__(self, file_type: str, allowed_types: list):
        super().__init__(
            f"File type '{file_type}' not allowed. Allowed: {', '.join(allowed_types)}"
        )
        self.code = "INVALID_FILE_TYPE"
        self.details = {"file_type": file_type, "allowed_types": allowed_types}


class FileTooLargeError(ValidationError):
    def __init__(self, size: int, limit: int):
        super().__init__(f"File too large: {size} bytes (limit {limit})")
        self.code = "FILE_TOO_LARGE"
        self.details = {"size": size, "limit": limit}


# ============================================
# Storage Errors
# ============================================

class StorageError(CampusPerksError):
    """Storage operation failed"""

    status_code = 502

    def __init__(self, message: str):
        super().__init__(message, code="STORAGE_ERROR")


class StorageUploadError(StorageError):
    """Upload to the object store failed"""

    def __init__(self, key: str, message: str = "Upload failed"):
        super().__init__(f"Failed to upload document: {message}")
        self.code = "STORAGE_UPLOAD_FAILED"
        self.details["key"] = key


# ============================================
# Helper function for API responses
# ============================================

def error_response(error: CampusPerksError) -> Dict[str, Any]:
    """Convert exception to API error response format"""
    return {
        "success": False,
        "error": error.to_dict()
    }
