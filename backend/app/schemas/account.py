"""
Admin account management schemas
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional, List

from app.models.account import ApprovalStatus, VerificationStatus
from app.schemas.auth import AccountResponse
from app.schemas.offer import OfferStatsResponse


class VerificationDecision(BaseModel):
    status: VerificationStatus
    remarks: Optional[str] = Field(None, max_length=2000)


class ApprovalDecision(BaseModel):
    status: ApprovalStatus
    remarks: Optional[str] = Field(None, max_length=2000)


class ReasonRequest(BaseModel):
    """Body for suspend / deactivate"""
    reason: Optional[str] = Field(None, max_length=2000)


class AdminCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    department: Optional[str] = None


class AccountListResponse(BaseModel):
    items: List[AccountResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class OnlineAccountsResponse(BaseModel):
    role: Optional[str] = None
    online: List[str]
    counts: dict


class RoleCounts(BaseModel):
    total: int
    pending_approval: int
    pending_verification: int
    suspended: int
    online: int


class DashboardResponse(BaseModel):
    students: RoleCounts
    vendors: RoleCounts
    admins: RoleCounts
    offers: OfferStatsResponse
