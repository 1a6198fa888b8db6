"""
Offer and Coupon Schemas - Request/Response models for the offer system
"""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from app.models.offer import DiscountType


# ============== Offer Schemas ==============

class OfferCreate(BaseModel):
    """Schema for creating a new offer (approved vendors only)"""
    title: str = Field(..., min_length=3, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    discount: float = Field(..., gt=0, description="Percentage (1-100) or flat amount")
    discount_type: DiscountType = DiscountType.PERCENTAGE
    code: Optional[str] = Field(None, min_length=2, max_length=20, description="Coupon code prefix")
    max_redemptions: Optional[int] = Field(None, ge=0, description="0 or empty means unlimited")
    valid_until: Optional[datetime] = None

    @field_validator('code')
    @classmethod
    def uppercase_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper().strip() if v else v

    @model_validator(mode='after')
    def validate_percentage(self):
        if self.discount_type == DiscountType.PERCENTAGE and self.discount > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        return self


class OfferUpdate(BaseModel):
    """Partial offer edit; omitted fields are left as they are"""
    title: Optional[str] = Field(None, min_length=3, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    discount: Optional[float] = Field(None, gt=0)
    discount_type: Optional[DiscountType] = None
    code: Optional[str] = Field(None, min_length=2, max_length=20)
    max_redemptions: Optional[int] = Field(None, ge=0)
    valid_until: Optional[datetime] = None

    @field_validator("title", "discount", "discount_type")
    @classmethod
    def required_if_given(cls, v):
        if v is None:
            raise ValueError("cannot be null")
        return v

    @field_validator("code")
    @classmethod
    def uppercase_code(cls, v: Optional[str]) -> Optional[str]:
        return v.upper().strip() if v else v

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class OfferStatsResponse(BaseModel):
    total_offers: int
    active_offers: int
    inactive_offers: int
    pending_offers: int
    total_redemptions: int
    active_percentage: int


class OfferReject(BaseModel):
    reason: Optional[str] = Field(None, max_length=2000)


class OfferResponse(BaseModel):
    id: str
    vendor_id: str
    title: str
    description: Optional[str] = None
    category: Optional[str] = None
    discount: float
    discount_type: str
    code: Optional[str] = None
    is_active: bool
    approval_status: str
    rejection_reason: Optional[str] = None
    max_redemptions: Optional[int] = None
    current_redemptions: int
    remaining_redemptions: Optional[int] = None
    valid_until: Optional[datetime] = None
    created_at: datetime

    @field_validator("discount_type", "approval_status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True


class OfferListResponse(BaseModel):
    items: List[OfferResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


# ============== Coupon Schemas ==============

class CouponResponse(BaseModel):
    id: str
    code: str
    offer_id: str
    student_id: str
    vendor_id: str
    redeemed_at: datetime

    class Config:
        from_attributes = True
