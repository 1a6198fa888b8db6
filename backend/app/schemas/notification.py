from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any

from app.models.account import AccountRole


class NotificationResponse(BaseModel):
    id: str
    title: str
    message: str
    type: str
    event_type: Optional[str] = None
    is_global: bool
    is_read: bool
    read_at: Optional[str] = None
    related_offer_id: Optional[str] = None
    related_coupon_id: Optional[str] = None
    created_by_id: Optional[str] = None
    created_by_role: Optional[str] = None
    metadata: Dict[str, Any] = {}
    created_at: Optional[str] = None
    expires_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    items: List[NotificationResponse]
    total: int
    unread_count: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool


class AdminMessageRequest(BaseModel):
    """No role and no account_id reaches everyone"""
    message: str = Field(..., min_length=1, max_length=5000)
    title: Optional[str] = Field(None, max_length=255)
    role: Optional[AccountRole] = None
    account_id: Optional[str] = None
    data: Optional[Dict[str, Any]] = None


class BroadcastRequest(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)
    title: Optional[str] = Field(None, max_length=255)
    data: Optional[Dict[str, Any]] = None


class DeliveryResponse(BaseModel):
    success: bool = True
    event_type: str
    delivered: int
    rooms: List[str]
    notification_id: Optional[str] = None
