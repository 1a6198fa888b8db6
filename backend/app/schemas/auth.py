from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime

from app.models.account import AccountRole


class SignupRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    email: EmailStr
    password: str = Field(..., min_length=8)
    role: AccountRole = AccountRole.STUDENT

    # Student details
    college_name: Optional[str] = None
    course_name: Optional[str] = None
    enrollment_number: Optional[str] = None
    graduation_year: Optional[int] = Field(None, ge=1950, le=2100)

    # Vendor details
    business_name: Optional[str] = None
    business_category: Optional[str] = None
    phone: Optional[str] = Field(None, max_length=20)

    @model_validator(mode='after')
    def validate_role_fields(self):
        """Public signup is open to students and vendors only"""
        if self.role == AccountRole.ADMIN:
            raise ValueError("Admin accounts cannot be created through signup")
        if self.role == AccountRole.STUDENT and not (self.college_name and self.college_name.strip()):
            raise ValueError("Required fields for students: College Name")
        if self.role == AccountRole.VENDOR and not (self.business_name and self.business_name.strip()):
            raise ValueError("Required fields for vendors: Business Name")
        return self

    def profile_fields(self) -> Dict[str, Any]:
        if self.role == AccountRole.STUDENT:
            keys = ("college_name", "course_name", "enrollment_number", "graduation_year")
        else:
            keys = ("business_name", "business_category", "phone")
        return {key: getattr(self, key) for key in keys}


class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    role: AccountRole


class ProfileUpdate(BaseModel):
    """Self-service profile edits; only fields that apply to the caller's role are accepted"""
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    college_name: Optional[str] = Field(None, max_length=255)
    course_name: Optional[str] = Field(None, max_length=255)
    enrollment_number: Optional[str] = Field(None, max_length=100)
    graduation_year: Optional[int] = Field(None, ge=1950, le=2100)
    business_name: Optional[str] = Field(None, max_length=255)
    business_category: Optional[str] = Field(None, max_length=100)
    phone: Optional[str] = Field(None, max_length=20)
    department: Optional[str] = Field(None, max_length=100)

    @field_validator("name")
    @classmethod
    def name_not_null(cls, v):
        if v is None:
            raise ValueError("name cannot be empty")
        return v.strip()

    def changes(self) -> Dict[str, Any]:
        return self.model_dump(exclude_unset=True)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)

    @model_validator(mode="after")
    def password_differs(self):
        if self.current_password == self.new_password:
            raise ValueError("New password must differ from the current password")
        return self


class CloseAccountRequest(BaseModel):
    password: str
    confirm: str = Field(..., description='Must be the word "DELETE"')

    @field_validator("confirm")
    @classmethod
    def confirm_delete(cls, v: str) -> str:
        if v != "DELETE":
            raise ValueError('Type DELETE to confirm')
        return v


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class AccountResponse(BaseModel):
    id: str
    name: str
    email: str
    role: AccountRole
    verification_status: str
    approval_status: str
    is_verified: bool
    is_active: bool
    is_suspended: bool
    suspension_reason: Optional[str] = None
    created_at: datetime
    last_login: Optional[datetime] = None

    # Role-specific profile
    college_name: Optional[str] = None
    course_name: Optional[str] = None
    enrollment_number: Optional[str] = None
    graduation_year: Optional[int] = None
    business_name: Optional[str] = None
    business_category: Optional[str] = None
    phone: Optional[str] = None
    department: Optional[str] = None

    @field_validator("verification_status", "approval_status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True


class LoginResponse(Token):
    account: AccountResponse


class LoginSessionResponse(BaseModel):
    id: str
    email: str
    role: str
    ip_address: Optional[str] = None
    device_info: Optional[Dict[str, str]] = None
    login_status: str
    failure_reason: Optional[str] = None
    login_time: datetime
    logout_time: Optional[datetime] = None
    is_active: bool

    @field_validator("login_status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True


class LoginHistoryResponse(BaseModel):
    items: List[LoginSessionResponse]
    total: int
    page: int
    page_size: int
    total_pages: int
    has_next: bool
    has_previous: bool
    stats: Dict[str, Any]
