from pydantic import BaseModel, field_validator
from typing import Optional
from datetime import datetime


class VerificationDocumentResponse(BaseModel):
    id: str
    document_type: str
    file_url: str
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    mime_type: Optional[str] = None
    status: str
    remarks: Optional[str] = None
    uploaded_at: datetime
    reviewed_at: Optional[datetime] = None

    @field_validator("status", mode="before")
    @classmethod
    def enum_value(cls, v):
        return getattr(v, "value", v)

    class Config:
        from_attributes = True
