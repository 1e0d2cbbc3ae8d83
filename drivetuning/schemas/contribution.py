# drivetuning/schemas/contribution.py
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Optional, Literal


class ContributionCreate(BaseModel):
    """Accepts camelCase keys (modificationId, ...) as well as the field names."""
    modification_id: int = Field(alias="modificationId")
    approval_type: str = Field(min_length=1, alias="approvalType")
    approval_number: Optional[str] = Field(default=None, max_length=120, alias="approvalNumber")
    inspection_org: str = Field(min_length=1, alias="inspectionOrg")
    inspection_date: str = Field(min_length=1, alias="inspectionDate")
    notes: Optional[str] = Field(default=None, max_length=2000)
    is_anonymous: Optional[bool] = Field(default=None, alias="isAnonymous")
    has_documents: Optional[bool] = Field(default=None, alias="hasDocuments")

    class Config:
        populate_by_name = True

    @field_validator("approval_type", "inspection_org", "inspection_date", "approval_number", "notes", mode="before")
    @classmethod
    def strip_text(cls, value):
        return value.strip() if isinstance(value, str) else value


class ContributionReview(BaseModel):
    decision: Literal["APPROVED", "REJECTED"]
    rejection_reason: Optional[str] = Field(default=None, max_length=500, alias="rejectionReason")

    class Config:
        populate_by_name = True

    @field_validator("rejection_reason", mode="before")
    @classmethod
    def strip_reason(cls, value):
        return value.strip() if isinstance(value, str) else value


class ContributionOut(BaseModel):
    id: int
    modification_id: int
    approval_type: str
    approval_number: Optional[str]
    inspection_org: str
    inspection_date: datetime
    notes: Optional[str]
    status: str
    is_anonymous: bool
    has_documents: bool
    created_at: datetime

    class Config:
        from_attributes = True


class ContributionStatusOut(BaseModel):
    id: int
    status: str


class ContributionReviewOut(BaseModel):
    contribution: ContributionStatusOut
