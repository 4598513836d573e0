"""
Progress billing milestone models
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.project import blank_to_none

MilestoneStatus = Literal["pending", "in_progress", "completed", "invoiced", "paid"]


class MilestoneCreate(BaseModel):
    project_id: int
    title: str = Field(min_length=1, max_length=255)
    description: Optional[str] = None
    percentage: int = Field(ge=0, le=100)
    amount: Decimal = Field(ge=0)
    status: MilestoneStatus = "pending"
    due_date: Optional[datetime] = None
    requires_photos: bool = True
    min_photos_required: int = Field(default=3, ge=0)
    photo_instructions: Optional[str] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class MilestonePatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    percentage: Optional[int] = Field(default=None, ge=0, le=100)
    amount: Optional[Decimal] = Field(default=None, ge=0)
    status: Optional[MilestoneStatus] = None
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    requires_photos: Optional[bool] = None
    min_photos_required: Optional[int] = Field(default=None, ge=0)
    photo_instructions: Optional[str] = None

    @field_validator("due_date", "completed_at", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class MilestonePhotoCreate(BaseModel):
    file_name: str
    original_name: str
    file_size: int = Field(ge=0)
    mime_type: str
    description: Optional[str] = None
    captured_at: Optional[datetime] = None
    gps_location: Optional[str] = None


class MilestonePhotoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    milestone_id: int
    file_name: str
    original_name: str
    file_size: int
    mime_type: str
    description: Optional[str] = None
    captured_at: datetime
    gps_location: Optional[str] = None
    created_at: datetime


class MilestoneOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    title: str
    description: Optional[str] = None
    percentage: int
    amount: float
    status: str
    due_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    quickbooks_invoice_id: Optional[str] = None
    quickbooks_invoice_number: Optional[str] = None
    quickbooks_invoice_status: Optional[str] = None
    quickbooks_invoice_amount: Optional[float] = None
    requires_photos: bool
    min_photos_required: int
    photo_instructions: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    photos: List[MilestonePhotoOut] = []
