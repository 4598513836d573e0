"""
Request and response models for projects, clients, tasks and budget items
"""
from datetime import date, datetime
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

ProjectStatus = Literal["planning", "in_progress", "completed", "on_hold"]
TaskStatus = Literal["pending", "in_progress", "completed"]
TaskPriority = Literal["low", "medium", "high", "urgent"]
BudgetCategory = Literal["materials", "labor", "equipment", "other"]


def blank_to_none(value):
    """Date inputs from HTML forms arrive as "" when left empty."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


# Clients

class ClientCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ClientPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None


class ClientOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    created_at: datetime
    updated_at: datetime


# Projects

class ProjectCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    client_id: int
    description: Optional[str] = None
    site_address: Optional[str] = None
    status: ProjectStatus = "planning"
    budget: Optional[Decimal] = None
    spent: Optional[Decimal] = Decimal("0")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: Optional[date] = None
    progress: int = Field(default=0, ge=0, le=100)

    @field_validator("start_date", "end_date", "due_date", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class ProjectPatch(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    client_id: Optional[int] = None
    description: Optional[str] = None
    site_address: Optional[str] = None
    status: Optional[ProjectStatus] = None
    budget: Optional[Decimal] = None
    spent: Optional[Decimal] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: Optional[date] = None
    progress: Optional[int] = Field(default=None, ge=0, le=100)

    @field_validator("start_date", "end_date", "due_date", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class ProjectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    client_id: int
    description: Optional[str] = None
    site_address: Optional[str] = None
    status: str
    budget: Optional[float] = None
    spent: Optional[float] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    due_date: Optional[date] = None
    progress: int
    created_at: datetime
    updated_at: datetime


# Tasks

class TaskCreate(BaseModel):
    title: str = Field(min_length=1, max_length=255)
    project_id: int
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    status: TaskStatus = "pending"
    priority: TaskPriority = "medium"
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("due_date", "start_date", "completed_at", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class TaskPatch(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    status: Optional[TaskStatus] = None
    priority: Optional[TaskPriority] = None
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @field_validator("due_date", "start_date", "completed_at", mode="before")
    @classmethod
    def empty_dates_to_none(cls, value):
        return blank_to_none(value)


class TaskOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    project_id: int
    description: Optional[str] = None
    assigned_to: Optional[str] = None
    status: str
    priority: str
    estimated_hours: Optional[int] = None
    actual_hours: Optional[int] = None
    due_date: Optional[datetime] = None
    start_date: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# Budget items

class BudgetItemCreate(BaseModel):
    project_id: int
    category: BudgetCategory
    description: str = Field(min_length=1, max_length=255)
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    quantity: int = Field(default=1, ge=1)
    unit: Optional[str] = None


class BudgetItemPatch(BaseModel):
    category: Optional[BudgetCategory] = None
    description: Optional[str] = Field(default=None, min_length=1, max_length=255)
    estimated_cost: Optional[Decimal] = None
    actual_cost: Optional[Decimal] = None
    quantity: Optional[int] = Field(default=None, ge=1)
    unit: Optional[str] = None


class BudgetItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: int
    category: str
    description: str
    estimated_cost: Optional[float] = None
    actual_cost: Optional[float] = None
    quantity: int
    unit: Optional[str] = None
    created_at: datetime
    updated_at: datetime
