"""
Client portal, project update and update request models
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

UPDATE_REQUEST_STATUSES = ("pending", "reviewed", "completed")


class PortalLoginRequest(BaseModel):
    email: str
    password: str


class CreatePortalUserRequest(BaseModel):
    client_id: int
    email: str
    password: str


class ForgotPasswordRequest(BaseModel):
    email: str


class ResetPasswordRequest(BaseModel):
    token: str
    password: str


class PortalUserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    client_id: Optional[int] = None
    email: str
    is_active: bool
    last_login: Optional[datetime] = None


# Project updates

class ProjectUpdateCreate(BaseModel):
    project_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None
    is_visible_to_client: bool = True


class PhotoOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: Optional[int] = None
    update_id: Optional[int] = None
    file_name: str
    original_name: str
    caption: Optional[str] = None
    is_visible_to_client: bool
    uploaded_by: str
    created_at: datetime


class ProjectUpdateOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: Optional[int] = None
    title: str
    description: Optional[str] = None
    is_visible_to_client: bool
    created_at: datetime
    project_name: Optional[str] = None
    photos: List[PhotoOut] = []


# Update requests

class UpdateRequestCreate(BaseModel):
    project_id: int
    title: str = Field(min_length=1)
    description: Optional[str] = None


class StatusUpdate(BaseModel):
    # Checked against UPDATE_REQUEST_STATUSES by the router so bad values answer 400
    status: str


class ReplyUpdate(BaseModel):
    reply: str


class UpdateRequestOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    project_id: Optional[int] = None
    client_id: Optional[int] = None
    requested_by: str
    title: str
    description: Optional[str] = None
    status: str
    contractor_reply: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    project_name: Optional[str] = None
    client_name: Optional[str] = None


def update_feed(rows) -> List[ProjectUpdateOut]:
    """Shape repository rows ({"update", "project_name", "photos"}) for the API."""
    return [
        ProjectUpdateOut.model_validate(row["update"]).model_copy(
            update={
                "project_name": row["project_name"],
                "photos": [PhotoOut.model_validate(photo) for photo in row["photos"]],
            }
        )
        for row in rows
    ]


def request_out(update_request, project_name=None, client_name=None) -> UpdateRequestOut:
    return UpdateRequestOut.model_validate(update_request).model_copy(
        update={"project_name": project_name, "client_name": client_name}
    )
