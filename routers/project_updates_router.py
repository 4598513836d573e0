"""
Project updates router: progress posts and photos the contractor shares with clients
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access
from crud.portal import ClientPortalRepository
from crud.project import ProjectRepository
from database import get_db
from database_models import User
from models.portal import PhotoOut, ProjectUpdateCreate, ProjectUpdateOut, update_feed
from utils.photo_storage import PROJECT_PHOTOS, resolve_photo, save_uploaded_photo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/project-updates", tags=["project-updates"])


@router.get("", response_model=List[ProjectUpdateOut])
async def list_project_updates(user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    """Every update on the contractor's projects, hidden ones included, newest first"""
    projects = await ProjectRepository(db).list_projects(user.id)
    rows = await ClientPortalRepository(db).list_updates_with_photos(
        [project.id for project in projects], client_view=False
    )
    return update_feed(rows)


@router.post("", response_model=ProjectUpdateOut, status_code=201)
async def create_project_update(
    body: ProjectUpdateCreate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectRepository(db).get(body.project_id, user.id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    project_update = await ClientPortalRepository(db).create_project_update({
        **body.model_dump(),
        "user_id": user.id,
    })
    logger.info(f"User {user.id} posted update {project_update.id} on project {project.id}")
    return ProjectUpdateOut.model_validate(project_update).model_copy(update={"project_name": project.name})


@router.post("/photos", response_model=PhotoOut, status_code=201)
async def upload_project_photo(
    update_id: int = Form(...),
    caption: Optional[str] = Form(None),
    is_visible_to_client: bool = Form(True),
    file: UploadFile = File(...),
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """
    Attach an image to one of the contractor's updates.

    Security validations:
    - Filename sanitization (prevents path traversal)
    - Image extension whitelist
    - File size limit (10MB)
    - Content signature check
    """
    repo = ClientPortalRepository(db)
    project_update = await repo.get_project_update(update_id, user.id)
    if project_update is None:
        raise HTTPException(status_code=404, detail="Update not found")

    stored = await save_uploaded_photo(file, PROJECT_PHOTOS)
    return await repo.create_project_photo({
        "project_id": project_update.project_id,
        "update_id": project_update.id,
        "file_name": stored["file_name"],
        "original_name": stored["original_name"],
        "caption": caption or "Progress photo",
        "is_visible_to_client": is_visible_to_client,
        "uploaded_by": str(user.id),
    })


@router.get("/photos/{file_name}")
async def get_project_photo(file_name: str):
    """Serve a stored photo. Names are random, so <img> tags in both portals can load them directly."""
    return FileResponse(resolve_photo(PROJECT_PHOTOS, file_name))
