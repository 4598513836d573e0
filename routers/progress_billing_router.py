"""
Progress billing router: percentage-of-completion milestones with photo documentation
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Response, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access, require_pro
from backend.utils.responses import success_response, error_response
from crud.milestone import MilestoneRepository
from crud.project import ClientRepository, ProjectRepository
from database import get_db
from database_models import User
from models.milestone import (
    MilestoneCreate,
    MilestoneOut,
    MilestonePatch,
    MilestonePhotoCreate,
    MilestonePhotoOut,
)
from routers.quickbooks_router import get_quickbooks_service
from services.quickbooks_service import QuickBooksError, QuickBooksService
from utils.photo_storage import MILESTONE_PHOTOS, resolve_photo, save_uploaded_photo

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/progress-billing", tags=["progress-billing"])


def _with_photos(milestone, photos) -> MilestoneOut:
    return MilestoneOut.model_validate(milestone).model_copy(
        update={"photos": [MilestonePhotoOut.model_validate(photo) for photo in photos]}
    )


async def _require_milestone(repo: MilestoneRepository, milestone_id: int, user_id: int):
    milestone = await repo.get(milestone_id, user_id)
    if milestone is None:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return milestone


@router.get("/milestones", response_model=List[MilestoneOut])
async def list_milestones(
    project_id: Optional[int] = None,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """Milestones ordered by percentage, each with its photos"""
    repo = MilestoneRepository(db)
    milestones = await repo.list_milestones(user.id, project_id)
    photos = await repo.photos_by_milestone([m.id for m in milestones])
    return [_with_photos(m, photos.get(m.id, [])) for m in milestones]


@router.get("/milestones/{milestone_id}", response_model=MilestoneOut)
async def get_milestone(milestone_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    repo = MilestoneRepository(db)
    milestone = await _require_milestone(repo, milestone_id, user.id)
    return _with_photos(milestone, await repo.list_photos(milestone.id))


@router.post("/milestones", response_model=MilestoneOut, status_code=201)
async def create_milestone(
    body: MilestoneCreate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    if await ProjectRepository(db).get(body.project_id, user.id) is None:
        raise HTTPException(status_code=404, detail="Project not found")
    milestone = await MilestoneRepository(db).create(user.id, body.model_dump())
    return _with_photos(milestone, [])


@router.patch("/milestones/{milestone_id}", response_model=MilestoneOut)
async def update_milestone(
    milestone_id: int,
    body: MilestonePatch,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    repo = MilestoneRepository(db)
    data = body.model_dump(exclude_unset=True)
    if data.get("status") == "completed" and "completed_at" not in data:
        data["completed_at"] = datetime.now(timezone.utc)
    milestone = await repo.update(milestone_id, user.id, data)
    if milestone is None:
        raise HTTPException(status_code=404, detail="Milestone not found")
    return _with_photos(milestone, await repo.list_photos(milestone.id))


@router.delete("/milestones/{milestone_id}", status_code=204)
async def delete_milestone(milestone_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await MilestoneRepository(db).delete(milestone_id, user.id):
        raise HTTPException(status_code=404, detail="Milestone not found")
    return Response(status_code=204)


@router.get("/milestones/{milestone_id}/photos", response_model=List[MilestonePhotoOut])
async def list_milestone_photos(
    milestone_id: int,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    repo = MilestoneRepository(db)
    await _require_milestone(repo, milestone_id, user.id)
    return await repo.list_photos(milestone_id)


@router.post("/milestones/{milestone_id}/photos", response_model=MilestonePhotoOut, status_code=201)
async def create_milestone_photo(
    milestone_id: int,
    body: MilestonePhotoCreate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """Record photo metadata for a file stored elsewhere (e.g. taken by the mobile app)"""
    repo = MilestoneRepository(db)
    await _require_milestone(repo, milestone_id, user.id)
    data = body.model_dump()
    data["captured_at"] = data["captured_at"] or datetime.now(timezone.utc)
    return await repo.create_photo(milestone_id, data)


@router.post("/photos", response_model=MilestonePhotoOut, status_code=201)
async def upload_milestone_photo(
    milestone_id: int = Form(...),
    description: Optional[str] = Form(None),
    gps_location: Optional[str] = Form(None),
    file: UploadFile = File(...),
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """Upload an image documenting milestone progress (images only, 10MB max)"""
    repo = MilestoneRepository(db)
    await _require_milestone(repo, milestone_id, user.id)

    stored = await save_uploaded_photo(file, MILESTONE_PHOTOS)
    return await repo.create_photo(milestone_id, {
        **stored,
        "description": description,
        "gps_location": gps_location,
        "captured_at": datetime.now(timezone.utc),
    })


@router.get("/photos/{file_name}")
async def get_milestone_photo(file_name: str):
    return FileResponse(resolve_photo(MILESTONE_PHOTOS, file_name))


@router.delete("/photos/{photo_id}", status_code=204)
async def delete_milestone_photo(photo_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await MilestoneRepository(db).delete_photo(photo_id, user.id):
        raise HTTPException(status_code=404, detail="Photo not found")
    return Response(status_code=204)


@router.post("/milestones/{milestone_id}/sync-quickbooks")
async def sync_milestone_to_quickbooks(
    milestone_id: int,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
    service: QuickBooksService = Depends(get_quickbooks_service),
):
    """Invoice a milestone in QuickBooks and record the invoice on it"""
    repo = MilestoneRepository(db)
    milestone = await _require_milestone(repo, milestone_id, user.id)

    project = await ProjectRepository(db).get(milestone.project_id, user.id)
    if project is None:
        return error_response("not_found", status=404, message="Project not found")
    client = await ClientRepository(db).get(project.client_id, user.id)
    if client is None:
        return error_response("not_found", status=404, message="Client not found")

    qb_client = await service.get_client(user.id)
    if qb_client is None:
        return error_response("quickbooks_not_connected", status=400, message="QuickBooks not connected")

    try:
        invoice_fields = await qb_client.sync_milestone(milestone, project, client)
    except QuickBooksError as e:
        logger.error(f"QuickBooks sync of milestone {milestone_id} failed: {e}")
        return error_response("quickbooks_error", status=502, message="Failed to sync milestone to QuickBooks")

    milestone = await repo.update(milestone_id, user.id, {**invoice_fields, "status": "invoiced"})
    logger.info(f"Milestone {milestone_id} invoiced in QuickBooks as {invoice_fields['quickbooks_invoice_id']}")
    return success_response(
        MilestoneOut.model_validate(milestone).model_dump(mode="json"),
        message="Milestone synced to QuickBooks",
    )
