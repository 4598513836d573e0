"""
Contractor side of the update-request workflow (pending -> reviewed -> completed)

Any status may be set from any other; only unknown values are rejected.
"""
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access
from crud.portal import ClientPortalRepository
from database import get_db
from database_models import User
from models.portal import (
    UPDATE_REQUEST_STATUSES,
    ReplyUpdate,
    StatusUpdate,
    UpdateRequestOut,
    request_out,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/update-requests", tags=["update-requests"])


async def _require_request(repo: ClientPortalRepository, request_id: int, user_id: int):
    update_request = await repo.get_request_for_contractor(request_id, user_id)
    if update_request is None:
        raise HTTPException(status_code=404, detail="Update request not found")
    return update_request


@router.get("", response_model=List[UpdateRequestOut])
async def list_update_requests(user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    rows = await ClientPortalRepository(db).list_requests_for_contractor(user.id)
    return [request_out(req, project_name, client_name) for req, project_name, client_name in rows]


@router.put("/{request_id}/status", response_model=UpdateRequestOut)
async def set_update_request_status(
    request_id: int,
    body: StatusUpdate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    if body.status not in UPDATE_REQUEST_STATUSES:
        raise HTTPException(status_code=400, detail="Invalid status")

    repo = ClientPortalRepository(db)
    update_request = await _require_request(repo, request_id, user.id)
    previous = update_request.status
    update_request = await repo.set_request_status(update_request, body.status)
    logger.info(f"Update request {request_id}: {previous} -> {body.status}")
    return request_out(update_request)


@router.put("/{request_id}/reply", response_model=UpdateRequestOut)
async def reply_to_update_request(
    request_id: int,
    body: ReplyUpdate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """The reply is independent of status and can be rewritten at any time"""
    repo = ClientPortalRepository(db)
    update_request = await _require_request(repo, request_id, user.id)
    return request_out(await repo.set_request_reply(update_request, body.reply))
