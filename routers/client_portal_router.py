"""
Client portal router: a separate, lower-privilege auth domain for end-clients.

Portal users sign in with their own email/password, receive a Bearer token
scoped to "client_portal", and only ever see rows belonging to their client.
"""
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access
from auth_utils import create_client_portal_token, decode_client_portal_token, hash_password, verify_password
from config import IS_PRODUCTION
from crud.portal import ClientPortalRepository
from crud.project import ClientRepository, ProjectRepository
from database import get_db
from database_models import ClientPortalUser, User
from models.portal import (
    CreatePortalUserRequest,
    ForgotPasswordRequest,
    PortalLoginRequest,
    ProjectUpdateOut,
    ResetPasswordRequest,
    UpdateRequestCreate,
    UpdateRequestOut,
    request_out,
    update_feed,
)
from models.project import ProjectOut
from utils.security_utils import validate_portal_password

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/client-portal", tags=["client-portal"])

RESET_TOKEN_BYTES = 32
RESET_TOKEN_LIFETIME = timedelta(minutes=30)
RESET_MESSAGE = "If an account with that email exists, a reset link has been sent."


async def get_current_portal_user(
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db),
) -> ClientPortalUser:
    """
    Resolve the portal user from a Bearer token.
    Contractor tokens, expired tokens and deactivated accounts all answer 401.
    """
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Access token required")

    payload = decode_client_portal_token(authorization.replace("Bearer ", "").strip())
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid token")

    try:
        portal_user_id = int(payload.get("sub"))
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid token")

    portal_user = await ClientPortalRepository(db).get_portal_user_by_id(portal_user_id)
    if portal_user is None or not portal_user.is_active:
        raise HTTPException(status_code=401, detail="Invalid token")
    return portal_user


@router.post("/login")
async def portal_login(body: PortalLoginRequest, db: AsyncSession = Depends(get_db)):
    repo = ClientPortalRepository(db)
    portal_user = await repo.get_portal_user(body.email)
    if portal_user is None or not portal_user.is_active:
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if not verify_password(body.password, portal_user.password_hash):
        raise HTTPException(status_code=401, detail="Invalid credentials")

    await repo.record_login(portal_user.id)
    token = create_client_portal_token(portal_user.id, portal_user.email)

    return {
        "success": True,
        "token": token,
        "user": {
            "id": portal_user.id,
            "email": portal_user.email,
            "client_id": portal_user.client_id,
        },
    }


@router.get("/profile")
async def portal_profile(
    portal_user: ClientPortalUser = Depends(get_current_portal_user),
    db: AsyncSession = Depends(get_db),
):
    client = await ClientRepository(db).get_by_id(portal_user.client_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return {"name": client.name, "email": client.email, "phone": client.phone}


@router.get("/projects", response_model=List[ProjectOut])
async def portal_projects(
    portal_user: ClientPortalUser = Depends(get_current_portal_user),
    db: AsyncSession = Depends(get_db),
):
    return await ProjectRepository(db).list_for_client(portal_user.client_id)


@router.get("/updates", response_model=List[ProjectUpdateOut])
async def portal_updates(
    portal_user: ClientPortalUser = Depends(get_current_portal_user),
    db: AsyncSession = Depends(get_db),
):
    """Client-visible updates with their client-visible photos, newest first"""
    projects = await ProjectRepository(db).list_for_client(portal_user.client_id)
    rows = await ClientPortalRepository(db).list_updates_with_photos(
        [project.id for project in projects], client_view=True
    )
    return update_feed(rows)


@router.post("/request-update", response_model=UpdateRequestOut, status_code=201)
async def portal_request_update(
    body: UpdateRequestCreate,
    portal_user: ClientPortalUser = Depends(get_current_portal_user),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectRepository(db).get_for_client(body.project_id, portal_user.client_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")

    update_request = await ClientPortalRepository(db).create_update_request({
        "project_id": project.id,
        "client_id": portal_user.client_id,
        "requested_by": portal_user.email,
        "title": body.title,
        "description": body.description or "",
        "status": "pending",
    })
    logger.info(f"Portal user {portal_user.id} requested an update on project {project.id}")
    return request_out(update_request, project_name=project.name)


@router.get("/update-requests", response_model=List[UpdateRequestOut])
async def portal_update_requests(
    portal_user: ClientPortalUser = Depends(get_current_portal_user),
    db: AsyncSession = Depends(get_db),
):
    rows = await ClientPortalRepository(db).list_requests_for_client(portal_user.client_id)
    return [request_out(req, project_name) for req, project_name in rows]


@router.post("/create-user", status_code=201)
async def create_portal_user(
    body: CreatePortalUserRequest,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    """Contractor invites one of their own clients into the portal"""
    client = await ClientRepository(db).get(body.client_id, user.id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")

    try:
        validate_portal_password(body.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    repo = ClientPortalRepository(db)
    if await repo.get_portal_user(body.email):
        raise HTTPException(status_code=400, detail="User already exists")

    portal_user = await repo.create_portal_user(client.id, body.email, hash_password(body.password))
    logger.info(f"User {user.id} created portal user {portal_user.id} for client {client.id}")

    return {
        "success": True,
        "message": "Client portal user created",
        "user": {"id": portal_user.id, "email": portal_user.email},
    }


@router.post("/forgot-password")
async def forgot_password(body: ForgotPasswordRequest, db: AsyncSession = Depends(get_db)):
    """
    Issue a 30-minute reset token.

    The answer is identical whether or not the email exists. Outside
    production the token is echoed back since no mailer is wired up.
    """
    if not body.email.strip():
        raise HTTPException(status_code=400, detail="Email is required")

    repo = ClientPortalRepository(db)
    portal_user = await repo.get_portal_user(body.email)
    if portal_user is None or not portal_user.is_active:
        return {"message": RESET_MESSAGE}

    reset_token = secrets.token_hex(RESET_TOKEN_BYTES)
    await repo.set_reset_token(
        portal_user.email, reset_token, datetime.now(timezone.utc) + RESET_TOKEN_LIFETIME
    )
    logger.info(f"Password reset requested for portal user {portal_user.id}")

    response = {"message": RESET_MESSAGE}
    if not IS_PRODUCTION:
        response["reset_token"] = reset_token
        response["reset_url"] = f"/client-portal/reset-password?token={reset_token}"
    return response


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest, db: AsyncSession = Depends(get_db)):
    if not body.token or not body.password:
        raise HTTPException(status_code=400, detail="Token and new password are required")

    try:
        validate_portal_password(body.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    repo = ClientPortalRepository(db)
    portal_user = await repo.get_by_reset_token(body.token)
    if portal_user is None:
        raise HTTPException(status_code=400, detail="Invalid or expired reset token")

    await repo.reset_password(portal_user.id, hash_password(body.password))
    logger.info(f"Password reset completed for portal user {portal_user.id}")
    return {"message": "Password has been reset successfully"}
