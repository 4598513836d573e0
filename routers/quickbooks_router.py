"""
QuickBooks Router - OAuth connection and one-way sync (Pro plan only)
"""
import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from auth import get_current_user, require_pro
from backend.utils.responses import success_response, error_response
from config import settings
from crud.project import BudgetItemRepository, ClientRepository, ProjectRepository
from crud.user import UserRepository
from database import get_db
from database_models import User
from services.quickbooks_service import QuickBooksError, QuickBooksService, get_quickbooks_transport

logger = logging.getLogger(__name__)

quickbooks_router = APIRouter(prefix="/api/quickbooks", tags=["quickbooks"])


def get_quickbooks_service(
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_quickbooks_transport),
) -> QuickBooksService:
    return QuickBooksService(db, transport=transport)


def _not_connected():
    return error_response("quickbooks_not_connected", status=400, message="QuickBooks not connected")


@quickbooks_router.get("/status")
async def quickbooks_status(user: User = Depends(require_pro)):
    return success_response({
        "connected": bool(user.quickbooks_connected),
        "company_id": user.quickbooks_company_id,
        "realm_id": user.quickbooks_realm_id,
        "configured": QuickBooksService.is_configured(),
    })


@quickbooks_router.post("/connect")
async def quickbooks_connect(user: User = Depends(require_pro)):
    """Start the Intuit OAuth2 consent flow"""
    if not QuickBooksService.is_configured():
        logger.error("QUICKBOOKS_CLIENT_ID / QUICKBOOKS_CLIENT_SECRET are not set")
        return error_response("quickbooks_not_configured", status=503, message="QuickBooks is not configured")
    return success_response({"auth_url": QuickBooksService.get_authorization_url(user.id)})


@quickbooks_router.get("/callback")
async def quickbooks_callback(
    code: Optional[str] = None,
    realmId: Optional[str] = None,
    state: Optional[str] = None,
    db: AsyncSession = Depends(get_db),
    service: QuickBooksService = Depends(get_quickbooks_service),
):
    """
    Intuit redirects the browser here after consent. The state parameter
    carries the user id handed out by /connect.
    """
    frontend = settings.frontend_url or ""
    if not code or not realmId or not state:
        logger.warning("QuickBooks callback missing code, realmId or state")
        return RedirectResponse(f"{frontend}/quickbooks/callback?error=missing_parameters")

    try:
        user_id = int(state)
    except ValueError:
        return RedirectResponse(f"{frontend}/quickbooks/callback?error=invalid_state")

    if await UserRepository(db).get_user_by_id(user_id) is None:
        return RedirectResponse(f"{frontend}/quickbooks/callback?error=invalid_state")

    if not await service.handle_callback(user_id, code, realmId):
        return RedirectResponse(f"{frontend}/quickbooks/callback?error=token_exchange_failed")

    return RedirectResponse(f"{frontend}/quickbooks/callback?success=true")


@quickbooks_router.post("/disconnect")
async def quickbooks_disconnect(
    user: User = Depends(get_current_user),
    service: QuickBooksService = Depends(get_quickbooks_service),
):
    # Allowed without Pro so a downgraded user can still remove stored credentials
    await service.disconnect(user.id)
    return success_response(message="QuickBooks disconnected successfully")


@quickbooks_router.post("/sync-project/{project_id}")
async def quickbooks_sync_project(
    project_id: int,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
    service: QuickBooksService = Depends(get_quickbooks_service),
):
    """Push a project and its budget items to QuickBooks as an estimate"""
    project = await ProjectRepository(db).get(project_id, user.id)
    if project is None:
        return error_response("not_found", status=404, message="Project not found")

    client = await ClientRepository(db).get(project.client_id, user.id)
    if client is None:
        return error_response("not_found", status=404, message="Client not found")

    qb_client = await service.get_client(user.id)
    if qb_client is None:
        return _not_connected()

    budget_items = await BudgetItemRepository(db).list_items(user.id, project_id)
    try:
        estimate_id = await qb_client.sync_project(project, client, budget_items)
    except QuickBooksError as e:
        logger.error(f"QuickBooks sync of project {project_id} failed: {e}")
        return error_response("quickbooks_error", status=502, message="Failed to sync project to QuickBooks")

    logger.info(f"Project {project_id} synced to QuickBooks estimate {estimate_id}")
    return success_response({"estimate_id": estimate_id}, message="Project synced to QuickBooks successfully")


@quickbooks_router.get("/company")
async def quickbooks_company(
    user: User = Depends(require_pro),
    service: QuickBooksService = Depends(get_quickbooks_service),
):
    qb_client = await service.get_client(user.id)
    if qb_client is None:
        return _not_connected()

    try:
        company = await qb_client.get_company_info()
    except QuickBooksError:
        return error_response("quickbooks_error", status=502, message="Failed to get company information")
    return success_response(company)
