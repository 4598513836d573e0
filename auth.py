"""
Authentication routes and dependencies
"""

from typing import Optional
from fastapi import APIRouter, HTTPException, Header, Depends, Cookie
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession
import re
import logging

from database import get_db
from database_models import User
from crud.user import UserRepository
from auth_utils import hash_password, verify_password, create_jwt, decode_jwt
from services.entitlement_service import entitlement_for_user
from utils.security_utils import validate_password_strength

logger = logging.getLogger(__name__)

# Create auth router
auth_router = APIRouter(prefix="/api/auth", tags=["auth"])

AUTH_COOKIE = "auth_token"
COOKIE_MAX_AGE = 604800  # 7 days in seconds


# Request models
class SignupRequest(BaseModel):
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class LoginRequest(BaseModel):
    email: str
    password: str


def validate_email(email: str) -> bool:
    """Validate email format"""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def _session_response(user: User) -> JSONResponse:
    token = create_jwt(str(user.id))
    response = JSONResponse(
        content={
            "ok": True,
            "user_id": str(user.id),
            "token": token
        }
    )
    response.set_cookie(
        key=AUTH_COOKIE,
        value=token,
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=COOKIE_MAX_AGE
    )
    return response


def user_profile(user: User) -> dict:
    """User fields safe to hand to the browser, merged with the derived entitlement."""
    profile = {
        "id": user.id,
        "email": user.email,
        "first_name": user.first_name,
        "last_name": user.last_name,
        "plan_type": user.plan_type,
        "setup_paid": user.setup_paid,
        "subscription_active": user.subscription_active,
        "trial_start": user.trial_start.isoformat() if user.trial_start else None,
        "quickbooks_connected": user.quickbooks_connected,
    }
    profile.update(entitlement_for_user(user).to_dict())
    return profile


@auth_router.post("/signup")
async def signup(request: SignupRequest, db: AsyncSession = Depends(get_db)):
    """Create a new contractor account; the 14-day trial starts now"""
    if not validate_email(request.email):
        raise HTTPException(status_code=400, detail="Invalid email format")

    try:
        validate_password_strength(request.password)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    user_repo = UserRepository(db)

    existing_user = await user_repo.get_user_by_email(request.email)
    if existing_user:
        raise HTTPException(status_code=400, detail="Email already registered")

    user = await user_repo.create_user({
        "email": request.email,
        "hashed_password": hash_password(request.password),
        "first_name": request.first_name,
        "last_name": request.last_name,
        "is_active": True,
    })
    logger.info(f"New user signed up: {user.id}")

    return _session_response(user)


@auth_router.post("/login")
async def login(request: LoginRequest, db: AsyncSession = Depends(get_db)):
    """Login and get JWT token"""
    user_repo = UserRepository(db)

    user = await user_repo.get_user_by_email(request.email)
    if not user or not verify_password(request.password, user.hashed_password):
        raise HTTPException(status_code=401, detail="Invalid email or password")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    return _session_response(user)


@auth_router.post("/logout")
async def logout():
    """Logout and clear auth token cookie"""
    response = JSONResponse(
        content={
            "ok": True,
            "message": "Logged out successfully"
        }
    )
    response.set_cookie(
        key=AUTH_COOKIE,
        value="",
        httponly=True,
        secure=True,
        samesite="Lax",
        max_age=0
    )
    return response


# Dependency for protected routes
async def get_current_user(
    auth_token: Optional[str] = Cookie(None),
    authorization: Optional[str] = Header(None, alias="Authorization"),
    db: AsyncSession = Depends(get_db)
) -> User:
    """
    Dependency function to get current authenticated user.

    Authentication priority:
    1. Check auth_token cookie first (httpOnly cookie set by login/signup)
    2. Fallback to Authorization header (Bearer token) for API consumers
    3. Raise 401 if neither is found
    """
    token = None
    if auth_token:
        token = auth_token
    elif authorization and authorization.startswith("Bearer "):
        token = authorization.replace("Bearer ", "").strip()

    if not token:
        raise HTTPException(status_code=401, detail="Missing authentication token")

    payload = decode_jwt(token)
    if not payload:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user_id_str = payload.get("sub")
    if not user_id_str:
        raise HTTPException(status_code=401, detail="Invalid token payload")

    # JWT stores the id as a string
    try:
        user_id = int(user_id_str)
    except (ValueError, TypeError):
        raise HTTPException(status_code=401, detail="Invalid user ID in token")

    user = await UserRepository(db).get_user_by_id(user_id)
    if not user:
        raise HTTPException(status_code=401, detail="User not found")

    if not user.is_active:
        raise HTTPException(status_code=401, detail="User account is inactive")

    return user


async def require_app_access(user: User = Depends(get_current_user)) -> User:
    """Gate for contractor data: active subscription or unexpired trial."""
    if not entitlement_for_user(user).can_access_app:
        raise HTTPException(status_code=402, detail="Trial expired. Please upgrade to continue.")
    return user


async def require_pro(user: User = Depends(get_current_user)) -> User:
    """Gate for Pro features such as the QuickBooks integration."""
    if not entitlement_for_user(user).is_pro:
        raise HTTPException(
            status_code=403,
            detail={
                "message": "QuickBooks integration requires a Pro plan",
                "requires_upgrade": True,
            },
        )
    return user


@auth_router.get("/me")
async def get_current_user_info(user: User = Depends(get_current_user)):
    """Get current user information from JWT token"""
    return {"ok": True, "user_id": str(user.id), **user_profile(user)}


@auth_router.get("/user")
async def get_user_with_entitlement(user: User = Depends(get_current_user)):
    """Profile plus trial and plan state, recomputed on every call"""
    return user_profile(user)
