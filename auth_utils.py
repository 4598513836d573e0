"""
Authentication utilities: Password hashing and JWT token management
"""

import jwt
from datetime import datetime, timedelta, timezone
from passlib.context import CryptContext
from typing import Optional
from config import settings

# Password hashing context
pwd_context = CryptContext(
    schemes=["argon2"],
    deprecated="auto"
)

# JWT configuration
ALGORITHM = "HS256"
TOKEN_LIFETIME = timedelta(days=7)

# Contractor sessions and client portal sessions are separate auth domains
SCOPE_CONTRACTOR = "contractor"
SCOPE_CLIENT_PORTAL = "client_portal"


def hash_password(password: str) -> str:
    """Hash a password using argon2"""
    return pwd_context.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """Verify a password against its hash"""
    return pwd_context.verify(password, password_hash)


def _require_secret() -> str:
    if not settings.jwt_secret_key:
        raise ValueError("JWT_SECRET_KEY is not set. Cannot sign or verify JWT tokens.")
    return settings.jwt_secret_key


def create_jwt(user_id: str) -> str:
    """Create a JWT token for a contractor"""
    payload = {
        "sub": user_id,
        "scope": SCOPE_CONTRACTOR,
        "exp": datetime.now(timezone.utc) + TOKEN_LIFETIME
    }
    return jwt.encode(payload, _require_secret(), algorithm=ALGORITHM)


def decode_jwt(token: str, scope: str = SCOPE_CONTRACTOR) -> Optional[dict]:
    """Decode a JWT token. Returns None if invalid, expired or issued for another scope."""
    secret = _require_secret()

    try:
        payload = jwt.decode(token, secret, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        return None
    except jwt.InvalidTokenError:
        return None

    if payload.get("scope") != scope:
        return None
    return payload


def create_client_portal_token(portal_user_id: int, email: str) -> str:
    """Create a 7-day token carrying the client portal user's identity"""
    payload = {
        "sub": str(portal_user_id),
        "email": email,
        "scope": SCOPE_CLIENT_PORTAL,
        "exp": datetime.now(timezone.utc) + TOKEN_LIFETIME
    }
    return jwt.encode(payload, _require_secret(), algorithm=ALGORITHM)


def decode_client_portal_token(token: str) -> Optional[dict]:
    return decode_jwt(token, scope=SCOPE_CLIENT_PORTAL)


def create_expired_jwt(user_id: str, expired_seconds_ago: int = 1, scope: str = SCOPE_CONTRACTOR) -> str:
    """
    Create an expired JWT token for testing purposes.

    Args:
        user_id: User ID to include in token
        expired_seconds_ago: How many seconds ago the token should have expired (default: 1)
        scope: Auth domain the token claims to belong to

    Returns:
        Expired JWT token string

    Raises:
        ValueError: If JWT_SECRET_KEY is not set
    """
    payload = {
        "sub": user_id,
        "scope": scope,
        "exp": datetime.now(timezone.utc) - timedelta(seconds=expired_seconds_ago)
    }
    return jwt.encode(payload, _require_secret(), algorithm=ALGORITHM)
