"""
Configuration settings for the application
"""
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEDIA_DIR = Path("./media")

# Plan identifiers
PLAN_TRIAL = "trial"
PLAN_CORE = "core"
PLAN_PRO = "pro"
PAID_PLANS = (PLAN_CORE, PLAN_PRO)


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    # Core authentication and security
    jwt_secret_key: Optional[str] = Field(default=None, alias="JWT_SECRET_KEY")

    # Stripe billing configuration
    stripe_secret_key: Optional[str] = Field(default=None, alias="STRIPE_SECRET_KEY")
    stripe_publishable_key: Optional[str] = Field(default=None, alias="STRIPE_PUBLISHABLE_KEY")
    stripe_webhook_secret: Optional[str] = Field(default=None, alias="STRIPE_WEBHOOK_SECRET")
    stripe_product_id: Optional[str] = Field(default=None, alias="STRIPE_PRODUCT_ID")
    stripe_fees_product_id: Optional[str] = Field(default=None, alias="STRIPE_FEES_PRODUCT_ID")

    # QuickBooks Online configuration
    quickbooks_client_id: Optional[str] = Field(default=None, alias="QUICKBOOKS_CLIENT_ID")
    quickbooks_client_secret: Optional[str] = Field(default=None, alias="QUICKBOOKS_CLIENT_SECRET")
    quickbooks_redirect_uri: Optional[str] = Field(
        default="http://localhost:8000/api/quickbooks/callback",
        alias="QUICKBOOKS_REDIRECT_URI",
    )
    quickbooks_sandbox: bool = Field(default=True, alias="QUICKBOOKS_SANDBOX")

    # Infrastructure configuration
    redis_url: Optional[str] = Field(default=None, alias="REDIS_URL")
    database_url: Optional[str] = Field(default="sqlite+aiosqlite:///./sql_app.db", alias="DATABASE_URL")

    # Client portal credential endpoints
    auth_rate_limit_per_minute: int = Field(default=30, alias="AUTH_RATE_LIMIT_PER_MINUTE")
    # Honour X-Forwarded-For only behind a known proxy (always on Render)
    trust_forwarded_for: bool = Field(default=False, alias="TRUST_FORWARDED_FOR")

    # Frontend configuration
    frontend_url: Optional[str] = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # Render.com deployment configuration
    render: Optional[str] = Field(default=None, alias="RENDER")
    render_external_url: Optional[str] = Field(default=None, alias="RENDER_EXTERNAL_URL")
    render_service_name: Optional[str] = Field(default=None, alias="RENDER_SERVICE_NAME")

    # Environment configuration
    env: Optional[str] = Field(default=None, alias="ENV")


# Instantiate settings object
settings = Settings()

# Determine if we're in production mode
IS_PRODUCTION = bool(settings.render) or bool(settings.env and settings.env.lower() == "production")
