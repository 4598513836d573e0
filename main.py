"""
ContractorFlow Backend
Projects, clients, progress billing and client portal for contractors, with
Stripe subscriptions and QuickBooks Online sync
"""

from pathlib import Path
import logging
import traceback

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

# Import routers
from auth import auth_router
from routers.billing_router import billing_router
from routers.client_portal_router import router as client_portal_router
from routers.dashboard_router import router as dashboard_router
from routers.progress_billing_router import router as progress_billing_router
from routers.project_updates_router import router as project_updates_router
from routers.projects_router import router as projects_router
from routers.quickbooks_router import quickbooks_router
from routers.update_requests_router import router as update_requests_router
from services.quickbooks_service import QuickBooksService
from utils.rate_limit import RateLimiterMiddleware
from database import init_db
from config.settings import settings, MEDIA_DIR

# Logging setup - write ALL events to /logs/app.log
LOGS_DIR = Path("./logs")
LOGS_DIR.mkdir(exist_ok=True)
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.FileHandler(LOGS_DIR / "app.log"),
        logging.StreamHandler()
    ]
)
logger = logging.getLogger(__name__)

# ============================================================================
# FASTAPI APP SETUP
# ============================================================================

app = FastAPI(title="ContractorFlow API")


def _is_render_env() -> bool:
    """Check if running in Render.com environment"""
    return bool(settings.render or settings.render_external_url or settings.render_service_name)


# Uncaught exception middleware - logs all unhandled exceptions and returns 500
class UncaughtExceptionMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request, call_next):
        try:
            return await call_next(request)
        except Exception as e:
            logger.error(f"Uncaught exception: {e}\n{traceback.format_exc()}")
            return JSONResponse(
                status_code=500,
                content={"ok": False, "error": "Internal Server Error"}
            )


# Optional integrations: the process starts without them, the matching endpoints answer with an error
INTEGRATION_KEYS = {
    "JWT_SECRET_KEY": settings.jwt_secret_key,
    "STRIPE_SECRET_KEY": settings.stripe_secret_key,
    "STRIPE_WEBHOOK_SECRET": settings.stripe_webhook_secret,
    "STRIPE_PRODUCT_ID": settings.stripe_product_id,
    "QUICKBOOKS_CLIENT_ID": settings.quickbooks_client_id,
    "QUICKBOOKS_CLIENT_SECRET": settings.quickbooks_client_secret,
}


# Security headers middleware
class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses: CSP, HSTS, X-Frame-Options, X-Content-Type-Options"""
    async def dispatch(self, request, call_next):
        response = await call_next(request)

        # Stripe.js needs its script and API origins
        response.headers["Content-Security-Policy"] = (
            "default-src 'self'; "
            "script-src 'self' https://js.stripe.com; "
            "style-src 'self' 'unsafe-inline'; "
            "connect-src 'self' https://api.stripe.com; "
            "frame-src https://js.stripe.com; "
            "img-src 'self' data: blob:; "
            "font-src 'self' data:; "
            "object-src 'none'; "
            "base-uri 'self'; "
            "form-action 'self';"
        )

        # HTTPS is only guaranteed on Render
        if _is_render_env():
            response.headers["Strict-Transport-Security"] = "max-age=31536000; includeSubDomains"

        response.headers["X-Frame-Options"] = "DENY"
        response.headers["X-Content-Type-Options"] = "nosniff"

        return response


app.add_middleware(UncaughtExceptionMiddleware)
app.add_middleware(RateLimiterMiddleware, requests_per_minute=settings.auth_rate_limit_per_minute)
app.add_middleware(SecurityHeadersMiddleware)

# CORS MUST be near the bottom
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

MEDIA_DIR.mkdir(exist_ok=True)

# ============================================================================
# STARTUP CHECKS
# ============================================================================
@app.on_event("startup")
async def check_env_keys_on_startup():
    """Warn about missing integration keys (non-fatal)"""
    missing = [key for key, value in INTEGRATION_KEYS.items() if not value]
    if missing:
        logger.warning(f"Startup check: Missing environment variables: {', '.join(missing)}")
    else:
        logger.info("Startup check: All integration keys are set")
    if not QuickBooksService.is_configured():
        logger.warning("QuickBooks integration disabled until credentials are configured")


# Initialize database on startup
@app.on_event("startup")
async def initialize_database():
    """Create all tables."""
    try:
        await init_db()
        logger.info("Database initialized successfully")
    except Exception as e:
        logger.error(f"Database initialization failed: {e}")
        raise


@app.get("/api/health")
async def health():
    return {"ok": True}


# ============================================================================
# INCLUDE ROUTERS
# ============================================================================
# Billing first: the Stripe webhook must see the raw request body
app.include_router(billing_router)
app.include_router(auth_router)
app.include_router(projects_router)
app.include_router(dashboard_router)
app.include_router(project_updates_router)
app.include_router(update_requests_router)
app.include_router(client_portal_router)
app.include_router(quickbooks_router)
app.include_router(progress_billing_router)

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
