"""
Billing Router - API endpoints for Stripe billing integration
Webhook is defined FIRST to avoid middleware conflicts
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession
import stripe

from auth import get_current_user
from backend.utils.responses import success_response, error_response
from config import settings
from database import get_db
from database_models import User
from models.billing import SubscriptionRequest
from services.billing_service import (
    BillingService,
    StripeGateway,
    get_stripe_gateway,
    INVALID_PLAN,
    EMAIL_REQUIRED,
    STRIPE_NOT_CONFIGURED,
    PROCESSOR_ERROR,
)

logger = logging.getLogger(__name__)

billing_router = APIRouter(tags=["billing"])

ERROR_STATUS = {
    INVALID_PLAN: 400,
    EMAIL_REQUIRED: 400,
    STRIPE_NOT_CONFIGURED: 503,
    PROCESSOR_ERROR: 502,
}


def _webhook_ack(ok: bool, status_code: int = 200, **extra) -> JSONResponse:
    # Stripe re-delivers anything that is not 2xx
    return JSONResponse(status_code=status_code, content={"ok": ok, "received": True, **extra})


# WEBHOOK ENDPOINT - MUST BE DEFINED FIRST TO AVOID MIDDLEWARE CONFLICTS
@billing_router.post("/api/billing/webhook")
@billing_router.post("/api/webhooks/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: Optional[StripeGateway] = Depends(get_stripe_gateway),
):
    """
    Handle Stripe webhook events with signature verification.

    Only verified events are processed to prevent spoofing attacks.
    Deliveries that can never succeed are acknowledged with 200. A failed
    call to Stripe during reconciliation answers 5xx so the event is
    delivered again.
    """
    webhook_secret = settings.stripe_webhook_secret
    if not webhook_secret:
        logger.error("STRIPE_WEBHOOK_SECRET environment variable is not set")
        return _webhook_ack(False, error="Webhook secret not configured")

    # Raw body is required for signature verification
    payload = await request.body()

    stripe_signature = request.headers.get("stripe-signature")
    if not stripe_signature:
        logger.error("Missing Stripe-Signature header")
        return _webhook_ack(False, error="Missing signature header")

    try:
        event = stripe.Webhook.construct_event(payload, stripe_signature, webhook_secret)
    except stripe.SignatureVerificationError as e:
        logger.error(f"Stripe webhook signature verification failed: {e}")
        return _webhook_ack(False, error="Invalid webhook signature")
    except ValueError as e:
        logger.error(f"Invalid webhook payload: {e}")
        return _webhook_ack(False, error="Invalid payload format")

    result = await BillingService(db, gateway).process_webhook(event.to_dict())
    if result.get("is_error"):
        logger.error(f"Webhook {event['id']} not reconciled ({result['error']}); Stripe will retry")
        return _webhook_ack(
            False,
            status_code=ERROR_STATUS.get(result["error"], 500),
            event_type=event["type"],
            error=result["error"],
        )

    return _webhook_ack(True, event_type=event["type"], handled=result["data"]["handled"])


@billing_router.post("/api/create-subscription")
async def create_subscription(
    body: SubscriptionRequest,
    user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    gateway: Optional[StripeGateway] = Depends(get_stripe_gateway),
):
    """
    Start a Core or Pro subscription for the signed-in contractor.

    Open to users whose trial has expired, since this is how they regain access.

    Returns:
        JSON response with subscription_id and client_secret
    """
    result = await BillingService(db, gateway).create_subscription(
        user, body.plan_type, body.include_onboarding
    )
    if result.get("is_error"):
        return error_response(
            result["error"],
            status=ERROR_STATUS.get(result["error"], 400),
            message=result["message"],
        )
    return success_response(result["data"], message="Subscription created")


@billing_router.get("/api/billing/config")
async def billing_config():
    """Publishable key for Stripe.js on the checkout page"""
    if not settings.stripe_publishable_key:
        return error_response(STRIPE_NOT_CONFIGURED, status=503, message="Payments are not configured")
    return success_response({"publishable_key": settings.stripe_publishable_key})
