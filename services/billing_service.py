"""
Billing Service - Stripe subscription creation and webhook reconciliation
"""

import logging
from typing import Any, Optional

import stripe
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings, PAID_PLANS
from crud.user import UserRepository
from database_models import User

logger = logging.getLogger(__name__)

# API version the line-item and payment-intent handling below is written against
STRIPE_API_VERSION = "2023-10-16"

# Amounts in cents
PLAN_PRICES = {"core": 2500, "pro": 3500}
SETUP_FEE = 19900
ONBOARDING_FEE = 20000

EVENT_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
EVENTS_SUBSCRIPTION_DELETED = ("customer.subscription.deleted", "subscription.deleted")

INVALID_PLAN = "invalid_plan"
EMAIL_REQUIRED = "email_required"
STRIPE_NOT_CONFIGURED = "stripe_not_configured"
PROCESSOR_ERROR = "payment_processor_error"


class StripeGateway:
    """
    Short-lived handle on the Stripe API for one request.

    The secret key travels with every call instead of being assigned to the
    module-level stripe.api_key, so no process-wide client state exists.
    """

    def __init__(self, api_key: str):
        self.api_key = api_key

    def _opts(self) -> dict:
        return {"api_key": self.api_key, "stripe_version": STRIPE_API_VERSION}

    # Results are handed to BillingService as plain dicts
    def create_customer(self, email: str, name: str, metadata: dict) -> dict:
        return stripe.Customer.create(email=email, name=name, metadata=metadata, **self._opts()).to_dict()

    def retrieve_customer(self, customer_id: str) -> dict:
        return stripe.Customer.retrieve(customer_id, **self._opts()).to_dict()

    def create_subscription(self, customer_id: str, items: list, add_invoice_items: list, metadata: dict) -> dict:
        return stripe.Subscription.create(
            customer=customer_id,
            items=items,
            add_invoice_items=add_invoice_items,
            payment_behavior="default_incomplete",
            expand=["latest_invoice.payment_intent"],
            metadata=metadata,
            **self._opts(),
        ).to_dict()

    def retrieve_subscription(self, subscription_id: str) -> dict:
        return stripe.Subscription.retrieve(subscription_id, **self._opts()).to_dict()


def get_stripe_gateway() -> Optional[StripeGateway]:
    """
    FastAPI dependency building a fresh gateway per request.
    Returns None when STRIPE_SECRET_KEY is not configured.
    """
    if not settings.stripe_secret_key:
        return None
    return StripeGateway(settings.stripe_secret_key)


def build_line_items(plan_type: str, include_onboarding: bool = False) -> tuple[list, list]:
    """
    Build the recurring plan item and the one-time fee items for a subscription.

    Stripe only accepts recurring prices in subscription items, so the setup
    fee and optional onboarding fee are billed on the first invoice through
    add_invoice_items.

    Args:
        plan_type: "core" or "pro"
        include_onboarding: Add the concierge onboarding fee

    Returns:
        Tuple of (items, add_invoice_items)
    """
    plan_product = settings.stripe_product_id
    fees_product = settings.stripe_fees_product_id or plan_product

    items = [{
        "price_data": {
            "currency": "usd",
            "product": plan_product,
            "unit_amount": PLAN_PRICES[plan_type],
            "recurring": {"interval": "month"},
        },
        "quantity": 1,
    }]

    add_invoice_items = [{
        "price_data": {
            "currency": "usd",
            "product": fees_product,
            "unit_amount": SETUP_FEE,
        },
        "quantity": 1,
    }]
    if include_onboarding:
        add_invoice_items.append({
            "price_data": {
                "currency": "usd",
                "product": fees_product,
                "unit_amount": ONBOARDING_FEE,
            },
            "quantity": 1,
        })

    return items, add_invoice_items


def _error(code: str, message: str) -> dict:
    return {"error": code, "message": message, "is_error": True}


def _object_id(value: Any) -> Optional[str]:
    """Stripe references arrive either as an id string or as an expanded object."""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value["id"]


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    subscription = invoice.get("subscription")
    if subscription:
        return _object_id(subscription)
    # Newer API versions nest the reference under parent.subscription_details
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _object_id(details.get("subscription"))


def _client_secret(subscription: Any) -> Optional[str]:
    invoice = subscription.get("latest_invoice")
    if not invoice or isinstance(invoice, str):
        return None
    payment_intent = invoice.get("payment_intent")
    if payment_intent and not isinstance(payment_intent, str):
        return payment_intent.get("client_secret")
    confirmation = invoice.get("confirmation_secret")
    if confirmation:
        return confirmation.get("client_secret")
    return None


class BillingService:
    """
    Service class for handling billing-related business logic.
    Results are normalized dicts: {"data": ..., "is_error": False} or
    {"error": code, "message": str, "is_error": True}.
    """

    def __init__(self, db: AsyncSession, gateway: Optional[StripeGateway]):
        """
        Initialize the billing service.

        Args:
            db: AsyncSession instance for database operations
            gateway: Stripe gateway for this request, None when Stripe is not configured
        """
        self.db = db
        self.gateway = gateway
        self.user_repo = UserRepository(db)

    async def create_subscription(self, user: User, plan_type: str, include_onboarding: bool = False) -> dict:
        """
        Start a paid subscription for a user and return the client secret the
        frontend needs to confirm the first payment.

        Validation happens before Stripe is contacted. Stripe failures are not
        retried: a blind retry could create a second subscription.

        Args:
            user: The contractor upgrading
            plan_type: "core" or "pro"
            include_onboarding: Add the one-time concierge onboarding fee

        Returns:
            Normalized response with {"subscription_id", "client_secret"} on success
        """
        if plan_type not in PAID_PLANS:
            return _error(INVALID_PLAN, "Invalid plan type")

        if not user.email:
            return _error(EMAIL_REQUIRED, "User email required")

        if self.gateway is None:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot create subscription.")
            return _error(STRIPE_NOT_CONFIGURED, "Payments are not configured")

        if not settings.stripe_product_id:
            logger.error("STRIPE_PRODUCT_ID is not set. Cannot create subscription.")
            return _error(STRIPE_NOT_CONFIGURED, "Payments are not configured")

        try:
            customer_id = user.stripe_customer_id
            if not customer_id:
                name = f"{user.first_name or ''} {user.last_name or ''}".strip()
                customer = self.gateway.create_customer(
                    email=user.email,
                    name=name,
                    metadata={"user_id": str(user.id)},
                )
                customer_id = customer["id"]
                # Persist right away so a later failure still reuses this customer
                await self.user_repo.update_subscription(user.id, {"stripe_customer_id": customer_id})
                logger.info(f"Created Stripe customer {customer_id} for user {user.id}")

            items, add_invoice_items = build_line_items(plan_type, include_onboarding)
            subscription = self.gateway.create_subscription(
                customer_id=customer_id,
                items=items,
                add_invoice_items=add_invoice_items,
                metadata={"user_id": str(user.id), "plan_type": plan_type},
            )
        except stripe.StripeError as e:
            logger.error(f"Failed to create subscription for user {user.id}: {e}", exc_info=True)
            return _error(PROCESSOR_ERROR, "Failed to create subscription")

        await self.user_repo.update_subscription(
            user.id,
            {"stripe_subscription_id": subscription["id"], "plan_type": plan_type},
        )
        logger.info(f"Created {plan_type} subscription {subscription['id']} for user {user.id}")

        return {
            "data": {
                "subscription_id": subscription["id"],
                "client_secret": _client_secret(subscription),
            },
            "is_error": False,
        }

    async def process_webhook(self, event: dict) -> dict:
        """
        Reconcile local subscription flags with a Stripe event.

        The subscription and customer are re-fetched from Stripe instead of
        trusting the payload. Writes only set booleans, so replaying the same
        event leaves the same state.

        Args:
            event: Verified Stripe event as a plain dict

        Returns:
            Normalized response: {"data": {"handled": bool}, "is_error": False}
            or an error dict when Stripe could not be reached
        """
        event_type = event["type"]
        obj = event["data"]["object"]
        logger.info(f"Processing Stripe webhook event: {event_type}")

        if self.gateway is None:
            logger.error("STRIPE_SECRET_KEY is not set. Cannot reconcile webhook.")
            return _error(STRIPE_NOT_CONFIGURED, "Payments are not configured")

        try:
            if event_type == EVENT_PAYMENT_SUCCEEDED:
                handled = await self._handle_payment_succeeded(obj)
            elif event_type in EVENTS_SUBSCRIPTION_DELETED:
                handled = await self._handle_subscription_deleted(obj)
            else:
                logger.info(f"Ignoring unhandled Stripe event type: {event_type}")
                handled = False
        except stripe.StripeError as e:
            logger.error(f"Stripe lookup failed while processing {event_type}: {e}", exc_info=True)
            return _error(PROCESSOR_ERROR, "Failed to reconcile webhook")

        return {"data": {"handled": handled}, "is_error": False}

    async def _handle_payment_succeeded(self, invoice: Any) -> bool:
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            logger.info("Invoice paid without a subscription; nothing to reconcile")
            return False

        subscription = self.gateway.retrieve_subscription(subscription_id)
        user = await self._resolve_user(_object_id(subscription["customer"]))
        if user is None:
            return False

        await self.user_repo.update_subscription(user.id, {"subscription_active": True, "setup_paid": True})
        logger.info(f"Activated subscription {subscription_id} for user {user.id}")
        return True

    async def _handle_subscription_deleted(self, subscription: Any) -> bool:
        user = await self._resolve_user(_object_id(subscription["customer"]))
        if user is None:
            return False

        await self.user_repo.update_subscription(user.id, {"subscription_active": False})
        logger.info(f"Deactivated subscription {subscription.get('id')} for user {user.id}")
        return True

    async def _resolve_user(self, customer_id: Optional[str]) -> Optional[User]:
        if not customer_id:
            logger.warning("Stripe object carries no customer reference")
            return None

        customer = self.gateway.retrieve_customer(customer_id)
        user = await self.user_repo.get_user_by_stripe_customer_id(customer["id"])
        if user is None:
            # Account deleted or event replayed for an unknown customer
            logger.warning(f"No local user for Stripe customer {customer['id']}; ignoring event")
        return user