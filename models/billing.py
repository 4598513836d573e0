"""
Billing and QuickBooks request models
"""
from pydantic import BaseModel


class SubscriptionRequest(BaseModel):
    # Validated by BillingService so an unknown plan answers 400 before Stripe is contacted
    plan_type: str
    include_onboarding: bool = False


class SyncProjectRequest(BaseModel):
    project_id: int
