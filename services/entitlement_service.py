"""
Entitlement evaluation: trial window and subscription state -> access rights

Nothing here touches the database. Values are derived from the user row on
every request and never stored.
"""
import math
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from config.settings import PLAN_PRO

TRIAL_DAYS = 14
TRIAL_PERIOD = timedelta(days=TRIAL_DAYS)
SECONDS_PER_DAY = 86400


@dataclass(frozen=True)
class Entitlement:
    is_trial_active: bool
    trial_days_remaining: int
    can_access_app: bool
    is_pro: bool
    trial_ends_at: datetime

    def to_dict(self) -> dict:
        data = asdict(self)
        data["trial_ends_at"] = self.trial_ends_at.isoformat()
        return data


def _as_utc(value: datetime) -> datetime:
    # SQLite returns naive datetimes; everything is stored in UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def evaluate_entitlement(
    trial_start: Optional[datetime],
    subscription_active: bool,
    plan_type: Optional[str],
    now: Optional[datetime] = None,
) -> Entitlement:
    """
    Compute what a user may access.

    A missing trial_start means the trial starts now, so the user gets the
    full 14 days. The trial is still active at exactly trial_start + 14 days.

    Args:
        trial_start: When the trial began (account creation by default)
        subscription_active: Whether a paid subscription is currently active
        plan_type: "trial", "core" or "pro"
        now: Evaluation instant, defaults to the current UTC time

    Returns:
        Entitlement with the derived flags
    """
    now = _as_utc(now) if now is not None else datetime.now(timezone.utc)
    start = _as_utc(trial_start) if trial_start is not None else now
    trial_end = start + TRIAL_PERIOD

    is_trial_active = now <= trial_end
    remaining_seconds = (trial_end - now).total_seconds()
    trial_days_remaining = max(0, math.ceil(remaining_seconds / SECONDS_PER_DAY))

    can_access_app = bool(subscription_active) or is_trial_active

    return Entitlement(
        is_trial_active=is_trial_active,
        trial_days_remaining=trial_days_remaining,
        can_access_app=can_access_app,
        is_pro=plan_type == PLAN_PRO and can_access_app,
        trial_ends_at=trial_end,
    )


def entitlement_for_user(user, now: Optional[datetime] = None) -> Entitlement:
    """Evaluate entitlement straight from a User row (or anything with the same attributes)."""
    return evaluate_entitlement(
        trial_start=user.trial_start,
        subscription_active=user.subscription_active,
        plan_type=user.plan_type,
        now=now,
    )
