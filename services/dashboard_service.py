"""
Dashboard aggregate statistics for a contractor
"""
from datetime import datetime, timedelta, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import Client, Project, Task

MONTHLY_TARGET = 45000
PROFIT_SHARE = Decimal("0.75")
EXPENSE_SHARE = Decimal("0.25")

ACTIVE_PROJECT_STATUSES = ("planning", "in_progress")
REVENUE_PROJECT_STATUSES = ("in_progress", "completed")


def format_money(value: Decimal, round_small: bool = True) -> str:
    """
    Short dashboard money format: "$12.5k" from 1000 up, "$950" below.

    Args:
        value: Amount in dollars
        round_small: Round amounts under 1000 to whole dollars
    """
    if value >= 1000:
        return f"${value / 1000:.1f}k"
    if round_small:
        return f"${int(value.quantize(Decimal('1'), rounding=ROUND_HALF_UP)):,}"
    return f"${value.normalize():,f}"


class DashboardService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_stats(self, user_id: int, now: Optional[datetime] = None) -> dict:
        now = now or datetime.now(timezone.utc)

        active_projects = await self.db.scalar(
            select(func.count(Project.id)).where(
                Project.user_id == user_id,
                Project.status.in_(ACTIVE_PROJECT_STATUSES),
            )
        )

        due_this_week = await self.db.scalar(
            select(func.count(Task.id)).where(
                Task.user_id == user_id,
                Task.status == "pending",
                Task.due_date.is_not(None),
                Task.due_date <= now + timedelta(days=7),
            )
        )

        active_clients = await self.db.scalar(
            select(func.count(func.distinct(Client.id)))
            .join(Project, Project.client_id == Client.id)
            .where(Client.user_id == user_id, Project.status == "in_progress")
        )

        start_of_month = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        revenue_total = await self.db.scalar(
            select(func.coalesce(func.sum(Project.budget), 0)).where(
                Project.user_id == user_id,
                Project.updated_at >= start_of_month,
                Project.status.in_(REVENUE_PROJECT_STATUSES),
            )
        )

        revenue = Decimal(str(revenue_total or 0))
        profit = revenue * PROFIT_SHARE
        expenses = revenue * EXPENSE_SHARE

        return {
            "active_projects": str(active_projects or 0),
            "due_this_week": str(due_this_week or 0),
            "revenue_mtd": format_money(revenue, round_small=False),
            "active_clients": str(active_clients or 0),
            "monthly_target": f"${MONTHLY_TARGET // 1000}k",
            "profit": format_money(profit),
            "expenses": format_money(expenses),
        }
