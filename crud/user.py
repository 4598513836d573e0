"""
UserRepository for database operations on User model
"""

from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update
from database_models import User, utcnow

SUBSCRIPTION_FIELDS = {
    "plan_type",
    "setup_paid",
    "subscription_active",
    "stripe_customer_id",
    "stripe_subscription_id",
}

QUICKBOOKS_FIELDS = {
    "quickbooks_connected",
    "quickbooks_company_id",
    "quickbooks_access_token",
    "quickbooks_refresh_token",
    "quickbooks_token_expiry",
    "quickbooks_realm_id",
}


class UserRepository:
    """
    Repository class for User database operations.
    Encapsulates all database logic for the User model.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """
        Retrieve a user by email address.

        Args:
            email: User's email address (case-insensitive search)

        Returns:
            User object if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_user_by_id(self, user_id: int, for_update: bool = False) -> Optional[User]:
        """
        Retrieve a user by ID.

        Args:
            user_id: User's ID
            for_update: Lock the row until the surrounding transaction ends
                (ignored by SQLite, honoured by PostgreSQL) and reload it
                over any copy already held by this session

        Returns:
            User object if found, None otherwise
        """
        stmt = select(User).where(User.id == user_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def get_user_by_stripe_customer_id(self, customer_id: str) -> Optional[User]:
        """Resolve the local user that owns a Stripe customer."""
        result = await self.db.execute(
            select(User).where(User.stripe_customer_id == customer_id)
        )
        return result.scalars().first()

    async def create_user(self, user_data: dict) -> User:
        """
        Create a new user in the database.

        Args:
            user_data: Dictionary containing user data. Must include:
                - email: str
                - hashed_password: str
                Optional:
                - first_name / last_name: str
                - is_active: bool (defaults to True)
                - trial_start: datetime (defaults to now)

        Returns:
            Created User object
        """
        user = User(
            email=user_data["email"].lower(),
            hashed_password=user_data["hashed_password"],
            first_name=user_data.get("first_name"),
            last_name=user_data.get("last_name"),
            is_active=user_data.get("is_active", True),
            trial_start=user_data.get("trial_start") or utcnow(),
        )
        self.db.add(user)
        await self.db.flush()  # Flush to get the ID without committing
        await self.db.refresh(user)  # Refresh to get the generated ID
        return user

    async def update_user(self, user: User, updates: dict) -> User:
        """
        Update user fields.

        Args:
            user: User object to update
            updates: Dictionary of fields to update (e.g., {"first_name": "Ada"})

        Returns:
            Updated User object
        """
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)

        await self.db.flush()
        await self.db.refresh(user)
        return user

    async def update_subscription(self, user_id: int, data: dict) -> Optional[User]:
        """
        Write billing fields for one user as a single UPDATE statement.

        Unknown keys raise ValueError so a typo cannot silently drop a
        payment state change.
        """
        return await self._update_fields(user_id, data, SUBSCRIPTION_FIELDS)

    async def update_quickbooks(self, user_id: int, data: dict) -> Optional[User]:
        """Write QuickBooks credential fields for one user as a single UPDATE statement."""
        return await self._update_fields(user_id, data, QUICKBOOKS_FIELDS)

    async def _update_fields(self, user_id: int, data: dict, allowed: set) -> Optional[User]:
        unknown = set(data) - allowed
        if unknown:
            raise ValueError(f"Unsupported user fields: {', '.join(sorted(unknown))}")

        await self.db.execute(
            update(User)
            .where(User.id == user_id)
            .values(**data, updated_at=utcnow())
            .execution_options(synchronize_session="fetch")
        )
        await self.db.flush()
        user = await self.get_user_by_id(user_id)
        if user is not None:
            await self.db.refresh(user)
        return user
