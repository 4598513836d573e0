"""
Repository for the client portal: portal logins, project updates/photos and update requests
"""

from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from database_models import (
    Client,
    ClientPortalUser,
    Project,
    ProjectPhoto,
    ProjectUpdate,
    UpdateRequest,
    utcnow,
)


class ClientPortalRepository:
    """
    Data access for everything a client portal user can read or create,
    plus the contractor-side views of the same rows.
    """

    def __init__(self, db: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            db: AsyncSession instance for database operations
        """
        self.db = db

    # Portal users

    async def get_portal_user(self, email: str) -> Optional[ClientPortalUser]:
        result = await self.db.execute(
            select(ClientPortalUser).where(ClientPortalUser.email == email.lower())
        )
        return result.scalar_one_or_none()

    async def get_portal_user_by_id(self, portal_user_id: int) -> Optional[ClientPortalUser]:
        result = await self.db.execute(
            select(ClientPortalUser).where(ClientPortalUser.id == portal_user_id)
        )
        return result.scalar_one_or_none()

    async def create_portal_user(self, client_id: int, email: str, password_hash: str) -> ClientPortalUser:
        portal_user = ClientPortalUser(
            client_id=client_id,
            email=email.lower(),
            password_hash=password_hash,
            is_active=True,
        )
        self.db.add(portal_user)
        await self.db.flush()
        await self.db.refresh(portal_user)
        return portal_user

    async def record_login(self, portal_user_id: int) -> None:
        await self.db.execute(
            update(ClientPortalUser)
            .where(ClientPortalUser.id == portal_user_id)
            .values(last_login=utcnow())
        )

    async def set_reset_token(self, email: str, token: str, expiry: datetime) -> None:
        await self.db.execute(
            update(ClientPortalUser)
            .where(ClientPortalUser.email == email.lower())
            .values(reset_token=token, reset_token_expiry=expiry)
        )

    async def get_by_reset_token(self, token: str) -> Optional[ClientPortalUser]:
        """
        Look up a portal user by an unexpired reset token.

        Expiry is compared in Python because SQLite hands back naive datetimes.
        """
        result = await self.db.execute(
            select(ClientPortalUser).where(ClientPortalUser.reset_token == token)
        )
        portal_user = result.scalar_one_or_none()
        if portal_user is None or portal_user.reset_token_expiry is None:
            return None
        expiry = portal_user.reset_token_expiry
        if expiry.tzinfo is None:
            expiry = expiry.replace(tzinfo=utcnow().tzinfo)
        if expiry <= utcnow():
            return None
        return portal_user

    async def reset_password(self, portal_user_id: int, password_hash: str) -> None:
        """Store the new hash and burn the reset token in one statement."""
        await self.db.execute(
            update(ClientPortalUser)
            .where(ClientPortalUser.id == portal_user_id)
            .values(password_hash=password_hash, reset_token=None, reset_token_expiry=None)
        )

    # Project updates and photos

    async def create_project_update(self, data: dict) -> ProjectUpdate:
        project_update = ProjectUpdate(**data)
        self.db.add(project_update)
        await self.db.flush()
        await self.db.refresh(project_update)
        return project_update

    async def get_project_update(self, update_id: int, user_id: int) -> Optional[ProjectUpdate]:
        result = await self.db.execute(
            select(ProjectUpdate)
            .join(Project, ProjectUpdate.project_id == Project.id)
            .where(ProjectUpdate.id == update_id, Project.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def create_project_photo(self, data: dict) -> ProjectPhoto:
        photo = ProjectPhoto(**data)
        self.db.add(photo)
        await self.db.flush()
        await self.db.refresh(photo)
        return photo

    async def list_updates_with_photos(self, project_ids: List[int], client_view: bool) -> List[dict]:
        """
        Updates for the given projects, each with its photos, newest first.

        Args:
            project_ids: Projects to collect updates from
            client_view: When True only rows flagged visible to the client are returned

        Returns:
            List of dicts: update columns plus "project_name" and "photos"
        """
        if not project_ids:
            return []

        stmt = (
            select(ProjectUpdate, Project.name)
            .join(Project, ProjectUpdate.project_id == Project.id)
            .where(ProjectUpdate.project_id.in_(project_ids))
            .order_by(ProjectUpdate.created_at.desc(), ProjectUpdate.id.desc())
        )
        if client_view:
            stmt = stmt.where(ProjectUpdate.is_visible_to_client.is_(True))
        rows = (await self.db.execute(stmt)).all()
        if not rows:
            return []

        photo_stmt = select(ProjectPhoto).where(
            ProjectPhoto.update_id.in_([row[0].id for row in rows])
        )
        if client_view:
            photo_stmt = photo_stmt.where(ProjectPhoto.is_visible_to_client.is_(True))
        photos_by_update = {}
        for photo in (await self.db.execute(photo_stmt)).scalars():
            photos_by_update.setdefault(photo.update_id, []).append(photo)

        return [
            {
                "update": project_update,
                "project_name": project_name,
                "photos": photos_by_update.get(project_update.id, []),
            }
            for project_update, project_name in rows
        ]

    # Update requests

    async def create_update_request(self, data: dict) -> UpdateRequest:
        update_request = UpdateRequest(**data)
        self.db.add(update_request)
        await self.db.flush()
        await self.db.refresh(update_request)
        return update_request

    async def list_requests_for_contractor(self, user_id: int) -> Sequence:
        """Rows of (UpdateRequest, project name, client name) for the contractor's projects."""
        result = await self.db.execute(
            select(UpdateRequest, Project.name, Client.name)
            .join(Project, UpdateRequest.project_id == Project.id)
            .join(Client, UpdateRequest.client_id == Client.id)
            .where(Project.user_id == user_id)
            .order_by(UpdateRequest.created_at.desc(), UpdateRequest.id.desc())
        )
        return result.all()

    async def list_requests_for_client(self, client_id: int) -> Sequence:
        """Rows of (UpdateRequest, project name) submitted by one client."""
        result = await self.db.execute(
            select(UpdateRequest, Project.name)
            .join(Project, UpdateRequest.project_id == Project.id)
            .where(UpdateRequest.client_id == client_id)
            .order_by(UpdateRequest.created_at.desc(), UpdateRequest.id.desc())
        )
        return result.all()

    async def get_request_for_contractor(self, request_id: int, user_id: int) -> Optional[UpdateRequest]:
        result = await self.db.execute(
            select(UpdateRequest)
            .join(Project, UpdateRequest.project_id == Project.id)
            .where(UpdateRequest.id == request_id, Project.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def set_request_status(self, update_request: UpdateRequest, status: str) -> UpdateRequest:
        update_request.status = status
        update_request.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(update_request)
        return update_request

    async def set_request_reply(self, update_request: UpdateRequest, reply: str) -> UpdateRequest:
        update_request.contractor_reply = reply
        update_request.updated_at = utcnow()
        await self.db.flush()
        await self.db.refresh(update_request)
        return update_request
