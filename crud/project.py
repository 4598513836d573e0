"""
Repositories for projects, clients, tasks and budget items
"""

from typing import Optional, Sequence

from sqlalchemy import select

from crud.base import OwnedRepository
from database_models import BudgetItem, Client, Project, Task


class ProjectRepository(OwnedRepository):
    model = Project

    async def list_projects(self, user_id: int) -> Sequence[Project]:
        """Most recently touched first."""
        return await self.list(user_id, order_by=Project.updated_at.desc())

    async def list_for_client(self, client_id: int) -> Sequence[Project]:
        """
        Projects visible to a client portal user.

        Args:
            client_id: Client the portal user is bound to

        Returns:
            Projects newest first
        """
        result = await self.db.execute(
            select(Project).where(Project.client_id == client_id).order_by(Project.created_at.desc())
        )
        return result.scalars().all()

    async def get_for_client(self, project_id: int, client_id: int) -> Optional[Project]:
        result = await self.db.execute(
            select(Project).where(Project.id == project_id, Project.client_id == client_id)
        )
        return result.scalar_one_or_none()


class ClientRepository(OwnedRepository):
    model = Client

    async def list_clients(self, user_id: int) -> Sequence[Client]:
        return await self.list(user_id, order_by=Client.updated_at.desc())

    async def get_by_id(self, client_id: int) -> Optional[Client]:
        # Portal users are not contractors; their lookups are scoped by client_id instead
        result = await self.db.execute(select(Client).where(Client.id == client_id))
        return result.scalar_one_or_none()


class TaskRepository(OwnedRepository):
    model = Task

    async def list_tasks(self, user_id: int, project_id: Optional[int] = None) -> Sequence[Task]:
        return await self.list(user_id, order_by=Task.created_at.desc(), project_id=project_id)


class BudgetItemRepository(OwnedRepository):
    model = BudgetItem

    async def list_items(self, user_id: int, project_id: Optional[int] = None) -> Sequence[BudgetItem]:
        return await self.list(user_id, order_by=BudgetItem.created_at.desc(), project_id=project_id)
