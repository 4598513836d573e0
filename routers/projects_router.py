"""
Contractor CRUD for projects, clients, tasks and budget items
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.ext.asyncio import AsyncSession

from auth import require_app_access
from crud.project import BudgetItemRepository, ClientRepository, ProjectRepository, TaskRepository
from database import get_db
from database_models import User
from models.project import (
    BudgetItemCreate,
    BudgetItemOut,
    BudgetItemPatch,
    ClientCreate,
    ClientOut,
    ClientPatch,
    ProjectCreate,
    ProjectOut,
    ProjectPatch,
    TaskCreate,
    TaskOut,
    TaskPatch,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["projects"])


async def _require_project(db: AsyncSession, project_id: int, user_id: int):
    project = await ProjectRepository(db).get(project_id, user_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


async def _require_client(db: AsyncSession, client_id: int, user_id: int):
    client = await ClientRepository(db).get(client_id, user_id)
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


# Projects

@router.get("/projects", response_model=List[ProjectOut])
async def list_projects(user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    return await ProjectRepository(db).list_projects(user.id)


@router.get("/projects/{project_id}", response_model=ProjectOut)
async def get_project(project_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    return await _require_project(db, project_id, user.id)


@router.post("/projects", response_model=ProjectOut, status_code=201)
async def create_project(
    body: ProjectCreate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    await _require_client(db, body.client_id, user.id)
    project = await ProjectRepository(db).create(user.id, body.model_dump())
    logger.info(f"User {user.id} created project {project.id}")
    return project


@router.put("/projects/{project_id}", response_model=ProjectOut)
async def update_project(
    project_id: int,
    body: ProjectPatch,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    data = body.model_dump(exclude_unset=True)
    if data.get("client_id") is not None:
        await _require_client(db, data["client_id"], user.id)
    project = await ProjectRepository(db).update(project_id, user.id, data)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.delete("/projects/{project_id}", status_code=204)
async def delete_project(project_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await ProjectRepository(db).delete(project_id, user.id):
        raise HTTPException(status_code=404, detail="Project not found")
    return Response(status_code=204)


# Clients

@router.get("/clients", response_model=List[ClientOut])
async def list_clients(user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    return await ClientRepository(db).list_clients(user.id)


@router.get("/clients/{client_id}", response_model=ClientOut)
async def get_client(client_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    return await _require_client(db, client_id, user.id)


@router.post("/clients", response_model=ClientOut, status_code=201)
async def create_client(body: ClientCreate, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    return await ClientRepository(db).create(user.id, body.model_dump())


@router.put("/clients/{client_id}", response_model=ClientOut)
async def update_client(
    client_id: int,
    body: ClientPatch,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    client = await ClientRepository(db).update(client_id, user.id, body.model_dump(exclude_unset=True))
    if client is None:
        raise HTTPException(status_code=404, detail="Client not found")
    return client


@router.delete("/clients/{client_id}", status_code=204)
async def delete_client(client_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await ClientRepository(db).delete(client_id, user.id):
        raise HTTPException(status_code=404, detail="Client not found")
    return Response(status_code=204)


# Tasks

@router.get("/tasks", response_model=List[TaskOut])
async def list_tasks(
    project_id: Optional[int] = None,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    return await TaskRepository(db).list_tasks(user.id, project_id)


@router.get("/tasks/{task_id}", response_model=TaskOut)
async def get_task(task_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    task = await TaskRepository(db).get(task_id, user.id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.post("/tasks", response_model=TaskOut, status_code=201)
async def create_task(body: TaskCreate, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    await _require_project(db, body.project_id, user.id)
    return await TaskRepository(db).create(user.id, body.model_dump())


@router.put("/tasks/{task_id}", response_model=TaskOut)
async def update_task(
    task_id: int,
    body: TaskPatch,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskRepository(db).update(task_id, user.id, body.model_dump(exclude_unset=True))
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.delete("/tasks/{task_id}", status_code=204)
async def delete_task(task_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await TaskRepository(db).delete(task_id, user.id):
        raise HTTPException(status_code=404, detail="Task not found")
    return Response(status_code=204)


# Budget items

@router.get("/budget", response_model=List[BudgetItemOut])
async def list_budget_items(
    project_id: Optional[int] = None,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    return await BudgetItemRepository(db).list_items(user.id, project_id)


@router.post("/budget", response_model=BudgetItemOut, status_code=201)
async def create_budget_item(
    body: BudgetItemCreate,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    await _require_project(db, body.project_id, user.id)
    return await BudgetItemRepository(db).create(user.id, body.model_dump())


@router.put("/budget/{item_id}", response_model=BudgetItemOut)
async def update_budget_item(
    item_id: int,
    body: BudgetItemPatch,
    user: User = Depends(require_app_access),
    db: AsyncSession = Depends(get_db),
):
    item = await BudgetItemRepository(db).update(item_id, user.id, body.model_dump(exclude_unset=True))
    if item is None:
        raise HTTPException(status_code=404, detail="Budget item not found")
    return item


@router.delete("/budget/{item_id}", status_code=204)
async def delete_budget_item(item_id: int, user: User = Depends(require_app_access), db: AsyncSession = Depends(get_db)):
    if not await BudgetItemRepository(db).delete(item_id, user.id):
        raise HTTPException(status_code=404, detail="Budget item not found")
    return Response(status_code=204)
