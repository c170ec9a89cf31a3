from fastapi import APIRouter, Depends, status
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.core.exceptions import NotFoundError
from taskboard.core.responses import Envelope, ok
from taskboard.core.routing import EnvelopeRoute
from taskboard.database import get_db
from taskboard.routers.deps import valid_task_id
from taskboard.schemas import DeletedTask, TaskCreate, TaskRead, TaskUpdate
from taskboard.services.task_service import TaskService

router = APIRouter(prefix="/tasks", tags=["tasks"], route_class=EnvelopeRoute)


@router.post("", response_model=Envelope[TaskRead], status_code=status.HTTP_201_CREATED)
async def create_task(task_data: TaskCreate, db: AsyncSession = Depends(get_db)):
    """Create a new task"""
    task = await TaskService.create_task(task_data, db)
    return ok(TaskRead.model_validate(task), "Task created successfully")


@router.get("", response_model=Envelope[list[TaskRead]])
async def fetch_tasks(
    completed: bool | None = None,
    db: AsyncSession = Depends(get_db),
):
    tasks = await TaskService.get_all_tasks(db, completed)
    data = [TaskRead.model_validate(t) for t in tasks]
    return ok(data, "Tasks fetched successfully", count=len(data))


@router.get("/{task_id}", response_model=Envelope[TaskRead])
async def fetch_task(
    task_id: str = Depends(valid_task_id), db: AsyncSession = Depends(get_db)
):
    """Get a specific task by ID"""
    task = await TaskService.get_task(task_id, db)
    if not task:
        raise NotFoundError("Task not found")
    return ok(TaskRead.model_validate(task), "Task found")


@router.put("/{task_id}", response_model=Envelope[TaskRead])
async def update_task(
    task_data: TaskUpdate,
    task_id: str = Depends(valid_task_id),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskService.update_task(task_id, task_data, db)
    if not task:
        raise NotFoundError("Task not found")
    return ok(TaskRead.model_validate(task), "Task updated successfully")


@router.delete("/{task_id}", response_model=Envelope[DeletedTask])
async def delete_task(
    task_id: str = Depends(valid_task_id), db: AsyncSession = Depends(get_db)
):
    """Delete a task"""
    task = await TaskService.delete_task(task_id, db)
    if not task:
        raise NotFoundError("Task not found")
    return ok(DeletedTask(id=task.id, title=task.title), "Task deleted successfully")
