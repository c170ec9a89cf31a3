from datetime import datetime, timezone

import structlog
from sqlmodel import select
from sqlmodel.ext.asyncio.session import AsyncSession

from taskboard.models import Task
from taskboard.schemas import TaskCreate, TaskUpdate

logger = structlog.get_logger(__name__)


class TaskService:
    @staticmethod
    async def create_task(task_data: TaskCreate, db: AsyncSession):
        task = Task(**task_data.model_dump())
        db.add(task)
        await db.commit()
        await db.refresh(task)
        logger.info("Task created", task_id=task.id)
        return task

    @staticmethod
    async def get_all_tasks(db: AsyncSession, completed: bool | None = None):
        query = select(Task)
        if completed is not None:
            query = query.where(Task.completed == completed)
        query = query.order_by(Task.created_at.desc())

        result = await db.exec(query)
        return result.all()

    @staticmethod
    async def get_task(task_id: str, db: AsyncSession):
        return await db.get(Task, task_id)

    @staticmethod
    async def update_task(task_id: str, task_data: TaskUpdate, db: AsyncSession):
        task = await db.get(Task, task_id)
        if not task:
            return None
        update_data = task_data.model_dump(exclude_unset=True)
        task.sqlmodel_update(update_data)
        task.updated_at = datetime.now(timezone.utc)
        await db.commit()
        await db.refresh(task)
        logger.info("Task updated", task_id=task.id, fields=sorted(update_data))
        return task

    @staticmethod
    async def delete_task(task_id: str, db: AsyncSession):
        task = await db.get(Task, task_id)
        if not task:
            return None
        await db.delete(task)
        await db.commit()
        logger.info("Task deleted", task_id=task_id)
        return task
