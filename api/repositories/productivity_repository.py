"""Productivity repository: projects and tasks created from approvals."""

from datetime import date
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from models import Project, ProjectStatus, Task, TaskPriority, TaskStatus
from repositories.utils import log_slow_query


class ProductivityRepository:
    """Repository for Project and Task database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    @log_slow_query("productivity.create_project")
    async def create_project(
        self,
        user_id: str,
        *,
        name: str,
        zone_id: int | None = None,
        status: ProjectStatus = ProjectStatus.ACTIVE,
        due_date: date | None = None,
        details: dict[str, Any] | None = None,
    ) -> Project:
        """Create a project. Flushes so the generated id is available."""
        project = Project(
            user_id=user_id,
            name=name,
            zone_id=zone_id,
            status=status,
            due_date=due_date,
            details=details or {},
        )
        self.db.add(project)
        await self.db.flush()
        return project

    @log_slow_query("productivity.create_task")
    async def create_task(
        self,
        user_id: str,
        *,
        name: str,
        project_id: str | None = None,
        parent_task_id: str | None = None,
        zone_id: int | None = None,
        priority: TaskPriority = TaskPriority.MEDIUM,
        status: TaskStatus = TaskStatus.TODO,
        due_date: date | None = None,
        details: dict[str, Any] | None = None,
    ) -> Task:
        task = Task(
            user_id=user_id,
            name=name,
            project_id=project_id,
            parent_task_id=parent_task_id,
            zone_id=zone_id,
            priority=priority,
            status=status,
            due_date=due_date,
            details=details or {},
        )
        self.db.add(task)
        await self.db.flush()
        return task

    @log_slow_query("productivity.get_project")
    async def get_project(self, user_id: str, project_id: str) -> Project | None:
        result = await self.db.execute(
            select(Project).where(
                Project.id == project_id,
                Project.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    @log_slow_query("productivity.list_tasks")
    async def list_tasks(
        self, user_id: str, *, project_id: str | None = None
    ) -> list[Task]:
        query = select(Task).where(Task.user_id == user_id)
        if project_id is not None:
            query = query.where(Task.project_id == project_id)
        result = await self.db.execute(query.order_by(Task.created_at))
        return list(result.scalars().all())
