"""Task API routes — CRUD, filtered listing and summary stats."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from src.tasks.store import Task, TaskStore

logger = logging.getLogger(__name__)

task_router = APIRouter(prefix="/tasks", tags=["tasks"])


# ── Request models ───────────────────────────────────────────────────────

class CreateTaskBody(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: str = "todo"
    priority: str = "medium"
    project_id: str
    reporter_id: str
    assignee_id: str | None = None
    parent_task_id: str | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    tags: list[str] = []


class UpdateTaskBody(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=2000)
    status: str | None = None
    priority: str | None = None
    assignee_id: str | None = None
    parent_task_id: str | None = None
    due_date: datetime | None = None
    estimated_hours: float | None = Field(default=None, ge=0)
    actual_hours: float | None = Field(default=None, ge=0)
    tags: list[str] | None = None
    position: int | None = None
    is_archived: bool | None = None


# Fields a PATCH may clear by sending null
_CLEARABLE = {
    "description", "assignee_id", "parent_task_id",
    "due_date", "estimated_hours", "actual_hours",
}


# ── Helper ───────────────────────────────────────────────────────────────

def _get_store(request: Request) -> TaskStore:
    return request.app.state.task_store  # type: ignore[no-any-return]


# ── Endpoints ────────────────────────────────────────────────────────────

@task_router.get("/")
def list_tasks(
    request: Request,
    project_id: str | None = None,
    status: str | None = None,
    priority: str | None = None,
    assignee_id: str | None = None,
    search: str | None = None,
    overdue: bool = False,
    page: int = 1,
    limit: int = 20,
) -> dict[str, Any]:
    """List tasks with filters and pagination."""
    store = _get_store(request)
    try:
        result = store.list_tasks(
            project_id=project_id,
            status=status,
            priority=priority,
            assignee_id=assignee_id,
            search=search,
            overdue=overdue,
            page=page,
            limit=limit,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return result.to_dict()


@task_router.post("/", status_code=201)
def create_task(body: CreateTaskBody, request: Request) -> dict[str, Any]:
    """Create a new task."""
    store = _get_store(request)
    if body.parent_task_id and not store.get(body.parent_task_id):
        raise HTTPException(status_code=400, detail="Parent task not found")

    task = Task(**body.model_dump())
    try:
        created = store.create(task)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"task": created.to_dict(), "status": "created"}


@task_router.get("/stats/summary")
def task_stats(request: Request, project_id: str | None = None) -> dict[str, Any]:
    """Task counts by status / priority."""
    return _get_store(request).stats(project_id)


@task_router.get("/{task_id}")
def get_task(task_id: str, request: Request) -> dict[str, Any]:
    """Get a single task."""
    task = _get_store(request).get(task_id)
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task": task.to_dict()}


@task_router.patch("/{task_id}")
def update_task(task_id: str, body: UpdateTaskBody, request: Request) -> dict[str, Any]:
    """Update a task's fields."""
    store = _get_store(request)
    fields = {
        k: v for k, v in body.model_dump(exclude_unset=True).items()
        if v is not None or k in _CLEARABLE
    }
    try:
        task = store.update(task_id, **fields)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return {"task": task.to_dict(), "status": "updated"}


@task_router.delete("/{task_id}")
def delete_task(task_id: str, request: Request) -> dict[str, str]:
    """Delete a task."""
    if not _get_store(request).delete(task_id):
        raise HTTPException(status_code=404, detail="Task not found")
    return {"status": "deleted"}
