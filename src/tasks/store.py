"""Task storage — SQLite-backed task records.

Statuses: todo → in_progress → in_review → completed
Priorities: low, medium, high, urgent
Tasks belong to a project, have a reporter and optionally an assignee,
and can be nested under a parent task.
"""

from __future__ import annotations

import json
import logging
import math
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any

from src.db import Database, to_db_timestamp, utcnow

logger = logging.getLogger(__name__)

STATUSES = ("todo", "in_progress", "in_review", "completed")
PRIORITIES = ("low", "medium", "high", "urgent")

_PRIORITY_RANK = "CASE priority WHEN 'urgent' THEN 3 WHEN 'high' THEN 2 WHEN 'medium' THEN 1 ELSE 0 END"


def _now() -> str:
    return to_db_timestamp(utcnow())


@dataclass
class Task:
    """A single task."""

    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = ""
    description: str | None = None
    status: str = "todo"
    priority: str = "medium"
    project_id: str = ""
    reporter_id: str = ""
    assignee_id: str | None = None
    parent_task_id: str | None = None
    due_date: str | None = None
    estimated_hours: float | None = None
    actual_hours: float | None = None
    tags: list[str] = field(default_factory=list)
    position: int = 0
    is_archived: bool = False
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def to_row(self) -> dict[str, Any]:
        d = asdict(self)
        d["tags"] = json.dumps(d["tags"])
        d["is_archived"] = int(d["is_archived"])
        return d

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Task":
        tags = row.get("tags", "[]")
        if isinstance(tags, str):
            try:
                tags = json.loads(tags)
            except ValueError:
                tags = []
        return cls(
            id=row["id"],
            title=row.get("title", ""),
            description=row.get("description"),
            status=row.get("status", "todo"),
            priority=row.get("priority", "medium"),
            project_id=row.get("project_id", ""),
            reporter_id=row.get("reporter_id", ""),
            assignee_id=row.get("assignee_id"),
            parent_task_id=row.get("parent_task_id"),
            due_date=row.get("due_date"),
            estimated_hours=row.get("estimated_hours"),
            actual_hours=row.get("actual_hours"),
            tags=tags,
            position=row.get("position", 0),
            is_archived=bool(row.get("is_archived", 0)),
            created_at=row.get("created_at", ""),
            updated_at=row.get("updated_at", ""),
        )


@dataclass
class TaskPage:
    tasks: list[Task]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "total": self.total,
            "page": self.page,
            "limit": self.limit,
            "total_pages": self.total_pages,
        }


def _normalize_due(value: datetime | str | None) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            raise ValueError(f"Invalid due date: {value}") from None
    return to_db_timestamp(value)


def _validate(status: str | None = None, priority: str | None = None) -> None:
    if status is not None and status not in STATUSES:
        raise ValueError(f"Invalid status: {status}. Must be one of {STATUSES}")
    if priority is not None and priority not in PRIORITIES:
        raise ValueError(f"Invalid priority: {priority}. Must be one of {PRIORITIES}")


class TaskStore:
    """SQLite-backed task storage."""

    UPDATABLE = {
        "title", "description", "status", "priority", "assignee_id",
        "parent_task_id", "due_date", "estimated_hours", "actual_hours",
        "tags", "position", "is_archived",
    }

    def __init__(self, database: Database) -> None:
        self._db = database
        self._init_db()

    def _init_db(self) -> None:
        self._db.executescript("""
            CREATE TABLE IF NOT EXISTS tasks (
                id              TEXT PRIMARY KEY,
                title           TEXT NOT NULL,
                description     TEXT,
                status          TEXT NOT NULL DEFAULT 'todo',
                priority        TEXT NOT NULL DEFAULT 'medium',
                project_id      TEXT NOT NULL,
                reporter_id     TEXT NOT NULL,
                assignee_id     TEXT,
                parent_task_id  TEXT,
                due_date        TEXT,
                estimated_hours REAL,
                actual_hours    REAL,
                tags            TEXT NOT NULL DEFAULT '[]',
                position        INTEGER NOT NULL DEFAULT 0,
                is_archived     INTEGER NOT NULL DEFAULT 0,
                created_at      TEXT NOT NULL,
                updated_at      TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_tasks_project ON tasks (project_id);
            CREATE INDEX IF NOT EXISTS idx_tasks_assignee ON tasks (assignee_id);
            CREATE INDEX IF NOT EXISTS idx_tasks_status ON tasks (status);
        """)

    # ── CRUD ──────────────────────────────────────────────────────────────

    def create(self, task: Task) -> Task:
        """Insert a new task."""
        if not task.title.strip():
            raise ValueError("Title is required")
        _validate(task.status, task.priority)
        task.due_date = _normalize_due(task.due_date)
        task.created_at = _now()
        task.updated_at = task.created_at
        with self._db.connect() as conn:
            conn.execute("""
                INSERT INTO tasks (id, title, description, status, priority,
                                   project_id, reporter_id, assignee_id,
                                   parent_task_id, due_date, estimated_hours,
                                   actual_hours, tags, position, is_archived,
                                   created_at, updated_at)
                VALUES (:id, :title, :description, :status, :priority,
                        :project_id, :reporter_id, :assignee_id,
                        :parent_task_id, :due_date, :estimated_hours,
                        :actual_hours, :tags, :position, :is_archived,
                        :created_at, :updated_at)
            """, task.to_row())
        logger.debug("Created task %s in project %s", task.id, task.project_id)
        return task

    def get(self, task_id: str) -> Task | None:
        """Get a single task by ID."""
        with self._db.connect() as conn:
            row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return Task.from_row(dict(row)) if row else None

    def list_tasks(
        self,
        *,
        project_id: str | None = None,
        status: str | None = None,
        priority: str | None = None,
        assignee_id: str | None = None,
        search: str | None = None,
        overdue: bool = False,
        include_archived: bool = False,
        page: int = 1,
        limit: int = 20,
        now: datetime | None = None,
    ) -> TaskPage:
        """List tasks matching the filters, highest priority first."""
        _validate(status, priority)
        page = max(page, 1)
        limit = max(1, min(limit, 100))

        clauses: list[str] = []
        params: list[Any] = []
        if project_id:
            clauses.append("project_id = ?")
            params.append(project_id)
        if status:
            clauses.append("status = ?")
            params.append(status)
        if priority:
            clauses.append("priority = ?")
            params.append(priority)
        if assignee_id:
            clauses.append("assignee_id = ?")
            params.append(assignee_id)
        if search:
            clauses.append("(title LIKE ? OR description LIKE ?)")
            params.extend([f"%{search}%", f"%{search}%"])
        if overdue:
            clauses.append("due_date IS NOT NULL AND due_date < ? AND status != 'completed'")
            params.append(to_db_timestamp(now or utcnow()))
        if not include_archived:
            clauses.append("is_archived = 0")

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._db.connect() as conn:
            total = conn.execute(f"SELECT COUNT(*) FROM tasks {where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT * FROM tasks {where} "
                f"ORDER BY {_PRIORITY_RANK} DESC, position, created_at "
                "LIMIT ? OFFSET ?",
                [*params, limit, (page - 1) * limit],
            ).fetchall()
        return TaskPage(
            tasks=[Task.from_row(dict(r)) for r in rows],
            total=int(total),
            page=page,
            limit=limit,
        )

    def update(self, task_id: str, **fields: Any) -> Task | None:
        """Update specific fields of a task."""
        task = self.get(task_id)
        if not task:
            return None

        updates = {k: v for k, v in fields.items() if k in self.UPDATABLE}
        if not updates:
            return task
        _validate(updates.get("status"), updates.get("priority"))
        if "title" in updates and not str(updates["title"]).strip():
            raise ValueError("Title cannot be empty")
        if "parent_task_id" in updates and updates["parent_task_id"] == task_id:
            raise ValueError("A task cannot be its own parent")

        if "due_date" in updates:
            updates["due_date"] = _normalize_due(updates["due_date"])
        if "tags" in updates:
            updates["tags"] = json.dumps(list(updates["tags"] or []))
        if "is_archived" in updates:
            updates["is_archived"] = int(bool(updates["is_archived"]))

        updates["updated_at"] = _now()
        set_clause = ", ".join(f"{k} = :{k}" for k in updates)
        updates["id"] = task_id

        with self._db.connect() as conn:
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = :id", updates)
        return self.get(task_id)

    def archive(self, task_id: str) -> Task | None:
        return self.update(task_id, is_archived=True)

    def delete(self, task_id: str) -> bool:
        """Delete a task and detach its subtasks."""
        with self._db.connect() as conn:
            conn.execute(
                "UPDATE tasks SET parent_task_id = NULL WHERE parent_task_id = ?", (task_id,)
            )
            cursor = conn.execute("DELETE FROM tasks WHERE id = ?", (task_id,))
        return cursor.rowcount > 0

    def stats(self, project_id: str | None = None) -> dict[str, Any]:
        """Summary counts by status and priority."""
        where = "WHERE is_archived = 0" + (" AND project_id = ?" if project_id else "")
        params = (project_id,) if project_id else ()
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT status, priority, COUNT(*) AS n FROM tasks {where} "
                "GROUP BY status, priority",
                params,
            ).fetchall()
            overdue = conn.execute(
                f"SELECT COUNT(*) FROM tasks {where} AND due_date IS NOT NULL "
                "AND due_date < ? AND status != 'completed'",
                (*params, _now()),
            ).fetchone()[0]

        by_status = {s: 0 for s in STATUSES}
        by_priority = {p: 0 for p in PRIORITIES}
        for r in rows:
            by_status[r["status"]] = by_status.get(r["status"], 0) + r["n"]
            by_priority[r["priority"]] = by_priority.get(r["priority"], 0) + r["n"]
        total = sum(by_status.values())
        return {
            "total": total,
            "by_status": by_status,
            "by_priority": by_priority,
            "overdue": int(overdue),
            "completion_rate": round(by_status["completed"] / total * 100, 1) if total else 0.0,
        }
