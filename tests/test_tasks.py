"""Tests for task storage."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from src.tasks.store import PRIORITIES, STATUSES, Task, TaskStore


def _task(**kw) -> Task:
    kw.setdefault("title", "Task")
    kw.setdefault("project_id", "proj1")
    kw.setdefault("reporter_id", "user1")
    return Task(**kw)


class TestTask:
    def test_defaults(self):
        t = Task()
        assert t.status == "todo"
        assert t.priority == "medium"
        assert t.is_archived is False
        assert t.tags == []
        assert t.id  # not empty

    def test_to_row_serializes_tags(self):
        row = _task(tags=["api", "bug"], is_archived=True).to_row()
        assert row["tags"] == '["api", "bug"]'
        assert row["is_archived"] == 1

    def test_from_row(self):
        row = {
            "id": "abc123",
            "title": "Task",
            "description": "Desc",
            "status": "in_review",
            "priority": "high",
            "project_id": "proj1",
            "reporter_id": "u1",
            "assignee_id": "u2",
            "tags": '["x"]',
            "is_archived": 1,
            "created_at": "2025-01-01T00:00:00.000000+00:00",
            "updated_at": "2025-01-01T00:00:00.000000+00:00",
        }
        t = Task.from_row(row)
        assert t.id == "abc123"
        assert t.status == "in_review"
        assert t.tags == ["x"]
        assert t.is_archived is True

    def test_from_row_bad_tags(self):
        t = Task.from_row({"id": "x", "tags": "not-json"})
        assert t.tags == []


class TestTaskStore:
    def test_create_and_get(self, task_store: TaskStore):
        task = task_store.create(_task(title="Write tests", tags=["qa"]))
        fetched = task_store.get(task.id)
        assert fetched is not None
        assert fetched.title == "Write tests"
        assert fetched.tags == ["qa"]
        assert fetched.status == "todo"

    def test_create_requires_title(self, task_store: TaskStore):
        with pytest.raises(ValueError, match="Title"):
            task_store.create(_task(title="   "))

    def test_create_invalid_status(self, task_store: TaskStore):
        with pytest.raises(ValueError, match="Invalid status"):
            task_store.create(_task(status="blocked"))

    def test_create_invalid_priority(self, task_store: TaskStore):
        with pytest.raises(ValueError, match="Invalid priority"):
            task_store.create(_task(priority="critical"))

    def test_due_date_normalized(self, task_store: TaskStore):
        task = task_store.create(_task(due_date="2025-03-01T10:00:00Z"))
        assert task_store.get(task.id).due_date == "2025-03-01T10:00:00.000000+00:00"

    def test_invalid_due_date(self, task_store: TaskStore):
        with pytest.raises(ValueError, match="Invalid due date"):
            task_store.create(_task(due_date="next tuesday"))

    def test_list_filters(self, task_store: TaskStore):
        task_store.create(_task(title="A", project_id="p1", status="todo"))
        task_store.create(_task(title="B", project_id="p1", status="completed"))
        task_store.create(_task(title="C", project_id="p2", assignee_id="u9"))

        assert task_store.list_tasks(project_id="p1").total == 2
        assert task_store.list_tasks(status="completed").total == 1
        assert task_store.list_tasks(assignee_id="u9").tasks[0].title == "C"

    def test_list_search(self, task_store: TaskStore):
        task_store.create(_task(title="Fix login bug"))
        task_store.create(_task(title="Docs", description="explain login flow"))
        task_store.create(_task(title="Unrelated"))
        assert task_store.list_tasks(search="login").total == 2

    def test_list_invalid_filter(self, task_store: TaskStore):
        with pytest.raises(ValueError):
            task_store.list_tasks(status="bogus")

    def test_priority_ordering(self, task_store: TaskStore):
        task_store.create(_task(title="Low", priority="low"))
        task_store.create(_task(title="Urgent", priority="urgent"))
        task_store.create(_task(title="High", priority="high"))
        titles = [t.title for t in task_store.list_tasks().tasks]
        assert titles == ["Urgent", "High", "Low"]

    def test_pagination(self, task_store: TaskStore):
        for i in range(5):
            task_store.create(_task(title=f"T{i}", position=i))
        page = task_store.list_tasks(page=2, limit=2)
        assert page.total == 5
        assert page.total_pages == 3
        assert [t.title for t in page.tasks] == ["T2", "T3"]
        assert page.to_dict()["page"] == 2

    def test_overdue(self, task_store: TaskStore):
        now = datetime(2025, 6, 1, tzinfo=timezone.utc)
        task_store.create(_task(title="Late", due_date=now - timedelta(days=1)))
        task_store.create(_task(title="Late but done", status="completed",
                                due_date=now - timedelta(days=1)))
        task_store.create(_task(title="Future", due_date=now + timedelta(days=1)))
        page = task_store.list_tasks(overdue=True, now=now)
        assert [t.title for t in page.tasks] == ["Late"]

    def test_archived_hidden_by_default(self, task_store: TaskStore):
        task = task_store.create(_task(title="Old"))
        task_store.archive(task.id)
        assert task_store.list_tasks().total == 0
        assert task_store.list_tasks(include_archived=True).total == 1

    def test_update(self, task_store: TaskStore):
        task = task_store.create(_task(title="Old"))
        updated = task_store.update(task.id, title="New", status="in_progress", tags=["a"])
        assert updated is not None
        assert updated.title == "New"
        assert updated.status == "in_progress"
        assert updated.tags == ["a"]
        assert updated.updated_at >= task.updated_at

    def test_update_ignores_unknown_fields(self, task_store: TaskStore):
        task = task_store.create(_task(project_id="p1"))
        updated = task_store.update(task.id, project_id="p2", id="hijack")
        assert updated.project_id == "p1"
        assert updated.id == task.id

    def test_update_invalid(self, task_store: TaskStore):
        task = task_store.create(_task())
        with pytest.raises(ValueError):
            task_store.update(task.id, status="nope")
        with pytest.raises(ValueError, match="own parent"):
            task_store.update(task.id, parent_task_id=task.id)

    def test_update_clears_optional_fields(self, task_store: TaskStore):
        task = task_store.create(_task(assignee_id="u2", due_date="2025-03-01T10:00:00Z"))
        updated = task_store.update(task.id, assignee_id=None, due_date=None)
        assert updated.assignee_id is None
        assert updated.due_date is None

    def test_update_nonexistent(self, task_store: TaskStore):
        assert task_store.update("fakeid", title="x") is None

    def test_delete_detaches_subtasks(self, task_store: TaskStore):
        parent = task_store.create(_task(title="Parent"))
        child = task_store.create(_task(title="Child", parent_task_id=parent.id))
        assert task_store.delete(parent.id) is True
        assert task_store.get(child.id).parent_task_id is None

    def test_delete_nonexistent(self, task_store: TaskStore):
        assert task_store.delete("fakeid") is False

    def test_stats(self, task_store: TaskStore):
        task_store.create(_task(status="todo", priority="high"))
        task_store.create(_task(status="completed", priority="low"))
        task_store.create(_task(status="completed", priority="low",
                                due_date="2000-01-01T00:00:00+00:00"))
        task_store.create(_task(status="todo", due_date="2000-01-01T00:00:00+00:00"))
        stats = task_store.stats()
        assert stats["total"] == 4
        assert stats["by_status"]["completed"] == 2
        assert stats["by_priority"]["low"] == 2
        assert stats["overdue"] == 1
        assert stats["completion_rate"] == 50.0

    def test_stats_empty(self, task_store: TaskStore):
        stats = task_store.stats("nothing-here")
        assert stats["total"] == 0
        assert stats["completion_rate"] == 0.0

    def test_constants(self):
        assert STATUSES == ("todo", "in_progress", "in_review", "completed")
        assert PRIORITIES == ("low", "medium", "high", "urgent")
